"""Tests for deep-copying data trees."""

from dataclasses import dataclass

import pytest

from typed_yaml import (
    Config,
    ErrorCode,
    Field,
    IntValue,
    MappingValue,
    SequenceFixedValue,
    SequenceValue,
    StringValue,
    TypedYamlError,
    ValueFlag,
    copy,
    load_bytes,
)

PTR = ValueFlag.POINTER


@dataclass
class Person:
    name: str = ""
    age: int = 0


def people_schema():
    person = MappingValue(
        fields=[Field("name", StringValue(flags=PTR)), Field("age", IntValue())],
        cls=Person,
    )
    return MappingValue(
        flags=PTR,
        fields=[
            Field("people", SequenceValue(flags=PTR, entry=person), count_attr="count"),
            Field("tags", SequenceValue(flags=PTR, entry=StringValue(flags=PTR))),
        ],
    )


class TestCopy:
    """Tests for copy."""

    def test_copy_is_equal_and_independent(self):
        """Test that a copy equals the source and shares no containers."""
        schema = people_schema()
        source, _ = load_bytes(
            b"people:\n- {name: Ann, age: 30}\n- {name: Bob, age: 4}\ntags: [a, b]\n",
            Config(),
            schema,
        )

        result = copy(Config(), schema, source)

        assert result == source
        assert result is not source
        assert result["people"] is not source["people"]
        assert result["people"][0] is not source["people"][0]
        assert result["tags"] is not source["tags"]

        result["people"][0].age = 99
        assert source["people"][0].age == 30

    def test_count_member_limits_copy(self):
        """Test that only counted entries are copied."""
        schema = people_schema()
        source = {
            "people": [Person("Ann", 30), Person("Bob", 4)],
            "count": 1,
            "tags": [],
        }

        result = copy(Config(), schema, source)

        assert result == {"people": [Person("Ann", 30)], "count": 1, "tags": []}

    def test_sequence_root(self):
        """Test copying a sequence root with its count."""
        schema = SequenceValue(flags=PTR, entry=IntValue())

        assert copy(Config(), schema, [1, 2, 3], 2) == [1, 2]

    def test_sequence_root_needs_count(self):
        """Test that a dynamic sequence root needs a count."""
        schema = SequenceValue(flags=PTR, entry=IntValue())

        with pytest.raises(TypedYamlError) as exc:
            copy(Config(), schema, [1, 2, 3])

        assert exc.value.code == ErrorCode.BAD_PARAM_SEQ_COUNT

    def test_pointer_root_with_target(self):
        """Test that a pointer root cannot be copied into a target."""
        schema = people_schema()

        with pytest.raises(TypedYamlError) as exc:
            copy(Config(), schema, {"people": [], "count": 0, "tags": []}, target={})

        assert exc.value.code == ErrorCode.DATA_TARGET_NON_NULL

    def test_non_pointer_mapping_into_target(self):
        """Test copying a non-pointer mapping into a caller record."""
        schema = MappingValue(fields=[Field("a", IntValue()), Field("s", StringValue(flags=PTR))])
        target = {}

        result = copy(Config(), schema, {"a": 1, "s": "x"}, target=target)

        assert result is target
        assert target == {"a": 1, "s": "x"}

    def test_non_pointer_mapping_needs_target(self):
        """Test that a non-pointer mapping root needs a target."""
        schema = MappingValue(fields=[Field("a", IntValue())])

        with pytest.raises(TypedYamlError) as exc:
            copy(Config(), schema, {"a": 1})

        assert exc.value.code == ErrorCode.BAD_PARAM_NULL_DATA

    def test_non_pointer_fixed_sequence_into_target(self):
        """Test copying a fixed sequence into a caller list."""
        schema = SequenceFixedValue(entry=IntValue(), min=2, max=2)
        target = [0, 0]

        result = copy(Config(), schema, [7, 8], target=target)

        assert result is target
        assert target == [7, 8]

    def test_null_root(self):
        """Test that a null source needs a null-permitting schema."""
        with pytest.raises(TypedYamlError) as exc:
            copy(Config(), IntValue(flags=PTR), None)
        assert exc.value.code == ErrorCode.BAD_PARAM_NULL_DATA

        assert copy(Config(), IntValue(flags=ValueFlag.POINTER_NULL), None) is None

    def test_backtrace(self):
        """Test that copy errors carry the path innermost first."""
        schema = MappingValue(
            flags=PTR,
            fields=[Field("items", SequenceValue(flags=PTR, entry=IntValue()))],
        )

        with pytest.raises(TypedYamlError) as exc:
            copy(Config(), schema, {"items": [1, None]})

        assert exc.value.code == ErrorCode.BAD_PARAM_NULL_DATA
        assert exc.value.backtrace == ["in sequence entry: 1", "in mapping field: items"]
