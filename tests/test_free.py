"""Tests for freeing, allocation tracking and out-of-memory handling."""

import pytest

from typed_yaml import (
    Allocator,
    Config,
    ErrorCode,
    Field,
    IntValue,
    MappingValue,
    SequenceValue,
    StringValue,
    TypedYamlError,
    ValueFlag,
    copy,
    free,
    load_bytes,
    save_bytes,
)

PTR = ValueFlag.POINTER

DOCUMENT = b"""\
name: box
tags: [red, green, blue]
parts:
  - &part {label: lid, size: 3}
  - *part
  - {label: base, size: 9}
note: ~
"""


class CountingAllocator(Allocator):
    """Allocator that counts live objects and can fail on request."""

    def __init__(self, fail_at=None):
        self.allocs = 0
        self.frees = 0
        self.fail_at = fail_at

    @property
    def live(self):
        return self.allocs - self.frees

    def alloc(self, size, factory):
        if self.fail_at is not None and self.allocs == self.fail_at:
            return None
        self.allocs += 1
        return factory()

    def free(self, obj):
        self.frees += 1


def box_schema():
    part = MappingValue(
        flags=PTR,
        fields=[Field("label", StringValue(flags=PTR)), Field("size", IntValue())],
    )
    return MappingValue(
        flags=PTR,
        fields=[
            Field("name", StringValue(flags=PTR)),
            Field("tags", SequenceValue(flags=PTR, entry=StringValue(flags=PTR))),
            Field("parts", SequenceValue(flags=PTR, entry=part), count_attr="n_parts"),
            Field("note", StringValue(flags=ValueFlag.POINTER_NULL_STR)),
            Field(
                "extra",
                StringValue(flags=PTR | ValueFlag.OPTIONAL, missing="none"),
            ),
        ],
    )


class TestFree:
    """Tests for free."""

    def test_free_loaded_tree(self):
        """Test that freeing a loaded tree releases every allocation."""
        mem = CountingAllocator()
        config = Config(mem=mem)
        schema = box_schema()

        value, _ = load_bytes(DOCUMENT, config, schema)
        assert mem.live > 0

        free(config, schema, value)

        assert mem.live == 0

    def test_free_copied_tree(self):
        """Test that freeing a copy releases every copy allocation."""
        schema = box_schema()
        value, _ = load_bytes(DOCUMENT, Config(), schema)
        mem = CountingAllocator()
        config = Config(mem=mem)

        result = copy(config, schema, value)
        assert mem.live > 0

        free(config, schema, result)

        assert mem.live == 0

    def test_free_none(self):
        """Test that freeing None does nothing."""
        mem = CountingAllocator()

        free(Config(mem=mem), box_schema(), None)

        assert mem.frees == 0

    def test_free_partial_tree(self):
        """Test that members missing from a record are skipped."""
        mem = CountingAllocator()

        free(Config(mem=mem), box_schema(), {"name": "x"})

        assert mem.frees == 2

    def test_free_sequence_root(self):
        """Test freeing a sequence root with and without a count."""
        mem = CountingAllocator()
        config = Config(mem=mem)
        schema = SequenceValue(flags=PTR, entry=StringValue(flags=PTR))
        value, count = load_bytes(b"[a, b]\n", config, schema)

        free(config, schema, value, count)

        assert mem.live == 0
        free(config, schema, value)

    def test_free_bad_count(self):
        """Test that a count for a mapping root is rejected."""
        with pytest.raises(TypedYamlError) as exc:
            free(Config(), box_schema(), {}, 3)

        assert exc.value.code == ErrorCode.BAD_PARAM_SEQ_COUNT

    def test_free_null_config(self):
        """Test parameter checks."""
        with pytest.raises(TypedYamlError) as exc:
            free(None, box_schema(), {})

        assert exc.value.code == ErrorCode.BAD_PARAM_NULL_CONFIG


class TestOutOfMemory:
    """Tests for allocation failures injected at every allocation."""

    def test_load_failures(self):
        """Test that every failed load allocation is OOM and leaks nothing."""
        schema = box_schema()
        counter = CountingAllocator()
        load_bytes(DOCUMENT, Config(mem=counter), schema)
        assert counter.allocs > 5

        for n in range(counter.allocs):
            mem = CountingAllocator(fail_at=n)
            with pytest.raises(TypedYamlError) as exc:
                load_bytes(DOCUMENT, Config(mem=mem, log_fn=None), schema)
            assert exc.value.code == ErrorCode.OOM
            assert mem.live == 0

    def test_copy_failures(self):
        """Test that every failed copy allocation is OOM and leaks nothing."""
        schema = box_schema()
        value, _ = load_bytes(DOCUMENT, Config(), schema)
        counter = CountingAllocator()
        copy(Config(mem=counter), schema, value)

        for n in range(counter.allocs):
            mem = CountingAllocator(fail_at=n)
            with pytest.raises(TypedYamlError) as exc:
                copy(Config(mem=mem, log_fn=None), schema, value)
            assert exc.value.code == ErrorCode.OOM
            assert mem.live == 0

    def test_save_failure(self):
        """Test that the output buffer allocation can fail."""
        schema = box_schema()
        value, _ = load_bytes(DOCUMENT, Config(), schema)

        with pytest.raises(TypedYamlError) as exc:
            save_bytes(Config(mem=CountingAllocator(fail_at=0)), schema, value)

        assert exc.value.code == ErrorCode.OOM

    def test_memory_error(self):
        """Test that MemoryError from the allocator is reported as OOM."""

        class Exhausted(Allocator):
            def alloc(self, size, factory):
                raise MemoryError

        with pytest.raises(TypedYamlError) as exc:
            load_bytes(b"[1]\n", Config(mem=Exhausted(), log_fn=None),
                       SequenceValue(flags=PTR, entry=IntValue()))

        assert exc.value.code == ErrorCode.OOM


class TestAliasFidelity:
    """Tests that aliases produce independent subtrees."""

    def test_alias_entries_independent(self):
        """Test that an aliased entry is a separate allocation."""
        mem = CountingAllocator()
        config = Config(mem=mem)
        schema = box_schema()

        value, _ = load_bytes(DOCUMENT, config, schema)

        first, second, _third = value["parts"]
        assert first == second == {"label": "lid", "size": 3}
        assert first is not second
        assert value["n_parts"] == 3
        assert value["note"] is None
        assert value["extra"] == "none"


class ReallocAllocator(CountingAllocator):
    """Allocator that tracks live objects by identity through growth."""

    def __init__(self, fail_at=None, realloc_fail_at=None, move=False):
        super().__init__(fail_at)
        self.reallocs = 0
        self.realloc_fail_at = realloc_fail_at
        self.move = move
        self.owned = []

    def alloc(self, size, factory):
        obj = super().alloc(size, factory)
        if obj is not None:
            self.owned.append(obj)
        return obj

    def realloc(self, obj, size):
        if self.realloc_fail_at is not None and self.reallocs == self.realloc_fail_at:
            return None
        self.reallocs += 1
        if not self.move:
            return obj
        grown = list(obj)
        self._forget(obj)
        self.owned.append(grown)
        return grown

    def free(self, obj):
        super().free(obj)
        self._forget(obj)

    def _forget(self, obj):
        for i, owned in enumerate(self.owned):
            if owned is obj:
                del self.owned[i]
                return
        raise AssertionError(f"freed an object that is not live: {obj!r}")


class TestGrowth:
    """Tests for sequence growth through the allocator's realloc."""

    def test_realloc_failures(self):
        """Test that every failed growth is OOM and leaks nothing."""
        schema = box_schema()
        counter = ReallocAllocator()
        load_bytes(DOCUMENT, Config(mem=counter), schema)
        assert counter.reallocs == 6

        for n in range(counter.reallocs):
            mem = ReallocAllocator(realloc_fail_at=n)
            with pytest.raises(TypedYamlError) as exc:
                load_bytes(DOCUMENT, Config(mem=mem, log_fn=None), schema)
            assert exc.value.code == ErrorCode.OOM
            assert mem.live == 0
            assert mem.owned == []

    def test_moving_realloc(self):
        """Test growth that returns a new list."""
        schema = box_schema()
        mem = ReallocAllocator(move=True)

        value, _ = load_bytes(DOCUMENT, Config(mem=mem), schema)

        assert value["tags"] == ["red", "green", "blue"]
        assert any(owned is value["tags"] for owned in mem.owned)
        free(Config(mem=mem), schema, value)
        assert mem.live == 0
        assert mem.owned == []

    def test_moving_realloc_failures(self):
        """Test that moved lists are released when a later allocation fails."""
        schema = box_schema()
        counter = ReallocAllocator(move=True)
        load_bytes(DOCUMENT, Config(mem=counter), schema)

        for n in range(counter.allocs):
            mem = ReallocAllocator(fail_at=n, move=True)
            with pytest.raises(TypedYamlError) as exc:
                load_bytes(DOCUMENT, Config(mem=mem, log_fn=None), schema)
            assert exc.value.code == ErrorCode.OOM
            assert mem.live == 0
            assert mem.owned == []


class TestForeignErrors:
    """Tests that errors raised outside the engine still release allocations."""

    def test_validator_raises(self):
        """Test a validator that raises instead of returning False."""

        def explode(ctx, schema, value):
            raise RuntimeError("validator failed")

        schema = MappingValue(
            flags=PTR,
            fields=[
                Field("s", StringValue(flags=PTR)),
                Field("n", IntValue(validator=explode)),
            ],
        )
        mem = CountingAllocator()

        with pytest.raises(RuntimeError):
            load_bytes(b"s: x\nn: 1\n", Config(mem=mem, log_fn=None), schema)

        assert mem.allocs == 2
        assert mem.live == 0

    def test_copy_missing_member(self):
        """Test that copying a record without a schema member is INVALID_VALUE."""
        schema = MappingValue(
            flags=PTR,
            fields=[Field("s", StringValue(flags=PTR)), Field("n", IntValue())],
        )
        mem = CountingAllocator()

        with pytest.raises(TypedYamlError) as exc:
            copy(Config(mem=mem, log_fn=None), schema, {"s": "x"})

        assert exc.value.code == ErrorCode.INVALID_VALUE
        assert "in mapping field: n" in exc.value.backtrace
        assert mem.live == 0
