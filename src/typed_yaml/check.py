"""Schema checks applied to each schema value when the engine first reaches it."""

from __future__ import annotations

from typed_yaml import data
from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.types import (
    UNLIMITED,
    BinaryValue,
    BitfieldValue,
    Field,
    IntValue,
    MappingValue,
    SchemaValue,
    SequenceFixedValue,
    SequenceValue,
    StringValue,
    UIntValue,
    ValueType,
)


def check_value(
    schema: SchemaValue | None,
    in_sequence: bool = False,
    in_mapping: bool = False,
) -> None:
    """Validate one schema value (not its children).

    ``in_sequence`` is set when the value is a sequence entry, and
    ``in_mapping`` when it is the value of a mapping field.
    """
    if not isinstance(schema, SchemaValue):
        raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, repr(schema))

    t = schema.type
    if t.is_integer_like or t == ValueType.BOOL:
        data.check_width(schema.data_size)
    elif t == ValueType.FLOAT:
        data.check_float_width(schema.data_size)

    if isinstance(schema, (IntValue, UIntValue)):
        if (schema.min or schema.max) and schema.min > schema.max:
            raise TypedYamlError(ErrorCode.BAD_MIN_MAX_SCHEMA)
    elif isinstance(schema, (StringValue, BinaryValue)):
        if schema.min > schema.max:
            raise TypedYamlError(ErrorCode.BAD_MIN_MAX_SCHEMA)
        if (
            isinstance(schema, StringValue)
            and not schema.is_pointer
            and schema.data_size
            and schema.max > schema.data_size - 1
        ):
            raise TypedYamlError(
                ErrorCode.INVALID_DATA_SIZE,
                f"string max {schema.max} exceeds {schema.data_size} byte buffer",
            )
    elif isinstance(schema, BitfieldValue):
        for bitdef in schema.bitdefs:
            if bitdef.offset < 0 or bitdef.bits < 1:
                raise TypedYamlError(ErrorCode.BAD_BITVAL_IN_SCHEMA, bitdef.name)
            if bitdef.offset + bitdef.bits > schema.data_size * 8:
                raise TypedYamlError(ErrorCode.BAD_BITVAL_IN_SCHEMA, bitdef.name)
    elif isinstance(schema, SequenceValue):
        if in_sequence:
            raise TypedYamlError(ErrorCode.SEQUENCE_IN_SEQUENCE)
        if not isinstance(schema.entry, SchemaValue):
            raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, "sequence entry")
        if schema.min > schema.max:
            raise TypedYamlError(ErrorCode.BAD_MIN_MAX_SCHEMA)
    elif isinstance(schema, SequenceFixedValue):
        if not isinstance(schema.entry, SchemaValue):
            raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, "sequence entry")
        if schema.min != schema.max or schema.max == UNLIMITED:
            raise TypedYamlError(ErrorCode.SEQUENCE_FIXED_COUNT)
    elif isinstance(schema, MappingValue):
        for f in schema.fields:
            check_field(f)
    elif t == ValueType.IGNORE and not in_mapping:
        raise TypedYamlError(ErrorCode.MAPPING_REQUIRED)


def check_field(f: Field) -> None:
    if not isinstance(f, Field) or not isinstance(f.value, SchemaValue):
        raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, repr(f))
    if f.count_attr is not None:
        data.check_width(f.count_size)
