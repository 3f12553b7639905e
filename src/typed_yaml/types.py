"""Schema definitions for the typed_yaml library."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, Callable


class ValueType(Enum):
    """Kinds of YAML value position a schema can describe."""

    INT = "int"
    UINT = "uint"
    BOOL = "bool"
    ENUM = "enum"
    FLAGS = "flags"
    BITFIELD = "bitfield"
    FLOAT = "float"
    STRING = "string"
    BINARY = "binary"
    MAPPING = "mapping"
    SEQUENCE = "sequence"
    SEQUENCE_FIXED = "sequence_fixed"
    IGNORE = "ignore"

    @property
    def is_scalar(self) -> bool:
        """Return whether values of this type are a single YAML scalar."""
        return self not in (
            ValueType.FLAGS,
            ValueType.BITFIELD,
            ValueType.MAPPING,
            ValueType.SEQUENCE,
            ValueType.SEQUENCE_FIXED,
            ValueType.IGNORE,
        )

    @property
    def is_integer_like(self) -> bool:
        """Return whether values of this type are stored as integers."""
        return self in (
            ValueType.INT,
            ValueType.UINT,
            ValueType.ENUM,
            ValueType.FLAGS,
            ValueType.BITFIELD,
        )

    @property
    def is_sequence(self) -> bool:
        return self in (ValueType.SEQUENCE, ValueType.SEQUENCE_FIXED)


class ValueFlag(IntFlag):
    """Per-value behaviour flags."""

    DEFAULT = 0
    OPTIONAL = 1 << 0
    POINTER = 1 << 1
    POINTER_NULL = (1 << 2) | POINTER
    POINTER_NULL_STR = (1 << 3) | POINTER_NULL
    STRICT = 1 << 4
    BLOCK = 1 << 5
    FLOW = 1 << 6
    CASE_SENSITIVE = 1 << 7
    CASE_INSENSITIVE = 1 << 8
    SCALAR_PLAIN = 1 << 9
    SCALAR_FOLDED = 1 << 10
    SCALAR_LITERAL = 1 << 11
    SCALAR_QUOTE_SINGLE = 1 << 12
    SCALAR_QUOTE_DOUBLE = 1 << 13


# Bits that distinguish the null-permitting pointer flags from plain POINTER
_NULL_BIT = 1 << 2
_NULL_STR_BIT = 1 << 3

# Sequence maximum meaning "no limit"
UNLIMITED = 0xFFFFFFFF

# Widths accepted for integer-like values and for floats
INTEGER_WIDTHS = (1, 2, 4, 8)
FLOAT_WIDTHS = (4, 8)

# Width of a stored owning pointer, used as the allocation size of pointer slots
POINTER_SIZE = 8


@dataclass
class StrVal:
    """Name/value pair for enum and flags tables."""

    name: str
    value: int


@dataclass
class BitDef:
    """A named region of bits inside a bitfield value."""

    name: str
    offset: int
    bits: int

    @property
    def mask(self) -> int:
        return ((1 << self.bits) - 1) << self.offset


@dataclass
class SchemaValue:
    """Base class for all schema values."""

    flags: ValueFlag = ValueFlag.DEFAULT
    data_size: int = 0
    validator: Callable[..., bool] | None = None
    missing: Any = None

    @property
    def type(self) -> ValueType:
        """Return the value type tag for this schema."""
        raise NotImplementedError

    @property
    def is_pointer(self) -> bool:
        return bool(self.flags & ValueFlag.POINTER)

    @property
    def allows_null(self) -> bool:
        """Return whether a null (None) value is permitted."""
        return bool(self.flags & _NULL_BIT)

    @property
    def allows_null_str(self) -> bool:
        """Return whether null literals like ``~`` and ``null`` mean None."""
        return bool(self.flags & _NULL_STR_BIT)

    @property
    def is_optional(self) -> bool:
        return bool(self.flags & ValueFlag.OPTIONAL)

    @property
    def is_strict(self) -> bool:
        return bool(self.flags & ValueFlag.STRICT)


@dataclass
class IntValue(SchemaValue):
    """Signed integer value."""

    data_size: int = 4
    min: int = 0
    max: int = 0

    @property
    def type(self) -> ValueType:
        return ValueType.INT


@dataclass
class UIntValue(SchemaValue):
    """Unsigned integer value."""

    data_size: int = 4
    min: int = 0
    max: int = 0

    @property
    def type(self) -> ValueType:
        return ValueType.UINT


@dataclass
class BoolValue(SchemaValue):
    data_size: int = 1

    @property
    def type(self) -> ValueType:
        return ValueType.BOOL


@dataclass
class EnumValue(SchemaValue):
    """Integer exposed to YAML as one name from a table."""

    data_size: int = 4
    strings: list[StrVal] = field(default_factory=list)

    @property
    def type(self) -> ValueType:
        return ValueType.ENUM


@dataclass
class FlagsValue(SchemaValue):
    """Integer exposed to YAML as a sequence of names OR-ed together."""

    data_size: int = 4
    strings: list[StrVal] = field(default_factory=list)

    @property
    def type(self) -> ValueType:
        return ValueType.FLAGS


@dataclass
class BitfieldValue(SchemaValue):
    """Integer exposed to YAML as a mapping of region names to values."""

    data_size: int = 4
    bitdefs: list[BitDef] = field(default_factory=list)

    @property
    def type(self) -> ValueType:
        return ValueType.BITFIELD


@dataclass
class FloatValue(SchemaValue):
    data_size: int = 8

    @property
    def type(self) -> ValueType:
        return ValueType.FLOAT


@dataclass
class StringValue(SchemaValue):
    """Text value; min and max are lengths in UTF-8 bytes."""

    min: int = 0
    max: int = UNLIMITED

    @property
    def type(self) -> ValueType:
        return ValueType.STRING


@dataclass
class BinaryValue(SchemaValue):
    """Byte string carried in YAML as base64 text."""

    min: int = 0
    max: int = UNLIMITED

    @property
    def type(self) -> ValueType:
        return ValueType.BINARY


@dataclass
class Field:
    """One key of a mapping schema.

    ``attr`` names the record member the value is bound to and defaults to
    the YAML key. ``count_attr`` names the companion member that receives
    the entry count of a dynamic sequence, or the byte length of a binary.
    """

    key: str
    value: SchemaValue
    attr: str | None = None
    count_attr: str | None = None
    count_size: int = 4

    def __post_init__(self) -> None:
        if self.attr is None:
            self.attr = self.key


@dataclass
class MappingValue(SchemaValue):
    """Record value bound to a YAML mapping.

    Records are created as ``cls(**zero_values)`` and then populated member
    by member, so ``cls`` may be ``dict``, a mutable dataclass, or any class
    whose constructor takes the member names as keywords.
    """

    fields: list[Field] = field(default_factory=list)
    cls: Callable[..., Any] = dict

    @property
    def type(self) -> ValueType:
        return ValueType.MAPPING

    def get_field(self, attr: str) -> Field | None:
        for f in self.fields:
            if f.attr == attr:
                return f
        return None


@dataclass
class SequenceValue(SchemaValue):
    """Variable length list of entries."""

    entry: SchemaValue | None = None
    min: int = 0
    max: int = UNLIMITED

    @property
    def type(self) -> ValueType:
        return ValueType.SEQUENCE


@dataclass
class SequenceFixedValue(SchemaValue):
    """Constant length list of entries; ``min`` must equal ``max``."""

    entry: SchemaValue | None = None
    min: int = 0
    max: int = 0

    @property
    def type(self) -> ValueType:
        return ValueType.SEQUENCE_FIXED


@dataclass
class IgnoreValue(SchemaValue):
    """Mapping field whose value is consumed and discarded."""

    @property
    def type(self) -> ValueType:
        return ValueType.IGNORE


# Mapping from DSL scalar type names to (schema class, data size)
SCALAR_TYPE_NAMES: dict[str, tuple[type[SchemaValue], int]] = {
    "int8": (IntValue, 1),
    "int16": (IntValue, 2),
    "int32": (IntValue, 4),
    "int64": (IntValue, 8),
    "uint8": (UIntValue, 1),
    "uint16": (UIntValue, 2),
    "uint32": (UIntValue, 4),
    "uint64": (UIntValue, 8),
    "bool": (BoolValue, 1),
    "float": (FloatValue, 4),
    "double": (FloatValue, 8),
}


def zero_value(schema: SchemaValue) -> Any:
    """Return the value of an all-zero slot described by ``schema``."""
    if schema.is_pointer:
        return None
    t = schema.type
    if t.is_integer_like:
        return 0
    if t == ValueType.BOOL:
        return False
    if t == ValueType.FLOAT:
        return 0.0
    if t == ValueType.STRING:
        return ""
    if t == ValueType.BINARY:
        return b""
    if t == ValueType.MAPPING:
        return new_record(schema)  # type: ignore[arg-type]
    if t == ValueType.SEQUENCE:
        return []
    if t == ValueType.SEQUENCE_FIXED:
        assert isinstance(schema, SequenceFixedValue) and schema.entry is not None
        return [zero_value(schema.entry) for _ in range(schema.max)]
    return None


def zero_members(schema: MappingValue) -> dict[str, Any]:
    """Return member name to zero value for every bound field of a mapping."""
    members: dict[str, Any] = {}
    for f in schema.fields:
        if f.value.type == ValueType.IGNORE:
            continue
        members[f.attr] = zero_value(f.value)  # type: ignore[index]
        if f.count_attr is not None:
            members[f.count_attr] = 0
    return members


def new_record(schema: MappingValue) -> Any:
    """Create a zero-initialised record for a mapping schema."""
    return schema.cls(**zero_members(schema))
