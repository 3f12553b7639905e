"""Typed YAML - schema-directed binding between YAML documents and Python data."""

from typed_yaml.api import copy, free, load_bytes, load_file, save_bytes, save_file
from typed_yaml.config import Config, ConfigFlag, LogLevel, default_log
from typed_yaml.errors import ErrorCode, TypedYamlError, strerror
from typed_yaml.mem import Allocator
from typed_yaml.parsing import SchemaParser
from typed_yaml.types import (
    UNLIMITED,
    BinaryValue,
    BitDef,
    BitfieldValue,
    BoolValue,
    EnumValue,
    Field,
    FlagsValue,
    FloatValue,
    IgnoreValue,
    IntValue,
    MappingValue,
    SchemaValue,
    SequenceFixedValue,
    SequenceValue,
    StringValue,
    StrVal,
    UIntValue,
    ValueFlag,
    ValueType,
)

__all__ = [
    # Operations
    "load_file",
    "load_bytes",
    "save_file",
    "save_bytes",
    "copy",
    "free",
    # Configuration
    "Config",
    "ConfigFlag",
    "LogLevel",
    "Allocator",
    "default_log",
    # Errors
    "ErrorCode",
    "TypedYamlError",
    "strerror",
    # Schema
    "SchemaParser",
    "SchemaValue",
    "ValueFlag",
    "ValueType",
    "IntValue",
    "UIntValue",
    "BoolValue",
    "EnumValue",
    "FlagsValue",
    "BitfieldValue",
    "FloatValue",
    "StringValue",
    "BinaryValue",
    "MappingValue",
    "SequenceValue",
    "SequenceFixedValue",
    "IgnoreValue",
    "Field",
    "StrVal",
    "BitDef",
    "UNLIMITED",
    # Version
    "pack_version",
    "version",
]

__version__ = "0.1.0"


def pack_version(major: int, minor: int, patch: int, release: bool = True) -> int:
    """Pack a version into 32 bits: release flag, major, minor, patch."""
    return (int(release) << 31) | ((major & 0xFF) << 16) | ((minor & 0xFF) << 8) | (patch & 0xFF)


def _parse_version(text: str) -> int:
    major, minor, patch = (int(part) for part in text.split(".")[:3])
    return pack_version(major, minor, patch)


version = _parse_version(__version__)
