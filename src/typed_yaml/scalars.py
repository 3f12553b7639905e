"""Conversion between YAML scalar text and typed values."""

from __future__ import annotations

import math
import re

from typed_yaml import binary, data
from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.text import find_by_name
from typed_yaml.types import (
    BinaryValue,
    BitfieldValue,
    EnumValue,
    FlagsValue,
    FloatValue,
    IntValue,
    SchemaValue,
    StringValue,
    UIntValue,
)

_INT_RE = re.compile(r"\s*([-+]?)(0[xX][0-9a-fA-F]+|0|[1-9][0-9]*)\s*")
_INF_RE = re.compile(r"([-+]?)\.(?:inf|Inf|INF)")
_NAN_RE = re.compile(r"\.(?:nan|NaN|NAN)")
_INF_WORDS = ("inf", "infinity")

TRUE_STRINGS = ("true", "yes", "enable", "1")
FALSE_STRINGS = ("false", "no", "disable", "0")
NULL_STRINGS = ("null", "Null", "NULL", "~")


def _invalid(text: str, kind: str) -> TypedYamlError:
    return TypedYamlError(ErrorCode.INVALID_VALUE, f"'{text}' is not a valid {kind}")


def parse_integer(text: str) -> int | None:
    """Parse decimal or 0x-prefixed hexadecimal text; None if malformed."""
    m = _INT_RE.fullmatch(text)
    if m is None:
        return None
    sign, digits = m.groups()
    value = int(digits, 16) if digits[:2].lower() == "0x" else int(digits, 10)
    return -value if sign == "-" else value


def _check_range(schema: IntValue | UIntValue, value: int, text: str) -> None:
    # Both bounds zero means the range is unconstrained
    if schema.min == 0 and schema.max == 0:
        return
    if not schema.min <= value <= schema.max:
        raise TypedYamlError(
            ErrorCode.INVALID_VALUE,
            f"{text} outside range [{schema.min}, {schema.max}]",
        )


def parse_int(schema: IntValue, text: str) -> int:
    value = parse_integer(text)
    if value is None:
        raise _invalid(text, "integer")
    _check_range(schema, value, text)
    return data.write_int(schema.data_size, value)


def parse_uint(schema: UIntValue, text: str) -> int:
    value = parse_integer(text)
    if value is None or value < 0:
        raise _invalid(text, "unsigned integer")
    _check_range(schema, value, text)
    return data.write_uint(schema.data_size, value)


def parse_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in TRUE_STRINGS:
        return True
    if lowered in FALSE_STRINGS:
        return False
    raise _invalid(text, "boolean")


def parse_float(schema: FloatValue, text: str) -> float:
    """Parse float text, honouring the width and strictness of ``schema``."""
    m = _INF_RE.fullmatch(text)
    if m is not None:
        return -math.inf if m.group(1) == "-" else math.inf
    if _NAN_RE.fullmatch(text):
        return math.nan
    if "_" in text:
        raise _invalid(text, "float")
    try:
        value = float(text)
    except ValueError:
        raise _invalid(text, "float") from None

    stripped = text.strip().lstrip("+-").lower()
    if math.isinf(value) and stripped not in _INF_WORDS:
        if schema.is_strict:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, f"{text} overflows double")
    elif value == 0.0 and re.search(r"[1-9]", re.split(r"[eE]", stripped)[0]):
        if schema.is_strict:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, f"{text} underflows double")
    return data.write_float(schema.data_size, value, schema.is_strict)


def parse_string(schema: StringValue, text: str) -> str:
    length = len(text.encode("utf-8"))
    if length < schema.min:
        raise TypedYamlError(
            ErrorCode.STRING_LENGTH_MIN, f"{length} bytes, minimum {schema.min}"
        )
    if length > schema.max:
        raise TypedYamlError(
            ErrorCode.STRING_LENGTH_MAX, f"{length} bytes, maximum {schema.max}"
        )
    return text


def parse_binary(schema: BinaryValue, text: str) -> bytes:
    size = binary.decoded_size(text)
    if size > schema.max:
        raise TypedYamlError(
            ErrorCode.BASE64_MAX_LEN, f"{size} bytes, maximum {schema.max}"
        )
    if size < schema.min:
        raise TypedYamlError(
            ErrorCode.STRING_LENGTH_MIN, f"{size} bytes, minimum {schema.min}"
        )
    return binary.decode(text)


def parse_enum(schema: EnumValue, text: str, case_sensitive: bool) -> int:
    entry = find_by_name(schema.strings, text, case_sensitive=case_sensitive)
    if entry is not None:
        return entry.value
    if not schema.is_strict:
        value = parse_integer(text)
        if value is not None:
            return data.write_int(schema.data_size, value)
    raise TypedYamlError(ErrorCode.INVALID_VALUE, f"Invalid enumeration value: {text}")


def parse_flag(schema: FlagsValue, text: str, case_sensitive: bool) -> int:
    """Return the bits one flags sequence entry stands for."""
    entry = find_by_name(schema.strings, text, case_sensitive=case_sensitive)
    if entry is not None:
        return entry.value
    if not schema.is_strict:
        value = parse_integer(text)
        if value is not None and value >= 0:
            return data.write_uint(schema.data_size, value)
    raise TypedYamlError(ErrorCode.INVALID_VALUE, f"Unknown flag: {text}")


def parse_bitfield_entry(
    schema: BitfieldValue, value: int, key: str, text: str, case_sensitive: bool
) -> int:
    """Return ``value`` with the region named ``key`` set from ``text``."""
    bitdef = find_by_name(schema.bitdefs, key, case_sensitive=case_sensitive)
    if bitdef is None:
        raise TypedYamlError(ErrorCode.INVALID_VALUE, f"Unknown bit value: {key}")
    field_value = parse_integer(text)
    if field_value is None or field_value < 0:
        raise _invalid(text, "unsigned integer")
    return data.write_bitfield(
        value, schema.data_size, bitdef.offset, bitdef.bits, field_value
    )


def format_float(value: float, width: int) -> str:
    """Return the shortest text that reads back as the same float."""
    if math.isnan(value):
        return ".nan"
    if math.isinf(value):
        return ".inf" if value > 0 else "-.inf"
    if width == 8:
        return repr(float(value))
    stored = data.read_float(value, 4)
    for precision in range(1, 10):
        text = f"{stored:.{precision}g}"
        if data.read_float(float(text), 4) == stored:
            return text
    return repr(stored)


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def is_null(schema: SchemaValue, text: str, plain: bool) -> bool:
    """Return whether scalar text stands for a null pointer under ``schema``."""
    if not schema.allows_null or not plain:
        return False
    if text == "":
        return True
    return schema.allows_null_str and text in NULL_STRINGS
