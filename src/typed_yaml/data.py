"""Width-checked access to the integer, float and bitfield values of a tree."""

from __future__ import annotations

import math
import struct
from typing import Any

from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.types import FLOAT_WIDTHS, INTEGER_WIDTHS

# Largest finite and smallest positive subnormal single precision values
FLOAT32_MAX = 3.4028234663852886e38
FLOAT32_MIN_SUBNORMAL = 1.401298464324817e-45


def check_width(width: int) -> None:
    """Raise INVALID_DATA_SIZE unless ``width`` is an integer width."""
    if width not in INTEGER_WIDTHS:
        raise TypedYamlError(ErrorCode.INVALID_DATA_SIZE, f"{width} bytes")


def check_float_width(width: int) -> None:
    if width not in FLOAT_WIDTHS:
        raise TypedYamlError(ErrorCode.INVALID_DATA_SIZE, f"{width} byte float")


def int_limits(width: int) -> tuple[int, int]:
    """Return the (min, max) two's complement range of a signed width."""
    check_width(width)
    top = 1 << (width * 8 - 1)
    return -top, top - 1


def uint_max(width: int) -> int:
    check_width(width)
    return (1 << (width * 8)) - 1


def genmask(high: int, low: int) -> int:
    return ((1 << (high + 1)) - 1) & ~((1 << low) - 1)


def read_uint(value: int, width: int) -> int:
    """Read a stored integer as unsigned at the given width."""
    return value & uint_max(width)


def read_int(value: int, width: int) -> int:
    """Read a stored integer as signed at the given width, sign-extending."""
    raw = read_uint(value, width)
    sign = 1 << (width * 8 - 1)
    return (raw ^ sign) - sign


def write_int(width: int, value: int) -> int:
    """Return ``value`` checked for storage in a signed field of ``width``."""
    low, high = int_limits(width)
    if not low <= value <= high:
        raise TypedYamlError(
            ErrorCode.INVALID_VALUE, f"{value} does not fit in {width} byte signed"
        )
    return value


def write_uint(width: int, value: int) -> int:
    """Return ``value`` checked for storage in an unsigned field of ``width``."""
    if not 0 <= value <= uint_max(width):
        raise TypedYamlError(
            ErrorCode.INVALID_VALUE, f"{value} does not fit in {width} byte unsigned"
        )
    return value


def read_float(value: float, width: int) -> float:
    check_float_width(width)
    if width == 4:
        return write_float(4, value)
    return float(value)


def write_float(width: int, value: float, strict: bool = False) -> float:
    """Return ``value`` rounded to the precision of a float field of ``width``.

    A finite value that overflows the width, or a non-zero value that
    underflows to zero, is rejected when ``strict``; otherwise it saturates
    to infinity or flushes to zero.
    """
    check_float_width(width)
    if width == 8 or math.isnan(value) or math.isinf(value):
        return float(value)

    if abs(value) > FLOAT32_MAX:
        if strict:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, f"{value} overflows float")
        return math.copysign(math.inf, value)
    if value != 0.0 and abs(value) < FLOAT32_MIN_SUBNORMAL / 2:
        if strict:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, f"{value} underflows float")
        return math.copysign(0.0, value)
    try:
        return struct.unpack("=f", struct.pack("=f", value))[0]
    except OverflowError:
        # Rounds up past the largest finite single
        if strict:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, f"{value} overflows float")
        return math.copysign(math.inf, value)


def read_bitfield(value: int, width: int, offset: int, bits: int) -> int:
    """Extract ``bits`` bits starting at bit ``offset`` of an unsigned value."""
    raw = read_uint(value, width)
    mask = genmask(offset + bits - 1, offset)
    return (raw & mask) >> offset


def write_bitfield(value: int, width: int, offset: int, bits: int, field_value: int) -> int:
    """Insert ``field_value`` into the bit range, returning the new value."""
    if field_value >> bits:
        raise TypedYamlError(
            ErrorCode.INVALID_VALUE, f"{field_value} does not fit in {bits} bits"
        )
    raw = read_uint(value, width)
    mask = genmask(offset + bits - 1, offset)
    return (raw & ~mask) | ((field_value << offset) & mask)


def get_member(record: Any, name: str) -> Any:
    """Read a member of a record (item access for mappings)."""
    if isinstance(record, dict):
        return record[name]
    return getattr(record, name)


def set_member(record: Any, name: str, value: Any) -> None:
    if isinstance(record, dict):
        record[name] = value
    else:
        setattr(record, name, value)


def has_member(record: Any, name: str) -> bool:
    if isinstance(record, dict):
        return name in record
    return hasattr(record, name)


def entry_count(value: Any, count: int | None) -> int:
    """Return how many entries of ``value`` are in use.

    ``count`` is the companion count member (or caller-supplied top-level
    count); when absent every entry of ``value`` is in use.
    """
    length = 0 if value is None else len(value)
    if count is None:
        return length
    if count < 0 or count > length:
        raise TypedYamlError(
            ErrorCode.INVALID_VALUE, f"count {count} exceeds {length} entries"
        )
    return count


def member_count(record: Any, count_attr: str | None, count_size: int) -> int | None:
    """Read the companion count member of a record, if it has one."""
    if count_attr is None or not has_member(record, count_attr):
        return None
    return read_uint(get_member(record, count_attr), count_size)
