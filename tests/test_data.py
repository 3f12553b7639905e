"""Tests for width-checked value access."""

import math

import pytest

from typed_yaml import ErrorCode, TypedYamlError
from typed_yaml import data


class TestIntegers:
    """Tests for integer widths."""

    def test_limits(self):
        """Test signed and unsigned limits per width."""
        assert data.int_limits(1) == (-128, 127)
        assert data.int_limits(8) == (-(2**63), 2**63 - 1)
        assert data.uint_max(2) == 0xFFFF

    def test_bad_width(self):
        """Test that only 1, 2, 4 and 8 byte integers exist."""
        with pytest.raises(TypedYamlError) as exc:
            data.check_width(3)

        assert exc.value.code == ErrorCode.INVALID_DATA_SIZE

    def test_read_sign_extends(self):
        """Test reading stored bits as signed."""
        assert data.read_int(0xFF, 1) == -1
        assert data.read_int(0x7F, 1) == 127
        assert data.read_int(0x8000, 2) == -32768
        assert data.read_uint(-1, 4) == 0xFFFFFFFF

    def test_write_checks_range(self):
        """Test that writes reject values that do not fit."""
        assert data.write_int(1, -128) == -128
        with pytest.raises(TypedYamlError):
            data.write_int(1, 128)
        with pytest.raises(TypedYamlError):
            data.write_uint(1, 256)
        with pytest.raises(TypedYamlError):
            data.write_uint(4, -1)


class TestFloats:
    """Tests for float widths."""

    def test_single_precision_rounding(self):
        """Test that 4 byte floats are rounded to single precision."""
        stored = data.write_float(4, 3.14)

        assert stored != 3.14
        assert stored == pytest.approx(3.14, rel=1e-6)
        assert data.write_float(8, 3.14) == 3.14

    def test_overflow(self):
        """Test saturation and strict rejection on overflow."""
        assert data.write_float(4, 1e39) == math.inf
        assert data.write_float(4, -1e39) == -math.inf
        with pytest.raises(TypedYamlError):
            data.write_float(4, 1e39, strict=True)

    def test_underflow(self):
        """Test flush to zero and strict rejection on underflow."""
        assert data.write_float(4, 1e-50) == 0.0
        with pytest.raises(TypedYamlError):
            data.write_float(4, 1e-50, strict=True)

    def test_bad_width(self):
        """Test that only 4 and 8 byte floats exist."""
        with pytest.raises(TypedYamlError) as exc:
            data.write_float(2, 1.0)

        assert exc.value.code == ErrorCode.INVALID_DATA_SIZE


class TestBitfields:
    """Tests for bit region access."""

    def test_genmask(self):
        """Test inclusive bit masks."""
        assert data.genmask(7, 4) == 0xF0
        assert data.genmask(0, 0) == 1

    def test_read_region(self):
        """Test extracting a region."""
        assert data.read_bitfield(0b101000, 1, 3, 3) == 5

    def test_write_region(self):
        """Test replacing a region and keeping other bits."""
        assert data.write_bitfield(0xFF, 1, 2, 3, 0) == 0b11100011

    def test_write_region_too_wide(self):
        """Test that a value wider than its region is rejected."""
        with pytest.raises(TypedYamlError) as exc:
            data.write_bitfield(0, 2, 3, 3, 8)

        assert exc.value.code == ErrorCode.INVALID_VALUE


class TestMembers:
    """Tests for record member access."""

    def test_dict_and_object(self):
        """Test that dicts use items and other records use attributes."""

        class Record:
            a = 1

        record = Record()
        data.set_member(record, "b", 2)
        mapping = {}
        data.set_member(mapping, "b", 2)

        assert data.get_member(record, "b") == 2
        assert data.get_member(mapping, "b") == 2
        assert data.has_member(record, "a")
        assert not data.has_member(mapping, "a")

    def test_entry_count(self):
        """Test counts against list lengths."""
        assert data.entry_count([1, 2, 3], None) == 3
        assert data.entry_count([1, 2, 3], 2) == 2
        assert data.entry_count(None, None) == 0
        with pytest.raises(TypedYamlError):
            data.entry_count([1], 2)

    def test_member_count(self):
        """Test reading a companion count member."""
        assert data.member_count({"n": 4}, "n", 4) == 4
        assert data.member_count({}, "n", 4) is None
        assert data.member_count({"n": 4}, None, 4) is None
