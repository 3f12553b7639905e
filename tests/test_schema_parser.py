"""Tests for the schema DSL lexer and parser."""

from dataclasses import dataclass

import pytest

from typed_yaml import (
    UNLIMITED,
    BitfieldValue,
    Config,
    EnumValue,
    FlagsValue,
    IgnoreValue,
    IntValue,
    MappingValue,
    SequenceFixedValue,
    SequenceValue,
    StringValue,
    ValueFlag,
    ValueType,
    load_bytes,
    save_bytes,
)
from typed_yaml.parsing import SchemaLexer, SchemaParser

SHAPES = """
# Shapes with colours
enum Colour { red = 1, green = 2, blue }
flags Perms { read, write, exec }
bitfield Reg : 2 { mode: 0..2, level: 3..5, busy: 7 }
Point { x: int32, y: int32 }
Shape {
    name: string(1, 32)*
    colour: Colour @strict
    points: Point[](0, 16) @flow
    tag?: string(0, 15) = "none"
    perms?: Perms = [read, write]
    reg: Reg
}
root Shape
"""


class TestSchemaLexer:
    """Tests for the schema lexer."""

    def test_tokenize_field(self):
        """Test tokenizing a field with bounds and pointer."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("name?: string(1, 32)*? @strict")
        token_types = [t.type for t in tokens]

        assert token_types == [
            "IDENTIFIER",
            "QUESTION",
            "COLON",
            "IDENTIFIER",
            "LPAREN",
            "INTEGER",
            "COMMA",
            "INTEGER",
            "RPAREN",
            "STAR",
            "QUESTION",
            "AT",
            "IDENTIFIER",
        ]

    def test_tokenize_values(self):
        """Test number, range and string tokens."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize('0x10 -3 2.5 0..7 "a \\"b\\""')

        assert [(t.type, t.value) for t in tokens] == [
            ("INTEGER", 16),
            ("INTEGER", -3),
            ("FLOAT", 2.5),
            ("INTEGER", 0),
            ("DOTDOT", ".."),
            ("INTEGER", 7),
            ("STRING", 'a "b"'),
        ]

    def test_keywords_and_comments(self):
        """Test reserved words and ignored comments."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("enum flags bitfield root # not a token\n")

        assert [t.type for t in tokens] == ["ENUM", "FLAGS", "BITFIELD", "ROOT"]

    def test_illegal_character(self):
        """Test error on illegal character."""
        lexer = SchemaLexer()
        lexer.build()

        with pytest.raises(SyntaxError):
            lexer.tokenize("Point { x: int32 $ }")


class TestSchemaParser:
    """Tests for the schema parser."""

    def test_tables(self):
        """Test enum, flags and bitfield declarations."""
        registry = SchemaParser().parse(SHAPES)

        colour = registry.get("Colour")
        assert isinstance(colour, EnumValue)
        assert [(s.name, s.value) for s in colour.strings] == [
            ("red", 1),
            ("green", 2),
            ("blue", 3),
        ]
        perms = registry.get("Perms")
        assert isinstance(perms, FlagsValue)
        assert [s.value for s in perms.strings] == [1, 2, 4]
        reg = registry.get("Reg")
        assert isinstance(reg, BitfieldValue)
        assert reg.data_size == 2
        assert [(b.name, b.offset, b.bits) for b in reg.bitdefs] == [
            ("mode", 0, 3),
            ("level", 3, 3),
            ("busy", 7, 1),
        ]

    def test_mapping_fields(self):
        """Test field types, modifiers and defaults."""
        registry = SchemaParser().parse(SHAPES)
        root = registry.root

        assert isinstance(root, MappingValue)
        assert root.is_pointer
        fields = {f.key: f.value for f in root.fields}

        name = fields["name"]
        assert isinstance(name, StringValue)
        assert name.is_pointer
        assert (name.min, name.max, name.data_size) == (1, 32, 0)

        assert fields["colour"].is_strict
        assert fields["colour"].type == ValueType.ENUM

        points = fields["points"]
        assert isinstance(points, SequenceValue)
        assert points.is_pointer
        assert points.flags & ValueFlag.FLOW
        assert (points.min, points.max) == (0, 16)
        assert points.entry.fields is registry.get("Point").fields

        tag = fields["tag"]
        assert tag.is_optional
        assert tag.missing == "none"
        assert tag.data_size == 16
        assert fields["perms"].missing == 3

    def test_round_trip_through_dsl_schema(self):
        """Test loading and saving with a parsed schema."""
        schema = SchemaParser().parse(SHAPES).root
        text = (
            "name: square\n"
            "colour: green\n"
            "points: [{x: 0, y: 0}, {x: 1, y: 1}]\n"
            "reg: {mode: 3, busy: 1}\n"
        )

        value, _ = load_bytes(text, Config(), schema)

        assert value["name"] == "square"
        assert value["colour"] == 2
        assert value["points"] == [{"x": 0, "y": 0}, {"x": 1, "y": 1}]
        assert value["tag"] == "none"
        assert value["perms"] == 3
        assert value["reg"] == 3 | (1 << 7)
        assert load_bytes(save_bytes(Config(), schema, value), Config(), schema)[0] == value

    def test_sequence_forms(self):
        """Test fixed sequences, unbounded maxima and pointer suffixes."""
        registry = SchemaParser().parse(
            """
            Grid {
                cells: uint8[3][]
                words: string*[](1,)
                maybe: string*?
                nullable: int32*!
                skip: ignore
                level: int8(-5, 5)
            }
            root Grid
            """
        )
        fields = {f.key: f.value for f in registry.root.fields}

        cells = fields["cells"]
        assert isinstance(cells, SequenceValue)
        assert isinstance(cells.entry, SequenceFixedValue)
        assert (cells.entry.min, cells.entry.max) == (3, 3)
        assert cells.entry.entry.data_size == 1

        words = fields["words"]
        assert (words.min, words.max) == (1, UNLIMITED)
        assert words.entry.is_pointer

        assert fields["maybe"].allows_null
        assert not fields["maybe"].allows_null_str
        assert fields["nullable"].allows_null_str
        assert isinstance(fields["skip"], IgnoreValue)
        level = fields["level"]
        assert isinstance(level, IntValue)
        assert (level.min, level.max) == (-5, 5)

    def test_self_reference(self):
        """Test a mapping that refers to itself."""
        registry = SchemaParser().parse(
            """
            Node { value: int32, next?: Node*? }
            root Node
            """
        )
        node = registry.root
        next_field = node.fields[1].value

        assert next_field.fields is node.fields
        value, _ = load_bytes(
            "value: 1\nnext: {value: 2, next: {value: 3}}\n", Config(), node
        )
        assert value["next"]["next"] == {"value": 3, "next": None}

    def test_record_classes(self):
        """Test that classes supply mapping record factories."""

        @dataclass
        class Point:
            x: int = 0
            y: int = 0

        registry = SchemaParser(classes={"Point": Point}).parse(
            "Point { x: int32, y: int32 }\nroot Point\n"
        )

        assert load_bytes("x: 3\ny: 4\n", Config(), registry.root)[0] == Point(3, 4)

    def test_enum_default_by_name(self):
        """Test an enum default given by name."""
        registry = SchemaParser().parse(
            """
            enum Colour { red, green }
            Pen { colour?: Colour = green, width?: float = 1.5, on?: bool = true }
            root Pen
            """
        )
        fields = {f.key: f.value for f in registry.root.fields}

        assert fields["colour"].missing == 1
        assert fields["width"].missing == 1.5
        assert fields["on"].missing is True

    def test_syntax_error(self):
        """Test error on malformed input."""
        with pytest.raises(SyntaxError):
            SchemaParser().parse("Point { x int32 }")

    def test_unknown_modifier(self):
        """Test error on an unknown modifier."""
        with pytest.raises(SyntaxError):
            SchemaParser().parse("Point { x: int32 @bogus }")

    def test_unknown_modifier_keeps_other_statements(self):
        """Test that a bad modifier is reported instead of dropping statements."""
        with pytest.raises(SyntaxError, match="@bogus"):
            SchemaParser().parse(
                "Point { x: int32 }\nOther { y: int32 @bogus }\nroot Point"
            )

    def test_reversed_bit_range(self):
        """Test error on a bit range whose high end is below its low end."""
        with pytest.raises(SyntaxError, match="5..2"):
            SchemaParser().parse("bitfield B { a: 5..2 }\nP { x: int32 }\nroot P")

    def test_parser_reusable_after_error(self):
        """Test that a failed parse does not affect the next one."""
        parser = SchemaParser()
        with pytest.raises(SyntaxError):
            parser.parse("Point { x: int32 @bogus }")

        registry = parser.parse("Point { x: int32 @strict }\nroot Point")

        assert registry.names() == ["Point"]

    def test_unknown_type(self):
        """Test error on an undeclared type."""
        with pytest.raises(KeyError):
            SchemaParser().parse("Point { x: Missing }")

    def test_duplicate_type(self):
        """Test error on a redeclared type."""
        with pytest.raises(ValueError):
            SchemaParser().parse("Point { x: int32 }\nPoint { y: int32 }")

    def test_invalid_default(self):
        """Test error on a default of the wrong kind."""
        with pytest.raises(ValueError):
            SchemaParser().parse('Point { x?: int32 = "one" }')

    def test_no_root(self):
        """Test that the root is optional."""
        registry = SchemaParser().parse("Point { x: int32 }")

        assert registry.root is None
        assert registry.names() == ["Point"]
        assert "Point" in registry
