"""Parser for the schema definition DSL."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import ply.yacc as yacc

from typed_yaml.parsing.schema_lexer import SchemaLexer
from typed_yaml.types import (
    SCALAR_TYPE_NAMES,
    UNLIMITED,
    BinaryValue,
    BitDef,
    BitfieldValue,
    EnumValue,
    Field,
    FlagsValue,
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

# Modifier names accepted after '@'
MODIFIERS: dict[str, ValueFlag] = {
    "strict": ValueFlag.STRICT,
    "flow": ValueFlag.FLOW,
    "block": ValueFlag.BLOCK,
    "case": ValueFlag.CASE_SENSITIVE,
    "nocase": ValueFlag.CASE_INSENSITIVE,
    "plain": ValueFlag.SCALAR_PLAIN,
    "folded": ValueFlag.SCALAR_FOLDED,
    "literal": ValueFlag.SCALAR_LITERAL,
    "single": ValueFlag.SCALAR_QUOTE_SINGLE,
    "double": ValueFlag.SCALAR_QUOTE_DOUBLE,
}

# Pointer suffixes: '*', '*?' and '*!'
POINTER_FLAGS: dict[str, ValueFlag] = {
    "*": ValueFlag.POINTER,
    "*?": ValueFlag.POINTER_NULL,
    "*!": ValueFlag.POINTER_NULL_STR,
}


@dataclass
class TypeRef:
    """Reference to a type, possibly wrapped in sequences."""

    name: str
    bounds: tuple[int, int] | None = None
    pointer: str | None = None
    element: TypeRef | None = None
    fixed_count: int | None = None


@dataclass
class FieldSpec:
    """Specification for a mapping field before resolution."""

    name: str
    type_ref: TypeRef
    optional: bool = False
    modifiers: list[str] = field(default_factory=list)
    default: Any = None
    has_default: bool = False


@dataclass
class MappingSpec:
    """Specification for a mapping before resolution."""

    name: str
    fields: list[FieldSpec]


@dataclass
class StrValSpec:
    name: str
    explicit_value: int | None = None


@dataclass
class EnumSpec:
    """Specification for an enum or flags table before resolution."""

    name: str
    values: list[StrValSpec]
    is_flags: bool = False
    size: int = 4


@dataclass
class BitfieldSpec:
    name: str
    bitdefs: list[BitDef]
    size: int = 4


@dataclass
class RootSpec:
    type_ref: TypeRef
    modifiers: list[str] = field(default_factory=list)


class SchemaRegistry:
    """Named schema values produced by the DSL, plus the selected root."""

    def __init__(self) -> None:
        self._schemas: dict[str, SchemaValue] = {}
        self.root: SchemaValue | None = None

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def register(self, name: str, schema: SchemaValue) -> None:
        if name in self._schemas or name in SCALAR_TYPE_NAMES or name in BUILTIN_NAMES:
            raise ValueError(f"Type '{name}' is already defined")
        self._schemas[name] = schema

    def get(self, name: str) -> SchemaValue | None:
        return self._schemas.get(name)

    def get_or_raise(self, name: str) -> SchemaValue:
        schema = self._schemas.get(name)
        if schema is None:
            raise KeyError(f"Type '{name}' not found")
        return schema

    def names(self) -> list[str]:
        return list(self._schemas)


# Type names handled directly by the resolver
BUILTIN_NAMES = ("string", "binary", "ignore")


class SchemaParser:
    """Parser for the schema definition DSL.

    ``classes`` maps mapping names to the record factories used for them;
    mappings without an entry load as ``dict``.
    """

    tokens = SchemaLexer.tokens

    def __init__(self, classes: dict[str, Callable[..., Any]] | None = None) -> None:
        self.lexer = SchemaLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self.classes = classes or {}
        self.registry = SchemaRegistry()
        self._specs: list[MappingSpec | EnumSpec | BitfieldSpec | RootSpec] = []
        self._errors: list[str] = []

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : statement_list"""
        p[0] = p[1]

    def p_statement_list_single(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement"""
        p[0] = [p[1]]

    def p_statement_list_multiple(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement_list statement"""
        p[0] = p[1] + [p[2]]

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : enum_def
                     | bitfield_def
                     | mapping_def
                     | root_def"""
        p[0] = p[1]

    def p_enum_def(self, p: yacc.YaccProduction) -> None:
        """enum_def : ENUM IDENTIFIER size_opt LBRACE strval_list RBRACE
                    | ENUM IDENTIFIER size_opt LBRACE strval_list COMMA RBRACE
                    | FLAGS IDENTIFIER size_opt LBRACE strval_list RBRACE
                    | FLAGS IDENTIFIER size_opt LBRACE strval_list COMMA RBRACE"""
        p[0] = EnumSpec(name=p[2], values=p[5], is_flags=p[1] == "flags", size=p[3])

    def p_size_opt_empty(self, p: yacc.YaccProduction) -> None:
        """size_opt :"""
        p[0] = 4

    def p_size_opt(self, p: yacc.YaccProduction) -> None:
        """size_opt : COLON INTEGER"""
        p[0] = p[2]

    def p_strval_list_single(self, p: yacc.YaccProduction) -> None:
        """strval_list : strval"""
        p[0] = [p[1]]

    def p_strval_list_multiple(self, p: yacc.YaccProduction) -> None:
        """strval_list : strval_list COMMA strval"""
        p[0] = p[1] + [p[3]]

    def p_strval_bare(self, p: yacc.YaccProduction) -> None:
        """strval : IDENTIFIER"""
        p[0] = StrValSpec(name=p[1])

    def p_strval_value(self, p: yacc.YaccProduction) -> None:
        """strval : IDENTIFIER EQUALS INTEGER"""
        p[0] = StrValSpec(name=p[1], explicit_value=p[3])

    def p_bitfield_def(self, p: yacc.YaccProduction) -> None:
        """bitfield_def : BITFIELD IDENTIFIER size_opt LBRACE bitdef_list RBRACE
                        | BITFIELD IDENTIFIER size_opt LBRACE bitdef_list COMMA RBRACE"""
        p[0] = BitfieldSpec(name=p[2], bitdefs=p[5], size=p[3])

    def p_bitdef_list_single(self, p: yacc.YaccProduction) -> None:
        """bitdef_list : bitdef"""
        p[0] = [p[1]]

    def p_bitdef_list_multiple(self, p: yacc.YaccProduction) -> None:
        """bitdef_list : bitdef_list COMMA bitdef"""
        p[0] = p[1] + [p[3]]

    def p_bitdef_range(self, p: yacc.YaccProduction) -> None:
        """bitdef : IDENTIFIER COLON INTEGER DOTDOT INTEGER"""
        low, high = p[3], p[5]
        if high < low:
            self._errors.append(f"Bit range {low}..{high} is reversed (line {p.lineno(1)})")
        p[0] = BitDef(name=p[1], offset=low, bits=high - low + 1)

    def p_bitdef_single(self, p: yacc.YaccProduction) -> None:
        """bitdef : IDENTIFIER COLON INTEGER"""
        p[0] = BitDef(name=p[1], offset=p[3], bits=1)

    def p_mapping_def(self, p: yacc.YaccProduction) -> None:
        """mapping_def : IDENTIFIER LBRACE field_list RBRACE
                       | IDENTIFIER LBRACE field_list COMMA RBRACE"""
        p[0] = MappingSpec(name=p[1], fields=p[3])

    def p_mapping_def_empty(self, p: yacc.YaccProduction) -> None:
        """mapping_def : IDENTIFIER LBRACE RBRACE"""
        p[0] = MappingSpec(name=p[1], fields=[])

    def p_field_list_single(self, p: yacc.YaccProduction) -> None:
        """field_list : field"""
        p[0] = [p[1]]

    def p_field_list_multiple(self, p: yacc.YaccProduction) -> None:
        """field_list : field_list field
                      | field_list COMMA field"""
        p[0] = p[1] + [p[len(p) - 1]]

    def p_field(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER COLON type_ref modifier_list
                 | IDENTIFIER QUESTION COLON type_ref modifier_list"""
        optional = len(p) == 6
        p[0] = FieldSpec(
            name=p[1], type_ref=p[len(p) - 2], optional=optional, modifiers=p[len(p) - 1]
        )

    def p_field_default(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER QUESTION COLON type_ref modifier_list EQUALS literal"""
        p[0] = FieldSpec(
            name=p[1],
            type_ref=p[4],
            optional=True,
            modifiers=p[5],
            default=p[7],
            has_default=True,
        )

    def p_literal(self, p: yacc.YaccProduction) -> None:
        """literal : INTEGER
                   | FLOAT
                   | STRING
                   | IDENTIFIER"""
        p[0] = p[1]

    def p_literal_list(self, p: yacc.YaccProduction) -> None:
        """literal : LBRACKET literal_list RBRACKET
                   | LBRACKET RBRACKET"""
        p[0] = p[2] if len(p) == 4 else []

    def p_literal_list_items(self, p: yacc.YaccProduction) -> None:
        """literal_list : literal
                        | literal_list COMMA literal"""
        p[0] = [p[1]] if len(p) == 2 else p[1] + [p[3]]

    def p_modifier_list_empty(self, p: yacc.YaccProduction) -> None:
        """modifier_list :"""
        p[0] = []

    def p_modifier_list(self, p: yacc.YaccProduction) -> None:
        """modifier_list : modifier_list AT IDENTIFIER"""
        if p[3] not in MODIFIERS:
            self._errors.append(f"Unknown modifier '@{p[3]}' (line {p.lineno(2)})")
        p[0] = p[1] + [p[3]]

    def p_type_ref_named(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER bounds_opt pointer_opt"""
        p[0] = TypeRef(name=p[1], bounds=p[2], pointer=p[3])

    def p_type_ref_sequence(self, p: yacc.YaccProduction) -> None:
        """type_ref : type_ref LBRACKET RBRACKET bounds_opt pointer_opt"""
        p[0] = TypeRef(name="[]", element=p[1], bounds=p[4], pointer=p[5])

    def p_type_ref_fixed(self, p: yacc.YaccProduction) -> None:
        """type_ref : type_ref LBRACKET INTEGER RBRACKET pointer_opt"""
        p[0] = TypeRef(name="[N]", element=p[1], fixed_count=p[3], pointer=p[5])

    def p_bounds_opt_empty(self, p: yacc.YaccProduction) -> None:
        """bounds_opt :"""
        p[0] = None

    def p_bounds_opt(self, p: yacc.YaccProduction) -> None:
        """bounds_opt : LPAREN INTEGER COMMA INTEGER RPAREN
                      | LPAREN INTEGER COMMA RPAREN"""
        p[0] = (p[2], p[4] if len(p) == 6 else UNLIMITED)

    def p_pointer_opt_empty(self, p: yacc.YaccProduction) -> None:
        """pointer_opt :"""
        p[0] = None

    def p_pointer_opt(self, p: yacc.YaccProduction) -> None:
        """pointer_opt : STAR
                       | STAR QUESTION
                       | STAR BANG"""
        p[0] = "".join(p[1:])

    def p_root_def(self, p: yacc.YaccProduction) -> None:
        """root_def : ROOT type_ref modifier_list"""
        p[0] = RootSpec(type_ref=p[2], modifiers=p[3])

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (line {p.lineno})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> SchemaRegistry:
        """Parse schema definitions and return a populated SchemaRegistry."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.registry = SchemaRegistry()
        self.lexer.lexer.lineno = 1
        self._errors = []

        specs = self.parser.parse(data, lexer=self.lexer.lexer)
        if self._errors:
            raise SyntaxError(self._errors[0])
        if specs is None:
            specs = []
        self._specs = specs

        self._resolve_specs()

        return self.registry

    def _resolve_specs(self) -> None:
        """Resolve specs into schema values.

        Named tables and mapping stubs are registered first, so fields may
        refer to mappings declared later, or to their own mapping.
        """
        for spec in self._specs:
            if isinstance(spec, EnumSpec):
                self.registry.register(spec.name, self._resolve_enum(spec))
            elif isinstance(spec, BitfieldSpec):
                self.registry.register(
                    spec.name, BitfieldValue(data_size=spec.size, bitdefs=spec.bitdefs)
                )
            elif isinstance(spec, MappingSpec):
                cls = self.classes.get(spec.name, dict)
                self.registry.register(spec.name, MappingValue(fields=[], cls=cls))

        for spec in self._specs:
            if isinstance(spec, MappingSpec):
                stub = self.registry.get_or_raise(spec.name)
                assert isinstance(stub, MappingValue)
                # Populate in place: references share the stub's field list
                stub.fields.extend(self._resolve_field(fspec) for fspec in spec.fields)
            elif isinstance(spec, RootSpec):
                if self.registry.root is not None:
                    raise ValueError("Root schema defined more than once")
                root = self._resolve_type_ref(spec.type_ref, spec.modifiers)
                root.flags |= ValueFlag.POINTER
                self.registry.root = root

    def _resolve_enum(self, spec: EnumSpec) -> EnumValue | FlagsValue:
        strings: list[StrVal] = []
        auto = 0
        for index, vspec in enumerate(spec.values):
            if vspec.explicit_value is not None:
                value = vspec.explicit_value
                auto = value + 1
            elif spec.is_flags:
                value = 1 << index
            else:
                value = auto
                auto += 1
            strings.append(StrVal(name=vspec.name, value=value))
        if spec.is_flags:
            return FlagsValue(data_size=spec.size, strings=strings)
        return EnumValue(data_size=spec.size, strings=strings)

    def _resolve_field(self, fspec: FieldSpec) -> Field:
        value = self._resolve_type_ref(fspec.type_ref, fspec.modifiers)
        if fspec.optional:
            value.flags |= ValueFlag.OPTIONAL
        if fspec.has_default:
            value.missing = self._resolve_default(value, fspec.default, fspec.name)
        return Field(key=fspec.name, value=value)

    def _resolve_type_ref(self, type_ref: TypeRef, modifiers: list[str]) -> SchemaValue:
        value = self._build(type_ref)
        for name in modifiers:
            value.flags |= MODIFIERS[name]
        return value

    def _build(self, type_ref: TypeRef) -> SchemaValue:
        """Create a fresh schema value for one use of a type."""
        flags = POINTER_FLAGS[type_ref.pointer] if type_ref.pointer else ValueFlag.DEFAULT

        if type_ref.element is not None:
            entry = self._build(type_ref.element)
            if type_ref.fixed_count is not None:
                n = type_ref.fixed_count
                return SequenceFixedValue(flags=flags, entry=entry, min=n, max=n)
            low, high = type_ref.bounds or (0, UNLIMITED)
            # Dynamic sequences always own their storage
            return SequenceValue(flags=flags | ValueFlag.POINTER, entry=entry, min=low, max=high)

        name = type_ref.name
        bounds = type_ref.bounds
        if name in SCALAR_TYPE_NAMES:
            cls, size = SCALAR_TYPE_NAMES[name]
            value = cls(flags=flags, data_size=size)
            if bounds is not None:
                if not isinstance(value, (IntValue, UIntValue)):
                    raise ValueError(f"Type '{name}' does not take bounds")
                value.min, value.max = bounds
            return value
        if name == "string":
            low, high = bounds or (0, UNLIMITED)
            size = 0
            if not flags & ValueFlag.POINTER and high != UNLIMITED:
                size = high + 1
            return StringValue(flags=flags, data_size=size, min=low, max=high)
        if name == "binary":
            low, high = bounds or (0, UNLIMITED)
            return BinaryValue(flags=flags, min=low, max=high)
        if name == "ignore":
            return IgnoreValue(flags=flags)

        named = self.registry.get_or_raise(name)
        if bounds is not None:
            raise ValueError(f"Type '{name}' does not take bounds")
        if isinstance(named, MappingValue):
            return MappingValue(flags=flags, fields=named.fields, cls=named.cls)
        if isinstance(named, EnumValue):
            return EnumValue(flags=flags, data_size=named.data_size, strings=named.strings)
        if isinstance(named, FlagsValue):
            return FlagsValue(flags=flags, data_size=named.data_size, strings=named.strings)
        if isinstance(named, BitfieldValue):
            return BitfieldValue(flags=flags, data_size=named.data_size, bitdefs=named.bitdefs)
        raise ValueError(f"Type '{name}' cannot be used here")

    def _resolve_default(self, value: SchemaValue, literal: Any, field_name: str) -> Any:
        """Convert a default literal to the value it stands for in ``value``."""
        t = value.type
        if t == ValueType.BOOL:
            if literal in ("true", "false"):
                return literal == "true"
        elif t in (ValueType.INT, ValueType.UINT):
            if isinstance(literal, int):
                return literal
        elif t == ValueType.FLOAT:
            if isinstance(literal, (int, float)):
                return float(literal)
        elif t == ValueType.STRING:
            if isinstance(literal, str):
                return literal
        elif t == ValueType.BINARY:
            if isinstance(literal, str):
                return literal.encode("utf-8")
        elif isinstance(value, EnumValue):
            if isinstance(literal, int):
                return literal
            for entry in value.strings:
                if entry.name == literal:
                    return entry.value
        elif isinstance(value, FlagsValue):
            if isinstance(literal, list):
                bits = 0
                for item in literal:
                    match = [e.value for e in value.strings if e.name == item]
                    if not match:
                        raise ValueError(f"Field '{field_name}': unknown flag '{item}'")
                    bits |= match[0]
                return bits
        elif isinstance(value, SequenceValue) and isinstance(literal, list):
            return list(literal)
        raise ValueError(f"Field '{field_name}': invalid default {literal!r}")
