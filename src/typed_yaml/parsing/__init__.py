"""Parsing module for the schema definition DSL."""

from typed_yaml.parsing.schema_lexer import SchemaLexer
from typed_yaml.parsing.schema_parser import SchemaParser, SchemaRegistry

__all__ = [
    "SchemaLexer",
    "SchemaParser",
    "SchemaRegistry",
]
