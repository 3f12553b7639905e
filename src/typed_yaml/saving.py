"""Save walker: turns a data tree into YAML events and text."""

from __future__ import annotations

from typing import Any

import yaml

from typed_yaml import binary, data, scalars
from typed_yaml.check import check_value
from typed_yaml.config import Config, ConfigFlag, LogLevel
from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.types import (
    BitfieldValue,
    EnumValue,
    FlagsValue,
    MappingValue,
    SchemaValue,
    SequenceFixedValue,
    SequenceValue,
    ValueFlag,
    ValueType,
)

# Scalar style flags from highest to lowest precedence
_SCALAR_STYLES = (
    (ValueFlag.SCALAR_QUOTE_DOUBLE, '"'),
    (ValueFlag.SCALAR_QUOTE_SINGLE, "'"),
    (ValueFlag.SCALAR_LITERAL, "|"),
    (ValueFlag.SCALAR_FOLDED, ">"),
    (ValueFlag.SCALAR_PLAIN, None),
)


def scalar_style(schema: SchemaValue) -> str | None:
    """Return the PyYAML scalar style requested by ``schema``'s flags."""
    for flag, style in _SCALAR_STYLES:
        if schema.flags & flag:
            return style
    return None


def collection_flow_style(config: Config, schema: SchemaValue) -> bool | None:
    """Return True for flow, False for block, None to let the emitter choose."""
    if schema.flags & ValueFlag.BLOCK:
        return False
    if schema.flags & ValueFlag.FLOW:
        return True
    if config.has(ConfigFlag.STYLE_BLOCK):
        return False
    if config.has(ConfigFlag.STYLE_FLOW):
        return True
    return None


class Saver:
    """Walks a value and collects the events that represent it."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.events: list[yaml.Event] = []

    def emit(self, event: yaml.Event) -> None:
        self.config.log(LogLevel.DEBUG, f"Save: Emit {type(event).__name__}")
        self.events.append(event)

    def scalar(self, text: str, style: str | None = None) -> None:
        self.emit(yaml.ScalarEvent(None, None, (True, True), text, style=style))

    def save_document(self, schema: SchemaValue, value: Any, seq_count: int | None) -> None:
        delim = self.config.has(ConfigFlag.DOCUMENT_DELIM)
        self.emit(yaml.StreamStartEvent())
        self.emit(yaml.DocumentStartEvent(explicit=delim))
        self.save_value(schema, value, count=seq_count)
        self.emit(yaml.DocumentEndEvent(explicit=delim))
        self.emit(yaml.StreamEndEvent())

    def save_value(
        self,
        schema: SchemaValue,
        value: Any,
        count: int | None = None,
        in_sequence: bool = False,
        in_mapping: bool = False,
    ) -> None:
        check_value(schema, in_sequence=in_sequence, in_mapping=in_mapping)
        if value is None:
            if not schema.allows_null:
                raise TypedYamlError(ErrorCode.INVALID_VALUE, "null value not permitted")
            self.scalar("null" if schema.allows_null_str else "")
            return

        t = schema.type
        if t.is_scalar:
            text = self.scalar_text(schema, value)
            style = scalar_style(schema)
            if style is None and scalars.is_null(schema, text, True):
                style = "'"
            self.scalar(text, style)
        elif isinstance(schema, FlagsValue):
            self.save_flags(schema, value)
        elif isinstance(schema, BitfieldValue):
            self.save_bitfield(schema, value)
        elif isinstance(schema, MappingValue):
            self.save_mapping(schema, value)
        elif isinstance(schema, (SequenceValue, SequenceFixedValue)):
            self.save_sequence(schema, value, count)
        else:
            raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, t.value)

    def scalar_text(self, schema: SchemaValue, value: Any) -> str:
        t = schema.type
        if t == ValueType.INT:
            return str(data.write_int(schema.data_size, value))
        if t == ValueType.UINT:
            return str(data.write_uint(schema.data_size, value))
        if t == ValueType.BOOL:
            return scalars.format_bool(value)
        if t == ValueType.FLOAT:
            return scalars.format_float(value, schema.data_size)
        if t == ValueType.STRING:
            return value
        if t == ValueType.BINARY:
            return binary.encode(value)
        if isinstance(schema, EnumValue):
            for entry in schema.strings:
                if entry.value == value:
                    return entry.name
            if schema.is_strict:
                raise TypedYamlError(
                    ErrorCode.INVALID_VALUE, f"{value} is not a valid enumeration value"
                )
            return str(data.write_int(schema.data_size, value))
        raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, t.value)

    def save_flags(self, schema: FlagsValue, value: int) -> None:
        remaining = data.read_uint(value, schema.data_size)
        self.emit(
            yaml.SequenceStartEvent(
                None, None, True, flow_style=collection_flow_style(self.config, schema)
            )
        )
        for entry in schema.strings:
            if entry.value and remaining & entry.value == entry.value:
                self.scalar(entry.name)
                remaining &= ~entry.value
        if remaining:
            if schema.is_strict:
                raise TypedYamlError(ErrorCode.INVALID_VALUE, f"unnamed flag bits {remaining:#x}")
            self.scalar(str(remaining))
        self.emit(yaml.SequenceEndEvent())

    def save_bitfield(self, schema: BitfieldValue, value: int) -> None:
        self.emit(
            yaml.MappingStartEvent(
                None, None, True, flow_style=collection_flow_style(self.config, schema)
            )
        )
        for bitdef in schema.bitdefs:
            region = data.read_bitfield(value, schema.data_size, bitdef.offset, bitdef.bits)
            if region:
                self.scalar(bitdef.name)
                self.scalar(str(region))
        self.emit(yaml.MappingEndEvent())

    def save_mapping(self, schema: MappingValue, record: Any) -> None:
        self.emit(
            yaml.MappingStartEvent(
                None, None, True, flow_style=collection_flow_style(self.config, schema)
            )
        )
        for f in schema.fields:
            if f.value.type == ValueType.IGNORE:
                continue
            try:
                if not data.has_member(record, f.attr):  # type: ignore[arg-type]
                    raise TypedYamlError(ErrorCode.INVALID_VALUE, f"record has no member {f.attr}")
                value = data.get_member(record, f.attr)  # type: ignore[arg-type]
                count = data.member_count(record, f.count_attr, f.count_size)
                if f.value.type == ValueType.BINARY and value is not None:
                    value = value[: data.entry_count(value, count)]
                self.scalar(f.key)
                self.save_value(f.value, value, count=count, in_mapping=True)
            except TypedYamlError as e:
                e.backtrace.append(f"in mapping field: {f.key}")
                raise
        self.emit(yaml.MappingEndEvent())

    def save_sequence(
        self,
        schema: SequenceValue | SequenceFixedValue,
        entries: list,
        count: int | None,
    ) -> None:
        if schema.type == ValueType.SEQUENCE_FIXED:
            count = schema.max
            if len(entries) < count:
                raise TypedYamlError(
                    ErrorCode.INVALID_VALUE, f"{len(entries)} entries in fixed sequence of {count}"
                )
        else:
            count = data.entry_count(entries, count)
        self.emit(
            yaml.SequenceStartEvent(
                None, None, True, flow_style=collection_flow_style(self.config, schema)
            )
        )
        for index in range(count):
            try:
                self.save_value(schema.entry, entries[index], in_sequence=True)  # type: ignore[arg-type]
            except TypedYamlError as e:
                e.backtrace.append(f"in sequence entry: {index}")
                raise
        self.emit(yaml.SequenceEndEvent())

    def render(self) -> str:
        """Run the collected events through the PyYAML emitter."""
        try:
            return yaml.emit(self.events, Dumper=yaml.SafeDumper, allow_unicode=True)
        except yaml.YAMLError as e:
            raise TypedYamlError(ErrorCode.EMITTER, str(e)) from e
