"""Load engine: binds a YAML event stream to a schema.

The engine is a stack of frames driven one parser event at a time. Each
frame represents a value under construction (the document stream, a
mapping, a sequence, a flags or bitfield value, or an ignored subtree).
Scalars are read directly by the frame that is awaiting a value. When a
frame completes it pops itself and hands its value to the frame beneath.
"""

from __future__ import annotations

from typing import Any, Iterator

import yaml

from typed_yaml import data, scalars
from typed_yaml.anchors import AnchorTable, EventSource
from typed_yaml.check import check_value
from typed_yaml.config import Config, ConfigFlag, LogLevel
from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.mem import AllocationScope
from typed_yaml.text import names_equal
from typed_yaml.types import (
    POINTER_SIZE,
    BinaryValue,
    BitfieldValue,
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
    UIntValue,
    ValueFlag,
    ValueType,
    new_record,
)

# Deepest frame stack accepted before the document is rejected
MAX_DEPTH = 256

_IGNORE = IgnoreValue()


def event_name(event: yaml.Event) -> str:
    return type(event).__name__.replace("Event", "")


def format_mark(mark: Any) -> str:
    if mark is None:
        return ""
    return f" (line {mark.line + 1}, column {mark.column + 1})"


def case_sensitive(config: Config, schema: SchemaValue) -> bool:
    """Return the effective case sensitivity for names under ``schema``."""
    if schema.flags & ValueFlag.CASE_INSENSITIVE:
        return False
    if schema.flags & ValueFlag.CASE_SENSITIVE:
        return True
    return not config.has(ConfigFlag.CASE_INSENSITIVE)


def entry_size(schema: SchemaValue) -> int:
    """Return the bytes one sequence entry of ``schema`` occupies."""
    if schema.is_pointer:
        return POINTER_SIZE
    return schema.data_size


class Frame:
    """Base class for load stack frames."""

    name = "frame"

    def __init__(self, schema: SchemaValue | None, mark: Any = None) -> None:
        self.schema = schema
        self.mark = mark

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        raise NotImplementedError

    def child_done(self, ctx: LoadContext, value: Any) -> None:
        raise TypedYamlError(ErrorCode.INTERNAL_ERROR, f"{self.name} has no children")

    def backtrace_entry(self) -> str | None:
        return None


class StreamFrame(Frame):
    """Bottom of the stack: stream and document events around the root value."""

    name = "STREAM"

    def __init__(self, schema: SchemaValue) -> None:
        super().__init__(schema)
        self.doc_count = 0
        self.awaiting_value = False

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        if self.awaiting_value:
            self.awaiting_value = False
            ctx.begin_value(self.schema, event)  # type: ignore[arg-type]
        elif isinstance(event, yaml.StreamStartEvent):
            pass
        elif isinstance(event, yaml.DocumentStartEvent):
            if self.doc_count > 0:
                raise TypedYamlError(
                    ErrorCode.UNEXPECTED_EVENT, "only one document is supported"
                )
            self.doc_count += 1
            self.awaiting_value = True
        elif isinstance(event, yaml.DocumentEndEvent):
            ctx.anchors.reset()
        elif isinstance(event, yaml.StreamEndEvent):
            ctx.pop(self)
        else:
            raise TypedYamlError(ErrorCode.UNEXPECTED_EVENT, event_name(event))

    def child_done(self, ctx: LoadContext, value: Any) -> None:
        ctx.result = value
        schema = self.schema
        if schema is not None and schema.type.is_sequence:
            ctx.seq_count = 0 if value is None else len(value)


class MappingFrame(Frame):
    """Mapping of keys to the fields of a record."""

    name = "MAPPING"

    def __init__(self, schema: MappingValue, record: Any, mark: Any, config: Config) -> None:
        super().__init__(schema, mark)
        self.record = record
        self.case_sensitive = case_sensitive(config, schema)
        self.seen: set[int] = set()
        self.awaiting_value = False
        self.field: Field | None = None
        self.key: str | None = None
        self.key_mark: Any = None

    def _find(self, key: str) -> tuple[int, Field | None]:
        assert isinstance(self.schema, MappingValue)
        for index, f in enumerate(self.schema.fields):
            if names_equal(f.key, key, self.case_sensitive):
                return index, f
        return -1, None

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        if self.awaiting_value:
            self.awaiting_value = False
            schema = self.field.value if self.field is not None else _IGNORE
            ctx.begin_value(schema, event, in_mapping=True)
            return

        if isinstance(event, yaml.MappingEndEvent):
            ctx.finish_mapping(self)
            return
        if not isinstance(event, yaml.ScalarEvent):
            raise TypedYamlError(
                ErrorCode.UNEXPECTED_EVENT, f"mapping key must be scalar, got {event_name(event)}"
            )

        self.key = event.value
        self.key_mark = event.start_mark
        index, f = self._find(event.value)
        if f is None:
            if not ctx.config.has(ConfigFlag.IGNORE_UNKNOWN_KEYS):
                raise TypedYamlError(ErrorCode.INVALID_KEY, f"Unexpected key: {event.value}")
            if ctx.config.has(ConfigFlag.IGNORED_KEY_WARNING):
                ctx.config.log(LogLevel.WARNING, f"Load: Ignoring key: {event.value}")
        elif index in self.seen:
            raise TypedYamlError(
                ErrorCode.UNEXPECTED_EVENT, f"Mapping key already encountered: {event.value}"
            )
        else:
            self.seen.add(index)
        self.field = f
        self.awaiting_value = True

    def child_done(self, ctx: LoadContext, value: Any) -> None:
        f = self.field
        self.field = None
        self.key = None
        if f is None or f.value.type == ValueType.IGNORE:
            return
        data.set_member(self.record, f.attr, value)  # type: ignore[arg-type]
        if f.count_attr is not None:
            count = 0 if value is None else len(value)
            data.set_member(self.record, f.count_attr, data.write_uint(f.count_size, count))

    def backtrace_entry(self) -> str | None:
        if self.key is None:
            return None
        return f"in mapping field: {self.key}{format_mark(self.key_mark)}"


class SequenceFrame(Frame):
    """Dynamic or fixed length sequence of entries."""

    name = "SEQUENCE"

    def __init__(self, schema: SequenceValue | SequenceFixedValue, entries: list, mark: Any) -> None:
        super().__init__(schema, mark)
        self.entries = entries
        self.entry_mark: Any = None
        self.in_entry = False

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        schema = self.schema
        assert isinstance(schema, (SequenceValue, SequenceFixedValue))
        if isinstance(event, yaml.SequenceEndEvent):
            ctx.finish_sequence(self)
            return

        count = len(self.entries)
        if count + 1 > schema.max:
            ctx.config.log(
                LogLevel.ERROR, f"Load: Excessive entries ({schema.max} max) in sequence."
            )
            raise TypedYamlError(ErrorCode.SEQUENCE_ENTRIES_MAX)
        if schema.is_pointer and schema.type == ValueType.SEQUENCE:
            self.entries = ctx.scope.realloc(
                self.entries, entry_size(schema.entry) * (count + 1)  # type: ignore[arg-type]
            )
        ctx.config.log(LogLevel.DEBUG, f"Load: Sequence entry: {count}")
        self.entry_mark = event.start_mark
        self.in_entry = True
        ctx.begin_value(schema.entry, event, in_sequence=True)  # type: ignore[arg-type]

    def child_done(self, ctx: LoadContext, value: Any) -> None:
        self.in_entry = False
        self.entries.append(value)

    def backtrace_entry(self) -> str | None:
        if not self.in_entry:
            return None
        return f"in sequence entry: {len(self.entries)}{format_mark(self.entry_mark)}"


class FlagsFrame(Frame):
    """Sequence of flag names OR-ed into one integer."""

    name = "FLAGS"

    def __init__(self, schema: FlagsValue, mark: Any, config: Config) -> None:
        super().__init__(schema, mark)
        self.value = 0
        self.case_sensitive = case_sensitive(config, schema)

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        assert isinstance(self.schema, FlagsValue)
        if isinstance(event, yaml.SequenceEndEvent):
            ctx.config.log(LogLevel.DEBUG, f"Load:   <Flags: {self.value:#x}>")
            ctx.finish_value(self, self.value)
        elif isinstance(event, yaml.ScalarEvent):
            self.value |= scalars.parse_flag(self.schema, event.value, self.case_sensitive)
        else:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, f"unexpected {event_name(event)} in flags")


class BitfieldFrame(Frame):
    """Mapping of bit region names to region values."""

    name = "BITFIELD"

    def __init__(self, schema: BitfieldValue, mark: Any, config: Config) -> None:
        super().__init__(schema, mark)
        self.value = 0
        self.case_sensitive = case_sensitive(config, schema)
        self.key: str | None = None
        self.seen: set[str] = set()

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        assert isinstance(self.schema, BitfieldValue)
        if self.key is None and isinstance(event, yaml.MappingEndEvent):
            ctx.finish_value(self, self.value)
            return
        if not isinstance(event, yaml.ScalarEvent):
            raise TypedYamlError(
                ErrorCode.INVALID_VALUE, f"unexpected {event_name(event)} in bitfield"
            )
        if self.key is None:
            folded = event.value if self.case_sensitive else event.value.casefold()
            if folded in self.seen:
                raise TypedYamlError(
                    ErrorCode.UNEXPECTED_EVENT, f"Bitfield key already encountered: {event.value}"
                )
            self.seen.add(folded)
            self.key = event.value
        else:
            key, self.key = self.key, None
            self.value = scalars.parse_bitfield_entry(
                self.schema, self.value, key, event.value, self.case_sensitive
            )


class IgnoreFrame(Frame):
    """Consumes one complete mapping or sequence."""

    name = "IGNORE"

    def __init__(self, mark: Any) -> None:
        super().__init__(None, mark)
        self.depth = 1

    def handle(self, ctx: LoadContext, event: yaml.Event) -> None:
        if isinstance(event, yaml.CollectionStartEvent):
            self.depth += 1
        elif isinstance(event, yaml.CollectionEndEvent):
            self.depth -= 1
            if self.depth == 0:
                ctx.finish_value(self, None)


class LoadContext:
    """State of one load operation."""

    def __init__(self, config: Config, schema: SchemaValue, events: Iterator[yaml.Event]) -> None:
        self.config = config
        self.schema = schema
        self.scope = AllocationScope(config, "Load")
        self.anchors = AnchorTable()
        self.source = EventSource(events, self.anchors, config.has(ConfigFlag.NO_ALIAS))
        self._events = events
        self.stack: list[Frame] = []
        self.result: Any = None
        self.seq_count: int | None = None

    def push(self, frame: Frame) -> None:
        if len(self.stack) >= MAX_DEPTH:
            raise TypedYamlError(ErrorCode.UNEXPECTED_EVENT, "maximum nesting depth exceeded")
        self.config.log(LogLevel.DEBUG, f"Load: PUSH[{len(self.stack)}]: {frame.name}")
        self.stack.append(frame)

    def pop(self, frame: Frame) -> None:
        if not self.stack or self.stack[-1] is not frame:
            raise TypedYamlError(ErrorCode.INTERNAL_ERROR, f"pop of {frame.name}")
        self.stack.pop()
        self.config.log(LogLevel.DEBUG, f"Load: POP[{len(self.stack)}]: {frame.name}")

    def deliver(self, value: Any) -> None:
        self.stack[-1].child_done(self, value)

    def finish_value(self, frame: Frame, value: Any) -> None:
        """Validate a completed frame's value and hand it to the parent."""
        if frame.schema is not None:
            self.validate(frame.schema, value)
            if frame.schema.is_pointer and not isinstance(frame, (MappingFrame, SequenceFrame)):
                value = self.own(frame.schema, value)
        self.pop(frame)
        self.deliver(value)

    def validate(self, schema: SchemaValue, value: Any, count: int | None = None) -> None:
        if schema.validator is None:
            return
        if count is None:
            ok = schema.validator(self.config.validation_ctx, schema, value)
        else:
            ok = schema.validator(self.config.validation_ctx, schema, value, count)
        if not ok:
            raise TypedYamlError(ErrorCode.INVALID_VALUE, "rejected by validator")

    def own(self, schema: SchemaValue, value: Any) -> Any:
        """Allocate engine-owned storage for a pointer scalar."""
        if isinstance(value, str):
            size = len(value.encode("utf-8")) + 1
        elif isinstance(value, bytes):
            size = len(value)
        else:
            size = schema.data_size
        return self.scope.alloc(size, lambda: value)

    def begin_value(
        self,
        schema: SchemaValue,
        event: yaml.Event,
        in_sequence: bool = False,
        in_mapping: bool = False,
    ) -> None:
        """Start binding ``schema`` at ``event``, the first event of a value."""
        check_value(schema, in_sequence=in_sequence, in_mapping=in_mapping)
        t = schema.type

        if t == ValueType.IGNORE:
            if isinstance(event, yaml.CollectionStartEvent):
                self.push(IgnoreFrame(event.start_mark))
            else:
                self.deliver(None)
            return

        if isinstance(event, yaml.ScalarEvent) and scalars.is_null(
            schema, event.value, event.style is None
        ):
            self.config.log(LogLevel.DEBUG, "Load: Null pointer")
            self.deliver(None)
            return

        if t.is_scalar:
            if not isinstance(event, yaml.ScalarEvent):
                raise TypedYamlError(
                    ErrorCode.INVALID_VALUE, f"expected scalar, got {event_name(event)}"
                )
            value = self.read_scalar(schema, event.value)
            self.validate(schema, value)
            if schema.is_pointer:
                value = self.own(schema, value)
            self.deliver(value)
        elif t == ValueType.FLAGS:
            self._expect(event, yaml.SequenceStartEvent)
            self.push(FlagsFrame(schema, event.start_mark, self.config))  # type: ignore[arg-type]
        elif t == ValueType.BITFIELD:
            self._expect(event, yaml.MappingStartEvent)
            self.push(BitfieldFrame(schema, event.start_mark, self.config))  # type: ignore[arg-type]
        elif t == ValueType.MAPPING:
            self._expect(event, yaml.MappingStartEvent)
            assert isinstance(schema, MappingValue)
            if schema.is_pointer:
                record = self.scope.alloc(schema.data_size, lambda: new_record(schema))
            else:
                record = new_record(schema)
            self.push(MappingFrame(schema, record, event.start_mark, self.config))
        elif t.is_sequence:
            self._expect(event, yaml.SequenceStartEvent)
            assert isinstance(schema, (SequenceValue, SequenceFixedValue))
            if schema.is_pointer:
                size = 0
                if t == ValueType.SEQUENCE_FIXED:
                    size = entry_size(schema.entry) * schema.max  # type: ignore[arg-type]
                entries = self.scope.alloc(size, list)
            else:
                entries = []
            self.push(SequenceFrame(schema, entries, event.start_mark))
        else:
            raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, t.value)

    @staticmethod
    def _expect(event: yaml.Event, kind: type) -> None:
        if not isinstance(event, kind):
            raise TypedYamlError(
                ErrorCode.INVALID_VALUE,
                f"Unexpected event: {event_name(event)}, expected {kind.__name__[:-5]}",
            )

    def read_scalar(self, schema: SchemaValue, text: str) -> Any:
        if isinstance(schema, IntValue):
            return scalars.parse_int(schema, text)
        if isinstance(schema, UIntValue):
            return scalars.parse_uint(schema, text)
        if schema.type == ValueType.BOOL:
            return scalars.parse_bool(text)
        if isinstance(schema, EnumValue):
            return scalars.parse_enum(schema, text, case_sensitive(self.config, schema))
        if isinstance(schema, FloatValue):
            return scalars.parse_float(schema, text)
        if isinstance(schema, StringValue):
            return scalars.parse_string(schema, text)
        if isinstance(schema, BinaryValue):
            return scalars.parse_binary(schema, text)
        raise TypedYamlError(ErrorCode.BAD_TYPE_IN_SCHEMA, schema.type.value)

    def finish_mapping(self, frame: MappingFrame) -> None:
        schema = frame.schema
        assert isinstance(schema, MappingValue)
        for index, f in enumerate(schema.fields):
            if index in frame.seen or f.value.type == ValueType.IGNORE:
                continue
            if not f.value.is_optional:
                self.config.log(LogLevel.ERROR, f"Load: Missing required mapping field: {f.key}")
                raise TypedYamlError(ErrorCode.MAPPING_FIELD_MISSING, f.key)
            self.apply_default(frame.record, f)
        self.finish_value(frame, frame.record)

    def apply_default(self, record: Any, f: Field) -> None:
        """Write the missing-value default of an absent optional field."""
        from typed_yaml.copying import Copier

        missing = f.value.missing
        if missing is None:
            return
        self.config.log(LogLevel.DEBUG, f"Load: Default value for field: {f.key}")
        value = Copier(self.config, self.scope).copy_value(f.value, missing)
        data.set_member(record, f.attr, value)  # type: ignore[arg-type]
        if f.count_attr is not None:
            data.set_member(record, f.count_attr, data.write_uint(f.count_size, len(missing)))

    def finish_sequence(self, frame: SequenceFrame) -> None:
        schema = frame.schema
        assert isinstance(schema, (SequenceValue, SequenceFixedValue))
        count = len(frame.entries)
        if count < schema.min:
            self.config.log(
                LogLevel.ERROR,
                f"Load: Insufficient entries ({count} of {schema.min} min) in sequence.",
            )
            raise TypedYamlError(ErrorCode.SEQUENCE_ENTRIES_MIN)
        self.validate(schema, frame.entries, count)
        self.pop(frame)
        self.deliver(frame.entries)

    def backtrace(self) -> list[str]:
        entries = []
        for frame in reversed(self.stack):
            entry = frame.backtrace_entry()
            if entry is not None:
                entries.append(entry)
        return entries

    def run(self) -> tuple[Any, int | None]:
        """Drive the engine to completion, returning (value, sequence count)."""
        self.push(StreamFrame(self.schema))
        try:
            while self.stack:
                try:
                    event = self.source.next()
                except yaml.YAMLError as e:
                    raise TypedYamlError(ErrorCode.PARSER, str(e).replace("\n", " ")) from e
                if event is None:
                    raise TypedYamlError(ErrorCode.UNEXPECTED_EVENT, "event stream ended early")
                self.config.log(LogLevel.DEBUG, f"Load: Event: {event_name(event)}")
                self.stack[-1].handle(self, event)
        except TypedYamlError as e:
            if not e.backtrace:
                e.backtrace = self.backtrace()
            self.scope.release()
            self.config.log_error("Load", e)
            raise
        except Exception:
            self.scope.release()
            raise
        finally:
            self.anchors.reset()
            close = getattr(self._events, "close", None)
            if close is not None:
                close()
        self.scope.commit()
        return self.result, self.seq_count
