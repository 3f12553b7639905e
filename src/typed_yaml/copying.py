"""Copy walker: deep-clones a data tree described by a schema."""

from __future__ import annotations

from typing import Any

from typed_yaml import data
from typed_yaml.check import check_value
from typed_yaml.config import Config, LogLevel
from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.mem import AllocationScope
from typed_yaml.types import (
    POINTER_SIZE,
    MappingValue,
    SchemaValue,
    SequenceFixedValue,
    SequenceValue,
    ValueType,
    new_record,
)


class Copier:
    """Clones values, allocating owned storage through an allocation scope."""

    def __init__(self, config: Config, scope: AllocationScope) -> None:
        self.config = config
        self.scope = scope

    def copy_value(
        self,
        schema: SchemaValue,
        value: Any,
        count: int | None = None,
        in_sequence: bool = False,
        in_mapping: bool = False,
    ) -> Any:
        """Return an independent copy of ``value``."""
        check_value(schema, in_sequence=in_sequence, in_mapping=in_mapping)
        t = schema.type
        if t == ValueType.IGNORE:
            return None
        if value is None:
            if schema.allows_null:
                return None
            raise TypedYamlError(ErrorCode.BAD_PARAM_NULL_DATA, "null value not permitted")

        if isinstance(schema, MappingValue):
            if schema.is_pointer:
                record = self.scope.alloc(schema.data_size, lambda: new_record(schema))
            else:
                record = new_record(schema)
            self.copy_members(schema, value, record)
            return record
        if isinstance(schema, (SequenceValue, SequenceFixedValue)):
            return self.copy_sequence(schema, value, count)

        if t == ValueType.STRING:
            size = len(value.encode("utf-8")) + 1
        elif t == ValueType.BINARY:
            value = bytes(value)
            size = len(value)
        else:
            size = schema.data_size
        if schema.is_pointer:
            self.config.log(LogLevel.DEBUG, f"Copy: Allocating: ({size} bytes)")
            return self.scope.alloc(size, lambda: value)
        return value

    def copy_members(self, schema: MappingValue, source: Any, target: Any) -> None:
        """Copy every bound field of ``source`` into the record ``target``."""
        for f in schema.fields:
            if f.value.type == ValueType.IGNORE:
                continue
            try:
                if not data.has_member(source, f.attr):  # type: ignore[arg-type]
                    raise TypedYamlError(ErrorCode.INVALID_VALUE, f"record has no member {f.attr}")
                value = data.get_member(source, f.attr)  # type: ignore[arg-type]
                count = data.member_count(source, f.count_attr, f.count_size)
                if f.value.type == ValueType.BINARY and value is not None:
                    value = value[: data.entry_count(value, count)]
                copied = self.copy_value(f.value, value, count=count, in_mapping=True)
                data.set_member(target, f.attr, copied)  # type: ignore[arg-type]
                if f.count_attr is not None:
                    used = 0 if copied is None else len(copied)
                    data.set_member(target, f.count_attr, data.write_uint(f.count_size, used))
            except TypedYamlError as e:
                e.backtrace.append(f"in mapping field: {f.key}")
                raise

    def copy_entries(
        self,
        schema: SequenceValue | SequenceFixedValue,
        entries: list,
        count: int | None,
    ) -> list:
        """Return copies of the in-use entries of a sequence."""
        if schema.type == ValueType.SEQUENCE_FIXED:
            count = schema.max
            if len(entries) < count:
                raise TypedYamlError(
                    ErrorCode.INVALID_VALUE, f"{len(entries)} entries in fixed sequence of {count}"
                )
        else:
            count = data.entry_count(entries, count)
        copies = []
        for index in range(count):
            try:
                copies.append(
                    self.copy_value(schema.entry, entries[index], in_sequence=True)  # type: ignore[arg-type]
                )
            except TypedYamlError as e:
                e.backtrace.append(f"in sequence entry: {index}")
                raise
        return copies

    def copy_sequence(
        self,
        schema: SequenceValue | SequenceFixedValue,
        entries: list,
        count: int | None,
    ) -> list:
        if not schema.is_pointer:
            return self.copy_entries(schema, entries, count)
        entry = schema.entry
        assert entry is not None
        per_entry = POINTER_SIZE if entry.is_pointer else entry.data_size
        used = schema.max if schema.type == ValueType.SEQUENCE_FIXED else data.entry_count(entries, count)
        owned = self.scope.alloc(per_entry * used, list)
        owned.extend(self.copy_entries(schema, entries, count))
        return owned
