"""Free walker: releases the engine-owned objects of a data tree."""

from __future__ import annotations

from typing import Any

from typed_yaml import data
from typed_yaml.config import Config, LogLevel
from typed_yaml.types import MappingValue, SchemaValue, ValueType


def free_value(config: Config, schema: SchemaValue, value: Any) -> None:
    """Release ``value`` and everything it owns.

    Tolerates None and partially built trees: members that are absent or of
    the wrong shape are skipped rather than reported.
    """
    if value is None or not isinstance(schema, SchemaValue):
        return
    assert config.mem is not None

    if isinstance(schema, MappingValue):
        for f in schema.fields:
            if f.value.type == ValueType.IGNORE:
                continue
            if data.has_member(value, f.attr):  # type: ignore[arg-type]
                free_value(config, f.value, data.get_member(value, f.attr))  # type: ignore[arg-type]
    elif schema.type.is_sequence and isinstance(value, list):
        entry = getattr(schema, "entry", None)
        if entry is not None:
            for item in value:
                free_value(config, entry, item)

    if schema.is_pointer:
        config.log(LogLevel.DEBUG, f"Free: Freeing {type(value).__name__}")
        config.mem.free(value)
