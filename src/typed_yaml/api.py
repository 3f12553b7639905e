"""Public load, save, copy and free operations."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from typed_yaml.config import Config, LogLevel
from typed_yaml.copying import Copier
from typed_yaml.errors import ErrorCode, TypedYamlError
from typed_yaml.freeing import free_value
from typed_yaml.loading import LoadContext
from typed_yaml.mem import AllocationScope
from typed_yaml.saving import Saver
from typed_yaml.types import MappingValue, SchemaValue, ValueType


def _check_params(config: Config | None, schema: SchemaValue | None) -> None:
    if config is None:
        raise TypedYamlError(ErrorCode.BAD_PARAM_NULL_CONFIG)
    if config.mem is None:
        raise TypedYamlError(ErrorCode.BAD_CONFIG_NULL_MEM_FN)
    if schema is None:
        raise TypedYamlError(ErrorCode.BAD_PARAM_NULL_SCHEMA)


def _check_seq_count(schema: SchemaValue, seq_count: int | None) -> None:
    """A dynamic sequence root needs a count; non-sequence roots take none."""
    if schema.type == ValueType.SEQUENCE:
        if seq_count is None:
            raise TypedYamlError(ErrorCode.BAD_PARAM_SEQ_COUNT, "sequence root needs seq_count")
    elif schema.type == ValueType.SEQUENCE_FIXED:
        if seq_count is not None and seq_count != getattr(schema, "max", None):
            raise TypedYamlError(ErrorCode.BAD_PARAM_SEQ_COUNT, "fixed sequence count mismatch")
    elif seq_count is not None:
        raise TypedYamlError(ErrorCode.BAD_PARAM_SEQ_COUNT, "seq_count given for non-sequence")


def _load(stream: Any, config: Config, schema: SchemaValue) -> tuple[Any, int | None]:
    _check_params(config, schema)
    if not schema.is_pointer:
        error = TypedYamlError(ErrorCode.TOP_LEVEL_NON_PTR)
        config.log_error("Load", error)
        raise error
    ctx = LoadContext(config, schema, yaml.parse(stream, Loader=yaml.SafeLoader))
    return ctx.run()


def load_bytes(
    data: bytes | str, config: Config, schema: SchemaValue
) -> tuple[Any, int | None]:
    """Load a YAML document held in memory.

    Returns the loaded value and, for a sequence root, its entry count
    (None otherwise). An empty input loads as ``(None, None)``.
    """
    return _load(data, config, schema)


def load_file(
    path: str | Path, config: Config, schema: SchemaValue
) -> tuple[Any, int | None]:
    """Load a YAML document from a file."""
    _check_params(config, schema)
    try:
        with open(path, "rb") as f:
            return _load(f, config, schema)
    except OSError as e:
        error = TypedYamlError(ErrorCode.FILE_OPEN, str(e))
        config.log_error("Load", error)
        raise error from e


def _save(config: Config, schema: SchemaValue, value: Any, seq_count: int | None) -> str:
    _check_params(config, schema)
    try:
        _check_seq_count(schema, seq_count)
        saver = Saver(config)
        saver.save_document(schema, value, seq_count)
        return saver.render()
    except TypedYamlError as e:
        config.log_error("Save", e)
        raise


def save_bytes(
    config: Config, schema: SchemaValue, value: Any, seq_count: int | None = None
) -> bytes:
    """Serialize ``value`` to UTF-8 YAML.

    The returned buffer is obtained from the configured allocator.
    """
    text = _save(config, schema, value, seq_count)
    encoded = text.encode("utf-8")
    scope = AllocationScope(config, "Save")
    buf = scope.alloc(len(encoded), lambda: encoded)
    scope.commit()
    return buf


def save_file(
    path: str | Path,
    config: Config,
    schema: SchemaValue,
    value: Any,
    seq_count: int | None = None,
) -> None:
    """Serialize ``value`` to a YAML file."""
    text = _save(config, schema, value, seq_count)
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as e:
        error = TypedYamlError(ErrorCode.FILE_OPEN, str(e))
        config.log_error("Save", error)
        raise error from e


def copy(
    config: Config,
    schema: SchemaValue,
    value: Any,
    seq_count: int | None = None,
    target: Any = None,
) -> Any:
    """Deep-copy ``value``.

    A pointer root is copied into new engine-owned storage, and ``target``
    must be None. A non-pointer mapping or sequence root is copied into the
    caller-owned ``target`` record or list, which is returned. Non-pointer
    scalar roots are returned by value.
    """
    _check_params(config, schema)
    scope = AllocationScope(config, "Copy")
    try:
        _check_seq_count(schema, seq_count)
        if schema.is_pointer and target is not None:
            raise TypedYamlError(ErrorCode.DATA_TARGET_NON_NULL)
        if value is None and not schema.allows_null:
            raise TypedYamlError(ErrorCode.BAD_PARAM_NULL_DATA)
        copier = Copier(config, scope)
        if schema.is_pointer:
            result = copier.copy_value(schema, value, count=seq_count)
        elif isinstance(schema, MappingValue):
            if target is None:
                raise TypedYamlError(ErrorCode.BAD_PARAM_NULL_DATA, "copy needs a target record")
            copier.copy_members(schema, value, target)
            result = target
        elif schema.type.is_sequence:
            if target is None:
                raise TypedYamlError(ErrorCode.BAD_PARAM_NULL_DATA, "copy needs a target list")
            target[:] = copier.copy_entries(schema, value, seq_count)  # type: ignore[arg-type]
            result = target
        else:
            result = copier.copy_value(schema, value)
    except TypedYamlError as e:
        scope.release()
        config.log_error("Copy", e)
        raise
    except Exception:
        scope.release()
        raise
    scope.commit()
    return result


def free(
    config: Config, schema: SchemaValue, value: Any, seq_count: int | None = None
) -> None:
    """Release every engine-owned object reachable from ``value``.

    Sequence roots may omit ``seq_count``; the list carries its length.
    """
    _check_params(config, schema)
    if seq_count is not None:
        _check_seq_count(schema, seq_count)
    config.log(LogLevel.DEBUG, "Free: Releasing value tree")
    free_value(config, schema, value)
