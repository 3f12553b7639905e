"""Error codes and the exception raised by binding operations."""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Result codes of the binding operations."""

    OK = 0
    OOM = 1
    ALIAS = 2
    FILE_OPEN = 3
    INVALID_KEY = 4
    INVALID_VALUE = 5
    INVALID_ALIAS = 6
    INTERNAL_ERROR = 7
    INVALID_BASE64 = 8
    BASE64_MAX_LEN = 9
    MAPPING_REQUIRED = 10
    UNEXPECTED_EVENT = 11
    STRING_LENGTH_MIN = 12
    STRING_LENGTH_MAX = 13
    INVALID_DATA_SIZE = 14
    TOP_LEVEL_NON_PTR = 15
    BAD_TYPE_IN_SCHEMA = 16
    BAD_MIN_MAX_SCHEMA = 17
    BAD_PARAM_SEQ_COUNT = 18
    BAD_PARAM_NULL_DATA = 19
    BAD_BITVAL_IN_SCHEMA = 20
    SEQUENCE_ENTRIES_MIN = 21
    SEQUENCE_ENTRIES_MAX = 22
    SEQUENCE_FIXED_COUNT = 23
    SEQUENCE_IN_SEQUENCE = 24
    MAPPING_FIELD_MISSING = 25
    BAD_CONFIG_NULL_MEM_FN = 26
    BAD_PARAM_NULL_CONFIG = 27
    BAD_PARAM_NULL_SCHEMA = 28
    DATA_TARGET_NON_NULL = 29
    EMITTER = 30
    PARSER = 31


_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.OK: "Success",
    ErrorCode.OOM: "Memory allocation failed",
    ErrorCode.ALIAS: "YAML alias unsupported",
    ErrorCode.FILE_OPEN: "Could not open file",
    ErrorCode.INVALID_KEY: "Invalid key",
    ErrorCode.INVALID_VALUE: "Invalid value",
    ErrorCode.INVALID_ALIAS: "No anchor found for alias",
    ErrorCode.INTERNAL_ERROR: "Internal error",
    ErrorCode.INVALID_BASE64: "Invalid Base64 string",
    ErrorCode.BASE64_MAX_LEN: "Data exceeds maximum length",
    ErrorCode.MAPPING_REQUIRED: "Value requires parent mapping",
    ErrorCode.UNEXPECTED_EVENT: "Unexpected event",
    ErrorCode.STRING_LENGTH_MIN: "String length too short",
    ErrorCode.STRING_LENGTH_MAX: "String length too long",
    ErrorCode.INVALID_DATA_SIZE: "Data size must be 0 < X <= 8 bytes",
    ErrorCode.TOP_LEVEL_NON_PTR: "Top-level schema value must be pointer",
    ErrorCode.BAD_TYPE_IN_SCHEMA: "Schema contains invalid type",
    ErrorCode.BAD_MIN_MAX_SCHEMA: "Bad schema: min exceeds max",
    ErrorCode.BAD_PARAM_SEQ_COUNT: "Bad parameter: seq_count",
    ErrorCode.BAD_PARAM_NULL_DATA: "Bad parameter: NULL data",
    ErrorCode.BAD_BITVAL_IN_SCHEMA: "Bit value beyond bitfield size",
    ErrorCode.SEQUENCE_ENTRIES_MIN: "Sequence with too few entries",
    ErrorCode.SEQUENCE_ENTRIES_MAX: "Sequence with too many entries",
    ErrorCode.SEQUENCE_FIXED_COUNT: "Sequence fixed has unequal min max",
    ErrorCode.SEQUENCE_IN_SEQUENCE: "Non-fixed sequence in sequence",
    ErrorCode.MAPPING_FIELD_MISSING: "Missing required mapping field",
    ErrorCode.BAD_CONFIG_NULL_MEM_FN: "Bad config: NULL mem function",
    ErrorCode.BAD_PARAM_NULL_CONFIG: "Bad parameter: NULL config",
    ErrorCode.BAD_PARAM_NULL_SCHEMA: "Bad parameter: NULL schema",
    ErrorCode.DATA_TARGET_NON_NULL: "Data target must be NULL",
    ErrorCode.EMITTER: "YAML emitter error",
    ErrorCode.PARSER: "YAML parser error",
}


def strerror(code: ErrorCode) -> str:
    """Return a human readable description of an error code."""
    return _MESSAGES.get(code, "Invalid error code")


class TypedYamlError(Exception):
    """Raised when a load, save, copy or free operation fails.

    ``backtrace`` lists the enclosing mapping fields and sequence entries of
    the failure point, innermost first.
    """

    def __init__(
        self,
        code: ErrorCode,
        detail: str | None = None,
        backtrace: list[str] | None = None,
    ) -> None:
        self.code = code
        self.detail = detail
        self.backtrace: list[str] = backtrace or []
        super().__init__(self.summary())

    def summary(self) -> str:
        message = strerror(self.code)
        if self.detail:
            message = f"{message}: {self.detail}"
        return message

    def __str__(self) -> str:
        if not self.backtrace:
            return self.summary()
        lines = [self.summary()] + [f"  {entry}" for entry in self.backtrace]
        return "\n".join(lines)
