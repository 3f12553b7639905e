"""Client configuration for binding operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Any, Callable

from typed_yaml.errors import TypedYamlError
from typed_yaml.mem import Allocator

logger = logging.getLogger("typed_yaml")

# stdlib logging has no NOTICE level; slot one between INFO and WARNING
NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")


class ConfigFlag(IntFlag):
    """Global behaviour flags."""

    DEFAULT = 0
    IGNORE_UNKNOWN_KEYS = 1 << 0
    STYLE_BLOCK = 1 << 1
    STYLE_FLOW = 1 << 2
    DOCUMENT_DELIM = 1 << 3
    CASE_INSENSITIVE = 1 << 4
    NO_ALIAS = 1 << 5
    IGNORED_KEY_WARNING = 1 << 6


class LogLevel(IntEnum):
    """Severity of engine log messages."""

    DEBUG = 0
    INFO = 1
    NOTICE = 2
    WARNING = 3
    ERROR = 4

    @property
    def logging_level(self) -> int:
        """Return the equivalent stdlib logging level."""
        levels = {
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.NOTICE: NOTICE,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
        }
        return levels[self]


LogFn = Callable[[LogLevel, Any, str], None]


def default_log(level: LogLevel, ctx: Any, message: str) -> None:
    """Forward an engine message to the ``typed_yaml`` logger."""
    logger.log(level.logging_level, message.rstrip("\n"))


@dataclass
class Config:
    """Settings for load, save, copy and free.

    ``log_fn`` receives every message at or above ``log_level``, together
    with ``log_ctx``; set it to None to silence the engine. ``mem`` is the
    allocator consulted for every engine-owned object. ``validation_ctx`` is
    passed as the first argument to schema validator callbacks.
    """

    flags: ConfigFlag = ConfigFlag.DEFAULT
    log_level: LogLevel = LogLevel.WARNING
    log_fn: LogFn | None = default_log
    log_ctx: Any = None
    mem: Allocator | None = field(default_factory=Allocator)
    validation_ctx: Any = None

    def log(self, level: LogLevel, message: str) -> None:
        if self.log_fn is not None and level >= self.log_level:
            self.log_fn(level, self.log_ctx, message)

    def has(self, flag: ConfigFlag) -> bool:
        return bool(self.flags & flag)

    def log_error(self, prefix: str, error: TypedYamlError) -> None:
        """Log a failed operation with its backtrace."""
        self.log(LogLevel.ERROR, f"{prefix}: {error.code.name}: {error.summary()}")
        if error.backtrace:
            self.log(LogLevel.ERROR, f"{prefix}: Backtrace:")
            for entry in error.backtrace:
                self.log(LogLevel.ERROR, f"  {entry}")
