"""Allocation of engine-owned objects."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, TypeVar

from typed_yaml.errors import ErrorCode, TypedYamlError

if TYPE_CHECKING:
    from typed_yaml.config import Config

T = TypeVar("T")


class Allocator:
    """Storage allocator for every object the engine owns.

    ``alloc`` produces the object by calling ``factory``; ``size`` is the
    number of bytes the object stands for. ``realloc`` is called when an
    owned list grows. Returning None (or raising MemoryError) from ``alloc``
    or ``realloc`` reports an out-of-memory condition. The default
    implementation leaves reclamation to the garbage collector.
    """

    def alloc(self, size: int, factory: Callable[[], T]) -> T | None:
        return factory()

    def realloc(self, obj: T, size: int) -> T | None:
        return obj

    def free(self, obj: Any) -> None:
        pass


class AllocationScope:
    """Tracks the allocations made during one operation.

    On failure every tracked allocation is released in reverse order; on
    success ownership passes to the caller and tracking is dropped.
    """

    def __init__(self, config: Config, prefix: str) -> None:
        assert config.mem is not None
        self.config = config
        self.mem: Allocator = config.mem
        self.prefix = prefix
        self._owned: list[Any] = []

    def alloc(self, size: int, factory: Callable[[], T]) -> T:
        """Allocate a new owned object, raising OOM on failure."""
        from typed_yaml.config import LogLevel

        try:
            obj = self.mem.alloc(size, factory)
        except MemoryError:
            obj = None
        if obj is None:
            raise TypedYamlError(ErrorCode.OOM)
        self.config.log(
            LogLevel.DEBUG, f"{self.prefix}: Allocated {size} bytes ({type(obj).__name__})"
        )
        self._owned.append(obj)
        return obj

    def realloc(self, obj: T, size: int) -> T:
        """Grow an owned object, raising OOM on failure."""
        try:
            new_obj = self.mem.realloc(obj, size)
        except MemoryError:
            new_obj = None
        if new_obj is None:
            raise TypedYamlError(ErrorCode.OOM)
        if new_obj is not obj:
            for i, owned in enumerate(self._owned):
                if owned is obj:
                    self._owned[i] = new_obj
                    break
        return new_obj

    @property
    def count(self) -> int:
        return len(self._owned)

    def release(self) -> None:
        """Free every tracked allocation, newest first."""
        while self._owned:
            self.mem.free(self._owned.pop())

    def commit(self) -> None:
        """Hand every tracked allocation over to the caller."""
        self._owned.clear()
