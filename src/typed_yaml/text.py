"""Name comparison for mapping keys and enum, flags and bitfield names."""

from __future__ import annotations

from typing import Iterable, TypeVar

T = TypeVar("T")


def fold(name: str) -> str:
    """Return the case-folded form of ``name``.

    Each character is lowered on its own, so ``ß`` stays ``ß`` and the
    result does not depend on neighbouring characters.
    """
    return "".join(c.lower() for c in name)


def names_equal(a: str, b: str, case_sensitive: bool = True) -> bool:
    if case_sensitive:
        return a == b
    return fold(a) == fold(b)


def find_by_name(
    items: Iterable[T], name: str, key: str = "name", case_sensitive: bool = True
) -> T | None:
    """Return the first item whose ``key`` attribute matches ``name``."""
    for item in items:
        if names_equal(getattr(item, key), name, case_sensitive):
            return item
    return None
