"""Anchor recording and alias replay for the load engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

import yaml

from typed_yaml.errors import ErrorCode, TypedYamlError


@dataclass
class Anchor:
    """Events delivered for one anchored node."""

    name: str
    events: list[yaml.Event] = field(default_factory=list)
    depth: int = 0
    complete: bool = False


class AnchorTable:
    """Anchor name to recorded events, populated as events are delivered."""

    def __init__(self) -> None:
        self._anchors: dict[str, Anchor] = {}
        self._recording: list[Anchor] = []

    def __len__(self) -> int:
        return len(self._anchors)

    def __contains__(self, name: str) -> bool:
        return name in self._anchors

    def record_start(self, name: str) -> None:
        """Begin capturing events for ``name``; a redefinition replaces it."""
        anchor = Anchor(name=name)
        self._anchors[name] = anchor
        self._recording.append(anchor)

    def record_event(self, event: yaml.Event) -> None:
        """Append ``event`` to every open recording."""
        if not self._recording:
            return
        still_open: list[Anchor] = []
        for anchor in self._recording:
            anchor.events.append(event)
            if isinstance(event, yaml.CollectionStartEvent):
                anchor.depth += 1
            elif isinstance(event, yaml.CollectionEndEvent):
                anchor.depth -= 1
            if anchor.depth == 0:
                anchor.complete = True
            else:
                still_open.append(anchor)
        self._recording = still_open

    def lookup(self, name: str) -> list[yaml.Event]:
        """Return the recorded events for ``name``.

        An unknown anchor, or one whose node is still being recorded (an
        alias inside its own anchor), is INVALID_ALIAS.
        """
        anchor = self._anchors.get(name)
        if anchor is None or not anchor.complete:
            raise TypedYamlError(ErrorCode.INVALID_ALIAS, name)
        return anchor.events

    def reset(self) -> None:
        self._anchors.clear()
        self._recording.clear()


class EventSource:
    """Delivers parser events, expanding aliases by replaying their anchors.

    Pending replays take precedence over the parser. Anchors are recorded
    only from live parser events; replayed events are still appended to any
    recording in progress so enclosing anchors capture the expansion.
    """

    def __init__(
        self,
        events: Iterator[yaml.Event],
        anchors: AnchorTable,
        no_alias: bool = False,
    ) -> None:
        self._events = events
        self.anchors = anchors
        self.no_alias = no_alias
        self._replay: list[tuple[list[yaml.Event], int]] = []

    def _next_raw(self) -> tuple[yaml.Event | None, bool]:
        while self._replay:
            events, index = self._replay[-1]
            if index < len(events):
                self._replay[-1] = (events, index + 1)
                return events[index], True
            self._replay.pop()
        try:
            return next(self._events), False
        except StopIteration:
            return None, False

    def next(self) -> yaml.Event | None:
        """Return the next event, or None when the parser is exhausted."""
        while True:
            event, replayed = self._next_raw()
            if event is None:
                return None
            if isinstance(event, yaml.AliasEvent):
                if self.no_alias:
                    raise TypedYamlError(ErrorCode.ALIAS, event.anchor)
                self._replay.append((self.anchors.lookup(event.anchor), 0))
                continue
            if not self.no_alias:
                anchor = getattr(event, "anchor", None)
                if anchor is not None and not replayed:
                    self.anchors.record_start(anchor)
                self.anchors.record_event(event)
            return event
