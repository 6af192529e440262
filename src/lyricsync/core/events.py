"""State change feed for streaming engine updates to external consumers.

The engine publishes one event per field change (track, timeline, line
index, progress, ...). Consumers (the CLI live view, tests) subscribe to
all fields or to a single one and receive events synchronously.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

TRACK = "track"
TIMELINE = "timeline"
LINE_INDEX = "line_index"
PROGRESS = "progress"
PLAYBACK_STATE = "playback_state"
IS_SEARCHING = "is_searching"
CANDIDATES = "candidates"
LYRICS_STATE = "lyrics_state"

FIELDS = (
    TRACK,
    TIMELINE,
    LINE_INDEX,
    PROGRESS,
    PLAYBACK_STATE,
    IS_SEARCHING,
    CANDIDATES,
    LYRICS_STATE,
)


@dataclass
class StateEvent:
    """A change of one observable engine field.

    Attributes:
        field: Name of the changed field (one of ``FIELDS``).
        value: The new value.
    """

    field: str
    value: Any


EventCallback = Callable[[StateEvent], None]


class ChangeFeed:
    """Per-field publish/subscribe with a latest-value snapshot."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._latest: dict[str, Any] = dict.fromkeys(FIELDS)
        if initial:
            self._latest.update(initial)
        self._subscribers: list[tuple[str | None, EventCallback]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def latest(self, field: str) -> Any:
        return self._latest[field]

    def snapshot(self) -> dict[str, Any]:
        return dict(self._latest)

    def subscribe(self, callback: EventCallback, field: str | None = None) -> Callable[[], None]:
        """Register a callback, optionally for a single field.

        Returns a function that removes this subscription. Removing one
        subscriber never affects the others.
        """
        if field is not None and field not in FIELDS:
            raise ValueError(f"Unknown field: {field}")
        entry = (field, callback)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, field: str, value: Any) -> None:
        if self._closed:
            return
        self._latest[field] = value
        event = StateEvent(field=field, value=value)
        for wanted, callback in list(self._subscribers):
            if wanted is not None and wanted != field:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed on %s update", field)

    def close(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        self._closed = True
        self._subscribers.clear()
