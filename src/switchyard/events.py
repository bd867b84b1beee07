"""Typed publish/subscribe channel for output chunks and lifecycle notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    OUTPUT = "output"
    SESSION_READY = "session_ready"
    SESSION_ERROR = "session_error"
    SESSION_CLOSED = "session_closed"
    DIRECTORY_CHANGED = "directory_changed"
    FILE_CHANGED = "file_changed"
    OPERATION_STARTED = "operation_started"
    OPERATION_COMPLETED = "operation_completed"
    OPERATION_FAILED = "operation_failed"
    OPERATION_CANCELLED = "operation_cancelled"


class FileChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class OutputChunk:
    """A slice of child-process output, published as it arrives."""

    stream: str
    data: str
    tag: str | None = None


@dataclass(slots=True, frozen=True)
class SessionReady:
    session_id: str
    version: str
    simulated: bool = False


@dataclass(slots=True, frozen=True)
class SessionError:
    message: str
    suggestion: str | None = None


@dataclass(slots=True, frozen=True)
class SessionClosed:
    session_id: str


@dataclass(slots=True, frozen=True)
class DirectoryChanged:
    path: str


@dataclass(slots=True, frozen=True)
class FileEvent:
    """A filesystem change observed under a watched root."""

    path: str
    kind: FileChangeKind
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True, frozen=True)
class OperationNotice:
    operation_id: str
    backend_id: str
    operation_type: str
    status: str
    duration: float | None = None
    error: str | None = None
    reason: str | None = None


PAYLOAD_TYPES: dict[EventKind, type] = {
    EventKind.OUTPUT: OutputChunk,
    EventKind.SESSION_READY: SessionReady,
    EventKind.SESSION_ERROR: SessionError,
    EventKind.SESSION_CLOSED: SessionClosed,
    EventKind.DIRECTORY_CHANGED: DirectoryChanged,
    EventKind.FILE_CHANGED: FileEvent,
    EventKind.OPERATION_STARTED: OperationNotice,
    EventKind.OPERATION_COMPLETED: OperationNotice,
    EventKind.OPERATION_FAILED: OperationNotice,
    EventKind.OPERATION_CANCELLED: OperationNotice,
}

Subscriber = Callable[[Any], None]


class EventBus:
    """Deliver typed payloads to subscribers in emission order.

    Delivery is synchronous on the publishing thread. A subscriber that raises is
    logged and skipped; the remaining subscribers still receive the payload.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventKind, list[Subscriber]] = defaultdict(list)

    def subscribe(self, kind: EventKind, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for ``kind`` and return a function that removes it."""

        self._subscribers[kind].append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(kind, callback)

        return _unsubscribe

    def unsubscribe(self, kind: EventKind, callback: Subscriber) -> None:
        listeners = self._subscribers.get(kind)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def publish(self, kind: EventKind, payload: Any) -> None:
        expected = PAYLOAD_TYPES[kind]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{kind.value} events carry {expected.__name__}, got {type(payload).__name__}"
            )

        for callback in list(self._subscribers.get(kind, ())):
            try:
                callback(payload)
            except Exception:
                logger.exception("Event subscriber failed", extra={"event_kind": kind.value})

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._subscribers.get(kind, ()))

    def clear(self) -> None:
        self._subscribers.clear()


__all__ = [
    "DirectoryChanged",
    "EventBus",
    "EventKind",
    "FileChangeKind",
    "FileEvent",
    "OperationNotice",
    "OutputChunk",
    "PAYLOAD_TYPES",
    "SessionClosed",
    "SessionError",
    "SessionReady",
]
