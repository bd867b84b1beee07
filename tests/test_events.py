from __future__ import annotations

import logging

import pytest

from switchyard.events import EventBus, EventKind, OutputChunk, SessionClosed


def test_subscribers_receive_payloads_in_order() -> None:
    bus = EventBus()
    seen: list[tuple[str, str]] = []

    bus.subscribe(EventKind.OUTPUT, lambda chunk: seen.append(("first", chunk.data)))
    bus.subscribe(EventKind.OUTPUT, lambda chunk: seen.append(("second", chunk.data)))

    bus.publish(EventKind.OUTPUT, OutputChunk(stream="stdout", data="a"))
    bus.publish(EventKind.OUTPUT, OutputChunk(stream="stdout", data="b"))

    assert seen == [("first", "a"), ("second", "a"), ("first", "b"), ("second", "b")]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen: list[str] = []
    unsubscribe = bus.subscribe(EventKind.SESSION_CLOSED, lambda payload: seen.append(payload.session_id))

    bus.publish(EventKind.SESSION_CLOSED, SessionClosed(session_id="one"))
    unsubscribe()
    bus.publish(EventKind.SESSION_CLOSED, SessionClosed(session_id="two"))

    assert seen == ["one"]
    assert bus.subscriber_count(EventKind.SESSION_CLOSED) == 0


def test_payload_type_is_checked() -> None:
    bus = EventBus()

    with pytest.raises(TypeError):
        bus.publish(EventKind.OUTPUT, SessionClosed(session_id="x"))


def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    seen: list[str] = []

    def explode(_chunk: OutputChunk) -> None:
        raise RuntimeError("boom")

    bus.subscribe(EventKind.OUTPUT, explode)
    bus.subscribe(EventKind.OUTPUT, lambda chunk: seen.append(chunk.data))

    with caplog.at_level(logging.ERROR):
        bus.publish(EventKind.OUTPUT, OutputChunk(stream="stderr", data="x"))

    assert seen == ["x"]
    assert "Event subscriber failed" in caplog.text
