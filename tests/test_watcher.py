from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from switchyard.events import EventBus, EventKind, FileChangeKind, FileEvent
from switchyard.watcher import FileWatcher


class StubObserver:
    def __init__(self) -> None:
        self.scheduled: list[tuple[Any, str, bool]] = []
        self.started = False
        self.stopped = False
        self.daemon = False

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> tuple[Any, str]:
        self.scheduled.append((handler, path, recursive))
        return (handler, path)

    def unschedule(self, handle: Any) -> None:
        self.scheduled = [entry for entry in self.scheduled if (entry[0], entry[1]) != handle]

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        return None


def test_handler_translates_events(tmp_path: Path) -> None:
    bus = EventBus()
    events: list[FileEvent] = []
    bus.subscribe(EventKind.FILE_CHANGED, events.append)
    observer = StubObserver()
    watcher = FileWatcher(bus, observer_factory=lambda: observer)
    root = tmp_path.resolve()

    async def scenario() -> None:
        assert watcher.watch([root]) == [root]
        handler = observer.scheduled[0][0]
        handler.on_created(FileCreatedEvent(str(root / "a.py")))
        handler.on_created(DirCreatedEvent(str(root / "pkg")))
        handler.on_modified(FileModifiedEvent(str(root / "node_modules" / "x.js")))
        handler.on_moved(FileMovedEvent(str(root / "a.py"), str(root / "b.py")))
        await asyncio.sleep(0.01)

    asyncio.run(scenario())

    assert [(Path(event.path).name, event.kind) for event in events] == [
        ("a.py", FileChangeKind.CREATED),
        ("a.py", FileChangeKind.DELETED),
        ("b.py", FileChangeKind.CREATED),
    ]
    assert observer.started and observer.scheduled[0][2] is True


def test_unwatch_stops_observer_when_empty(tmp_path: Path) -> None:
    observer = StubObserver()
    watcher = FileWatcher(EventBus(), observer_factory=lambda: observer)
    first = tmp_path / "one"
    second = tmp_path / "two"
    first.mkdir()
    second.mkdir()

    async def scenario() -> None:
        watcher.watch([first, second, first, tmp_path / "missing"])

    asyncio.run(scenario())
    assert len(watcher.watched) == 2

    watcher.unwatch(first)
    assert not observer.stopped
    watcher.close()
    assert observer.stopped
    assert watcher.watched == []


def test_root_inside_ignored_directory_still_reports(tmp_path: Path) -> None:
    watcher = FileWatcher(EventBus(), observer_factory=StubObserver)
    root = tmp_path / "build" / "project"

    assert not watcher.is_ignored(root / "main.py", root)
    assert watcher.is_ignored(root / ".git" / "HEAD", root)


def test_real_observer_reports_create_before_modify(tmp_path: Path) -> None:
    bus = EventBus()
    events: list[FileEvent] = []
    bus.subscribe(EventKind.FILE_CHANGED, events.append)
    watcher = FileWatcher(bus)
    target = tmp_path.resolve() / "notes.txt"

    async def wait_for(predicate, timeout: float = 5.0) -> None:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return
            await asyncio.sleep(0.05)

    async def scenario() -> None:
        watcher.watch([tmp_path])
        try:
            await asyncio.sleep(0.2)
            target.write_text("one", encoding="utf-8")
            await wait_for(lambda: any(e.kind is FileChangeKind.CREATED for e in events))
            with target.open("a", encoding="utf-8") as handle:
                handle.write("two")
            await wait_for(
                lambda: any(e.kind is FileChangeKind.MODIFIED for e in events[1:])
            )
        finally:
            watcher.close()

    asyncio.run(scenario())

    kinds = [event.kind for event in events if Path(event.path) == target]
    assert kinds, "no events observed"
    assert kinds[0] is FileChangeKind.CREATED
    assert FileChangeKind.MODIFIED in kinds[1:]
