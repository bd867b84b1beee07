"""Filesystem watcher publishing change notifications on the event bus."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer

from .config import DEFAULT_WATCH_IGNORE
from .events import EventBus, EventKind, FileChangeKind, FileEvent


logger = logging.getLogger(__name__)


def _as_str(path: str | bytes) -> str:
    return os.fsdecode(path)


class _BridgeHandler(FileSystemEventHandler):
    """Translate watchdog callbacks (observer thread) into loop-side FileEvents."""

    def __init__(self, watcher: "FileWatcher", root: Path) -> None:
        super().__init__()
        self._watcher = watcher
        self._root = root

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._dispatch(self._root, _as_str(event.src_path), FileChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._dispatch(self._root, _as_str(event.src_path), FileChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._dispatch(self._root, _as_str(event.src_path), FileChangeKind.DELETED)

    def on_moved(self, event: FileSystemMovedEvent) -> None:  # type: ignore[override]
        if event.is_directory:
            return
        self._watcher._dispatch(self._root, _as_str(event.src_path), FileChangeKind.DELETED)
        self._watcher._dispatch(self._root, _as_str(event.dest_path), FileChangeKind.CREATED)


class FileWatcher:
    """Watch directory trees and publish ``FILE_CHANGED`` events.

    Only changes after :meth:`watch` are reported. Notifications are marshalled
    onto the event loop that called :meth:`watch`, in the order the observer
    thread produced them.
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        ignore: Iterable[str] = DEFAULT_WATCH_IGNORE,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self._bus = bus
        self._ignore = frozenset(ignore)
        self._observer_factory = observer_factory
        self._observer: Any | None = None
        self._watches: dict[Path, Any] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def watched(self) -> list[Path]:
        return list(self._watches)

    def is_ignored(self, path: str | Path, root: Path | None = None) -> bool:
        candidate = Path(path)
        if root is not None:
            try:
                candidate = candidate.relative_to(root)
            except ValueError:
                pass
        return any(part in self._ignore for part in candidate.parts)

    def watch(self, paths: Iterable[Path | str]) -> list[Path]:
        """Start monitoring each directory in ``paths``; returns the newly added roots."""

        self._loop = asyncio.get_running_loop()
        added: list[Path] = []
        for raw in paths:
            root = Path(raw).expanduser().resolve()
            if root in self._watches:
                continue
            if not root.is_dir():
                logger.warning("Skipping watch on missing directory", extra={"path": str(root)})
                continue
            observer = self._ensure_observer()
            self._watches[root] = observer.schedule(_BridgeHandler(self, root), str(root), recursive=True)
            added.append(root)
            logger.info("Watching directory", extra={"path": str(root)})
        return added

    def unwatch(self, path: Path | str | None = None) -> None:
        """Stop monitoring ``path``, or every watched root when omitted."""

        if path is None:
            targets = list(self._watches)
        else:
            targets = [Path(path).expanduser().resolve()]

        for root in targets:
            handle = self._watches.pop(root, None)
            if handle is not None and self._observer is not None:
                self._observer.unschedule(handle)
                logger.info("Stopped watching directory", extra={"path": str(root)})

        if not self._watches:
            self._stop_observer()

    def close(self) -> None:
        self.unwatch()

    def _ensure_observer(self) -> Any:
        if self._observer is None:
            self._observer = self._observer_factory()
            self._observer.daemon = True
            self._observer.start()
        return self._observer

    def _stop_observer(self) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=2.0)

    def _dispatch(self, root: Path, path: str, kind: FileChangeKind) -> None:
        if self.is_ignored(path, root):
            return
        event = FileEvent(path=path, kind=kind)
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._bus.publish, EventKind.FILE_CHANGED, event)


__all__ = ["FileWatcher"]
