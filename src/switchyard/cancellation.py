"""Per-operation cancellation token with an optional deadline."""

from __future__ import annotations

import asyncio
from enum import Enum


class CancelReason(str, Enum):
    USER = "user"
    TIMEOUT = "timeout"


class CancelToken:
    """Signal that an in-flight operation should stop.

    The deadline is armed by :meth:`start` on the running loop; when it fires the
    token behaves exactly as if ``cancel(CancelReason.TIMEOUT)`` had been called.
    The first reason recorded wins.
    """

    def __init__(self, timeout: float | None = None) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError("Timeout must be positive")
        self.timeout = timeout
        self.deadline: float | None = None
        self._reason: CancelReason | None = None
        self._event = asyncio.Event()
        self._handle: asyncio.TimerHandle | None = None

    def start(self) -> None:
        if self.timeout is None or self._handle is not None:
            return
        loop = asyncio.get_running_loop()
        self.deadline = loop.time() + self.timeout
        self._handle = loop.call_later(self.timeout, self.cancel, CancelReason.TIMEOUT)

    def cancel(self, reason: CancelReason = CancelReason.USER) -> bool:
        if self._reason is not None:
            return False
        self._reason = reason
        self._event.set()
        self.dispose()
        return True

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    async def wait(self) -> CancelReason | None:
        await self._event.wait()
        return self._reason

    def dispose(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


__all__ = ["CancelReason", "CancelToken"]
