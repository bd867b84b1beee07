"""Session tracking for the assistant CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

from .events import DirectoryChanged, EventBus, EventKind, SessionClosed, SessionError, SessionReady
from .process import CliRunner


logger = logging.getLogger(__name__)

CLI_CAPABILITIES: tuple[str, ...] = ("chat", "edit", "create", "generate", "analyze", "test", "exec")

INSTALL_SUGGESTION = "Install the assistant CLI and make sure it is on PATH, then sign in once from a terminal."


@dataclass(slots=True)
class Session:
    """The working context shared by CLI invocations."""

    id: str
    working_directory: Path
    environment: dict[str, str]
    is_active: bool = True
    pid: int | None = None
    version: str | None = None
    simulated: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "working_directory": str(self.working_directory),
            "is_active": self.is_active,
            "pid": self.pid,
            "version": self.version,
            "simulated": self.simulated,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class Availability:
    available: bool
    version: str | None = None
    capabilities: tuple[str, ...] = ()
    simulated: bool = False
    error: str | None = None


def _new_session_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"session-{stamp}-{uuid4().hex[:6]}"


class SessionManager:
    """Own the single current CLI session.

    The working directory and environment are shared by every later dispatch;
    callers take a :meth:`snapshot` when they start a process so that later
    changes never leak into invocations already running.
    """

    def __init__(
        self,
        runner: CliRunner | None,
        *,
        bus: EventBus,
        working_directory: Path | str | None = None,
        signature: str = "claude",
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._bus = bus
        self._signature = signature.lower()
        self._working_directory = Path(working_directory or Path.cwd())
        self._environment = dict(os.environ if environment is None else environment)
        self._session: Session | None = None
        self._last_availability: Availability | None = None

    @property
    def current(self) -> Session | None:
        return self._session

    @property
    def working_directory(self) -> Path:
        return self._working_directory

    @property
    def last_availability(self) -> Availability | None:
        return self._last_availability

    async def check_availability(self) -> Availability:
        """Probe the CLI with a version query and (re)establish the session."""

        availability = await self._probe()
        self._last_availability = availability

        if not availability.available:
            logger.warning("Assistant CLI unavailable", extra={"error": availability.error})
            self._bus.publish(
                EventKind.SESSION_ERROR,
                SessionError(message=availability.error or "CLI unavailable", suggestion=INSTALL_SUGGESTION),
            )
            return availability

        if self._session is None or not self._session.is_active:
            self._session = Session(
                id=_new_session_id(),
                working_directory=self._working_directory,
                environment=dict(self._environment),
                version=availability.version,
                simulated=availability.simulated,
            )
            logger.info(
                "Assistant CLI detected",
                extra={"session_id": self._session.id, "version": availability.version},
            )
            self._bus.publish(
                EventKind.SESSION_READY,
                SessionReady(
                    session_id=self._session.id,
                    version=availability.version or "",
                    simulated=availability.simulated,
                ),
            )
        return availability

    async def _probe(self) -> Availability:
        if self._runner is None:
            return Availability(available=False, error="Assistant CLI not found; install it first")

        result = await self._runner.version()
        version = result.stdout.strip()
        if not result.ok:
            return Availability(
                available=False,
                error=result.error or "CLI version query failed",
                simulated=result.simulated,
            )
        if self._signature not in version.lower():
            return Availability(
                available=False,
                version=version or None,
                error=f"CLI did not identify itself as '{self._signature}'",
            )
        return Availability(
            available=True,
            version=version,
            capabilities=CLI_CAPABILITIES,
            simulated=result.simulated,
        )

    async def ensure_session(self) -> bool:
        """Return whether a live session exists, re-probing when there is none."""

        last = self._last_availability
        if self._session is None or not self._session.is_active or last is None or not last.available:
            await self.check_availability()
        return self._session is not None and self._session.is_active

    def change_directory(self, path: Path | str) -> Path:
        target = Path(path).expanduser().resolve()
        if not target.is_dir():
            raise NotADirectoryError(f"Not a directory: {target}")
        self._working_directory = target
        if self._session is not None:
            self._session.working_directory = target
        logger.info("Working directory changed", extra={"path": str(target)})
        self._bus.publish(EventKind.DIRECTORY_CHANGED, DirectoryChanged(path=str(target)))
        return target

    def update_environment(self, overrides: Mapping[str, str]) -> None:
        self._environment.update(overrides)
        if self._session is not None:
            self._session.environment.update(overrides)

    def snapshot(self) -> tuple[Path, dict[str, str]]:
        """Return copies of the directory and environment for a new dispatch."""

        if self._session is not None:
            return self._session.working_directory, dict(self._session.environment)
        return self._working_directory, dict(self._environment)

    def record_pid(self, pid: int) -> None:
        if self._session is not None:
            self._session.pid = pid

    def terminate(self) -> None:
        session = self._session
        if session is None or not session.is_active:
            return
        session.is_active = False
        session.pid = None
        logger.info("Session terminated", extra={"session_id": session.id})
        self._bus.publish(EventKind.SESSION_CLOSED, SessionClosed(session_id=session.id))

    def status(self) -> dict[str, Any]:
        availability = self._last_availability
        available = bool(availability and availability.available)
        return {
            "available": available,
            "version": availability.version if availability else None,
            "simulated": bool(availability and availability.simulated),
            "error": availability.error if availability else None,
            "session": self._session.summary() if self._session else None,
            "capabilities": list(CLI_CAPABILITIES) if available else [],
        }


__all__ = ["Availability", "CLI_CAPABILITIES", "Session", "SessionManager"]
