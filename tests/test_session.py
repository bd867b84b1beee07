from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from switchyard.events import EventBus, EventKind
from switchyard.process import CliRunner, ExecutionResult, FakeCliRunner
from switchyard.session import CLI_CAPABILITIES, SessionManager


def version_result(stdout: str, returncode: int = 0) -> ExecutionResult:
    return ExecutionResult(
        args=("claude", "--version"),
        returncode=returncode,
        stdout=stdout,
        stderr="",
        error=None if returncode == 0 else "probe failed",
    )


def collect(bus: EventBus, kind: EventKind) -> list:
    seen: list = []
    bus.subscribe(kind, seen.append)
    return seen


def test_available_cli_creates_session(tmp_path: Path) -> None:
    bus = EventBus()
    ready = collect(bus, EventKind.SESSION_READY)
    manager = SessionManager(
        FakeCliRunner([version_result("1.0.3 (Claude Code)")]),
        bus=bus,
        working_directory=tmp_path,
    )

    availability = asyncio.run(manager.check_availability())

    assert availability.available
    assert availability.capabilities == CLI_CAPABILITIES
    session = manager.current
    assert session is not None and session.is_active
    assert session.id.startswith("session-")
    assert session.working_directory == tmp_path
    assert [event.session_id for event in ready] == [session.id]


def test_missing_cli_is_unavailable() -> None:
    bus = EventBus()
    errors = collect(bus, EventKind.SESSION_ERROR)
    manager = SessionManager(None, bus=bus)

    availability = asyncio.run(manager.check_availability())

    assert not availability.available
    assert availability.capabilities == ()
    assert manager.current is None
    assert errors and errors[0].suggestion


def test_wrong_signature_is_unavailable() -> None:
    manager = SessionManager(FakeCliRunner([version_result("some-other-tool 2.0")]), bus=EventBus())

    availability = asyncio.run(manager.check_availability())

    assert not availability.available
    assert "claude" in (availability.error or "")


def test_failed_probe_is_unavailable(tmp_path: Path) -> None:
    script = tmp_path / "claude"
    script.write_text("#!/bin/sh\necho 'claude: not authenticated' >&2\nexit 1\n", encoding="utf-8")
    script.chmod(0o755)
    manager = SessionManager(CliRunner(script), bus=EventBus())

    availability = asyncio.run(manager.check_availability())

    assert not availability.available
    assert "not authenticated" in (availability.error or "")


def test_ensure_session_reprobes_only_when_needed() -> None:
    runner = FakeCliRunner([version_result("claude 1.0"), version_result("claude 1.0")])
    manager = SessionManager(runner, bus=EventBus())

    assert asyncio.run(manager.ensure_session()) is True
    assert asyncio.run(manager.ensure_session()) is True
    assert len(runner.invocations) == 1

    manager.terminate()
    assert asyncio.run(manager.ensure_session()) is True
    assert len(runner.invocations) == 2


def test_change_directory_updates_snapshot(tmp_path: Path) -> None:
    bus = EventBus()
    changes = collect(bus, EventKind.DIRECTORY_CHANGED)
    manager = SessionManager(FakeCliRunner([version_result("claude 1.0")]), bus=bus, working_directory=tmp_path)
    asyncio.run(manager.check_availability())
    target = tmp_path / "sub"
    target.mkdir()

    before_cwd, _ = manager.snapshot()
    manager.change_directory(target)
    after_cwd, _ = manager.snapshot()

    assert before_cwd == tmp_path
    assert after_cwd == target.resolve()
    assert changes[-1].path == str(target.resolve())


def test_change_directory_rejects_files(tmp_path: Path) -> None:
    manager = SessionManager(None, bus=EventBus(), working_directory=tmp_path)
    afile = tmp_path / "file.txt"
    afile.write_text("x", encoding="utf-8")

    with pytest.raises(NotADirectoryError):
        manager.change_directory(afile)


def test_environment_updates_do_not_leak_into_snapshots() -> None:
    manager = SessionManager(None, bus=EventBus(), environment={"A": "1"})

    _, first = manager.snapshot()
    manager.update_environment({"B": "2"})
    _, second = manager.snapshot()

    assert first == {"A": "1"}
    assert second == {"A": "1", "B": "2"}


def test_terminate_publishes_close() -> None:
    bus = EventBus()
    closed = collect(bus, EventKind.SESSION_CLOSED)
    manager = SessionManager(FakeCliRunner([version_result("claude 1.0")]), bus=bus)
    asyncio.run(manager.check_availability())
    manager.record_pid(4242)

    manager.terminate()
    manager.terminate()

    assert manager.current is not None and not manager.current.is_active
    assert manager.current.pid is None
    assert len(closed) == 1
    assert manager.status()["session"]["is_active"] is False
