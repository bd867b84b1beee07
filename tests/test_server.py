from __future__ import annotations

import asyncio
import json
from pathlib import Path

from fastmcp import Client

from switchyard.config import SwitchyardSettings
from switchyard.context import build_context
from switchyard.process import ExecutionResult, FakeCliRunner
from switchyard.server import configure_logging, create_server


def make_settings(tmp_path: Path, **overrides) -> SwitchyardSettings:
    values = {
        "working_directory": tmp_path,
        "backend_paths": [tmp_path / "backends"],
        "simulation_fallback": True,
        "simulation_delay": 0,
    }
    values.update(overrides)
    return SwitchyardSettings(**values)


def test_create_server_connects_backends_and_reports_status(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    runner = FakeCliRunner(
        [ExecutionResult(args=("claude", "--version"), returncode=0, stdout="1.0.3 (Claude Code)", stderr="")]
    )
    context = build_context(settings, runner=runner)

    server = create_server(settings, context=context)

    assert getattr(server, "switchyard_context") is context
    assert context.orchestrator.cache is context.cache
    assert context.orchestrator.bus is context.bus
    connected = getattr(server, "connected_backends")
    assert connected["claude"] is True
    assert connected["context7"] is True

    async def scenario():
        async with Client(server) as client:
            tools = await client.list_tools()
            contents = await client.read_resource("resource://switchyard/status")
        return tools, contents

    tools, contents = asyncio.run(scenario())

    assert "execute_operation" in {tool.name for tool in tools}
    payload = json.loads(contents[0].text)
    assert payload["cli"]["available"] is True
    assert payload["cli"]["session"]["is_active"] is True
    assert payload["backends"]["firecrawl"]["simulated"] is True
    assert payload["operations"]["running"] == 0


def test_missing_cli_without_simulation_is_unavailable(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path))
    settings = make_settings(tmp_path, simulation_fallback=False)

    context = build_context(settings)
    server = create_server(settings, context=context)

    assert context.runner is None
    assert context.runner_error
    assert getattr(server, "connected_backends")["claude"] is False
    assert context.sessions.status()["available"] is False


def test_missing_cli_with_simulation_uses_simulated_runner(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path))
    settings = make_settings(tmp_path)

    context = build_context(settings)
    asyncio.run(context.start())

    assert context.runner is not None and context.runner.simulated
    assert context.sessions.status()["simulated"] is True


def test_configure_logging_accepts_level() -> None:
    configure_logging("DEBUG")
