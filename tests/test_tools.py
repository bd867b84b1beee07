from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from switchyard.config import SwitchyardSettings
from switchyard.context import build_context
from switchyard.errors import UnknownOperationError
from switchyard.process import ExecutionResult, FakeCliRunner
from switchyard.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, message: str, extra: dict[str, Any] | None = None) -> None:
        self.records.append(("info", message, extra or {}))

    def debug(self, message: str, extra: dict[str, Any] | None = None) -> None:
        self.records.append(("debug", message, extra or {}))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


def cli_result(stdout: str) -> ExecutionResult:
    return ExecutionResult(args=("claude",), returncode=0, stdout=stdout, stderr="")


def build(tmp_path: Path, responses: list[ExecutionResult], *, delay: float = 0):
    settings = SwitchyardSettings(
        working_directory=tmp_path,
        backend_paths=[tmp_path / "backends"],
        simulation_fallback=True,
        simulation_delay=delay,
    )
    runner = FakeCliRunner([cli_result("claude 1.0.3"), *responses])
    context = build_context(settings, runner=runner)
    server = StubServer()
    handles = register_tools(server, context=context)
    return context, server, handles, runner


def test_register_tools_exposes_surface(tmp_path: Path) -> None:
    _, server, _, _ = build(tmp_path, [])

    assert set(server._tools) == {
        "execute_operation",
        "execute_batch",
        "cancel_operation",
        "cancel_all",
        "retry_operation",
        "operation_status",
        "operation_history",
        "list_backends",
        "change_directory",
        "watch_paths",
        "unwatch_paths",
        "operation_insights",
    }


def test_execute_operation_runs_cli_and_caches(tmp_path: Path) -> None:
    _, _, handles, runner = build(tmp_path, [cli_result("Hello\n42 tokens")])
    ctx = StubContext()

    async def scenario():
        first = await handles.execute_operation.fn("claude", "chat", {"message": "hi"}, ctx=ctx)
        second = await handles.execute_operation.fn("claude", "chat", {"message": "hi"}, ctx=ctx)
        return first, second

    first, second = asyncio.run(scenario())

    assert first["ok"] is True
    assert first["result"]["tokens"] == 42
    assert second["from_cache"] is True
    assert runner.invocations == [("--version",), ("chat",)]
    assert ctx.logger.records[0][1] == "Operation finished"

    status = handles.operation_status.fn(first["operation_id"])
    assert status["status"] == "completed"
    assert status["tokens_used"] == 42

    history = handles.operation_history.fn()
    assert history["total"] == 1
    assert history["history"][0]["id"] == first["operation_id"]


def test_execute_operation_rejects_unknown_type(tmp_path: Path) -> None:
    _, _, handles, _ = build(tmp_path, [])

    with pytest.raises(UnknownOperationError):
        asyncio.run(handles.execute_operation.fn("claude", "deploy"))


def test_execute_batch_against_simulated_backends(tmp_path: Path) -> None:
    _, _, handles, _ = build(tmp_path, [])

    payload = asyncio.run(
        handles.execute_batch.fn(
            [
                {"backend_id": "context7", "operation_type": "resolve-library-id", "parameters": {"libraryName": "react"}},
                {"backend_id": "firecrawl", "operation_type": "scrape", "parameters": {"url": "https://example.com"}},
                {"backend_id": "github", "operation_type": "merge-everything"},
            ],
            parallel=True,
        )
    )

    assert payload["requested"] == 3
    assert payload["succeeded"] == 2
    assert payload["results"][0]["outcome"]["result"]["simulated"] is True
    assert payload["results"][2]["success"] is False


def test_list_backends_reports_effective_policies(tmp_path: Path) -> None:
    _, _, handles, _ = build(tmp_path, [])

    catalog = {entry["id"]: entry for entry in handles.list_backends.fn()}

    assert catalog["firecrawl"]["timeout"] == 60
    assert catalog["context7"]["timeout"] == 30
    assert catalog["context7"]["cache_ttl"] == 300
    assert catalog["puppeteer"]["cacheable"] is False
    assert catalog["context7"]["simulated"] is True
    assert catalog["claude"]["simulated"] is False


def test_change_directory_and_watch(tmp_path: Path) -> None:
    context, _, handles, _ = build(tmp_path, [])
    project = tmp_path / "project"
    project.mkdir()

    result = handles.change_directory.fn(str(project))
    assert result["working_directory"] == str(project.resolve())

    async def scenario():
        watched = await handles.watch_paths.fn()
        remaining = await handles.unwatch_paths.fn()
        return watched, remaining

    watched, remaining = asyncio.run(scenario())

    assert watched["added"] == [str(project.resolve())]
    assert remaining["watched"] == []
    assert context.watcher.watched == []


def test_cancel_and_retry_tools(tmp_path: Path) -> None:
    context, _, handles, _ = build(tmp_path, [], delay=0.3)

    async def scenario():
        task = asyncio.create_task(
            handles.execute_operation.fn("puppeteer", "navigate", {"url": "https://example.com"})
        )
        await asyncio.sleep(0.05)
        [running] = context.orchestrator.running()
        cancelled = handles.cancel_all.fn()
        outcome = await task
        retried = await handles.retry_operation.fn(running.id)
        return cancelled, outcome, retried

    cancelled, outcome, retried = asyncio.run(scenario())

    assert cancelled == {"cancelled": 1}
    assert outcome["status"] == "cancelled"
    assert outcome["reason"] == "user"
    assert retried["ok"] is True
    assert retried["result"]["simulated"] is True
    assert handles.cancel_operation.fn(outcome["operation_id"])["cancelled"] is False


def test_operation_insights(tmp_path: Path) -> None:
    _, _, handles, _ = build(tmp_path, [cli_result("done 10 tokens")])

    asyncio.run(handles.execute_operation.fn("claude", "chat", {"message": "hi"}))
    payload = handles.operation_insights.fn(metric="tokens", time_range="hour")

    assert payload["stats"]["completed"] == 1
    assert payload["stats"]["total_tokens"] == 10
    assert payload["insights"]["backends"]["claude"]["success_rate"] == 100.0
    assert len(payload["time_series"]) == 60
    assert payload["cache_entries"] == 1
