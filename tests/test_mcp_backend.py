from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from switchyard.backends import BackendConfig, ConnectionStatus, McpToolBackend, SimulatedServiceBackend
from switchyard.errors import BackendCallError, SpawnError


class StubClient:
    """Mimics the async-context-manager surface of ``fastmcp.Client``."""

    calls: list[tuple[str, dict[str, Any]]] = []

    def __init__(self, endpoint: str, *, reachable: bool = True, result: Any = None, error: Exception | None = None):
        self.endpoint = endpoint
        self._reachable = reachable
        self._result = result
        self._error = error

    async def __aenter__(self) -> "StubClient":
        if not self._reachable:
            raise ConnectionError("connection refused")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def ping(self) -> bool:
        return True

    async def call_tool(self, name: str, arguments: dict[str, Any], raise_on_error: bool = True) -> Any:
        StubClient.calls.append((name, arguments))
        if self._error is not None:
            raise self._error
        return self._result


def config(endpoint: str | None = "http://localhost:9000/mcp") -> BackendConfig:
    return BackendConfig(
        id="docs",
        endpoint=endpoint,
        operations=["get-library-docs"],
        tools={"get-library-docs": "get_docs"},
    )


def text_result(text: str, *, is_error: bool = False) -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(text=text)],
        structured_content={"text": text},
        is_error=is_error,
    )


def test_connect_pings_endpoint() -> None:
    backend = McpToolBackend(config(), client_factory=lambda endpoint: StubClient(endpoint))

    assert asyncio.run(backend.connect()) is True
    assert backend.status is ConnectionStatus.CONNECTED


def test_unreachable_endpoint_marks_error() -> None:
    backend = McpToolBackend(config(), client_factory=lambda endpoint: StubClient(endpoint, reachable=False))

    assert asyncio.run(backend.ensure_ready()) is False
    assert backend.status is ConnectionStatus.ERROR
    assert "connection refused" in (backend.last_error or "")


def test_missing_endpoint_is_unavailable() -> None:
    backend = McpToolBackend(config(endpoint=None))

    assert asyncio.run(backend.connect()) is False
    assert backend.status is ConnectionStatus.ERROR
    with pytest.raises(SpawnError):
        asyncio.run(backend.run("get-library-docs", {}, operation_id="op-1"))


def test_run_maps_operation_to_tool() -> None:
    StubClient.calls.clear()
    backend = McpToolBackend(
        config(),
        client_factory=lambda endpoint: StubClient(endpoint, result=text_result("docs body")),
    )

    payload = asyncio.run(backend.run("get-library-docs", {"library": "react"}, operation_id="op-1"))

    assert StubClient.calls == [("get_docs", {"library": "react"})]
    assert payload["success"] is True
    assert payload["output"] == "docs body"
    assert payload["data"] == {"text": "docs body"}
    assert payload["simulated"] is False


def test_tool_error_is_failed_payload() -> None:
    backend = McpToolBackend(
        config(),
        client_factory=lambda endpoint: StubClient(endpoint, result=text_result("rate limited", is_error=True)),
    )

    payload = asyncio.run(backend.run("get-library-docs", {}, operation_id="op-1"))

    assert payload["success"] is False
    assert payload["error"] == "rate limited"


def test_transport_error_raises_call_error() -> None:
    backend = McpToolBackend(
        config(),
        client_factory=lambda endpoint: StubClient(endpoint, error=OSError("reset")),
    )

    with pytest.raises(BackendCallError):
        asyncio.run(backend.run("get-library-docs", {}, operation_id="op-1"))
    assert backend.status is ConnectionStatus.ERROR


def test_simulated_backend_labels_payload() -> None:
    backend = SimulatedServiceBackend(config(endpoint=None), delay=0)

    async def scenario():
        assert await backend.ensure_ready()
        return await backend.run("get-library-docs", {"library": "react"}, operation_id="op-1")

    payload = asyncio.run(scenario())

    assert backend.simulated
    assert payload["simulated"] is True
    assert payload["output"].startswith("[SIMULATED]")
    assert payload["data"] == {"parameters": {"library": "react"}}
