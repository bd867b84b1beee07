"""Adapters for MCP tool servers."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Mapping

from fastmcp import Client

from ..errors import BackendCallError, SpawnError
from .base import BackendAdapter, ConnectionStatus
from .models import BackendConfig


logger = logging.getLogger(__name__)


def _content_text(result: Any) -> str:
    parts = []
    for item in getattr(result, "content", None) or []:
        text = getattr(item, "text", None)
        if text:
            parts.append(text)
    return "\n".join(parts)


class McpToolBackend(BackendAdapter):
    """Call tools on a remote MCP server through ``fastmcp.Client``.

    Each operation type maps onto one tool (see ``BackendConfig.tool_name``).
    A fresh client session is opened per call so a dropped server never leaves
    a half-open transport behind.
    """

    def __init__(
        self,
        config: BackendConfig,
        *,
        client_factory: Callable[[str], Any] = Client,
    ) -> None:
        super().__init__(config)
        self._client_factory = client_factory

    async def connect(self) -> bool:
        endpoint = self.config.endpoint
        if not endpoint:
            self.status = ConnectionStatus.ERROR
            self.last_error = f"Backend '{self.backend_id}' has no endpoint configured"
            return False

        self.status = ConnectionStatus.CONNECTING
        try:
            async with self._client_factory(endpoint) as client:
                reachable = await client.ping()
        except Exception as exc:  # transport errors vary by endpoint type
            self.status = ConnectionStatus.ERROR
            self.last_error = str(exc) or exc.__class__.__name__
            logger.warning(
                "MCP backend unreachable",
                extra={"backend_id": self.backend_id, "endpoint": endpoint, "error": self.last_error},
            )
            return False

        if reachable is False:
            self.status = ConnectionStatus.ERROR
            self.last_error = "Ping was not acknowledged"
            return False

        self.status = ConnectionStatus.CONNECTED
        self.last_error = None
        logger.info("MCP backend connected", extra={"backend_id": self.backend_id, "endpoint": endpoint})
        return True

    async def ensure_ready(self) -> bool:
        if self.status is not ConnectionStatus.CONNECTED:
            await self.connect()
        return self.status is ConnectionStatus.CONNECTED

    async def run(
        self,
        operation_type: str,
        parameters: Mapping[str, Any],
        *,
        operation_id: str,
    ) -> dict[str, Any]:
        endpoint = self.config.endpoint
        if not endpoint:
            raise SpawnError(f"Backend '{self.backend_id}' has no endpoint configured")

        tool = self.config.tool_name(operation_type)
        started = time.perf_counter()
        try:
            async with self._client_factory(endpoint) as client:
                result = await client.call_tool(tool, dict(parameters), raise_on_error=False)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.status = ConnectionStatus.ERROR
            self.last_error = str(exc) or exc.__class__.__name__
            raise BackendCallError(f"Tool call '{tool}' on '{self.backend_id}' failed: {self.last_error}") from exc

        duration = time.perf_counter() - started
        output = _content_text(result)
        is_error = bool(getattr(result, "is_error", False))
        logger.debug(
            "MCP tool call finished",
            extra={"operation_id": operation_id, "backend_id": self.backend_id, "tool": tool, "error": is_error},
        )
        return {
            "success": not is_error,
            "output": output,
            "data": getattr(result, "structured_content", None),
            "error": (output or f"Tool '{tool}' reported an error") if is_error else None,
            "tool": tool,
            "duration": duration,
            "simulated": False,
        }


class SimulatedServiceBackend(BackendAdapter):
    """Stand-in for an MCP backend that has no reachable endpoint.

    Results are clearly labelled as simulated and echo the request; nothing is
    fabricated beyond that.
    """

    def __init__(self, config: BackendConfig, *, delay: float = 0.5) -> None:
        super().__init__(config)
        self._delay = max(0.0, delay)

    @property
    def simulated(self) -> bool:
        return True

    async def connect(self) -> bool:
        self.status = ConnectionStatus.CONNECTED
        self.last_error = None
        return True

    async def ensure_ready(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED or await self.connect()

    async def run(
        self,
        operation_type: str,
        parameters: Mapping[str, Any],
        *,
        operation_id: str,
    ) -> dict[str, Any]:
        started = time.perf_counter()
        await asyncio.sleep(self._delay)
        return {
            "success": True,
            "output": f"[SIMULATED] {self.backend_id}:{operation_type}",
            "data": {"parameters": dict(parameters)},
            "error": None,
            "tool": self.config.tool_name(operation_type),
            "duration": time.perf_counter() - started,
            "simulated": True,
        }


__all__ = ["McpToolBackend", "SimulatedServiceBackend"]
