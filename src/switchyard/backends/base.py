"""Adapter interface every backend implements."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from ..errors import UnknownOperationError
from .models import BackendConfig


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class BackendAdapter:
    """Base class for objects the orchestrator dispatches operations to.

    ``run`` returns a payload dict that always carries ``success`` and
    ``duration``; a payload with ``success`` false is a runtime failure and
    should carry an ``error`` message. Adapters raise ``SpawnError`` when the
    work could not be started at all, and ``BackendCallError`` for failures the
    backend reports out of band.
    """

    def __init__(self, config: BackendConfig) -> None:
        self.config = config
        self.status = ConnectionStatus.DISCONNECTED
        self.last_error: str | None = None

    @property
    def backend_id(self) -> str:
        return self.config.id

    @property
    def operation_types(self) -> tuple[str, ...]:
        return tuple(self.config.operations)

    @property
    def simulated(self) -> bool:
        return False

    def validate(self, operation_type: str) -> None:
        if operation_type not in self.config.operations:
            raise UnknownOperationError(
                f"Backend '{self.backend_id}' does not support operation '{operation_type}'"
            )

    def is_cacheable(self, operation_type: str) -> bool:
        return self.config.is_cacheable(operation_type)

    async def connect(self) -> bool:
        self.status = ConnectionStatus.CONNECTED
        self.last_error = None
        return True

    async def disconnect(self) -> None:
        self.status = ConnectionStatus.DISCONNECTED

    async def ensure_ready(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    async def run(
        self,
        operation_type: str,
        parameters: Mapping[str, Any],
        *,
        operation_id: str,
    ) -> dict[str, Any]:
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.backend_id,
            "name": self.config.name,
            "kind": self.config.kind,
            "status": self.status.value,
            "simulated": self.simulated,
            "operations": list(self.operation_types),
            "timeout": self.config.timeout,
            "cache_ttl": self.config.cache_ttl,
            "cacheable": self.config.cacheable,
            "non_cacheable_operations": list(self.config.non_cacheable_operations),
            "capabilities": list(self.config.capabilities),
            "last_error": self.last_error,
        }


__all__ = ["BackendAdapter", "ConnectionStatus"]
