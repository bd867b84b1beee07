"""Typed, cached, cancellable operations over registered backends."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping
from uuid import uuid4

from .backends import BackendAdapter
from .cache import ResultCache, make_cache_key
from .cancellation import CancelReason, CancelToken
from .errors import (
    BackendUnavailableError,
    InvalidTransitionError,
    OperationNotFoundError,
    SpawnError,
    UnknownBackendError,
)
from .events import EventBus, EventKind, OperationNotice


logger = logging.getLogger(__name__)


class OperationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED})

_TRANSITIONS: dict[OperationStatus, frozenset[OperationStatus]] = {
    OperationStatus.PENDING: frozenset(
        {OperationStatus.RUNNING, OperationStatus.FAILED, OperationStatus.CANCELLED}
    ),
    OperationStatus.RUNNING: TERMINAL_STATUSES,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_operation_id() -> str:
    return f"op-{uuid4().hex[:12]}"


@dataclass(slots=True)
class Operation:
    """One tracked request against a backend."""

    id: str
    backend_id: str
    operation_type: str
    parameters: dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)
    status: OperationStatus = OperationStatus.PENDING
    result: dict[str, Any] | None = None
    error: str | None = None
    cancel_reason: CancelReason | None = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration: float | None = None
    tokens_used: int | None = None
    cost: float | None = None
    retry_of: str | None = None

    def transition(self, status: OperationStatus) -> None:
        if status not in _TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransitionError(
                f"Operation {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status is OperationStatus.RUNNING:
            self.started_at = _utcnow()
        elif status.terminal:
            self.ended_at = _utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "backend_id": self.backend_id,
            "operation_type": self.operation_type,
            "parameters": self.parameters,
            "options": self.options,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "cancel_reason": self.cancel_reason.value if self.cancel_reason else None,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
            "tokens_used": self.tokens_used,
            "cost": self.cost,
            "retry_of": self.retry_of,
        }


@dataclass(slots=True)
class OperationOutcome:
    """What a caller gets back for every dispatched or cached request."""

    operation_id: str | None
    status: OperationStatus
    result: dict[str, Any] | None = None
    error: str | None = None
    reason: CancelReason | None = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.status is OperationStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "status": self.status.value,
            "ok": self.ok,
            "result": self.result,
            "error": self.error,
            "reason": self.reason.value if self.reason else None,
            "from_cache": self.from_cache,
        }


_NOTICE_KINDS = {
    OperationStatus.RUNNING: EventKind.OPERATION_STARTED,
    OperationStatus.COMPLETED: EventKind.OPERATION_COMPLETED,
    OperationStatus.FAILED: EventKind.OPERATION_FAILED,
    OperationStatus.CANCELLED: EventKind.OPERATION_CANCELLED,
}


class Orchestrator:
    """Dispatch operations to backends with caching, deadlines and cancellation.

    Every dispatched request owns one :class:`CancelToken`. The backend call runs
    as its own task; whichever of the task or the token finishes first decides
    the outcome. Concurrent identical requests are not coalesced.
    """

    def __init__(
        self,
        *,
        cache: ResultCache | None = None,
        bus: EventBus | None = None,
        default_timeout: float = 30.0,
        default_cache_ttl: float = 300.0,
    ) -> None:
        if default_timeout <= 0:
            raise ValueError("default_timeout must be > 0")
        if default_cache_ttl < 0:
            raise ValueError("default_cache_ttl must be >= 0")
        self.cache = cache if cache is not None else ResultCache()
        self.bus = bus if bus is not None else EventBus()
        self.default_timeout = default_timeout
        self.default_cache_ttl = default_cache_ttl
        self._backends: dict[str, BackendAdapter] = {}
        self._operations: dict[str, Operation] = {}
        self._history: list[Operation] = []
        self._tokens: dict[str, CancelToken] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    # ------------------------------------------------------------------
    # Backends

    def register_backend(self, adapter: BackendAdapter) -> None:
        self._backends[adapter.backend_id] = adapter
        logger.debug("Registered backend", extra={"backend_id": adapter.backend_id})

    def backend(self, backend_id: str) -> BackendAdapter:
        try:
            return self._backends[backend_id]
        except KeyError as exc:
            raise UnknownBackendError(f"Unknown backend '{backend_id}'") from exc

    @property
    def backends(self) -> list[BackendAdapter]:
        return list(self._backends.values())

    async def connect(self, backend_id: str) -> bool:
        return await self.backend(backend_id).connect()

    async def connect_all(self) -> dict[str, bool]:
        adapters = self.backends
        results = await asyncio.gather(*(adapter.connect() for adapter in adapters))
        return {adapter.backend_id: bool(ok) for adapter, ok in zip(adapters, results)}

    def timeout_for(self, adapter: BackendAdapter) -> float:
        return adapter.config.timeout if adapter.config.timeout is not None else self.default_timeout

    def cache_ttl_for(self, adapter: BackendAdapter) -> float:
        return adapter.config.cache_ttl if adapter.config.cache_ttl is not None else self.default_cache_ttl

    # ------------------------------------------------------------------
    # Execution

    async def execute(
        self,
        backend_id: str,
        operation_type: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool | None = None,
        cache_ttl: float | None = None,
        timeout: float | None = None,
    ) -> OperationOutcome:
        """Run one operation and return its outcome.

        Raises ``UnknownBackendError``/``BackendUnavailableError`` or
        ``UnknownOperationError`` before anything is recorded, and
        ``SpawnError`` when the backend could not start the work at all.
        Runtime failures, timeouts and cancellations come back as the outcome.
        """

        return await self._dispatch(
            backend_id,
            operation_type,
            dict(parameters or {}),
            {"use_cache": use_cache, "cache_ttl": cache_ttl, "timeout": timeout},
        )

    async def _dispatch(
        self,
        backend_id: str,
        operation_type: str,
        parameters: dict[str, Any],
        options: dict[str, Any],
        *,
        retry_of: str | None = None,
    ) -> OperationOutcome:
        adapter = self.backend(backend_id)
        adapter.validate(operation_type)

        deadline = options.get("timeout")
        deadline = self.timeout_for(adapter) if deadline is None else float(deadline)
        if deadline <= 0:
            raise ValueError("timeout must be > 0")
        ttl = options.get("cache_ttl")
        ttl = self.cache_ttl_for(adapter) if ttl is None else float(ttl)
        if ttl < 0:
            raise ValueError("cache_ttl must be >= 0")

        use_cache = options.get("use_cache")
        caching = adapter.is_cacheable(operation_type) and use_cache is not False
        cache_key = make_cache_key(backend_id, operation_type, parameters)

        if caching:
            entry = self.cache.get(cache_key)
            if entry is not None:
                logger.info(
                    "Cache hit",
                    extra={"backend_id": backend_id, "operation_type": operation_type, "hits": entry.hit_count},
                )
                return OperationOutcome(
                    operation_id=None,
                    status=OperationStatus.COMPLETED,
                    result=entry.value,
                    from_cache=True,
                )

        if not await adapter.ensure_ready():
            raise BackendUnavailableError(
                adapter.last_error or f"Backend '{backend_id}' is not available"
            )

        operation = Operation(
            id=_new_operation_id(),
            backend_id=backend_id,
            operation_type=operation_type,
            parameters=parameters,
            options=dict(options),
            retry_of=retry_of,
        )
        self._operations[operation.id] = operation
        token = CancelToken(deadline)
        self._tokens[operation.id] = token

        operation.transition(OperationStatus.RUNNING)
        self._notify(operation)
        logger.info(
            "Operation started",
            extra={
                "operation_id": operation.id,
                "backend_id": backend_id,
                "operation_type": operation_type,
                "timeout": deadline,
            },
        )

        started = time.perf_counter()
        task = asyncio.ensure_future(adapter.run(operation_type, parameters, operation_id=operation.id))
        self._tasks[operation.id] = task
        waiter = asyncio.ensure_future(token.wait())
        token.start()

        try:
            try:
                await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                token.cancel(CancelReason.USER)
                await self._stop(task)
                self._finish_cancelled(operation, token, time.perf_counter() - started)
                raise

            if not task.done():
                await self._stop(task)
                self._finish_cancelled(operation, token, time.perf_counter() - started)
                return self._outcome(operation)

            try:
                payload = task.result()
            except asyncio.CancelledError:
                self._finish_cancelled(operation, token, time.perf_counter() - started)
                return self._outcome(operation)
            except SpawnError as exc:
                self._operations.pop(operation.id, None)
                operation.transition(OperationStatus.FAILED)
                operation.duration = time.perf_counter() - started
                operation.error = str(exc)
                self._notify(operation)
                logger.warning(
                    "Operation could not be started",
                    extra={"operation_id": operation.id, "backend_id": backend_id},
                )
                raise
            except Exception as exc:
                logger.exception(
                    "Operation raised",
                    extra={"operation_id": operation.id, "backend_id": backend_id},
                )
                self._finish(
                    operation,
                    OperationStatus.FAILED,
                    duration=time.perf_counter() - started,
                    error=str(exc) or exc.__class__.__name__,
                )
                return self._outcome(operation)

            duration = payload.get("duration") or (time.perf_counter() - started)
            if payload.get("success"):
                operation.tokens_used = payload.get("tokens")
                operation.cost = payload.get("cost")
                self._finish(operation, OperationStatus.COMPLETED, duration=duration, result=payload)
                if caching:
                    self.cache.set(
                        cache_key,
                        payload,
                        ttl,
                        backend_id=backend_id,
                        operation_type=operation_type,
                    )
            else:
                self._finish(
                    operation,
                    OperationStatus.FAILED,
                    duration=duration,
                    result=payload,
                    error=payload.get("error") or "Operation failed",
                )
            return self._outcome(operation)
        finally:
            token.dispose()
            waiter.cancel()
            self._tokens.pop(operation.id, None)
            self._tasks.pop(operation.id, None)

    @staticmethod
    async def _stop(task: asyncio.Task[Any]) -> None:
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Backend task raised while stopping", exc_info=task.exception())

    def _finish_cancelled(self, operation: Operation, token: CancelToken, duration: float) -> None:
        reason = token.reason or CancelReason.USER
        operation.cancel_reason = reason
        if reason is CancelReason.TIMEOUT:
            error = f"Operation timed out after {token.timeout:g}s"
        else:
            error = "Operation cancelled"
        self._finish(operation, OperationStatus.CANCELLED, duration=duration, error=error)

    def _finish(
        self,
        operation: Operation,
        status: OperationStatus,
        *,
        duration: float,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        operation.transition(status)
        operation.duration = duration
        operation.result = result
        operation.error = error
        self._history.append(operation)
        self._notify(operation)
        level = logging.INFO if status is OperationStatus.COMPLETED else logging.WARNING
        logger.log(
            level,
            "Operation %s",
            status.value,
            extra={
                "operation_id": operation.id,
                "backend_id": operation.backend_id,
                "operation_type": operation.operation_type,
                "duration": duration,
                "error": error,
            },
        )

    def _notify(self, operation: Operation) -> None:
        self.bus.publish(
            _NOTICE_KINDS[operation.status],
            OperationNotice(
                operation_id=operation.id,
                backend_id=operation.backend_id,
                operation_type=operation.operation_type,
                status=operation.status.value,
                duration=operation.duration,
                error=operation.error,
                reason=operation.cancel_reason.value if operation.cancel_reason else None,
            ),
        )

    @staticmethod
    def _outcome(operation: Operation) -> OperationOutcome:
        return OperationOutcome(
            operation_id=operation.id,
            status=operation.status,
            result=operation.result,
            error=operation.error,
            reason=operation.cancel_reason,
        )

    # ------------------------------------------------------------------
    # Control

    def cancel(self, operation_id: str) -> bool:
        """Request cancellation; returns False when the operation already finished."""

        operation = self.get_operation(operation_id)
        if operation.status.terminal:
            return False
        token = self._tokens.get(operation_id)
        if token is None:
            return False
        fired = token.cancel(CancelReason.USER)
        if fired:
            logger.info("Cancellation requested", extra={"operation_id": operation_id})
        return fired

    def cancel_all(self) -> int:
        return sum(1 for operation in self.running() if self.cancel(operation.id))

    async def retry(self, operation_id: str) -> OperationOutcome:
        """Re-run a failed or cancelled operation under a new id."""

        original = self.get_operation(operation_id)
        if original.status not in (OperationStatus.FAILED, OperationStatus.CANCELLED):
            raise InvalidTransitionError(
                f"Only failed or cancelled operations can be retried; {operation_id} is {original.status.value}"
            )
        logger.info("Retrying operation", extra={"operation_id": operation_id})
        return await self._dispatch(
            original.backend_id,
            original.operation_type,
            dict(original.parameters),
            dict(original.options),
            retry_of=original.id,
        )

    async def shutdown(self) -> None:
        """Cancel everything in flight and wait for the backends to stop."""

        tasks = list(self._tasks.values())
        self.cancel_all()
        if tasks:
            await asyncio.wait(tasks)

    # ------------------------------------------------------------------
    # Queries

    def get_operation(self, operation_id: str) -> Operation:
        operation = self._operations.get(operation_id)
        if operation is not None:
            return operation
        for candidate in self._history:
            if candidate.id == operation_id:
                return candidate
        raise OperationNotFoundError(f"Unknown operation '{operation_id}'")

    def history(self, backend_id: str | None = None, operation_type: str | None = None) -> list[Operation]:
        """Finished operations, newest first."""

        return [
            operation
            for operation in reversed(self._history)
            if (backend_id is None or operation.backend_id == backend_id)
            and (operation_type is None or operation.operation_type == operation_type)
        ]

    def running(self) -> list[Operation]:
        return [operation for operation in self._operations.values() if operation.status is OperationStatus.RUNNING]

    def operations(self) -> list[Operation]:
        """Every known operation, tracked or historical, oldest first."""

        merged: dict[str, Operation] = {operation.id: operation for operation in self._history}
        merged.update(self._operations)
        return sorted(merged.values(), key=lambda operation: operation.created_at)

    def clear_completed(self) -> int:
        finished = [key for key, operation in self._operations.items() if operation.status.terminal]
        for key in finished:
            del self._operations[key]
        return len(finished)

    def clear_history(self) -> int:
        count = len(self._history)
        self._history.clear()
        return count


def summarize(operations: Iterable[Operation]) -> list[dict[str, Any]]:
    return [operation.to_dict() for operation in operations]


__all__ = [
    "Operation",
    "OperationOutcome",
    "OperationStatus",
    "Orchestrator",
    "TERMINAL_STATUSES",
    "summarize",
]
