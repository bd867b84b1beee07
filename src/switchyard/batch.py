"""Run several operations as one request."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .errors import SwitchyardError
from .orchestrator import OperationOutcome, Orchestrator


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchRequest:
    backend_id: str
    operation_type: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "BatchRequest":
        try:
            backend_id = data["backend_id"]
            operation_type = data["operation_type"]
        except KeyError as exc:
            raise ValueError(f"Batch request is missing '{exc.args[0]}'") from exc
        return cls(
            backend_id=str(backend_id),
            operation_type=str(operation_type),
            parameters=dict(data.get("parameters") or {}),
        )


@dataclass(slots=True)
class BatchItemResult:
    request: BatchRequest
    success: bool
    outcome: OperationOutcome | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend_id": self.request.backend_id,
            "operation_type": self.request.operation_type,
            "success": self.success,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "error": self.error,
        }


class BatchExecutor:
    """Execute a list of requests through an :class:`Orchestrator`.

    In parallel mode every request runs and each item reports its own result.
    In sequential mode requests run in order; with ``stop_on_error`` the batch
    halts after the first failed item and later requests are never started.
    """

    def __init__(self, orchestrator: Orchestrator) -> None:
        self._orchestrator = orchestrator

    async def execute_batch(
        self,
        requests: Iterable[BatchRequest],
        *,
        parallel: bool = False,
        stop_on_error: bool = True,
    ) -> list[BatchItemResult]:
        items = list(requests)
        if parallel:
            settled = await asyncio.gather(
                *(self._run(request) for request in items),
                return_exceptions=True,
            )
            return [self._settle(request, value) for request, value in zip(items, settled)]

        results: list[BatchItemResult] = []
        for request in items:
            try:
                outcome = await self._run(request)
            except SwitchyardError as exc:
                item = self._settle(request, exc)
            else:
                item = self._settle(request, outcome)
            results.append(item)
            if not item.success and stop_on_error:
                logger.info(
                    "Batch halted after failure",
                    extra={
                        "backend_id": request.backend_id,
                        "operation_type": request.operation_type,
                        "skipped": len(items) - len(results),
                    },
                )
                break
        return results

    async def _run(self, request: BatchRequest) -> OperationOutcome:
        return await self._orchestrator.execute(
            request.backend_id,
            request.operation_type,
            request.parameters,
        )

    @staticmethod
    def _settle(request: BatchRequest, value: Any) -> BatchItemResult:
        if isinstance(value, OperationOutcome):
            return BatchItemResult(request=request, success=value.ok, outcome=value, error=value.error)
        if isinstance(value, SwitchyardError):
            return BatchItemResult(request=request, success=False, error=str(value))
        if isinstance(value, BaseException):
            raise value
        raise TypeError(f"Unexpected batch result {type(value).__name__}")


__all__ = ["BatchExecutor", "BatchItemResult", "BatchRequest"]
