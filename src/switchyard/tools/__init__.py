"""Tool registration for the Switchyard MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Literal

from fastmcp import Context, FastMCP

from ..batch import BatchRequest
from ..context import SwitchyardContext
from ..insights import compute_insights, compute_stats, throughput, time_series
from ..orchestrator import summarize


@dataclass(slots=True)
class ToolHandles:
    execute_operation: Any
    execute_batch: Any
    cancel_operation: Any
    cancel_all: Any
    retry_operation: Any
    operation_status: Any
    operation_history: Any
    list_backends: Any
    change_directory: Any
    watch_paths: Any
    unwatch_paths: Any
    operation_insights: Any


def register_tools(server: FastMCP, *, context: SwitchyardContext) -> ToolHandles:
    """Register Switchyard's MCP tools on the server."""

    orchestrator = context.orchestrator

    async def _execute_operation(
        backend_id: str,
        operation_type: str,
        parameters: dict[str, Any] | None = None,
        use_cache: bool | None = None,
        cache_ttl: float | None = None,
        timeout: float | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Run one operation against a backend and return its outcome."""

        outcome = await orchestrator.execute(
            backend_id,
            operation_type,
            parameters,
            use_cache=use_cache,
            cache_ttl=cache_ttl,
            timeout=timeout,
        )
        _emit_log(
            ctx,
            "info",
            "Operation finished",
            extra={
                "backend_id": backend_id,
                "operation_type": operation_type,
                "operation_id": outcome.operation_id,
                "status": outcome.status.value,
                "from_cache": outcome.from_cache,
            },
        )
        return outcome.to_dict()

    async def _execute_batch(
        requests: list[dict[str, Any]],
        parallel: bool = False,
        stop_on_error: bool = True,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        batch = [BatchRequest.from_mapping(item) for item in requests]
        results = await context.batch.execute_batch(batch, parallel=parallel, stop_on_error=stop_on_error)
        succeeded = sum(1 for item in results if item.success)
        _emit_log(
            ctx,
            "info",
            "Batch finished",
            extra={"requested": len(batch), "executed": len(results), "succeeded": succeeded},
        )
        return {
            "results": [item.to_dict() for item in results],
            "requested": len(batch),
            "executed": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        }

    tool_execute = server.tool(
        name="execute_operation",
        description=(
            "Run a typed operation on a backend (the assistant CLI or an MCP tool server). "
            "Cached results are returned without dispatch; timeouts and cancellations are "
            "reported in the outcome."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "edit-file, create-file and execute-shell change the working tree",
            }
        },
    )(_execute_operation)

    tool_batch = server.tool(
        name="execute_batch",
        description=(
            "Run several operations at once, either in parallel or sequentially with optional "
            "stop-on-error."
        ),
    )(_execute_batch)

    def _cancel_operation(operation_id: str, ctx: Context | None = None) -> dict[str, Any]:
        cancelled = orchestrator.cancel(operation_id)
        _emit_log(ctx, "info", "Cancel requested", extra={"operation_id": operation_id, "cancelled": cancelled})
        return {"operation_id": operation_id, "cancelled": cancelled}

    def _cancel_all(ctx: Context | None = None) -> dict[str, Any]:
        count = orchestrator.cancel_all()
        _emit_log(ctx, "info", "Cancelled running operations", extra={"count": count})
        return {"cancelled": count}

    async def _retry_operation(operation_id: str, ctx: Context | None = None) -> dict[str, Any]:
        outcome = await orchestrator.retry(operation_id)
        _emit_log(
            ctx,
            "info",
            "Operation retried",
            extra={"retry_of": operation_id, "operation_id": outcome.operation_id},
        )
        return outcome.to_dict()

    tool_cancel = server.tool(
        name="cancel_operation",
        description="Cancel a running operation; finished operations are left untouched.",
    )(_cancel_operation)

    tool_cancel_all = server.tool(
        name="cancel_all",
        description="Cancel every running operation.",
    )(_cancel_all)

    tool_retry = server.tool(
        name="retry_operation",
        description="Re-run a failed or cancelled operation with its original parameters.",
    )(_retry_operation)

    def _operation_status(operation_id: str, ctx: Context | None = None) -> dict[str, Any]:
        operation = orchestrator.get_operation(operation_id)
        _emit_log(
            ctx,
            "debug",
            "Operation status",
            extra={"operation_id": operation_id, "status": operation.status.value},
        )
        return operation.to_dict()

    def _operation_history(
        backend_id: str | None = None,
        operation_type: str | None = None,
        limit: int = 50,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        finished = orchestrator.history(backend_id, operation_type)
        return {
            "running": summarize(orchestrator.running()),
            "history": summarize(finished[: max(limit, 0)]),
            "total": len(finished),
        }

    def _list_backends(ctx: Context | None = None) -> list[dict[str, Any]]:
        catalog = []
        for adapter in orchestrator.backends:
            entry = adapter.describe()
            entry["timeout"] = orchestrator.timeout_for(adapter)
            entry["cache_ttl"] = orchestrator.cache_ttl_for(adapter)
            catalog.append(entry)
        _emit_log(ctx, "debug", "Listing backends", extra={"count": len(catalog)})
        return catalog

    tool_status = server.tool(
        name="operation_status",
        description="Fetch the current record for one operation.",
    )(_operation_status)

    tool_history = server.tool(
        name="operation_history",
        description="List running operations and finished ones, newest first, optionally filtered.",
    )(_operation_history)

    tool_backends = server.tool(
        name="list_backends",
        description="List configured backends with their status, operations and policies.",
    )(_list_backends)

    def _change_directory(path: str, ctx: Context | None = None) -> dict[str, Any]:
        target = context.sessions.change_directory(path)
        _emit_log(ctx, "info", "Working directory changed", extra={"path": str(target)})
        return {"working_directory": str(target)}

    async def _watch_paths(paths: list[str] | None = None, ctx: Context | None = None) -> dict[str, Any]:
        targets = paths or [str(context.sessions.working_directory)]
        added = context.watcher.watch(targets)
        _emit_log(ctx, "info", "Watching paths", extra={"added": [str(path) for path in added]})
        return {
            "added": [str(path) for path in added],
            "watched": [str(path) for path in context.watcher.watched],
        }

    async def _unwatch_paths(path: str | None = None, ctx: Context | None = None) -> dict[str, Any]:
        context.watcher.unwatch(path)
        return {"watched": [str(item) for item in context.watcher.watched]}

    tool_cd = server.tool(
        name="change_directory",
        description="Set the working directory used by later CLI operations.",
    )(_change_directory)

    tool_watch = server.tool(
        name="watch_paths",
        description="Start reporting file changes under the given directories (default: working directory).",
    )(_watch_paths)

    tool_unwatch = server.tool(
        name="unwatch_paths",
        description="Stop watching one directory, or all of them when no path is given.",
    )(_unwatch_paths)

    def _operation_insights(
        backend_id: str | None = None,
        metric: Literal["operations", "response_time", "errors", "tokens"] | None = None,
        time_range: Literal["hour", "day", "week", "month"] = "day",
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        operations = orchestrator.operations()
        if backend_id is not None:
            operations = [operation for operation in operations if operation.backend_id == backend_id]
        payload: dict[str, Any] = {
            "stats": compute_stats(operations),
            "insights": compute_insights(operations),
            "throughput_per_minute": throughput(operations, timedelta(hours=1)),
            "cache_entries": len(context.cache),
        }
        if metric is not None:
            payload["time_series"] = time_series(operations, metric, time_range=time_range)
        return payload

    tool_insights = server.tool(
        name="operation_insights",
        description="Summarize success rates, durations, token usage and throughput across operations.",
    )(_operation_insights)

    return ToolHandles(
        execute_operation=tool_execute,
        execute_batch=tool_batch,
        cancel_operation=tool_cancel,
        cancel_all=tool_cancel_all,
        retry_operation=tool_retry,
        operation_status=tool_status,
        operation_history=tool_history,
        list_backends=tool_backends,
        change_directory=tool_cd,
        watch_paths=tool_watch,
        unwatch_paths=tool_unwatch,
        operation_insights=tool_insights,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
