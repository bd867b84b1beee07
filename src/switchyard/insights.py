"""Read-only statistics over operation records."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Literal, Sequence

from .orchestrator import Operation, OperationStatus


Metric = Literal["operations", "response_time", "errors", "tokens"]
TimeRange = Literal["hour", "day", "week", "month"]

# time range -> (bucket count, bucket width)
TIME_RANGES: dict[str, tuple[int, timedelta]] = {
    "hour": (60, timedelta(minutes=1)),
    "day": (24, timedelta(hours=1)),
    "week": (7, timedelta(days=1)),
    "month": (30, timedelta(days=1)),
}


def _started(operation: Operation) -> datetime:
    return operation.started_at or operation.created_at


def _success_rate(completed: int, failed: int) -> float:
    finished = completed + failed
    return (completed / finished) * 100 if finished else 100.0


def _average_duration(operations: Sequence[Operation]) -> float:
    completed = [op for op in operations if op.status is OperationStatus.COMPLETED]
    if not completed:
        return 0.0
    return sum(op.duration or 0.0 for op in completed) / len(completed)


def _count(operations: Iterable[Operation], status: OperationStatus) -> int:
    return sum(1 for op in operations if op.status is status)


def compute_stats(operations: Iterable[Operation], now: datetime | None = None) -> dict[str, Any]:
    """Totals, per-status counts and success rate.

    The success rate only considers finished work (completed vs failed) and is
    100 when nothing has finished yet.
    """

    ops = list(operations)
    now = now or datetime.now(timezone.utc)
    completed = _count(ops, OperationStatus.COMPLETED)
    failed = _count(ops, OperationStatus.FAILED)
    return {
        "total": len(ops),
        "pending": _count(ops, OperationStatus.PENDING),
        "running": _count(ops, OperationStatus.RUNNING),
        "completed": completed,
        "failed": failed,
        "cancelled": _count(ops, OperationStatus.CANCELLED),
        "success_rate": _success_rate(completed, failed),
        "average_duration": _average_duration(ops),
        "total_tokens": sum(op.tokens_used or 0 for op in ops),
        "total_cost": sum(op.cost or 0.0 for op in ops),
        "operations_today": sum(1 for op in ops if _started(op).date() == now.date()),
    }


def _performance(operations: Sequence[Operation]) -> dict[str, Any]:
    completed = _count(operations, OperationStatus.COMPLETED)
    failed = _count(operations, OperationStatus.FAILED)
    return {
        "total": len(operations),
        "completed": completed,
        "failed": failed,
        "success_rate": _success_rate(completed, failed),
        "average_duration": _average_duration(operations),
    }


def _brief(operation: Operation) -> dict[str, Any]:
    return {
        "id": operation.id,
        "backend_id": operation.backend_id,
        "operation_type": operation.operation_type,
        "duration": operation.duration,
    }


def compute_insights(operations: Iterable[Operation], limit: int = 10) -> dict[str, Any]:
    ops = list(operations)
    by_backend: dict[str, list[Operation]] = defaultdict(list)
    by_type: dict[str, list[Operation]] = defaultdict(list)
    for op in ops:
        by_backend[op.backend_id].append(op)
        by_type[op.operation_type].append(op)

    completed = [op for op in ops if op.status is OperationStatus.COMPLETED]
    ordered = sorted(completed, key=lambda op: op.duration or 0.0)
    return {
        "backends": {key: _performance(group) for key, group in by_backend.items()},
        "operation_types": {key: _performance(group) for key, group in by_type.items()},
        "slowest": [_brief(op) for op in reversed(ordered[-limit:])] if limit > 0 else [],
        "fastest": [_brief(op) for op in ordered[:limit]],
    }


def throughput(operations: Iterable[Operation], window: timedelta, now: datetime | None = None) -> float:
    """Completed operations per minute over the trailing ``window``."""

    if window <= timedelta(0):
        raise ValueError("window must be positive")
    now = now or datetime.now(timezone.utc)
    start = now - window
    finished = sum(
        1
        for op in operations
        if op.status is OperationStatus.COMPLETED and op.ended_at is not None and start <= op.ended_at <= now
    )
    return finished / (window.total_seconds() / 60)


def time_series(
    operations: Iterable[Operation],
    metric: Metric,
    *,
    backend_id: str | None = None,
    time_range: TimeRange = "day",
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Bucket operations by start time, oldest bucket first.

    Each point is stamped with the end of its bucket.
    """

    if time_range not in TIME_RANGES:
        raise ValueError(f"Unknown time range '{time_range}'")
    if metric not in ("operations", "response_time", "errors", "tokens"):
        raise ValueError(f"Unknown metric '{metric}'")

    buckets, width = TIME_RANGES[time_range]
    now = now or datetime.now(timezone.utc)
    ops = [op for op in operations if backend_id is None or op.backend_id == backend_id]

    points: list[dict[str, Any]] = []
    for index in range(buckets - 1, -1, -1):
        end = now - index * width
        start = end - width
        bucket = [op for op in ops if start < _started(op) <= end]
        if metric == "operations":
            value: float = len(bucket)
        elif metric == "response_time":
            value = _average_duration(bucket)
        elif metric == "errors":
            value = _count(bucket, OperationStatus.FAILED)
        else:
            value = sum(op.tokens_used or 0 for op in bucket)
        points.append({"timestamp": end.isoformat(), "value": value})
    return points


__all__ = ["TIME_RANGES", "compute_insights", "compute_stats", "throughput", "time_series"]
