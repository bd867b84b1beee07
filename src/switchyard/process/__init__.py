"""Process execution gateway for the assistant CLI."""

from .runner import (
    CliRunner,
    ExecutionResult,
    FakeCliRunner,
    SimulatedCliRunner,
    serialize_result,
)

__all__ = [
    "CliRunner",
    "ExecutionResult",
    "FakeCliRunner",
    "SimulatedCliRunner",
    "serialize_result",
]
