"""Exception hierarchy shared across Switchyard components."""

from __future__ import annotations


class SwitchyardError(RuntimeError):
    """Base class for Switchyard errors."""


class BackendUnavailableError(SwitchyardError):
    """Raised when a backend is not installed, reachable, or authenticated."""


class UnknownBackendError(BackendUnavailableError):
    """Raised when no adapter is registered under the requested backend id."""


class CliNotFoundError(BackendUnavailableError):
    """Raised when the assistant CLI executable cannot be located."""


class UnknownOperationError(SwitchyardError, ValueError):
    """Raised when an operation type is not registered for the target backend."""


class SpawnError(SwitchyardError):
    """Raised when a child process could not be created."""


class BackendCallError(SwitchyardError):
    """Raised by adapters when the backend reports a runtime failure."""


class OperationNotFoundError(SwitchyardError, KeyError):
    """Raised when an operation id is not present in history."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


class InvalidTransitionError(SwitchyardError):
    """Raised when an operation would leave a terminal status."""


class BackendConfigError(SwitchyardError):
    """Raised when one or more backend definition files cannot be parsed."""


__all__ = [
    "BackendCallError",
    "BackendConfigError",
    "BackendUnavailableError",
    "CliNotFoundError",
    "InvalidTransitionError",
    "OperationNotFoundError",
    "SpawnError",
    "SwitchyardError",
    "UnknownBackendError",
    "UnknownOperationError",
]
