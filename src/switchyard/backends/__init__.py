"""Backend adapters and their configuration."""

from .base import BackendAdapter, ConnectionStatus
from .cli import CliBackend, build_command
from .loader import BackendConfigLoader, load_backend_configs
from .mcp import McpToolBackend, SimulatedServiceBackend
from .models import CLI_BACKEND_ID, DEFAULT_BACKENDS, BackendConfig

__all__ = [
    "BackendAdapter",
    "BackendConfig",
    "BackendConfigLoader",
    "CLI_BACKEND_ID",
    "CliBackend",
    "ConnectionStatus",
    "DEFAULT_BACKENDS",
    "McpToolBackend",
    "SimulatedServiceBackend",
    "build_command",
    "load_backend_configs",
]
