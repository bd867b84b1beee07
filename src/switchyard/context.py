"""Composition root wiring every Switchyard component together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

from fastmcp import Client

from .backends import (
    BackendAdapter,
    BackendConfig,
    CliBackend,
    McpToolBackend,
    SimulatedServiceBackend,
    load_backend_configs,
)
from .batch import BatchExecutor
from .cache import ResultCache
from .config import SwitchyardSettings
from .errors import CliNotFoundError
from .events import EventBus
from .orchestrator import Orchestrator
from .process import CliRunner, SimulatedCliRunner
from .session import SessionManager
from .watcher import FileWatcher


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SwitchyardContext:
    settings: SwitchyardSettings
    bus: EventBus
    cache: ResultCache
    runner: CliRunner | None
    sessions: SessionManager
    watcher: FileWatcher
    orchestrator: Orchestrator
    batch: BatchExecutor
    backend_configs: dict[str, BackendConfig] = field(default_factory=dict)
    runner_error: str | None = None

    async def start(self) -> dict[str, bool]:
        """Connect every registered backend; returns reachability per backend id."""

        results = await self.orchestrator.connect_all()
        logger.info(
            "Backends connected",
            extra={"connected": sorted(key for key, ok in results.items() if ok)},
        )
        return results

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()
        self.watcher.close()
        self.sessions.terminate()


def _select_runner(settings: SwitchyardSettings, bus: EventBus) -> tuple[CliRunner | None, str | None]:
    explicit = Path(settings.cli_path).expanduser() if settings.cli_path else None
    try:
        return CliRunner(explicit, bus=bus, kill_grace_period=settings.kill_grace_period), None
    except CliNotFoundError as exc:
        if settings.simulation_fallback:
            logger.warning("Assistant CLI not found; using simulation", extra={"error": str(exc)})
            return (
                SimulatedCliRunner(
                    delay=settings.simulation_delay,
                    signature=settings.cli_signature,
                    bus=bus,
                ),
                str(exc),
            )
        logger.warning("Assistant CLI not found", extra={"error": str(exc)})
        return None, str(exc)


def _build_adapter(
    config: BackendConfig,
    *,
    settings: SwitchyardSettings,
    runner: CliRunner | None,
    sessions: SessionManager,
    client_factory: Callable[[str], Any],
) -> BackendAdapter:
    if config.kind == "cli":
        return CliBackend(config, runner=runner, sessions=sessions)
    if not config.endpoint and settings.simulation_fallback:
        return SimulatedServiceBackend(config, delay=min(settings.simulation_delay, 0.5))
    return McpToolBackend(config, client_factory=client_factory)


def build_context(
    settings: SwitchyardSettings,
    *,
    runner: CliRunner | None = None,
    extra_backends: Iterable[BackendAdapter] = (),
    client_factory: Callable[[str], Any] = Client,
) -> SwitchyardContext:
    """Create every component once, choosing real or simulated execution up front."""

    bus = EventBus()
    cache = ResultCache()

    runner_error: str | None = None
    if runner is None:
        runner, runner_error = _select_runner(settings, bus)

    sessions = SessionManager(
        runner,
        bus=bus,
        working_directory=settings.working_directory,
        signature=settings.cli_signature,
    )
    watcher = FileWatcher(bus, ignore=settings.watch_ignore)
    orchestrator = Orchestrator(
        cache=cache,
        bus=bus,
        default_timeout=settings.default_timeout,
        default_cache_ttl=settings.default_cache_ttl,
    )

    configs = load_backend_configs(settings.backend_paths)
    for config in configs.values():
        if not config.enabled:
            logger.debug("Skipping disabled backend", extra={"backend_id": config.id})
            continue
        orchestrator.register_backend(
            _build_adapter(
                config,
                settings=settings,
                runner=runner,
                sessions=sessions,
                client_factory=client_factory,
            )
        )
    for adapter in extra_backends:
        orchestrator.register_backend(adapter)

    return SwitchyardContext(
        settings=settings,
        bus=bus,
        cache=cache,
        runner=runner,
        sessions=sessions,
        watcher=watcher,
        orchestrator=orchestrator,
        batch=BatchExecutor(orchestrator),
        backend_configs=configs,
        runner_error=runner_error,
    )


__all__ = ["SwitchyardContext", "build_context"]
