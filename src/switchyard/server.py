"""FastMCP server bootstrap for Switchyard."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import SwitchyardSettings, get_settings
from .context import SwitchyardContext, build_context
from .insights import compute_stats
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Switchyard server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_server(
    settings: Optional[SwitchyardSettings] = None,
    *,
    context: SwitchyardContext | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with its tools and status resource."""

    settings = settings or (context.settings if context is not None else get_settings())
    context = context or build_context(settings)

    connected = _run_sync(context.start())

    server = FastMCP(
        name="Switchyard",
        version=__version__,
        instructions=(
            "Switchyard runs the local coding-assistant CLI and MCP tool servers behind one "
            "operation API. Use execute_operation for single requests, execute_batch for "
            "several, and the status tools to follow or cancel running work."
        ),
    )

    handles = register_tools(server, context=context)

    @server.resource(
        "resource://switchyard/status",
        name="switchyard_status",
        title="Switchyard Status",
        description="Provides the current runtime status for the Switchyard server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(ctx: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        orchestrator = context.orchestrator
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "cli": {
                "path": str(context.runner.executable) if context.runner is not None else None,
                "simulated": bool(context.runner is not None and context.runner.simulated),
                "error": context.runner_error,
                **context.sessions.status(),
            },
            "backends": {
                adapter.backend_id: {
                    "status": adapter.status.value,
                    "simulated": adapter.simulated,
                    "connected_at_startup": connected.get(adapter.backend_id, False),
                    "error": adapter.last_error,
                }
                for adapter in orchestrator.backends
            },
            "operations": {
                "running": len(orchestrator.running()),
                "stats": compute_stats(orchestrator.operations()),
            },
            "cache": {"entries": len(context.cache)},
            "watching": [str(path) for path in context.watcher.watched],
            "request_id": getattr(ctx, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "switchyard_context", context)
    setattr(server, "tool_handles", handles)
    setattr(server, "connected_backends", connected)
    return server


def main() -> None:
    """Entry point for running the Switchyard MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    context: SwitchyardContext = getattr(server, "switchyard_context")
    logging.getLogger(__name__).info(
        "Launching Switchyard MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "cli_available": context.sessions.status()["available"],
            "backends": len(context.orchestrator.backends),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
