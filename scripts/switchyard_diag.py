"""Switchyard diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from switchyard.config import SwitchyardSettings
from switchyard.context import SwitchyardContext, build_context
from switchyard.errors import SwitchyardError


def load_context(settings: SwitchyardSettings) -> SwitchyardContext:
    return build_context(settings)


def parse_params(pairs: list[str] | None) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Invalid --param '{pair}'; expected key=value")
        try:
            params[key] = json.loads(raw)
        except json.JSONDecodeError:
            params[key] = raw
    return params


def cmd_probe(args: argparse.Namespace) -> None:
    context = load_context(SwitchyardSettings())
    availability = asyncio.run(context.sessions.check_availability())
    print(
        json.dumps(
            {
                "available": availability.available,
                "version": availability.version,
                "simulated": availability.simulated,
                "capabilities": list(availability.capabilities),
                "error": availability.error or context.runner_error,
            },
            indent=2,
        )
    )
    if not availability.available:
        raise SystemExit(1)


def cmd_backends(args: argparse.Namespace) -> None:
    context = load_context(SwitchyardSettings())
    orchestrator = context.orchestrator
    catalog = []
    for adapter in orchestrator.backends:
        entry = adapter.describe()
        entry["timeout"] = orchestrator.timeout_for(adapter)
        entry["cache_ttl"] = orchestrator.cache_ttl_for(adapter)
        entry["endpoint"] = adapter.config.endpoint
        catalog.append(entry)
    if args.json:
        print(json.dumps(catalog, indent=2))
    else:
        for entry in catalog:
            kind = "simulated" if entry["simulated"] else entry["kind"]
            print(f"{entry['id']} [{kind}] timeout={entry['timeout']:g}s -> {', '.join(entry['operations'])}")


async def _run_operation(context: SwitchyardContext, args: argparse.Namespace) -> dict[str, Any]:
    try:
        outcome = await context.orchestrator.execute(
            args.backend,
            args.operation_type,
            parse_params(args.param),
            use_cache=False if args.no_cache else None,
            timeout=args.timeout,
        )
    finally:
        await context.shutdown()
    return outcome.to_dict()


def cmd_run(args: argparse.Namespace) -> None:
    context = load_context(SwitchyardSettings())
    try:
        payload = asyncio.run(_run_operation(context, args))
    except (SwitchyardError, ValueError) as exc:
        print(f"Error: {exc}")
        raise SystemExit(1)
    print(json.dumps(payload, indent=2, default=str))
    if not payload["ok"]:
        raise SystemExit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Switchyard diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_probe = sub.add_parser("probe", help="Check whether the assistant CLI is usable")
    p_probe.set_defaults(func=cmd_probe)

    p_backends = sub.add_parser("backends", help="List configured backends and their operations")
    p_backends.add_argument("--json", action="store_true", help="Output JSON")
    p_backends.set_defaults(func=cmd_backends)

    p_run = sub.add_parser("run", help="Execute one operation and print its outcome")
    p_run.add_argument("backend")
    p_run.add_argument("operation_type")
    p_run.add_argument(
        "--param",
        action="append",
        metavar="KEY=VALUE",
        help="Operation parameter; values are parsed as JSON when possible",
    )
    p_run.add_argument("--timeout", type=float, default=None, help="Deadline in seconds")
    p_run.add_argument("--no-cache", action="store_true", help="Bypass the result cache")
    p_run.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
