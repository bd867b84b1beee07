"""Backend adapter for the assistant CLI."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from ..errors import BackendCallError, SpawnError
from ..process import CliRunner
from ..process.utils import estimate_cost, parse_token_usage
from ..session import SessionManager
from .base import BackendAdapter, ConnectionStatus
from .models import BackendConfig


logger = logging.getLogger(__name__)

# (argv, stdin payload)
CommandLine = tuple[list[str], str | None]


def _require(parameters: Mapping[str, Any], name: str, operation_type: str) -> str:
    value = parameters.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise BackendCallError(f"Operation '{operation_type}' requires parameter '{name}'")
    return str(value)


def _joined(value: Any) -> str:
    """Comma-join a pattern list; a single string is passed through unchanged."""

    if isinstance(value, str):
        return value
    return ",".join(str(item) for item in value)


def _chat(parameters: Mapping[str, Any]) -> CommandLine:
    message = _require(parameters, "message", "chat")
    args = ["chat"]
    for path in parameters.get("files") or []:
        args.extend(["--file", str(path)])
    if parameters.get("stream"):
        args.append("--stream")
    if parameters.get("max_tokens"):
        args.extend(["--max-tokens", str(int(parameters["max_tokens"]))])
    return args, message


def _edit_file(parameters: Mapping[str, Any]) -> CommandLine:
    args = ["edit", _require(parameters, "path", "edit-file")]
    if parameters.get("backup"):
        args.append("--backup")
    if parameters.get("interactive"):
        args.append("--interactive")
    return args, parameters.get("instructions")


def _create_file(parameters: Mapping[str, Any]) -> CommandLine:
    args = ["create", _require(parameters, "path", "create-file")]
    return args, parameters.get("content") or parameters.get("instructions")


def _generate_code(parameters: Mapping[str, Any]) -> CommandLine:
    args = ["generate", _require(parameters, "template", "generate-code")]
    for flag in ("language", "framework", "output"):
        if parameters.get(flag):
            args.extend([f"--{flag}", str(parameters[flag])])
    for key, value in (parameters.get("parameters") or {}).items():
        args.extend(["--param", f"{key}={value}"])
    return args, None


def _analyze_project(parameters: Mapping[str, Any]) -> CommandLine:
    args = ["analyze"]
    if parameters.get("path"):
        args.append(str(parameters["path"]))
    if parameters.get("depth"):
        args.extend(["--depth", str(int(parameters["depth"]))])
    if parameters.get("include_tests"):
        args.append("--include-tests")
    if parameters.get("include_docs"):
        args.append("--include-docs")
    if parameters.get("include"):
        args.extend(["--include", _joined(parameters["include"])])
    if parameters.get("exclude"):
        args.extend(["--exclude", _joined(parameters["exclude"])])
    if parameters.get("format"):
        args.extend(["--format", str(parameters["format"])])
    return args, None


def _run_tests(parameters: Mapping[str, Any]) -> CommandLine:
    args = ["test"]
    if parameters.get("path"):
        args.append(str(parameters["path"]))
    for flag in ("watch", "coverage", "parallel"):
        if parameters.get(flag):
            args.append(f"--{flag}")
    return args, None


def _execute_shell(parameters: Mapping[str, Any]) -> CommandLine:
    command = _require(parameters, "command", "execute-shell")
    args = ["exec"]
    if parameters.get("shell"):
        args.extend(["--shell", str(parameters["shell"])])
    args.extend(["--", command])
    return args, None


COMMAND_BUILDERS: dict[str, Callable[[Mapping[str, Any]], CommandLine]] = {
    "chat": _chat,
    "edit-file": _edit_file,
    "create-file": _create_file,
    "generate-code": _generate_code,
    "analyze-project": _analyze_project,
    "run-tests": _run_tests,
    "execute-shell": _execute_shell,
}


def build_command(operation_type: str, parameters: Mapping[str, Any]) -> CommandLine:
    """Return the CLI argument list and stdin payload for an operation."""

    try:
        builder = COMMAND_BUILDERS[operation_type]
    except KeyError as exc:
        raise BackendCallError(f"No CLI command for operation '{operation_type}'") from exc
    return builder(parameters)


class CliBackend(BackendAdapter):
    """Dispatch operations by shelling out to the assistant CLI."""

    def __init__(self, config: BackendConfig, *, runner: CliRunner | None, sessions: SessionManager) -> None:
        super().__init__(config)
        self._runner = runner
        self._sessions = sessions

    @property
    def simulated(self) -> bool:
        return bool(self._runner is not None and self._runner.simulated)

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    async def connect(self) -> bool:
        self.status = ConnectionStatus.CONNECTING
        availability = await self._sessions.check_availability()
        self._sync_status()
        return availability.available

    async def disconnect(self) -> None:
        self._sessions.terminate()
        self._sync_status()

    async def ensure_ready(self) -> bool:
        await self._sessions.ensure_session()
        self._sync_status()
        return self.status is ConnectionStatus.CONNECTED

    def _sync_status(self) -> None:
        session = self._sessions.current
        availability = self._sessions.last_availability
        if session is not None and session.is_active:
            self.status = ConnectionStatus.CONNECTED
            self.last_error = None
        elif availability is not None and not availability.available:
            self.status = ConnectionStatus.ERROR
            self.last_error = availability.error
        else:
            self.status = ConnectionStatus.DISCONNECTED

    async def run(
        self,
        operation_type: str,
        parameters: Mapping[str, Any],
        *,
        operation_id: str,
    ) -> dict[str, Any]:
        if self._runner is None:
            raise SpawnError("Assistant CLI is not installed")

        args, stdin_payload = build_command(operation_type, parameters)
        if operation_type == "execute-shell" and parameters.get("env"):
            self._sessions.update_environment({str(k): str(v) for k, v in parameters["env"].items()})

        cwd, env = self._sessions.snapshot()
        logger.debug(
            "Invoking CLI",
            extra={"operation_id": operation_id, "args": args, "cwd": str(cwd)},
        )
        result = await self._runner.invoke(
            args,
            input_text=stdin_payload,
            cwd=cwd,
            env=env,
            tag=operation_id,
            on_spawn=self._sessions.record_pid,
        )
        if not result.spawned:
            raise SpawnError(result.error or "Failed to start the assistant CLI")

        response = result.to_response()
        tokens = parse_token_usage(result.stdout) if result.ok else None
        if tokens is not None:
            response["tokens"] = tokens
            response["cost"] = estimate_cost(tokens)
        return response


__all__ = ["COMMAND_BUILDERS", "CliBackend", "build_command"]
