"""Async runner for the assistant CLI."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import json
import logging
import os
import shutil
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

from ..errors import CliNotFoundError
from ..events import EventBus, EventKind, OutputChunk
from .utils import sanitize_environment


logger = logging.getLogger(__name__)

_READ_CHUNK = 4096
_POSIX = os.name == "posix"


@dataclass(slots=True)
class ExecutionResult:
    """Holds the outcome of a CLI invocation."""

    args: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    duration: float = 0.0
    error: str | None = None
    simulated: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and self.error is None

    @property
    def spawned(self) -> bool:
        return self.returncode is not None or self.simulated

    def to_response(self) -> dict[str, Any]:
        """Return the caller-facing response shape."""

        return {
            "success": self.ok,
            "output": self.stdout,
            "error": self.error,
            "exit_code": self.returncode,
            "duration": self.duration,
            "simulated": self.simulated,
        }


class CliRunner:
    """Execute assistant CLI commands asynchronously."""

    executable_name = "claude"

    def __init__(
        self,
        executable: Path | None = None,
        *,
        bus: EventBus | None = None,
        kill_grace_period: float = 2.0,
    ) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._bus = bus
        self._kill_grace_period = kill_grace_period

    @classmethod
    def _resolve_executable(cls, explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise CliNotFoundError(f"CLI executable not found at {candidate}")

        binary = shutil.which(cls.executable_name)
        if binary is None:
            raise CliNotFoundError(f"'{cls.executable_name}' executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def simulated(self) -> bool:
        return False

    async def version(self) -> ExecutionResult:
        return await self.invoke(["--version"])

    async def help(self) -> ExecutionResult:
        return await self.invoke(["--help"])

    async def invoke(
        self,
        args: Sequence[str],
        *,
        input_text: str | None = None,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        tag: str | None = None,
        on_spawn: Callable[[int], None] | None = None,
    ) -> ExecutionResult:
        """Run the CLI with ``args`` and wait for it to exit.

        Output chunks are published on the event bus as they arrive. Cancelling the
        awaiting task terminates the child's process group, escalating to SIGKILL
        after the grace period.
        """

        cmd = [str(self._executable_path), *args]
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=sanitize_environment(base=env),
                start_new_session=_POSIX,
            )
        except OSError as exc:
            reason = exc.strerror or str(exc)
            logger.warning("Failed to spawn CLI", extra={"cmd": cmd[0], "error": reason})
            return ExecutionResult(
                args=tuple(cmd),
                returncode=None,
                stdout="",
                stderr="",
                duration=time.monotonic() - started,
                error=f"Failed to start {cmd[0]}: {reason}",
            )

        if on_spawn is not None:
            on_spawn(process.pid)

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        readers = [
            asyncio.create_task(self._pump(process.stdout, "stdout", stdout_parts, tag)),
            asyncio.create_task(self._pump(process.stderr, "stderr", stderr_parts, tag)),
        ]

        try:
            await self._feed_input(process, input_text)
            await asyncio.gather(*readers)
            returncode = await process.wait()
        except asyncio.CancelledError:
            for reader in readers:
                reader.cancel()
            await self._terminate(process)
            raise

        stdout = "".join(stdout_parts)
        stderr = "".join(stderr_parts)
        error = None
        if returncode != 0:
            error = stderr.strip() or f"{cmd[0]} exited with code {returncode}"
        return ExecutionResult(
            args=tuple(cmd),
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            duration=time.monotonic() - started,
            error=error,
        )

    @staticmethod
    async def _feed_input(process: asyncio.subprocess.Process, input_text: str | None) -> None:
        if process.stdin is None:
            return
        try:
            if input_text:
                process.stdin.write(input_text.encode("utf-8"))
                await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("CLI exited before consuming its input")
        finally:
            process.stdin.close()

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        name: str,
        sink: list[str],
        tag: str | None,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_CHUNK)
            text = decoder.decode(data, final=not data)
            if text:
                sink.append(text)
                if self._bus is not None:
                    self._bus.publish(EventKind.OUTPUT, OutputChunk(stream=name, data=text, tag=tag))
            if not data:
                return

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        self._signal(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_grace_period)
        except asyncio.TimeoutError:
            logger.warning("CLI ignored SIGTERM; killing", extra={"pid": process.pid})
            self._signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
            await process.wait()

    @staticmethod
    def _signal(process: asyncio.subprocess.Process, sig: int) -> None:
        with contextlib.suppress(ProcessLookupError):
            if _POSIX:
                os.killpg(process.pid, sig)
            elif sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()


class SimulatedCliRunner(CliRunner):
    """Stand-in used when the CLI cannot be spawned on this host.

    Every result is flagged ``simulated`` and its output is prefixed with
    ``[SIMULATED]`` so it can never be mistaken for a real CLI response.
    """

    def __init__(  # type: ignore[override]
        self,
        *,
        delay: float = 1.0,
        signature: str = "claude",
        bus: EventBus | None = None,
    ) -> None:
        self._executable_path = Path(signature)
        self._bus = bus
        self._kill_grace_period = 0.0
        self._delay = delay
        self._signature = signature

    @property
    def simulated(self) -> bool:
        return True

    async def invoke(  # type: ignore[override]
        self,
        args: Sequence[str],
        *,
        input_text: str | None = None,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        tag: str | None = None,
        on_spawn: Callable[[int], None] | None = None,
    ) -> ExecutionResult:
        started = time.monotonic()
        await asyncio.sleep(self._delay)
        command = " ".join([self._signature, *args])
        if list(args) == ["--version"]:
            stdout = f"[SIMULATED] {self._signature} (simulation mode)\n"
        else:
            stdout = (
                f"[SIMULATED] Simulated response for: {command}\n\n"
                f"Input: {input_text or 'none'}\n\n"
                "Note: running in simulation mode; no real CLI was invoked."
            )
        if self._bus is not None:
            self._bus.publish(EventKind.OUTPUT, OutputChunk(stream="stdout", data=stdout, tag=tag))
        return ExecutionResult(
            args=(self._signature, *args),
            returncode=0,
            stdout=stdout,
            stderr="",
            duration=time.monotonic() - started,
            simulated=True,
        )


class FakeCliRunner(CliRunner):
    """Test double that replays scripted CLI responses."""

    def __init__(self, responses: Iterable[ExecutionResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._inputs: list[str | None] = []
        self._executable_path = Path("/tmp/fake-claude")
        self._bus = None
        self._kill_grace_period = 0.0

    async def invoke(self, args: Sequence[str], *, input_text: str | None = None, **_: Any) -> ExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        self._inputs.append(input_text)
        if self._responses:
            return self._responses.pop(0)
        return ExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    @property
    def inputs(self) -> list[str | None]:
        return self._inputs


def serialize_result(result: ExecutionResult) -> str:
    """Serialize a command result for logs and diagnostics output."""

    return json.dumps(
        {
            "args": list(result.args),
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "duration": result.duration,
            "error": result.error,
            "simulated": result.simulated,
        }
    )
