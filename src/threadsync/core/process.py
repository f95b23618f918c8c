"""
Process management for git transport commands.

This module provides:
- Safe process spawning with timeout support
- Process group management for clean termination
- The CommandRunner, which wraps a single git invocation, composes a
  diagnostic on failure and reports start/success/error events to an
  injected sink
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from threadsync.core.errors import CommandTimeoutError, ExecutionError

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"
IS_UNIX = not IS_WINDOWS

DEFAULT_COMMAND_TIMEOUT = 60.0

# How long to keep reading pipes once the process itself has exited.
OUTPUT_DRAIN_TIMEOUT = 2.0


class ProcessResult(BaseModel):
    """Structured result from process execution."""

    success: bool
    """Whether the process completed successfully (exit code 0)."""

    exit_code: int | None
    """Process exit code, or None if killed/timed out."""

    stdout: str
    """Standard output from the process."""

    stderr: str
    """Standard error from the process."""

    duration_ms: int
    """Execution duration in milliseconds."""

    timed_out: bool = False
    """Whether the process was terminated due to timeout."""

    signal: str | None = None
    """Name of the signal that terminated the process, if any."""

    error: str | None = None
    """Error message if the process could not be run."""


async def run_process(
    command: Sequence[str],
    *,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
    cwd: str | Path | None = None,
    input_data: str | None = None,
) -> ProcessResult:
    """
    Run a subprocess with timeout and automatic cleanup.

    The child is started in its own session so a timeout can kill the whole
    process group (git spawns helpers such as ssh and remote-https). Output is
    read as it arrives, so a timed out result still carries what the process
    printed before it was killed. The process is always reaped before this
    function returns.

    Args:
        command: Command and arguments as a list (e.g., ["git", "status"])
        timeout: Optional timeout in seconds. None means no timeout.
        env: Optional environment variables. Merged with os.environ if provided.
        cwd: Optional working directory for the process.
        input_data: Optional string to send to stdin.

    Returns:
        ProcessResult with output, exit code, and timing information.

    Example:
        >>> result = await run_process(["git", "status"], timeout=30.0, cwd="/data")
        >>> if result.success:
        ...     print(result.stdout)
    """
    started_at = datetime.now(timezone.utc)
    process: asyncio.subprocess.Process | None = None

    process_env = None
    if env is not None:
        process_env = os.environ.copy()
        process_env.update(env)

    try:
        kwargs: dict[str, Any] = {
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "cwd": str(cwd) if cwd is not None else None,
            "env": process_env,
        }

        if input_data is not None:
            kwargs["stdin"] = asyncio.subprocess.PIPE

        if IS_UNIX:
            kwargs["start_new_session"] = True

        logger.debug("Running process: %s", " ".join(command))
        process = await asyncio.create_subprocess_exec(*command, **kwargs)

        stdout_buffer = bytearray()
        stderr_buffer = bytearray()
        readers = [
            asyncio.create_task(_drain(process.stdout, stdout_buffer)),
            asyncio.create_task(_drain(process.stderr, stderr_buffer)),
        ]

        try:
            if input_data is not None:
                await _feed_stdin(process, input_data)
            await asyncio.wait_for(process.wait(), timeout=timeout)

        except asyncio.TimeoutError:
            await kill_process_group(process)
            await _finish_readers(readers)

            # Whatever the process printed before it was killed is kept.
            return ProcessResult(
                success=False,
                exit_code=None,
                stdout=_decode(stdout_buffer),
                stderr=_decode(stderr_buffer),
                duration_ms=_elapsed_ms(started_at),
                timed_out=True,
                error=f"Process timed out after {timeout:g}s",
            )

        finally:
            await _finish_readers(readers)

        return ProcessResult(
            success=process.returncode == 0,
            exit_code=process.returncode,
            stdout=_decode(stdout_buffer),
            stderr=_decode(stderr_buffer),
            duration_ms=_elapsed_ms(started_at),
            signal=_signal_name(process.returncode),
        )

    except FileNotFoundError:
        return ProcessResult(
            success=False,
            exit_code=None,
            stdout="",
            stderr="",
            duration_ms=_elapsed_ms(started_at),
            error=f"Command not found: {command[0]}. Ensure it is installed and in PATH.",
        )

    except OSError as e:
        logger.warning("Failed to start process %s: %s", command[0], e)
        return ProcessResult(
            success=False,
            exit_code=None,
            stdout="",
            stderr="",
            duration_ms=_elapsed_ms(started_at),
            error=f"Failed to start {command[0]}: {e}",
        )

    finally:
        if process is not None:
            await ensure_process_terminated(process)


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


def _decode(data: bytearray) -> str:
    return data.decode("utf-8", errors="replace")


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    """Copy a pipe into ``sink`` chunk by chunk, so a cut-off read keeps what arrived."""
    if stream is None:
        return
    while chunk := await stream.read(65536):
        sink.extend(chunk)


async def _finish_readers(readers: list[asyncio.Task[None]]) -> None:
    """
    Give the pipe readers a moment to reach EOF, then stop them.

    A helper process that outlived the group kill can hold a pipe open.
    """
    pending = [task for task in readers if not task.done()]
    if pending:
        _, pending_set = await asyncio.wait(pending, timeout=OUTPUT_DRAIN_TIMEOUT)
        for task in pending_set:
            task.cancel()
        if pending_set:
            await asyncio.gather(*pending_set, return_exceptions=True)
            logger.debug("Stopped %d pipe reader(s) still open after exit", len(pending_set))


async def _feed_stdin(process: asyncio.subprocess.Process, input_data: str) -> None:
    if process.stdin is None:
        return
    try:
        process.stdin.write(input_data.encode("utf-8"))
        await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError) as e:
        logger.debug("Process closed stdin early: %s", e)
    finally:
        process.stdin.close()


def _signal_name(returncode: int | None) -> str | None:
    """asyncio reports death-by-signal as a negative return code."""
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"signal {-returncode}"


async def kill_process_group(process: asyncio.subprocess.Process) -> None:
    """
    Kill the process group to ensure all child processes are terminated.

    Unix kills the whole group (the child leads its own session); Windows
    falls back to killing the process directly.

    Args:
        process: The subprocess to kill along with its children.
    """
    if process.returncode is not None:
        return

    if IS_UNIX:
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGKILL)
            logger.debug("Killed process group %s", pgid)
        except (ProcessLookupError, OSError) as e:
            logger.debug("Process group kill failed (process may be dead): %s", e)
    else:
        try:
            process.kill()
            logger.debug("Killed process %s on Windows", process.pid)
        except (ProcessLookupError, OSError) as e:
            logger.debug("Process kill failed (process may be dead): %s", e)

    try:
        await asyncio.wait_for(process.wait(), timeout=5.0)
    except asyncio.TimeoutError:
        if IS_UNIX:
            try:
                process.kill()
                await asyncio.wait_for(process.wait(), timeout=2.0)
            except (asyncio.TimeoutError, ProcessLookupError, OSError):
                logger.warning("Process %s could not be reaped", process.pid)


async def ensure_process_terminated(process: asyncio.subprocess.Process) -> None:
    """
    Ensure the process is fully terminated using graceful shutdown.

    1. Try graceful termination with SIGTERM
    2. Wait up to 2 seconds
    3. Force kill the process group if still running

    Should be called in finally blocks to guarantee cleanup.
    """
    if process.returncode is not None:
        return

    try:
        logger.debug("Terminating process %s gracefully", process.pid)
        process.terminate()

        try:
            await asyncio.wait_for(process.wait(), timeout=2.0)
        except asyncio.TimeoutError:
            logger.debug("Process %s did not terminate gracefully, force killing", process.pid)
            await kill_process_group(process)

    except (ProcessLookupError, OSError) as e:
        logger.debug("Process termination skipped (already dead): %s", e)


# =============================================================================
# Command runner
# =============================================================================


class CommandCategory(str, Enum):
    """What a git invocation is for, used to decide what the user gets to see."""

    TRANSPORT = "transport"
    """User relevant activity: fetch, rebase, push, commit, ..."""

    IDENTITY = "identity"
    """Reading or setting the commit identity."""

    PROBE = "probe"
    """Internal metadata and ref existence checks."""


class CommandEventType(str, Enum):
    START = "start"
    SUCCESS = "success"
    ERROR = "error"


class CommandEvent(BaseModel):
    """A start/success/error notification for one command invocation."""

    type: CommandEventType
    command: str = Field(description="Display form of the command line")
    args: list[str] = Field(default_factory=list)
    category: CommandCategory = CommandCategory.TRANSPORT
    cwd: str | None = None
    output: str | None = Field(default=None, description="Trimmed stdout (success only)")
    message: str | None = Field(default=None, description="Diagnostic (error only)")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


CommandEventSink = Callable[[CommandEvent], None]


def compose_diagnostic(result: ProcessResult) -> str:
    """
    Build a human readable failure message from a process result.

    stderr is preferred, stdout is the fallback, and a timeout or signal is
    always called out explicitly.
    """
    parts: list[str] = []
    stderr = result.stderr.strip()
    stdout = result.stdout.strip()

    if stderr:
        parts.append(stderr)
    elif stdout:
        parts.append(stdout)

    if result.timed_out:
        parts.append("Process killed (timeout)")
    if result.signal:
        parts.append(f"Signal: {result.signal}")

    if not parts:
        if result.error:
            parts.append(result.error)
        elif result.exit_code is not None:
            parts.append(f"Command exited with code {result.exit_code}")
        else:
            parts.append("Command failed")

    return "; ".join(parts)


class CommandRunner:
    """
    Runs one git command at a time on behalf of the repository adapter.

    Every invocation is time bounded and reported to the sink as a start event
    followed by a success or error event.

    Example:
        >>> runner = CommandRunner(sink=print, timeout=60.0)
        >>> head = await runner.run(["rev-parse", "HEAD"], cwd=Path("/data"))
    """

    def __init__(
        self,
        sink: CommandEventSink | None = None,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        executable: str = "git",
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self.sink = sink
        self.timeout = timeout
        self.executable = executable

    def _emit(self, event: CommandEvent) -> None:
        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception:
            logger.exception("Command event sink failed for %s", event.command)

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | str,
        category: CommandCategory = CommandCategory.TRANSPORT,
    ) -> str:
        """
        Run ``git <args>`` in ``cwd`` and return its trimmed stdout.

        Raises:
            CommandTimeoutError: If the command exceeded the timeout and was killed.
            ExecutionError: If the command exited non-zero, was signalled or
                could not be started.
        """
        command = [self.executable, *args]
        display = " ".join(command)
        base = {
            "command": display,
            "args": list(args),
            "category": category,
            "cwd": str(cwd),
        }

        self._emit(CommandEvent(type=CommandEventType.START, **base))
        result = await run_process(command, timeout=self.timeout, cwd=cwd)

        if result.success:
            output = result.stdout.strip()
            logger.debug("%s -> ok (%dms)", display, result.duration_ms)
            self._emit(CommandEvent(type=CommandEventType.SUCCESS, output=output, **base))
            return output

        message = compose_diagnostic(result)
        if result.timed_out:
            message = message.replace(
                "Process killed (timeout)",
                f"Process killed (timeout after {self.timeout:g}s)",
            )
        logger.debug("%s -> failed: %s", display, message)
        self._emit(CommandEvent(type=CommandEventType.ERROR, message=message, **base))

        if result.timed_out:
            raise CommandTimeoutError(message, command=command, timeout=self.timeout)
        raise ExecutionError(
            message,
            command=command,
            stderr=result.stderr.strip(),
            exit_code=result.exit_code,
            signal=result.signal,
        )


__all__ = [
    "DEFAULT_COMMAND_TIMEOUT",
    "IS_UNIX",
    "IS_WINDOWS",
    "CommandCategory",
    "CommandEvent",
    "CommandEventSink",
    "CommandEventType",
    "CommandRunner",
    "ProcessResult",
    "compose_diagnostic",
    "ensure_process_terminated",
    "kill_process_group",
    "run_process",
]
