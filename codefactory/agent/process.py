"""Agent CLI process launching.

Spawns one agent binary per call with stdin closed, stdout piped and stderr
passed straight through to the user's terminal. Stdout is handed to a
callback chunk by chunk as it arrives; the call returns once the stream has
closed and the process has exited.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from codefactory.agent.errors import AgentLaunchError, AgentTimeoutError

CHUNK_SIZE = 64 * 1024


@dataclass
class ProcessOutcome:
    """How an agent process ended."""

    exit_code: int | None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def find_binary(binary: str) -> str | None:
    """Return the absolute path of *binary* on PATH, or ``None``."""
    return shutil.which(binary)


async def _pump_stdout(
    process: asyncio.subprocess.Process,
    on_chunk: Callable[[bytes], object],
) -> None:
    assert process.stdout is not None  # guaranteed by PIPE
    while True:
        chunk = await process.stdout.read(CHUNK_SIZE)
        if not chunk:
            break
        on_chunk(chunk)
    await process.wait()


async def run_agent_process(
    binary: str,
    args: Sequence[str],
    *,
    on_chunk: Callable[[bytes], object],
    cwd: str | Path | None = None,
    timeout: float | None = None,
    platform: str | None = None,
) -> ProcessOutcome:
    """Run an agent CLI to completion, streaming its stdout to *on_chunk*.

    Args:
        binary: Executable name, resolved on PATH.
        args: Argument vector (without the binary itself).
        on_chunk: Called synchronously with every stdout chunk, in order.
        cwd: Working directory for the child process.
        timeout: Optional hard limit in seconds; the process is killed when
            it is exceeded.
        platform: Platform name attached to raised errors.

    Returns:
        ProcessOutcome with the exit code. A non-zero exit is *not* raised
        here; the caller decides what it means.

    Raises:
        AgentLaunchError: If the process cannot be spawned.
        AgentTimeoutError: If *timeout* elapses before the process exits.
    """
    start_time = time.monotonic()

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=None,
            cwd=str(cwd) if cwd else None,
            env=os.environ.copy(),
        )
    except OSError as exc:
        raise AgentLaunchError(binary, exc, platform=platform) from exc

    try:
        if timeout is None:
            await _pump_stdout(process, on_chunk)
        else:
            await asyncio.wait_for(_pump_stdout(process, on_chunk), timeout=timeout)
    except asyncio.TimeoutError:
        raise AgentTimeoutError(binary, timeout or 0.0, platform=platform) from None
    finally:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    return ProcessOutcome(
        exit_code=process.returncode,
        duration_seconds=time.monotonic() - start_time,
    )
