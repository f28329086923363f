"""Async subprocess execution with combined output capture.

Cancellation of the awaiting task (including an ``asyncio.wait_for``
deadline) kills the child process before the exception propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Exit status and combined stdout/stderr of a finished process."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_process(
    args: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    input: bytes | None = None,
) -> ProcessResult:
    """Run a process to completion, capturing stdout and stderr together.

    Args:
        args: Program and arguments
        cwd: Working directory
        env: Full environment for the child (None inherits ours)
        input: Bytes written to the child's stdin, which is then closed

    Returns:
        ProcessResult with exit code and decoded combined output

    Raises:
        FileNotFoundError / PermissionError: If the program cannot be started
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await proc.communicate(input)
    except BaseException:
        # Covers CancelledError raised by wait_for deadlines and caller cancellation.
        if proc.returncode is None:
            logger.debug(f"Killing {args[0]} (pid {proc.pid})")
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
        raise

    return ProcessResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        output=stdout.decode("utf-8", errors="replace") if stdout else "",
    )
