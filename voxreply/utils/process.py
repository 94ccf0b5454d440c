"""Async helpers for running external engine binaries."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass

from voxreply.errors import EngineFailure, EngineTimeout, EngineUnavailable

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def find_binary(binary: str) -> str | None:
    """Return the absolute path of an executable, or None if not installed."""
    return shutil.which(binary)


def require_binary(binary: str) -> str:
    path = find_binary(binary)
    if path is None:
        raise EngineUnavailable(f"{binary} not found on PATH")
    return path


async def run_process(
    binary: str, *args: str, timeout: float | None = None
) -> ProcessResult:
    """Run an engine binary and collect its output.

    Raises EngineUnavailable when the binary is missing and EngineTimeout when
    it outlives ``timeout`` (the process is killed). A non-zero exit code is
    returned to the caller, not raised.
    """
    executable = require_binary(binary)
    logger.debug(f"Running {binary} {' '.join(args)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise EngineFailure(f"could not start {binary}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise EngineTimeout(f"{binary} timed out after {timeout:.0f}s")

    return ProcessResult(returncode=proc.returncode or 0, stdout=stdout, stderr=stderr)


def tail(output: bytes, limit: int = 300) -> str:
    """Last characters of a process stream, for log and error messages."""
    return output.decode("utf-8", errors="replace").strip()[-limit:]
