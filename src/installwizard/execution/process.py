"""Async subprocess runner with a hard timeout and bounded output capture."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

__all__ = ["ProcessOutcome", "run_process"]

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ProcessOutcome:
    """Raw result of one subprocess run."""
    returncode: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool = False
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


class _BoundedBuffer:
    """Keeps the first ``limit`` bytes of a stream and discards the rest."""

    def __init__(self, limit: int):
        self.limit = limit
        self.data = bytearray()
        self.truncated = False

    def feed(self, chunk: bytes) -> None:
        room = self.limit - len(self.data)
        if room > 0:
            self.data.extend(chunk[:room])
        if len(chunk) > room:
            self.truncated = True

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


async def _drain(stream: Optional[asyncio.StreamReader], buffer: _BoundedBuffer) -> None:
    # Keep reading past the limit so the child never blocks on a full pipe
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        buffer.feed(chunk)


async def run_process(
    argv: Sequence[str],
    timeout: float,
    max_output_bytes: int,
    env: Optional[Mapping[str, str]] = None,
) -> ProcessOutcome:
    """
    Run ``argv`` and collect its output.

    Args:
        argv: Program and arguments (no shell involved)
        timeout: Seconds before the process is killed
        max_output_bytes: Capture limit for each of stdout and stderr
        env: Optional environment for the child

    Returns:
        ProcessOutcome; ``timed_out`` is set when the deadline was hit.

    Raises:
        OSError: If the program cannot be launched.
    """
    logger.debug(f"Running: {' '.join(argv)}")
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=dict(env) if env is not None else None,
    )

    out = _BoundedBuffer(max_output_bytes)
    err = _BoundedBuffer(max_output_bytes)
    timed_out = False

    try:
        await asyncio.wait_for(
            asyncio.gather(_drain(proc.stdout, out), _drain(proc.stderr, err), proc.wait()),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning(f"Process timed out after {timeout:g}s, killing pid {proc.pid}")
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()

    if out.truncated or err.truncated:
        logger.warning(f"Process output exceeded {max_output_bytes} bytes and was truncated")

    return ProcessOutcome(
        returncode=proc.returncode,
        stdout=out.text(),
        stderr=err.text(),
        timed_out=timed_out,
        truncated=out.truncated or err.truncated,
    )
