"""
Progress protocol parsing for installer script output.

Installer scripts may print one JSON object per line to report progress:

    {"step":"download","progress":20,"message":"Downloading...","status":"running"}
    {"step":"complete","progress":100,"message":"Done","status":"success","nodeVersion":"v20.11.0"}

Any other line is incidental diagnostic output and is ignored. When a script
exits cleanly without printing a single protocol line, a fixed simulated
sequence is substituted so the caller still sees forward motion.

Parsing and simulation are separate pure functions; ``resolve_progress_sequence``
composes them. ``pace_events`` replays a sequence with a constant delay.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from installwizard.config import DEFAULT_PROGRESS_MESSAGES
from installwizard.models import EventStatus, ProgressEvent

logger = logging.getLogger(__name__)

__all__ = [
    "Parsed",
    "Ignored",
    "LineResult",
    "classify_line",
    "parse_progress_events",
    "simulated_progress_sequence",
    "resolve_progress_sequence",
    "pace_events",
    "SIMULATED_STAGES",
]


@dataclass(frozen=True)
class Parsed:
    """A stdout line that is a valid protocol event."""
    event: ProgressEvent


@dataclass(frozen=True)
class Ignored:
    """A stdout line that is not part of the protocol."""
    raw_line: str
    reason: str = ""


LineResult = Union[Parsed, Ignored]

# (progress, message key, status) of the simulated sequence, in order
SIMULATED_STAGES = (
    (20, "download", EventStatus.RUNNING),
    (40, "verify", EventStatus.RUNNING),
    (60, "install", EventStatus.RUNNING),
    (80, "configure_env", EventStatus.RUNNING),
    (95, "finalize", EventStatus.RUNNING),
    (100, "success", EventStatus.SUCCESS),
)


def classify_line(line: str) -> LineResult:
    """Classify one stdout line as a protocol event or ignorable text."""
    stripped = line.strip()
    if not stripped:
        return Ignored(line, "blank")

    try:
        data = json.loads(stripped)
    except ValueError:
        return Ignored(line, "not json")

    if not isinstance(data, dict):
        return Ignored(line, "not an object")

    try:
        return Parsed(ProgressEvent.from_wire(data))
    except ValidationError as e:
        return Ignored(line, f"invalid event: {e.error_count()} error(s)")


def parse_progress_events(stdout: str) -> List[ProgressEvent]:
    """Return the protocol events found in ``stdout``, in line order, unmodified."""
    events: List[ProgressEvent] = []
    for line in (stdout or "").splitlines():
        if not line.strip():
            continue
        result = classify_line(line)
        if isinstance(result, Parsed):
            events.append(result.event)
        else:
            logger.debug(f"Ignoring non-protocol line ({result.reason}): {line[:200]}")
    return events


def simulated_progress_sequence(
    messages: Optional[Mapping[str, str]] = None,
    step: Optional[str] = None,
) -> List[ProgressEvent]:
    """The fixed fallback sequence, ending in ``status=success, progress=100``."""
    merged: Dict[str, str] = {**DEFAULT_PROGRESS_MESSAGES, **(messages or {})}
    return [
        ProgressEvent(step=step, progress=progress, message=merged[key], status=status)
        for progress, key, status in SIMULATED_STAGES
    ]


def resolve_progress_sequence(
    stdout: str,
    exited_ok: bool = True,
    messages: Optional[Mapping[str, str]] = None,
    step: Optional[str] = None,
) -> List[ProgressEvent]:
    """
    Choose the event sequence for a finished script.

    Real protocol events win whenever at least one line parsed. With none,
    the simulated sequence is used only if the script exited cleanly; a
    failed script with no protocol output yields an empty list so that the
    failure is reported rather than masked by simulated success.
    """
    events = parse_progress_events(stdout)
    if events:
        return events
    if not exited_ok:
        return []
    logger.info("No protocol output from installer script, using simulated progress")
    return simulated_progress_sequence(messages, step=step)


async def pace_events(events: Iterable[ProgressEvent], delay: float) -> AsyncIterator[ProgressEvent]:
    """Yield ``events`` in order, sleeping ``delay`` seconds after each one."""
    for event in events:
        yield event
        if delay > 0 and not event.is_terminal:
            await asyncio.sleep(delay)
