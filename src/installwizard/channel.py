"""
Per-session notification channel.

The navigation controller publishes one Notification per state change; the
UI layer (or the CLI) consumes them with ``async for``. The channel is a
bounded asyncio.Queue, so a slow consumer back-pressures the publisher and
delivery order equals publish order.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Optional

from pydantic import BaseModel, ConfigDict

from installwizard.models import InstallationSession, InstallationStep, ProgressEvent

logger = logging.getLogger(__name__)

__all__ = ["NotificationType", "Notification", "EventChannel", "ChannelClosedError"]


class NotificationType(str, Enum):
    SESSION_STARTED = "session-started"
    SESSION_PROGRESS = "session-progress"
    SESSION_PAUSED = "session-paused"
    SESSION_RESUMED = "session-resumed"
    SESSION_CANCELLED = "session-cancelled"
    SESSION_COMPLETED = "session-completed"
    SESSION_FAILED = "session-failed"
    STEP_STARTED = "step-started"
    STEP_PROGRESS = "step-progress"
    STEP_COMPLETED = "step-completed"
    STEP_FAILED = "step-failed"
    STEP_SKIPPED = "step-skipped"
    STEP_RESET = "step-reset"


class Notification(BaseModel):
    """Snapshot of a change, safe to hand to another component."""
    type: NotificationType
    session_id: str
    step: Optional[InstallationStep] = None
    event: Optional[ProgressEvent] = None
    overall_progress: int = 0
    estimated_remaining_seconds: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def build(
        cls,
        type: NotificationType,
        session: InstallationSession,
        step: Optional[InstallationStep] = None,
        event: Optional[ProgressEvent] = None,
    ) -> "Notification":
        return cls(
            type=type,
            session_id=session.id,
            step=step.model_copy(deep=True) if step is not None else None,
            event=event,
            overall_progress=session.overall_progress,
            estimated_remaining_seconds=session.estimated_remaining_seconds,
        )


class ChannelClosedError(RuntimeError):
    """Raised when publishing to a closed channel."""


_CLOSE = object()


class EventChannel:
    """Bounded, ordered, single-consumer notification queue."""

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, notification: Notification) -> None:
        """Enqueue ``notification``, waiting while the channel is full."""
        if self._closed:
            raise ChannelClosedError("channel is closed")
        await self._queue.put(notification)

    async def close(self) -> None:
        """Stop the channel; consumers finish after draining queued items."""
        if not self._closed:
            self._closed = True
            await self._queue.put(_CLOSE)

    async def get(self) -> Optional[Notification]:
        """Next notification, or None once the channel is closed and drained."""
        item = await self._queue.get()
        if item is _CLOSE:
            return None
        return item

    async def __aiter__(self) -> AsyncIterator[Notification]:
        while True:
            item = await self.get()
            if item is None:
                return
            yield item
