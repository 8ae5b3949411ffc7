"""
Structured logging for installation lifecycle events.

Outputs one JSON object per state change so that an installation run can be
reconstructed from the log alone. Progress lines are logged at debug level to
keep the default output readable.

Logged events:
- session.started / session.paused / session.resumed
- session.cancelled / session.completed / session.failed
- step.started / step.progress / step.completed
- step.failed / step.skipped / step.retried

Usage:
    from installwizard.logger import InstallLogger

    logger = InstallLogger(session_id="session_1700000000000_abc123xyz")
    logger.log_step_started(step_id="nodejs-setup", attempt=1)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_event_logger = logging.getLogger("installwizard.events")

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    """
    Configure the ``installwizard`` logger hierarchy.

    Args:
        level: debug, info, warning or error
        fmt: "text" for console output, "json" for bare JSON lines
    """
    root = logging.getLogger("installwizard")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)


class InstallLogger:
    """
    Structured logger for session and step events.

    Each entry carries the session id, the event name and event-specific
    attributes.
    """

    def __init__(
        self,
        session_id: str,
        service_name: str = "installwizard",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.session_id = session_id
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _event_logger

    def _emit(
        self,
        event: str,
        step_id: Optional[str] = None,
        level: str = "info",
        **extra_fields: Any,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "session_id": self.session_id,
        }
        if step_id:
            entry["step_id"] = step_id

        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        elif level == "debug":
            self._logger.debug(log_line)
        else:
            self._logger.info(log_line)

    def log_session_started(self, total_steps: int) -> None:
        self._emit("session.started", total_steps=total_steps)

    def log_session_status(self, status: str, reason: Optional[str] = None) -> None:
        """Log a session status change (paused, resumed, cancelled, completed, failed)."""
        level = "error" if status == "failed" else "info"
        self._emit(f"session.{status}", level=level, reason=reason)

    def log_step_started(self, step_id: str, attempt: int) -> None:
        self._emit("step.started", step_id=step_id, attempt=attempt)

    def log_step_progress(self, step_id: str, progress: float, message: str) -> None:
        self._emit("step.progress", step_id=step_id, level="debug", progress=progress, message=message)

    def log_step_completed(
        self,
        step_id: str,
        duration_ms: Optional[int] = None,
        overall_progress: Optional[int] = None,
    ) -> None:
        self._emit(
            "step.completed",
            step_id=step_id,
            duration_ms=duration_ms,
            overall_progress=overall_progress,
        )

    def log_step_failed(
        self,
        step_id: str,
        message: str,
        error_kind: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        self._emit(
            "step.failed",
            step_id=step_id,
            level="error",
            message=message,
            error_kind=error_kind,
            duration_ms=duration_ms,
        )

    def log_step_skipped(self, step_id: str) -> None:
        self._emit("step.skipped", step_id=step_id)

    def log_step_retried(self, step_id: str, retry_count: int, max_retries: int) -> None:
        self._emit(
            "step.retried",
            step_id=step_id,
            level="warn",
            retry_count=retry_count,
            max_retries=max_retries,
        )
