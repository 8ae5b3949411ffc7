"""
Session state file.

Persists the InstallationSession as JSON so a later process (the CLI
``status`` command, or a restarted UI) can show where an installation
stopped. Writes are atomic: temporary file + rename, mode 600, guarded by an
adjacent lock file.

State is stored at ~/.installwizard/install-session.json by default.

Persistence never blocks or fails the in-memory state machine; see
``PersistenceQueue``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import IO, Generator, Optional, Set

import click
from pydantic import ValidationError

from installwizard.models import InstallationSession, StepStatus

logger = logging.getLogger(__name__)

__all__ = ["SessionStateFile", "PersistenceQueue", "file_lock"]


# Cross-platform file locking
if sys.platform == "win32":
    import msvcrt

    def _lock_file(f: IO) -> None:
        msvcrt.locking(f.fileno(), msvcrt.LK_LOCK, 1)

    def _unlock_file(f: IO) -> None:
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
else:
    import fcntl

    def _lock_file(f: IO) -> None:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)

    def _unlock_file(f: IO) -> None:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def file_lock(path: Path) -> Generator[IO, None, None]:
    """
    Exclusive lock on a file adjacent to ``path``.

    Example:
        with file_lock(state_file):
            state_file.write_text(data)
    """
    lock_path = path.with_suffix(path.suffix + ".lock")
    lock_path.touch(exist_ok=True)

    lock_file = open(lock_path, "r+")
    try:
        _lock_file(lock_file)
        yield lock_file
    finally:
        try:
            _unlock_file(lock_file)
        except OSError as e:
            logger.debug(f"Unlock failed for {lock_path}: {e}")
        finally:
            lock_file.close()


_STATUS_STYLES = {
    StepStatus.SUCCESS: ("✓", "green"),
    StepStatus.SKIPPED: ("↷", "yellow"),
    StepStatus.FAILED: ("✗", "red"),
    StepStatus.RUNNING: ("…", "blue"),
    StepStatus.PENDING: ("○", None),
}


class SessionStateFile:
    """Reads and writes one persisted InstallationSession."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[InstallationSession]:
        """Load the session, or None if the file is missing or corrupt."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return InstallationSession.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable session state {self.path}: {e}")
            return None

    def save(self, session: InstallationSession) -> None:
        """Write ``session`` atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = session.model_dump_json(indent=2)

        with file_lock(self.path):
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".install-session-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.chmod(temp_path, 0o600)
                os.replace(temp_path, self.path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(temp_path)
                raise

    def clear(self) -> bool:
        """Delete the state file. Returns True if a file was removed."""
        try:
            self.path.unlink()
            return True
        except FileNotFoundError:
            return False

    def summary(self, color: bool = True) -> str:
        """Human-readable summary of the persisted session."""
        session = self.load()
        if session is None:
            return "No installation session recorded."

        def style(text: str, fg: Optional[str] = None, bold: bool = False) -> str:
            return click.style(text, fg=fg, bold=bold) if color else text

        lines = [
            style(f"Session {session.id}", bold=True),
            f"  Status:   {session.status.value}",
            f"  Progress: {session.overall_progress}% "
            f"({session.completed_steps}/{session.total_steps} steps)",
            f"  Started:  {session.started_at.isoformat()}",
        ]
        if session.ended_at:
            lines.append(f"  Ended:    {session.ended_at.isoformat()}")
        if session.estimated_remaining_seconds is not None and not session.status.is_terminal:
            lines.append(f"  ETA:      ~{session.estimated_remaining_seconds}s")
        lines.append("")

        for step in session.steps:
            icon, fg = _STATUS_STYLES[step.status]
            line = f"  {style(icon, fg)} {step.name} [{step.status.value}]"
            if step.retry_count:
                line += f" (retries: {step.retry_count})"
            if step.status is StepStatus.FAILED and step.message:
                line += f" - {step.message}"
            lines.append(line)
        return "\n".join(lines)


class PersistenceQueue:
    """
    Fire-and-forget writer for session snapshots.

    ``submit`` schedules a save on a worker thread and returns immediately.
    Failures are logged and never propagate to the caller. ``flush`` awaits
    everything submitted so far.
    """

    def __init__(self, state_file: Optional[SessionStateFile]):
        self.state_file = state_file
        self._pending: Set[asyncio.Future] = set()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def submit(self, snapshot: InstallationSession) -> None:
        if self.state_file is None:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._save(snapshot))
        except RuntimeError:
            # No event loop: write inline, still without raising
            self._save_sync(snapshot)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self, snapshot: InstallationSession) -> None:
        # Serialize writes so that the last submitted snapshot lands last
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        async with self._lock:
            await asyncio.to_thread(self._save_sync, snapshot)

    def _save_sync(self, snapshot: InstallationSession) -> None:
        try:
            self.state_file.save(snapshot)
        except Exception as e:
            logger.warning(f"Failed to persist session state to {self.state_file.path}: {e}")

    async def flush(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending))
