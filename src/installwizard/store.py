"""
Step and session state for one installation run.

StepStateStore holds the session, applies the per-step status transitions
and recomputes the derived aggregates (completed step count, overall
progress, ETA) after every change. Only NavigationController calls the
mutating methods; everyone else reads snapshots.

Status transitions:
    pending -> running | skipped
    running -> success | failed
    failed  -> pending (retry reset) | skipped
    success, skipped: terminal
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional

from installwizard.errors import ErrorKind, InvalidTransitionError, StepNotFoundError
from installwizard.models import (
    COMPLETED_STATUSES,
    InstallationSession,
    InstallationStep,
    SessionStatus,
    StepStatus,
    utcnow,
)

__all__ = ["StepStateStore", "VALID_TRANSITIONS", "clamp_progress"]

VALID_TRANSITIONS: Dict[StepStatus, FrozenSet[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING, StepStatus.SKIPPED}),
    StepStatus.RUNNING: frozenset({StepStatus.SUCCESS, StepStatus.FAILED}),
    StepStatus.FAILED: frozenset({StepStatus.PENDING, StepStatus.SKIPPED}),
    StepStatus.SUCCESS: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


def clamp_progress(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _duration_ms(start: Optional[datetime], end: datetime) -> Optional[int]:
    if start is None:
        return None
    return int((end - start).total_seconds() * 1000)


class StepStateStore:
    """
    Owns an InstallationSession and its steps.

    Args:
        session: The session to manage
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(self, session: InstallationSession, clock: Callable[[], datetime] = utcnow):
        self._session = session
        self._clock = clock
        self._index: Dict[str, int] = {step.id: i for i, step in enumerate(session.steps)}
        self.recompute()

    # -- reads ---------------------------------------------------------------

    @property
    def session(self) -> InstallationSession:
        return self._session

    def now(self) -> datetime:
        return self._clock()

    def snapshot(self) -> InstallationSession:
        """Deep copy of the session for readers outside the controller."""
        return self._session.model_copy(deep=True)

    def get(self, step_id: str) -> InstallationStep:
        try:
            return self._session.steps[self._index[step_id]]
        except KeyError:
            raise StepNotFoundError(f"Unknown step: {step_id}", step_id=step_id) from None

    def index_of(self, step_id: str) -> int:
        self.get(step_id)
        return self._index[step_id]

    def steps(self) -> List[InstallationStep]:
        return list(self._session.steps)

    def running_step(self) -> Optional[InstallationStep]:
        for step in self._session.steps:
            if step.status is StepStatus.RUNNING:
                return step
        return None

    def current_step(self) -> InstallationStep:
        return self._session.steps[self._session.current_step_index]

    def all_completed(self) -> bool:
        return all(s.status in COMPLETED_STATUSES for s in self._session.steps)

    # -- step mutations ------------------------------------------------------

    def _transition(self, step: InstallationStep, to: StepStatus) -> None:
        if to not in VALID_TRANSITIONS[step.status]:
            raise InvalidTransitionError(
                f"Invalid status transition for {step.id}: {step.status.value} -> {to.value}",
                step_id=step.id,
            )
        step.status = to

    def check_transition(self, step_id: str, to: StepStatus) -> InstallationStep:
        """Validate a transition without applying it."""
        step = self.get(step_id)
        if to not in VALID_TRANSITIONS[step.status]:
            raise InvalidTransitionError(
                f"Invalid status transition for {step.id}: {step.status.value} -> {to.value}",
                step_id=step.id,
            )
        return step

    def mark_running(self, step_id: str, message: str = "Running...") -> InstallationStep:
        step = self.get(step_id)
        self._transition(step, StepStatus.RUNNING)
        step.progress = 0
        step.message = message
        step.started_at = self.now()
        step.ended_at = None
        step.duration_ms = None
        step.error_kind = None
        step.details = None

        session = self._session
        session.current_step_index = self._index[step_id]
        if session.status in (SessionStatus.PREPARING, SessionStatus.PAUSED):
            session.status = SessionStatus.RUNNING
        self.recompute()
        return step

    def update_progress(self, step_id: str, progress: float, message: Optional[str] = None) -> InstallationStep:
        step = self.get(step_id)
        if step.status is not StepStatus.RUNNING:
            raise InvalidTransitionError(
                f"Progress update for {step_id} while {step.status.value}", step_id=step_id
            )
        step.progress = clamp_progress(progress)
        if message:
            step.message = message
        self.recompute()
        return step

    def mark_success(self, step_id: str, message: str = "Completed") -> InstallationStep:
        step = self.get(step_id)
        self._transition(step, StepStatus.SUCCESS)
        step.progress = 100
        step.message = message
        self._finish_timing(step)
        self.recompute()
        return step

    def mark_failed(
        self,
        step_id: str,
        message: str,
        error_kind: Optional[ErrorKind] = None,
        details: Optional[str] = None,
    ) -> InstallationStep:
        step = self.get(step_id)
        self._transition(step, StepStatus.FAILED)
        step.message = message
        step.error_kind = error_kind
        step.details = details
        self._finish_timing(step)
        self.recompute()
        return step

    def mark_skipped(self, step_id: str, message: str = "Skipped") -> InstallationStep:
        step = self.get(step_id)
        self._transition(step, StepStatus.SKIPPED)
        step.progress = 100
        step.message = message
        step.ended_at = self.now()
        self.recompute()
        return step

    def reset_for_retry(self, step_id: str) -> InstallationStep:
        step = self.get(step_id)
        self._transition(step, StepStatus.PENDING)
        step.progress = 0
        step.message = ""
        step.started_at = None
        step.ended_at = None
        step.duration_ms = None
        step.details = None
        step.retry_count += 1
        self.recompute()
        return step

    def _finish_timing(self, step: InstallationStep) -> None:
        step.ended_at = self.now()
        step.duration_ms = _duration_ms(step.started_at, step.ended_at)

    # -- session mutations ---------------------------------------------------

    def set_session_status(self, status: SessionStatus) -> None:
        session = self._session
        session.status = status
        if status.is_terminal:
            session.ended_at = self.now()
        if status is SessionStatus.COMPLETED:
            session.overall_progress = 100

    def set_current_index(self, index: int) -> None:
        self._session.current_step_index = index

    # -- aggregates ----------------------------------------------------------

    def recompute(self) -> None:
        """Recompute completed_steps, overall_progress and the ETA."""
        session = self._session
        total = session.total_steps
        completed = sum(1 for s in session.steps if s.status in COMPLETED_STATUSES)
        session.completed_steps = completed

        running = self.running_step()
        running_fraction = running.progress / 100 if running is not None else 0.0
        overall = round((completed + running_fraction) / total * 100)
        if session.status is SessionStatus.COMPLETED:
            overall = 100
        session.overall_progress = int(max(0, min(100, overall)))

        session.estimated_remaining_seconds = self.estimate_remaining_seconds()

    def estimate_remaining_seconds(self) -> Optional[int]:
        """Average time per completed step times the remaining step count."""
        session = self._session
        completed = session.completed_steps
        if completed == 0:
            return None
        elapsed_ms = (self.now() - session.started_at).total_seconds() * 1000
        avg_ms = elapsed_ms / completed
        return max(0, round(avg_ms * (session.total_steps - completed) / 1000))
