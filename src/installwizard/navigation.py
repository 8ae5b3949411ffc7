"""
Navigation controller: the installation step state machine.

NavigationController is the only component that mutates the session. It
enforces the step transition rules, runs step actions (for script-backed
steps, the privileged installer) and applies their progress events in the
order received, then publishes a Notification per change.

Guard violations (AlreadyRunning, NotRetryable, NotSkippable, invalid
transitions, inactive session) are raised before any state is touched.
Execution failures are never raised: they become a failed step carrying the
classified error.

Usage:
    controller = NavigationController(session, actions={"nodejs-setup": action})
    step = await controller.start_step("nodejs-setup")
    if step.status is StepStatus.FAILED and controller.can_retry("nodejs-setup"):
        step = await controller.retry_step("nodejs-setup")
    controller.go_next()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Mapping, Optional

from installwizard.channel import EventChannel, Notification, NotificationType
from installwizard.classifier import ErrorClassifier
from installwizard.errors import (
    AlreadyRunningError,
    ErrorKind,
    InvalidTransitionError,
    NotRetryableError,
    NotSkippableError,
    SessionNotActiveError,
)
from installwizard.logger import InstallLogger
from installwizard.models import (
    COMPLETED_STATUSES,
    ClassifiedError,
    EventStatus,
    InstallationSession,
    InstallationStep,
    ProgressEvent,
    SessionStatus,
    StepStatus,
    utcnow,
)
from installwizard.persistence import PersistenceQueue, SessionStateFile
from installwizard.store import StepStateStore
from installwizard.tracing import StepTracer

logger = logging.getLogger(__name__)

__all__ = ["NavigationController", "StepAction", "ERROR_KIND_KEY", "DETAILS_KEY"]

# A step action receives a snapshot of the step and yields its progress events
StepAction = Callable[[InstallationStep], AsyncIterator[ProgressEvent]]

# Keys in ProgressEvent.extra carrying a classified failure
ERROR_KIND_KEY = "errorKind"
DETAILS_KEY = "details"


class NavigationController:
    """
    Owns the mutation path into one session's StepStateStore.

    Args:
        session: Session to drive; the controller takes ownership of it
        actions: step id -> StepAction for steps the engine executes itself
        max_retries: Retry ceiling per step
        classifier: Used for exceptions escaping a step action
        channel: Where notifications are published (optional)
        state_file: Where session snapshots are persisted (optional)
        tracer: Step span recorder (optional)
        clock: Current-time source
    """

    def __init__(
        self,
        session: InstallationSession,
        actions: Optional[Mapping[str, StepAction]] = None,
        max_retries: int = 3,
        classifier: Optional[ErrorClassifier] = None,
        channel: Optional[EventChannel] = None,
        state_file: Optional[SessionStateFile] = None,
        tracer: Optional[StepTracer] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = StepStateStore(session, clock=clock)
        self._actions: Dict[str, StepAction] = dict(actions or {})
        self.max_retries = max_retries
        self._classifier = classifier or ErrorClassifier()
        self.channel = channel
        self._persistence = PersistenceQueue(state_file)
        self._tracer = tracer
        self._log = InstallLogger(session_id=session.id)

    # -- reads ---------------------------------------------------------------

    @property
    def session(self) -> InstallationSession:
        """Deep copy of the session."""
        return self._store.snapshot()

    @property
    def session_id(self) -> str:
        return self._store.session.id

    def step(self, step_id: str) -> InstallationStep:
        """Deep copy of one step."""
        return self._store.get(step_id).model_copy(deep=True)

    def steps(self) -> List[InstallationStep]:
        return [s.model_copy(deep=True) for s in self._store.steps()]

    def register_action(self, step_id: str, action: StepAction) -> None:
        self._store.get(step_id)
        self._actions[step_id] = action

    # -- guards --------------------------------------------------------------

    def _ensure_none_running(self) -> None:
        running = self._store.running_step()
        if running is not None:
            raise AlreadyRunningError(f"Step already running: {running.id}", step_id=running.id)

    def _ensure_startable_session(self) -> None:
        status = self._store.session.status
        if status is SessionStatus.PAUSED or status.is_terminal:
            raise SessionNotActiveError(f"Session is {status.value}; no step can be started")

    def _ensure_open_session(self) -> None:
        status = self._store.session.status
        if status.is_terminal:
            raise SessionNotActiveError(f"Session is {status.value}")

    def can_retry(self, step_id: str) -> bool:
        try:
            self._check_retryable(self._store.get(step_id))
        except NotRetryableError:
            return False
        return self._store.get(step_id).status is StepStatus.FAILED

    def can_skip(self, step_id: str) -> bool:
        step = self._store.get(step_id)
        return step.can_skip and step.status in (StepStatus.PENDING, StepStatus.FAILED)

    def _check_retryable(self, step: InstallationStep) -> None:
        if not step.can_retry:
            raise NotRetryableError(f"Step cannot be retried: {step.id}", step_id=step.id)
        if step.retry_count >= self.max_retries:
            raise NotRetryableError(
                f"Step {step.id} reached the retry limit ({self.max_retries})", step_id=step.id
            )
        if step.error_kind is not None and step.error_kind.is_fatal:
            raise NotRetryableError(
                f"Step {step.id} failed with {step.error_kind.value}; no retry path", step_id=step.id
            )
        if self._store.session.status is SessionStatus.FAILED:
            raise NotRetryableError("Session has failed; no retry path", step_id=step.id)

    # -- session lifecycle ---------------------------------------------------

    async def start_session(self) -> InstallationSession:
        """Announce the session; it stays ``preparing`` until a step starts."""
        self._log.log_session_started(total_steps=self._store.session.total_steps)
        await self._publish(NotificationType.SESSION_STARTED)
        self._persist()
        return self.session

    async def pause_session(self) -> bool:
        if self._store.session.status is not SessionStatus.RUNNING:
            return False
        self._store.set_session_status(SessionStatus.PAUSED)
        self._log.log_session_status("paused")
        await self._publish(NotificationType.SESSION_PAUSED)
        self._persist()
        return True

    async def resume_session(self) -> bool:
        if self._store.session.status is not SessionStatus.PAUSED:
            return False
        self._store.set_session_status(SessionStatus.RUNNING)
        self._log.log_session_status("resumed")
        await self._publish(NotificationType.SESSION_RESUMED)
        self._persist()
        return True

    async def cancel_session(self) -> bool:
        """
        Cancel the session.

        A script that is already running is not interrupted; cancellation only
        prevents further steps from starting.
        """
        if self._store.session.status.is_terminal:
            return False
        self._store.set_session_status(SessionStatus.CANCELLED)
        running = self._store.running_step()
        self._log.log_session_status(
            "cancelled", reason=f"step {running.id} keeps running" if running else None
        )
        await self._publish(NotificationType.SESSION_CANCELLED)
        self._persist()
        return True

    async def complete_session(self) -> bool:
        if self._store.session.status.is_terminal:
            return False
        self._store.set_session_status(SessionStatus.COMPLETED)
        self._log.log_session_status("completed")
        await self._publish(NotificationType.SESSION_COMPLETED)
        self._persist()
        return True

    # -- step operations -----------------------------------------------------

    async def start_step(self, step_id: str) -> InstallationStep:
        """
        Start ``step_id`` and, if it has an action, run it to its end.

        Raises:
            AlreadyRunningError: Another step is running.
            SessionNotActiveError: Session paused, cancelled, failed or completed.
            InvalidTransitionError: The step is already finished.
            StepNotFoundError: Unknown step.
        """
        self._store.get(step_id)
        self._ensure_none_running()
        self._ensure_startable_session()
        self._store.check_transition(step_id, StepStatus.RUNNING)

        step = self._begin(step_id)
        return await self._announce_and_run(step)

    def _begin(self, step_id: str) -> InstallationStep:
        # Synchronous so that no other operation can interleave after the guards
        step = self._store.mark_running(step_id)
        attempt = step.retry_count + 1
        self._log.log_step_started(step_id, attempt=attempt)
        if self._tracer is not None:
            self._tracer.step_started(step_id, step.name, attempt)
        return step

    async def _announce_and_run(self, step: InstallationStep) -> InstallationStep:
        await self._publish(NotificationType.STEP_STARTED, step)
        await self._publish(NotificationType.SESSION_PROGRESS)
        self._persist()

        action = self._actions.get(step.id)
        if action is not None:
            await self._run_action(step.id, action)
        return self.step(step.id)

    async def _run_action(self, step_id: str, action: StepAction) -> None:
        last_message: Optional[str] = None
        events = action(self.step(step_id))
        try:
            async for event in events:
                await self.apply_event(step_id, event)
                if event.is_terminal:
                    return
                last_message = event.message or last_message
        except Exception as e:
            logger.exception(f"Step action for {step_id} raised")
            if self._store.get(step_id).status is StepStatus.RUNNING:
                classified = self._classifier.classify_exception(e)
                await self.fail_step(step_id, classified.user_message, classified)
            return
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        if self._store.get(step_id).status is StepStatus.RUNNING:
            await self.complete_step(step_id, last_message)

    async def apply_event(self, step_id: str, event: ProgressEvent) -> InstallationStep:
        """Apply one progress event to a running step."""
        if event.status is EventStatus.SUCCESS:
            return await self.complete_step(step_id, event.message or None)

        if event.status is EventStatus.ERROR:
            kind_value = event.extra.get(ERROR_KIND_KEY)
            classified = ClassifiedError(
                kind=ErrorKind(kind_value) if kind_value else ErrorKind.UNKNOWN,
                user_message=event.message or "Installation failed",
                details=event.extra.get(DETAILS_KEY),
            )
            return await self.fail_step(step_id, classified.user_message, classified)

        step = self._store.update_progress(step_id, event.progress, event.message)
        self._log.log_step_progress(step_id, step.progress, step.message)
        if self._tracer is not None:
            self._tracer.step_progress(step_id, step.progress, step.message)
        await self._publish(NotificationType.STEP_PROGRESS, step, event)
        await self._publish(NotificationType.SESSION_PROGRESS)
        return step.model_copy(deep=True)

    async def complete_step(self, step_id: str, message: Optional[str] = None) -> InstallationStep:
        """Mark a running step successful."""
        step = self._store.mark_success(step_id, message or "Completed")
        session = self._store.session
        self._log.log_step_completed(step_id, step.duration_ms, session.overall_progress)
        if self._tracer is not None:
            self._tracer.step_ended(step_id, "success", duration_ms=step.duration_ms)
        await self._publish(NotificationType.STEP_COMPLETED, step)
        await self._publish(NotificationType.SESSION_PROGRESS)
        await self._complete_if_done()
        self._persist()
        return step.model_copy(deep=True)

    async def fail_step(
        self,
        step_id: str,
        message: str,
        classified: Optional[ClassifiedError] = None,
    ) -> InstallationStep:
        """Mark a running step failed. ``completed_steps`` is unchanged."""
        kind = classified.kind if classified else None
        step = self._store.mark_failed(
            step_id,
            message,
            error_kind=kind,
            details=classified.details if classified else None,
        )
        self._log.log_step_failed(step_id, message, kind.value if kind else None, step.duration_ms)
        if self._tracer is not None:
            self._tracer.step_ended(
                step_id,
                "failed",
                error_kind=kind.value if kind else None,
                message=message,
                duration_ms=step.duration_ms,
            )
        await self._publish(NotificationType.STEP_FAILED, step)

        if kind is not None and kind.is_fatal and not self._store.session.status.is_terminal:
            self._store.set_session_status(SessionStatus.FAILED)
            self._log.log_session_status("failed", reason=kind.value)
            await self._publish(NotificationType.SESSION_FAILED)

        self._persist()
        return step.model_copy(deep=True)

    async def skip_step(self, step_id: str) -> InstallationStep:
        """
        Skip a pending or failed step. Skipped steps count as completed.

        Raises:
            NotSkippableError: The step does not allow skipping.
        """
        step = self._store.get(step_id)
        if not step.can_skip:
            raise NotSkippableError(f"Step cannot be skipped: {step_id}", step_id=step_id)
        self._ensure_open_session()
        self._store.check_transition(step_id, StepStatus.SKIPPED)

        step = self._store.mark_skipped(step_id)
        self._log.log_step_skipped(step_id)
        await self._publish(NotificationType.STEP_SKIPPED, step)
        await self._publish(NotificationType.SESSION_PROGRESS)
        await self._complete_if_done()
        self._persist()
        return step.model_copy(deep=True)

    async def retry_step(self, step_id: str) -> InstallationStep:
        """
        Reset a failed step, count the retry and start it again.

        Raises:
            NotRetryableError: Retry not allowed or the retry limit is reached.
            InvalidTransitionError: The step has not failed.
        """
        step = self._store.get(step_id)
        self._check_retryable(step)
        if step.status is not StepStatus.FAILED:
            raise InvalidTransitionError(
                f"Only failed steps can be retried ({step_id} is {step.status.value})", step_id=step_id
            )
        self._ensure_none_running()
        self._ensure_startable_session()

        # Reset and restart without yielding to the event loop in between
        reset = self._store.reset_for_retry(step_id).model_copy(deep=True)
        self._log.log_step_retried(step_id, reset.retry_count, self.max_retries)
        step = self._begin(step_id)

        await self._publish(NotificationType.STEP_RESET, reset)
        return await self._announce_and_run(step)

    async def _complete_if_done(self) -> None:
        session = self._store.session
        if self._store.all_completed() and not session.status.is_terminal:
            await self.complete_session()

    # -- navigation ----------------------------------------------------------

    def can_go_back(self) -> bool:
        index = self._store.session.current_step_index
        return any(s.status in COMPLETED_STATUSES for s in self._store.session.steps[:index])

    def can_go_next(self) -> bool:
        session = self._store.session
        index = session.current_step_index
        if index >= session.total_steps - 1:
            return False
        return session.steps[index].status in COMPLETED_STATUSES

    def go_back(self) -> bool:
        """Move to the previous step. False if no earlier step has completed."""
        if not self.can_go_back():
            return False
        self._store.set_current_index(self._store.session.current_step_index - 1)
        self._persist()
        return True

    def go_next(self) -> bool:
        """Move to the following step. False unless the current step succeeded or was skipped."""
        if not self.can_go_next():
            return False
        self._store.set_current_index(self._store.session.current_step_index + 1)
        self._persist()
        return True

    # -- plumbing ------------------------------------------------------------

    async def _publish(
        self,
        type: NotificationType,
        step: Optional[InstallationStep] = None,
        event: Optional[ProgressEvent] = None,
    ) -> None:
        if self.channel is None or self.channel.closed:
            return
        await self.channel.publish(Notification.build(type, self._store.session, step, event))

    def _persist(self) -> None:
        self._persistence.submit(self._store.snapshot())

    async def flush(self) -> None:
        """Wait for pending state writes."""
        await self._persistence.flush()

    async def close(self) -> None:
        """Flush persistence, end open spans and close the channel."""
        await self.flush()
        if self._tracer is not None:
            self._tracer.shutdown()
        if self.channel is not None:
            await self.channel.close()
