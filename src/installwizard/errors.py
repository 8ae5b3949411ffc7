"""
Error taxonomy for the installation engine.

Two families share one set of kinds:

- Guard violations raised synchronously by the navigation controller
  (AlreadyRunning, NotRetryable, NotSkippable, ...). They never mutate state.
- Execution failures, which are classified from subprocess output by
  ``installwizard.classifier`` and surfaced as a terminal progress event
  rather than raised across the protocol boundary.

Usage:
    from installwizard.errors import AlreadyRunningError, ErrorKind

    try:
        await controller.start_step("nodejs-setup")
    except AlreadyRunningError as e:
        assert e.kind is ErrorKind.ALREADY_RUNNING
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = [
    "ErrorKind",
    "InstallWizardError",
    "AlreadyRunningError",
    "NotRetryableError",
    "NotSkippableError",
    "InvalidTransitionError",
    "StepNotFoundError",
    "SessionNotActiveError",
    "ScriptMissingError",
    "UnsupportedPlatformError",
    "UnknownComponentError",
]


class ErrorKind(str, Enum):
    """Canonical failure kinds shared by guards and the classifier."""
    SCRIPT_MISSING = "ScriptMissing"
    USER_CANCELLED = "UserCancelled"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    NETWORK_FAILURE = "NetworkFailure"
    PERMISSION_DENIED = "PermissionDenied"
    COMMAND_NOT_FOUND = "CommandNotFound"
    UNSUPPORTED_PLATFORM = "UnsupportedPlatform"
    TIMEOUT = "Timeout"
    ALREADY_RUNNING = "AlreadyRunning"
    NOT_RETRYABLE = "NotRetryable"
    NOT_SKIPPABLE = "NotSkippable"
    UNKNOWN = "Unknown"

    @property
    def is_fatal(self) -> bool:
        """Fatal kinds end the session; there is no retry path."""
        return self is ErrorKind.UNSUPPORTED_PLATFORM


class InstallWizardError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, step_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step_id = step_id


class AlreadyRunningError(InstallWizardError):
    """Raised when a step is started while another step is running."""
    kind = ErrorKind.ALREADY_RUNNING


class NotRetryableError(InstallWizardError):
    """Raised when a retry is not permitted for a step."""
    kind = ErrorKind.NOT_RETRYABLE


class NotSkippableError(InstallWizardError):
    """Raised when skipping a step that does not allow it."""
    kind = ErrorKind.NOT_SKIPPABLE


class InvalidTransitionError(InstallWizardError):
    """Raised on a status change the step state machine does not allow."""


class StepNotFoundError(InstallWizardError):
    """Raised for an unknown step id."""


class SessionNotActiveError(InstallWizardError):
    """Raised when the session no longer accepts new step executions."""


class ScriptMissingError(InstallWizardError):
    """Raised when an installer script cannot be resolved or read."""
    kind = ErrorKind.SCRIPT_MISSING


class UnsupportedPlatformError(InstallWizardError):
    """Raised for a host OS with no privileged executor or script."""
    kind = ErrorKind.UNSUPPORTED_PLATFORM


class UnknownComponentError(InstallWizardError):
    """Raised for a component name the installer does not know."""
