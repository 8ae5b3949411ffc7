"""
Pydantic models for installation steps, sessions and the progress protocol.

InstallationSession owns its steps; nothing outside the navigation controller
should write to these objects. Callers receive deep copies from
``NavigationController.session``.
"""

from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from installwizard.errors import ErrorKind

__all__ = [
    "StepStatus",
    "SessionStatus",
    "EventStatus",
    "COMPLETED_STATUSES",
    "InstallationStep",
    "InstallationSession",
    "ProgressEvent",
    "ExecutionError",
    "ScriptExecutionResult",
    "ClassifiedError",
    "new_session_id",
    "utcnow",
]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    """Session ids look like ``session_<epoch ms>_<9 random chars>``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class StepStatus(str, Enum):
    """Status values for installation steps."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SessionStatus(str, Enum):
    """Status values for an installation session."""
    PREPARING = "preparing"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED)


class EventStatus(str, Enum):
    """Status field of a progress protocol line."""
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


COMPLETED_STATUSES = frozenset({StepStatus.SUCCESS, StepStatus.SKIPPED})

# Protocol keys that map onto ProgressEvent fields
_WIRE_KEYS = frozenset({"step", "progress", "message", "status", "nodeVersion", "npmVersion"})


class InstallationStep(BaseModel):
    """One unit of the installation wizard."""
    id: str = Field(..., min_length=1, description="Step identifier")
    name: str = Field(..., min_length=1, description="Display name")
    description: str = Field("", description="Short description")
    status: StepStatus = StepStatus.PENDING
    progress: float = Field(0, ge=0, le=100)
    message: str = ""
    can_retry: bool = False
    can_skip: bool = False
    is_optional: bool = False
    retry_count: int = Field(0, ge=0)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    details: Optional[str] = Field(None, description="Raw stderr / native error text")

    @property
    def is_completed(self) -> bool:
        return self.status in COMPLETED_STATUSES

    @property
    def is_running(self) -> bool:
        return self.status is StepStatus.RUNNING


class InstallationSession(BaseModel):
    """The full ordered run of all steps for one installation attempt."""
    id: str = Field(default_factory=new_session_id)
    status: SessionStatus = SessionStatus.PREPARING
    steps: List[InstallationStep] = Field(..., min_length=1)
    current_step_index: int = Field(0, ge=0)
    completed_steps: int = Field(0, ge=0)
    overall_progress: int = Field(0, ge=0, le=100)
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    estimated_remaining_seconds: Optional[int] = None

    @field_validator("steps")
    @classmethod
    def unique_step_ids(cls, v: List[InstallationStep]) -> List[InstallationStep]:
        """Step ids define the canonical sequence and must be unique."""
        ids = [s.id for s in v]
        if len(ids) != len(set(ids)):
            raise ValueError("step ids must be unique")
        return v

    @property
    def total_steps(self) -> int:
        return len(self.steps)


class ProgressEvent(BaseModel):
    """
    One line of the installer script progress protocol.

    Wire format (one JSON object per stdout line):
        {"step": "download", "progress": 20, "message": "...",
         "status": "running", "nodeVersion": "v20.11.0", "npmVersion": "10.2.4"}

    Unknown keys are kept in ``extra``.
    """
    step: Optional[str] = None
    progress: float
    message: str = ""
    status: EventStatus
    node_version: Optional[str] = Field(None, alias="nodeVersion")
    npm_version: Optional[str] = Field(None, alias="npmVersion")
    extra: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "ProgressEvent":
        """Build from a decoded protocol line, collecting unknown keys into ``extra``."""
        known = {k: v for k, v in data.items() if k in _WIRE_KEYS}
        extra = {k: v for k, v in data.items() if k not in _WIRE_KEYS}
        return cls.model_validate({**known, "extra": extra})

    def to_wire(self) -> Dict[str, Any]:
        """Inverse of ``from_wire``."""
        data = self.model_dump(by_alias=True, exclude={"extra"}, exclude_none=True, mode="json")
        data.update(self.extra)
        return data

    @field_validator("progress", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        # JSON true/false would otherwise coerce to 1/0
        if isinstance(v, bool):
            raise ValueError("progress must be a number")
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in (EventStatus.SUCCESS, EventStatus.ERROR)


class ExecutionError(BaseModel):
    """Failure details attached to a script execution result."""
    message: str
    native_code: Optional[str] = None
    kind: Optional[ErrorKind] = None

    model_config = ConfigDict(frozen=True)


class ScriptExecutionResult(BaseModel):
    """Outcome of one privileged script invocation. Immutable."""
    success: bool
    stdout: str = ""
    stderr: str = ""
    error: Optional[ExecutionError] = None

    model_config = ConfigDict(frozen=True)


class ClassifiedError(BaseModel):
    """Canonical classification of an execution failure."""
    kind: ErrorKind
    user_message: str
    details: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def retryable(self) -> bool:
        return not self.kind.is_fatal
