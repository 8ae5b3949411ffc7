"""
Step catalog for the installation wizard.

Defines the default ordered steps and loads an optional YAML override.

YAML format:

    steps:
      - id: welcome
        name: Welcome
        can_retry: false
      - id: google-setup
        name: Google account
        can_skip: true
        is_optional: true

Usage:
    from installwizard.catalog import build_session, load_steps

    session = build_session(load_steps("steps.yaml"))
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from installwizard.models import InstallationSession, InstallationStep

if TYPE_CHECKING:
    from os import PathLike

__all__ = ["StepDefinition", "DEFAULT_STEPS", "load_steps", "build_session"]


class StepDefinition(BaseModel):
    """Static description of one wizard step."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    can_retry: bool = True
    can_skip: bool = False
    is_optional: bool = False

    @model_validator(mode="after")
    def optional_steps_are_skippable(self) -> "StepDefinition":
        if self.is_optional and not self.can_skip:
            raise ValueError(f"optional step {self.id!r} must be skippable")
        return self

    def to_step(self) -> InstallationStep:
        return InstallationStep(
            id=self.id,
            name=self.name,
            description=self.description,
            can_retry=self.can_retry,
            can_skip=self.can_skip,
            is_optional=self.is_optional,
        )


DEFAULT_STEPS: List[StepDefinition] = [
    StepDefinition(
        id="welcome",
        name="Welcome",
        description="Introduction to the installation process",
        can_retry=False,
    ),
    StepDefinition(
        id="prerequisites",
        name="System check",
        description="Check the operating system and available disk space",
    ),
    StepDefinition(
        id="network-check",
        name="Network check",
        description="Check connectivity to the download mirrors",
    ),
    StepDefinition(
        id="nodejs-setup",
        name="Node.js",
        description="Install the Node.js runtime",
    ),
    StepDefinition(
        id="google-setup",
        name="Google account",
        description="Create or sign in to a Google account",
        can_skip=True,
        is_optional=True,
    ),
    StepDefinition(
        id="claude-install",
        name="Claude CLI",
        description="Install the Claude command line tool",
    ),
    StepDefinition(
        id="api-config",
        name="API configuration",
        description="Configure the API key and endpoint",
        can_skip=True,
        is_optional=True,
    ),
    StepDefinition(
        id="completion",
        name="Done",
        description="Summary and next steps",
        can_retry=False,
    ),
]


def load_steps(path: Union[str, "PathLike[str]"]) -> List[StepDefinition]:
    """
    Load step definitions from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a valid step catalog
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Steps file not found: {path}")

    raw_data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw_data, dict) or not isinstance(raw_data.get("steps"), list):
        raise ValueError(f"{path}: expected a mapping with a 'steps' list")

    try:
        steps = [StepDefinition.model_validate(item) for item in raw_data["steps"]]
    except ValidationError as e:
        raise ValueError(f"{path}: invalid step definition: {e}") from e

    if not steps:
        raise ValueError(f"{path}: no steps defined")

    seen = set()
    for step in steps:
        if step.id in seen:
            raise ValueError(f"{path}: duplicate step id {step.id!r}")
        seen.add(step.id)
    return steps


def build_session(
    definitions: Optional[Sequence[StepDefinition]] = None,
    session_id: Optional[str] = None,
) -> InstallationSession:
    """Fresh session with every step pending."""
    definitions = definitions if definitions is not None else DEFAULT_STEPS
    steps = [d.to_step() for d in definitions]
    if session_id:
        return InstallationSession(id=session_id, steps=steps)
    return InstallationSession(steps=steps)
