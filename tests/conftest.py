"""
Pytest configuration and fixtures for installwizard tests.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Generator, List, Optional, Sequence

import pytest
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from installwizard.catalog import StepDefinition, build_session
from installwizard.config import InstallWizardConfig, reset_config
from installwizard.execution.process import ProcessOutcome
from installwizard.models import InstallationSession


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Point state at a temp dir and drop any INSTALLWIZARD_* settings."""
    import os

    for key in list(os.environ):
        if key.startswith("INSTALLWIZARD_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("INSTALLWIZARD_STATE_DIR", str(tmp_path / "state"))
    reset_config()

    yield

    reset_config()


@pytest.fixture
def scripts_dir(tmp_path: Path) -> Path:
    """A scripts directory holding both component scripts for every platform."""
    directory = tmp_path / "scripts"
    directory.mkdir()
    for basename in ("install-nodejs-with-progress", "install-claude-cli"):
        (directory / f"{basename}.sh").write_text("#!/bin/bash\necho ok\n")
        (directory / f"{basename}.ps1").write_text("Write-Output ok\n")
    return directory


@pytest.fixture
def config(tmp_path: Path, scripts_dir: Path) -> InstallWizardConfig:
    """Configuration with no pacing delays and state under tmp_path."""
    return InstallWizardConfig(
        scripts_dir=str(scripts_dir),
        state_dir=str(tmp_path / "state"),
        real_event_delay_seconds=0,
        simulated_event_delay_seconds=0,
    )


# ============================================================================
# Model Fixtures
# ============================================================================


def make_session(*definitions: StepDefinition) -> InstallationSession:
    """Session from definitions; three plain steps when none are given."""
    if not definitions:
        definitions = (
            StepDefinition(id="a", name="Step A"),
            StepDefinition(id="b", name="Step B", can_skip=True),
            StepDefinition(id="c", name="Step C"),
        )
    return build_session(list(definitions))


@pytest.fixture
def session() -> InstallationSession:
    return make_session()


# ============================================================================
# Execution Fakes
# ============================================================================


class FakeExecutor:
    """
    PrivilegedExecutor stand-in.

    Returns the queued outcomes in order (the last one repeats). When
    ``gate`` is set, ``run`` waits for it before returning.
    """

    platform = "linux"

    def __init__(self, *outcomes: ProcessOutcome, elevated: bool = False):
        self.outcomes: List[ProcessOutcome] = list(outcomes) or [ProcessOutcome(returncode=0, stdout="", stderr="")]
        self.elevated = elevated
        self.commands: List[Sequence[str]] = []
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None

    async def run(self, command: Sequence[str], timeout: float, max_output_bytes: int) -> ProcessOutcome:
        self.commands.append(list(command))
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]

    async def check_privileges(self) -> bool:
        return self.elevated


def outcome(returncode: int = 0, stdout: str = "", stderr: str = "", timed_out: bool = False) -> ProcessOutcome:
    return ProcessOutcome(returncode=returncode, stdout=stdout, stderr=stderr, timed_out=timed_out)


# ============================================================================
# Tracing
# ============================================================================


class CollectingExporter(SpanExporter):
    """Collects spans in memory for testing."""

    def __init__(self):
        self.spans = []

    def export(self, spans):
        self.spans.extend(spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        pass

    def force_flush(self, timeout_millis=30000):
        return True


@pytest.fixture
def exporter() -> CollectingExporter:
    """Create a collecting exporter for testing."""
    return CollectingExporter()
