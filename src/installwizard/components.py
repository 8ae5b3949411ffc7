"""
Installable components: read-only checks and the script-backed step action.

A component ties together a wizard step, an installer script basename and a
check that reports whether the component is already present.

    nodejs      step nodejs-setup     script install-nodejs-with-progress
    claude-cli  step claude-install   script install-claude-cli

``ScriptStepAction`` is what the navigation controller runs for those steps:
it resolves the platform script, executes it with elevated privileges and
yields the resulting progress events. Failures are yielded as a terminal
error event carrying the classified kind; they are never raised.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Sequence

from installwizard.classifier import ErrorClassifier
from installwizard.errors import InstallWizardError, UnknownComponentError, UnsupportedPlatformError
from installwizard.execution.process import run_process
from installwizard.execution.resolver import ScriptResolver
from installwizard.execution.service import ScriptExecutionService
from installwizard.models import (
    ClassifiedError,
    EventStatus,
    InstallationStep,
    ProgressEvent,
    ScriptExecutionResult,
)
from installwizard.navigation import DETAILS_KEY, ERROR_KIND_KEY
from installwizard.protocol import pace_events, parse_progress_events, resolve_progress_sequence

logger = logging.getLogger(__name__)

__all__ = [
    "ComponentSpec",
    "COMPONENTS",
    "get_component",
    "check_nodejs",
    "check_claude_cli",
    "detection_env",
    "ScriptStepAction",
]

# Common install locations that GUI-launched processes often lack on PATH
EXTRA_PATH_DIRS = ("/usr/local/bin", "/opt/homebrew/bin", "/usr/bin", "/bin")

CHECK_TIMEOUT_SECONDS = 10.0
CHECK_MAX_OUTPUT_BYTES = 64 * 1024

_SEMVER_RE = re.compile(r"(\d+\.\d+\.\d+)")

Runner = Callable[..., Awaitable[Any]]
Detector = Callable[[Runner], Awaitable[Dict[str, Any]]]


def detection_env() -> Dict[str, str]:
    """The current environment with the common install dirs appended to PATH."""
    env = dict(os.environ)
    parts = [p for p in env.get("PATH", "").split(os.pathsep) if p]
    parts += [d for d in EXTRA_PATH_DIRS if d not in parts]
    env["PATH"] = os.pathsep.join(parts)
    return env


async def _read_version(program: str, flag: str, runner: Runner) -> Optional[str]:
    """Run ``program flag`` and return its trimmed stdout, or None."""
    env = detection_env()
    executable = shutil.which(program, path=env["PATH"])
    if executable is None:
        logger.debug(f"{program} not found on PATH")
        return None
    try:
        outcome = await runner(
            [executable, flag],
            timeout=CHECK_TIMEOUT_SECONDS,
            max_output_bytes=CHECK_MAX_OUTPUT_BYTES,
            env=env,
        )
    except OSError as e:
        logger.debug(f"Version check {program} {flag} failed to launch: {e}")
        return None
    if outcome.timed_out or outcome.returncode != 0:
        return None
    return outcome.stdout.strip() or None


async def check_nodejs(runner: Runner = run_process) -> Dict[str, Any]:
    """Installed iff both ``node -v`` and ``npm -v`` succeed."""
    node_version = await _read_version("node", "-v", runner)
    if node_version is None:
        return {"installed": False}
    npm_version = await _read_version("npm", "-v", runner)
    if npm_version is None:
        return {"installed": False}
    return {"installed": True, "version": node_version, "npmVersion": npm_version}


async def check_claude_cli(runner: Runner = run_process) -> Dict[str, Any]:
    output = await _read_version("claude", "--version", runner)
    if output is None:
        return {"installed": False}
    match = _SEMVER_RE.search(output)
    return {"installed": True, "version": match.group(1) if match else output}


@dataclass(frozen=True)
class ComponentSpec:
    """Static description of an installable component."""
    name: str
    display_name: str
    step_id: str
    script_basename: str
    detect: Detector
    progress_messages: Mapping[str, str] = field(default_factory=dict)


COMPONENTS: Dict[str, ComponentSpec] = {
    "nodejs": ComponentSpec(
        name="nodejs",
        display_name="Node.js",
        step_id="nodejs-setup",
        script_basename="install-nodejs-with-progress",
        detect=check_nodejs,
    ),
    "claude-cli": ComponentSpec(
        name="claude-cli",
        display_name="Claude CLI",
        step_id="claude-install",
        script_basename="install-claude-cli",
        detect=check_claude_cli,
        progress_messages={
            "download": "Downloading Claude CLI dependencies...",
            "verify": "Verifying the npm environment...",
            "install": "Installing Claude CLI...",
            "configure_env": "Configuring the Claude CLI environment...",
            "finalize": "Verifying the installation...",
            "success": "Claude CLI installed successfully!",
        },
    ),
}


def get_component(name: str) -> ComponentSpec:
    try:
        return COMPONENTS[name]
    except KeyError:
        known = ", ".join(sorted(COMPONENTS))
        raise UnknownComponentError(f"Unknown component {name!r} (known: {known})") from None


def _error_event(classified: ClassifiedError) -> ProgressEvent:
    return ProgressEvent(
        progress=0,
        message=classified.user_message,
        status=EventStatus.ERROR,
        extra={ERROR_KIND_KEY: classified.kind.value, DETAILS_KEY: classified.details},
    )


class ScriptStepAction:
    """
    Step action that installs one component through its installer script.

    Args:
        component: What to install
        service: Execution service; None when the host OS has no executor
        resolver: Locates the platform script
        classifier: Maps failures onto ErrorKind
        platform: Host platform string (``sys.platform`` form)
        packaged: Resolve scripts from the packaged resources directory
        messages: Messages for the simulated progress sequence
        real_delay: Pause between real protocol events
        simulated_delay: Pause between simulated events
        args: Extra arguments passed to the script
    """

    def __init__(
        self,
        component: ComponentSpec,
        service: Optional[ScriptExecutionService],
        resolver: ScriptResolver,
        classifier: ErrorClassifier,
        platform: str,
        packaged: bool = False,
        messages: Optional[Mapping[str, str]] = None,
        real_delay: float = 0.3,
        simulated_delay: float = 1.0,
        args: Sequence[str] = (),
    ):
        self.component = component
        self.service = service
        self.resolver = resolver
        self.classifier = classifier
        self.platform = platform
        self.packaged = packaged
        self.messages = {**component.progress_messages, **(messages or {})}
        self.real_delay = real_delay
        self.simulated_delay = simulated_delay
        self.args = tuple(args)
        self.last_result: Optional[ScriptExecutionResult] = None

    async def __call__(self, step: InstallationStep) -> AsyncIterator[ProgressEvent]:
        yield ProgressEvent(
            step="permission-check", progress=0, message="Checking system privileges", status=EventStatus.RUNNING
        )

        try:
            if self.service is None:
                raise UnsupportedPlatformError(f"No privileged executor for platform: {self.platform}")
            script = self.resolver.resolve(
                self.component.script_basename, platform=self.platform, packaged=self.packaged
            )
        except InstallWizardError as e:
            logger.error(f"Cannot install {self.component.name}: {e}")
            yield _error_event(self.classifier.classify_exception(e))
            return

        if await self.service.check_privileges():
            message = "Administrator privileges already available"
        else:
            message = "Enter the administrator password in the dialog"
        yield ProgressEvent(step="permission-check", progress=5, message=message, status=EventStatus.RUNNING)

        result = await self.service.execute(script, self.args)
        self.last_result = result

        if not result.success:
            yield _error_event(self._classify_failure(result))
            return

        real = parse_progress_events(result.stdout)
        events = resolve_progress_sequence(result.stdout, exited_ok=True, messages=self.messages)
        delay = self.real_delay if real else self.simulated_delay

        async for event in pace_events(events, delay):
            if event.status is EventStatus.ERROR:
                # The script reported failure through the protocol itself
                classified = self.classifier.classify(event.message)
                yield event.model_copy(
                    update={"extra": {**event.extra, ERROR_KIND_KEY: classified.kind.value, DETAILS_KEY: event.message}}
                )
                return
            yield event

    def _classify_failure(self, result: ScriptExecutionResult) -> ClassifiedError:
        stderr = result.stderr
        if not stderr.strip():
            # Fall back to the last error the script reported on stdout
            reported = [e for e in parse_progress_events(result.stdout) if e.status is EventStatus.ERROR]
            if reported:
                stderr = reported[-1].message
        classified = self.classifier.classify(stderr, result.error)
        logger.warning(
            f"{self.component.display_name} installation failed: {classified.kind.value}: {classified.details}"
        )
        return classified
