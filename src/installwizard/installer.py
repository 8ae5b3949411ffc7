"""
Installer facade and composition root.

``create_installer`` builds everything one installation run needs (session,
controller, execution service, tracer, state file) from an
InstallWizardConfig. ``InstallerEngine`` exposes the three operations a UI
layer calls per component:

    check(component)          read-only check, never elevates
    start_install(component)  run the component's step; progress is
                              streamed on the session channel
    cancel(component)         accepted, but a running script is not stopped

Usage:
    channel = EventChannel()
    engine = create_installer(channel=channel)
    result = await engine.start_install("nodejs")
    if not result["success"]:
        print(result["error"])
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Optional

from opentelemetry.sdk.trace.export import SpanExporter

from installwizard.catalog import DEFAULT_STEPS, build_session, load_steps
from installwizard.channel import EventChannel
from installwizard.classifier import ErrorClassifier
from installwizard.components import ScriptStepAction, get_component
from installwizard.config import InstallWizardConfig, get_config
from installwizard.errors import UnsupportedPlatformError
from installwizard.execution.executors import PrivilegedExecutor, select_executor
from installwizard.execution.process import run_process
from installwizard.execution.resolver import ScriptResolver
from installwizard.execution.service import ScriptExecutionService
from installwizard.models import InstallationSession, StepStatus
from installwizard.navigation import NavigationController
from installwizard.persistence import SessionStateFile
from installwizard.tracing import StepTracer

logger = logging.getLogger(__name__)

__all__ = ["InstallerEngine", "create_installer"]


class InstallerEngine:
    """Per-component install operations on top of one NavigationController."""

    def __init__(
        self,
        controller: NavigationController,
        service: Optional[ScriptExecutionService],
        resolver: ScriptResolver,
        config: InstallWizardConfig,
        platform: str,
        classifier: Optional[ErrorClassifier] = None,
        check_runner=run_process,
    ):
        self.controller = controller
        self.service = service
        self.resolver = resolver
        self.config = config
        self.platform = platform
        self.classifier = classifier or ErrorClassifier()
        self._check_runner = check_runner

    @property
    def session(self) -> InstallationSession:
        return self.controller.session

    async def check(self, component: str) -> Dict[str, Any]:
        """Report whether ``component`` is installed, with its version if so."""
        spec = get_component(component)
        result = await spec.detect(self._check_runner)
        logger.info(f"Checked {spec.display_name}: installed={result['installed']}")
        return result

    async def start_install(self, component: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Install ``component`` by running its step.

        A failed step is retried instead of started. Guard violations
        (AlreadyRunning, NotRetryable, ...) propagate; installation failures
        are reported in the returned dict.

        Options:
            simulate_delay: False disables the pauses between progress events
            args: Extra arguments for the installer script
        """
        options = options or {}
        spec = get_component(component)
        paced = options.get("simulate_delay", True)

        action = ScriptStepAction(
            spec,
            service=self.service,
            resolver=self.resolver,
            classifier=self.classifier,
            platform=self.platform,
            packaged=self.config.packaged,
            messages=self.config.progress_messages,
            real_delay=self.config.real_event_delay_seconds if paced else 0,
            simulated_delay=self.config.simulated_event_delay_seconds if paced else 0,
            args=options.get("args", ()),
        )
        self.controller.register_action(spec.step_id, action)

        if self.controller.step(spec.step_id).status is StepStatus.FAILED:
            step = await self.controller.retry_step(spec.step_id)
        else:
            step = await self.controller.start_step(spec.step_id)

        if step.status is StepStatus.SUCCESS:
            return {"success": True}
        return {"success": False, "error": step.message}

    async def cancel(self, component: str) -> Dict[str, Any]:
        """
        Cancel the session so no further step starts.

        A script that is already running is not interrupted. Always reports
        success, also when the session had already ended.
        """
        spec = get_component(component)
        cancelled = await self.controller.cancel_session()
        await self.controller.flush()
        logger.info(
            f"Cancel requested for {spec.display_name}: session "
            f"{'cancelled' if cancelled else 'already ended'}; running scripts are not interrupted"
        )
        return {"success": True}

    async def close(self) -> None:
        await self.controller.close()


def create_installer(
    config: Optional[InstallWizardConfig] = None,
    channel: Optional[EventChannel] = None,
    exporter: Optional[SpanExporter] = None,
    platform: Optional[str] = None,
    executor: Optional[PrivilegedExecutor] = None,
    session: Optional[InstallationSession] = None,
    check_runner=run_process,
) -> InstallerEngine:
    """
    Build an InstallerEngine for one installation run.

    Args:
        config: Settings; defaults to ``get_config()``
        channel: Where notifications are published
        exporter: Span exporter (tests); otherwise config.otlp_endpoint decides
        platform: Host platform; defaults to ``sys.platform``
        executor: Privileged executor; chosen from ``platform`` when omitted
        session: Existing session; a fresh one is built from the step catalog otherwise
        check_runner: Process runner used by ``check``
    """
    config = config or get_config()
    platform = platform or sys.platform

    if session is None:
        definitions = load_steps(config.steps_file) if config.steps_file else DEFAULT_STEPS
        session = build_session(definitions)

    classifier = ErrorClassifier()
    tracer = StepTracer(session.id, exporter=exporter, otlp_endpoint=config.otlp_endpoint)
    controller = NavigationController(
        session,
        max_retries=config.max_retries,
        classifier=classifier,
        channel=channel,
        state_file=SessionStateFile(config.get_state_path()),
        tracer=tracer,
    )

    if executor is None:
        try:
            executor = select_executor(platform, app_name=config.app_name, prompt=config.elevation_prompt)
        except UnsupportedPlatformError as e:
            # Installs will fail their step with UnsupportedPlatform
            logger.error(str(e))

    service = None
    if executor is not None:
        service = ScriptExecutionService(
            executor,
            timeout=config.script_timeout_seconds,
            max_output_bytes=config.max_output_bytes,
        )

    return InstallerEngine(
        controller,
        service=service,
        resolver=ScriptResolver(config.scripts_dir, config.resources_dir),
        config=config,
        platform=platform,
        classifier=classifier,
        check_runner=check_runner,
    )
