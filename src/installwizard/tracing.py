"""
OpenTelemetry spans for installation steps.

Each step attempt is one ``install.step`` span; progress events become span
events and the span ends with status OK or ERROR. The tracer uses its own
TracerProvider (never the global one) so several sessions and the test suite
do not interfere.

Export:
- explicit exporter argument (tests, embedding applications)
- OTLP gRPC when ``otlp_endpoint`` is configured
- otherwise spans are recorded but not exported
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

__all__ = [
    "StepTracer",
    "STEP_ID",
    "STEP_NAME",
    "STEP_ATTEMPT",
    "STEP_STATUS",
    "STEP_ERROR_KIND",
    "SESSION_ID",
]

# Span attribute names
SESSION_ID = "install.session.id"
STEP_ID = "install.step.id"
STEP_NAME = "install.step.name"
STEP_ATTEMPT = "install.step.attempt"
STEP_STATUS = "install.step.status"
STEP_ERROR_KIND = "install.step.error_kind"
STEP_DURATION_MS = "install.step.duration_ms"

EXPORT_MODE_OTLP = "otlp"
EXPORT_MODE_CUSTOM = "custom"
EXPORT_MODE_NONE = "none"


class StepTracer:
    """
    Records step attempts as spans.

    Args:
        session_id: Session the spans belong to
        service_name: OTel service name
        exporter: Optional span exporter; exported synchronously on span end
        otlp_endpoint: OTLP gRPC endpoint used when no exporter is given
    """

    def __init__(
        self,
        session_id: str,
        service_name: str = "installwizard",
        exporter: Optional[SpanExporter] = None,
        otlp_endpoint: Optional[str] = None,
    ):
        self.session_id = session_id
        self._spans: Dict[str, Span] = {}

        resource = Resource.create({
            "service.name": service_name,
            SESSION_ID: session_id,
        })
        self._provider = TracerProvider(resource=resource)
        self._export_mode = EXPORT_MODE_NONE

        if exporter is not None:
            self._provider.add_span_processor(SimpleSpanProcessor(exporter))
            self._export_mode = EXPORT_MODE_CUSTOM
        elif otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

            self._provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
            )
            self._export_mode = EXPORT_MODE_OTLP
            logger.info(f"Configured OTLP span export to {otlp_endpoint}")

        self._tracer = self._provider.get_tracer("installwizard.steps")

    @property
    def export_mode(self) -> str:
        """Current export mode: 'otlp', 'custom', or 'none'."""
        return self._export_mode

    def step_started(self, step_id: str, name: str, attempt: int) -> None:
        # A dangling span from an earlier attempt is closed first
        if step_id in self._spans:
            self.step_ended(step_id, "abandoned")

        span = self._tracer.start_span(
            "install.step",
            attributes={
                SESSION_ID: self.session_id,
                STEP_ID: step_id,
                STEP_NAME: name,
                STEP_ATTEMPT: attempt,
            },
        )
        self._spans[step_id] = span

    def step_progress(self, step_id: str, progress: float, message: str) -> None:
        span = self._spans.get(step_id)
        if span is None:
            return
        span.add_event("install.step.progress", {"progress": float(progress), "message": message})

    def step_ended(
        self,
        step_id: str,
        status: str,
        error_kind: Optional[str] = None,
        message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        span = self._spans.pop(step_id, None)
        if span is None:
            return

        attributes: Dict[str, Any] = {STEP_STATUS: status}
        if error_kind:
            attributes[STEP_ERROR_KIND] = error_kind
        if duration_ms is not None:
            attributes[STEP_DURATION_MS] = duration_ms
        span.set_attributes(attributes)

        if status == "failed":
            span.set_status(Status(StatusCode.ERROR, message))
        else:
            span.set_status(Status(StatusCode.OK))
        span.end()

    def shutdown(self) -> None:
        """End open spans and flush the provider."""
        for step_id in list(self._spans):
            self.step_ended(step_id, "abandoned")
        try:
            self._provider.force_flush(timeout_millis=5000)
            self._provider.shutdown()
        except Exception as e:
            logger.debug(f"Error during tracer shutdown: {e}")
