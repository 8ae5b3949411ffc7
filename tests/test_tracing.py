"""
Tests for step spans.
"""

from opentelemetry.trace import StatusCode

from installwizard.tracing import (
    SESSION_ID,
    STEP_ATTEMPT,
    STEP_ERROR_KIND,
    STEP_ID,
    STEP_NAME,
    STEP_STATUS,
    StepTracer,
)


class TestStepTracer:

    def test_export_modes(self, exporter):
        assert StepTracer("s", exporter=exporter).export_mode == "custom"
        assert StepTracer("s").export_mode == "none"

    def test_successful_step(self, exporter):
        tracer = StepTracer("session_1", exporter=exporter)

        tracer.step_started("nodejs-setup", "Node.js", attempt=1)
        tracer.step_progress("nodejs-setup", 40, "Installing")
        tracer.step_ended("nodejs-setup", "success", duration_ms=1200)

        span = exporter.spans[0]
        assert span.name == "install.step"
        assert span.attributes[SESSION_ID] == "session_1"
        assert span.attributes[STEP_ID] == "nodejs-setup"
        assert span.attributes[STEP_NAME] == "Node.js"
        assert span.attributes[STEP_ATTEMPT] == 1
        assert span.attributes[STEP_STATUS] == "success"
        assert span.status.status_code is StatusCode.OK
        assert [e.attributes["message"] for e in span.events] == ["Installing"]

    def test_failed_step(self, exporter):
        tracer = StepTracer("session_1", exporter=exporter)

        tracer.step_started("nodejs-setup", "Node.js", attempt=2)
        tracer.step_ended("nodejs-setup", "failed", error_kind="PermissionDenied", message="denied")

        span = exporter.spans[0]
        assert span.attributes[STEP_ERROR_KIND] == "PermissionDenied"
        assert span.status.status_code is StatusCode.ERROR
        assert span.status.description == "denied"

    def test_restart_abandons_open_span(self, exporter):
        tracer = StepTracer("session_1", exporter=exporter)

        tracer.step_started("a", "A", attempt=1)
        tracer.step_started("a", "A", attempt=2)
        tracer.step_ended("a", "success")

        assert [s.attributes[STEP_STATUS] for s in exporter.spans] == ["abandoned", "success"]

    def test_unknown_step_ignored(self, exporter):
        tracer = StepTracer("session_1", exporter=exporter)

        tracer.step_progress("missing", 10, "x")
        tracer.step_ended("missing", "success")

        assert exporter.spans == []

    def test_shutdown_ends_open_spans(self, exporter):
        tracer = StepTracer("session_1", exporter=exporter)
        tracer.step_started("a", "A", attempt=1)

        tracer.shutdown()

        assert exporter.spans[0].attributes[STEP_STATUS] == "abandoned"
