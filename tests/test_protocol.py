"""
Tests for progress protocol parsing and the simulated fallback.
"""

import asyncio
import json
import time

import pytest

from installwizard.config import DEFAULT_PROGRESS_MESSAGES
from installwizard.models import EventStatus
from installwizard.protocol import (
    Ignored,
    Parsed,
    classify_line,
    pace_events,
    parse_progress_events,
    resolve_progress_sequence,
    simulated_progress_sequence,
)


def line(**fields) -> str:
    return json.dumps(fields)


class TestClassifyLine:
    """Tests for single-line classification."""

    def test_valid_event(self):
        result = classify_line(line(step="download", progress=20, message="Downloading", status="running"))

        assert isinstance(result, Parsed)
        assert result.event.progress == 20
        assert result.event.step == "download"

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "Downloading node-v20.pkg",
        "[1, 2, 3]",
        '"just a string"',
        "{not json}",
        line(progress=20, message="missing status"),
        line(status="running", message="missing progress"),
        line(progress="twenty", status="running"),
        line(progress=20, status="weird"),
    ])
    def test_ignored_lines(self, text):
        result = classify_line(text)

        assert isinstance(result, Ignored)
        assert result.raw_line == text


class TestParseProgressEvents:
    """Tests for whole-output parsing."""

    def test_mixed_output_keeps_order_and_values(self):
        stdout = "\n".join([
            "installer: Package name is Node.js",
            line(step="download", progress=35, message="Downloading", status="running"),
            "",
            line(step="verify", progress=10, message="Out of order", status="running"),
            line(step="odd", progress=150, message="Too far", status="running"),
            line(step="complete", progress=100, message="Done", status="success", nodeVersion="v20.11.0"),
            "trailing noise",
        ])

        events = parse_progress_events(stdout)

        assert [e.progress for e in events] == [35, 10, 150, 100]
        assert events[-1].status is EventStatus.SUCCESS
        assert events[-1].node_version == "v20.11.0"

    def test_windows_line_endings(self):
        stdout = line(progress=50, status="running") + "\r\n" + line(progress=100, status="success") + "\r\n"
        assert len(parse_progress_events(stdout)) == 2

    def test_empty_output(self):
        assert parse_progress_events("") == []


class TestSimulatedSequence:
    """Tests for the simulated fallback sequence."""

    def test_fixed_stages(self):
        events = simulated_progress_sequence()

        assert [e.progress for e in events] == [20, 40, 60, 80, 95, 100]
        assert [e.status for e in events[:-1]] == [EventStatus.RUNNING] * 5
        assert events[-1].status is EventStatus.SUCCESS
        assert events[0].message == DEFAULT_PROGRESS_MESSAGES["download"]

    def test_message_overrides(self):
        events = simulated_progress_sequence({"install": "Installing the runtime"})

        assert events[2].message == "Installing the runtime"
        assert events[1].message == DEFAULT_PROGRESS_MESSAGES["verify"]


class TestResolveProgressSequence:
    """Real events win; simulation only after a clean exit."""

    def test_real_events_win(self):
        stdout = line(progress=50, message="Half", status="running")

        events = resolve_progress_sequence(stdout)

        assert len(events) == 1
        assert events[0].message == "Half"

    def test_no_protocol_output_is_simulated(self):
        events = resolve_progress_sequence("installer: success\n")

        assert [e.progress for e in events] == [20, 40, 60, 80, 95, 100]
        assert events[-1].status is EventStatus.SUCCESS

    def test_failed_script_is_not_simulated(self):
        assert resolve_progress_sequence("garbage", exited_ok=False) == []

    def test_failed_script_keeps_real_events(self):
        stdout = line(progress=0, message="download failed", status="error")
        events = resolve_progress_sequence(stdout, exited_ok=False)
        assert events[0].status is EventStatus.ERROR


class TestPaceEvents:
    """Tests for paced replay."""

    def test_order_is_preserved(self):
        events = simulated_progress_sequence()

        async def collect():
            return [e async for e in pace_events(events, 0)]

        assert asyncio.run(collect()) == events

    def test_delay_between_events(self):
        events = simulated_progress_sequence()[-3:]

        async def collect():
            start = time.monotonic()
            replayed = [e async for e in pace_events(events, 0.05)]
            return replayed, time.monotonic() - start

        replayed, elapsed = asyncio.run(collect())

        assert len(replayed) == 3
        # No pause after the terminal event
        assert 0.09 <= elapsed < 1.0
