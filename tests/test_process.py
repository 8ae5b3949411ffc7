"""
Tests for the bounded async subprocess runner.
"""

import asyncio
import sys

import pytest

from installwizard.execution.process import run_process


def run(argv, timeout=10, max_output_bytes=1024 * 1024, env=None):
    return asyncio.run(run_process(argv, timeout=timeout, max_output_bytes=max_output_bytes, env=env))


class TestRunProcess:

    def test_captures_output_and_status(self):
        outcome = run([
            sys.executable, "-c",
            "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)",
        ])

        assert outcome.returncode == 3
        assert outcome.stdout.strip() == "out"
        assert outcome.stderr.strip() == "err"
        assert not outcome.ok
        assert not outcome.timed_out

    def test_success(self):
        outcome = run([sys.executable, "-c", "print('hello')"])
        assert outcome.ok

    def test_timeout_kills_process(self):
        outcome = run([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)

        assert outcome.timed_out
        assert not outcome.ok

    def test_output_is_truncated_without_blocking(self):
        outcome = run(
            [sys.executable, "-c", "import sys; sys.stdout.write('x' * 300000)"],
            max_output_bytes=1000,
        )

        assert outcome.ok
        assert outcome.truncated
        assert len(outcome.stdout) == 1000

    def test_env_is_passed(self):
        outcome = run(
            [sys.executable, "-c", "import os; print(os.environ['IW_MARKER'])"],
            env={"IW_MARKER": "marker-value", "PATH": ""},
        )
        assert outcome.stdout.strip() == "marker-value"

    def test_missing_program_raises(self):
        with pytest.raises(OSError):
            run(["/nonexistent/definitely-not-here"])
