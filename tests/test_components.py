"""
Tests for component checks and the script-backed step action.
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from conftest import FakeExecutor, outcome
from installwizard.classifier import ErrorClassifier
from installwizard.components import (
    COMPONENTS,
    ScriptStepAction,
    check_claude_cli,
    check_nodejs,
    get_component,
    detection_env,
)
from installwizard.errors import ErrorKind, UnknownComponentError
from installwizard.execution.resolver import ScriptResolver
from installwizard.execution.service import ScriptExecutionService
from installwizard.models import EventStatus, InstallationStep
from installwizard.navigation import DETAILS_KEY, ERROR_KIND_KEY


def fake_runner(outputs):
    """Process runner answering from ``outputs`` keyed by program basename."""
    calls = []

    async def runner(command, timeout, max_output_bytes, env=None):
        calls.append(list(command))
        program = command[0].rsplit("/", 1)[-1]
        return outputs[program]

    runner.calls = calls
    return runner


def which_all(program, path=None):
    return f"/usr/local/bin/{program}"


def which_only(*programs):
    def which(program, path=None):
        return f"/usr/local/bin/{program}" if program in programs else None
    return which


class TestDetectionEnv:

    def test_extra_dirs_appended(self, monkeypatch):
        monkeypatch.setenv("PATH", "/custom/bin")
        path = detection_env()["PATH"].split(":")

        assert path[0] == "/custom/bin"
        assert "/opt/homebrew/bin" in path
        assert "/usr/local/bin" in path

    def test_no_duplicates(self, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/local/bin:/bin")
        path = detection_env()["PATH"].split(":")

        assert path.count("/usr/local/bin") == 1
        assert path.count("/bin") == 1


class TestCheckNodejs:

    def test_installed(self):
        runner = fake_runner({"node": outcome(stdout="v20.11.0\n"), "npm": outcome(stdout="10.2.4\n")})
        with patch("installwizard.components.shutil.which", which_all):
            result = asyncio.run(check_nodejs(runner))

        assert result == {"installed": True, "version": "v20.11.0", "npmVersion": "10.2.4"}
        assert runner.calls == [["/usr/local/bin/node", "-v"], ["/usr/local/bin/npm", "-v"]]

    def test_node_missing(self):
        runner = fake_runner({})
        with patch("installwizard.components.shutil.which", which_only()):
            assert asyncio.run(check_nodejs(runner)) == {"installed": False}
        assert runner.calls == []

    def test_npm_missing(self):
        runner = fake_runner({"node": outcome(stdout="v20.11.0\n")})
        with patch("installwizard.components.shutil.which", which_only("node")):
            assert asyncio.run(check_nodejs(runner)) == {"installed": False}

    def test_npm_fails(self):
        runner = fake_runner({"node": outcome(stdout="v20.11.0\n"), "npm": outcome(returncode=1, stderr="broken")})
        with patch("installwizard.components.shutil.which", which_all):
            assert asyncio.run(check_nodejs(runner)) == {"installed": False}

    def test_check_timeout(self):
        runner = fake_runner({"node": outcome(timed_out=True, returncode=-9)})
        with patch("installwizard.components.shutil.which", which_all):
            assert asyncio.run(check_nodejs(runner)) == {"installed": False}

    def test_launch_error(self):
        async def runner(command, timeout, max_output_bytes, env=None):
            raise PermissionError(13, "Permission denied")

        with patch("installwizard.components.shutil.which", which_all):
            assert asyncio.run(check_nodejs(runner)) == {"installed": False}


class TestCheckClaudeCli:

    def test_version_extracted(self):
        runner = fake_runner({"claude": outcome(stdout="1.0.17 (Claude Code)\n")})
        with patch("installwizard.components.shutil.which", which_all):
            assert asyncio.run(check_claude_cli(runner)) == {"installed": True, "version": "1.0.17"}

    def test_unparseable_version_kept(self):
        runner = fake_runner({"claude": outcome(stdout="dev-build\n")})
        with patch("installwizard.components.shutil.which", which_all):
            assert asyncio.run(check_claude_cli(runner)) == {"installed": True, "version": "dev-build"}

    def test_not_installed(self):
        with patch("installwizard.components.shutil.which", which_only()):
            assert asyncio.run(check_claude_cli(fake_runner({}))) == {"installed": False}


class TestGetComponent:

    def test_known(self):
        assert get_component("nodejs").step_id == "nodejs-setup"
        assert get_component("claude-cli").script_basename == "install-claude-cli"

    def test_unknown(self):
        with pytest.raises(UnknownComponentError, match="claude-cli, nodejs"):
            get_component("python")


# ============================================================================
# ScriptStepAction
# ============================================================================


def make_action(scripts_dir, executor=None, component="nodejs", **kwargs):
    service = ScriptExecutionService(executor) if executor is not None else None
    return ScriptStepAction(
        COMPONENTS[component],
        service=service,
        resolver=ScriptResolver(scripts_dir),
        classifier=ErrorClassifier(),
        platform=kwargs.pop("platform", "linux"),
        real_delay=0,
        simulated_delay=0,
        **kwargs,
    )


def run_action(action, step_id="nodejs-setup"):
    async def collect():
        return [event async for event in action(InstallationStep(id=step_id, name=step_id))]

    return asyncio.run(collect())


def wire(**data):
    return json.dumps(data)


class TestScriptStepAction:

    def test_simulated_sequence_on_silent_success(self, scripts_dir):
        executor = FakeExecutor(outcome(stdout="some installer chatter\n"))
        events = run_action(make_action(scripts_dir, executor))

        assert [e.progress for e in events] == [0, 5, 20, 40, 60, 80, 95, 100]
        assert events[-1].status is EventStatus.SUCCESS
        assert events[-1].message == "Node.js installed successfully!"
        assert executor.commands == [["/bin/bash", str(scripts_dir / "install-nodejs-with-progress.sh")]]

    def test_component_messages(self, scripts_dir):
        events = run_action(make_action(scripts_dir, FakeExecutor(), component="claude-cli"), "claude-install")
        assert events[-1].message == "Claude CLI installed successfully!"

    def test_configured_messages_win(self, scripts_dir):
        action = make_action(scripts_dir, FakeExecutor(), messages={"success": "All set"})
        assert run_action(action)[-1].message == "All set"

    def test_real_events_replayed(self, scripts_dir):
        stdout = "\n".join([
            wire(step="download", progress=30, message="Downloading", status="running"),
            "plain text",
            wire(step="complete", progress=100, message="Done", status="success", nodeVersion="v20.11.0"),
        ])
        events = run_action(make_action(scripts_dir, FakeExecutor(outcome(stdout=stdout))))

        assert [e.message for e in events[2:]] == ["Downloading", "Done"]
        assert events[-1].node_version == "v20.11.0"

    def test_privilege_message(self, scripts_dir):
        elevated = run_action(make_action(scripts_dir, FakeExecutor(elevated=True)))
        prompted = run_action(make_action(scripts_dir, FakeExecutor(elevated=False)))

        assert elevated[1].message == "Administrator privileges already available"
        assert prompted[1].message == "Enter the administrator password in the dialog"

    def test_args_passed(self, scripts_dir):
        executor = FakeExecutor()
        run_action(make_action(scripts_dir, executor, args=("--version", "20")))
        assert executor.commands[0][-2:] == ["--version", "20"]

    def test_failure_is_classified(self, scripts_dir):
        executor = FakeExecutor(outcome(returncode=1, stderr="mkdir: /usr/local/lib: Permission denied\n"))
        action = make_action(scripts_dir, executor)
        events = run_action(action)

        last = events[-1]
        assert last.status is EventStatus.ERROR
        assert last.extra[ERROR_KIND_KEY] == ErrorKind.PERMISSION_DENIED.value
        assert "Permission denied" in last.extra[DETAILS_KEY]
        assert not action.last_result.success

    def test_failure_without_stderr_uses_reported_error(self, scripts_dir):
        stdout = wire(step="download", progress=10, message="download timed out", status="error")
        events = run_action(make_action(scripts_dir, FakeExecutor(outcome(returncode=1, stdout=stdout))))
        assert events[-1].extra[ERROR_KIND_KEY] == ErrorKind.NETWORK_FAILURE.value

    def test_reported_error_on_clean_exit(self, scripts_dir):
        stdout = "\n".join([
            wire(step="download", progress=20, message="Downloading", status="running"),
            wire(step="install", progress=50, message="Not authorized", status="error", code=7),
            wire(step="complete", progress=100, message="Done", status="success"),
        ])
        events = run_action(make_action(scripts_dir, FakeExecutor(outcome(stdout=stdout))))

        last = events[-1]
        assert last.status is EventStatus.ERROR
        assert last.extra == {"code": 7, ERROR_KIND_KEY: "AuthenticationFailed", DETAILS_KEY: "Not authorized"}

    def test_timeout(self, scripts_dir):
        events = run_action(make_action(scripts_dir, FakeExecutor(outcome(timed_out=True, returncode=-9))))
        assert events[-1].extra[ERROR_KIND_KEY] == ErrorKind.TIMEOUT.value

    def test_missing_script(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        executor = FakeExecutor()
        events = run_action(make_action(empty, executor))

        assert [e.status for e in events] == [EventStatus.RUNNING, EventStatus.ERROR]
        assert events[-1].extra[ERROR_KIND_KEY] == ErrorKind.SCRIPT_MISSING.value
        assert executor.commands == []

    def test_no_executor(self, scripts_dir):
        events = run_action(make_action(scripts_dir, executor=None, platform="sunos5"))
        assert events[-1].extra[ERROR_KIND_KEY] == ErrorKind.UNSUPPORTED_PLATFORM.value
