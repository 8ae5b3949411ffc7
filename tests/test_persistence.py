"""
Tests for the session state file and the background writer.
"""

import asyncio
import os
import stat
import sys

import pytest

from conftest import make_session
from installwizard.models import StepStatus
from installwizard.persistence import PersistenceQueue, SessionStateFile


@pytest.fixture
def state_file(tmp_path):
    return SessionStateFile(tmp_path / "state" / "install-session.json")


class TestSessionStateFile:

    def test_save_and_load(self, state_file):
        session = make_session()
        session.steps[0].status = StepStatus.SUCCESS
        session.steps[0].progress = 100

        state_file.save(session)
        loaded = state_file.load()

        assert loaded == session

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_mode(self, state_file):
        state_file.save(make_session())
        assert stat.S_IMODE(os.stat(state_file.path).st_mode) == 0o600

    def test_no_temp_files_left(self, state_file):
        state_file.save(make_session())
        leftovers = [p for p in state_file.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_missing_file(self, state_file):
        assert state_file.load() is None
        assert not state_file.exists()

    def test_corrupt_file(self, state_file):
        state_file.path.parent.mkdir(parents=True)
        state_file.path.write_text("{not json")
        assert state_file.load() is None

    def test_clear(self, state_file):
        state_file.save(make_session())
        assert state_file.clear()
        assert not state_file.clear()

    def test_summary(self, state_file):
        session = make_session()
        session.steps[0].status = StepStatus.FAILED
        session.steps[0].message = "Permission denied"
        session.steps[0].retry_count = 2
        state_file.save(session)

        text = state_file.summary(color=False)

        assert session.id in text
        assert "Step A [failed] (retries: 2) - Permission denied" in text
        assert "Step B [pending]" in text

    def test_summary_without_session(self, state_file):
        assert state_file.summary() == "No installation session recorded."


class TestPersistenceQueue:

    def test_last_snapshot_wins(self, state_file):
        queue = PersistenceQueue(state_file)
        session = make_session()

        async def scenario():
            for progress in (10, 20, 30):
                snapshot = session.model_copy(deep=True)
                snapshot.steps[0].message = f"at {progress}"
                queue.submit(snapshot)
            await queue.flush()

        asyncio.run(scenario())

        assert state_file.load().steps[0].message == "at 30"

    def test_failures_are_not_raised(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        queue = PersistenceQueue(SessionStateFile(blocker / "install-session.json"))

        async def scenario():
            queue.submit(make_session())
            await queue.flush()

        asyncio.run(scenario())

        assert "Failed to persist session state" in caplog.text

    def test_without_event_loop_saves_inline(self, state_file):
        PersistenceQueue(state_file).submit(make_session())
        assert state_file.exists()

    def test_disabled(self):
        queue = PersistenceQueue(None)
        queue.submit(make_session())
        asyncio.run(queue.flush())
