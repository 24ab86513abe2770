"""Tests for the fix session lock."""

import json
import os

import pytest

from smartaudit.engine.errors import FixSessionBusyError
from smartaudit.fixers.session_lock import LOCK_FILE, FixSessionLock, pid_alive


def test_pid_alive():
    assert pid_alive(os.getpid())
    assert not pid_alive(0)
    assert not pid_alive(-5)


class TestFixSessionLock:
    """Exclusive lock file semantics."""

    def test_context_manager_creates_and_removes(self, tmp_path):
        lock = FixSessionLock(tmp_path / "state")
        with lock:
            assert lock.held
            assert lock.holder_pid() == os.getpid()
        assert not lock.held
        assert not (tmp_path / "state" / LOCK_FILE).exists()

    def test_second_holder_is_refused(self, tmp_path):
        with FixSessionLock(tmp_path):
            other = FixSessionLock(tmp_path)
            with pytest.raises(FixSessionBusyError) as exc:
                other.acquire()
            assert exc.value.holder_pid == os.getpid()
            assert not other.held

    def test_stale_lock_is_taken_over(self, tmp_path, caplog, monkeypatch):
        monkeypatch.setattr("smartaudit.fixers.session_lock.pid_alive", lambda pid: False)
        (tmp_path / LOCK_FILE).write_text(json.dumps({"pid": 999999}), encoding="utf-8")

        lock = FixSessionLock(tmp_path)
        lock.acquire()

        assert lock.held
        assert lock.holder_pid() == os.getpid()
        assert "stale fix lock" in caplog.text
        lock.release()

    def test_unreadable_lock_is_stale(self, tmp_path):
        (tmp_path / LOCK_FILE).write_text("garbage", encoding="utf-8")
        with FixSessionLock(tmp_path) as lock:
            assert lock.holder_pid() == os.getpid()

    def test_release_without_acquire_keeps_foreign_lock(self, tmp_path):
        (tmp_path / LOCK_FILE).write_text(json.dumps({"pid": os.getpid()}), encoding="utf-8")
        FixSessionLock(tmp_path).release()
        assert (tmp_path / LOCK_FILE).exists()
