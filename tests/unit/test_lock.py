"""Unit tests for the xtables file lock."""

import os
import stat

import pytest
from unittest.mock import patch

from xtctl.services.lock import LockHandle, XtablesFileLock
from xtctl.core.exceptions import LockContentionError, LockError


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "xtables.lock"


class TestXtablesFileLock:
    """Tests for XtablesFileLock.try_lock."""

    def test_creates_lock_file(self, lock_path):
        """Should create the lock file if it does not exist."""
        assert not lock_path.exists()
        handle = XtablesFileLock(lock_path).try_lock()
        try:
            assert lock_path.exists()
            assert stat.S_IMODE(os.stat(lock_path).st_mode) & 0o077 == 0
        finally:
            handle.unlock()

    def test_uses_existing_lock_file(self, lock_path):
        """An existing lock file should be reused."""
        lock_path.touch()
        with XtablesFileLock(lock_path).try_lock() as handle:
            assert handle.held

    def test_second_acquire_is_contention(self, lock_path):
        """A held lock should make a second attempt fail without waiting."""
        lock = XtablesFileLock(lock_path)
        with lock.try_lock():
            with pytest.raises(LockContentionError) as exc:
                XtablesFileLock(lock_path).try_lock()
            assert exc.value.lock_path == lock_path

    def test_contention_is_a_lock_error(self, lock_path):
        """LockContentionError should be catchable as LockError."""
        with XtablesFileLock(lock_path).try_lock():
            with pytest.raises(LockError):
                XtablesFileLock(lock_path).try_lock()

    def test_reacquire_after_release(self, lock_path):
        """Releasing should let the next attempt succeed."""
        lock = XtablesFileLock(lock_path)
        lock.try_lock().unlock()
        with lock.try_lock() as handle:
            assert handle.held

    def test_released_on_exception(self, lock_path):
        """The context manager should release on error paths."""
        lock = XtablesFileLock(lock_path)
        with pytest.raises(RuntimeError):
            with lock.try_lock():
                raise RuntimeError("boom")
        lock.try_lock().unlock()

    def test_unopenable_path(self, tmp_path):
        """A lock file in a missing directory should raise LockError."""
        lock = XtablesFileLock(tmp_path / "missing" / "xtables.lock")
        with pytest.raises(LockError) as exc:
            lock.try_lock()
        assert not isinstance(exc.value, LockContentionError)

    def test_flock_failure_closes_fd(self, lock_path):
        """Unexpected flock errors should raise LockError and not leak the fd."""
        with patch("xtctl.services.lock.fcntl.flock", side_effect=OSError(9, "Bad file")):
            with patch("xtctl.services.lock.os.close") as mock_close:
                with pytest.raises(LockError):
                    XtablesFileLock(lock_path).try_lock()
                assert mock_close.call_count == 1


class TestLockHandle:
    """Tests for LockHandle."""

    def test_unlock_is_idempotent(self, lock_path):
        """Calling unlock twice should be harmless."""
        handle = XtablesFileLock(lock_path).try_lock()
        handle.unlock()
        handle.unlock()
        assert handle.held is False

    def test_context_manager_returns_handle(self, lock_path):
        with XtablesFileLock(lock_path).try_lock() as handle:
            assert isinstance(handle, LockHandle)
            assert handle.path == lock_path
        assert handle.held is False
