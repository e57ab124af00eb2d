"""
Unit tests for LockManager.
"""

import threading

import pytest

from govm.core.exceptions import LockTimeoutError
from govm.core.locking import LockManager


@pytest.fixture
def locks(tmp_path):
    return LockManager(tmp_path / "lock")


def _hold(lock_cm, acquired, release):
    with lock_cm:
        acquired.set()
        release.wait(5)


def test_lock_dir_created_on_first_acquire(tmp_path):
    locks = LockManager(tmp_path / "lock")
    assert not (tmp_path / "lock").exists()

    with locks.config_lock(timeout=1):
        assert (tmp_path / "lock").is_dir()


def test_reentrant_sequential_use(locks):
    with locks.current_lock(timeout=1):
        pass
    with locks.current_lock(timeout=1):
        pass


def test_timeout_when_held_by_another_thread(locks):
    acquired = threading.Event()
    release = threading.Event()
    holder = threading.Thread(target=_hold, args=(locks.current_lock(), acquired, release))
    holder.start()
    try:
        assert acquired.wait(5)
        with pytest.raises(LockTimeoutError):
            with locks.current_lock(timeout=0.1):
                pass
    finally:
        release.set()
        holder.join()


def test_version_locks_are_independent(locks):
    acquired = threading.Event()
    release = threading.Event()
    holder = threading.Thread(
        target=_hold, args=(locks.version_lock("1.22.3"), acquired, release)
    )
    holder.start()
    try:
        assert acquired.wait(5)
        with locks.version_lock("1.21.10", timeout=0.5):
            pass
    finally:
        release.set()
        holder.join()


def test_cleanup_stale_locks(locks):
    import os
    import time

    locks.lock_dir.mkdir()
    stale = locks.lock_dir / "old.lock"
    stale.write_text("")
    old = time.time() - 48 * 3600
    os.utime(stale, (old, old))
    (locks.lock_dir / "fresh.lock").write_text("")

    assert locks.cleanup_stale_locks(max_age_hours=24) == 1
    assert not stale.exists()
