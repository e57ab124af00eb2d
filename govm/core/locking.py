"""
Concurrent access control for govm.

File-based locks (``filelock``) guard the resources that several govm
processes, or several threads of one process, may touch at the same time:

- the current-version pointer (switch / uninstall with demotion)
- the install of one particular version

Usage:
    from govm.core.locking import LockManager

    locks = LockManager(base_dir / "lock")
    with locks.current_lock():
        pointer.write(version)
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from govm.core.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


def _safe_name(value: str) -> str:
    return value.replace("/", "-").replace("\\", "-").replace(":", "-")


class LockManager:
    """
    Manages cross-process locks for govm resources.

    A fresh ``FileLock`` is created for every acquisition, so locks taken by
    different threads of one process exclude each other as well.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        self.lock_dir = Path(lock_dir)

    @contextmanager
    def _acquire(self, lock_path: Path, timeout: float, what: str):
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(lock_path), timeout=timeout)
        try:
            with lock:
                logger.debug(f"Acquired {what} lock: {lock_path}")
                yield
            logger.debug(f"Released {what} lock: {lock_path}")
        except Timeout as e:
            logger.error(f"Could not acquire {what} lock after {timeout}s")
            raise LockTimeoutError(
                f"Could not acquire {what} lock after {timeout}s. "
                "Another govm process may be running."
            ) from e

    @contextmanager
    def current_lock(self, timeout: float = 30):
        """
        Serialize changes to the current-version pointer.

        Raises:
            LockTimeoutError: If lock can't be acquired within timeout
        """
        with self._acquire(self.lock_dir / "current.lock", timeout, "current-version"):
            yield

    @contextmanager
    def version_lock(self, version: str, timeout: float = 600):
        """
        Serialize installs and removals of one version.

        The default timeout covers a full download by another process.

        Raises:
            LockTimeoutError: If lock can't be acquired within timeout
        """
        lock_path = self.lock_dir / f"version-{_safe_name(version)}.lock"
        with self._acquire(lock_path, timeout, f"version {version}"):
            yield

    @contextmanager
    def config_lock(self, timeout: float = 10):
        """Serialize read-modify-write cycles on the configuration file."""
        with self._acquire(self.lock_dir / "config.lock", timeout, "config"):
            yield

    def cleanup_stale_locks(self, max_age_hours: int = 24) -> int:
        """
        Remove lock files older than max_age_hours.

        Returns:
            Number of stale lock files removed
        """
        if not self.lock_dir.exists():
            return 0

        current_time = time.time()
        removed_count = 0

        for lock_file in self.lock_dir.glob("*.lock"):
            try:
                age_hours = (current_time - lock_file.stat().st_mtime) / 3600
                if age_hours > max_age_hours:
                    lock_file.unlink()
                    logger.info(f"Removed stale lock file: {lock_file}")
                    removed_count += 1
            except OSError as e:
                logger.debug(f"Could not remove lock {lock_file}: {e}")

        return removed_count


__all__ = ["LockManager", "LockTimeoutError"]
