"""
Current-version pointer.

The file ``<base>/current`` holds the current version string and is the
source of truth. ``<base>/go`` is a symlink to the current version directory
so shells can use a stable GOROOT; it is maintained on a best-effort basis
(symlink creation may be unavailable on Windows).

Writers must hold ``LockManager.current_lock()``.
"""

import logging
from pathlib import Path

from govm.core.filesystem import atomic_symlink, atomic_write

logger = logging.getLogger(__name__)

POINTER_NAME = "current"
LINK_NAME = "go"


class CurrentPointer:
    """Reads and atomically replaces the current-version pointer."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self.path = self.base_dir / POINTER_NAME
        self.link = self.base_dir / LINK_NAME

    def read(self) -> str:
        """Current version, or "" when none is set."""
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning(f"Cannot read current pointer {self.path}: {e}")
            return ""

    def write(self, version: str, target_dir: Path) -> None:
        atomic_write(self.path, version + "\n")
        try:
            atomic_symlink(self.link, target_dir)
        except OSError as e:
            logger.warning(f"Could not update {self.link} -> {target_dir}: {e}")
        logger.info(f"Current version set to {version}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        if self.link.is_symlink():
            self.link.unlink()
        logger.info("Current version cleared")
