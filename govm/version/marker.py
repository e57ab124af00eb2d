"""
Install markers.

Every completed install carries ``.govm-install.json`` in its version
directory. The marker is written into the staging directory before the final
rename, so a directory without a marker is never a finished install.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from govm.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

MARKER_NAME = ".govm-install.json"


@dataclass
class InstallMarker:
    """What was installed, from where, and the digest of the extracted tree."""

    version: str
    filename: str
    sha256: str
    url: str
    tree_digest: str
    installed_at: str = ""

    def __post_init__(self):
        if not self.installed_at:
            self.installed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)


def marker_path(version_dir: Path) -> Path:
    return Path(version_dir) / MARKER_NAME


def write_marker(version_dir: Path, marker: InstallMarker) -> Path:
    path = marker_path(version_dir)
    atomic_write(path, json.dumps(marker.to_dict(), indent=2, ensure_ascii=False))
    return path


def read_marker(version_dir: Path) -> Optional[InstallMarker]:
    """
    Read the marker of a version directory.

    Returns None when the marker is absent or unreadable.
    """
    path = marker_path(version_dir)
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return InstallMarker(
            version=data["version"],
            filename=data.get("filename", ""),
            sha256=data.get("sha256", ""),
            url=data.get("url", ""),
            tree_digest=data["tree_digest"],
            installed_at=data.get("installed_at", ""),
        )
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring unreadable install marker {path}: {e}")
        return None
