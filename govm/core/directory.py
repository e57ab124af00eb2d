"""
Directory structure management for govm.

Resolves the well-known locations used by the engine and creates them on
demand.

Directory Structure:
    Base directory (~/.govm/ or %USERPROFILE%\\.govm\\, or $GOVM_HOME):
        - config.yaml     : Persisted user configuration
        - current         : Pointer file naming the current version
        - go              : Symlink to the current version (stable GOROOT)
        - versions/       : Default install root, one subdirectory per version
        - cache/          : Default cache root
          - downloads/    : Raw artifact download cache / staging
          - index.json    : Cached release index
        - gopath/<ver>/   : Per-version GOPATH in isolated mode
        - lock/           : Cross-process lock files
        - env.json        : Persisted environment profile variables
        - env.sh, env.ps1 : Generated shell profiles
"""

import os
from pathlib import Path


class DirectoryError(Exception):
    """Base exception for directory-related errors."""

    pass


def get_base_dir() -> Path:
    """
    Get the govm base directory.

    Returns:
        Path: $GOVM_HOME when set, otherwise
            - Windows: %USERPROFILE%\\.govm
            - Linux/macOS: ~/.govm
    """
    override = os.environ.get("GOVM_HOME")
    if override:
        return Path(override).expanduser()

    if os.name == "nt":
        user_profile = os.environ.get("USERPROFILE")
        if not user_profile:
            raise DirectoryError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine govm base directory."
            )
        return Path(user_profile) / ".govm"
    return Path.home() / ".govm"


def get_default_install_dir(base_dir: Path) -> Path:
    return base_dir / "versions"


def get_default_cache_dir(base_dir: Path) -> Path:
    return base_dir / "cache"


def get_download_dir(cache_dir: Path) -> Path:
    """Raw artifact download cache inside a cache root."""
    return Path(cache_dir) / "downloads"


def get_lock_dir(base_dir: Path) -> Path:
    return base_dir / "lock"


def verify_directory_writable(path: Path) -> bool:
    """
    Verify that a directory exists and is writable.

    Args:
        path: Directory path to verify.

    Returns:
        bool: True if directory exists and is writable, False otherwise.
    """
    if not path.exists():
        return False

    if not path.is_dir():
        return False

    try:
        test_file = path / ".govm_write_test"
        test_file.touch()
        test_file.unlink()
        return True
    except OSError:
        return False


def is_directory_creatable(path: Path) -> bool:
    """
    Check whether path is writable or could be created.

    Walks up to the nearest existing ancestor and checks that it is a
    writable directory. Nothing is created.
    """
    path = Path(path)
    if path.exists():
        return path.is_dir() and os.access(path, os.W_OK | os.X_OK)

    for parent in path.parents:
        if parent.exists():
            return parent.is_dir() and os.access(parent, os.W_OK | os.X_OK)
    return False
