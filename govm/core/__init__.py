"""
Core functionality for govm.

This package contains the foundational modules that other components depend on.
"""

from .directory import (
    get_base_dir,
    get_default_install_dir,
    get_default_cache_dir,
    get_download_dir,
    get_lock_dir,
    verify_directory_writable,
    DirectoryError,
)

from .locking import LockManager

from .platform import (
    PlatformInfo,
    detect_platform,
    clear_platform_cache,
)

from .cancellation import CancellationToken

from .exceptions import (
    ErrorKind,
    GovmError,
    NetworkError,
    ParseError,
    IntegrityError,
    ChecksumMismatchError,
    NoMatchingArtifactError,
    AlreadyInstalledError,
    NotInstalledError,
    CurrentVersionInUseError,
    InvalidConfigError,
    CorruptConfigError,
    NotFoundError,
    OperationCancelled,
    FilesystemError,
    LockTimeoutError,
    CommandError,
)

__all__ = [
    # Directory
    "get_base_dir",
    "get_default_install_dir",
    "get_default_cache_dir",
    "get_download_dir",
    "get_lock_dir",
    "verify_directory_writable",
    "DirectoryError",
    # Locking
    "LockManager",
    # Platform
    "PlatformInfo",
    "detect_platform",
    "clear_platform_cache",
    # Cancellation
    "CancellationToken",
    # Exceptions
    "ErrorKind",
    "GovmError",
    "NetworkError",
    "ParseError",
    "IntegrityError",
    "ChecksumMismatchError",
    "NoMatchingArtifactError",
    "AlreadyInstalledError",
    "NotInstalledError",
    "CurrentVersionInUseError",
    "InvalidConfigError",
    "CorruptConfigError",
    "NotFoundError",
    "OperationCancelled",
    "FilesystemError",
    "LockTimeoutError",
    "CommandError",
]
