"""
Centralized exception hierarchy for govm.

Every failure raised by the engine carries a tagged ``ErrorKind`` next to its
human readable message. The RPC boundary serializes both so callers can match
on the kind instead of parsing message text.
"""

from enum import Enum
from typing import Dict, List, Optional


class ErrorKind(str, Enum):
    """Machine readable failure categories."""

    NETWORK = "NetworkError"
    INTEGRITY = "IntegrityError"
    PARSE = "ParseError"
    NO_MATCHING_ARTIFACT = "NoMatchingArtifact"
    ALREADY_INSTALLED = "AlreadyInstalled"
    NOT_INSTALLED = "NotInstalled"
    CURRENT_VERSION_IN_USE = "CurrentVersionInUse"
    INVALID_CONFIG = "InvalidConfig"
    CORRUPT_CONFIG = "CorruptConfig"
    CHECKSUM_MISMATCH = "ChecksumMismatch"
    NOT_FOUND = "NotFound"
    CANCELLED = "Cancelled"
    FILESYSTEM = "FilesystemError"
    COMMAND = "CommandError"
    INTERNAL = "InternalError"


# ============================================================================
# Base Exception
# ============================================================================


class GovmError(Exception):
    """Base exception for all govm errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = ""):
        self.message = message or self.kind.value
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, str]:
        """Serialize kind and message for the RPC boundary."""
        return {"kind": self.kind.value, "error": self.message}


# ============================================================================
# Network / Remote Index
# ============================================================================


class NetworkError(GovmError):
    """Mirror unreachable, HTTP failure or timeout. Retryable."""

    kind = ErrorKind.NETWORK


class ParseError(GovmError):
    """Malformed remote index or unparseable data."""

    kind = ErrorKind.PARSE


# ============================================================================
# Integrity
# ============================================================================


class IntegrityError(GovmError):
    """Downloaded artifact digest does not match the published digest."""

    kind = ErrorKind.INTEGRITY

    def __init__(self, filename: str, expected: str, actual: str):
        self.filename = filename
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {filename}: expected {expected}, got {actual}"
        )


class ChecksumMismatchError(GovmError):
    """Cached module content does not match its recorded hash."""

    kind = ErrorKind.CHECKSUM_MISMATCH

    def __init__(self, module: str, version: str, expected: str, actual: str):
        self.module = module
        self.version = version
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{module}@{version}: checksum mismatch (recorded {expected}, computed {actual})"
        )


# ============================================================================
# Version State Preconditions
# ============================================================================


class NoMatchingArtifactError(GovmError):
    """Release has no artifact for the requested platform."""

    kind = ErrorKind.NO_MATCHING_ARTIFACT

    def __init__(self, version: str, os_name: str, arch: str):
        self.version = version
        self.os_name = os_name
        self.arch = arch
        super().__init__(f"No archive for go{version} on {os_name}/{arch}")


class AlreadyInstalledError(GovmError):
    """Version directory already exists and holds a verified install."""

    kind = ErrorKind.ALREADY_INSTALLED

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Version {version} is already installed")


class NotInstalledError(GovmError):
    """Version is not installed."""

    kind = ErrorKind.NOT_INSTALLED

    def __init__(self, version: str, installed: Optional[List[str]] = None):
        self.version = version
        self.installed = installed or []
        msg = f"Version {version} is not installed"
        if installed:
            msg += f" (installed: {', '.join(installed)})"
        super().__init__(msg)


class CurrentVersionInUseError(GovmError):
    """Refusing to remove the version that is currently active."""

    kind = ErrorKind.CURRENT_VERSION_IN_USE

    def __init__(self, version: str):
        self.version = version
        super().__init__(
            f"Version {version} is the current version; switch to another "
            "version first or uninstall with promotion"
        )


# ============================================================================
# Configuration
# ============================================================================


class InvalidConfigError(GovmError):
    """Configuration failed validation."""

    kind = ErrorKind.INVALID_CONFIG

    def __init__(self, issues: Dict[str, str]):
        self.issues = dict(issues)
        details = "; ".join(f"{name}: {reason}" for name, reason in issues.items())
        super().__init__(f"Invalid configuration: {details}")

    @property
    def fields(self) -> List[str]:
        return list(self.issues)


class CorruptConfigError(GovmError):
    """Configuration file exists but cannot be read or parsed."""

    kind = ErrorKind.CORRUPT_CONFIG


# ============================================================================
# Lookup / Filesystem / Commands
# ============================================================================


class NotFoundError(GovmError):
    """Requested release, module or cache entry does not exist."""

    kind = ErrorKind.NOT_FOUND


class OperationCancelled(GovmError):
    """Operation aborted through its cancellation token."""

    kind = ErrorKind.CANCELLED


class FilesystemError(GovmError):
    """Filesystem operation failed."""

    kind = ErrorKind.FILESYSTEM


class ArchiveExtractionError(FilesystemError):
    """Failed to extract an archive."""

    pass


class UnsupportedArchiveFormat(ArchiveExtractionError):
    """Archive format is not supported."""

    pass


class InsecureArchiveError(ArchiveExtractionError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


class LockTimeoutError(FilesystemError):
    """A govm lock could not be acquired in time."""

    pass


class CommandError(GovmError):
    """External go command failed."""

    kind = ErrorKind.COMMAND

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)
