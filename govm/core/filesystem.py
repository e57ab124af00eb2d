"""
Cross-platform file system utilities for govm.

This module provides robust, platform-aware file operations including:
- Archive extraction (tar.gz, zip) with traversal protection and cancellation
- Safe file operations (atomic writes, atomic symlink replacement, safe deletion)
- Size accounting that only reads metadata

All operations handle platform differences transparently.
"""

import os
import shutil
import stat
import sys
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from govm.core.cancellation import CancellationToken, check_cancelled
from govm.core.exceptions import (
    ArchiveExtractionError,
    FilesystemError,
    InsecureArchiveError,
    OperationCancelled,
    UnsupportedArchiveFormat,
)

IS_WINDOWS = os.name == "nt"


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        Path(path).relative_to(parent)
        return True
    except ValueError:
        return False


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    progress_callback: Optional[Callable[[int, int], None]] = None,
    cancel: Optional[CancellationToken] = None,
) -> None:
    """
    Extract an archive to a destination directory.

    Supported formats: .zip, .tar.gz, .tgz

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to
        progress_callback: Optional callback(current, total) for progress
        cancel: Optional cancellation token, checked per member

    Raises:
        UnsupportedArchiveFormat: If archive format is not recognized
        ArchiveExtractionError: If extraction fails
        InsecureArchiveError: If archive contains malicious paths
        OperationCancelled: If cancelled mid-extraction
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ArchiveExtractionError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)
    archive_name = archive_path.name.lower()

    try:
        if archive_name.endswith(".zip"):
            _extract_zip(archive_path, destination, progress_callback, cancel)
        elif archive_name.endswith((".tar.gz", ".tgz")):
            _extract_tar(archive_path, destination, progress_callback, cancel)
        else:
            raise UnsupportedArchiveFormat(
                f"Unsupported archive format: {archive_path.name}. "
                "Supported: .zip, .tar.gz"
            )
    except (InsecureArchiveError, UnsupportedArchiveFormat, OperationCancelled):
        raise
    except Exception as e:
        raise ArchiveExtractionError(f"Failed to extract {archive_path}: {e}") from e


def _extract_zip(
    archive_path: Path,
    destination: Path,
    progress_callback: Optional[Callable[[int, int], None]],
    cancel: Optional[CancellationToken],
) -> None:
    with zipfile.ZipFile(archive_path, "r") as zf:
        members = zf.namelist()
        total = len(members)

        for member in members:
            _validate_archive_path(member, destination)

        for i, member in enumerate(members):
            check_cancelled(cancel)
            zf.extract(member, destination)
            if progress_callback:
                progress_callback(i + 1, total)


def _extract_tar(
    archive_path: Path,
    destination: Path,
    progress_callback: Optional[Callable[[int, int], None]],
    cancel: Optional[CancellationToken],
) -> None:
    with tarfile.open(archive_path, "r:gz") as tar:
        members = tar.getmembers()
        total = len(members)

        for member in members:
            _validate_archive_path(member.name, destination)

        # The "data" filter exists on 3.12+ and on patched 3.8-3.11 releases
        use_filter = hasattr(tarfile, "data_filter")
        for i, member in enumerate(members):
            check_cancelled(cancel)
            if use_filter:
                tar.extract(member, destination, filter="data")
            else:
                tar.extract(member, destination)
            if progress_callback:
                progress_callback(i + 1, total)


def single_root_directory(extract_dir: Path) -> Path:
    """
    Return the actual root of an extracted tree.

    Go archives wrap everything in a top-level ``go/`` directory; when the
    extraction holds a single directory, that directory is the root.
    """
    items = list(extract_dir.iterdir())
    if len(items) == 1 and items[0].is_dir():
        return items[0]
    return extract_dir


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    The file is never in a partially-written state. If the write fails, the
    original file (if any) remains unchanged.

    Example:
        >>> atomic_write('config.yaml', 'mirror: https://go.dev/dl/')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in same directory (same filesystem)
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding, newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())

        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def atomic_symlink(link_path: Union[str, Path], target: Union[str, Path]) -> None:
    """
    Point link_path at target, replacing any existing link in one rename.

    A reader resolving link_path sees either the old or the new target,
    never a missing link.
    """
    link_path = Path(link_path)
    target = Path(target)
    link_path.parent.mkdir(parents=True, exist_ok=True)

    temp_link = link_path.with_name(f".{link_path.name}.{os.getpid()}.tmp")
    if temp_link.is_symlink() or temp_link.exists():
        temp_link.unlink()

    os.symlink(target, temp_link, target_is_directory=True)
    try:
        os.replace(temp_link, link_path)
    except OSError:
        temp_link.unlink(missing_ok=True)
        raise


def _make_writable_and_retry(func, path, _exc_info):
    """shutil.rmtree error handler for read-only entries."""
    parent = os.path.dirname(path)
    try:
        os.chmod(parent, os.stat(parent).st_mode | stat.S_IWUSR | stat.S_IXUSR)
        if not os.path.islink(path):
            os.chmod(path, os.stat(path).st_mode | stat.S_IWUSR | stat.S_IXUSR)
    except OSError:
        pass
    func(path)


def _rmtree(path: Path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Read-only files and directories (the go command marks module cache
    entries read-only) are made writable before removal.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be strictly under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails
    """
    path = Path(os.path.abspath(path))

    if require_prefix is not None:
        prefix = Path(require_prefix).resolve()
        # Resolve the parent only so a symlink leaf is judged by its location
        resolved = path.parent.resolve() / path.name
        if resolved == prefix or not is_relative_to(resolved, prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{prefix}'"
            )

    if path.is_symlink():
        path.unlink()
        return

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        _rmtree(path)
    except Exception as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


def remove_path(path: Union[str, Path]) -> None:
    """Remove a file, symlink or directory tree."""
    path = Path(path)
    if path.is_symlink() or path.is_file():
        try:
            path.unlink()
        except PermissionError:
            _make_writable_and_retry(os.unlink, os.fspath(path), None)
    elif path.is_dir():
        _rmtree(path)


# ============================================================================
# Size Accounting
# ============================================================================


def walk_files(
    root: Union[str, Path], cancel: Optional[CancellationToken] = None
) -> Iterator[Tuple[str, os.stat_result]]:
    """
    Yield (path, stat) for every regular file under root without following
    symlinks. Entries that vanish or cannot be read are skipped.
    """
    stack = [os.fspath(root)]
    while stack:
        check_cancelled(cancel)
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError:
            continue
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    stack.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    yield entry.path, entry.stat(follow_symlinks=False)
            except OSError:
                continue


def directory_size(
    path: Union[str, Path], cancel: Optional[CancellationToken] = None
) -> int:
    """
    Calculate total size of regular files under a directory in bytes.

    Returns 0 for a missing directory.
    """
    if not Path(path).is_dir():
        return 0
    return sum(st.st_size for _, st in walk_files(path, cancel))


def format_size(size_bytes: int) -> str:
    """
    Human readable size.

    Example:
        >>> format_size(1536)
        '1.50 KB'
    """
    units: List[str] = ["B", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    for unit in units:
        if size < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size_bytes} B"


__all__ = [
    "is_relative_to",
    "extract_archive",
    "single_root_directory",
    "atomic_write",
    "atomic_symlink",
    "safe_rmtree",
    "remove_path",
    "walk_files",
    "directory_size",
    "format_size",
]
