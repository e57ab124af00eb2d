"""
Integrity verification for downloaded artifacts, installed trees and cached
modules.

This module provides:
- SHA-256 (and SHA-512) file hashing with constant-time comparison
- Tree digests: a single SHA-256 over the per-file digests of a directory,
  used to detect tampering with an installed toolchain
- Go module hashes (``h1:``), the content address the module proxy records
  in ``<module cache>/cache/download/<path>/@v/<version>.ziphash``
"""

import base64
import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from govm.core.cancellation import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class HashFormatError(ValueError):
    """Exception raised when hash format is invalid."""

    pass


@dataclass
class VerifyResult:
    """Outcome of verifying one installed version or cached module."""

    module: str
    version: str
    status: str  # toolchains: ok/corrupted/missing; modules: ok/mismatch/missing/error
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> Dict[str, str]:
        return {
            "module": self.module,
            "version": self.version,
            "status": self.status,
            "message": self.message,
        }


def _new_hasher(algorithm: str):
    algorithm = algorithm.lower()
    if algorithm == "sha256":
        return hashlib.sha256()
    if algorithm == "sha512":
        return hashlib.sha512()
    raise ValueError(f"Unsupported hash algorithm: {algorithm}")


def compute_file_hash(
    file_path: Path,
    algorithm: str = "sha256",
    progress_callback: Optional[Callable[[int, int], None]] = None,
    cancel: Optional[CancellationToken] = None,
) -> str:
    """
    Compute cryptographic hash of file.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm ('sha256', 'sha512')
        progress_callback: Optional progress callback (bytes_read, total_bytes)
        cancel: Optional cancellation token

    Returns:
        Hex string of hash

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If algorithm is not supported
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    hasher = _new_hasher(algorithm)
    file_size = file_path.stat().st_size
    bytes_read = 0

    with open(file_path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            check_cancelled(cancel)
            hasher.update(chunk)
            bytes_read += len(chunk)
            if progress_callback:
                progress_callback(bytes_read, file_size)

    return hasher.hexdigest()


def verify_file_hash(
    file_path: Path, expected_hash: str, algorithm: str = "sha256"
) -> bool:
    """
    Verify file matches expected hash using constant-time comparison.

    Raises:
        FileNotFoundError: If file doesn't exist
        HashFormatError: If expected_hash is not a valid hex digest
    """
    expected_hash = expected_hash.lower().strip()
    if not is_valid_hash_format(expected_hash, algorithm):
        raise HashFormatError(f"Invalid hash format for {algorithm}: {expected_hash}")

    actual_hash = compute_file_hash(file_path, algorithm)
    return constant_time_compare(actual_hash, expected_hash)


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two digests in constant time."""
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def is_valid_hash_format(hash_str: str, algorithm: str = "sha256") -> bool:
    """
    Validate hex digest format and length for algorithm.
    """
    if not hash_str:
        return False

    if not all(c in "0123456789abcdef" for c in hash_str.lower()):
        return False

    expected_lengths = {"sha256": 64, "sha512": 128}
    expected_len = expected_lengths.get(algorithm.lower())
    if expected_len and len(hash_str) != expected_len:
        logger.error(
            f"Hash length {len(hash_str)} doesn't match expected {expected_len} for {algorithm}"
        )
        return False

    return True


# ============================================================================
# Directory Digests
# ============================================================================


def list_regular_files(
    root: Path,
    exclude: Iterable[str] = (),
    cancel: Optional[CancellationToken] = None,
) -> List[str]:
    """
    Sorted slash-separated relative paths of every regular file under root.

    Symlinks are not followed. Top-level names in exclude are skipped.
    """
    root = Path(root)
    excluded = set(exclude)
    files: List[str] = []

    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        check_cancelled(cancel)
        rel_dir = os.path.relpath(dirpath, root)
        if rel_dir == ".":
            dirnames[:] = [d for d in dirnames if d not in excluded]
            filenames = [f for f in filenames if f not in excluded]
        for name in filenames:
            full = os.path.join(dirpath, name)
            if os.path.islink(full) or not os.path.isfile(full):
                continue
            rel = name if rel_dir == "." else os.path.join(rel_dir, name)
            files.append(rel.replace(os.sep, "/"))

    files.sort()
    return files


def _summary_lines(
    root: Path, names: List[Tuple[str, str]], cancel: Optional[CancellationToken]
):
    summary = hashlib.sha256()
    for rel, label in names:
        if "\n" in label:
            raise HashFormatError(f"File name contains newline: {label!r}")
        digest = compute_file_hash(root / rel, "sha256", cancel=cancel)
        summary.update(f"{digest}  {label}\n".encode("utf-8"))
    return summary


def tree_digest(
    root: Path,
    exclude: Iterable[str] = (),
    cancel: Optional[CancellationToken] = None,
) -> str:
    """
    Digest of a directory tree.

    SHA-256 over ``"<sha256 of file>  <relative path>\\n"`` for every regular
    file in sorted path order.

    Returns:
        ``"sha256:<hex>"``
    """
    root = Path(root)
    files = list_regular_files(root, exclude, cancel)
    summary = _summary_lines(root, [(f, f) for f in files], cancel)
    return f"sha256:{summary.hexdigest()}"


def go_module_hash(
    module_dir: Path, prefix: str, cancel: Optional[CancellationToken] = None
) -> str:
    """
    Go ``h1:`` hash of an extracted module directory.

    Matches ``dirhash.HashDir(dir, prefix, dirhash.Hash1)``: file names are
    ``<prefix>/<relative path>`` where prefix is ``<module>@<version>``.

    Returns:
        ``"h1:<base64 sha256>"``
    """
    module_dir = Path(module_dir)
    files = list_regular_files(module_dir, cancel=cancel)
    labelled = sorted(((f, f"{prefix}/{f}") for f in files), key=lambda item: item[1])
    summary = _summary_lines(module_dir, labelled, cancel)
    return "h1:" + base64.b64encode(summary.digest()).decode("ascii")


__all__ = [
    "HashFormatError",
    "VerifyResult",
    "compute_file_hash",
    "verify_file_hash",
    "constant_time_compare",
    "is_valid_hash_format",
    "list_regular_files",
    "tree_digest",
    "go_module_hash",
]
