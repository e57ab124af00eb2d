"""
Network download manager with progress tracking, retry logic, and checksum
verification.

This module provides robust downloading capabilities with:
- Streaming HTTP/HTTPS downloads with TLS verification
- Staging into ``<destination>.partial`` and resuming it with Range headers
- Progress reporting (bytes, percentage, speed, ETA)
- Retry logic with exponential backoff for network failures only
- SHA-256 verification before the file is moved into place
- Cancellation between chunks
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

import requests
from requests.exceptions import RequestException

from govm.core import cancellation
from govm.core.cancellation import CancellationToken, check_cancelled
from govm.core.exceptions import IntegrityError, NetworkError
from govm.core.verification import compute_file_hash, constant_time_compare

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
PARTIAL_SUFFIX = ".partial"


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining

    def __str__(self) -> str:
        return format_progress(self)

    def to_dict(self) -> dict:
        return {
            "downloaded": self.bytes_downloaded,
            "total": self.total_bytes,
            "percentage": round(self.percentage, 1),
            "speed": self.speed_bps,
            "eta": self.eta_seconds,
        }


def partial_path(destination: Path) -> Path:
    """Staging path used while destination is being downloaded."""
    return destination.with_name(destination.name + PARTIAL_SUFFIX)


def build_proxies(proxy: str) -> Optional[Dict[str, str]]:
    """requests proxies mapping for a single proxy URL (None if empty)."""
    if not proxy:
        return None
    return {"http": proxy, "https": proxy}


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    resume: bool = True,
    timeout: float = 30,
    max_retries: int = 3,
    proxy: str = "",
    cancel: Optional[CancellationToken] = None,
    session: Optional[requests.Session] = None,
) -> Path:
    """
    Download file from URL to destination with retries and verification.

    Content is streamed into ``<destination>.partial``; only a fully
    downloaded and verified file is renamed to destination.

    Args:
        url: URL to download from
        destination: Local path to save file
        expected_sha256: Expected SHA256 hash (verified before rename)
        progress_callback: Optional callback for progress updates
        resume: Whether to resume an existing .partial file
        timeout: Connect/read timeout in seconds
        max_retries: Maximum number of attempts for network failures
        proxy: Optional HTTP(S) proxy URL
        cancel: Optional cancellation token
        session: Optional requests session

    Returns:
        Path to downloaded file

    Raises:
        NetworkError: If download fails after retries
        IntegrityError: If checksum doesn't match (staged file is deleted)
        OperationCancelled: If cancelled
        ValueError: If URL or destination is invalid
    """
    if not url:
        raise ValueError("URL cannot be empty")
    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    staged = partial_path(destination)

    # Reuse a previously completed download when its checksum still matches
    if destination.exists() and expected_sha256:
        logger.info(f"File exists, verifying checksum: {destination}")
        if constant_time_compare(
            compute_file_hash(destination, cancel=cancel), expected_sha256.lower()
        ):
            logger.info("Checksum verified, skipping download")
            return destination
        logger.warning("Checksum mismatch, re-downloading")
        destination.unlink()

    if not resume and staged.exists():
        staged.unlink()

    http = session or requests.Session()
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        check_cancelled(cancel)
        resume_from = staged.stat().st_size if staged.exists() else 0
        if resume_from:
            logger.info(f"Resuming download from byte {resume_from}")
        try:
            _download_with_progress(
                http=http,
                url=url,
                staged=staged,
                resume_from=resume_from,
                progress_callback=progress_callback,
                timeout=timeout,
                proxy=proxy,
                cancel=cancel,
            )
            break
        except RequestException as e:
            if attempt == attempts - 1:
                raise NetworkError(
                    f"Download of {url} failed after {attempts} attempts: {e}"
                ) from e
            backoff_seconds = 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds}s..."
            )
            cancellation.sleep(backoff_seconds, cancel)

    if expected_sha256:
        actual = compute_file_hash(staged, cancel=cancel)
        if not constant_time_compare(actual, expected_sha256.lower().strip()):
            staged.unlink(missing_ok=True)
            raise IntegrityError(destination.name, expected_sha256, actual)
        logger.info("Checksum verified successfully")

    staged.replace(destination)
    logger.info(f"Download complete: {destination}")
    return destination


def _download_with_progress(
    http: requests.Session,
    url: str,
    staged: Path,
    resume_from: int,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    timeout: float,
    proxy: str,
    cancel: Optional[CancellationToken],
) -> None:
    """
    Perform one streaming attempt into the staged file.

    Raises:
        RequestException: If the HTTP request fails
    """
    headers = {}
    if resume_from > 0:
        headers["Range"] = f"bytes={resume_from}-"

    logger.info(f"Downloading from {url}")
    response = http.get(
        url,
        headers=headers,
        stream=True,
        timeout=timeout,
        allow_redirects=True,
        proxies=build_proxies(proxy),
    )

    with response:
        if resume_from > 0 and response.status_code == 416:
            # Range not satisfiable: the staged file is stale, start over
            logger.warning("Server rejected resume range, restarting download")
            staged.unlink(missing_ok=True)
            raise requests.exceptions.ConnectionError("Range not satisfiable")

        response.raise_for_status()

        if resume_from > 0 and response.status_code != 206:
            logger.info("Server does not support resume, restarting download")
            resume_from = 0

        content_length = response.headers.get("content-length")
        total_size = int(content_length) + resume_from if content_length else 0
        mode = "ab" if resume_from > 0 else "wb"

        downloaded = resume_from
        start_time = time.time()
        last_progress_time = start_time

        with open(staged, mode) as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                check_cancelled(cancel)
                if not chunk:
                    continue
                f.write(chunk)
                downloaded += len(chunk)

                current_time = time.time()
                if progress_callback and (
                    current_time - last_progress_time >= 0.5
                    or downloaded == total_size
                ):
                    elapsed = current_time - start_time
                    speed = (downloaded - resume_from) / elapsed if elapsed > 0 else 0
                    remaining = total_size - downloaded if total_size > 0 else 0
                    eta = remaining / speed if speed > 0 else 0
                    progress_callback(
                        DownloadProgress(
                            bytes_downloaded=downloaded,
                            total_bytes=total_size if total_size > 0 else downloaded,
                            percentage=(downloaded / total_size * 100)
                            if total_size > 0
                            else 0,
                            speed_bps=speed,
                            eta_seconds=eta,
                        )
                    )
                    last_progress_time = current_time

        if total_size and downloaded < total_size:
            raise requests.exceptions.ChunkedEncodingError(
                f"Connection closed after {downloaded} of {total_size} bytes"
            )


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"
