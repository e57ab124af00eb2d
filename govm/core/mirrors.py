"""
Mirror selection for the Go release index and release artifacts.

The configured mirror is tried first, followed by the built-in fallbacks.
Mirror health is tracked per process so that a mirror that just failed is
tried after the ones that are answering.

Usage:
    from govm.core.mirrors import MirrorResolver

    resolver = MirrorResolver("https://go.dev/dl/")
    releases = resolver.fetch_index(parse_index)
    for url in resolver.artifact_urls("go1.22.3.linux-amd64.tar.gz"):
        ...
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests
from requests.exceptions import RequestException

from govm.core import cancellation
from govm.core.cancellation import CancellationToken, check_cancelled
from govm.core.download import build_proxies
from govm.core.exceptions import NetworkError, ParseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MIRROR = "https://go.dev/dl/"
INDEX_QUERY = "?mode=json&include=all"


@dataclass(frozen=True)
class MirrorOption:
    """A selectable release mirror."""

    name: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "url": self.url}


MIRROR_OPTIONS = (
    MirrorOption("Official (go.dev)", "https://go.dev/dl/"),
    MirrorOption("China Official (golang.google.cn)", "https://golang.google.cn/dl/"),
    MirrorOption("Aliyun", "https://mirrors.aliyun.com/golang/"),
    MirrorOption("USTC", "https://mirrors.ustc.edu.cn/golang/"),
    MirrorOption("Tsinghua", "https://mirrors.tuna.tsinghua.edu.cn/golang/"),
)


def normalize_mirror(url: str) -> str:
    """Mirror base URL with exactly one trailing slash."""
    return url.strip().rstrip("/") + "/"


class MirrorStatus:
    """
    Tracks availability of mirrors.

    Mirrors that succeeded recently sort first, mirrors never tried keep their
    configured order, mirrors with consecutive failures sort last.
    """

    def __init__(self):
        self._status: Dict[str, Dict[str, Any]] = {}

    def record_success(self, mirror_url: str) -> None:
        self._status[mirror_url] = {
            "last_success": datetime.now(),
            "last_failure": None,
            "failure_reason": None,
            "consecutive_failures": 0,
        }

    def record_failure(self, mirror_url: str, reason: str) -> None:
        current = self._status.get(
            mirror_url,
            {
                "last_success": None,
                "last_failure": None,
                "failure_reason": None,
                "consecutive_failures": 0,
            },
        )
        current["last_failure"] = datetime.now()
        current["failure_reason"] = reason
        current["consecutive_failures"] = current.get("consecutive_failures", 0) + 1
        self._status[mirror_url] = current

    def consecutive_failures(self, mirror_url: str) -> int:
        return self._status.get(mirror_url, {}).get("consecutive_failures", 0)

    def get_sorted_mirrors(self, mirror_list: List[str]) -> List[str]:
        """Order mirrors by health; sorting is stable for equal health."""

        def get_priority(mirror_url: str) -> tuple:
            failures = self.consecutive_failures(mirror_url)
            return (1 if failures else 0, failures)

        return sorted(mirror_list, key=get_priority)

    def get_failure_summary(self) -> str:
        summaries = []
        for mirror_url, status in self._status.items():
            if status.get("last_failure"):
                summaries.append(
                    f"{mirror_url}: {status.get('failure_reason', 'unknown error')} "
                    f"({status.get('consecutive_failures', 0)} consecutive failures)"
                )
        return "; ".join(summaries) if summaries else "no failures recorded"

    def clear(self) -> None:
        self._status.clear()


# Shared across resolvers so health survives between operations
_shared_status = MirrorStatus()


def shared_status() -> MirrorStatus:
    return _shared_status


class MirrorResolver:
    """
    Orders mirrors and fetches from them with retries.

    Attributes:
        primary: Configured mirror URL
        fallbacks: Mirrors tried after the primary
        timeout: Per-request timeout in seconds
        retries: Attempts per mirror for network failures
        proxy: Optional HTTP(S) proxy URL
    """

    def __init__(
        self,
        primary: str = DEFAULT_MIRROR,
        fallbacks: Optional[List[str]] = None,
        timeout: float = 30,
        retries: int = 2,
        proxy: str = "",
        status: Optional[MirrorStatus] = None,
        session: Optional[requests.Session] = None,
    ):
        self.primary = normalize_mirror(primary or DEFAULT_MIRROR)
        if fallbacks is None:
            fallbacks = [option.url for option in MIRROR_OPTIONS]
        self.fallbacks = [normalize_mirror(url) for url in fallbacks]
        self.timeout = timeout
        self.retries = max(1, retries)
        self.proxy = proxy
        self.status = status if status is not None else _shared_status
        self.session = session or requests.Session()

    def mirrors(self) -> List[str]:
        """Primary first, then fallbacks, de-duplicated and health ordered."""
        ordered: List[str] = []
        for url in [self.primary] + self.fallbacks:
            if url not in ordered:
                ordered.append(url)
        return self.status.get_sorted_mirrors(ordered)

    def index_url(self, mirror: str) -> str:
        return normalize_mirror(mirror) + INDEX_QUERY

    def artifact_urls(self, filename: str) -> List[str]:
        return [mirror + filename for mirror in self.mirrors()]

    def fetch_index(
        self,
        parse: Callable[[Any], T],
        cancel: Optional[CancellationToken] = None,
    ) -> T:
        """
        Fetch and parse the release index from the first mirror that works.

        Args:
            parse: Converts the decoded JSON document; raises ParseError
                (or ValueError) for malformed documents
            cancel: Optional cancellation token, checked between mirrors

        Returns:
            Whatever parse returns for the first well-formed index

        Raises:
            NetworkError: Every mirror was unreachable
            ParseError: At least one mirror answered but none parsed
            OperationCancelled: If cancelled
        """
        network_errors: List[str] = []
        parse_errors: List[str] = []

        for mirror in self.mirrors():
            check_cancelled(cancel)
            url = self.index_url(mirror)
            try:
                document = self._get_json(url, cancel)
            except NetworkError as e:
                logger.warning(f"Mirror {mirror} unreachable: {e}")
                self.status.record_failure(mirror, str(e))
                network_errors.append(f"{mirror}: {e}")
                continue
            except ParseError as e:
                logger.warning(f"Mirror {mirror} returned malformed index: {e}")
                self.status.record_failure(mirror, str(e))
                parse_errors.append(f"{mirror}: {e}")
                continue

            try:
                result = parse(document)
            except (ParseError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Mirror {mirror} returned malformed index: {e}")
                self.status.record_failure(mirror, str(e))
                parse_errors.append(f"{mirror}: {e}")
                continue

            self.status.record_success(mirror)
            logger.info(f"Fetched release index from {mirror}")
            return result

        if parse_errors:
            raise ParseError(
                "No mirror returned a valid release index: " + "; ".join(parse_errors)
            )
        raise NetworkError("All mirrors unreachable: " + "; ".join(network_errors))

    def _get_json(self, url: str, cancel: Optional[CancellationToken]) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(self.retries):
            check_cancelled(cancel)
            try:
                response = self.session.get(
                    url, timeout=self.timeout, proxies=build_proxies(self.proxy)
                )
                response.raise_for_status()
            except RequestException as e:
                last_error = e
                if attempt < self.retries - 1:
                    backoff_seconds = 2**attempt
                    logger.debug(f"GET {url} failed ({e}), retrying in {backoff_seconds}s")
                    cancellation.sleep(backoff_seconds, cancel)
                continue

            try:
                return response.json()
            except ValueError as e:
                raise ParseError(f"Invalid JSON from {url}: {e}") from e

        raise NetworkError(f"GET {url} failed: {last_error}") from last_error


__all__ = [
    "DEFAULT_MIRROR",
    "MIRROR_OPTIONS",
    "MirrorOption",
    "MirrorStatus",
    "MirrorResolver",
    "normalize_mirror",
    "shared_status",
]
