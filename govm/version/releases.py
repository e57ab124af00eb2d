"""
Go release index model.

Parses the JSON document served at ``<mirror>?mode=json&include=all``::

    [
      {
        "version": "go1.22.3",
        "stable": true,
        "files": [
          {"filename": "go1.22.3.linux-amd64.tar.gz", "os": "linux",
           "arch": "amd64", "version": "go1.22.3", "sha256": "...",
           "size": 68958945, "kind": "archive"},
          ...
        ]
      },
      ...
    ]

Versions are stored without the ``go`` prefix (``1.22.3``) and ordered with
``packaging.version`` so that ``1.22.0 > 1.22rc2 > 1.22rc1 > 1.21.9``.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from packaging.version import InvalidVersion, Version

from govm.core.exceptions import ParseError

logger = logging.getLogger(__name__)

ARTIFACT_KINDS = ("archive", "installer", "source")

_GO_VERSION_RE = re.compile(r"^\d+(\.\d+){0,2}((rc|beta)\d+)?$")
_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


def normalize_version(version: str) -> str:
    """
    Strip whitespace and the ``go`` prefix.

    Example:
        >>> normalize_version("go1.22.3")
        '1.22.3'
    """
    version = version.strip()
    if version.startswith("go") and version[2:3].isdigit():
        version = version[2:]
    return version


def is_go_version(version: str) -> bool:
    """True for strings shaped like a Go release (``1.22.3``, ``1.23rc1``)."""
    return bool(_GO_VERSION_RE.match(normalize_version(version)))


def version_key(version: str) -> Version:
    """
    Sort key for a Go version.

    Raises:
        ParseError: If the version cannot be ordered
    """
    try:
        return Version(normalize_version(version))
    except InvalidVersion as e:
        raise ParseError(f"Unrecognized Go version: {version!r}") from e


def sort_versions(versions: Iterable[str], newest_first: bool = True) -> List[str]:
    """Sort version strings by precedence; unparseable ones go last."""
    parsed = []
    unknown = []
    for v in versions:
        try:
            parsed.append((version_key(v), v))
        except ParseError:
            unknown.append(v)
    parsed.sort(key=lambda item: item[0], reverse=newest_first)
    return [v for _, v in parsed] + sorted(unknown)


@dataclass(frozen=True)
class ArtifactDescriptor:
    """One downloadable file of a release."""

    filename: str
    os: str
    arch: str
    size: int
    sha256: str
    kind: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "os": self.os,
            "arch": self.arch,
            "size": self.size,
            "sha256": self.sha256,
            "kind": self.kind,
        }

    @property
    def has_checksum(self) -> bool:
        return bool(_SHA256_RE.match(self.sha256))


@dataclass(frozen=True)
class ReleaseDescriptor:
    """A published Go release."""

    version: str
    stable: bool
    files: Tuple[ArtifactDescriptor, ...] = field(default_factory=tuple)

    def find_artifact(
        self, os_name: str, arch: str, kind: str = "archive"
    ) -> Optional[ArtifactDescriptor]:
        """First artifact of kind for os/arch that carries a SHA-256."""
        for artifact in self.files:
            if (
                artifact.kind == kind
                and artifact.os == os_name
                and artifact.arch == arch
                and artifact.has_checksum
            ):
                return artifact
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "stable": self.stable,
            "files": [f.to_dict() for f in self.files],
        }


def _parse_artifact(entry: Any, version: str) -> ArtifactDescriptor:
    if not isinstance(entry, dict):
        raise ParseError(f"go{version}: file entry is not an object")
    try:
        filename = entry["filename"]
        kind = entry.get("kind", "")
        size = int(entry.get("size", 0) or 0)
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"go{version}: malformed file entry: {e}") from e
    if not isinstance(filename, str) or not filename or "/" in filename:
        raise ParseError(f"go{version}: invalid filename {filename!r}")
    return ArtifactDescriptor(
        filename=filename,
        os=str(entry.get("os", "") or ""),
        arch=str(entry.get("arch", "") or ""),
        size=size,
        sha256=str(entry.get("sha256", "") or "").lower(),
        kind=str(kind),
    )


def parse_release(entry: Any) -> ReleaseDescriptor:
    """
    Parse one release object of the index.

    Raises:
        ParseError: If the entry is malformed
    """
    if not isinstance(entry, dict):
        raise ParseError("Release entry is not an object")
    raw_version = entry.get("version")
    if not isinstance(raw_version, str) or not raw_version:
        raise ParseError(f"Release entry without version: {entry!r:.80}")
    version = normalize_version(raw_version)
    version_key(version)

    files = entry.get("files", [])
    if not isinstance(files, list):
        raise ParseError(f"go{version}: 'files' is not a list")

    return ReleaseDescriptor(
        version=version,
        stable=bool(entry.get("stable", False)),
        files=tuple(_parse_artifact(f, version) for f in files),
    )


def sort_releases(releases: Iterable[ReleaseDescriptor]) -> List[ReleaseDescriptor]:
    """Newest first by version precedence."""
    return sorted(releases, key=lambda r: version_key(r.version), reverse=True)


def parse_index(document: Any) -> List[ReleaseDescriptor]:
    """
    Parse a release index document.

    Duplicate versions keep their first occurrence.

    Returns:
        Releases ordered newest first

    Raises:
        ParseError: If the document is not a well-formed release index
    """
    if not isinstance(document, list):
        raise ParseError("Release index is not a JSON array")

    releases: Dict[str, ReleaseDescriptor] = {}
    for entry in document:
        release = parse_release(entry)
        if release.version in releases:
            logger.debug(f"Duplicate release entry go{release.version} ignored")
            continue
        releases[release.version] = release

    if not releases:
        raise ParseError("Release index is empty")
    return sort_releases(releases.values())


__all__ = [
    "ARTIFACT_KINDS",
    "ArtifactDescriptor",
    "ReleaseDescriptor",
    "normalize_version",
    "is_go_version",
    "version_key",
    "sort_versions",
    "parse_release",
    "parse_index",
    "sort_releases",
]
