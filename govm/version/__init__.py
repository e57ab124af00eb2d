"""
Go toolchain version management.

``govm.version.releases`` models the remote release index;
``govm.version.manager.VersionManager`` installs, removes and switches
versions.
"""

from .releases import (
    ArtifactDescriptor,
    ReleaseDescriptor,
    normalize_version,
    parse_index,
    sort_versions,
    version_key,
)

__all__ = [
    "ArtifactDescriptor",
    "ReleaseDescriptor",
    "normalize_version",
    "parse_index",
    "sort_versions",
    "version_key",
]
