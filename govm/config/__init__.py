"""
Configuration management for govm.

Provides the YAML-backed configuration store and its validation.
"""

from .store import (
    CHINA_GOPROXY,
    DEFAULT_GOPROXY,
    Configuration,
    ConfigStore,
    mirror_options,
    resolve_alias,
)
from .validation import (
    GOPATH_MODES,
    ConfigValidator,
    ValidationIssue,
    ValidationResult,
    find_alias_cycle,
)

__all__ = [
    "CHINA_GOPROXY",
    "DEFAULT_GOPROXY",
    "GOPATH_MODES",
    "Configuration",
    "ConfigStore",
    "ConfigValidator",
    "ValidationIssue",
    "ValidationResult",
    "find_alias_cycle",
    "mirror_options",
    "resolve_alias",
]
