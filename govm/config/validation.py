"""Configuration validation module for govm.

This module provides semantic validation of a loaded configuration:
directory rules, URL formats, GOPATH mode, and alias targets and cycles.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, TYPE_CHECKING
from urllib.parse import urlparse

from govm.core.directory import is_directory_creatable
from govm.core.exceptions import InvalidConfigError
from govm.version.releases import is_go_version, normalize_version

if TYPE_CHECKING:
    from govm.config.store import Configuration

GOPATH_MODES = ("isolated", "shared")
PROXY_SCHEMES = ("http", "https", "socks5", "socks5h")


@dataclass
class ValidationIssue:
    """A single validation issue."""

    level: str  # 'error', 'warning'
    field: str  # Configuration field path
    message: str  # Human-readable message
    suggestion: str  # How to fix it


@dataclass
class ValidationResult:
    """Result of configuration validation."""

    valid: bool
    issues: List[ValidationIssue]

    @property
    def errors(self) -> Dict[str, str]:
        """First error message per field."""
        result: Dict[str, str] = {}
        for issue in self.issues:
            if issue.level == "error" and issue.field not in result:
                result[issue.field] = issue.message
        return result


def find_alias_cycle(aliases: Dict[str, str]) -> Optional[List[str]]:
    """
    Return the first alias cycle found (e.g. ['a', 'b', 'a']), or None.
    """
    for start in sorted(aliases):
        chain = [start]
        current = aliases[start]
        while current in aliases:
            if current in chain:
                return chain[chain.index(current) :] + [current]
            chain.append(current)
            current = aliases[current]
    return None


def _is_http_url(value: str, schemes=("http", "https")) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in schemes and bool(parsed.netloc)


class ConfigValidator:
    """
    Validates govm configuration.

    Args:
        known_versions: Versions alias targets may resolve to. When None,
            any well-formed Go version is accepted as a target.
    """

    def __init__(self, known_versions: Optional[Set[str]] = None):
        self.known_versions = (
            {normalize_version(v) for v in known_versions}
            if known_versions is not None
            else None
        )
        self.issues: List[ValidationIssue] = []

    def validate(self, config: "Configuration") -> ValidationResult:
        """
        Perform comprehensive validation.

        Returns:
            ValidationResult with any issues found
        """
        self.issues = []

        self._validate_directories(config)
        self._validate_gopath(config)
        self._validate_urls(config)
        self._validate_aliases(config)

        has_errors = any(issue.level == "error" for issue in self.issues)
        return ValidationResult(valid=not has_errors, issues=self.issues)

    def check(self, config: "Configuration") -> None:
        """
        Validate and raise on errors.

        Raises:
            InvalidConfigError: Listing every violated field
        """
        result = self.validate(config)
        if not result.valid:
            raise InvalidConfigError(result.errors)

    def _validate_directories(self, config: "Configuration"):
        paths = {}
        for name in ("install_dir", "cache_dir"):
            value = getattr(config, name)
            if not value:
                self._add_error(name, "must not be empty", "Set an absolute path")
                continue
            path = Path(value).expanduser()
            if not path.is_absolute():
                self._add_error(
                    name, f"must be an absolute path: {value}", "Use an absolute path"
                )
                continue
            if not is_directory_creatable(path):
                self._add_error(
                    name,
                    f"not writable: {value}",
                    "Choose a directory you can write to",
                )
                continue
            paths[name] = path

        if len(paths) == 2:
            install = Path(paths["install_dir"]).resolve()
            cache = Path(paths["cache_dir"]).resolve()
            if install == cache:
                self._add_error(
                    "cache_dir",
                    "must differ from install_dir",
                    "Use separate directories for installs and caches",
                )

    def _validate_gopath(self, config: "Configuration"):
        if config.gopath_mode not in GOPATH_MODES:
            self._add_error(
                "gopath_mode",
                f"invalid mode '{config.gopath_mode}'",
                f"Use one of: {', '.join(GOPATH_MODES)}",
            )
        if config.shared_gopath and not Path(config.shared_gopath).expanduser().is_absolute():
            self._add_error(
                "shared_gopath",
                f"must be an absolute path: {config.shared_gopath}",
                "Use an absolute path or leave empty",
            )

    def _validate_urls(self, config: "Configuration"):
        if not _is_http_url(config.mirror):
            self._add_error(
                "mirror",
                f"invalid mirror URL '{config.mirror}'",
                "Use an http(s) URL such as https://go.dev/dl/",
            )

        if config.proxy and not _is_http_url(config.proxy, PROXY_SCHEMES):
            self._add_error(
                "proxy",
                f"invalid proxy URL '{config.proxy}'",
                "Use http://host:port or leave empty",
            )

        if config.goproxy:
            # GOPROXY accepts ',' and '|' separated lists
            entries = config.goproxy.replace("|", ",").split(",")
            for entry in entries:
                entry = entry.strip()
                if entry in ("direct", "off"):
                    continue
                if not _is_http_url(entry):
                    self._add_error(
                        "goproxy",
                        f"invalid GOPROXY entry '{entry}'",
                        "Use proxy URLs, 'direct' or 'off', e.g. https://goproxy.cn,direct",
                    )
                    break

    def _validate_aliases(self, config: "Configuration"):
        aliases = config.aliases
        for name, target in aliases.items():
            field_name = f"aliases.{name}"
            if not name.strip() or any(c.isspace() for c in name):
                self._add_error(
                    "aliases", f"invalid alias name '{name}'", "Use a non-empty word"
                )
                continue
            if not target.strip():
                self._add_error(field_name, "target is empty", "Point it at a version")
                continue
            if target in aliases:
                continue
            version = normalize_version(target)
            if self.known_versions is not None:
                if version not in self.known_versions:
                    self._add_error(
                        field_name,
                        f"target '{target}' is not an installed or known release",
                        "Install the version or refresh the release list",
                    )
            elif not is_go_version(version):
                self._add_error(
                    field_name,
                    f"target '{target}' is not a Go version",
                    "Use a version such as 1.22.3",
                )

        default = config.default_version
        if default and default not in aliases and not is_go_version(default):
            self._add_warning(
                "default_version",
                f"'{default}' is neither an alias nor a Go version",
                "Use a version such as 1.22.3 or an alias name",
            )

        cycle = find_alias_cycle(aliases)
        if cycle:
            self._add_error(
                "aliases",
                f"alias cycle: {' -> '.join(cycle)}",
                "Point one of the aliases at a concrete version",
            )

    def _add_error(self, field: str, message: str, suggestion: str):
        """Add error issue."""
        self.issues.append(
            ValidationIssue(
                level="error", field=field, message=message, suggestion=suggestion
            )
        )

    def _add_warning(self, field: str, message: str, suggestion: str):
        """Add warning issue."""
        self.issues.append(
            ValidationIssue(
                level="warning", field=field, message=message, suggestion=suggestion
            )
        )


__all__ = [
    "GOPATH_MODES",
    "ValidationIssue",
    "ValidationResult",
    "ConfigValidator",
    "find_alias_cycle",
]
