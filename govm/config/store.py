"""YAML configuration store for govm.

The configuration lives in ``<base>/config.yaml``. A missing file means
defaults; a file that exists but cannot be parsed is reported as corrupt
instead of being silently replaced.

Example config.yaml::

    mirror: https://go.dev/dl/
    proxy: ''
    goproxy: https://proxy.golang.org,direct
    default_version: '1.22.3'
    aliases:
      stable: '1.22.3'
    theme: system
    language: en
    install_dir: /home/user/.govm/versions
    cache_dir: /home/user/.govm/cache
    gopath_mode: isolated
    shared_gopath: ''
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import yaml

from govm.config.validation import GOPATH_MODES, ConfigValidator
from govm.core.directory import (
    get_base_dir,
    get_default_cache_dir,
    get_default_install_dir,
    get_lock_dir,
)
from govm.core.exceptions import CorruptConfigError, InvalidConfigError
from govm.core.filesystem import atomic_write
from govm.core.locking import LockManager
from govm.core.mirrors import DEFAULT_MIRROR, MIRROR_OPTIONS, MirrorOption
from govm.version.releases import normalize_version

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
DEFAULT_GOPROXY = "https://proxy.golang.org,direct"
CHINA_GOPROXY = "https://goproxy.cn,direct"


def _require_version_string(name: str, value: Any) -> None:
    # YAML reads an unquoted 1.20 as the float 1.2, a different release
    if not isinstance(value, str):
        raise CorruptConfigError(
            f"'{name}' must be a quoted string in config.yaml, "
            f"got {type(value).__name__} {value!r}"
        )


@dataclass
class Configuration:
    """User configuration."""

    mirror: str = DEFAULT_MIRROR
    proxy: str = ""
    goproxy: str = DEFAULT_GOPROXY
    default_version: str = ""
    aliases: Dict[str, str] = field(default_factory=dict)
    theme: str = "system"  # presentation only, passed through
    language: str = "en"  # presentation only, passed through
    install_dir: str = ""
    cache_dir: str = ""
    gopath_mode: str = "isolated"  # 'isolated' or 'shared'
    shared_gopath: str = ""

    @classmethod
    def defaults(cls, base_dir: Optional[Path] = None) -> "Configuration":
        base = Path(base_dir) if base_dir else get_base_dir()
        return cls(
            install_dir=str(get_default_install_dir(base)),
            cache_dir=str(get_default_cache_dir(base)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["aliases"] = dict(self.aliases)
        return data

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], base_dir: Optional[Path] = None
    ) -> "Configuration":
        """
        Build a configuration from a mapping.

        Unknown keys are ignored; missing or null keys take their defaults.

        Raises:
            CorruptConfigError: If a value has the wrong shape
        """
        config = cls.defaults(base_dir)
        for f in dataclasses.fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            if f.name == "aliases":
                if not isinstance(value, dict):
                    raise CorruptConfigError("'aliases' must be a mapping")
                for k, v in value.items():
                    _require_version_string(f"aliases.{k}", k)
                    _require_version_string(f"aliases.{k}", v)
                value = dict(value)
            elif f.name == "default_version":
                _require_version_string(f.name, value)
            elif isinstance(value, (dict, list)):
                raise CorruptConfigError(f"'{f.name}' must be a string")
            else:
                value = str(value)
            setattr(config, f.name, value)
        return config

    @property
    def install_path(self) -> Path:
        return Path(self.install_dir)

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir)


class ConfigStore:
    """
    Loads, validates and persists the user configuration.

    Every call reads the file again; nothing is cached between operations.

    Args:
        base_dir: govm base directory (default: get_base_dir())
        known_versions: Optional callable returning versions an alias may
            point at (installed versions and releases from the cached index)
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        known_versions: Optional[Callable[[], Iterable[str]]] = None,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_base_dir()
        self.path = self.base_dir / CONFIG_FILENAME
        self.known_versions = known_versions
        self._locks = LockManager(get_lock_dir(self.base_dir))

    def load(self) -> Configuration:
        """
        Load configuration, merged with defaults.

        Raises:
            CorruptConfigError: If the file exists but is unreadable, not
                YAML, or not a mapping
        """
        if not self.path.exists():
            logger.debug(f"No configuration at {self.path}, using defaults")
            return Configuration.defaults(self.base_dir)

        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptConfigError(f"Cannot read {self.path}: {e}") from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CorruptConfigError(f"Invalid YAML in {self.path}: {e}") from e

        if data is None:
            return Configuration.defaults(self.base_dir)
        if not isinstance(data, dict):
            raise CorruptConfigError(
                f"{self.path} must contain a mapping, got {type(data).__name__}"
            )
        return Configuration.from_dict(data, self.base_dir)

    def validator(self) -> ConfigValidator:
        known = None
        if self.known_versions is not None:
            known = set(self.known_versions())
        return ConfigValidator(known_versions=known)

    def save(self, config: Configuration) -> None:
        """
        Validate and persist configuration atomically.

        Raises:
            InvalidConfigError: Listing every violated field
        """
        self.validator().check(config)
        content = yaml.safe_dump(
            config.to_dict(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        atomic_write(self.path, content)
        logger.info(f"Saved configuration to {self.path}")

    def update(self, **fields: Any) -> Configuration:
        """
        Load, replace the given fields, validate and save.

        Raises:
            InvalidConfigError: For unknown fields or invalid values
        """
        known = {f.name for f in dataclasses.fields(Configuration)}
        unknown = {name: "unknown setting" for name in fields if name not in known}
        if unknown:
            raise InvalidConfigError(unknown)

        with self._locks.config_lock():
            config = dataclasses.replace(self.load(), **fields)
            self.save(config)
        return config

    def set_alias(self, name: str, version: str) -> Configuration:
        with self._locks.config_lock():
            config = self.load()
            aliases = dict(config.aliases)
            aliases[name] = normalize_version(version)
            config.aliases = aliases
            self.save(config)
        return config

    def remove_alias(self, name: str) -> Configuration:
        with self._locks.config_lock():
            config = self.load()
            if name in config.aliases:
                config.aliases = {k: v for k, v in config.aliases.items() if k != name}
                self.save(config)
        return config

    def reset(self) -> Configuration:
        """Replace the stored configuration with defaults."""
        config = Configuration.defaults(self.base_dir)
        with self._locks.config_lock():
            self.save(config)
        return config

    def resolve_alias(self, name: str, config: Optional[Configuration] = None) -> str:
        """
        Resolve an alias (following alias chains) to a version string.

        Falls back to name itself, without a ``go`` prefix, when no alias
        matches.
        """
        config = config or self.load()
        return resolve_alias(config.aliases, name)


def resolve_alias(aliases: Dict[str, str], name: str) -> str:
    seen: List[str] = []
    current = name.strip()
    while current in aliases and current not in seen:
        seen.append(current)
        current = aliases[current]
    return normalize_version(current)


def mirror_options() -> List[MirrorOption]:
    return list(MIRROR_OPTIONS)


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_GOPROXY",
    "CHINA_GOPROXY",
    "GOPATH_MODES",
    "Configuration",
    "ConfigStore",
    "resolve_alias",
    "mirror_options",
]
