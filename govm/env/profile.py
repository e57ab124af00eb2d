"""
Persistent environment profile.

govm never edits shell startup files. Variables are kept in
``<base>/env.json`` and rendered into ``<base>/env.sh`` (POSIX shells) and
``<base>/env.ps1`` (PowerShell) from Jinja2 templates; users source one of
them from their shell profile::

    . "$HOME/.govm/env.sh"
"""

import json
import logging
import re
import shlex
from pathlib import Path
from typing import Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError

from govm.config.store import CHINA_GOPROXY
from govm.core.exceptions import FilesystemError, InvalidConfigError
from govm.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

PROFILE_FILENAME = "env.json"
SCRIPTS = {"env.sh": "env.sh.j2", "env.ps1": "env.ps1.j2"}

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _psquote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


class EnvProfile:
    """
    Environment variables and PATH entries managed by govm.

    Attributes:
        variables: Exported variables (name -> value)
        path_entries: Directories prepended to PATH, in order
    """

    def __init__(self, base_dir: Path, template_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir)
        self.path = self.base_dir / PROFILE_FILENAME
        self.template_dir = Path(template_dir or Path(__file__).parent / "templates")
        self._jinja_env = self._init_jinja2()

    def _init_jinja2(self) -> Environment:
        if not self.template_dir.exists():
            raise FilesystemError(f"Template directory not found: {self.template_dir}")

        jinja_env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        jinja_env.filters["shquote"] = shlex.quote
        jinja_env.filters["psquote"] = _psquote
        return jinja_env

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> Dict:
        """Stored profile; an unreadable file counts as empty."""
        empty = {"variables": {}, "path": []}
        if not self.path.exists():
            return empty
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable environment profile {self.path}: {e}")
            return empty
        if not isinstance(data, dict):
            return empty
        variables = data.get("variables") or {}
        path = data.get("path") or []
        return {
            "variables": {str(k): str(v) for k, v in dict(variables).items()},
            "path": [str(p) for p in path],
        }

    @property
    def variables(self) -> Dict[str, str]:
        return self.load()["variables"]

    @property
    def path_entries(self) -> List[str]:
        return self.load()["path"]

    def _save(self, data: Dict) -> None:
        try:
            atomic_write(self.path, json.dumps(data, indent=2, ensure_ascii=False))
            self.render(data)
        except OSError as e:
            raise FilesystemError(f"Cannot write environment profile: {e}") from e

    def render(self, data: Optional[Dict] = None) -> Dict[str, Path]:
        """
        Regenerate env.sh and env.ps1.

        Returns:
            Mapping of script name to written path

        Raises:
            FilesystemError: If a template fails to render
        """
        data = data or self.load()
        context = {
            "variables": sorted(data["variables"].items()),
            "path_entries": data["path"],
        }
        written = {}
        for script, template_name in SCRIPTS.items():
            try:
                content = self._jinja_env.get_template(template_name).render(**context)
            except TemplateError as e:
                raise FilesystemError(
                    f"Failed to render template {template_name}: {e}"
                ) from e
            target = self.base_dir / script
            atomic_write(target, content)
            written[script] = target
        logger.debug(f"Rendered environment scripts in {self.base_dir}")
        return written

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_env_var(self, name: str, value: str) -> None:
        """
        Set (or with an empty value, remove) a profile variable.

        Raises:
            InvalidConfigError: If name is not a valid variable name
        """
        if not _NAME_RE.match(name or ""):
            raise InvalidConfigError({"name": f"invalid environment variable name '{name}'"})
        if name.upper() == "PATH":
            raise InvalidConfigError({"name": "PATH is managed through GOROOT and GOPATH"})

        data = self.load()
        if value:
            data["variables"][name] = value
        else:
            data["variables"].pop(name, None)
        data["path"] = self._path_for(data["variables"])
        self._save(data)
        logger.info(f"Set {name}={value}" if value else f"Removed {name}")

    def apply_version(self, goroot: Path, gopath: Optional[Path] = None) -> None:
        """Point GOROOT, PATH and (optionally) GOPATH at a toolchain."""
        data = self.load()
        data["variables"]["GOROOT"] = str(goroot)
        if gopath is not None:
            data["variables"]["GOPATH"] = str(gopath)
        data["path"] = self._path_for(data["variables"])
        self._save(data)

    def fix_goroot(self, goroot: Path) -> None:
        self.apply_version(goroot)

    def fix_goproxy(self, goproxy: str = CHINA_GOPROXY) -> None:
        self.set_env_var("GOPROXY", goproxy)

    @staticmethod
    def _path_for(variables: Dict[str, str]) -> List[str]:
        entries = []
        if variables.get("GOROOT"):
            entries.append(str(Path(variables["GOROOT"]) / "bin"))
        if variables.get("GOBIN"):
            entries.append(variables["GOBIN"])
        elif variables.get("GOPATH"):
            entries.append(str(Path(variables["GOPATH"]) / "bin"))
        return entries


__all__ = ["EnvProfile", "CHINA_GOPROXY", "PROFILE_FILENAME"]
