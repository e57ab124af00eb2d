"""
GOPATH and module cache locations.

isolated mode:
    GOPATH = <base>/gopath/<version>
shared mode:
    GOPATH = shared_gopath, else the first entry of $GOPATH, else ~/go

The module cache is ``<GOPATH>/pkg/mod``; in shared mode ``$GOMODCACHE``
takes precedence when set.
"""

import os
from pathlib import Path
from typing import Mapping, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from govm.config.store import Configuration

ISOLATED_DEFAULT = "default"


def resolve_gopath(
    config: "Configuration",
    base_dir: Path,
    version: str = "",
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    environ = os.environ if environ is None else environ

    if config.gopath_mode == "isolated":
        return Path(base_dir) / "gopath" / (version or ISOLATED_DEFAULT)

    if config.shared_gopath:
        return Path(config.shared_gopath).expanduser()
    env_gopath = environ.get("GOPATH", "")
    first = env_gopath.split(os.pathsep)[0] if env_gopath else ""
    if first:
        return Path(first).expanduser()
    return Path.home() / "go"


def resolve_module_cache(
    config: "Configuration",
    base_dir: Path,
    version: str = "",
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    environ = os.environ if environ is None else environ

    if config.gopath_mode == "shared" and environ.get("GOMODCACHE"):
        return Path(environ["GOMODCACHE"]).expanduser()
    return resolve_gopath(config, base_dir, version, environ) / "pkg" / "mod"
