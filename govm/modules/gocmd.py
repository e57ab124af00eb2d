"""
Runs the go command of the current toolchain.

Used to fetch modules into the cache (``go mod download``) and to install
tools (``go install``) with GOPATH, GOMODCACHE and GOPROXY taken from the
govm configuration.
"""

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List

from govm.core.exceptions import CommandError
from govm.core.platform import detect_platform

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600


class GoCommand:
    """
    Wrapper around ``$GOROOT/bin/go``.

    Args:
        goroot: Toolchain root
        gopath: GOPATH for the command
        module_cache: GOMODCACHE for the command
        goproxy: GOPROXY value (empty keeps the inherited value)
    """

    def __init__(
        self,
        goroot: Path,
        gopath: Path,
        module_cache: Path,
        goproxy: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.goroot = Path(goroot)
        self.gopath = Path(gopath)
        self.module_cache = Path(module_cache)
        self.goproxy = goproxy
        self.timeout = timeout

    @property
    def executable(self) -> Path:
        return self.goroot / "bin" / f"go{detect_platform().exe_suffix}"

    def environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env["GOROOT"] = str(self.goroot)
        env["GOPATH"] = str(self.gopath)
        env["GOMODCACHE"] = str(self.module_cache)
        env["GO111MODULE"] = "on"
        if self.goproxy:
            env["GOPROXY"] = self.goproxy
        return env

    def run(self, args: List[str]) -> subprocess.CompletedProcess:
        """
        Run go with args.

        Raises:
            CommandError: If the go binary is missing, fails or times out
        """
        if not self.executable.exists():
            raise CommandError(f"go binary not found at {self.executable}")

        cmd = [str(self.executable)] + args
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                env=self.environment(),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(f"'go {' '.join(args)}' timed out after {self.timeout}s") from e
        except OSError as e:
            raise CommandError(f"Failed to run {self.executable}: {e}") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise CommandError(
                f"'go {' '.join(args)}' failed: {detail}", returncode=result.returncode
            )
        return result

    def mod_download(self, path: str, version: str = "latest") -> dict:
        """
        Download a module into the module cache.

        Returns:
            The JSON description printed by ``go mod download -json``
        """
        result = self.run(["mod", "download", "-json", f"{path}@{version or 'latest'}"])
        try:
            return json.loads(result.stdout)
        except ValueError as e:
            raise CommandError(f"Unexpected output from go mod download: {e}") from e

    def install(self, path: str) -> str:
        """Build and install a tool, ``path@latest`` unless a version is given."""
        target = path if "@" in path else f"{path}@latest"
        result = self.run(["install", target])
        return (result.stderr or result.stdout).strip()
