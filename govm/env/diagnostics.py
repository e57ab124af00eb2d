"""
Environment diagnostics.

Probes the live environment and runs a fixed, ordered battery of checks:

    GOROOT, GOPROXY, PATH, InstallDir, CacheDir, Aliases, CurrentVersion

Checks are independent: an exception inside one check becomes an ``error``
finding for that item and the remaining checks still run.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

import requests
from requests.exceptions import RequestException

from govm.config.store import Configuration
from govm.config.validation import find_alias_cycle
from govm.core.directory import is_directory_creatable, verify_directory_writable
from govm.core.download import build_proxies
from govm.env.profile import EnvProfile

if TYPE_CHECKING:
    from govm.version.manager import VersionManager

logger = logging.getLogger(__name__)

OK = "ok"
WARN = "warn"
ERROR = "error"

PATH_VARIABLES = ("GOROOT", "GOPATH", "GOBIN", "GOMODCACHE")


@dataclass
class DiagnosticFinding:
    """Result of one diagnostic check."""

    item: str
    status: str  # 'ok', 'warn', 'error'
    message: str
    fix: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == OK

    def to_dict(self) -> dict:
        data = {"item": self.item, "status": self.status, "message": self.message}
        if self.fix:
            data["fix"] = self.fix
        return data


@dataclass
class EnvironmentSnapshot:
    """
    Live Go environment of this process, next to what the govm profile sets.

    ``profile`` holds the variables from ``env.json`` and ``profile_path``
    the directories it prepends to PATH. ``pending`` names the profile
    settings the live environment does not carry yet, i.e. the shell has
    not sourced ``env.sh`` since they changed.
    """

    goroot: str
    gopath: str
    goproxy: str
    gobin: str
    path: str
    profile: Dict[str, str] = field(default_factory=dict)
    profile_path: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)

    def path_entries(self) -> List[str]:
        return [p for p in self.path.split(os.pathsep) if p]

    def managed(self, name: str) -> str:
        """Value the govm profile sets for name, or ''."""
        return self.profile.get(name, "")

    def to_dict(self) -> dict:
        return {
            "goroot": self.goroot,
            "gopath": self.gopath,
            "goproxy": self.goproxy,
            "gobin": self.gobin,
            "path": self.path,
            "profile": dict(self.profile),
            "profilePath": list(self.profile_path),
            "pending": list(self.pending),
        }


def probe(
    environ: Optional[Mapping[str, str]] = None, profile: Optional[EnvProfile] = None
) -> EnvironmentSnapshot:
    """
    Snapshot the Go related environment variables.

    The variables are read from environ (default: os.environ) only. With a
    profile, the values govm manages are reported beside them, and every
    managed value the live environment does not carry is listed in
    ``pending``.
    """
    environ = os.environ if environ is None else environ
    snapshot = EnvironmentSnapshot(
        goroot=environ.get("GOROOT", ""),
        gopath=environ.get("GOPATH", ""),
        goproxy=environ.get("GOPROXY", ""),
        gobin=environ.get("GOBIN", ""),
        path=environ.get("PATH", ""),
    )
    if profile is None:
        return snapshot

    stored = profile.load()
    snapshot.profile = {k: v for k, v in stored["variables"].items() if v}
    snapshot.profile_path = list(stored["path"])

    for name, value in sorted(snapshot.profile.items()):
        live = environ.get(name, "")
        if name in PATH_VARIABLES:
            in_effect = bool(live) and _same_path(live, value)
        else:
            in_effect = live == value
        if not in_effect:
            snapshot.pending.append(name)

    live_path = snapshot.path_entries()
    missing = [
        entry
        for entry in snapshot.profile_path
        if not any(_same_path(entry, p) for p in live_path)
    ]
    if missing:
        snapshot.pending.append("PATH")
    return snapshot


def _same_path(a: str, b: str) -> bool:
    try:
        return os.path.normcase(Path(a).resolve()) == os.path.normcase(Path(b).resolve())
    except OSError:
        return False


# ============================================================================
# Checks
# ============================================================================


@dataclass
class DiagnosticContext:
    """Inputs shared by every check of one diagnose() run."""

    config: Configuration
    snapshot: EnvironmentSnapshot
    current_version: str
    versions: "VersionManager"
    session: requests.Session
    timeout: float
    env_script: str = ""

    def reload_hint(self) -> str:
        return f'. "{self.env_script}"' if self.env_script else "govm env"


class DiagnosticCheck(ABC):
    """Base class for checks with optional auto-fix capability."""

    item: str = ""

    @abstractmethod
    def check(self, ctx: DiagnosticContext) -> DiagnosticFinding:
        """Run the check."""

    def can_autofix(self) -> bool:
        return False

    def fix(self, ctx: DiagnosticContext, profile: EnvProfile) -> str:
        """Apply the fix and describe what was done."""
        raise NotImplementedError(f"No automatic fix for {self.item}")

    def finding(self, status: str, message: str, fix: Optional[str] = None):
        return DiagnosticFinding(self.item, status, message, fix)


class GoRootCheck(DiagnosticCheck):
    """GOROOT exists and points at the current version."""

    item = "GOROOT"

    def check(self, ctx):
        live = ctx.snapshot.goroot
        managed = ctx.snapshot.managed("GOROOT")
        goroot = live or managed
        if not ctx.current_version:
            if goroot and Path(goroot).is_dir():
                return self.finding(WARN, f"GOROOT is {goroot} but no govm version is current")
            return self.finding(WARN, "No Go version is current", "govm use <version>")

        expected = ctx.config.install_path / ctx.current_version
        if live and _same_path(live, str(expected)):
            return self.finding(OK, f"GOROOT {live}")
        if managed and _same_path(managed, str(expected)) and Path(managed).is_dir():
            state = f"is {live}" if live else "is not set"
            return self.finding(
                WARN,
                f"GOROOT {state} in this environment; the govm profile sets {managed}",
                ctx.reload_hint(),
            )
        if not goroot:
            return self.finding(ERROR, "GOROOT is not set", "govm env --fix-goroot")
        if not Path(goroot).is_dir():
            return self.finding(ERROR, f"GOROOT {goroot} does not exist", "govm env --fix-goroot")
        return self.finding(
            ERROR,
            f"GOROOT {goroot} does not match current version {ctx.current_version} ({expected})",
            "govm env --fix-goroot",
        )

    def can_autofix(self) -> bool:
        return True

    def fix(self, ctx, profile):
        if not ctx.current_version:
            raise NotImplementedError("No current version to point GOROOT at")
        goroot = ctx.config.install_path / ctx.current_version
        profile.fix_goroot(goroot)
        return f"Set GOROOT to {goroot}"


class GoProxyCheck(DiagnosticCheck):
    """Module proxy reachable, or explicitly disabled."""

    item = "GOPROXY"

    def check(self, ctx):
        value = ctx.snapshot.goproxy or ctx.snapshot.managed("GOPROXY") or ctx.config.goproxy
        if not value:
            return self.finding(WARN, "GOPROXY is not set", "govm env --fix-goproxy")

        first = value.replace("|", ",").split(",")[0].strip()
        if first in ("off", "direct"):
            return self.finding(OK, f"GOPROXY={value} (proxy explicitly {first})")

        try:
            response = ctx.session.head(
                first,
                timeout=ctx.timeout,
                allow_redirects=True,
                proxies=build_proxies(ctx.config.proxy),
            )
        except RequestException as e:
            return self.finding(ERROR, f"GOPROXY {first} unreachable: {e}", "govm env --fix-goproxy")
        if response.status_code >= 500:
            return self.finding(
                ERROR,
                f"GOPROXY {first} answered HTTP {response.status_code}",
                "govm env --fix-goproxy",
            )
        return self.finding(OK, f"GOPROXY {first} reachable")

    def can_autofix(self) -> bool:
        return True

    def fix(self, ctx, profile):
        profile.fix_goproxy()
        profile_value = profile.variables.get("GOPROXY", "")
        return f"Set GOPROXY to {profile_value}"


class PathCheck(DiagnosticCheck):
    """Toolchain bin directory is on PATH."""

    item = "PATH"

    def check(self, ctx):
        if ctx.current_version:
            bin_dir = ctx.config.install_path / ctx.current_version / "bin"
        elif ctx.snapshot.goroot or ctx.snapshot.managed("GOROOT"):
            bin_dir = Path(ctx.snapshot.goroot or ctx.snapshot.managed("GOROOT")) / "bin"
        else:
            return self.finding(WARN, "No Go toolchain to look for on PATH", "govm use <version>")

        for entry in ctx.snapshot.path_entries():
            if _same_path(entry, str(bin_dir)):
                return self.finding(OK, f"{bin_dir} is on PATH")
        if any(_same_path(entry, str(bin_dir)) for entry in ctx.snapshot.profile_path):
            return self.finding(
                WARN,
                f"{bin_dir} is not on PATH in this environment; the govm profile adds it",
                ctx.reload_hint(),
            )
        return self.finding(ERROR, f"{bin_dir} is not on PATH", "govm env --fix-goroot")


class DirectoryCheck(DiagnosticCheck):
    """A configured directory is writable (or can be created)."""

    def __init__(self, item: str, attribute: str):
        self.item = item
        self.attribute = attribute

    def check(self, ctx):
        path = Path(getattr(ctx.config, self.attribute))
        if path.exists():
            if verify_directory_writable(path):
                return self.finding(OK, f"{path} is writable")
            return self.finding(ERROR, f"{path} is not writable", f"Fix permissions of {path}")
        if is_directory_creatable(path):
            return self.finding(OK, f"{path} will be created on first use")
        return self.finding(ERROR, f"{path} cannot be created", f"govm config set {self.attribute} <dir>")


class AliasCheck(DiagnosticCheck):
    item = "Aliases"

    def check(self, ctx):
        cycle = find_alias_cycle(ctx.config.aliases)
        if cycle:
            return self.finding(ERROR, f"Alias cycle: {' -> '.join(cycle)}", "govm config alias <name> <version>")
        return self.finding(OK, f"{len(ctx.config.aliases)} aliases, no cycles")


class CurrentVersionCheck(DiagnosticCheck):
    """Current version is set and its files are intact."""

    item = "CurrentVersion"

    def check(self, ctx):
        if not ctx.current_version:
            return self.finding(WARN, "No Go version is current", "govm use <version>")
        result = ctx.versions.verify(ctx.current_version)
        if result.ok:
            return self.finding(OK, f"Go {ctx.current_version} verified")
        return self.finding(
            ERROR,
            f"Go {ctx.current_version} is {result.status}: {result.message}",
            f"govm uninstall {ctx.current_version} --promote && govm install {ctx.current_version}",
        )


# ============================================================================
# Runner
# ============================================================================


class EnvironmentDiagnostics:
    """Runs the diagnostic battery and the available auto-fixes."""

    def __init__(
        self,
        versions: "VersionManager",
        session: Optional[requests.Session] = None,
        timeout: float = 5,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.versions = versions
        self.profile = versions.profile
        self.session = session or versions.session
        self.timeout = timeout
        self.environ = environ

        self.checks: List[DiagnosticCheck] = [
            GoRootCheck(),
            GoProxyCheck(),
            PathCheck(),
            DirectoryCheck("InstallDir", "install_dir"),
            DirectoryCheck("CacheDir", "cache_dir"),
            AliasCheck(),
            CurrentVersionCheck(),
        ]

    def probe(self) -> EnvironmentSnapshot:
        return probe(self.environ, self.profile)

    def _context(self) -> DiagnosticContext:
        return DiagnosticContext(
            config=self.versions.config_store.load(),
            snapshot=self.probe(),
            current_version=self.versions.current_version(),
            versions=self.versions,
            session=self.session,
            timeout=self.timeout,
            env_script=str(self.profile.base_dir / "env.sh"),
        )

    def diagnose(self) -> List[DiagnosticFinding]:
        """
        Run every check in order.

        A configuration that cannot be loaded yields a single error finding.
        """
        try:
            ctx = self._context()
        except Exception as e:
            logger.error(f"Cannot prepare diagnostics: {e}")
            return [DiagnosticFinding("Config", ERROR, str(e), "govm config reset")]

        findings = []
        for check in self.checks:
            try:
                findings.append(check.check(ctx))
            except Exception as e:
                logger.debug(f"Check {check.item} raised", exc_info=True)
                findings.append(DiagnosticFinding(check.item, ERROR, f"Check failed: {e}"))
        return findings

    def fix_all(self, findings: List[DiagnosticFinding]) -> List[str]:
        """
        Apply auto-fixes for failed checks that support them.

        Returns:
            Descriptions of the fixes applied
        """
        failed = {f.item for f in findings if not f.passed}
        ctx = self._context()
        actions = []
        for check in self.checks:
            if check.item not in failed or not check.can_autofix():
                continue
            try:
                actions.append(check.fix(ctx, self.profile))
                logger.info(f"Fixed {check.item}")
            except NotImplementedError as e:
                logger.warning(f"Cannot fix {check.item}: {e}")
        return actions


__all__ = [
    "DiagnosticFinding",
    "EnvironmentSnapshot",
    "EnvironmentDiagnostics",
    "DiagnosticCheck",
    "probe",
]
