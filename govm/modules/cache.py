"""
Go module cache management.

The module cache (``GOMODCACHE``, by default ``<GOPATH>/pkg/mod``) holds one
directory per module version, named ``<escaped path>@<escaped version>``::

    pkg/mod/
        github.com/!burnt!sushi/toml@v1.3.2/
        golang.org/x/text@v0.14.0/
        cache/download/golang.org/x/text/@v/v0.14.0.ziphash

Upper-case letters are escaped as ``!`` plus the lower-case letter. The
``cache/`` subtree is the go command's download cache and is not scanned.

Scanning reads metadata only. The result of the latest scan of each cache
root is kept as an immutable tuple and replaced in one assignment.
"""

import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from govm.config.store import ConfigStore
from govm.core.cancellation import CancellationToken, check_cancelled
from govm.core.directory import get_base_dir
from govm.core.exceptions import (
    ChecksumMismatchError,
    CommandError,
    FilesystemError,
    GovmError,
    InvalidConfigError,
    NotFoundError,
    OperationCancelled,
)
from govm.core.filesystem import (
    directory_size,
    format_size,
    is_relative_to,
    remove_path,
    safe_rmtree,
)
from govm.core.verification import VerifyResult, constant_time_compare, go_module_hash
from govm.modules import catalog
from govm.modules.gocmd import GoCommand
from govm.modules.paths import resolve_gopath, resolve_module_cache
from govm.version.pointer import CurrentPointer

logger = logging.getLogger(__name__)

DOWNLOAD_SUBDIR = "cache"
_MAJOR_SUFFIX = re.compile(r"^v\d+$")
_SEMVER = re.compile(r"^v(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$")


# ============================================================================
# Path Escaping
# ============================================================================


def escape_path(path: str) -> str:
    """
    Escape a module path or version the way the go command does.

    Example:
        >>> escape_path("github.com/BurntSushi/toml")
        'github.com/!burnt!sushi/toml'
    """
    return "".join("!" + c.lower() if "A" <= c <= "Z" else c for c in path)


def unescape_path(escaped: str) -> str:
    """Inverse of escape_path."""
    out = []
    bang = False
    for c in escaped:
        if bang:
            out.append(c.upper())
            bang = False
        elif c == "!":
            bang = True
        else:
            out.append(c)
    return "".join(out)


def module_version_key(version: str) -> tuple:
    """
    Sort key giving semantic version precedence.

    Pre-releases and pseudo-versions (``v0.0.0-20231010120000-abcdef``)
    sort below the release they precede; unparseable versions sort first.

    Example:
        >>> sorted(["v0.10.0", "v0.9.0", "v0.10.0-rc.1"], key=module_version_key)
        ['v0.9.0', 'v0.10.0-rc.1', 'v0.10.0']
    """
    m = _SEMVER.match(version)
    if not m:
        return (0, (0, 0, 0), (0, ()), version)
    release = (int(m.group(1)), int(m.group(2)), int(m.group(3)))
    pre = m.group(4)
    if pre is None:
        return (1, release, (1, ()), version)
    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part) for part in pre.split(".")
    )
    return (1, release, (0, identifiers), version)


def module_name(path: str) -> str:
    """Last path element, skipping a major version suffix (``/v2``)."""
    parts = [p for p in path.split("/") if p]
    if len(parts) > 1 and _MAJOR_SUFFIX.match(parts[-1]):
        return parts[-2]
    return parts[-1] if parts else path


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class ModuleRecord:
    """One module version in the cache."""

    path: str
    version: str
    size: int
    dir: str
    name: str = ""
    description: str = ""
    category: str = ""

    @property
    def key(self) -> str:
        return f"{self.path}@{self.version}"

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "version": self.version,
            "size": self.size,
            "dir": self.dir,
            "name": self.name,
            "description": self.description,
            "category": self.category,
        }


@dataclass(frozen=True)
class CacheStats:
    total_modules: int
    total_size: int
    total_size_str: str
    cache_path: str

    def to_dict(self) -> dict:
        return {
            "totalModules": self.total_modules,
            "totalSize": self.total_size,
            "totalSizeStr": self.total_size_str,
            "cachePath": self.cache_path,
        }


@dataclass(frozen=True)
class SearchResult:
    path: str
    version: str
    description: str

    def to_dict(self) -> dict:
        return {"path": self.path, "version": self.version, "description": self.description}


@dataclass
class CleanSelector:
    """
    Which cache entries to remove.

    ``all`` removes everything (including the go command's download cache).
    Otherwise the given criteria are combined: ``module`` (optionally with
    ``version``), ``path_prefix`` and ``older_than_days``.
    """

    all: bool = False
    path_prefix: Optional[str] = None
    older_than_days: Optional[float] = None
    module: Optional[str] = None
    version: Optional[str] = None

    def is_empty(self) -> bool:
        return not (
            self.all or self.path_prefix or self.module or self.older_than_days is not None
        )

    def matches(self, record: ModuleRecord, mtime: float, now: float) -> bool:
        if self.all:
            return True
        if self.module is not None:
            if record.path != self.module:
                return False
            if self.version and record.version != self.version:
                return False
        if self.path_prefix and not record.path.startswith(self.path_prefix):
            return False
        if self.older_than_days is not None:
            if now - mtime < self.older_than_days * 86400:
                return False
        return True


@dataclass
class CleanResult:
    """Outcome of a clean; failures never abort the remaining removals."""

    removed: List[ModuleRecord] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    bytes_freed: int = 0

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "removed": [r.key for r in self.removed],
            "failures": [{"entry": e, "error": msg} for e, msg in self.failures],
            "bytesFreed": self.bytes_freed,
            "bytesFreedStr": format_size(self.bytes_freed),
        }


# ============================================================================
# Manager
# ============================================================================


class ModuleCacheManager:
    """
    Scans, searches, verifies and cleans the Go module cache.

    Args:
        base_dir: govm base directory (default: get_base_dir())
        config_store: Configuration store (default: one for base_dir)
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        config_store: Optional[ConfigStore] = None,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_base_dir()
        self.config_store = config_store or ConfigStore(self.base_dir)
        self.pointer = CurrentPointer(self.base_dir)
        self._snapshots: Dict[str, Tuple[ModuleRecord, ...]] = {}
        self._last_root: Optional[str] = None
        self.last_warnings: List[str] = []

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def gopath(self, version: Optional[str] = None) -> Path:
        """GOPATH for version (default: the current version)."""
        if version is None:
            version = self.pointer.read()
        return resolve_gopath(self.config_store.load(), self.base_dir, version)

    def module_cache_path(self, version: Optional[str] = None) -> Path:
        """Module cache for version (default: the current version)."""
        if version is None:
            version = self.pointer.read()
        return resolve_module_cache(self.config_store.load(), self.base_dir, version)

    def _root(self, cache_root: Optional[Path]) -> Path:
        return Path(cache_root) if cache_root else self.module_cache_path()

    # ------------------------------------------------------------------
    # go command
    # ------------------------------------------------------------------

    def go_command(self) -> GoCommand:
        """
        go command of the current toolchain.

        Raises:
            CommandError: If no current version is set
        """
        version = self.pointer.read()
        if not version:
            raise CommandError("No current Go version; run 'govm use <version>' first")
        config = self.config_store.load()
        return GoCommand(
            goroot=config.install_path / version,
            gopath=resolve_gopath(config, self.base_dir, version),
            module_cache=resolve_module_cache(config, self.base_dir, version),
            goproxy=config.goproxy,
        )

    def get_package(self, path: str, version: str = "latest") -> dict:
        """Download path@version into the module cache."""
        info = self.go_command().mod_download(path, version)
        logger.info(f"Downloaded {info.get('Path', path)}@{info.get('Version', version)}")
        return info

    def install_package(self, path: str) -> str:
        """Install a tool with go install."""
        output = self.go_command().install(path)
        logger.info(f"Installed {path}")
        return output

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def scan(
        self,
        cache_root: Optional[Path] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[ModuleRecord]:
        """
        Index every module version under cache_root.

        Unreadable entries are logged and collected in ``last_warnings``;
        entries that vanish during the scan are skipped.
        """
        root = self._root(cache_root)
        warnings: List[str] = []
        records: List[ModuleRecord] = []

        if root.is_dir():
            stack = [(os.fspath(root), "")]
            while stack:
                check_cancelled(cancel)
                current, rel = stack.pop()
                try:
                    with os.scandir(current) as it:
                        entries = sorted(it, key=lambda e: e.name)
                except FileNotFoundError:
                    continue
                except OSError as e:
                    message = f"Cannot read {current}: {e}"
                    logger.warning(message)
                    warnings.append(message)
                    continue

                for entry in entries:
                    try:
                        if not entry.is_dir(follow_symlinks=False):
                            continue
                    except OSError:
                        continue
                    if not rel and entry.name == DOWNLOAD_SUBDIR:
                        continue
                    entry_rel = f"{rel}/{entry.name}" if rel else entry.name
                    if "@" in entry.name:
                        record = self._record(entry.path, entry_rel, cancel)
                        if record is not None:
                            records.append(record)
                    else:
                        stack.append((entry.path, entry_rel))

        records.sort(key=lambda r: (r.path, module_version_key(r.version)))
        self._snapshots[str(root)] = tuple(records)
        self._last_root = str(root)
        self.last_warnings = warnings
        logger.debug(f"Scanned {len(records)} modules in {root}")
        return records

    def _record(
        self, full_path: str, rel: str, cancel: Optional[CancellationToken]
    ) -> Optional[ModuleRecord]:
        escaped_path, _, escaped_version = rel.rpartition("@")
        if not escaped_path or not escaped_version:
            return None
        path = unescape_path(escaped_path)
        entry = catalog.lookup(path)
        return ModuleRecord(
            path=path,
            version=unescape_path(escaped_version),
            size=directory_size(full_path, cancel),
            dir=full_path,
            name=module_name(path),
            description=entry.description if entry else "",
            category=entry.category if entry else "",
        )

    def snapshot(self, cache_root: Optional[Path] = None) -> Tuple[ModuleRecord, ...]:
        """Records of the latest scan of cache_root (scanning if none)."""
        root = self._root(cache_root)
        snap = self._snapshots.get(str(root))
        if snap is None:
            self.scan(root)
            snap = self._snapshots[str(root)]
        return snap

    def stats(self, cache_root: Optional[Path] = None) -> CacheStats:
        root = self._root(cache_root)
        records = self.snapshot(root)
        total = sum(r.size for r in records)
        return CacheStats(
            total_modules=len(records),
            total_size=total,
            total_size_str=format_size(total),
            cache_path=str(root),
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str) -> List[SearchResult]:
        """
        Case-insensitive substring search over the last scan and the
        built-in catalog. Path prefix matches rank first.
        """
        needle = query.strip().lower()
        candidates: Dict[str, SearchResult] = {}

        scanned = self._snapshots.get(self._last_root, ()) if self._last_root else ()
        newest: Dict[str, ModuleRecord] = {}
        for record in scanned:
            known = newest.get(record.path)
            if known is None or (
                module_version_key(record.version) > module_version_key(known.version)
            ):
                newest[record.path] = record
        for record in newest.values():
            candidates[record.path] = SearchResult(
                record.path, record.version, record.description
            )
        for entry in catalog.POPULAR_MODULES:
            candidates.setdefault(
                entry.path, SearchResult(entry.path, "latest", entry.description)
            )

        results = [
            r
            for r in candidates.values()
            if needle in r.path.lower() or needle in r.description.lower()
        ]
        results.sort(key=lambda r: (not r.path.lower().startswith(needle), r.path))
        return results

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(
        self,
        path: str,
        version: str,
        cache_root: Optional[Path] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> VerifyResult:
        """
        Recompute the h1 hash of a cached module and compare it with the
        hash the go command recorded when downloading it.

        Raises:
            NotFoundError: If the module or its recorded hash is absent
            ChecksumMismatchError: If the content does not match
        """
        root = self._root(cache_root)
        module_dir = root / f"{escape_path(path)}@{escape_path(version)}"
        if not module_dir.is_dir():
            raise NotFoundError(f"{path}@{version} is not in the module cache")

        ziphash = (
            root
            / DOWNLOAD_SUBDIR
            / "download"
            / escape_path(path)
            / "@v"
            / f"{escape_path(version)}.ziphash"
        )
        try:
            recorded = ziphash.read_text(encoding="utf-8").strip()
        except FileNotFoundError as e:
            raise NotFoundError(f"No recorded hash for {path}@{version}") from e

        actual = go_module_hash(module_dir, f"{path}@{version}", cancel=cancel)
        if not constant_time_compare(actual, recorded):
            raise ChecksumMismatchError(path, version, recorded, actual)
        return VerifyResult(path, version, "ok", actual)

    def verify_all(
        self,
        cache_root: Optional[Path] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[VerifyResult]:
        """Verify every scanned module, reporting per entry."""
        root = self._root(cache_root)
        results = []
        for record in self.scan(root, cancel):
            try:
                results.append(self.verify(record.path, record.version, root, cancel))
            except NotFoundError as e:
                results.append(VerifyResult(record.path, record.version, "missing", str(e)))
            except ChecksumMismatchError as e:
                results.append(VerifyResult(record.path, record.version, "mismatch", str(e)))
            except OperationCancelled:
                raise
            except (GovmError, OSError) as e:
                results.append(VerifyResult(record.path, record.version, "error", str(e)))
        return results

    # ------------------------------------------------------------------
    # Clean
    # ------------------------------------------------------------------

    def clean(
        self,
        selector: CleanSelector,
        cache_root: Optional[Path] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> CleanResult:
        """
        Remove the cache entries chosen by selector.

        Read-only permissions set by the go command are cleared before
        removal. Targets outside the cache root are refused and reported
        as failures.

        Raises:
            InvalidConfigError: If the selector selects nothing
            NotFoundError: If a single module selected by module and
                version is not cached
        """
        if selector.is_empty():
            raise InvalidConfigError({"selector": "no clean criteria given"})

        root = self._root(cache_root)
        result = CleanResult()
        if not root.is_dir():
            if selector.module and selector.version:
                raise NotFoundError(
                    f"{selector.module}@{selector.version} is not in the module cache"
                )
            return result

        if selector.module and selector.version:
            targets = [self._single_target(root, selector.module, selector.version)]
        else:
            targets = list(self.scan(root, cancel))

        now = time.time()
        for record in targets:
            check_cancelled(cancel)
            mtime = now
            if selector.older_than_days is not None:
                try:
                    mtime = os.stat(record.dir).st_mtime
                except FileNotFoundError:
                    continue
            if not selector.matches(record, mtime, now):
                continue
            try:
                safe_rmtree(record.dir, require_prefix=root)
            except (ValueError, FilesystemError) as e:
                logger.warning(f"Failed to remove {record.key}: {e}")
                result.failures.append((record.key, str(e)))
                continue
            result.removed.append(record)
            result.bytes_freed += record.size
            self._prune_empty_parents(Path(record.dir).parent, root)

        if selector.all:
            download_cache = root / DOWNLOAD_SUBDIR
            if download_cache.exists():
                size = directory_size(download_cache)
                try:
                    remove_path(download_cache)
                    result.bytes_freed += size
                except OSError as e:
                    result.failures.append((str(download_cache), str(e)))

        removed = {r.dir for r in result.removed}
        previous = self._snapshots.get(str(root), ())
        self._snapshots[str(root)] = tuple(r for r in previous if r.dir not in removed)

        logger.info(
            f"Removed {len(result.removed)} modules, freed {format_size(result.bytes_freed)}"
        )
        return result

    def _single_target(self, root: Path, path: str, version: str) -> ModuleRecord:
        target = root / f"{escape_path(path)}@{escape_path(version)}"
        resolved = target.parent.resolve() / target.name
        if not is_relative_to(resolved, root.resolve()):
            return ModuleRecord(path, version, 0, str(target))
        if not target.is_dir():
            raise NotFoundError(f"{path}@{version} is not in the module cache")
        return ModuleRecord(
            path=path,
            version=version,
            size=directory_size(target),
            dir=str(target),
            name=module_name(path),
        )

    @staticmethod
    def _prune_empty_parents(directory: Path, root: Path) -> None:
        root = root.resolve()
        current = directory
        while current.resolve() != root and is_relative_to(current.resolve(), root):
            try:
                current.rmdir()
            except OSError:
                break
            current = current.parent


__all__ = [
    "ModuleRecord",
    "CacheStats",
    "SearchResult",
    "CleanSelector",
    "CleanResult",
    "ModuleCacheManager",
    "escape_path",
    "unescape_path",
    "module_name",
    "module_version_key",
]
