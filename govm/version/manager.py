"""
Go toolchain version manager.

Installs Go releases side by side under ``<install_dir>/<version>`` and
switches which one is current.

Install flow:
    1. Resolve alias, look the release up in the index, pick the archive
       for the platform
    2. Take the per-version lock (a concurrent install of the same version
       waits and then finds it installed)
    3. Download into the download cache and verify SHA-256
    4. Extract into ``<install_dir>/.staging-<version>-<random>``
    5. Compute the tree digest and write the install marker
    6. Rename the staged tree to ``<install_dir>/<version>``

Only directories with an install marker and no leading "." are considered
installed, so staging directories and interrupted installs are invisible.

Example:
    >>> manager = VersionManager()
    >>> manager.install("1.22.3")
    >>> manager.switch_current("1.22.3")
"""

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import requests

from govm.config.store import Configuration, ConfigStore
from govm.core.cancellation import CancellationToken, check_cancelled
from govm.core.directory import get_base_dir, get_download_dir, get_lock_dir
from govm.core.download import DownloadProgress, download_file
from govm.core.exceptions import (
    AlreadyInstalledError,
    CorruptConfigError,
    CurrentVersionInUseError,
    FilesystemError,
    IntegrityError,
    NetworkError,
    NoMatchingArtifactError,
    NotFoundError,
    NotInstalledError,
    ParseError,
)
from govm.core.filesystem import (
    atomic_write,
    extract_archive,
    safe_rmtree,
    single_root_directory,
)
from govm.core.locking import LockManager
from govm.core.mirrors import MirrorResolver
from govm.core.platform import detect_platform
from govm.core.verification import VerifyResult, constant_time_compare, tree_digest
from govm.env.profile import EnvProfile
from govm.modules.paths import resolve_gopath
from govm.version.marker import MARKER_NAME, InstallMarker, read_marker, write_marker
from govm.version.pointer import CurrentPointer
from govm.version.releases import (
    ReleaseDescriptor,
    parse_index,
    sort_versions,
)

logger = logging.getLogger(__name__)

INDEX_CACHE_FILENAME = "index.json"
DEFAULT_INDEX_TTL = 3600


@dataclass
class InstalledVersion:
    """An installed toolchain."""

    version: str
    path: str
    is_current: bool = False

    def to_dict(self) -> dict:
        return {"version": self.version, "path": self.path, "isCurrent": self.is_current}


class VersionManager:
    """
    Manages installed Go versions.

    The configuration is re-read at the start of every operation.

    Args:
        base_dir: govm base directory (default: get_base_dir())
        config_store: Configuration store (default: one for base_dir)
        session: requests session used for index and artifact downloads
        index_ttl: Seconds a cached release index stays fresh
        timeout: Network timeout in seconds
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        config_store: Optional[ConfigStore] = None,
        session: Optional[requests.Session] = None,
        index_ttl: float = DEFAULT_INDEX_TTL,
        timeout: float = 30,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_base_dir()
        self.config_store = config_store or ConfigStore(
            self.base_dir, known_versions=self.known_versions
        )
        self.session = session or requests.Session()
        self.index_ttl = index_ttl
        self.timeout = timeout
        self.locks = LockManager(get_lock_dir(self.base_dir))
        self.pointer = CurrentPointer(self.base_dir)
        self.profile = EnvProfile(self.base_dir)
        self.last_index_source = ""

    # ========================================================================
    # Helpers
    # ========================================================================

    def _config(self) -> Configuration:
        return self.config_store.load()

    def _resolve(self, version: str, config: Configuration) -> str:
        return self.config_store.resolve_alias(version, config)

    def _resolver(self, config: Configuration) -> MirrorResolver:
        return MirrorResolver(
            config.mirror,
            timeout=self.timeout,
            proxy=config.proxy,
            session=self.session,
        )

    @staticmethod
    def _version_dir(config: Configuration, version: str) -> Path:
        return config.install_path / version

    @staticmethod
    def _is_installed(version_dir: Path) -> bool:
        return version_dir.is_dir() and read_marker(version_dir) is not None

    def _installed_names(self, config: Configuration) -> List[str]:
        root = config.install_path
        if not root.is_dir():
            return []
        names = []
        with os.scandir(root) as it:
            for entry in it:
                if entry.name.startswith(".") or not entry.is_dir(follow_symlinks=False):
                    continue
                if read_marker(Path(entry.path)) is None:
                    logger.debug(f"Skipping {entry.path}: no install marker")
                    continue
                names.append(entry.name)
        return sort_versions(names)

    # ========================================================================
    # Remote Releases
    # ========================================================================

    def _index_cache_path(self, config: Configuration) -> Path:
        return config.cache_path / INDEX_CACHE_FILENAME

    def _read_index_cache(
        self, path: Path, max_age: Optional[float]
    ) -> Optional[List[ReleaseDescriptor]]:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            fetched_at = float(data["fetched_at"])
            if max_age is not None and time.time() - fetched_at > max_age:
                logger.debug("Cached release index expired")
                return None
            return parse_index(data["releases"])
        except (OSError, ValueError, KeyError, TypeError, ParseError) as e:
            logger.warning(f"Ignoring unreadable release index cache {path}: {e}")
            return None

    def _write_index_cache(self, path: Path, releases: List[ReleaseDescriptor]):
        payload = {
            "fetched_at": time.time(),
            "releases": [r.to_dict() for r in releases],
        }
        try:
            atomic_write(path, json.dumps(payload))
        except OSError as e:
            logger.warning(f"Could not cache release index at {path}: {e}")

    def list_remote(
        self,
        use_cache: bool = True,
        include_all: bool = True,
        cancel: Optional[CancellationToken] = None,
    ) -> List[ReleaseDescriptor]:
        """
        List published releases, newest first.

        Args:
            use_cache: Reuse a cached index younger than index_ttl
            include_all: Include unstable (rc/beta) releases
            cancel: Optional cancellation token

        Raises:
            NetworkError: If every mirror is unreachable
            ParseError: If mirrors answered but no index could be parsed
        """
        config = self._config()
        cache_path = self._index_cache_path(config)

        releases = None
        if use_cache:
            releases = self._read_index_cache(cache_path, self.index_ttl)
            if releases is not None:
                logger.debug(f"Using cached release index ({len(releases)} releases)")
                self.last_index_source = "cache"

        if releases is None:
            releases = self._resolver(config).fetch_index(parse_index, cancel=cancel)
            self._write_index_cache(cache_path, releases)
            self.last_index_source = "mirror"

        if not include_all:
            releases = [r for r in releases if r.stable]
        return releases

    def latest_stable(self, cancel: Optional[CancellationToken] = None) -> str:
        """
        Newest stable version.

        Raises:
            NotFoundError: If the index lists no stable release
        """
        for release in self.list_remote(include_all=False, cancel=cancel):
            return release.version
        raise NotFoundError("No stable release found in the release index")

    def known_versions(self) -> List[str]:
        """Installed versions plus releases in the cached index (no network)."""
        try:
            config = self._config()
        except CorruptConfigError:
            config = Configuration.defaults(self.base_dir)
        known = set(self._installed_names(config))
        cached = self._read_index_cache(self._index_cache_path(config), max_age=None)
        if cached:
            known.update(r.version for r in cached)
        return sort_versions(known)

    # ========================================================================
    # Installed Versions
    # ========================================================================

    def list_installed(self) -> List[InstalledVersion]:
        """Installed versions, newest first."""
        config = self._config()
        current = self.pointer.read()
        return [
            InstalledVersion(
                version=name,
                path=str(self._version_dir(config, name)),
                is_current=(name == current),
            )
            for name in self._installed_names(config)
        ]

    def current_version(self) -> str:
        """Current version, or "" when none is set or it is no longer installed."""
        current = self.pointer.read()
        if not current:
            return ""
        if not self._is_installed(self._version_dir(self._config(), current)):
            logger.debug(f"Current pointer names {current}, which is not installed")
            return ""
        return current

    # ========================================================================
    # Install
    # ========================================================================

    def install(
        self,
        version: str,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
        progress: Optional[Callable[[DownloadProgress], None]] = None,
        cancel: Optional[CancellationToken] = None,
        exist_ok: bool = True,
    ) -> InstalledVersion:
        """
        Download, verify and install a Go release.

        Args:
            version: Version or alias ("1.22.3", "go1.22.3", "stable")
            os_name: Target GOOS (default: current platform)
            arch: Target GOARCH (default: current platform)
            progress: Optional download progress callback
            cancel: Optional cancellation token
            exist_ok: Return an existing install instead of raising

        Returns:
            The installed version

        Raises:
            AlreadyInstalledError: If installed and exist_ok is False
            NotFoundError: If the release index does not list the version
            NoMatchingArtifactError: If no archive exists for the platform
            NetworkError: If the index or archive cannot be downloaded
            IntegrityError: If the archive checksum does not match
            OperationCancelled: If cancelled (nothing is left installed)
        """
        config = self._config()
        version = self._resolve(version, config)
        final_dir = self._version_dir(config, version)

        if self._is_installed(final_dir):
            return self._existing(version, final_dir, exist_ok)

        platform = detect_platform()
        os_name = os_name or platform.os
        arch = arch or platform.arch

        release = self._find_release(version, cancel)
        artifact = release.find_artifact(os_name, arch, "archive")
        if artifact is None:
            raise NoMatchingArtifactError(version, os_name, arch)

        with self.locks.version_lock(version):
            # Another process may have finished the same install meanwhile
            if self._is_installed(final_dir):
                return self._existing(version, final_dir, exist_ok)

            install_root = config.install_path
            install_root.mkdir(parents=True, exist_ok=True)
            if final_dir.exists():
                logger.warning(f"Removing incomplete install at {final_dir}")
                safe_rmtree(final_dir, require_prefix=install_root)

            archive, url = self._download(config, artifact, progress, cancel)

            staging = Path(
                tempfile.mkdtemp(prefix=f".staging-{version}-", dir=install_root)
            )
            try:
                extract_dir = staging / "extract"
                logger.info(f"Extracting {archive.name}")
                extract_archive(archive, extract_dir, cancel=cancel)
                root = single_root_directory(extract_dir)

                digest = tree_digest(root, exclude=(MARKER_NAME,), cancel=cancel)
                write_marker(
                    root,
                    InstallMarker(
                        version=version,
                        filename=artifact.filename,
                        sha256=artifact.sha256,
                        url=url,
                        tree_digest=digest,
                    ),
                )
                check_cancelled(cancel)
                os.rename(root, final_dir)
            finally:
                try:
                    safe_rmtree(staging, require_prefix=install_root)
                except FilesystemError as e:
                    logger.warning(f"Could not remove staging directory {staging}: {e}")

        logger.info(f"Installed Go {version} to {final_dir}")
        return InstalledVersion(
            version=version,
            path=str(final_dir),
            is_current=(self.pointer.read() == version),
        )

    def _existing(self, version: str, final_dir: Path, exist_ok: bool) -> InstalledVersion:
        if not exist_ok:
            raise AlreadyInstalledError(version)
        logger.info(f"Go {version} is already installed")
        return InstalledVersion(
            version=version,
            path=str(final_dir),
            is_current=(self.pointer.read() == version),
        )

    def _find_release(
        self, version: str, cancel: Optional[CancellationToken]
    ) -> ReleaseDescriptor:
        releases = self.list_remote(cancel=cancel)
        if self.last_index_source == "cache" and not any(
            r.version == version for r in releases
        ):
            # The cached index may predate the release
            releases = self.list_remote(use_cache=False, cancel=cancel)
        for release in releases:
            if release.version == version:
                return release
        raise NotFoundError(f"Go {version} not found in the release index")

    def _download(self, config, artifact, progress, cancel):
        """Download an artifact from the first mirror that serves it."""
        resolver = self._resolver(config)
        destination = get_download_dir(config.cache_path) / artifact.filename
        last_error: Optional[NetworkError] = None

        for url in resolver.artifact_urls(artifact.filename):
            check_cancelled(cancel)
            mirror = url[: -len(artifact.filename)]
            try:
                path = download_file(
                    url,
                    destination,
                    expected_sha256=artifact.sha256,
                    progress_callback=progress,
                    timeout=self.timeout,
                    proxy=config.proxy,
                    cancel=cancel,
                    session=self.session,
                )
            except NetworkError as e:
                logger.warning(f"Download from {mirror} failed: {e}")
                resolver.status.record_failure(mirror, str(e))
                last_error = e
                continue
            except IntegrityError:
                resolver.status.record_failure(mirror, "checksum mismatch")
                raise
            resolver.status.record_success(mirror)
            return path, url

        raise last_error or NetworkError(f"No mirror serves {artifact.filename}")

    # ========================================================================
    # Uninstall / Switch
    # ========================================================================

    def uninstall(self, version: str, promote: bool = False) -> str:
        """
        Remove an installed version.

        Args:
            version: Version or alias
            promote: When removing the current version, make the newest
                remaining version current (or clear the pointer)

        Returns:
            The current version after the operation ("" if none)

        Raises:
            NotInstalledError: If the version is not installed
            CurrentVersionInUseError: If it is current and promote is False
        """
        config = self._config()
        version = self._resolve(version, config)
        version_dir = self._version_dir(config, version)
        install_root = config.install_path

        with self.locks.current_lock():
            installed = self._installed_names(config)
            if version not in installed:
                raise NotInstalledError(version, installed)

            current = self.pointer.read()
            if current == version and not promote:
                raise CurrentVersionInUseError(version)

            with self.locks.version_lock(version):
                # Renaming first makes the version disappear in one step
                doomed = Path(
                    tempfile.mkdtemp(prefix=f".removing-{version}-", dir=install_root)
                )
                try:
                    os.rename(version_dir, doomed / version)
                except OSError as e:
                    doomed.rmdir()
                    raise FilesystemError(f"Cannot remove {version_dir}: {e}") from e

                if current == version:
                    remaining = [v for v in installed if v != version]
                    if remaining:
                        current = remaining[0]
                        self._point_to(config, current)
                        logger.info(f"Promoted Go {current} to current")
                    else:
                        current = ""
                        self.pointer.clear()

                safe_rmtree(doomed, require_prefix=install_root)

        logger.info(f"Uninstalled Go {version}")
        return current

    def switch_current(self, version: str) -> InstalledVersion:
        """
        Make an installed version current.

        Updates the pointer file, the ``<base>/go`` link and the environment
        profile (GOROOT, PATH, and GOPATH per the GOPATH mode).

        Raises:
            NotInstalledError: If the version is not installed
        """
        config = self._config()
        version = self._resolve(version, config)

        with self.locks.current_lock():
            installed = self._installed_names(config)
            if version not in installed:
                raise NotInstalledError(version, installed)
            version_dir = self._point_to(config, version)

        return InstalledVersion(version=version, path=str(version_dir), is_current=True)

    def _point_to(self, config: Configuration, version: str) -> Path:
        version_dir = self._version_dir(config, version)
        self.pointer.write(version, version_dir)

        gopath = None
        if config.gopath_mode == "isolated":
            gopath = resolve_gopath(config, self.base_dir, version)
            gopath.mkdir(parents=True, exist_ok=True)
        elif config.shared_gopath:
            gopath = Path(config.shared_gopath)
        self.profile.apply_version(version_dir, gopath)
        return version_dir

    # ========================================================================
    # Verify
    # ========================================================================

    def verify(
        self, version: str, cancel: Optional[CancellationToken] = None
    ) -> VerifyResult:
        """
        Recompute the tree digest of an installed version.

        Returns:
            VerifyResult with status 'ok', 'corrupted' or 'missing'
        """
        config = self._config()
        version = self._resolve(version, config)
        version_dir = self._version_dir(config, version)

        marker = read_marker(version_dir) if version_dir.is_dir() else None
        if marker is None:
            return VerifyResult("go", version, "missing", f"{version_dir} is not installed")

        actual = tree_digest(version_dir, exclude=(MARKER_NAME,), cancel=cancel)
        if constant_time_compare(actual, marker.tree_digest):
            return VerifyResult("go", version, "ok", "all files match")

        logger.warning(f"Go {version} failed verification")
        return VerifyResult(
            "go",
            version,
            "corrupted",
            f"tree digest {actual} does not match recorded {marker.tree_digest}",
        )


__all__ = ["VersionManager", "InstalledVersion", "DEFAULT_INDEX_TTL"]
