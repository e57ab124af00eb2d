"""
Request/response boundary for front ends.

``GovmApp.call(operation, args)`` runs one named operation with flat JSON
arguments and returns a JSON-serializable envelope::

    {"ok": True, "result": ...}
    {"ok": False, "error": "<message>", "kind": "<ErrorKind>"}

Nothing raises across this boundary. Operation names follow the desktop
bindings (GetRemoteVersions, InstallVersion, UseVersion, GetModules, ...).

Example:
    >>> app = GovmApp()
    >>> app.call("InstallVersion", {"version": "1.22.3"})
    {'ok': True, 'result': {'version': '1.22.3', 'path': '...', 'isCurrent': False}}
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import requests

import govm
from govm.config.store import ConfigStore, mirror_options
from govm.core.cancellation import CancellationToken
from govm.core.directory import get_base_dir
from govm.core.download import DownloadProgress
from govm.core.exceptions import ErrorKind, GovmError, InvalidConfigError, NotFoundError
from govm.core.platform import detect_platform
from govm.env.diagnostics import EnvironmentDiagnostics
from govm.modules.cache import CleanSelector, ModuleCacheManager
from govm.modules.download_cache import DownloadCacheManager
from govm.version.manager import VersionManager

logger = logging.getLogger(__name__)

_REQUIRED = object()

EventListener = Callable[[str, Dict[str, Any]], None]


def to_json(value: Any) -> Any:
    """Convert engine records (anything with to_dict) into plain JSON values."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_json(v) for k, v in value.items()}
    return value


def _arg(args: Mapping[str, Any], name: str, default: Any = _REQUIRED) -> Any:
    if name in args:
        return args[name]
    if default is _REQUIRED:
        raise InvalidConfigError({name: "required argument missing"})
    return default


class GovmApp:
    """
    Engine facade exposing every operation by name.

    Args:
        base_dir: govm base directory (default: get_base_dir())
        session: requests session shared by all network calls
        on_event: Optional listener for progress events
            (``"download-progress"`` with a DownloadProgress dict)
        environ: Environment probed by diagnostics (default: os.environ)
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        on_event: Optional[EventListener] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_base_dir()
        self.on_event = on_event

        self.versions = VersionManager(self.base_dir, session=session)
        self.config_store: ConfigStore = self.versions.config_store
        self.profile = self.versions.profile
        self.modules = ModuleCacheManager(self.base_dir, self.config_store)
        self.downloads = DownloadCacheManager(self.base_dir, self.config_store, self.modules)
        self.diagnostics = EnvironmentDiagnostics(self.versions, environ=environ)

        self.operations: Dict[str, Callable[..., Any]] = {
            # Versions
            "GetRemoteVersions": self._get_remote_versions,
            "GetInstalledVersions": lambda args, cancel: self.versions.list_installed(),
            "GetCurrentVersion": lambda args, cancel: self.versions.current_version(),
            "InstallVersion": self._install_version,
            "UninstallVersion": self._uninstall_version,
            "UseVersion": self._use_version,
            "VerifyVersion": self._verify_version,
            "GetLatestStableVersion": lambda args, cancel: self.versions.latest_stable(cancel),
            # Configuration
            "GetInstallSettings": self._get_install_settings,
            "SetInstallSettings": self._set_install_settings,
            "GetConfig": lambda args, cancel: self.config_store.load(),
            "SetMirror": self._setter("mirror", "mirror"),
            "SetProxy": self._setter("proxy", "proxy"),
            "SetGoProxy": self._setter("goproxy", "goproxy"),
            "SetTheme": self._setter("theme", "theme"),
            "SetLanguage": self._setter("language", "language"),
            "SetDefaultVersion": self._setter("default_version", "version"),
            "ResetConfig": lambda args, cancel: self.config_store.reset(),
            "GetMirrorOptions": lambda args, cancel: mirror_options(),
            "GetAliases": lambda args, cancel: self.config_store.load().aliases,
            "SetAlias": self._set_alias,
            "RemoveAlias": self._remove_alias,
            # Environment
            "GetEnvInfo": lambda args, cancel: self.diagnostics.probe(),
            "DiagnoseEnv": lambda args, cancel: self.diagnostics.diagnose(),
            "SetEnvVar": self._set_env_var,
            "FixGoRoot": self._fix_goroot,
            "FixGoProxy": self._fix_goproxy,
            # Caches
            "GetCacheInfo": lambda args, cancel: self.downloads.info(),
            "CleanDownloadCache": self._clean_download_cache,
            "CleanAllCache": lambda args, cancel: self.downloads.clean_all(),
            # System
            "GetSystemInfo": self._get_system_info,
            "GetAppVersion": lambda args, cancel: govm.__version__,
            # Modules
            "GetGoPathMode": lambda args, cancel: self.config_store.load().gopath_mode,
            "SetGoPathMode": self._setter("gopath_mode", "mode"),
            "GetSharedGoPath": lambda args, cancel: self.config_store.load().shared_gopath,
            "SetSharedGoPath": self._setter("shared_gopath", "path"),
            "GetModuleCacheStats": self._get_module_cache_stats,
            "GetModules": self._get_modules,
            "CleanModuleCache": self._clean_module_cache,
            "CleanModule": self._clean_module,
            "VerifyModules": self._verify_modules,
            "GetCurrentGoPath": lambda args, cancel: self.modules.gopath(self._current()),
            "GetModuleCachePath": lambda args, cancel: self._cache_root(),
            "SearchPackages": lambda args, cancel: self.modules.search(_arg(args, "query")),
            "InstallPackage": self._install_package,
            "GetPackage": self._get_package,
        }

    # ========================================================================
    # Dispatch
    # ========================================================================

    def call(
        self,
        operation: str,
        args: Optional[Mapping[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """
        Run an operation and wrap its outcome in the response envelope.

        Args:
            operation: Operation name, e.g. "InstallVersion"
            args: Flat JSON arguments
            cancel: Optional cancellation token for long-running operations

        Returns:
            {"ok": True, "result": ...} or {"ok": False, "error", "kind"}
        """
        handler = self.operations.get(operation)
        if handler is None:
            return self._failure(NotFoundError(f"Unknown operation '{operation}'"))
        if args is not None and not isinstance(args, Mapping):
            return self._failure(InvalidConfigError({"args": "arguments must be an object"}))

        logger.debug(f"RPC {operation} {dict(args or {})}")
        try:
            result = handler(dict(args or {}), cancel)
        except GovmError as e:
            logger.debug(f"RPC {operation} failed: {e.kind.value}: {e}")
            return self._failure(e)
        except Exception as e:
            logger.exception(f"RPC {operation} failed unexpectedly")
            return {"ok": False, "error": str(e) or type(e).__name__, "kind": ErrorKind.INTERNAL.value}
        return {"ok": True, "result": to_json(result)}

    @staticmethod
    def _failure(error: GovmError) -> Dict[str, Any]:
        return {"ok": False, **error.to_dict()}

    def _setter(self, field: str, arg: str):
        def handler(args, cancel):
            return self.config_store.update(**{field: _arg(args, arg)})

        return handler

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self.on_event is not None:
            self.on_event(event, payload)

    def _current(self) -> str:
        return self.versions.current_version()

    def _cache_root(self) -> Path:
        return self.modules.module_cache_path(self._current())

    # ========================================================================
    # Versions
    # ========================================================================

    def _get_remote_versions(self, args, cancel):
        include_all = bool(_arg(args, "includeAll", True))
        return self.versions.list_remote(include_all=include_all, cancel=cancel)

    def _install_version(self, args, cancel):
        def progress(p: DownloadProgress):
            self._emit("download-progress", p.to_dict())

        return self.versions.install(
            _arg(args, "version"),
            os_name=_arg(args, "os", None),
            arch=_arg(args, "arch", None),
            progress=progress,
            cancel=cancel,
        )

    def _uninstall_version(self, args, cancel):
        current = self.versions.uninstall(
            _arg(args, "version"), promote=bool(_arg(args, "promote", False))
        )
        return {"current": current}

    def _use_version(self, args, cancel):
        return self.versions.switch_current(_arg(args, "version"))

    def _verify_version(self, args, cancel):
        return self.versions.verify(_arg(args, "version"), cancel=cancel)

    # ========================================================================
    # Configuration
    # ========================================================================

    def _get_install_settings(self, args, cancel):
        config = self.config_store.load()
        return {"installDir": config.install_dir, "cacheDir": config.cache_dir}

    def _set_install_settings(self, args, cancel):
        config = self.config_store.update(
            install_dir=_arg(args, "installDir"), cache_dir=_arg(args, "cacheDir")
        )
        return {"installDir": config.install_dir, "cacheDir": config.cache_dir}

    def _set_alias(self, args, cancel):
        return self.config_store.set_alias(_arg(args, "name"), _arg(args, "version")).aliases

    def _remove_alias(self, args, cancel):
        return self.config_store.remove_alias(_arg(args, "name")).aliases

    # ========================================================================
    # Environment
    # ========================================================================

    def _set_env_var(self, args, cancel):
        self.profile.set_env_var(_arg(args, "name"), _arg(args, "value", ""))
        return self.profile.variables

    def _fix_goroot(self, args, cancel):
        goroot = _arg(args, "goroot", "")
        if not goroot:
            current = self._current()
            if not current:
                raise InvalidConfigError({"goroot": "no GOROOT given and no current version"})
            goroot = str(self.config_store.load().install_path / current)
        self.profile.fix_goroot(Path(goroot))
        return self.profile.variables

    def _fix_goproxy(self, args, cancel):
        self.profile.fix_goproxy()
        return self.profile.variables

    # ========================================================================
    # Caches / System
    # ========================================================================

    def _clean_download_cache(self, args, cancel):
        return self.downloads.clean_download_cache()

    def _get_system_info(self, args, cancel):
        platform = detect_platform()
        return {"os": platform.os, "arch": platform.arch, "baseDir": str(self.base_dir)}

    # ========================================================================
    # Modules
    # ========================================================================

    def _get_module_cache_stats(self, args, cancel):
        root = self._cache_root()
        self.modules.scan(root, cancel)
        return self.modules.stats(root)

    def _get_modules(self, args, cancel):
        return self.modules.scan(self._cache_root(), cancel)

    def _clean_module_cache(self, args, cancel):
        return self.modules.clean(CleanSelector(all=True), self._cache_root(), cancel)

    def _clean_module(self, args, cancel):
        selector = CleanSelector(
            module=_arg(args, "modulePath"), version=_arg(args, "moduleVersion", None) or None
        )
        return self.modules.clean(selector, self._cache_root(), cancel)

    def _verify_modules(self, args, cancel):
        return self.modules.verify_all(self._cache_root(), cancel)

    def _install_package(self, args, cancel):
        return {"output": self.modules.install_package(_arg(args, "packagePath"))}

    def _get_package(self, args, cancel):
        return self.modules.get_package(
            _arg(args, "packagePath"), _arg(args, "version", "latest") or "latest"
        )


__all__ = ["GovmApp", "to_json"]
