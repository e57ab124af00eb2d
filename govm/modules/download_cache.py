"""
Download cache accounting.

The download cache (``<cache_dir>/downloads``) keeps the release archives of
installed versions so a reinstall can skip the network, plus the ``.partial``
files of interrupted downloads.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from govm.config.store import ConfigStore
from govm.core.directory import get_base_dir, get_download_dir
from govm.core.exceptions import FilesystemError
from govm.core.filesystem import directory_size, format_size, remove_path
from govm.modules.cache import CleanResult, CleanSelector, ModuleCacheManager

logger = logging.getLogger(__name__)


@dataclass
class DownloadCacheInfo:
    download_cache_size: int
    download_cache_path: str
    total_size: int
    total_size_human: str

    def to_dict(self) -> dict:
        return {
            "downloadCacheSize": self.download_cache_size,
            "downloadCachePath": self.download_cache_path,
            "totalSize": self.total_size,
            "totalSizeHuman": self.total_size_human,
        }


@dataclass
class DownloadCleanResult:
    """Outcome of clearing the download cache."""

    removed: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    bytes_freed: int = 0

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "removed": list(self.removed),
            "failures": [{"entry": e, "error": msg} for e, msg in self.failures],
            "bytesFreed": self.bytes_freed,
            "bytesFreedStr": format_size(self.bytes_freed),
        }


class DownloadCacheManager:
    """Reports on and clears the download cache."""

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        config_store: Optional[ConfigStore] = None,
        module_cache: Optional[ModuleCacheManager] = None,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_base_dir()
        self.config_store = config_store or ConfigStore(self.base_dir)
        self.module_cache = module_cache or ModuleCacheManager(
            self.base_dir, self.config_store
        )

    def download_dir(self) -> Path:
        return get_download_dir(self.config_store.load().cache_path)

    def info(self) -> DownloadCacheInfo:
        """Download cache size plus module cache size."""
        downloads = self.download_dir()
        download_size = directory_size(downloads)
        module_size = directory_size(self.module_cache.module_cache_path())
        total = download_size + module_size
        return DownloadCacheInfo(
            download_cache_size=download_size,
            download_cache_path=str(downloads),
            total_size=total,
            total_size_human=format_size(total),
        )

    def clean_download_cache(self) -> DownloadCleanResult:
        """
        Remove every file in the download cache.

        Entries that vanish meanwhile (a concurrent install finishing its
        ``.partial`` file) are skipped; other failures are recorded and the
        remaining entries are still removed.
        """
        result = DownloadCleanResult()
        downloads = self.download_dir()
        if not downloads.is_dir():
            return result

        for item in sorted(downloads.iterdir()):
            try:
                size = directory_size(item) if item.is_dir() else item.stat().st_size
                remove_path(item)
            except FileNotFoundError:
                logger.debug(f"{item} vanished during clean")
                continue
            except (OSError, FilesystemError) as e:
                logger.warning(f"Could not remove {item}: {e}")
                result.failures.append((item.name, str(e)))
                continue
            result.removed.append(item.name)
            result.bytes_freed += size
        logger.info(f"Cleared download cache, freed {format_size(result.bytes_freed)}")
        return result

    def clean_all(self) -> CleanResult:
        """Clear the download cache and the whole module cache."""
        downloads = self.clean_download_cache()
        result = self.module_cache.clean(CleanSelector(all=True))
        result.failures = downloads.failures + result.failures
        result.bytes_freed += downloads.bytes_freed
        return result


__all__ = ["DownloadCacheInfo", "DownloadCleanResult", "DownloadCacheManager"]
