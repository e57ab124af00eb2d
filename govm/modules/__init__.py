"""
Go module cache management: scanning, search, verification, cleaning and
the download cache.
"""

from .cache import (
    CacheStats,
    CleanResult,
    CleanSelector,
    ModuleCacheManager,
    ModuleRecord,
    SearchResult,
)
from .download_cache import DownloadCacheInfo, DownloadCacheManager, DownloadCleanResult
from .paths import resolve_gopath, resolve_module_cache

__all__ = [
    "CacheStats",
    "CleanResult",
    "CleanSelector",
    "ModuleCacheManager",
    "ModuleRecord",
    "SearchResult",
    "DownloadCacheInfo",
    "DownloadCacheManager",
    "DownloadCleanResult",
    "resolve_gopath",
    "resolve_module_cache",
]
