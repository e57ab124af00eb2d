"""
Platform detection for govm.

Maps the running interpreter's OS and CPU to the names the Go release index
uses for artifacts (``GOOS``/``GOARCH``), e.g. ``linux``/``amd64``,
``darwin``/``arm64``, ``windows``/``386``.

Usage:
    from govm.core.platform import detect_platform

    info = detect_platform()
    print(info.platform_string())   # 'linux-amd64'
"""

import functools
import platform
from dataclasses import dataclass


@dataclass(frozen=True)
class PlatformInfo:
    """
    Platform information in Go naming.

    Attributes:
        os: GOOS value ('linux', 'darwin', 'windows', 'freebsd', ...)
        arch: GOARCH value ('amd64', 'arm64', '386', 'armv6l', ...)
    """

    os: str
    arch: str

    def platform_string(self) -> str:
        """
        Get canonical platform string.

        Example:
            >>> PlatformInfo('linux', 'amd64').platform_string()
            'linux-amd64'
        """
        return f"{self.os}-{self.arch}"

    @property
    def archive_extension(self) -> str:
        """Archive suffix published for this OS."""
        return ".zip" if self.os == "windows" else ".tar.gz"

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.os == "windows" else ""

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


_OS_MAP = {
    "windows": "windows",
    "linux": "linux",
    "darwin": "darwin",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}

# Release archives for 32-bit ARM are published as "armv6l".
_ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv6l": "armv6l",
    "armv7l": "armv6l",
    "armv8l": "armv6l",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "loongarch64": "loong64",
}


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform in Go naming.

    This function is cached - it only runs detection once per process.

    Raises:
        RuntimeError: If the operating system is not supported
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def _detect_os() -> str:
    system = platform.system().lower()
    if system not in _OS_MAP:
        raise RuntimeError(f"Unsupported operating system: {system}")
    return _OS_MAP[system]


def _detect_architecture() -> str:
    machine = platform.machine().lower()
    # Return original for unknown architectures
    return _ARCH_MAP.get(machine, machine)


def clear_platform_cache():
    """Clear the detect_platform() cache (used by tests)."""
    detect_platform.cache_clear()
