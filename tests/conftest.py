"""
Pytest configuration and shared fixtures for govm tests.

Network access is replaced by ``responses``: the ``go_mirror`` fixture
serves a small release index and matching archives from https://go.dev/dl/.
"""

import hashlib
import io
import tarfile
from pathlib import Path
from typing import Dict, Optional

import pytest
import responses

from govm.core.mirrors import shared_status
from govm.core.platform import PlatformInfo

INDEX_URL = "https://go.dev/dl/?mode=json&include=all"
MIRROR = "https://go.dev/dl/"

# Versions served by go_mirror; 1.22rc1 is unstable
SERVED_VERSIONS = ("1.22.3", "1.22rc1", "1.21.10")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_tar_gz(files: Dict[str, bytes]) -> bytes:
    """Build a .tar.gz in memory from {member name: content}."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in sorted(files.items()):
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755 if "/bin/" in name else 0o644
            info.mtime = 1700000000
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def make_go_archive(version: str) -> bytes:
    """A miniature Go release archive with the usual ``go/`` root."""
    return make_tar_gz(
        {
            "go/VERSION": f"go{version}\n".encode(),
            "go/bin/go": b"#!/bin/sh\necho go\n",
            "go/src/fmt/print.go": b"package fmt\n",
            "go/LICENSE": b"BSD-3-Clause\n",
        }
    )


def index_entry(
    version: str,
    data: bytes,
    stable: bool = True,
    sha256: Optional[str] = None,
) -> dict:
    """One release object in the format of the go.dev JSON index."""
    return {
        "version": f"go{version}",
        "stable": stable,
        "files": [
            {
                "filename": f"go{version}.linux-amd64.tar.gz",
                "os": "linux",
                "arch": "amd64",
                "version": f"go{version}",
                "sha256": sha256 if sha256 is not None else sha256_hex(data),
                "size": len(data),
                "kind": "archive",
            },
            {
                "filename": f"go{version}.src.tar.gz",
                "os": "",
                "arch": "",
                "version": f"go{version}",
                "sha256": "0" * 64,
                "size": 1,
                "kind": "source",
            },
        ],
    }


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """No real backoff sleeps, no shared mirror health, no host Go variables."""
    shared_status().clear()
    monkeypatch.setattr("govm.core.cancellation.sleep", lambda seconds, token=None: None)
    for name in ("GOPATH", "GOMODCACHE", "GOROOT", "GOPROXY", "GOBIN"):
        monkeypatch.delenv(name, raising=False)
    yield
    shared_status().clear()


@pytest.fixture
def base_dir(tmp_path, monkeypatch) -> Path:
    """govm base directory inside tmp_path (also exported as GOVM_HOME)."""
    base = tmp_path / "govm"
    monkeypatch.setenv("GOVM_HOME", str(base))
    return base


@pytest.fixture
def linux_amd64(monkeypatch) -> PlatformInfo:
    info = PlatformInfo("linux", "amd64")
    monkeypatch.setattr("govm.version.manager.detect_platform", lambda: info)
    return info


@pytest.fixture
def go_archives() -> Dict[str, bytes]:
    return {version: make_go_archive(version) for version in SERVED_VERSIONS}


@pytest.fixture
def release_index(go_archives) -> list:
    return [
        index_entry(version, data, stable="rc" not in version)
        for version, data in go_archives.items()
    ]


@pytest.fixture
def go_mirror(release_index, go_archives):
    """Serve the release index and archives from https://go.dev/dl/."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.GET, INDEX_URL, json=release_index, status=200)
        for version, data in go_archives.items():
            rsps.add(
                responses.GET,
                f"{MIRROR}go{version}.linux-amd64.tar.gz",
                body=data,
                status=200,
                content_type="application/gzip",
            )
        yield rsps


@pytest.fixture
def manager(base_dir, go_mirror, linux_amd64):
    from govm.version.manager import VersionManager

    return VersionManager(base_dir)


@pytest.fixture
def module_cache(tmp_path) -> Path:
    """
    A module cache with three modules of 10, 20 and 30 bytes plus the go
    command's download cache.
    """
    root = tmp_path / "gopath" / "pkg" / "mod"
    modules = {
        "github.com/!burnt!sushi/toml@v1.3.2": {"toml.go": b"x" * 10},
        "golang.org/x/text@v0.14.0": {"doc.go": b"y" * 12, "LICENSE": b"z" * 8},
        "example.com/m@v1.0.0": {"sub/m.go": b"w" * 30},
    }
    for module_dir, files in modules.items():
        for rel, data in files.items():
            target = root / module_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

    download = root / "cache" / "download" / "golang.org" / "x" / "text" / "@v"
    download.mkdir(parents=True)
    (download / "v0.14.0.zip").write_bytes(b"zipdata")
    return root
