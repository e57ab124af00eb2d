"""
Tests for ModuleCacheManager: scanning, stats, search, verification and
cleaning of a module cache on disk.
"""

import os
import time

import pytest

from govm.core.exceptions import (
    ChecksumMismatchError,
    InvalidConfigError,
    NotFoundError,
    OperationCancelled,
)
from govm.core.cancellation import CancellationToken
from govm.core.verification import go_module_hash
from govm.modules.cache import (
    CleanSelector,
    ModuleCacheManager,
    escape_path,
    module_name,
    module_version_key,
    unescape_path,
)


@pytest.fixture
def mods(base_dir):
    return ModuleCacheManager(base_dir)


def record_hash(root, path, version):
    """Write the .ziphash the go command records for a downloaded module."""
    module_dir = root / f"{escape_path(path)}@{escape_path(version)}"
    ziphash = root / "cache" / "download" / escape_path(path) / "@v" / f"{version}.ziphash"
    ziphash.parent.mkdir(parents=True, exist_ok=True)
    ziphash.write_text(go_module_hash(module_dir, f"{path}@{version}") + "\n")
    return ziphash


class TestEscaping:
    def test_escape_round_trip(self):
        assert escape_path("github.com/BurntSushi/toml") == "github.com/!burnt!sushi/toml"
        assert unescape_path("github.com/!burnt!sushi/toml") == "github.com/BurntSushi/toml"

    def test_module_name(self):
        assert module_name("github.com/labstack/echo/v4") == "echo"
        assert module_name("gorm.io/gorm") == "gorm"
        assert module_name("v2") == "v2"

    def test_version_precedence(self):
        versions = [
            "v0.10.0",
            "v0.9.0",
            "v0.10.0-rc.1",
            "v0.10.0-rc.2",
            "v0.0.0-20231010120000-abcdef123456",
            "v2.0.0+incompatible",
            "v0.10.0-beta",
        ]
        assert sorted(versions, key=module_version_key) == [
            "v0.0.0-20231010120000-abcdef123456",
            "v0.9.0",
            "v0.10.0-beta",
            "v0.10.0-rc.1",
            "v0.10.0-rc.2",
            "v0.10.0",
            "v2.0.0+incompatible",
        ]

    def test_unparseable_version_sorts_first(self):
        assert module_version_key("garbage") < module_version_key("v0.0.1")


class TestScan:
    def test_scan(self, mods, module_cache):
        records = mods.scan(module_cache)

        assert [(r.path, r.version, r.size) for r in records] == [
            ("example.com/m", "v1.0.0", 30),
            ("github.com/BurntSushi/toml", "v1.3.2", 10),
            ("golang.org/x/text", "v0.14.0", 20),
        ]
        text = records[2]
        assert text.name == "text"
        assert text.description == "Text processing and encodings"

    def test_download_cache_not_scanned(self, mods, module_cache):
        assert all(not r.dir.startswith(str(module_cache / "cache")) for r in mods.scan(module_cache))

    def test_scan_is_idempotent(self, mods, module_cache):
        assert mods.scan(module_cache) == mods.scan(module_cache)

    def test_missing_root(self, mods, tmp_path):
        assert mods.scan(tmp_path / "nothing") == []

    def test_versions_in_semver_order(self, mods, module_cache):
        (module_cache / "golang.org" / "x" / "text@v0.9.0").mkdir()

        versions = [r.version for r in mods.scan(module_cache) if r.path == "golang.org/x/text"]

        assert versions == ["v0.9.0", "v0.14.0"]

    def test_unreadable_directory_is_a_warning(self, mods, module_cache, monkeypatch):
        blocked = os.fspath(module_cache / "golang.org")
        real_scandir = os.scandir

        def scandir(path="."):
            if os.fspath(path) == blocked:
                raise PermissionError(13, "Permission denied", blocked)
            return real_scandir(path)

        monkeypatch.setattr(os, "scandir", scandir)

        records = mods.scan(module_cache)

        assert [r.path for r in records] == ["example.com/m", "github.com/BurntSushi/toml"]
        assert len(mods.last_warnings) == 1
        assert blocked in mods.last_warnings[0]

    @pytest.mark.skipif(
        os.name == "nt" or os.geteuid() == 0, reason="needs POSIX permissions as non-root"
    )
    def test_permission_denied_directory(self, mods, module_cache, caplog):
        blocked = module_cache / "github.com"
        blocked.chmod(0)
        try:
            records = mods.scan(module_cache)
        finally:
            blocked.chmod(0o755)

        assert [r.path for r in records] == ["example.com/m", "golang.org/x/text"]
        assert mods.last_warnings
        assert "Cannot read" in caplog.text

    def test_cancelled(self, mods, module_cache):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            mods.scan(module_cache, cancel=token)

    def test_stats(self, mods, module_cache):
        stats = mods.stats(module_cache)
        assert stats.total_modules == 3
        assert stats.total_size == 60
        assert stats.to_dict()["cachePath"] == str(module_cache)

    def test_default_root_follows_current_version(self, mods, base_dir):
        (base_dir / "current").parent.mkdir(parents=True, exist_ok=True)
        (base_dir / "current").write_text("1.22.3\n")
        expected = base_dir / "gopath" / "1.22.3" / "pkg" / "mod"
        assert mods.module_cache_path() == expected
        assert mods.gopath() == base_dir / "gopath" / "1.22.3"


class TestSearch:
    def test_scanned_module_wins_over_catalog(self, mods, module_cache):
        mods.scan(module_cache)
        results = mods.search("TEXT")

        assert results[0].path == "golang.org/x/text"
        assert results[0].version == "v0.14.0"

    def test_reports_newest_scanned_version(self, mods, module_cache):
        (module_cache / "golang.org" / "x" / "text@v0.9.0").mkdir()
        mods.scan(module_cache)

        results = mods.search("golang.org/x/text")

        assert results[0].version == "v0.14.0"

    def test_catalog_results(self, mods):
        results = mods.search("gin")
        assert results[0].path == "github.com/gin-gonic/gin"
        assert results[0].version == "latest"

    def test_description_match(self, mods):
        paths = [r.path for r in mods.search("postgresql")]
        assert "github.com/lib/pq" in paths
        assert "github.com/jackc/pgx/v5" in paths

    def test_prefix_matches_rank_first(self, mods):
        results = mods.search("go")
        prefixed = [r.path.startswith("go") for r in results]
        assert prefixed == sorted(prefixed, reverse=True)


class TestVerify:
    def test_ok(self, mods, module_cache):
        record_hash(module_cache, "golang.org/x/text", "v0.14.0")
        result = mods.verify("golang.org/x/text", "v0.14.0", module_cache)
        assert result.ok
        assert result.message.startswith("h1:")

    def test_mismatch(self, mods, module_cache):
        record_hash(module_cache, "golang.org/x/text", "v0.14.0")
        (module_cache / "golang.org" / "x" / "text@v0.14.0" / "doc.go").write_bytes(b"tampered")

        with pytest.raises(ChecksumMismatchError):
            mods.verify("golang.org/x/text", "v0.14.0", module_cache)

    def test_not_cached(self, mods, module_cache):
        with pytest.raises(NotFoundError):
            mods.verify("golang.org/x/net", "v0.1.0", module_cache)

    def test_verify_all(self, mods, module_cache):
        record_hash(module_cache, "golang.org/x/text", "v0.14.0")
        record_hash(module_cache, "example.com/m", "v1.0.0")
        (module_cache / "example.com" / "m@v1.0.0" / "sub" / "m.go").write_bytes(b"x")

        statuses = {r.module: r.status for r in mods.verify_all(module_cache)}

        assert statuses == {
            "example.com/m": "mismatch",
            "github.com/BurntSushi/toml": "missing",
            "golang.org/x/text": "ok",
        }


class TestClean:
    def test_empty_selector(self, mods, module_cache):
        with pytest.raises(InvalidConfigError):
            mods.clean(CleanSelector(), module_cache)

    def test_clean_all(self, mods, module_cache):
        result = mods.clean(CleanSelector(all=True), module_cache)

        assert result.success
        assert len(result.removed) == 3
        assert result.bytes_freed == 60 + len(b"zipdata")
        assert not (module_cache / "cache").exists()
        stats = mods.stats(module_cache)
        assert (stats.total_modules, stats.total_size) == (0, 0)

    def test_clean_updates_snapshot(self, mods, module_cache):
        mods.scan(module_cache)
        mods.clean(CleanSelector(module="example.com/m", version="v1.0.0"), module_cache)
        assert [r.path for r in mods.snapshot(module_cache)] == [
            "github.com/BurntSushi/toml",
            "golang.org/x/text",
        ]

    def test_prefix(self, mods, module_cache):
        result = mods.clean(CleanSelector(path_prefix="golang.org/"), module_cache)

        assert [r.key for r in result.removed] == ["golang.org/x/text@v0.14.0"]
        assert not (module_cache / "golang.org").exists()
        assert (module_cache / "example.com" / "m@v1.0.0").is_dir()
        assert (module_cache / "cache").is_dir()

    def test_older_than(self, mods, module_cache):
        old = time.time() - 40 * 86400
        toml_dir = module_cache / "github.com" / "!burnt!sushi" / "toml@v1.3.2"
        os.utime(toml_dir, (old, old))

        result = mods.clean(CleanSelector(older_than_days=30), module_cache)

        assert [r.path for r in result.removed] == ["github.com/BurntSushi/toml"]

    def test_read_only_module_is_removed(self, mods, module_cache):
        module_dir = module_cache / "example.com" / "m@v1.0.0"
        for dirpath, _, filenames in os.walk(module_dir):
            for name in filenames:
                os.chmod(os.path.join(dirpath, name), 0o444)
        os.chmod(module_dir / "sub", 0o555)
        os.chmod(module_dir, 0o555)

        result = mods.clean(CleanSelector(module="example.com/m", version="v1.0.0"), module_cache)

        assert result.success
        assert not module_dir.exists()

    def test_missing_single_target(self, mods, module_cache):
        with pytest.raises(NotFoundError):
            mods.clean(CleanSelector(module="example.com/m", version="v9.9.9"), module_cache)

    def test_traversal_is_refused(self, mods, module_cache, tmp_path):
        outside = tmp_path / "gopath" / "outside@v1"
        outside.mkdir(parents=True)

        result = mods.clean(CleanSelector(module="../../outside", version="v1"), module_cache)

        assert not result.success
        assert result.removed == []
        assert outside.is_dir()
