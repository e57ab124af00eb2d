"""
Unit tests for the filesystem module.
"""

import io
import os
import stat
import tarfile
import zipfile

import pytest

from govm.core.cancellation import CancellationToken
from govm.core.exceptions import (
    FilesystemError,
    InsecureArchiveError,
    OperationCancelled,
    UnsupportedArchiveFormat,
)
from govm.core.filesystem import (
    atomic_symlink,
    atomic_write,
    directory_size,
    extract_archive,
    format_size,
    is_relative_to,
    remove_path,
    safe_rmtree,
    single_root_directory,
    walk_files,
)

from conftest import make_tar_gz


class TestAtomicWrite:
    def test_writes_text(self, tmp_path):
        target = tmp_path / "a" / "config.yaml"
        atomic_write(target, "mirror: x\n")
        assert target.read_text() == "mirror: x\n"

    def test_replaces_existing(self, tmp_path):
        target = tmp_path / "current"
        target.write_text("1.21.10\n")
        atomic_write(target, "1.22.3\n")
        assert target.read_text() == "1.22.3\n"

    def test_writes_bytes(self, tmp_path):
        target = tmp_path / "blob"
        atomic_write(target, b"\x00\x01")
        assert target.read_bytes() == b"\x00\x01"

    def test_no_temp_files_left(self, tmp_path):
        atomic_write(tmp_path / "f", "data")
        assert [p.name for p in tmp_path.iterdir()] == ["f"]


@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
class TestAtomicSymlink:
    def test_creates_and_repoints(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        link = tmp_path / "go"

        atomic_symlink(link, a)
        assert link.resolve() == a.resolve()

        atomic_symlink(link, b)
        assert link.resolve() == b.resolve()
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a", "b", "go"]


class TestSafeRmtree:
    def test_removes_tree(self, tmp_path):
        target = tmp_path / "root" / "victim"
        (target / "sub").mkdir(parents=True)
        (target / "sub" / "f").write_text("x")

        safe_rmtree(target, require_prefix=tmp_path / "root")

        assert not target.exists()
        assert (tmp_path / "root").exists()

    def test_refuses_outside_prefix(self, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()

        with pytest.raises(ValueError, match="Refusing"):
            safe_rmtree(outside, require_prefix=tmp_path / "root")
        assert outside.exists()

    def test_refuses_prefix_itself(self, tmp_path):
        with pytest.raises(ValueError):
            safe_rmtree(tmp_path, require_prefix=tmp_path)

    def test_refuses_dotdot_escape(self, tmp_path):
        root = tmp_path / "root"
        root.mkdir()
        sibling = tmp_path / "sibling"
        sibling.mkdir()

        with pytest.raises(ValueError):
            safe_rmtree(root / ".." / "sibling", require_prefix=root)
        assert sibling.exists()

    def test_missing_path_is_noop(self, tmp_path):
        safe_rmtree(tmp_path / "nope")

    def test_file_is_rejected(self, tmp_path):
        f = tmp_path / "file"
        f.write_text("x")
        with pytest.raises(FilesystemError):
            safe_rmtree(f)

    def test_removes_read_only_tree(self, tmp_path):
        target = tmp_path / "mod@v1.0.0"
        (target / "pkg").mkdir(parents=True)
        f = target / "pkg" / "a.go"
        f.write_text("package a")
        f.chmod(stat.S_IRUSR)
        (target / "pkg").chmod(stat.S_IRUSR | stat.S_IXUSR)
        target.chmod(stat.S_IRUSR | stat.S_IXUSR)

        safe_rmtree(target, require_prefix=tmp_path)

        assert not target.exists()


class TestRemovePath:
    def test_file_and_directory(self, tmp_path):
        f = tmp_path / "f"
        f.write_text("x")
        d = tmp_path / "d"
        (d / "e").mkdir(parents=True)

        remove_path(f)
        remove_path(d)

        assert list(tmp_path.iterdir()) == []


class TestExtractArchive:
    def test_tar_gz(self, tmp_path):
        archive = tmp_path / "go.tar.gz"
        archive.write_bytes(make_tar_gz({"go/VERSION": b"go1.22.3", "go/bin/go": b"bin"}))

        dest = tmp_path / "out"
        extract_archive(archive, dest)

        assert (dest / "go" / "VERSION").read_bytes() == b"go1.22.3"
        assert single_root_directory(dest) == dest / "go"

    def test_zip(self, tmp_path):
        archive = tmp_path / "go.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("go/VERSION", "go1.22.3")
        dest = tmp_path / "out"

        extract_archive(archive, dest)

        assert (dest / "go" / "VERSION").read_text() == "go1.22.3"

    def test_progress_callback(self, tmp_path):
        archive = tmp_path / "go.tar.gz"
        archive.write_bytes(make_tar_gz({"go/a": b"1", "go/b": b"2"}))
        calls = []

        extract_archive(archive, tmp_path / "out", progress_callback=lambda c, t: calls.append((c, t)))

        assert calls[-1] == (2, 2)

    def test_traversal_is_blocked(self, tmp_path):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            info = tarfile.TarInfo("../evil.txt")
            info.size = 4
            tar.addfile(info, io.BytesIO(b"evil"))
        archive = tmp_path / "bad.tar.gz"
        archive.write_bytes(buf.getvalue())

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, tmp_path / "out")
        assert not (tmp_path / "evil.txt").exists()

    def test_unsupported_format(self, tmp_path):
        archive = tmp_path / "go.rar"
        archive.write_bytes(b"rar")
        with pytest.raises(UnsupportedArchiveFormat):
            extract_archive(archive, tmp_path / "out")

    def test_cancelled(self, tmp_path):
        archive = tmp_path / "go.tar.gz"
        archive.write_bytes(make_tar_gz({"go/a": b"1"}))
        token = CancellationToken()
        token.cancel("stop")

        with pytest.raises(OperationCancelled):
            extract_archive(archive, tmp_path / "out", cancel=token)


class TestSizes:
    def test_directory_size(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "f").write_bytes(b"x" * 10)
        (tmp_path / "g").write_bytes(b"y" * 5)

        assert directory_size(tmp_path) == 15
        assert directory_size(tmp_path / "missing") == 0
        assert len(list(walk_files(tmp_path))) == 2

    @pytest.mark.parametrize(
        "size,expected",
        [(0, "0 B"), (512, "512 B"), (1536, "1.50 KB"), (5 * 1024 * 1024, "5.00 MB")],
    )
    def test_format_size(self, size, expected):
        assert format_size(size) == expected


def test_is_relative_to(tmp_path):
    assert is_relative_to(tmp_path / "a" / "b", tmp_path)
    assert not is_relative_to(tmp_path, tmp_path / "a")
