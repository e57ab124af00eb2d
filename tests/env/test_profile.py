"""
Tests for the persistent environment profile and its generated scripts.
"""

import json

import pytest

from govm.core.exceptions import InvalidConfigError
from govm.env.profile import EnvProfile


@pytest.fixture
def profile(tmp_path):
    return EnvProfile(tmp_path / "govm")


def test_empty_profile(profile):
    assert profile.variables == {}
    assert profile.path_entries == []


def test_apply_version(profile, tmp_path):
    goroot = tmp_path / "versions" / "1.22.3"
    gopath = tmp_path / "gopath" / "1.22.3"

    profile.apply_version(goroot, gopath)

    assert profile.variables == {"GOROOT": str(goroot), "GOPATH": str(gopath)}
    assert profile.path_entries == [str(goroot / "bin"), str(gopath / "bin")]

    env_sh = (profile.base_dir / "env.sh").read_text()
    assert f"export GOROOT={goroot}" in env_sh
    assert f'export PATH={goroot / "bin"}:{gopath / "bin"}:"$PATH"' in env_sh

    env_ps1 = (profile.base_dir / "env.ps1").read_text()
    assert f"$env:GOROOT = '{goroot}'" in env_ps1


def test_gobin_replaces_gopath_bin(profile, tmp_path):
    profile.apply_version(tmp_path / "go", tmp_path / "gopath")
    profile.set_env_var("GOBIN", str(tmp_path / "bin"))

    assert profile.path_entries == [str(tmp_path / "go" / "bin"), str(tmp_path / "bin")]


def test_set_and_remove_variable(profile):
    profile.set_env_var("GOPRIVATE", "example.com/private stuff")
    assert profile.variables["GOPRIVATE"] == "example.com/private stuff"
    assert "export GOPRIVATE='example.com/private stuff'" in (
        profile.base_dir / "env.sh"
    ).read_text()

    profile.set_env_var("GOPRIVATE", "")
    assert "GOPRIVATE" not in profile.variables


def test_powershell_quoting(profile):
    profile.set_env_var("GOFLAGS", "it's")
    assert "$env:GOFLAGS = 'it''s'" in (profile.base_dir / "env.ps1").read_text()


@pytest.mark.parametrize("name", ["", "1BAD", "WITH SPACE", "PATH", "Path"])
def test_invalid_names(profile, name):
    with pytest.raises(InvalidConfigError):
        profile.set_env_var(name, "x")


def test_fix_goproxy(profile):
    profile.fix_goproxy()
    assert profile.variables["GOPROXY"] == "https://goproxy.cn,direct"


def test_unreadable_profile_counts_as_empty(profile):
    profile.base_dir.mkdir(parents=True, exist_ok=True)
    profile.path.write_text("{not json")
    assert profile.load() == {"variables": {}, "path": []}

    profile.path.write_text(json.dumps(["a", "list"]))
    assert profile.variables == {}
