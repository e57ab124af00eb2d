"""
Tests for GOPATH and module cache resolution.
"""

import dataclasses
import os
from pathlib import Path

from govm.config.store import Configuration
from govm.modules.paths import resolve_gopath, resolve_module_cache


def config(tmp_path, **fields):
    return dataclasses.replace(Configuration.defaults(tmp_path / "govm"), **fields)


def test_isolated_per_version(tmp_path):
    base = tmp_path / "govm"
    cfg = config(tmp_path)

    assert resolve_gopath(cfg, base, "1.22.3") == base / "gopath" / "1.22.3"
    assert resolve_gopath(cfg, base) == base / "gopath" / "default"
    assert resolve_module_cache(cfg, base, "1.22.3") == base / "gopath" / "1.22.3" / "pkg" / "mod"


def test_isolated_ignores_environment(tmp_path):
    base = tmp_path / "govm"
    environ = {"GOPATH": "/elsewhere", "GOMODCACHE": "/modcache"}

    assert resolve_module_cache(config(tmp_path), base, "1.22.3", environ) == (
        base / "gopath" / "1.22.3" / "pkg" / "mod"
    )


def test_shared_configured_path(tmp_path):
    shared = tmp_path / "go"
    cfg = config(tmp_path, gopath_mode="shared", shared_gopath=str(shared))

    assert resolve_gopath(cfg, tmp_path, "1.22.3", environ={}) == shared


def test_shared_from_environment(tmp_path):
    cfg = config(tmp_path, gopath_mode="shared")
    first = tmp_path / "first"
    environ = {"GOPATH": os.pathsep.join([str(first), str(tmp_path / "second")])}

    assert resolve_gopath(cfg, tmp_path, environ=environ) == first


def test_shared_default_home(tmp_path, monkeypatch):
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    cfg = config(tmp_path, gopath_mode="shared")

    assert resolve_gopath(cfg, tmp_path, environ={}) == tmp_path / "go"


def test_shared_gomodcache_wins(tmp_path):
    cfg = config(tmp_path, gopath_mode="shared")
    environ = {"GOMODCACHE": str(tmp_path / "modcache"), "GOPATH": str(tmp_path / "gp")}

    assert resolve_module_cache(cfg, tmp_path, environ=environ) == tmp_path / "modcache"
