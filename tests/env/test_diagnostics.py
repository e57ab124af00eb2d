"""
Tests for environment probing and diagnostics.
"""

import os

import pytest
import responses

from govm.env.diagnostics import (
    EnvironmentDiagnostics,
    EnvironmentSnapshot,
    probe,
)

PROXY_URL = "https://proxy.golang.org/"


def by_item(findings):
    return {f.item: f for f in findings}


def sourced(manager):
    """Environment of a shell that has sourced the govm profile."""
    environ = dict(manager.profile.variables)
    environ["PATH"] = os.pathsep.join(manager.profile.path_entries)
    return environ


@pytest.fixture
def diagnostics(manager):
    return EnvironmentDiagnostics(manager, environ={"PATH": ""})


@pytest.fixture
def switched(manager):
    manager.install("1.22.3")
    manager.switch_current("1.22.3")
    return manager


class TestProbe:
    def test_reads_environment(self):
        snapshot = probe({"GOROOT": "/usr/local/go", "PATH": "/bin"})
        assert snapshot.goroot == "/usr/local/go"
        assert snapshot.goproxy == ""
        assert snapshot.path_entries() == ["/bin"]

    def test_live_values_are_not_overridden_by_profile(self, manager, tmp_path):
        manager.profile.apply_version(tmp_path / "go")

        snapshot = probe({"GOROOT": "/usr/local/go", "PATH": "/bin"}, manager.profile)

        assert snapshot.goroot == "/usr/local/go"
        assert snapshot.path_entries() == ["/bin"]
        assert snapshot.managed("GOROOT") == str(tmp_path / "go")
        assert snapshot.profile_path == [str(tmp_path / "go" / "bin")]
        assert snapshot.pending == ["GOROOT", "PATH"]

    def test_nothing_pending_once_sourced(self, manager, tmp_path):
        goroot = tmp_path / "go"
        manager.profile.apply_version(goroot)

        snapshot = probe(
            {"GOROOT": str(goroot), "PATH": os.pathsep.join([str(goroot / "bin"), "/bin"])},
            manager.profile,
        )

        assert snapshot.pending == []

    def test_snapshot_creates_nothing(self, manager, base_dir):
        EnvironmentDiagnostics(manager, environ={}).probe()
        assert not base_dir.exists()

    def test_to_dict(self):
        snapshot = EnvironmentSnapshot("a", "b", "c", "d", "e")
        assert snapshot.to_dict() == {
            "goroot": "a",
            "gopath": "b",
            "goproxy": "c",
            "gobin": "d",
            "path": "e",
            "profile": {},
            "profilePath": [],
            "pending": [],
        }


class TestDiagnose:
    def test_fresh_install(self, diagnostics, go_mirror):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)

        findings = diagnostics.diagnose()

        assert [f.item for f in findings] == [
            "GOROOT",
            "GOPROXY",
            "PATH",
            "InstallDir",
            "CacheDir",
            "Aliases",
            "CurrentVersion",
        ]
        statuses = {f.item: f.status for f in findings}
        assert statuses == {
            "GOROOT": "warn",
            "GOPROXY": "ok",
            "PATH": "warn",
            "InstallDir": "ok",
            "CacheDir": "ok",
            "Aliases": "ok",
            "CurrentVersion": "warn",
        }

    def test_healthy_after_switch(self, switched, go_mirror):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)

        findings = EnvironmentDiagnostics(switched, environ=sourced(switched)).diagnose()

        assert all(f.passed for f in findings), [f.to_dict() for f in findings]

    def test_profile_not_sourced_is_a_warning(self, switched, go_mirror, base_dir):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)

        findings = by_item(EnvironmentDiagnostics(switched, environ={"PATH": "/bin"}).diagnose())

        assert findings["GOROOT"].status == "warn"
        assert "not set in this environment" in findings["GOROOT"].message
        assert findings["GOROOT"].fix == f'. "{base_dir / "env.sh"}"'
        assert findings["PATH"].status == "warn"

    def test_live_goroot_elsewhere_is_reported(self, switched, go_mirror, tmp_path):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)
        other = tmp_path / "other-go"
        other.mkdir()
        environ = sourced(switched)
        environ["GOROOT"] = str(other)

        finding = by_item(EnvironmentDiagnostics(switched, environ=environ).diagnose())["GOROOT"]

        assert finding.status == "warn"
        assert str(other) in finding.message
        assert switched.profile.variables["GOROOT"] in finding.message

    def test_unreachable_proxy(self, diagnostics, go_mirror):
        go_mirror.add(responses.HEAD, PROXY_URL, status=503)

        finding = by_item(diagnostics.diagnose())["GOPROXY"]

        assert finding.status == "error"
        assert finding.fix == "govm env --fix-goproxy"
        assert finding.to_dict()["fix"] == "govm env --fix-goproxy"

    def test_direct_proxy_is_not_probed(self, manager, go_mirror):
        diagnostics = EnvironmentDiagnostics(manager, environ={"GOPROXY": "direct"})
        assert by_item(diagnostics.diagnose())["GOPROXY"].passed
        assert not any(call.request.method == "HEAD" for call in go_mirror.calls)

    def test_wrong_goroot(self, switched, go_mirror, tmp_path):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        switched.profile.set_env_var("GOROOT", str(elsewhere))

        finding = by_item(EnvironmentDiagnostics(switched, environ={}).diagnose())["GOROOT"]

        assert finding.status == "error"
        assert "does not match" in finding.message

    def test_alias_cycle(self, manager, go_mirror, base_dir):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)
        base_dir.mkdir(parents=True, exist_ok=True)
        (base_dir / "config.yaml").write_text("aliases:\n  a: b\n  b: a\n")

        finding = by_item(EnvironmentDiagnostics(manager, environ={}).diagnose())["Aliases"]

        assert finding.status == "error"
        assert "a -> b -> a" in finding.message

    def test_corrupt_config_single_finding(self, manager, base_dir):
        base_dir.mkdir(parents=True, exist_ok=True)
        (base_dir / "config.yaml").write_text("[broken")

        findings = EnvironmentDiagnostics(manager, environ={}).diagnose()

        assert len(findings) == 1
        assert findings[0].item == "Config"
        assert findings[0].status == "error"

    def test_failing_check_does_not_stop_others(self, switched, go_mirror, monkeypatch):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)

        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(switched, "verify", boom)
        findings = by_item(EnvironmentDiagnostics(switched, environ={}).diagnose())

        assert findings["CurrentVersion"].status == "error"
        assert "disk on fire" in findings["CurrentVersion"].message
        assert findings["Aliases"].passed

    def test_corrupted_current_version(self, switched, go_mirror, base_dir):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)
        (base_dir / "versions" / "1.22.3" / "VERSION").write_text("tampered")

        finding = by_item(EnvironmentDiagnostics(switched, environ={}).diagnose())[
            "CurrentVersion"
        ]

        assert finding.status == "error"
        assert "corrupted" in finding.message


class TestFixAll:
    def test_fixes_goroot_and_goproxy(self, switched, go_mirror, tmp_path, base_dir):
        go_mirror.add(responses.HEAD, PROXY_URL, status=503)
        switched.profile.set_env_var("GOROOT", str(tmp_path / "missing"))
        diagnostics = EnvironmentDiagnostics(switched, environ={})

        actions = diagnostics.fix_all(diagnostics.diagnose())

        goroot = base_dir / "versions" / "1.22.3"
        assert actions == [
            f"Set GOROOT to {goroot}",
            "Set GOPROXY to https://goproxy.cn,direct",
        ]
        assert switched.profile.variables["GOROOT"] == str(goroot)
        assert switched.profile.variables["GOPROXY"] == "https://goproxy.cn,direct"

    def test_nothing_to_fix(self, diagnostics, go_mirror):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)
        findings = [f for f in diagnostics.diagnose() if f.item != "GOROOT"]
        assert diagnostics.fix_all(findings) == []

    def test_goroot_without_current_version_is_skipped(self, diagnostics, go_mirror):
        go_mirror.add(responses.HEAD, PROXY_URL, status=200)
        findings = diagnostics.diagnose()
        assert diagnostics.fix_all(findings) == []
