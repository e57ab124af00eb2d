"""
Tests for govm CLI argument parsing and dispatch.
"""

import logging
from unittest.mock import patch

import pytest

from govm.cli.parser import CLI
from govm.core.exceptions import NotInstalledError


@pytest.fixture
def cli():
    return CLI()


class TestParsing:
    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 1
        assert "usage: govm" in capsys.readouterr().out

    def test_version(self, cli, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.run(["--version"])
        assert exc_info.value.code == 0
        assert "govm 1.0.0" in capsys.readouterr().out

    def test_install_options(self, cli, tmp_path):
        args = cli.parse_args(
            ["--base-dir", str(tmp_path), "install", "1.22.3", "--os", "windows", "--arch", "386", "--use"]
        )
        assert args.base_dir == tmp_path
        assert (args.version, args.target_os, args.arch, args.use) == ("1.22.3", "windows", "386", True)

    def test_env_fix_goroot_optional_value(self, cli):
        assert cli.parse_args(["env", "--fix-goroot"]).fix_goroot == ""
        assert cli.parse_args(["env", "--fix-goroot", "/opt/go"]).fix_goroot == "/opt/go"
        assert cli.parse_args(["env"]).fix_goroot is None

    def test_env_fix_options_are_exclusive(self, cli):
        with pytest.raises(SystemExit):
            cli.parse_args(["env", "--fix-goroot", "--fix-goproxy"])

    def test_mod_clean_selector(self, cli):
        args = cli.parse_args(
            ["mod", "clean", "--prefix", "golang.org/", "--older-than", "30"]
        )
        assert (args.mod_command, args.prefix, args.older_than) == ("clean", "golang.org/", 30.0)

    def test_mod_get_default_version(self, cli):
        assert cli.parse_args(["mod", "get", "golang.org/x/text"]).version == "latest"

    def test_call_default_arguments(self, cli):
        args = cli.parse_args(["call", "GetConfig"])
        assert args.arguments == "{}"


class TestDispatch:
    def test_routes_version_commands(self, cli):
        with patch("govm.cli.commands.versions.run", return_value=0) as run:
            assert cli.run(["current"]) == 0
        assert run.call_args[0][0].command == "current"

    def test_govm_error_is_reported(self, cli, capsys):
        with patch(
            "govm.cli.commands.versions.run",
            side_effect=NotInstalledError("1.99.0"),
        ):
            assert cli.run(["use", "1.99.0"]) == 1
        err = capsys.readouterr().err
        assert "ERROR: Version 1.99.0 is not installed" in err
        assert "(NotInstalled)" in err

    def test_keyboard_interrupt(self, cli):
        with patch("govm.cli.commands.doctor.run", side_effect=KeyboardInterrupt):
            assert cli.run(["doctor"]) == 130

    @pytest.mark.parametrize(
        "flags,level",
        [([], logging.INFO), (["-v"], logging.DEBUG), (["-q"], logging.ERROR)],
    )
    def test_logging_levels(self, cli, flags, level):
        with patch("govm.cli.commands.versions.run", return_value=0):
            cli.run(flags + ["current"])
        assert logging.getLogger().level == level
