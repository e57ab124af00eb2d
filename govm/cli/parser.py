"""
govm CLI argument parser.

This module implements the command-line interface for govm using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from govm import __version__
from govm.cli.utils import print_error
from govm.core.exceptions import GovmError

logger = logging.getLogger(__name__)


class CLI:
    """govm command-line interface."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="govm",
            description="govm - Go toolchain version and module cache manager",
            epilog='Use "govm COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument("--version", action="version", version=f"govm {__version__}")
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--base-dir",
            type=Path,
            metavar="PATH",
            help="govm base directory (default: $GOVM_HOME or ~/.govm)",
        )
        parser.add_argument(
            "--json", action="store_true", help="Print results as JSON"
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_version_commands(subparsers)
        self._add_doctor_command(subparsers)
        self._add_env_command(subparsers)
        self._add_cache_command(subparsers)
        self._add_mod_command(subparsers)
        self._add_config_command(subparsers)
        self._add_call_command(subparsers)

        return parser

    def _add_version_commands(self, subparsers):
        """Add list, install, uninstall, use, current and verify."""
        parser = subparsers.add_parser(
            "list",
            help="List installed or remote Go versions",
            description="List installed Go versions, or releases published on the mirror",
        )
        parser.add_argument(
            "--remote", action="store_true", help="List releases from the mirror"
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Include unstable (rc/beta) releases with --remote",
        )
        parser.add_argument(
            "--refresh",
            action="store_true",
            help="Ignore the cached release index",
        )

        parser = subparsers.add_parser(
            "install",
            help="Install a Go version",
            description="Download, verify and install a Go release",
        )
        parser.add_argument("version", help="Version or alias (e.g. 1.22.3, stable)")
        parser.add_argument("--os", dest="target_os", metavar="GOOS", help="Target OS")
        parser.add_argument("--arch", metavar="GOARCH", help="Target architecture")
        parser.add_argument(
            "--use", action="store_true", help="Make the version current after install"
        )

        parser = subparsers.add_parser(
            "uninstall",
            help="Remove an installed Go version",
            description="Remove an installed Go version",
        )
        parser.add_argument("version", help="Version or alias")
        parser.add_argument(
            "--promote",
            action="store_true",
            help="If it is current, make the newest remaining version current",
        )

        parser = subparsers.add_parser(
            "use",
            help="Switch the current Go version",
            description="Make an installed Go version current",
        )
        parser.add_argument("version", help="Version or alias")

        subparsers.add_parser(
            "current",
            help="Show the current Go version",
            description="Show the current Go version",
        )

        parser = subparsers.add_parser(
            "verify",
            help="Verify an installed Go version",
            description="Recompute the file digest of an installed version",
        )
        parser.add_argument(
            "version", nargs="?", help="Version or alias (default: current)"
        )

    def _add_doctor_command(self, subparsers):
        """Add 'doctor' subcommand."""
        parser = subparsers.add_parser(
            "doctor",
            help="Diagnose the Go environment",
            description="Diagnose GOROOT, GOPROXY, PATH, directories and aliases",
        )
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Attempt to automatically fix detected issues",
        )

    def _add_env_command(self, subparsers):
        """Add 'env' subcommand."""
        parser = subparsers.add_parser(
            "env",
            help="Show or change the govm environment profile",
            description=(
                "Show the Go environment, or change the variables govm writes "
                "to env.sh / env.ps1"
            ),
        )
        parser.add_argument(
            "--set",
            action="append",
            metavar="NAME=VALUE",
            help="Set a variable (empty VALUE removes it; can be used multiple times)",
        )
        group = parser.add_mutually_exclusive_group()
        group.add_argument(
            "--fix-goroot",
            nargs="?",
            const="",
            metavar="GOROOT",
            help="Point GOROOT and PATH at GOROOT (default: the current version)",
        )
        group.add_argument(
            "--fix-goproxy",
            action="store_true",
            help="Set GOPROXY to https://goproxy.cn,direct",
        )

    def _add_cache_command(self, subparsers):
        """Add 'cache' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "cache",
            help="Manage the download cache",
            description="Show or clear the download cache",
        )
        cache_subparsers = parser.add_subparsers(
            dest="cache_command", help="Cache commands", metavar="COMMAND"
        )
        cache_subparsers.add_parser("info", help="Show cache sizes")
        clean = cache_subparsers.add_parser("clean", help="Clear the download cache")
        clean.add_argument(
            "--all",
            action="store_true",
            help="Also clear the whole module cache",
        )

    def _add_mod_command(self, subparsers):
        """Add 'mod' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "mod",
            help="Manage the Go module cache",
            description="Inspect, verify and clean the Go module cache",
        )
        parser.add_argument(
            "--cache-root",
            type=Path,
            metavar="PATH",
            help="Module cache to operate on (default: from GOPATH mode)",
        )
        mod_subparsers = parser.add_subparsers(
            dest="mod_command", help="Module cache commands", metavar="COMMAND"
        )

        mod_subparsers.add_parser("list", help="List cached modules")
        mod_subparsers.add_parser("stats", help="Show module cache statistics")

        search = mod_subparsers.add_parser("search", help="Search cached and popular modules")
        search.add_argument("query", help="Substring to search for")

        verify = mod_subparsers.add_parser("verify", help="Verify module hashes")
        verify.add_argument("module", nargs="?", help="Module path (default: all)")
        verify.add_argument("version", nargs="?", help="Module version")

        clean = mod_subparsers.add_parser("clean", help="Remove cached modules")
        clean.add_argument("--all", action="store_true", help="Remove everything")
        clean.add_argument("--prefix", metavar="PATH", help="Remove modules under a path prefix")
        clean.add_argument(
            "--older-than",
            type=float,
            metavar="DAYS",
            help="Remove modules not modified for DAYS days",
        )
        clean.add_argument("--module", metavar="PATH", help="Remove one module path")
        clean.add_argument(
            "--module-version", metavar="VERSION", help="With --module, only this version"
        )

        get = mod_subparsers.add_parser("get", help="Download a module into the cache")
        get.add_argument("path", help="Module path")
        get.add_argument("version", nargs="?", default="latest", help="Version (default: latest)")

        install = mod_subparsers.add_parser("install", help="go install a tool")
        install.add_argument("path", help="Package path, optionally with @version")

    def _add_config_command(self, subparsers):
        """Add 'config' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "config",
            help="Show or change configuration",
            description="Show or change the govm configuration (config.yaml)",
        )
        config_subparsers = parser.add_subparsers(
            dest="config_command", help="Configuration commands", metavar="COMMAND"
        )

        config_subparsers.add_parser("show", help="Show the configuration")

        set_parser = config_subparsers.add_parser("set", help="Change a setting")
        set_parser.add_argument("key", help="Setting name (e.g. mirror, gopath_mode)")
        set_parser.add_argument("value", help="New value")

        alias = config_subparsers.add_parser("alias", help="Set or remove a version alias")
        alias.add_argument("name", help="Alias name")
        alias.add_argument("version", nargs="?", help="Target version or alias")
        alias.add_argument("--remove", action="store_true", help="Remove the alias")

        config_subparsers.add_parser("reset", help="Restore default configuration")
        config_subparsers.add_parser("mirrors", help="List built-in download mirrors")

    def _add_call_command(self, subparsers):
        """Add 'call' subcommand."""
        parser = subparsers.add_parser(
            "call",
            help="Invoke an API operation",
            description="Invoke a named API operation with JSON arguments and print the response",
        )
        parser.add_argument("operation", help="Operation name (e.g. GetInstalledVersions)")
        parser.add_argument(
            "arguments", nargs="?", default="{}", help="JSON object of arguments"
        )

    # ========================================================================
    # Running
    # ========================================================================

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except GovmError as e:
            print_error(str(e), f"({e.kind.value})")
            logger.debug("Command failed", exc_info=True)
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        command_map = {
            "list": "govm.cli.commands.versions",
            "install": "govm.cli.commands.versions",
            "uninstall": "govm.cli.commands.versions",
            "use": "govm.cli.commands.versions",
            "current": "govm.cli.commands.versions",
            "verify": "govm.cli.commands.versions",
            "doctor": "govm.cli.commands.doctor",
            "env": "govm.cli.commands.env",
            "cache": "govm.cli.commands.cache",
            "mod": "govm.cli.commands.mod",
            "config": "govm.cli.commands.config",
            "call": "govm.cli.commands.call",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
