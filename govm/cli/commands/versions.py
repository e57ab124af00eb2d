"""
Version commands: list, install, uninstall, use, current, verify.
"""

import logging

from govm.cli.utils import ProgressPrinter, build_app, print_json, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run one of the version commands.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    handlers = {
        "list": _list,
        "install": _install,
        "uninstall": _uninstall,
        "use": _use,
        "current": _current,
        "verify": _verify,
    }
    return handlers[args.command](args)


def _list(args) -> int:
    app = build_app(args)
    if args.remote:
        releases = app.versions.list_remote(use_cache=not args.refresh, include_all=args.all)
        if args.json:
            print_json(releases)
            return 0
        installed = {v.version for v in app.versions.list_installed()}
        for release in releases:
            marks = []
            if not release.stable:
                marks.append("unstable")
            if release.version in installed:
                marks.append("installed")
            suffix = f"  ({', '.join(marks)})" if marks else ""
            print(f"  {release.version}{suffix}")
        return 0

    versions = app.versions.list_installed()
    if args.json:
        print_json(versions)
        return 0
    if not versions:
        if not args.quiet:
            print("No Go versions installed. Run 'govm install <version>'.")
        return 0
    for v in versions:
        marker = "*" if v.is_current else " "
        print(f"{marker} {v.version:<12} {v.path}")
    return 0


def _install(args) -> int:
    app = build_app(args)
    progress = ProgressPrinter(enabled=not args.quiet and not args.json)
    try:
        installed = app.versions.install(
            args.version, os_name=args.target_os, arch=args.arch, progress=progress
        )
    finally:
        progress.finish()

    if args.use:
        installed = app.versions.switch_current(installed.version)

    if args.json:
        print_json(installed)
    elif not args.quiet:
        safe_print(f"✅ Go {installed.version} installed at {installed.path}")
        if not installed.is_current:
            print(f"   Run 'govm use {installed.version}' to make it current")
    return 0


def _uninstall(args) -> int:
    app = build_app(args)
    current = app.versions.uninstall(args.version, promote=args.promote)
    if args.json:
        print_json({"current": current})
    elif not args.quiet:
        safe_print(f"✅ Removed Go {args.version}")
        if args.promote:
            print(f"   Current version: {current or '(none)'}")
    return 0


def _use(args) -> int:
    app = build_app(args)
    switched = app.versions.switch_current(args.version)
    if args.json:
        print_json(switched)
    elif not args.quiet:
        safe_print(f"✅ Now using Go {switched.version}")
        print(f'   Load it in this shell with: . "{app.base_dir / "env.sh"}"')
    return 0


def _current(args) -> int:
    app = build_app(args)
    current = app.versions.current_version()
    if args.json:
        print_json({"current": current})
    elif current:
        print(current)
    else:
        logger.info("No current Go version")
    return 0 if current else 1


def _verify(args) -> int:
    app = build_app(args)
    version = args.version or app.versions.current_version()
    if not version:
        logger.error("No version given and no current version set")
        return 1

    result = app.versions.verify(version)
    if args.json:
        print_json(result)
    elif result.ok:
        safe_print(f"✅ Go {result.version}: {result.message}")
    else:
        safe_print(f"❌ Go {result.version} is {result.status}: {result.message}")
    return 0 if result.ok else 1
