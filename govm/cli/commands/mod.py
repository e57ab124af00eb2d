"""
Mod command implementation.

Lists, searches, verifies and cleans the Go module cache, and fetches or
installs packages with the current toolchain.
"""

import logging

from govm.cli.utils import build_app, print_json, print_warning, safe_print
from govm.core.filesystem import format_size
from govm.modules.cache import CleanSelector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the mod command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    app = build_app(args)
    root = args.cache_root or app.modules.module_cache_path(app.versions.current_version())
    subcommand = getattr(args, "mod_command", None) or "stats"

    handlers = {
        "list": _list,
        "stats": _stats,
        "search": _search,
        "verify": _verify,
        "clean": _clean,
        "get": _get,
        "install": _install,
    }
    return handlers[subcommand](app, root, args)


def _warn_scan(app):
    for warning in app.modules.last_warnings:
        print_warning(warning)


def _list(app, root, args) -> int:
    records = app.modules.scan(root)
    _warn_scan(app)
    if args.json:
        print_json(records)
        return 0
    for record in records:
        print(f"{record.path}@{record.version:<24} {format_size(record.size):>10}")
    if not args.quiet:
        print(f"\n{len(records)} modules in {root}")
    return 0


def _stats(app, root, args) -> int:
    app.modules.scan(root)
    _warn_scan(app)
    stats = app.modules.stats(root)
    if args.json:
        print_json(stats)
    else:
        print(f"Module cache: {stats.cache_path}")
        print(f"  Modules:    {stats.total_modules}")
        print(f"  Size:       {stats.total_size_str}")
    return 0


def _search(app, root, args) -> int:
    app.modules.scan(root)
    results = app.modules.search(args.query)
    if args.json:
        print_json(results)
        return 0
    if not results:
        logger.info(f"No modules match '{args.query}'")
        return 0
    for result in results:
        print(f"{result.path:<56} {result.version:<12} {result.description}")
    return 0


def _verify(app, root, args) -> int:
    if args.module:
        if not args.version:
            logger.error("A version is required when verifying a single module")
            return 2
        results = [app.modules.verify(args.module, args.version, root)]
    else:
        results = app.modules.verify_all(root)

    if args.json:
        print_json(results)
    else:
        for result in results:
            if result.ok:
                if not args.quiet:
                    safe_print(f"✅ {result.module}@{result.version}")
            else:
                safe_print(f"❌ {result.module}@{result.version}: {result.status} {result.message}")

    bad = [r for r in results if r.status in ("mismatch", "error")]
    return 1 if bad else 0


def _clean(app, root, args) -> int:
    selector = CleanSelector(
        all=args.all,
        path_prefix=args.prefix,
        older_than_days=args.older_than,
        module=args.module,
        version=args.module_version,
    )
    result = app.modules.clean(selector, root)
    if args.json:
        print_json(result)
    else:
        for entry, error in result.failures:
            print_warning(f"Could not remove {entry}: {error}")
        if not args.quiet:
            print(f"Removed {len(result.removed)} modules, freed {format_size(result.bytes_freed)}")
    return 0 if result.success else 1


def _get(app, root, args) -> int:
    info = app.modules.get_package(args.path, args.version)
    if args.json:
        print_json(info)
    elif not args.quiet:
        safe_print(f"✅ {info.get('Path', args.path)}@{info.get('Version', args.version)}")
    return 0


def _install(app, root, args) -> int:
    output = app.modules.install_package(args.path)
    if args.json:
        print_json({"output": output})
    elif not args.quiet:
        if output:
            print(output)
        safe_print(f"✅ Installed {args.path}")
    return 0
