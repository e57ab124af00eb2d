"""
Cache command implementation.

Reports on and clears the download cache.
"""

import logging

from govm.cli.utils import build_app, print_json, print_warning
from govm.core.filesystem import format_size

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the cache command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    app = build_app(args)
    subcommand = getattr(args, "cache_command", None) or "info"

    if subcommand == "info":
        info = app.downloads.info()
        if args.json:
            print_json(info)
        else:
            print(f"Download cache: {info.download_cache_path}")
            print(f"  Size:         {format_size(info.download_cache_size)}")
            print(f"Total (with module cache): {info.total_size_human}")
        return 0

    if args.all:
        result = app.downloads.clean_all()
    else:
        result = app.downloads.clean_download_cache()
    if args.json:
        print_json(result)
    else:
        for entry, error in result.failures:
            print_warning(f"Could not remove {entry}: {error}")
        if not args.quiet:
            print(f"Freed {format_size(result.bytes_freed)}")
    return 0 if result.success else 1
