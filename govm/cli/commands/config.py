"""
Config command implementation.
"""

import logging

import yaml

from govm.cli.utils import build_app, print_json

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the config command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    app = build_app(args)
    store = app.config_store
    subcommand = getattr(args, "config_command", None) or "show"

    if subcommand == "show":
        config = store.load()
        if args.json:
            print_json(config)
        else:
            print(yaml.safe_dump(config.to_dict(), sort_keys=False, allow_unicode=True), end="")
        return 0

    if subcommand == "set":
        config = store.update(**{args.key.replace("-", "_"): args.value})
        if not args.quiet:
            print(f"{args.key} = {getattr(config, args.key.replace('-', '_'))}")
        return 0

    if subcommand == "alias":
        if args.remove:
            config = store.remove_alias(args.name)
        elif args.version:
            config = store.set_alias(args.name, args.version)
        else:
            target = store.load().aliases.get(args.name)
            if target is None:
                logger.error(f"No alias named '{args.name}'")
                return 1
            print(target)
            return 0
        if args.json:
            print_json(config.aliases)
        elif not args.quiet:
            for name, target in sorted(config.aliases.items()):
                print(f"{name} -> {target}")
        return 0

    if subcommand == "reset":
        store.reset()
        if not args.quiet:
            print(f"Restored default configuration in {store.path}")
        return 0

    if subcommand == "mirrors":
        options = app.call("GetMirrorOptions")["result"]
        if args.json:
            print_json(options)
        else:
            current = store.load().mirror
            for option in options:
                marker = "*" if option["url"] == current else " "
                print(f"{marker} {option['name']:<24} {option['url']}")
        return 0

    logger.error(f"Unknown config command: {subcommand}")
    return 1
