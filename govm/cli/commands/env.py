"""
Env command implementation.

Shows the live Go environment or changes the govm environment profile.
"""

import logging
import os

from govm.cli.utils import build_app, print_error, print_json

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the env command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    app = build_app(args)
    changed = False

    for assignment in args.set or []:
        if "=" not in assignment:
            print_error(f"Expected NAME=VALUE, got '{assignment}'")
            return 2
        name, value = assignment.split("=", 1)
        app.profile.set_env_var(name.strip(), value)
        changed = True

    if args.fix_goroot is not None:
        result = app.call("FixGoRoot", {"goroot": args.fix_goroot})
        if not result["ok"]:
            print_error(result["error"], f"({result['kind']})")
            return 1
        changed = True

    if args.fix_goproxy:
        app.profile.fix_goproxy()
        changed = True

    if changed:
        if not args.quiet:
            print(f'Updated {app.profile.path}. Reload with: . "{app.base_dir / "env.sh"}"')
        return 0

    snapshot = app.diagnostics.probe()
    if args.json:
        print_json(snapshot)
        return 0

    for name in ("GOROOT", "GOPATH", "GOPROXY", "GOBIN"):
        value = getattr(snapshot, name.lower())
        print(f"{name:<8} {value or '(not set)'}")
    print("PATH")
    for entry in snapshot.path_entries():
        print(f"  {entry}")

    if snapshot.pending:
        print()
        print("Not yet in effect in this shell (govm profile):")
        for name in snapshot.pending:
            if name == "PATH":
                print(f"  PATH     += {os.pathsep.join(snapshot.profile_path)}")
            else:
                print(f"  {name:<8} {snapshot.managed(name)}")
        print(f'Reload with: . "{app.base_dir / "env.sh"}"')
    return 0
