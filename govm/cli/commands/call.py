"""
Call command implementation.

Runs one API operation and prints the JSON response envelope, for scripts
and front ends that talk to govm through a subprocess.
"""

import json
import logging

from govm.cli.utils import build_app, print_error

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the call command.

    Returns:
        0 when the response is ok, 1 otherwise
    """
    try:
        arguments = json.loads(args.arguments)
    except ValueError as e:
        print_error(f"Arguments are not valid JSON: {e}")
        return 2

    response = build_app(args).call(args.operation, arguments)
    print(json.dumps(response, indent=2, ensure_ascii=False))
    return 0 if response["ok"] else 1
