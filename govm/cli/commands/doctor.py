"""
Doctor command implementation.

Runs the environment diagnostics and optionally applies auto-fixes.
"""

import logging

from govm.cli.utils import build_app, print_json, safe_print

logger = logging.getLogger(__name__)

_ICONS = {"ok": "✅", "warn": "⚠️ ", "error": "❌"}


def run(args) -> int:
    """
    Run doctor command.

    Args:
        args: Parsed arguments from argparse

    Returns:
        Exit code (0 when no check reports an error)
    """
    quiet = args.quiet
    fix = getattr(args, "fix", False)

    app = build_app(args)
    findings = app.diagnostics.diagnose()

    if args.json:
        print_json(findings)
        return 0 if all(f.status != "error" for f in findings) else 1

    if not quiet:
        safe_print("Running govm diagnostics...\n")
        logger.info("Starting environment diagnostics")

    passed = warnings = failed = 0
    for finding in findings:
        if finding.status == "ok":
            passed += 1
            if not quiet:
                safe_print(f"{_ICONS['ok']} {finding.item}: {finding.message}")
            continue

        if finding.status == "warn":
            warnings += 1
            if not quiet:
                safe_print(f"{_ICONS['warn']} {finding.item}: {finding.message}")
        else:
            failed += 1
            safe_print(f"{_ICONS['error']} {finding.item}: {finding.message}")
            logger.debug(f"{finding.item}: {finding.message}")

        if not fix and finding.fix:
            safe_print(f"   💡 Fix: {finding.fix}")

    if not quiet:
        safe_print(f"\nSummary: {passed} passed, {failed} failed, {warnings} warnings")

    if fix and (failed or warnings):
        actions = app.diagnostics.fix_all(findings)
        for action in actions:
            safe_print(f"🔧 {action}")
        if not actions:
            print("No issues could be auto-fixed")
        else:
            print(f'Reload your shell environment: . "{app.base_dir / "env.sh"}"')
        findings = app.diagnostics.diagnose()
        failed = sum(1 for f in findings if f.status == "error")

    if failed == 0:
        if not quiet:
            safe_print("\n✅ Your Go environment is healthy!")
        return 0

    safe_print(f"\n❌ Found {failed} issue(s) that need attention")
    return 1
