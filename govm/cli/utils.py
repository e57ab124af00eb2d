"""
Shared utilities for CLI commands.
"""

import json
import logging
import sys
from typing import Any, Optional

from govm.api import GovmApp, to_json
from govm.core.download import DownloadProgress

logger = logging.getLogger(__name__)


def build_app(args) -> GovmApp:
    """Engine facade for the base directory selected on the command line."""
    return GovmApp(base_dir=getattr(args, "base_dir", None))


# ============================================================================
# User Interface / Output Formatting
# ============================================================================


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def print_json(value: Any):
    print(json.dumps(to_json(value), indent=2, ensure_ascii=False))


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Falls back to ASCII-safe characters if Unicode symbols can't be encoded.
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        safe_message = (
            message.replace("✅", "[OK]")
            .replace("⚠️", "WARNING:")
            .replace("❌", "[ERROR]")
            .replace("💡", "Fix:")
            .replace("🔧", "[FIX]")
        )
        print(safe_message.encode("ascii", "replace").decode("ascii"), file=file)


class ProgressPrinter:
    """Download progress on one stderr line."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled and sys.stderr.isatty()
        self._shown = False

    def __call__(self, progress: DownloadProgress):
        if not self.enabled:
            return
        sys.stderr.write(f"\r{progress}".ljust(80))
        sys.stderr.flush()
        self._shown = True

    def finish(self):
        if self._shown:
            sys.stderr.write("\n")
            self._shown = False
