"""Terminal capability detection used by the logger and startup banner."""

import locale
import os
import sys
from functools import lru_cache

import colorama

__all__ = ["supports_color", "supports_utf8"]


@lru_cache(maxsize=1)
def supports_utf8() -> bool:
    """Check if stdout can render the box-drawing banner.

    Returns:
        bool: True if the output encoding is a UTF variant
    """
    encoding = sys.stdout.encoding or locale.getpreferredencoding(False)
    return encoding.lower().startswith("utf")


@lru_cache(maxsize=1)
def supports_color() -> bool:
    """Check if stdout accepts ANSI color codes.

    ``NO_COLOR`` always disables colors and ``FORCE_COLOR`` always enables
    them. Otherwise colors require an interactive terminal, and on Windows a
    console known to understand escape sequences.

    Returns:
        bool: True if colored log output should be used
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True

    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    if sys.platform == "win32":
        return (
            getattr(colorama, "fixed_windows_console", False)
            or "ANSICON" in os.environ
            or "WT_SESSION" in os.environ  # Windows Terminal
            or os.environ.get("TERM_PROGRAM") == "vscode"
        )

    return os.environ.get("TERM") != "dumb"
