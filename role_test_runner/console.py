"""Colored console output."""

import logging
import sys

from colorama import Fore, Style, just_fix_windows_console

STATUS_SYMBOLS = {
    "PASS": "✅",
    "FAIL": "❌",
}

LEVEL_STYLES = {
    logging.DEBUG: (Style.DIM, ""),
    logging.INFO: (Fore.BLUE, "ℹ️  "),
    logging.WARNING: (Fore.YELLOW, "⚠️  "),
    logging.ERROR: (Fore.RED, "❌ "),
    logging.CRITICAL: (Fore.RED + Style.BRIGHT, "❌ "),
}

RESULT_COLORS = {
    "PASS": Fore.GREEN,
    "FAIL": Fore.RED,
}


def colorize(text: str, color: str, *, enabled: bool = True) -> str:
    """Wrap text in a color code when coloring is enabled."""
    if not enabled:
        return text
    return f"{color}{text}{Style.RESET_ALL}"


def color_result(result: str, *, enabled: bool = True) -> str:
    """PASS in green, FAIL in red."""
    return colorize(result, RESULT_COLORS.get(result, ""), enabled=enabled)


class StatusFormatter(logging.Formatter):
    """One colored status line per record, prefixed with a status symbol."""

    def __init__(self, *, color: bool = True) -> None:
        """Create the formatter, optionally without color codes."""
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        """Format a record as a status line."""
        message = super().format(record)
        color, symbol = LEVEL_STYLES.get(record.levelno, ("", ""))
        return colorize(f"{symbol}{message}", color, enabled=self.color)


def configure_logging(*, verbose: bool = False) -> None:
    """Send status lines to stderr, colored when it is a terminal."""
    just_fix_windows_console()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StatusFormatter(color=sys.stderr.isatty()))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=[handler],
        force=True,
    )
