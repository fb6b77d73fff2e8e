"""
=============================================================================
CONSOLE LOGGING
=============================================================================

Timestamped, categorized, colored log lines for the operator console:

    [INFO] [2026-10-18T12:00:00.000Z] Incoming request: GET /slow
    [CLOCK] [2026-10-18T12:00:00.001Z] Slow request processing started
    [SLOW] [2026-10-18T12:00:10.001Z] Slow request processing finished
    [INFO] [2026-10-18T12:00:10.002Z] Incoming request: GET /

Reading the timestamps is the whole point of the demo: the "GET /" that
the client sent at 12:00:01 is only logged at 12:00:10, because the loop
was busy spinning inside /slow.

=============================================================================
CATEGORIES AS LOG LEVELS
=============================================================================

The standard levels (DEBUG, INFO, WARNING, ERROR) are not enough to tell
"the slow work started" from "a request came in". Each extra category is
registered as its own level between INFO and WARNING:

    INFO     20   request received
    CLOCK    21   blocking work started
    SLOW     22   blocking work finished
    SERVER   23   lifecycle (shutdown requested)
    SUCCESS  24   clean shutdown
    WARNING  30
    ERROR    40   handler failure, bind failure

Because they are real levels, colorlog can color them by name and the
usual level filtering (--log-level WARNING) hides them all at once.

Modules log through their own logger, as usual:

    logger = logging.getLogger(__name__)
    logger.log(CLOCK, "Slow request processing started")

=============================================================================
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Tuple

import colorlog
from colorlog.escape_codes import escape_codes

from .http.response import iso_timestamp


# ═══════════════════════════════════════════════════════════════════════════
# CUSTOM LEVELS
# ═══════════════════════════════════════════════════════════════════════════

CLOCK = 21
SLOW = 22
SERVER = 23
SUCCESS = 24

for _level, _name in (
    (CLOCK, "CLOCK"),
    (SLOW, "SLOW"),
    (SERVER, "SERVER"),
    (SUCCESS, "SUCCESS"),
):
    logging.addLevelName(_level, _name)

LOG_COLORS = {
    "DEBUG": "white",
    "INFO": "cyan",
    "CLOCK": "blue",
    "SLOW": "blue",
    "SERVER": "purple",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

LOG_FORMAT = "%(log_color)s[%(levelname)s]%(reset)s %(thin)s[%(asctime)s]%(reset)s %(message)s"

# Everything under this name is ours.
PACKAGE_LOGGER = "slowserver"


class ConsoleFormatter(colorlog.ColoredFormatter):
    """ColoredFormatter that stamps records with an ISO-8601 UTC time."""

    def formatTime(self, record, datefmt=None):
        return iso_timestamp(datetime.fromtimestamp(record.created, timezone.utc))


def setup_logging(level: str = "INFO", color: bool = True, stream=None) -> logging.Handler:
    """
    Install the console handler on the package logger.

    Safe to call more than once: a previously installed console handler
    is replaced, never duplicated.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR).
        color: False to strip ANSI escapes (log files, CI output).
        stream: Where to write. Defaults to stdout.

    Returns:
        The installed handler.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    for existing in list(package_logger.handlers):
        if getattr(existing, "_slowserver_console", False):
            package_logger.removeHandler(existing)

    handler = colorlog.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ConsoleFormatter(
        LOG_FORMAT,
        log_colors=LOG_COLORS,
        reset=True,
        no_color=not color,
    ))
    handler._slowserver_console = True

    package_logger.addHandler(handler)
    package_logger.setLevel(level_for(level))
    return handler


# ═══════════════════════════════════════════════════════════════════════════
# STARTUP BANNER
# ═══════════════════════════════════════════════════════════════════════════

def _paint(text: str, color: str, enabled: bool) -> str:
    if not enabled:
        return text
    return f"{escape_codes[color]}{text}{escape_codes['reset']}"


def print_banner(
    base_url: str,
    slow_duration_ms: int,
    routes: Iterable[Tuple[str, Callable]],
    slow_path: str,
    color: bool = True,
    out=None,
) -> None:
    """
    Print the startup banner.

    Written straight to `out`, not through the logger, so it is shown
    whole at every --log-level.

    Example output:

        ────────────────────────────────────────────────────────────
        [SERVER] Python server running at http://127.0.0.1:3000
        ────────────────────────────────────────────────────────────

        • Available routes:
           [FAST] GET / - fast response
           [SLOW] GET /slow - slow response (10 s)

        [WARNING] Problem: the event loop blocks during long operations!
        ────────────────────────────────────────────────────────────
    """
    out = out or sys.stdout
    rule = _paint("─" * 60, "cyan", color)

    print(file=out)
    print(rule, file=out)
    server = _paint("[SERVER]", "purple", color)
    print(f"{server} Python server running at {base_url}", file=out)
    print(rule, file=out)

    print(file=out)
    print(_paint("• Available routes:", "yellow", color), file=out)
    seconds = slow_duration_ms / 1000
    for path, _handler in routes:
        if path == slow_path:
            label = _paint("[SLOW]", "blue", color)
            print(f"   {label} GET {path} - slow response ({seconds:g} s)", file=out)
        else:
            label = _paint("[FAST]", "green", color)
            print(f"   {label} GET {path} - fast response", file=out)

    print(file=out)
    warning = _paint("[WARNING]", "yellow", color)
    print(f"{warning} Problem: the event loop blocks during long operations!", file=out)
    print(rule, file=out)
    print(file=out)


def level_for(name: Optional[str]) -> int:
    """Map a level name (including the custom ones) to its number."""
    if not name:
        return logging.INFO
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO
