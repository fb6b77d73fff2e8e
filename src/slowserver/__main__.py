"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Defaults: 127.0.0.1:3000, /slow spins for 10 s
    python -m slowserver

    # Different port, shorter spin
    python -m slowserver --port 8080 --slow-ms 3000

    # Plain output (log files, CI)
    python -m slowserver --no-color

Exit codes:
    0   stopped cleanly after SIGTERM / SIGINT
    1   could not bind the port
    2   bad arguments or configuration

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig, DEFAULT_PORT, DEFAULT_SLOW_DURATION_MS
from .server import HTTPServer, ServerStartError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slowserver",
        description="Single-threaded HTTP server showing how a blocking handler starves other requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m slowserver                      # Run with defaults
  python -m slowserver --port 8080          # Custom port
  python -m slowserver --slow-ms 3000       # /slow blocks for 3 seconds
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # DEMO ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--slow-ms",
        type=int,
        default=DEFAULT_SLOW_DURATION_MS,
        help=f"How long GET /slow busy-spins, in milliseconds (default: {DEFAULT_SLOW_DURATION_MS})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # OUTPUT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored console output",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"slowserver {__version__}",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, build the server, run it.

    Returns:
        The process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ServerConfig.from_args(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        server = HTTPServer(config)
        server.run()
    except ServerStartError:
        # Already logged by HTTPServer.start()
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
