"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized, immutable configuration for the demo server.

=============================================================================
WHY A FROZEN DATACLASS?
=============================================================================

Every request handler reads configuration, none of them may change it.
A frozen dataclass gives us that for free:

    config = ServerConfig(port=3000)
    config.port = 4000      # dataclasses.FrozenInstanceError

The server builds ONE ServerConfig at process start and passes it down
explicitly:

    __main__.main()
        └──► ServerConfig.from_args(args)
                 └──► HTTPServer(config)
                          ├──► Dispatcher(config)
                          │        └──► handlers(request, config)
                          │                 └──► simulate_long_operation(config.slow_duration_ms)
                          └──► EventLoop(config, ...)

No module-level mutable state, nothing to reset between tests.

To derive a variant (tests do this a lot), use dataclasses.replace():

    fast = replace(config, slow_duration_ms=200)

=============================================================================
"""

from dataclasses import dataclass
from typing import Dict, Optional


# =============================================================================
# ROUTES AND HEADERS
# =============================================================================
# The only two paths the server knows. Matching is exact string equality
# against the request target, so "/slow/" and "/?a=1" are NOT these routes.

ROOT_PATH = "/"
SLOW_PATH = "/slow"

# Sent on every response (set only when a handler has not set them already).
DEFAULT_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Content-Type": "application/json; charset=utf-8",
}

DEFAULT_PORT = 3000
DEFAULT_SLOW_DURATION_MS = 10_000


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the demo server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout, poll_interval

    HTTP SETTINGS
    - keep_alive, keep_alive_timeout, max_request_size, server_name

    DEMO SETTINGS
    - slow_duration_ms, root_path, slow_path

    LOGGING
    - log_level, color

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (default)
    - "0.0.0.0" - All network interfaces (containers)
    """

    port: int = DEFAULT_PORT
    """
    The port number to listen on. 0 asks the OS for a free port,
    which is what the tests use.
    """

    backlog: int = 128
    """
    Maximum number of connections the kernel queues for us.
    While /slow is spinning, new clients wait HERE, in the accept queue.
    """

    buffer_size: int = 8192
    """Bytes read per recv() call."""

    timeout: Optional[float] = 30.0
    """
    Timeout in seconds for writing a response back to a client.
    None = block forever.
    """

    poll_interval: float = 0.5
    """
    How long one select() call may wait before the loop re-checks
    whether a shutdown was requested.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Honour HTTP keep-alive (HTTP/1.1 default) between requests."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 1024 * 1024  # 1 MB
    """Largest request (headers + body) we are willing to buffer."""

    server_name: str = "SlowServer/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # DEMO SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    slow_duration_ms: int = DEFAULT_SLOW_DURATION_MS
    """
    How long the /slow handler busy-spins, in milliseconds.
    Every other request waits at least this long behind it.
    """

    root_path: str = ROOT_PATH
    slow_path: str = SLOW_PATH

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    color: bool = True
    """Colorize console output."""

    @property
    def slow_duration_seconds(self) -> float:
        """The busy-spin duration in seconds."""
        return self.slow_duration_ms / 1000

    @classmethod
    def from_args(cls, args) -> "ServerConfig":
        """
        Create configuration from parsed command-line arguments.

        Args:
            args: argparse.Namespace with host, port, slow_ms, log_level
                  and no_color attributes.

        Returns:
            A validated ServerConfig.
        """
        config = cls(
            host=args.host,
            port=args.port,
            slow_duration_ms=args.slow_ms,
            log_level=args.log_level,
            color=not args.no_color,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup. Invalid values are reported immediately
        rather than on the first request that happens to need them.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.slow_duration_ms < 0:
            raise ValueError(f"slow_duration_ms must be >= 0, got {self.slow_duration_ms}")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.root_path == self.slow_path:
            raise ValueError("root_path and slow_path must differ")
