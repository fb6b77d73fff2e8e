"""
=============================================================================
SERVER LIFECYCLE
=============================================================================

Ties configuration, dispatcher and event loop together, and owns the
one-shot lifecycle of the process:

    ┌──────────┐  start()   ┌───────────┐  SIGTERM / SIGINT  ┌──────────┐
    │ STOPPED  │ ─────────► │ LISTENING │ ─────────────────► │ STOPPING │
    └──────────┘            └───────────┘ request_shutdown() └────┬─────┘
         ▲                                                         │
         │                        stop()                           │
         └─────────────────────────────────────────────────────────┘

    STOPPED → LISTENING   bind + listen. Failure: log ERROR, raise
                          ServerStartError, state stays STOPPED.
    LISTENING → STOPPING  a termination signal (or request_shutdown()).
                          Only sets a flag: a handler already spinning in
                          /slow finishes and its response is sent.
    STOPPING → STOPPED    stop accepting, finish requests that already
                          arrived, close sockets, log SUCCESS.

There is no way back to LISTENING: a stopped server cannot be restarted.

=============================================================================
SIGNALS DURING A BLOCKING HANDLER
=============================================================================

Python runs signal handlers on the main thread between bytecodes, so a
SIGTERM that lands while /slow is spinning runs our handler right away,
in the middle of the busy loop. The handler only flips a flag. The spin
continues, the /slow client gets its 200, and only then does the loop
see the flag and shut down.

=============================================================================
"""

import logging
import signal
import threading
from enum import Enum
from typing import Optional

from .config import ServerConfig
from .core import EventLoop
from .dispatcher import Dispatcher
from .log import SERVER, SUCCESS, print_banner, setup_logging


logger = logging.getLogger(__name__)


class ServerState(Enum):
    STOPPED = "stopped"
    LISTENING = "listening"
    STOPPING = "stopping"


class ServerStartError(RuntimeError):
    """The listening socket could not be created (port in use, no permission...)."""


class HTTPServer:
    """
    The demo HTTP server.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=3000, slow_duration_ms=10_000))
        server.run()        # blocks until SIGTERM / SIGINT

    Or, driving the lifecycle by hand (tests do this from a thread):

        server = HTTPServer(ServerConfig(port=0))
        server.start()
        threading.Thread(target=server.serve_forever).start()
        ...
        server.request_shutdown()
        server.wait_for_shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None, dispatcher: Optional[Dispatcher] = None):
        """
        Args:
            config: Server configuration. Defaults to ServerConfig().
            dispatcher: Request dispatcher. Defaults to one built from config.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.dispatcher = dispatcher or Dispatcher(self.config)
        self._loop = EventLoop(self.config, self.dispatcher.dispatch)

        self._state = ServerState.STOPPED
        self._started = False
        self._original_handlers: dict = {}

        # Set once the server has gone all the way back to STOPPED.
        self._stopped_event = threading.Event()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> Optional[int]:
        """The bound port (useful with port=0), None before start()."""
        address = self._loop.address
        return address[1] if address else None

    @property
    def base_url(self) -> str:
        return f"http://{self.config.host}:{self.port}"

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        STOPPED → LISTENING: bind and listen.

        Raises:
            ServerStartError: If the socket cannot be bound. Logged at ERROR.
            RuntimeError: If this server has already been started once.
        """
        if self._started:
            raise RuntimeError("Server lifecycle is one-shot; create a new HTTPServer")
        self._started = True

        try:
            self._loop.open()
        except OSError as e:
            logger.error(f"Failed to start server on {self.config.host}:{self.config.port}: {e}")
            self._stopped_event.set()
            raise ServerStartError(str(e)) from e

        self._state = ServerState.LISTENING
        logger.debug(f"Listening on {self.config.host}:{self.port}")

    def serve_forever(self) -> None:
        """
        Run the event loop until a shutdown is requested, then stop().

        Requires start() to have succeeded.
        """
        if self._state != ServerState.LISTENING:
            raise RuntimeError("serve_forever() called before start()")

        try:
            self._loop.run_forever()
        finally:
            self.stop()

    def request_shutdown(self, reason: Optional[str] = None) -> None:
        """
        LISTENING → STOPPING.

        Idempotent. Safe from a signal handler or another thread. A
        running handler is never interrupted.
        """
        if self._state != ServerState.LISTENING:
            return

        if reason:
            logger.log(SERVER, reason)
        self._state = ServerState.STOPPING
        self._loop.request_stop()

    def stop(self) -> None:
        """
        STOPPING → STOPPED.

        1. Close the listening socket (no new connections)
        2. Answer requests that already arrived (best effort, no timeout)
        3. Close every client connection
        4. Log SUCCESS
        """
        if self._stopped_event.is_set():
            return

        self._state = ServerState.STOPPING
        self._loop.stop_accepting()
        try:
            self._loop.drain()
        finally:
            self._loop.close()
            self._state = ServerState.STOPPED
            logger.log(SUCCESS, "Server stopped successfully")
            self._stopped_event.set()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the server is STOPPED.

        Returns:
            True if it stopped, False on timeout.
        """
        return self._stopped_event.wait(timeout)

    def run(self) -> None:
        """
        Start, print the banner, and serve until SIGTERM/SIGINT.

        Raises:
            ServerStartError: If the port cannot be bound.
        """
        setup_logging(self.config.log_level, color=self.config.color)

        self.start()

        print_banner(
            self.base_url,
            self.config.slow_duration_ms,
            self.dispatcher.routes(),
            self.config.slow_path,
            color=self.config.color,
        )

        self._setup_signals()
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
            self.stop()
        finally:
            self._restore_signals()

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self) -> None:
        """
        Route SIGTERM (docker stop, kill) and SIGINT (Ctrl+C) to
        request_shutdown().

        Signals can only be installed from the main thread; elsewhere
        (tests running the server in a thread) this is a no-op.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self.request_shutdown(f"Received {signal_name}, shutting down...")

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
