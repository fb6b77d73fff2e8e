"""
=============================================================================
SINGLE-THREADED EVENT LOOP
=============================================================================

One thread. One selector. Every socket non-blocking.

=============================================================================
THE LOOP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         run_once()                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   select(timeout)          ◄── the ONLY place the loop waits         │
    │       │                                                              │
    │       ├── listening socket readable ──► accept() every pending client│
    │       │                                                              │
    │       ├── client socket readable ──► recv() into its buffer          │
    │       │        │                                                     │
    │       │        └── whole request? ──► handler(request)  ◄── BLOCKS   │
    │       │                                 │                  the loop  │
    │       │                                 ▼                  for as    │
    │       │                              sendall(response)     long as   │
    │       │                                                    it runs   │
    │       └── wakeup socket readable ──► drain it (shutdown requested)   │
    │                                                                      │
    │   close connections idle longer than keep_alive_timeout              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers run INSIDE run_once(). While one is running, nobody calls
select(), nobody calls accept(), nobody calls recv(). New clients pile up
in the kernel's accept queue (see ServerConfig.backlog) and their bytes
pile up in kernel socket buffers. They are not lost, just ignored until
the handler returns.

This is the same shape as Node's event loop or a single asyncio loop:
I/O readiness is the only suspension point, and a handler that computes
for ten seconds holds the whole server for ten seconds.

=============================================================================
ORDERING
=============================================================================

Requests are dispatched in the order their sockets show up as readable.
A request that arrives while a handler is running is picked up by the
NEXT select(), after that handler's response has been written.

=============================================================================
WAKING THE LOOP
=============================================================================

request_stop() may be called from a signal handler or another thread
while the loop sits in select(). It writes one byte to a socketpair that
is registered with the selector, so select() returns at once instead of
waiting out its timeout.

=============================================================================
"""

import logging
import selectors
import socket
import time
from typing import Callable, Dict, Optional, Tuple

from ..config import ServerConfig
from ..http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    INTERNAL_ERROR_MESSAGE,
    RequestParser,
    error_response,
)
from .connection import Connection, ConnectionState, ReadResult


logger = logging.getLogger(__name__)

RequestHandler = Callable[[HTTPRequest], HTTPResponse]

_LISTENER = "listener"
_WAKEUP = "wakeup"


class EventLoop:
    """
    Accepts connections and dispatches requests on the calling thread.

    Usage:
        loop = EventLoop(config, dispatcher.dispatch)
        loop.open()                   # bind + listen, raises OSError
        while not done:
            loop.run_once()
        loop.stop_accepting()
        loop.drain()
        loop.close()
    """

    def __init__(self, config: ServerConfig, request_handler: RequestHandler):
        self.config = config
        self._request_handler = request_handler
        self._parser = RequestParser(max_request_size=config.max_request_size)

        self._selector: Optional[selectors.BaseSelector] = None
        self._listener: Optional[socket.socket] = None
        self._wakeup_r: Optional[socket.socket] = None
        self._wakeup_w: Optional[socket.socket] = None
        self._connections: Dict[int, Connection] = {}
        self._address: Optional[Tuple[str, int]] = None

        self._stop_requested = False
        self._last_sweep = time.monotonic()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port), once open() has succeeded."""
        return self._address

    @property
    def is_accepting(self) -> bool:
        return self._listener is not None

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        """
        Create the listening socket.

        SO_REUSEADDR lets a restarted server bind while old connections
        sit in TIME_WAIT. It does NOT let two live servers share a port,
        so binding a port that is really in use still fails.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return sock

    def open(self) -> Tuple[str, int]:
        """
        Bind, listen and register the listening socket.

        Returns:
            The bound (host, port). Port 0 in the config is replaced by
            the port the OS picked.

        Raises:
            OSError: If the address cannot be bound (in use, no
                     permission, unknown host).
        """
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise

        self._listener = sock
        self._address = sock.getsockname()[:2]

        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ, data=_LISTENER)

        self._wakeup_r, self._wakeup_w = socket.socketpair()
        self._wakeup_r.setblocking(False)
        self._wakeup_w.setblocking(False)
        self._selector.register(self._wakeup_r, selectors.EVENT_READ, data=_WAKEUP)

        return self._address

    # =========================================================================
    # RUNNING
    # =========================================================================

    def run_forever(self) -> None:
        """Tick until request_stop() is called."""
        while not self._stop_requested:
            self.run_once()

    def run_once(self, timeout: Optional[float] = None) -> None:
        """
        One select() and everything that became ready during it.

        Args:
            timeout: Seconds select() may wait. Defaults to
                     config.poll_interval.
        """
        if self._selector is None:
            raise RuntimeError("EventLoop.open() has not been called")

        wait = self.config.poll_interval if timeout is None else timeout
        try:
            events = self._selector.select(timeout=wait)
        except OSError:
            if self._stop_requested:
                return
            raise

        for key, _mask in events:
            if key.data == _LISTENER:
                self._accept_clients()
            elif key.data == _WAKEUP:
                self._drain_wakeup()
            else:
                self._on_readable(key.data)

        now = time.monotonic()
        if now - self._last_sweep >= min(1.0, self.config.keep_alive_timeout):
            self._sweep_idle_connections(now)
            self._last_sweep = now

    def request_stop(self) -> None:
        """
        Ask run_forever() to return after the current tick.

        Safe to call from a signal handler or another thread. Does not
        interrupt a handler that is already running.
        """
        self._stop_requested = True
        if self._wakeup_w is not None:
            try:
                self._wakeup_w.send(b"\0")
            except OSError:
                pass

    def _drain_wakeup(self) -> None:
        try:
            while self._wakeup_r.recv(64):
                pass
        except OSError:
            pass

    # =========================================================================
    # ACCEPTING
    # =========================================================================

    def _accept_clients(self) -> None:
        """Accept every connection waiting in the backlog."""
        while self._listener is not None:
            try:
                client_socket, client_address = self._listener.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                logger.error(f"Accept error: {e}")
                return

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                max_request_size=self.config.max_request_size,
            )
            self._connections[conn.fileno()] = conn
            self._selector.register(client_socket, selectors.EVENT_READ, data=conn)

            logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{client_address[1]}")

    # =========================================================================
    # READING AND DISPATCHING
    # =========================================================================

    def _on_readable(self, conn: Connection) -> None:
        result = conn.fill_buffer()

        if result is ReadResult.CLOSED:
            self._close(conn)
            return

        if result is ReadResult.DATA:
            self._serve_buffered(conn)

    def _serve_buffered(self, conn: Connection) -> None:
        """
        Dispatch every complete request sitting in the buffer, in order.

        Each request gets exactly one response before the next one is
        looked at.
        """
        while conn.is_open:
            try:
                raw_request = conn.next_request()
                if raw_request is None:
                    return
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                logger.warning(f"[{conn.id}] Bad request: {e}")
                self._reject(conn, HTTPStatus(e.status_code), str(e))
                return

            keep_alive = (
                self.config.keep_alive
                and request.is_keep_alive
                and not self._stop_requested
            )

            try:
                data = self._serialize(self._request_handler(request), request, keep_alive)
            except Exception as e:
                logger.error(f"[{conn.id}] Could not build response: {str(e) or type(e).__name__}")
                logger.debug("Response traceback", exc_info=True)
                keep_alive = False
                error = error_response(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)
                data = self._serialize(error, request, keep_alive)

            if not conn.send_response(data) or not keep_alive:
                self._close(conn)
                return

            conn.set_keep_alive()

    def _serialize(self, response: HTTPResponse, request: HTTPRequest, keep_alive: bool) -> bytes:
        """
        Turn a handler's response into wire bytes.

        Raises whatever a malformed response raises (no HTTPResponse,
        header values that are not latin-1), so the caller can answer 500.
        """
        if not keep_alive:
            response.set_header("Connection", "close")
        return response.to_bytes(self.config.server_name, include_body=not request.is_head)

    def _reject(self, conn: Connection, status: HTTPStatus, message: str) -> None:
        """Answer a request that never reached the dispatcher, then close."""
        response = error_response(status, message).set_header("Connection", "close")
        conn.send_response(response.to_bytes(self.config.server_name))
        self._close(conn)

    # =========================================================================
    # IDLE CONNECTIONS
    # =========================================================================

    def _sweep_idle_connections(self, now: float) -> None:
        """
        Close connections that have been quiet for too long.

        A connection can look idle only because the loop itself was busy
        (a ten second /slow leaves every other socket "idle" for ten
        seconds). So before closing, read once more: if data turns up, it
        is served instead.
        """
        for conn in list(self._connections.values()):
            if conn.state == ConnectionState.KEEP_ALIVE:
                limit = self.config.keep_alive_timeout
            else:
                limit = self.config.timeout or self.config.keep_alive_timeout

            if conn.idle_time(now) <= limit:
                continue

            result = conn.fill_buffer()
            if result is ReadResult.DATA:
                self._serve_buffered(conn)
            elif result is ReadResult.CLOSED:
                self._close(conn)
            elif conn.has_partial_request:
                logger.debug(f"[{conn.id}] Request read timeout")
                self._reject(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
            else:
                self._close(conn)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def stop_accepting(self) -> None:
        """Close the listening socket. Clients still in the backlog are refused."""
        if self._listener is None:
            return

        try:
            self._selector.unregister(self._listener)
        except (KeyError, ValueError):
            pass
        self._listener.close()
        self._listener = None

    def drain(self) -> None:
        """
        Finish requests that have already arrived on open connections.

        Best effort: one non-blocking read per connection, then every
        complete request in its buffer is answered with Connection: close.
        """
        self._stop_requested = True
        for conn in list(self._connections.values()):
            if conn.fill_buffer() is ReadResult.CLOSED:
                self._close(conn)
                continue
            self._serve_buffered(conn)

    def close(self) -> None:
        """Close every client connection, the wakeup pair and the selector."""
        for conn in list(self._connections.values()):
            self._close(conn)

        self.stop_accepting()

        for sock in (self._wakeup_r, self._wakeup_w):
            if sock is not None:
                sock.close()
        self._wakeup_r = self._wakeup_w = None

        if self._selector is not None:
            self._selector.close()
            self._selector = None

    def _close(self, conn: Connection) -> None:
        fileno = conn.fileno()
        if self._connections.pop(fileno, None) is None:
            return

        try:
            self._selector.unregister(conn.socket)
        except (KeyError, ValueError):
            pass

        conn.close()
