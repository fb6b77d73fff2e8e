"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one non-blocking client socket with a receive buffer, so the event
loop can ask "is there a whole request yet?" without ever waiting.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:   "GET /slow HTTP/1.1\r\nHost: x\r\n\r\n"

    Server may see: recv() → "GET /sl"
                    recv() → "ow HTTP/1.1\r\nHost: x\r\n\r\n"

So every recv() is appended to a buffer, and a request is only handed to
the dispatcher once its headers (\r\n\r\n) and its Content-Length body
are all there. Leftover bytes stay in the buffer for the next request.

=============================================================================
NON-BLOCKING READS, BLOCKING WRITES
=============================================================================

Reads never wait: the loop only calls fill_buffer() when select() says
the socket is readable, and a spurious wakeup just returns EMPTY.

Writes are small JSON documents, so send_response() switches the socket
to a bounded blocking sendall() and back. That keeps the loop simple:
once a response is written, it is gone.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──┬──► KEEP_ALIVE ──► READING ...
                                                 │
                                                 └──► CLOSED

=============================================================================
"""

import socket
import time
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..http.request import HTTPParseError, find_request_end


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in its lifecycle (used in logs and by the loop)."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


class ReadResult(Enum):
    """Outcome of one fill_buffer() call."""
    DATA = "data"        # bytes were appended to the buffer
    EMPTY = "empty"      # nothing to read right now
    CLOSED = "closed"    # peer closed or reset the connection


@dataclass(eq=False)
class Connection:
    """
    A client connection owned by the event loop.

    Attributes:
        socket: The non-blocking client socket.
        address: Client's (ip, port).
        id: Short identifier for log lines.
        state: Current ConnectionState.
        last_activity: time.monotonic() of the last read or write.
        requests_handled: Responses written on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    last_activity: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_open(self) -> bool:
        return self.state != ConnectionState.CLOSED

    @property
    def has_partial_request(self) -> bool:
        """Bytes received that do not yet form a whole request."""
        return bool(self._buffer)

    def idle_time(self, now: Optional[float] = None) -> float:
        """Seconds since the last read or write."""
        return (now if now is not None else time.monotonic()) - self.last_activity

    def fileno(self) -> int:
        return self.socket.fileno()

    # =========================================================================
    # READING
    # =========================================================================

    def fill_buffer(self) -> ReadResult:
        """
        Read whatever the kernel has for us, without waiting.

        Returns:
            DATA if bytes were buffered, EMPTY if the socket had nothing,
            CLOSED if the client went away.
        """
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (BlockingIOError, InterruptedError):
            return ReadResult.EMPTY
        except OSError as e:
            logger.debug(f"[{self.id}] Read failed: {e}")
            return ReadResult.CLOSED

        if not chunk:
            return ReadResult.CLOSED

        self.state = ConnectionState.READING
        self._buffer += chunk
        self.last_activity = time.monotonic()
        return ReadResult.DATA

    def next_request(self) -> Optional[bytes]:
        """
        Pop the first complete request off the buffer.

        Returns:
            The request bytes, or None if the buffer holds no complete
            request yet.

        Raises:
            HTTPParseError: 413 if the buffered data, or the headers plus
                            their declared body, exceed max_request_size,
                            400 if Content-Length is invalid.
        """
        request_end = find_request_end(self._buffer, self.max_request_size)

        if request_end == -1:
            if len(self._buffer) > self.max_request_size:
                raise HTTPParseError(
                    f"Request too large: {len(self._buffer)} bytes",
                    status_code=413,
                )
            return None

        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]
        self.state = ConnectionState.PROCESSING
        return request_data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Write a whole response.

        Returns:
            True if every byte was sent, False if the client is gone or
            the write timed out.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.settimeout(self.timeout)
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        finally:
            if self.socket.fileno() != -1:
                self.socket.setblocking(False)

        self.requests_handled += 1
        self.last_activity = time.monotonic()
        return True

    def set_keep_alive(self):
        """Response sent, waiting for the next request on this socket."""
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        1. shutdown(SHUT_WR) sends FIN: "no more data from us".
        2. Discard anything the client already sent, without waiting.
           Closing with unread data makes the kernel send RST, which can
           destroy the response we just wrote before the client reads it.
        3. close() releases the file descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            while self.socket.recv(self.buffer_size):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")
