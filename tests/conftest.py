"""
pytest configuration and fixtures.
"""

import json
import socket
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Generator, List, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
SRC_DIR = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC_DIR))

from slowserver import HTTPServer, ServerConfig


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /slow HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John"}'
    return (
        b"POST / HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: ephemeral port, short spin, fast polling."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        slow_duration_ms=300,
        poll_interval=0.05,
        timeout=5.0,
        color=False,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


# =============================================================================
# RAW HTTP CLIENT
# =============================================================================

@dataclass
class ClientResponse:
    """What a client saw on the wire."""
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self):
        return json.loads(self.body.decode("utf-8"))


def parse_response(data: bytes) -> ClientResponse:
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    _version, status, reason = lines[0].split(" ", 2)

    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return ClientResponse(status=int(status), reason=reason, headers=headers, body=body)


def http_request(
    port: int,
    path: str = "/",
    method: str = "GET",
    extra_headers: Optional[List[Tuple[str, str]]] = None,
    raw: Optional[bytes] = None,
    timeout: float = 15.0,
) -> ClientResponse:
    """
    Send one request on a fresh connection and read until the server closes.

    Args:
        raw: Send these exact bytes instead of building a request.
    """
    if raw is None:
        lines = [f"{method} {path} HTTP/1.1", "Host: localhost", "Connection: close"]
        for name, value in extra_headers or []:
            lines.append(f"{name}: {value}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(raw)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)

    return parse_response(b"".join(chunks))


@pytest.fixture
def client() -> Callable[..., ClientResponse]:
    """The raw-socket HTTP client as a fixture."""
    return http_request


# =============================================================================
# RUNNING SERVERS
# =============================================================================

class TestServer:
    """Test server helper that runs the event loop in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.port

    def start(self):
        """Bind, then serve in a background thread."""
        self.server.start()
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        """Request shutdown and wait for the loop thread to finish."""
        self.server.request_shutdown()
        self.server.wait_for_shutdown(timeout=15.0)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=15.0)


@pytest.fixture
def server_factory(config: ServerConfig) -> Generator[Callable[..., TestServer], None, None]:
    """
    Start servers on demand:

        srv = server_factory(slow_duration_ms=1000)
        client(srv.port, "/slow")
    """
    started: List[TestServer] = []

    def _start(dispatcher=None, **overrides) -> TestServer:
        server = HTTPServer(replace(config, **overrides), dispatcher=dispatcher)
        test_srv = TestServer(server)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield _start

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(server_factory) -> TestServer:
    """A running server with the default test configuration."""
    return server_factory()
