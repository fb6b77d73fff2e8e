"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one complete request into an HTTPRequest.

=============================================================================
WHAT THE DISPATCHER NEEDS
=============================================================================

Only two things: the METHOD (for the log line) and the PATH (for routing).

    GET /slow?verbose=1 HTTP/1.1\r\n
    ─┬─ ───────┬─────── ────┬───
   method     path       version

The path is kept EXACTLY as the client sent it, query string and all.
Routing is strict string equality, so

    "/slow"            → slow handler
    "/slow?verbose=1"  → not found
    "/slow/"           → not found

No URL-decoding, no query parsing, no normalization.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code the client should receive:

        400 Bad Request                 - malformed syntax
        405 Method Not Allowed          - unknown method token
        413 Payload Too Large           - request exceeds size limit
        505 HTTP Version Not Supported  - not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class HTTPRequest:
    """
    Request descriptor handed to the dispatcher.

    Frozen: handlers read it, nobody writes it. It lives for exactly one
    request.

    Attributes:
        method:         "GET", "POST", ...
        path:           Request target exactly as sent ("/slow", "/?a=1")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name (lowercase) → value
        body:           Raw body bytes (Content-Length sized)
        client_address: (ip, port) of the client
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: Tuple[str, int] = ("", 0)

    @property
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @property
    def is_keep_alive(self) -> bool:
        """
        Should the connection stay open after the response?

            HTTP/1.1: yes, unless "Connection: close"
            HTTP/1.0: no, unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw Request Bytes
              │
              ├──► split at \\r\\n\\r\\n    header section / body
              ├──► request line         method, target, version
              ├──► header lines         lowercase name → value
              └──► body                 Content-Length bytes
              │
              ▼
        HTTPRequest
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse one complete HTTP request.

        Args:
            data: Request bytes, headers through the end of the body.
            client_address: Client's (ip, port) for the descriptor.

        Returns:
            The parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            (method, target, version), target untouched.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        return method, target, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2).
        Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def find_request_end(buffer: bytes, max_request_size: Optional[int] = None) -> int:
    """
    Where does the first complete request in `buffer` end?

    TCP is a byte stream: a recv() may return half a request, or one and
    a half. The connection keeps appending to its buffer and asks this
    function whether a whole request has arrived yet.

    Args:
        buffer: Bytes received so far.
        max_request_size: Reject a request whose headers plus declared
                          body would exceed this, as soon as the headers
                          are in.

    Returns:
        Index one past the last byte of the first request, or -1 if the
        headers (or the Content-Length body) are not complete yet.

    Raises:
        HTTPParseError: 400 if Content-Length is not a non-negative
                        integer, 413 if the request would be too large.
    """
    header_end = buffer.find(b"\r\n\r\n")
    if header_end == -1:
        return -1

    content_length = 0
    for line in buffer[:header_end].split(b"\r\n")[1:]:
        name, sep, value = line.partition(b":")
        if sep and name.strip().lower() == b"content-length":
            try:
                content_length = int(value.strip())
            except ValueError:
                raise HTTPParseError("Invalid Content-Length header")
            if content_length < 0:
                raise HTTPParseError("Invalid Content-Length header")
            break

    request_end = header_end + 4 + content_length
    if max_request_size is not None and request_end > max_request_size:
        raise HTTPParseError(
            f"Request too large: {request_end} bytes",
            status_code=413,
        )

    if len(buffer) < request_end:
        return -1
    return request_end
