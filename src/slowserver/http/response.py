"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Builds the HTTP/1.1 responses the server sends.

Every response this server produces is a small JSON document:

    HTTP/1.1 200 OK\r\n
    Access-Control-Allow-Origin: *\r\n
    Content-Type: application/json; charset=utf-8\r\n
    Content-Length: 74\r\n
    Date: Sun, 18 Oct 2026 12:00:00 GMT\r\n
    Server: SlowServer/1.0\r\n
    \r\n
    {
      "message": "Hello from the Python server!",
      "timestamp": "2026-10-18T12:00:00.000Z"
    }

=============================================================================
ONE RESPONSE PER REQUEST
=============================================================================

Handlers never touch the socket. They RETURN an HTTPResponse and the
event loop writes it exactly once:

    handler(request, config) ──► HTTPResponse ──► to_bytes() ──► sendall()

Calling json_response() twice for one request just builds two objects;
only the one returned to the loop is sent.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union
import json

from ..config import DEFAULT_HEADERS
from .status_codes import HTTPStatus


# Body of every 500, whether the handler raised or its response could
# not be serialized.
INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be serialized.

    Use json_response() or ResponseBuilder rather than building these
    by hand.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Example: "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def json(self) -> Any:
        """The decoded JSON body (handy in tests)."""
        return json.loads(self.body.decode("utf-8"))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "SlowServer/1.0", include_body: bool = True) -> bytes:
        """
        Serialize the response for socket.sendall().

        Content-Length, Date and Server are filled in when missing.

        Args:
            server_name: Value for the Server header.
            include_body: False for HEAD requests. The headers still
                          describe the body that a GET would get.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + (self.body if include_body else b"")


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .json({"message": "Page not found"}, pretty=True)
            .build())

    Every method except build() returns self.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Mapping[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def default_headers(self, headers: Mapping[str, str]) -> "ResponseBuilder":
        """Add each header only if it has not been set already."""
        for name, value in headers.items():
            self._headers.setdefault(name, value)
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Set a JSON body.

        Keys keep their insertion order, non-ASCII text is written as
        UTF-8 rather than \\u escapes.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers.setdefault("Content-Type", "application/json; charset=utf-8")
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


# =============================================================================
# RESPONSE WRITER
# =============================================================================

def json_response(
    status: Union[HTTPStatus, int],
    payload: Mapping[str, Any],
    headers: Optional[Mapping[str, str]] = None,
) -> HTTPResponse:
    """
    Build the JSON response for a handler's payload.

    The CORS and Content-Type headers are applied only where the caller
    has not already set them, and the payload is pretty-printed with a
    two-space indent, fields in insertion order.

    Args:
        status: HTTP status code.
        payload: The body fields.
        headers: Headers to set before the defaults are applied.

    Returns:
        The response, ready for the event loop to send.
    """
    return (ResponseBuilder()
        .status(status)
        .headers(headers or {})
        .default_headers(DEFAULT_HEADERS)
        .json(dict(payload), pretty=True)
        .build())


def error_response(status: Union[HTTPStatus, int], error: str) -> HTTPResponse:
    """
    Build the error body used for 500s and for requests that never
    reached a handler (parse failures, oversized requests):

        {"error": "...", "timestamp": "...", "status": "error"}
    """
    return json_response(status, {
        "error": error,
        "timestamp": iso_timestamp(),
        "status": "error",
    })


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """
    ISO-8601 UTC timestamp with milliseconds, e.g. 2026-10-18T12:00:00.000Z.

    Args:
        moment: An aware datetime. Defaults to now.
    """
    moment = moment or datetime.now(timezone.utc)
    return (moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"))


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

    Example: Sun, 18 Oct 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
