"""
=============================================================================
ROUTE HANDLERS
=============================================================================

    GET /        root_handler       instant    200
    GET /slow    slow_handler       blocking   200 (after slow_duration_ms)
    anything     not_found_handler  instant    404

Every handler has the same shape:

    def handler(request: HTTPRequest, config: ServerConfig) -> HTTPResponse

Handlers do not catch their own exceptions. Whatever they raise is
contained by the Dispatcher and turned into a 500.

=============================================================================
"""

from .config import ServerConfig
from .http import HTTPRequest, HTTPResponse, HTTPStatus, json_response, iso_timestamp
from .work import simulate_long_operation


ROOT_MESSAGE = "Hello from the Python server!"
NOT_FOUND_MESSAGE = "Page not found"


def root_handler(request: HTTPRequest, config: ServerConfig) -> HTTPResponse:
    """Greeting plus the current time. Never blocks."""
    return json_response(HTTPStatus.OK, {
        "message": ROOT_MESSAGE,
        "timestamp": iso_timestamp(),
    })


def slow_handler(request: HTTPRequest, config: ServerConfig) -> HTTPResponse:
    """
    Run the blocking work, then report.

    The whole slow_duration_ms is spent inside this call stack. While it
    runs, the event loop is stuck here and no other request is read,
    dispatched or answered.
    """
    result = simulate_long_operation(config.slow_duration_ms)

    return json_response(HTTPStatus.OK, {
        "message": result,
        "timestamp": iso_timestamp(),
        "note": (
            f"This request blocked the event loop for "
            f"{config.slow_duration_seconds:g} seconds!"
        ),
    })


def not_found_handler(request: HTTPRequest, config: ServerConfig) -> HTTPResponse:
    return json_response(HTTPStatus.NOT_FOUND, {
        "message": NOT_FOUND_MESSAGE,
        "timestamp": iso_timestamp(),
    })
