"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

    request.py       bytes ──► HTTPRequest
    response.py      payload ──► HTTPResponse ──► bytes
    status_codes.py  HTTPStatus enum with reason phrases

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, find_request_end
from .response import (
    HTTPResponse,
    ResponseBuilder,
    json_response,
    error_response,
    iso_timestamp,
    format_http_date,
    INTERNAL_ERROR_MESSAGE,
)
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "find_request_end",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "json_response",
    "error_response",
    "iso_timestamp",
    "format_http_date",
    "INTERNAL_ERROR_MESSAGE",

    # Status codes
    "HTTPStatus",
]
