"""
=============================================================================
SLOWSERVER - What One Blocking Handler Does To A Single-Threaded Server
=============================================================================

A tiny HTTP/1.1 server with two routes:

    GET /        answers instantly
    GET /slow    busy-spins for 10 seconds, then answers

Both run on the same, single event-loop thread. Try it:

    $ python -m slowserver
    $ curl localhost:3000/slow &      # starts spinning
    $ curl localhost:3000/            # ...waits ~10 s for an "instant" route

The second curl is not slow because "/" is slow. It is slow because the
loop that would read it is stuck inside the first request.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    slowserver/
    ├── __init__.py        # This file - package exports
    ├── __main__.py        # CLI entry point (python -m slowserver)
    ├── config.py          # ServerConfig frozen dataclass
    ├── log.py             # colorlog console output, log categories, banner
    ├── server.py          # HTTPServer: lifecycle + signals
    ├── dispatcher.py      # exact-match routing + 500 containment
    ├── handlers.py        # root, slow, not-found
    ├── work.py            # the busy-spin
    ├── core/
    │   ├── event_loop.py  # selectors loop: accept, read, dispatch, write
    │   └── connection.py  # per-client buffering
    └── http/
        ├── request.py     # HTTPRequest + RequestParser
        ├── response.py    # HTTPResponse, ResponseBuilder, json_response
        └── status_codes.py

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import HTTPServer, ServerState, ServerStartError

__all__ = ["HTTPServer", "ServerConfig", "ServerState", "ServerStartError", "__version__"]
