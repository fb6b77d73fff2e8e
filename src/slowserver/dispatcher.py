"""
=============================================================================
REQUEST DISPATCHER
=============================================================================

The single point where a request meets a handler.

    HTTPRequest
        │
        ├──► log "Incoming request: GET /slow"      (always, before routing)
        │
        ├──► routes.get(request.path, not_found)    (exact string match)
        │
        ├──► handler(request, config)
        │        │
        │        └── raises, or returns no response? ──► log ERROR, 500 {"error", "timestamp", "status"}
        │
        ▼
    HTTPResponse                                     (dispatch never raises)

=============================================================================
EXACT MATCH, NOT A ROUTER
=============================================================================

Two literal paths don't need patterns, prefixes or parameters. A dict
lookup on the request target is all there is:

    "/"           → root_handler
    "/slow"       → slow_handler
    "/slow/"      → not_found_handler
    "/?name=x"    → not_found_handler
    "/SLOW"       → not_found_handler

The method is not part of the key: POST / is answered by root_handler,
the same way GET / is.

=============================================================================
"""

import logging
from typing import Callable, Dict, List, Tuple

from .config import ServerConfig
from .handlers import root_handler, slow_handler, not_found_handler
from .http import (
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    INTERNAL_ERROR_MESSAGE,
    error_response,
)


logger = logging.getLogger(__name__)

Handler = Callable[[HTTPRequest, ServerConfig], HTTPResponse]


class Dispatcher:
    """
    Routes requests to handlers and contains handler failures.

    Usage:
        dispatcher = Dispatcher(config)
        response = dispatcher.dispatch(request)   # always returns
    """

    def __init__(self, config: ServerConfig, not_found: Handler = not_found_handler):
        self.config = config
        self._not_found = not_found
        self._routes: Dict[str, Handler] = {}

        self.add_route(config.root_path, root_handler)
        self.add_route(config.slow_path, slow_handler)

    def add_route(self, path: str, handler: Handler) -> None:
        """
        Register `handler` for requests whose target is exactly `path`.

        Registering the same path again replaces the previous handler.
        """
        self._routes[path] = handler

    def routes(self) -> List[Tuple[str, Handler]]:
        """Registered (path, handler) pairs, in registration order."""
        return list(self._routes.items())

    def resolve(self, path: str) -> Handler:
        """The handler for `path`, or the not-found handler."""
        return self._routes.get(path, self._not_found)

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Log, route and run the handler for one request.

        Any exception raised by the handler, or a return value that is
        not an HTTPResponse, is logged and answered with a 500. Nothing
        propagates past this method.
        """
        logger.info(f"Incoming request: {request.method} {request.path}")

        handler = self.resolve(request.path)

        try:
            response = handler(request, self.config)
            if not isinstance(response, HTTPResponse):
                raise TypeError(f"handler returned {type(response).__name__}, not HTTPResponse")
            return response
        except Exception as e:
            logger.error(f"Error while handling request: {str(e) or type(e).__name__}")
            logger.debug("Handler traceback", exc_info=True)
            return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    __call__ = dispatch
