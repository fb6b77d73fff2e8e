"""
=============================================================================
CORE NETWORKING
=============================================================================

    event_loop.py   one thread, one selector: accept, read, dispatch, write
    connection.py   per-client buffer and socket wrapper

No thread pool. Every request is handled on the thread that runs the
loop, one at a time.

=============================================================================
"""

from .event_loop import EventLoop
from .connection import Connection, ConnectionState, ReadResult

__all__ = [
    "EventLoop",
    "Connection",
    "ConnectionState",
    "ReadResult",
]
