"""
=============================================================================
BLOCKING WORK SIMULATOR
=============================================================================

Pretends to be an expensive synchronous computation (a heavy report, an
un-indexed query, image resizing) by spinning on the clock.

=============================================================================
WHY SPIN INSTEAD OF time.sleep()?
=============================================================================

Both take ten seconds. Only one of them is a demonstration.

    time.sleep(10)
        The OS parks the thread. In a server with more threads (or an
        asyncio server using asyncio.sleep), someone else gets to run.

    while clock() - start < 10: pass
        The CPU is busy the whole time, inside the handler's call stack.
        The event loop never gets control back, so it cannot accept,
        read, or answer anyone else until the loop finishes.

That second shape is what a real CPU-bound handler looks like, and it is
exactly what starves a single-threaded server:

    t=0s    GET /slow  ──► handler starts spinning
    t=1s    GET /      ──► sits in the kernel's socket buffer
    ...
    t=10s   /slow responds, loop wakes up, / is finally read and answered

Do NOT "fix" this into a sleep. The busy wait IS the lesson.

=============================================================================
"""

import logging
import time
from typing import Callable

from .log import CLOCK, SLOW


logger = logging.getLogger(__name__)

RESULT_MESSAGE = "Long operation completed!"


def simulate_long_operation(
    duration_ms: int,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """
    Occupy the calling thread for at least `duration_ms` milliseconds.

    Polls `clock` in a tight loop. There is no cancellation and no
    timeout: once entered, it always runs to completion.

    Args:
        duration_ms: How long to spin, in milliseconds. 0 returns at once.
        clock: Monotonic clock in seconds. Injectable for tests.

    Returns:
        The fixed completion message.

    Raises:
        ValueError: If duration_ms is negative.
    """
    if duration_ms < 0:
        raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")

    logger.log(CLOCK, "Slow request processing started")

    duration = duration_ms / 1000
    start = clock()
    while clock() - start < duration:
        pass

    logger.log(SLOW, "Slow request processing finished")
    return RESULT_MESSAGE
