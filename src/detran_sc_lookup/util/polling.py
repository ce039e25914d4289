from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar


T = TypeVar("T")


def backoff_delays(*, initial_ms: int, max_ms: int, factor: float = 2.0):
    """Yield an endless sequence of exponentially growing delays (ms), capped at max_ms."""
    delay = max(int(initial_ms), 1)
    while True:
        yield delay
        delay = min(int(delay * factor), int(max_ms))


def poll_until(
    predicate: Callable[[], Optional[T]],
    *,
    timeout_ms: int,
    initial_delay_ms: int = 250,
    max_delay_ms: int = 2_000,
    factor: float = 2.0,
    sleep: Callable[[int], None] = lambda ms: time.sleep(ms / 1000),
    clock: Callable[[], float] = time.monotonic,
) -> Optional[T]:
    """
    Re-test `predicate` until it returns a truthy value or `timeout_ms` elapses.

    Returns the predicate's value, or None on timeout. The predicate is always tested at least once
    and once more right at the deadline. Pass `sleep=page.wait_for_timeout` when polling a Playwright
    page so the browser keeps processing events between attempts.
    """
    deadline = clock() + (timeout_ms / 1000)
    delays = backoff_delays(initial_ms=initial_delay_ms, max_ms=max_delay_ms, factor=factor)
    while True:
        value = predicate()
        if value:
            return value

        remaining_ms = int((deadline - clock()) * 1000)
        if remaining_ms <= 0:
            return None
        sleep(min(next(delays), remaining_ms))
