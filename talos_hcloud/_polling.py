"""Synchronous polling used for every blocking wait in the cluster flows."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from talos_hcloud._cluster_errors import WaitTimeoutError

T = TypeVar("T")


def wait_until(
    check: Callable[[], T],
    *,
    description: str,
    interval: float,
    timeout: float | None = None,
    on_pending: Callable[[T], object] | None = None,
    sleep: Callable[[float], object] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call *check* until it returns a truthy value and return that value.

    Parameters
    ----------
    check
        Probe invoked once per attempt. Falsy results mean "not yet".
    description
        Short phrase used in the timeout message.
    interval
        Seconds to sleep between attempts.
    timeout
        Deadline in seconds; ``None`` polls until interrupted.
    on_pending
        Called with each falsy result, typically to print progress.
    sleep, clock
        Injection points for tests.

    Raises
    ------
    WaitTimeoutError
        When *timeout* elapses before *check* succeeds.

    Examples
    --------
    >>> answers = iter([0, 0, 3])
    >>> wait_until(lambda: next(answers), description="answer", interval=0)
    3
    """

    deadline = None if timeout is None else clock() + timeout
    while True:
        result = check()
        if result:
            return result
        if on_pending is not None:
            on_pending(result)
        if deadline is not None and clock() >= deadline:
            msg = f"Timed out after {timeout:g}s waiting for {description}"
            raise WaitTimeoutError(msg)
        sleep(interval)


def print_dot(_: object = None) -> None:
    """Emit one progress dot without a newline."""

    print(".", end="", flush=True)


__all__ = ["print_dot", "wait_until"]
