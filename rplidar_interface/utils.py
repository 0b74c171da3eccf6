#!/usr/bin/env python3

from typing import Callable
import functools
import logging
import time


class Deadline:
    """
    Time budget for one logical read operation.

    The budget starts when the deadline is created and is never extended
    by partial progress.

    Example:
    >>> deadline = Deadline(500)
    >>> while not deadline.expired():
    ...     chunk = transport.read(16, deadline.remaining_ms())
    """

    def __init__(self, timeout_ms: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.timeout_ms = timeout_ms
        self._end = clock() + timeout_ms / 1000.0

    def remaining_ms(self) -> int:
        """Milliseconds left, never negative."""
        return max(0, int((self._end - self._clock()) * 1000))

    def expired(self) -> bool:
        return self._clock() >= self._end


def smooth(old: float, sample: float) -> float:
    """Exponential smoothing used for displaying scan rates."""
    return (old + sample) / 2.0


def log_exceptions(func: Callable) -> Callable:
    """
    Decorator that logs exceptions with full traceback and re-raises them.

    Example:
    >>> class LidarSession:
    ...
    ...     @log_exceptions
    ...     def _run(self):
    ...         ...

    What happens:
    - Exception is caught
    - Logged with traceback
    - Re-raised
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger = logging.getLogger(func.__module__)
            logger.error(
                f"Exception in {func.__name__}: {e}",
                exc_info=True
            )
            raise

    return wrapper
