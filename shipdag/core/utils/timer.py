"""Timing context manager for stage and collaborator calls."""

import time
from collections.abc import Generator
from contextlib import contextmanager


class Timer:
    """Lightweight timer that tracks elapsed milliseconds.

    Examples
    --------
    >>> with stage_timer() as t:
    ...     pass  # do work
    >>> assert t.duration_ms >= 0
    """

    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        """Elapsed time in milliseconds since the timer started."""
        return (time.perf_counter() - self._start) * 1000


@contextmanager
def stage_timer() -> Generator[Timer, None, None]:
    """Yield a ``Timer`` whose ``duration_ms`` reads the elapsed time at any point."""
    yield Timer()
