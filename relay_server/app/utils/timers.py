# app/utils/timers.py
# -*- coding: utf-8 -*-
"""
Chat Relay Server — timing utilities
------------------------------------
Lightweight helpers for measuring execution time and logging it.

Used around the outbound calls (assistant, speech to text) so slow backends
show up in DEBUG logs without cluttering the call sites.
"""

from __future__ import annotations

import functools
import logging
import time
from contextlib import ContextDecorator
from typing import Any, Callable, Optional, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class Stopwatch(ContextDecorator):
    """
    Simple stopwatch context manager.

    Example:
        from app.utils import Stopwatch, get_logger

        logger = get_logger(__name__)

        with Stopwatch("assistant message", logger):
            client.message(...)

    This will log something like:
        assistant message took 0.237 s
    """

    def __init__(
        self,
        label: str,
        logger: Optional[logging.Logger] = None,
        level: int = logging.INFO,
    ) -> None:
        self.label = label
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Stopwatch":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:  # type: ignore[override]
        self.elapsed = time.perf_counter() - self._start
        self.logger.log(self.level, "%s took %.3f s", self.label, self.elapsed)


def log_duration(
    label: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
) -> Callable[[F], F]:
    """
    Decorator factory to measure and log duration of a function.

    Example:

        @log_duration("speech_to_text.recognize", logger)
        def _recognize(...):
            ...

    On each call it will log:
        speech_to_text.recognize took 0.145 s
    """
    log = logger or logging.getLogger(__name__)

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                log.log(level, "%s took %.3f s", label, elapsed)

        return wrapper  # type: ignore[return-value]

    return decorator
