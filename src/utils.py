"""
Utility functions for domain-agnostic operations.

This module consolidates small helpers used throughout the toolkit:
- Decorators: timing context manager
- Cancellation: cooperative cancellation token for long loops
- Numeric helpers: rounding and seed handling

All utilities have no dependencies on other project modules except exceptions.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Generator, Optional, Union

import numpy as np

from exceptions import OperationCancelledException

logger = logging.getLogger(__name__)

# ==============================================================================
# Timing
# ==============================================================================


@contextmanager
def timer() -> Generator[dict, None, None]:
    """
    Measure wall time of a block for debug logging.

        with timer() as t:
            edges = buffer.canny_edge_detection()
        logger.debug(f"Canny took {t['ms']}ms")

    Yields:
        Dict whose 'ms' entry is filled with the elapsed milliseconds
        (rounded to 0.01) when the block exits, even on error
    """
    elapsed = {"ms": 0.0}
    started = time.perf_counter()
    try:
        yield elapsed
    finally:
        elapsed["ms"] = round((time.perf_counter() - started) * 1000.0, 2)


# ==============================================================================
# Cancellation
# ==============================================================================


class CancellationToken:
    """
    Thread-safe cancellation flag.

    Long-running loops call ``raise_if_cancelled`` at safe points; another
    thread calls ``cancel`` to abort them.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str) -> None:
        if self._event.is_set():
            logger.info(f"Cancelling {operation}")
            raise OperationCancelledException(operation)


def check_cancelled(token: Optional[CancellationToken], operation: str) -> None:
    """Raise if an optional token has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(operation)


# ==============================================================================
# Numeric Helpers
# ==============================================================================


def round_half_away(value):
    """Round to nearest integer, halves away from zero (numpy rounds half to even)."""
    return np.sign(value) * np.floor(np.abs(value) + 0.5)


def ensure_rng(seed: Union[int, np.random.Generator, None] = None) -> np.random.Generator:
    """
    Return a numpy Generator for a seed.

    Args:
        seed: Existing Generator (returned as-is), integer seed or None for OS entropy

    Returns:
        numpy.random.Generator
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)
