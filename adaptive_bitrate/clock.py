"""Monotonic time source shared by the timing gates."""

import time
from typing import Callable

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Monotonic time in milliseconds (unaffected by wall-clock changes)."""
    return time.monotonic() * 1000.0
