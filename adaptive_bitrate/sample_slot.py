"""Most-recent-value slot between the telemetry sampler and the decision loop.

Unlike a queue, a newer sample overwrites an unconsumed older one, so a
slow consumer never processes stale telemetry and the sampler never waits.
"""

import logging
import threading
from typing import Optional

from adaptive_bitrate.transport_sample import TransportSample

logger = logging.getLogger(__name__)


class LatestSampleSlot:
    """Thread-safe single-value slot for telemetry samples."""

    def __init__(self) -> None:
        self._sample: Optional[TransportSample] = None
        self.overwritten = 0  # Samples replaced before being taken
        self.lock = threading.Lock()

    def put(self, sample: TransportSample) -> None:
        """Store a sample, replacing any unconsumed one.

        Thread-safe: Uses internal lock
        """
        with self.lock:
            if self._sample is not None:
                self.overwritten += 1
            self._sample = sample

    def take(self) -> Optional[TransportSample]:
        """Remove and return the stored sample.

        Returns:
            TransportSample if a fresh one is stored, None otherwise

        Thread-safe: Uses internal lock
        """
        with self.lock:
            sample = self._sample
            self._sample = None
            return sample

    def peek(self) -> Optional[TransportSample]:
        with self.lock:
            return self._sample

    def is_empty(self) -> bool:
        with self.lock:
            return self._sample is None

    def clear(self) -> None:
        """Drop the stored sample and reset the overwrite counter."""
        with self.lock:
            self._sample = None
            self.overwritten = 0

    def __repr__(self) -> str:
        return (
            f"LatestSampleSlot(empty={self._sample is None}, "
            f"overwritten={self.overwritten})"
        )
