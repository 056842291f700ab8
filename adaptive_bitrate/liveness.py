"""Acknowledgment-based liveness watchdog.

Raises one stall signal per episode when the cumulative ACK count stops
advancing. Reconnection is left to the transport owner.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_ACK_TIMEOUT_MS = 6000


class LivenessWatchdog:
    """Tracks the cumulative ACK count reported with each sample."""

    def __init__(self, timeout_ms: float = DEFAULT_ACK_TIMEOUT_MS):
        """Initialize watchdog.

        Args:
            timeout_ms: Silence after which the session is considered stalled
        """
        self.timeout_ms = timeout_ms
        self.reset()

    def reset(self) -> None:
        """Forget every observation (e.g., on controller restart)."""
        self.last_ack_count = 0
        self.last_ack_at_ms: Optional[float] = None
        self.stalled = False

    def observe(self, ack_count: int, now_ms: float) -> bool:
        """Record the latest ACK count.

        Args:
            ack_count: Cumulative ACK count from the sample
            now_ms: Monotonic time in milliseconds

        Returns:
            True exactly once when a stall episode begins, False otherwise
        """
        if ack_count != self.last_ack_count:
            if self.stalled:
                logger.info(f"ACKs resumed (count={ack_count})")
            self.last_ack_count = ack_count
            self.last_ack_at_ms = now_ms
            self.stalled = False
            return False

        # Only armed once the count has advanced at least once
        if self.last_ack_at_ms is None or self.stalled:
            return False

        silent_ms = now_ms - self.last_ack_at_ms
        if silent_ms > self.timeout_ms:
            self.stalled = True
            logger.warning(
                f"Transport liveness stalled: no ACKs for {silent_ms:.0f}ms "
                f"(timeout {self.timeout_ms:.0f}ms)"
            )
            return True

        return False

    def silent_for_ms(self, now_ms: float) -> float:
        """Time since the ACK count last advanced (0 if it never did)."""
        if self.last_ack_at_ms is None:
            return 0.0
        return now_ms - self.last_ack_at_ms
