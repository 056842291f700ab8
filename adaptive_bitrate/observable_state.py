"""Published controller state.

The control loop replaces the snapshot after every processed tick.
Readers get immutable ControllerState objects; subscribers receive them
through size-1 queues that keep only the newest snapshot, so a slow
subscriber never blocks or slows the loop.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from adaptive_bitrate.actuator import round_down_bitrate
from adaptive_bitrate.decision_engine import AdjustmentReason
from adaptive_bitrate.transport_sample import TransportSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of the controller after a tick.

    Attributes:
        current_bitrate_bps: Decision state after the tick
        target_bitrate_bps: Bitrate decided on the tick (clamped)
        last_sample: Sample the tick was computed from
        adjustment_reason: Why the bitrate is where it is
        applied_bitrate_bps: Last bitrate the encoder accepted (None if none yet)
        actuation_failed: True if the last encoder reconfiguration was rejected
        connection_quality: Coarse link quality of last_sample
        running: Whether the control loop is running
        tick: Number of processed ticks since start
        timestamp: Publication time (seconds since epoch)
    """

    current_bitrate_bps: int
    target_bitrate_bps: int
    last_sample: Optional[TransportSample] = None
    adjustment_reason: AdjustmentReason = AdjustmentReason.STABLE
    applied_bitrate_bps: Optional[int] = None
    actuation_failed: bool = False
    connection_quality: Optional[str] = None
    running: bool = False
    tick: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def in_sync(self) -> bool:
        """Whether the encoder runs at the (rounded) decided bitrate."""
        if self.applied_bitrate_bps is None or self.actuation_failed:
            return False
        return self.applied_bitrate_bps == round_down_bitrate(self.current_bitrate_bps)

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "type": "controller_state",
            "current_bitrate_bps": self.current_bitrate_bps,
            "target_bitrate_bps": self.target_bitrate_bps,
            "applied_bitrate_bps": self.applied_bitrate_bps,
            "actuation_failed": self.actuation_failed,
            "in_sync": self.in_sync,
            "adjustment_reason": self.adjustment_reason.value,
            "connection_quality": self.connection_quality,
            "running": self.running,
            "tick": self.tick,
            "timestamp": self.timestamp,
            "last_sample": self.last_sample.to_json() if self.last_sample else None,
        }


class StateBroadcaster:
    """Holds the latest snapshot and fans it out to subscribers."""

    def __init__(self, initial: ControllerState):
        self._snapshot = initial
        self._subscribers: list[asyncio.Queue] = []

    def get(self) -> ControllerState:
        return self._snapshot

    def publish(self, state: ControllerState) -> None:
        """Replace the snapshot and notify subscribers without blocking.

        Args:
            state: New snapshot
        """
        self._snapshot = state
        for queue in self._subscribers:
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(state)

    def subscribe(self) -> asyncio.Queue:
        """Register a subscriber primed with the current snapshot.

        Returns:
            Queue that always holds at most the newest snapshot
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        queue.put_nowait(self._snapshot)
        self._subscribers.append(queue)
        logger.debug(f"State subscriber added (total: {len(self._subscribers)})")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug(f"State subscriber removed (total: {len(self._subscribers)})")

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def stream(self) -> AsyncIterator[ControllerState]:
        """Iterate over snapshots as they are published."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)
