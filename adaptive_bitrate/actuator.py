"""Throttled application of decided bitrates to the live encoder.

The decision loop runs every 20ms, but reconfiguring a live encoder is
disruptive, so only a throttled subset of changes reaches it: values are
rounded down to 100 kbps and applied at most once per cooldown period.
A change arriving during the cooldown is held and the newest held value is
applied when the cooldown expires.
"""

import asyncio
import logging
import time
from typing import Optional

from adaptive_bitrate.clock import Clock, monotonic_ms
from adaptive_bitrate.events import BitrateChanged, EventDispatcher
from adaptive_bitrate.interfaces.encoder import IEncoderControl
from adaptive_bitrate.interfaces.metrics import IMetricsCollector

logger = logging.getLogger(__name__)

BITRATE_ROUNDING_BPS = 100_000
DEFAULT_ACTUATION_COOLDOWN_MS = 5000


def round_down_bitrate(bitrate_bps: int) -> int:
    """Round down to the nearest 100 kbps."""
    return (bitrate_bps // BITRATE_ROUNDING_BPS) * BITRATE_ROUNDING_BPS


class BitrateActuator:
    """Single worker that serializes encoder reconfigurations."""

    def __init__(
        self,
        encoder: IEncoderControl,
        events: EventDispatcher,
        metrics: IMetricsCollector,
        cooldown_ms: float = DEFAULT_ACTUATION_COOLDOWN_MS,
        clock: Clock = monotonic_ms,
    ):
        """Initialize actuator.

        Args:
            encoder: Encoder control surface
            events: Dispatcher receiving BitrateChanged events
            metrics: Metrics collector
            cooldown_ms: Minimum interval between two encoder applications
            clock: Monotonic millisecond clock
        """
        self.encoder = encoder
        self.events = events
        self.metrics = metrics
        self.cooldown_ms = cooldown_ms
        self._clock = clock

        # Actuation-acked state
        self.applied_bitrate_bps: Optional[int] = None
        self.actuation_failed = False

        self._pending: Optional[int] = None
        self._next_allowed_at = 0.0
        self._wakeup = asyncio.Event()
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the worker with a clean acked state."""
        if self._task is not None:
            logger.warning("Actuator already running")
            return

        self.applied_bitrate_bps = None
        self.actuation_failed = False
        self._pending = None
        self._next_allowed_at = 0.0
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the worker; a pending value is dropped."""
        task = self._task
        self._task = None
        self._pending = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def is_running(self) -> bool:
        return self._task is not None

    def submit(self, bitrate_bps: int) -> None:
        """Hand over a new decided bitrate without waiting.

        Args:
            bitrate_bps: Bitrate decided by the control loop
        """
        if self._task is None:
            logger.debug(f"Actuator stopped, ignoring {bitrate_bps} bps")
            return
        self._pending = bitrate_bps
        self._wakeup.set()

    @property
    def pending_bitrate_bps(self) -> Optional[int]:
        return self._pending

    async def _run(self) -> None:
        try:
            while True:
                await self._wakeup.wait()
                self._wakeup.clear()

                wait_ms = self._next_allowed_at - self._clock()
                if wait_ms > 0:
                    await asyncio.sleep(wait_ms / 1000.0)

                target = self._pending
                self._pending = None
                if target is None:
                    continue

                await self.apply(target)
        except asyncio.CancelledError:
            logger.debug("Actuator worker cancelled")
            raise

    async def apply(self, bitrate_bps: int) -> bool:
        """Apply a bitrate to the encoder now, bypassing the cooldown.

        Args:
            bitrate_bps: Decided bitrate (rounded down before use)

        Returns:
            True if the encoder accepted a new value, False if nothing
            changed or the encoder rejected it
        """
        rounded = round_down_bitrate(bitrate_bps)
        if rounded == self.applied_bitrate_bps and not self.actuation_failed:
            return False

        async with self._lock:
            start_time = time.perf_counter()
            try:
                await self._reconfigure(rounded)
            except Exception as e:
                self.actuation_failed = True
                self._next_allowed_at = self._clock() + self.cooldown_ms
                self.metrics.increment_actuation_failure()
                logger.error(
                    f"Failed to apply bitrate {rounded} bps: {e}",
                    extra={"bitrate_bps": rounded},
                )
                # Retry after the cooldown unless a newer value is waiting
                if self._task is not None and self._pending is None:
                    self._pending = bitrate_bps
                    self._wakeup.set()
                return False

            previous = self.applied_bitrate_bps
            self.applied_bitrate_bps = rounded
            self.actuation_failed = False
            self._next_allowed_at = self._clock() + self.cooldown_ms
            self.metrics.record_actuation((time.perf_counter() - start_time) * 1000.0)

        logger.info(
            f"Encoder bitrate {previous} -> {rounded} bps",
            extra={"bitrate_bps": rounded},
        )
        self.events.emit(BitrateChanged(bitrate_bps=rounded))
        return True

    async def _reconfigure(self, bitrate_bps: int) -> None:
        """Push the bitrate, pausing around it if the encoder needs that."""
        if self.encoder.is_streaming() and not self.encoder.supports_live_update:
            await self.encoder.pause()
            try:
                await self.encoder.set_bitrate(bitrate_bps)
            finally:
                await self.encoder.resume()
        else:
            await self.encoder.set_bitrate(bitrate_bps)
