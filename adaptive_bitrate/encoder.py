"""Simulated encoder control surface.

Stands in for the platform encoder when the service runs without a real
media pipeline. Records every applied bitrate and models the brief
stop/restart a non-live reconfiguration needs.
"""

import asyncio
import logging
import time

from adaptive_bitrate.exceptions import ActuationError
from adaptive_bitrate.interfaces.encoder import IEncoderControl

logger = logging.getLogger(__name__)


class SimulatedEncoder(IEncoderControl):
    """In-memory encoder with optional reconfiguration delay."""

    def __init__(
        self,
        initial_bitrate_bps: int = 0,
        live_update: bool = False,
        reconfigure_delay_ms: float = 0.0,
    ):
        """Initialize simulated encoder.

        Args:
            initial_bitrate_bps: Bitrate before the first reconfiguration
            live_update: Whether bitrate can change while streaming
            reconfigure_delay_ms: Simulated time a reconfiguration takes
        """
        self.bitrate_bps = initial_bitrate_bps
        self.live_update = live_update
        self.reconfigure_delay_ms = reconfigure_delay_ms
        self.streaming = False
        self.paused = False
        self.history: list[tuple[float, int]] = []

    @property
    def supports_live_update(self) -> bool:
        return self.live_update

    def is_streaming(self) -> bool:
        return self.streaming and not self.paused

    def start_stream(self) -> None:
        self.streaming = True
        self.paused = False
        logger.info(f"Simulated stream started at {self.bitrate_bps} bps")

    def stop_stream(self) -> None:
        self.streaming = False
        self.paused = False
        logger.info("Simulated stream stopped")

    async def set_bitrate(self, bitrate_bps: int) -> None:
        if bitrate_bps <= 0:
            raise ActuationError(f"Encoder rejected bitrate {bitrate_bps}")
        if self.is_streaming() and not self.live_update:
            raise ActuationError("Encoder must be paused before reconfiguration")

        if self.reconfigure_delay_ms > 0:
            await asyncio.sleep(self.reconfigure_delay_ms / 1000.0)

        self.bitrate_bps = bitrate_bps
        self.history.append((time.time(), bitrate_bps))
        logger.debug(f"Simulated encoder bitrate set to {bitrate_bps} bps")

    async def pause(self) -> None:
        self.paused = True

    async def resume(self) -> None:
        self.paused = False
