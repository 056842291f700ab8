"""Dependency injection container for adaptive bitrate components.

Provides centralized management of service instances with proper lifecycle
and dependency resolution.
"""

import logging
from typing import Any, Optional

from adaptive_bitrate.config import AdaptiveBitrateSettings, get_settings
from adaptive_bitrate.controller import AdaptiveBitrateController
from adaptive_bitrate.encoder import SimulatedEncoder
from adaptive_bitrate.interfaces.encoder import IEncoderControl
from adaptive_bitrate.interfaces.stats_source import ITransportStatsSource
from adaptive_bitrate.metrics import PerformanceMetrics
from adaptive_bitrate.stats_source import SimulatedStatsSource
from adaptive_bitrate.streaming_server import StateStreamingServer

logger = logging.getLogger(__name__)


class DIContainer:
    """Dependency injection container for service components."""

    def __init__(
        self,
        settings: Optional[AdaptiveBitrateSettings] = None,
        stats_source: Optional[ITransportStatsSource] = None,
        encoder: Optional[IEncoderControl] = None,
    ) -> None:
        """Initialize DI container.

        Args:
            settings: Service settings (global settings if omitted)
            stats_source: Transport telemetry source (simulated if omitted)
            encoder: Encoder control surface (simulated if omitted)
        """
        self._settings = settings or get_settings()
        self._instances: dict[str, Any] = {}
        if stats_source is not None:
            self._instances["stats_source"] = stats_source
        if encoder is not None:
            self._instances["encoder"] = encoder

        logger.info("DI container initialized")

    def get_settings(self) -> AdaptiveBitrateSettings:
        return self._settings

    def get_metrics(self) -> PerformanceMetrics:
        """Get or create metrics collector instance."""
        if "metrics" not in self._instances:
            self._instances["metrics"] = PerformanceMetrics()
        return self._instances["metrics"]

    def get_stats_source(self) -> ITransportStatsSource:
        """Get or create the transport statistics source."""
        if "stats_source" not in self._instances:
            self._instances["stats_source"] = SimulatedStatsSource(
                quality=self._settings.simulated_quality
            )
        return self._instances["stats_source"]

    def get_encoder(self) -> IEncoderControl:
        """Get or create the encoder control surface."""
        if "encoder" not in self._instances:
            encoder = SimulatedEncoder(
                initial_bitrate_bps=self._settings.min_bitrate_bps
            )
            encoder.start_stream()
            self._instances["encoder"] = encoder
        return self._instances["encoder"]

    def get_controller(self) -> AdaptiveBitrateController:
        """Get or create the adaptive bitrate controller."""
        if "controller" not in self._instances:
            settings = self._settings
            self._instances["controller"] = AdaptiveBitrateController(
                stats_source=self.get_stats_source(),
                encoder=self.get_encoder(),
                config=settings.controller_config(),
                metrics=self.get_metrics(),
                sample_interval_ms=settings.sample_interval_ms,
                decision_interval_ms=settings.decision_interval_ms,
                actuation_cooldown_ms=settings.actuation_cooldown_ms,
                ack_timeout_ms=settings.ack_timeout_ms,
            )
        return self._instances["controller"]

    def get_streaming_server(self) -> StateStreamingServer:
        """Get or create state streaming server instance."""
        if "streaming_server" not in self._instances:
            self._instances["streaming_server"] = StateStreamingServer(
                self.get_controller(), self.get_stats_source()
            )
        return self._instances["streaming_server"]

    async def cleanup(self) -> None:
        """Stop the controller and drop all managed instances."""
        logger.info("Cleaning up DI container")

        if "controller" in self._instances:
            try:
                await self._instances["controller"].stop()
            except Exception as e:
                logger.error(f"Error stopping controller: {e}")

        encoder = self._instances.get("encoder")
        if isinstance(encoder, SimulatedEncoder):
            encoder.stop_stream()

        self._instances.clear()
        logger.info("DI container cleaned up")


# Global container instance
_container: Optional[DIContainer] = None


def get_container() -> DIContainer:
    """Get the global DI container instance.

    Returns:
        DIContainer singleton
    """
    global _container
    if _container is None:
        _container = DIContainer()
    return _container


def set_container(container: DIContainer) -> None:
    """Install a pre-built container (e.g., with real collaborators)."""
    global _container
    _container = container


async def cleanup_container() -> None:
    """Clean up the global DI container."""
    global _container
    if _container is not None:
        await _container.cleanup()
        _container = None
