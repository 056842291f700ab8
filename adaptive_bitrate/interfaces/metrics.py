"""Metrics interface definitions."""

from abc import ABC, abstractmethod
from typing import Any


class IMetricsCollector(ABC):
    """Collects and aggregates control loop metrics."""

    @abstractmethod
    def record_tick_duration(self, duration_ms: float) -> None:
        """Record how long one decision tick took.

        Args:
            duration_ms: Tick processing time in milliseconds
        """
        pass

    @abstractmethod
    def record_sample_fetch(self, duration_ms: float) -> None:
        """Record telemetry fetch latency.

        Args:
            duration_ms: Time spent in the stats source (milliseconds)
        """
        pass

    @abstractmethod
    def record_actuation(self, duration_ms: float) -> None:
        """Record a successful encoder reconfiguration.

        Args:
            duration_ms: Reconfiguration time including pause/resume
        """
        pass

    @abstractmethod
    def increment_sample_failure(self) -> None:
        """Increment failed/malformed sample counter."""
        pass

    @abstractmethod
    def increment_actuation_failure(self) -> None:
        """Increment rejected reconfiguration counter."""
        pass

    @abstractmethod
    def get_snapshot(self) -> dict[str, Any]:
        """Get current metrics snapshot.

        Returns:
            Dictionary with metrics data:
            - tick_duration_ms: {avg, p50, p95, p99, samples}
            - sample_fetch_ms: {avg, p50, p95, p99, samples}
            - actuation_ms: {avg, p50, p95, p99, samples}
            - ticks, idle_ticks, bitrate_changes: int
            - sample_failures, actuation_failures, liveness_stalls: int
            - memory_usage_mb: float
            - timestamp: ISO 8601 string
        """
        pass
