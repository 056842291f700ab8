"""Control loop metrics collection and aggregation.

Tracks tick duration, telemetry fetch latency, encoder actuation latency
and failure counters for monitoring and tuning.
"""

import logging
import time
from collections import deque
from datetime import datetime
from typing import Any

import numpy as np
import psutil

from adaptive_bitrate.interfaces.metrics import IMetricsCollector

logger = logging.getLogger(__name__)

# A decision tick should finish well inside its 20ms period
TICK_BUDGET_MS = 5.0


class LatencyHistogram:
    """Tracks latency measurements with percentile calculations."""

    def __init__(self, max_samples: int = 10000):
        """Initialize latency histogram.

        Args:
            max_samples: Maximum samples to retain (circular buffer)
        """
        self.samples: deque[float] = deque(maxlen=max_samples)
        self.max_samples = max_samples

    def record(self, latency_ms: float) -> None:
        self.samples.append(latency_ms)

    def get_stats(self) -> dict[str, float | int]:
        """Get latency statistics.

        Returns:
            Dictionary with avg, p50, p95, p99, samples count
        """
        if not self.samples:
            return {"avg": 0.0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "samples": 0}

        arr = np.array(list(self.samples))
        return {
            "avg": float(np.mean(arr)),
            "p50": float(np.percentile(arr, 50)),
            "p95": float(np.percentile(arr, 95)),
            "p99": float(np.percentile(arr, 99)),
            "samples": len(self.samples),
        }


class PerformanceMetrics(IMetricsCollector):
    """Collects and aggregates control loop metrics."""

    def __init__(self) -> None:
        self.tick_duration = LatencyHistogram()
        self.sample_fetch = LatencyHistogram()
        self.actuation = LatencyHistogram()

        # Event counters
        self.ticks = 0
        self.idle_ticks = 0
        self.bitrate_changes = 0
        self.sample_failures = 0
        self.actuation_failures = 0
        self.liveness_stalls = 0

        self.start_time = time.time()

        logger.info("Metrics collector initialized")

    def record_tick_duration(self, duration_ms: float) -> None:
        self.ticks += 1
        self.tick_duration.record(duration_ms)

        if duration_ms > TICK_BUDGET_MS:
            logger.warning(
                f"Decision tick took {duration_ms:.1f}ms (budget {TICK_BUDGET_MS:.0f}ms)"
            )

    def record_sample_fetch(self, duration_ms: float) -> None:
        self.sample_fetch.record(duration_ms)

    def record_actuation(self, duration_ms: float) -> None:
        self.actuation.record(duration_ms)

    def increment_idle_tick(self) -> None:
        """Count a tick that found no fresh sample."""
        self.idle_ticks += 1

    def increment_bitrate_change(self) -> None:
        self.bitrate_changes += 1

    def increment_sample_failure(self) -> None:
        self.sample_failures += 1

    def increment_actuation_failure(self) -> None:
        self.actuation_failures += 1
        logger.warning(f"Actuation failure (total: {self.actuation_failures})")

    def increment_liveness_stall(self) -> None:
        self.liveness_stalls += 1

    def get_snapshot(self) -> dict[str, Any]:
        """Get current metrics snapshot.

        Returns:
            Dictionary with all metrics data
        """
        process = psutil.Process()
        memory_mb = process.memory_info().rss / (1024 * 1024)

        return {
            "tick_duration_ms": self.tick_duration.get_stats(),
            "sample_fetch_ms": self.sample_fetch.get_stats(),
            "actuation_ms": self.actuation.get_stats(),
            "ticks": self.ticks,
            "idle_ticks": self.idle_ticks,
            "bitrate_changes": self.bitrate_changes,
            "sample_failures": self.sample_failures,
            "actuation_failures": self.actuation_failures,
            "liveness_stalls": self.liveness_stalls,
            "memory_usage_mb": memory_mb,
            "uptime_sec": time.time() - self.start_time,
            "timestamp": datetime.now().isoformat(),
        }
