"""Transport statistics sources and link quality classification.

MappingStatsSource adapts any callable returning raw transport counters
(e.g. an SRT statistics binding). SimulatedStatsSource produces plausible
samples for a chosen link quality, for demos and tests without a session.
"""

import logging
import random
import threading
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from adaptive_bitrate.exceptions import MalformedSampleError, StatsSourceError
from adaptive_bitrate.interfaces.stats_source import ITransportStatsSource
from adaptive_bitrate.transport_sample import TransportSample

logger = logging.getLogger(__name__)


class ConnectionQuality(str, Enum):
    """Coarse link quality buckets."""

    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    CRITICAL = "CRITICAL"


# (max RTT ms, max loss %) per bucket, checked in order
_QUALITY_LIMITS = (
    (ConnectionQuality.EXCELLENT, 50, 0.5),
    (ConnectionQuality.GOOD, 100, 1.0),
    (ConnectionQuality.FAIR, 200, 3.0),
    (ConnectionQuality.POOR, 400, 8.0),
)


def classify_connection_quality(sample: TransportSample) -> ConnectionQuality:
    """Classify a sample by RTT and packet loss.

    Args:
        sample: Telemetry sample

    Returns:
        Best bucket whose RTT and loss limits the sample satisfies
    """
    for quality, max_rtt, max_loss in _QUALITY_LIMITS:
        if sample.rtt_ms <= max_rtt and sample.packet_loss_percent <= max_loss:
            return quality
    return ConnectionQuality.CRITICAL


def stats_summary(sample: TransportSample) -> str:
    """Human-readable one-line summary of a sample."""
    quality = classify_connection_quality(sample)
    return (
        f"RTT: {sample.rtt_ms}ms, Buffer: {sample.send_buffer_occupancy}pkt, "
        f"Throughput: {sample.throughput_mbps:.1f}Mbps, "
        f"Loss: {sample.packet_loss_percent:.2f}%, Quality: {quality.value}"
    )


class MappingStatsSource(ITransportStatsSource):
    """Wraps a callable returning raw transport counters."""

    def __init__(self, fetch: Callable[[], Mapping[str, Any]]):
        """Initialize source.

        Args:
            fetch: Returns counter name -> value (msRTT, pktSndBuf, ...)
        """
        self._fetch = fetch

    def sample(self) -> TransportSample:
        try:
            raw = self._fetch()
        except StatsSourceError:
            raise
        except Exception as e:
            raise StatsSourceError(f"Failed to read transport counters: {e}") from e

        if not isinstance(raw, Mapping):
            raise MalformedSampleError(
                f"Expected a mapping of counters, got {type(raw).__name__}"
            )
        return TransportSample.from_mapping(raw)


# Per-quality ranges: rtt (ms), buffer (pkt), throughput (Mbps), loss (%), ack increment.
# Integer ranges exclude their upper bound.
_SIMULATION_PROFILES: dict[ConnectionQuality, dict[str, tuple]] = {
    ConnectionQuality.EXCELLENT: {
        "rtt": (10, 30), "buffer": (0, 50), "throughput": (8.0, 10.0),
        "loss": (0.0, 0.1), "acks": (1, 5),
    },
    ConnectionQuality.GOOD: {
        "rtt": (30, 80), "buffer": (50, 200), "throughput": (5.0, 8.0),
        "loss": (0.1, 0.5), "acks": (1, 3),
    },
    ConnectionQuality.FAIR: {
        "rtt": (80, 150), "buffer": (200, 500), "throughput": (3.0, 5.0),
        "loss": (0.5, 1.5), "acks": (0, 2),
    },
    ConnectionQuality.POOR: {
        "rtt": (150, 300), "buffer": (500, 1000), "throughput": (1.0, 3.0),
        "loss": (1.5, 5.0), "acks": (0, 1),
    },
    # No ACKs in the critical state
    ConnectionQuality.CRITICAL: {
        "rtt": (300, 800), "buffer": (1000, 2000), "throughput": (0.1, 1.0),
        "loss": (5.0, 15.0), "acks": (0, 1),
    },
}


class SimulatedStatsSource(ITransportStatsSource):
    """Random telemetry for a configurable link quality."""

    def __init__(
        self,
        quality: ConnectionQuality | str = ConnectionQuality.GOOD,
        seed: Optional[int] = None,
    ):
        """Initialize simulated source.

        Args:
            quality: Link quality to simulate
            seed: Optional RNG seed for reproducible runs
        """
        self.quality = ConnectionQuality(quality)
        self.ack_count = 0
        self._random = random.Random(seed)
        self.lock = threading.Lock()

        logger.info(f"Simulated stats source initialized (quality: {self.quality.value})")

    def update_quality(self, quality: ConnectionQuality | str) -> None:
        """Switch the simulated link quality.

        Thread-safe: Uses internal lock
        """
        with self.lock:
            self.quality = ConnectionQuality(quality)
        logger.info(f"Simulated connection quality updated to: {self.quality.value}")

    def sample(self) -> TransportSample:
        with self.lock:
            profile = _SIMULATION_PROFILES[self.quality]
            rng = self._random
            self.ack_count += rng.randrange(*profile["acks"])
            return TransportSample(
                rtt_ms=rng.randrange(*profile["rtt"]),
                send_buffer_occupancy=rng.randrange(*profile["buffer"]),
                throughput_mbps=rng.uniform(*profile["throughput"]),
                packet_loss_percent=rng.uniform(*profile["loss"]),
                ack_count=self.ack_count,
            )
