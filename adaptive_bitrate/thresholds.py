"""Congestion thresholds derived from the smoothed telemetry.

Pure functions: recomputed every tick after the smoother has run, never
stored between ticks.
"""

from dataclasses import dataclass

from adaptive_bitrate.config import ControllerConfig
from adaptive_bitrate.smoothing import SmoothedMetrics

# Transport payload size (bytes) of one SRT packet
PACKET_SIZE_BYTES = 1316

# Buffer thresholds never drop below this many packets (except th2, which
# is also capped by the latency budget)
MIN_BUFFER_THRESHOLD = 50


@dataclass(frozen=True)
class Thresholds:
    """Congestion thresholds for one tick.

    Attributes:
        buffer_th1: Light buffer congestion (packets)
        buffer_th2: Heavy buffer congestion (packets)
        buffer_th3: Severe buffer congestion (packets)
        rtt_threshold_min: RTT below which an increase is allowed (ms)
        rtt_threshold_max: RTT above which light congestion is assumed (ms)
    """

    buffer_th1: int
    buffer_th2: int
    buffer_th3: int
    rtt_threshold_min: int
    rtt_threshold_max: int


def buffer_equivalent_of(duration_ms: int, throughput_avg_mbps: float) -> int:
    """Convert a time budget into the number of packets sent meanwhile.

    This deliberately departs from the literal
    `(throughput_avg / 8) * duration / PACKET_SIZE_BYTES` formula, which
    divides Mbps by bytes and yields a near-zero count. Throughput is first
    scaled to bits per millisecond, so the result is in packets.

    Args:
        duration_ms: Time budget in milliseconds
        throughput_avg_mbps: Smoothed throughput in Mbps

    Returns:
        Packets of PACKET_SIZE_BYTES the link carries in `duration_ms`
    """
    # Mbps * 1000 = bits per millisecond
    bits_per_ms = throughput_avg_mbps * 1000.0
    return int((bits_per_ms / 8) * duration_ms / PACKET_SIZE_BYTES)


def compute_thresholds(metrics: SmoothedMetrics, config: ControllerConfig) -> Thresholds:
    """Derive this tick's thresholds.

    Args:
        metrics: Smoothed estimates updated with this tick's sample
        config: Current controller configuration

    Returns:
        Thresholds (integers, truncated)
    """
    buffer_th3 = int((metrics.buffer_avg + metrics.buffer_jitter) * 4)

    buffer_th2 = int(
        max(
            MIN_BUFFER_THRESHOLD,
            metrics.buffer_avg + max(metrics.buffer_jitter * 3.0, metrics.buffer_avg),
        )
    )
    buffer_th2 = min(
        buffer_th2,
        buffer_equivalent_of(config.latency_ms // 2, metrics.throughput_avg),
    )

    buffer_th1 = int(
        max(MIN_BUFFER_THRESHOLD, metrics.buffer_avg + metrics.buffer_jitter * 2.5)
    )

    rtt_threshold_max = int(
        metrics.rtt_avg + max(metrics.rtt_jitter * 4, metrics.rtt_avg * 0.15)
    )
    rtt_threshold_min = int(metrics.rtt_min + max(1.0, metrics.rtt_jitter * 2))

    return Thresholds(
        buffer_th1=buffer_th1,
        buffer_th2=buffer_th2,
        buffer_th3=buffer_th3,
        rtt_threshold_min=rtt_threshold_min,
        rtt_threshold_max=rtt_threshold_max,
    )
