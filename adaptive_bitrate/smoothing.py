"""Exponential smoothing of transport telemetry.

Maintains the RTT, send-buffer and throughput estimates the threshold and
decision stages work from. Updated exactly once per processed sample.
"""

import logging
from dataclasses import dataclass, replace

from adaptive_bitrate.transport_sample import TransportSample

logger = logging.getLogger(__name__)

# RTT smoothing
RTT_AVG_ALPHA = 0.01
RTT_DELTA_ALPHA = 0.2
RTT_MIN_DRIFT = 1.001
RTT_MIN_SNAP_MAX_TREND = 1.0

# Jitter decay (shared by RTT and buffer)
JITTER_DECAY = 0.99

# Buffer smoothing
BUFFER_AVG_ALPHA = 0.01

# Throughput smoothing
THROUGHPUT_DECAY = 0.97
THROUGHPUT_GAIN = 0.03

# Start-up values
INITIAL_RTT_MIN = 200.0
INITIAL_PREV_RTT = 300


@dataclass
class SmoothedMetrics:
    """Smoothed network estimates owned by the control loop.

    Attributes:
        rtt_avg: EWMA of RTT (ms), seeded with the first RTT seen
        rtt_avg_delta: EWMA of the tick-to-tick RTT change (trend)
        rtt_min: RTT floor estimate, drifting slowly upward
        rtt_jitter: Decaying peak of positive RTT changes
        prev_rtt: RTT of the previous sample
        buffer_avg: EWMA of send-buffer occupancy
        buffer_jitter: Decaying peak of positive buffer changes
        prev_buffer: Buffer occupancy of the previous sample
        throughput_avg: EWMA of throughput (Mbps)
    """

    rtt_avg: float = 0.0
    rtt_avg_delta: float = 0.0
    rtt_min: float = INITIAL_RTT_MIN
    rtt_jitter: float = 0.0
    prev_rtt: int = INITIAL_PREV_RTT
    buffer_avg: float = 0.0
    buffer_jitter: float = 0.0
    prev_buffer: int = 0
    throughput_avg: float = 0.0

    def copy(self) -> "SmoothedMetrics":
        return replace(self)


class MetricsSmoother:
    """Single writer of SmoothedMetrics.

    Coefficients are fixed and assume a roughly constant sample period;
    wall-clock spacing between updates is not taken into account.
    """

    def __init__(self) -> None:
        self.metrics = SmoothedMetrics()
        self._seeded = False

    def reset(self) -> None:
        """Return every estimate to its start-up value."""
        self.metrics = SmoothedMetrics()
        self._seeded = False

    def update(self, sample: TransportSample) -> SmoothedMetrics:
        """Fold one sample into the estimates.

        Args:
            sample: Validated telemetry sample

        Returns:
            The updated metrics (same object, mutated in place)
        """
        self._update_rtt(sample.rtt_ms)
        self._update_buffer(sample.send_buffer_occupancy)
        self._update_throughput(sample.throughput_mbps)
        return self.metrics

    def _update_rtt(self, rtt: int) -> None:
        m = self.metrics

        # Seed with the first reading instead of ramping up from zero
        if not self._seeded:
            m.rtt_avg = float(rtt)
            self._seeded = True
        else:
            m.rtt_avg = m.rtt_avg * (1.0 - RTT_AVG_ALPHA) + rtt * RTT_AVG_ALPHA

        delta = float(rtt - m.prev_rtt)
        m.rtt_avg_delta = (
            m.rtt_avg_delta * (1.0 - RTT_DELTA_ALPHA) + delta * RTT_DELTA_ALPHA
        )
        m.prev_rtt = rtt

        # Accept a new floor only while RTT is not rising
        m.rtt_min *= RTT_MIN_DRIFT
        if rtt < m.rtt_min and m.rtt_avg_delta < RTT_MIN_SNAP_MAX_TREND:
            m.rtt_min = float(rtt)

        # Upward spikes only
        m.rtt_jitter *= JITTER_DECAY
        if delta > m.rtt_jitter:
            m.rtt_jitter = delta

    def _update_buffer(self, occupancy: int) -> None:
        m = self.metrics
        m.buffer_avg = (
            m.buffer_avg * (1.0 - BUFFER_AVG_ALPHA) + occupancy * BUFFER_AVG_ALPHA
        )

        m.buffer_jitter *= JITTER_DECAY
        delta = occupancy - m.prev_buffer
        if delta > m.buffer_jitter:
            m.buffer_jitter = float(delta)
        m.prev_buffer = occupancy

    def _update_throughput(self, throughput_mbps: float) -> None:
        m = self.metrics
        m.throughput_avg = m.throughput_avg * THROUGHPUT_DECAY
        m.throughput_avg += throughput_mbps * THROUGHPUT_GAIN
