"""Unit tests for congestion threshold computation."""

from adaptive_bitrate.config import ControllerConfig
from adaptive_bitrate.smoothing import SmoothedMetrics
from adaptive_bitrate.thresholds import (
    MIN_BUFFER_THRESHOLD,
    Thresholds,
    buffer_equivalent_of,
    compute_thresholds,
)


def test_buffer_equivalent_of():
    # 5 Mbps = 625 bytes/ms; 1000ms -> 625000 bytes / 1316 = 474.9 packets
    assert buffer_equivalent_of(1000, 5.0) == 474
    assert buffer_equivalent_of(1000, 1.0) == 94
    assert buffer_equivalent_of(1000, 0.0) == 0
    assert buffer_equivalent_of(0, 10.0) == 0


class TestComputeThresholds:
    """Threshold formulas from smoothed metrics."""

    def setup_method(self):
        self.config = ControllerConfig(latency_ms=2000)

    def test_typical_metrics(self):
        metrics = SmoothedMetrics(
            rtt_avg=100.0,
            rtt_jitter=10.0,
            rtt_min=80.0,
            buffer_avg=100.0,
            buffer_jitter=20.0,
            throughput_avg=5.0,
        )
        thresholds = compute_thresholds(metrics, self.config)

        assert thresholds == Thresholds(
            buffer_th1=150,
            buffer_th2=200,
            buffer_th3=480,
            rtt_threshold_min=100,
            rtt_threshold_max=140,
        )

    def test_heavy_buffer_threshold_capped_by_latency_budget(self):
        """At low throughput, th2 is limited to half the latency budget of packets."""
        metrics = SmoothedMetrics(
            buffer_avg=100.0, buffer_jitter=20.0, throughput_avg=1.0
        )
        thresholds = compute_thresholds(metrics, self.config)

        assert thresholds.buffer_th2 == buffer_equivalent_of(1000, 1.0) == 94
        # th1 is not capped
        assert thresholds.buffer_th1 == 150

    def test_start_up_values(self):
        """Before any traffic, the floors and the zero-throughput cap apply."""
        thresholds = compute_thresholds(SmoothedMetrics(), self.config)

        assert thresholds.buffer_th1 == MIN_BUFFER_THRESHOLD
        assert thresholds.buffer_th2 == 0
        assert thresholds.buffer_th3 == 0
        assert thresholds.rtt_threshold_min == 201
        assert thresholds.rtt_threshold_max == 0

    def test_rtt_thresholds_use_jitter_when_large(self):
        metrics = SmoothedMetrics(rtt_avg=100.0, rtt_jitter=30.0, rtt_min=40.0)
        thresholds = compute_thresholds(metrics, self.config)

        assert thresholds.rtt_threshold_max == 220
        assert thresholds.rtt_threshold_min == 100

    def test_thresholds_are_integers(self):
        metrics = SmoothedMetrics(
            rtt_avg=97.3,
            rtt_jitter=3.3,
            rtt_min=41.7,
            buffer_avg=12.9,
            buffer_jitter=7.7,
            throughput_avg=4.2,
        )
        thresholds = compute_thresholds(metrics, self.config)

        for value in (
            thresholds.buffer_th1,
            thresholds.buffer_th2,
            thresholds.buffer_th3,
            thresholds.rtt_threshold_min,
            thresholds.rtt_threshold_max,
        ):
            assert isinstance(value, int)

    def test_latency_budget_changes_cap(self):
        metrics = SmoothedMetrics(
            buffer_avg=1000.0, buffer_jitter=100.0, throughput_avg=2.0
        )
        short = compute_thresholds(metrics, ControllerConfig(latency_ms=200))
        long = compute_thresholds(metrics, ControllerConfig(latency_ms=8000))

        assert short.buffer_th2 == buffer_equivalent_of(100, 2.0)
        assert long.buffer_th2 == buffer_equivalent_of(4000, 2.0) == 759
        assert short.buffer_th2 < long.buffer_th2


def test_buffer_equivalent_scales_mbps_to_packets():
    """10 Mbps for one second is about 950 packets, not the 0 of a raw Mbps product."""
    assert int((10.0 / 8) * 1000 / 1316) == 0
    assert buffer_equivalent_of(1000, 10.0) == 949
