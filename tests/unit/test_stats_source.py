"""Unit tests for stats sources, quality classification and the simulated encoder."""

import pytest

from adaptive_bitrate.encoder import SimulatedEncoder
from adaptive_bitrate.exceptions import (
    ActuationError,
    MalformedSampleError,
    StatsSourceError,
)
from adaptive_bitrate.stats_source import (
    ConnectionQuality,
    MappingStatsSource,
    SimulatedStatsSource,
    classify_connection_quality,
    stats_summary,
)
from adaptive_bitrate.transport_sample import TransportSample


@pytest.mark.parametrize(
    "rtt,loss,expected",
    [
        (20, 0.1, ConnectionQuality.EXCELLENT),
        (50, 0.5, ConnectionQuality.EXCELLENT),
        (51, 0.1, ConnectionQuality.GOOD),
        (20, 0.9, ConnectionQuality.GOOD),
        (150, 2.0, ConnectionQuality.FAIR),
        (350, 0.0, ConnectionQuality.POOR),
        (100, 7.5, ConnectionQuality.POOR),
        (401, 0.0, ConnectionQuality.CRITICAL),
        (10, 9.0, ConnectionQuality.CRITICAL),
    ],
)
def test_classify_connection_quality(rtt, loss, expected):
    sample = TransportSample(rtt_ms=rtt, packet_loss_percent=loss)
    assert classify_connection_quality(sample) == expected


def test_stats_summary():
    sample = TransportSample(
        rtt_ms=42, send_buffer_occupancy=10, throughput_mbps=5.25, packet_loss_percent=0.2
    )
    summary = stats_summary(sample)

    assert "RTT: 42ms" in summary
    assert "Buffer: 10pkt" in summary
    assert "Quality: EXCELLENT" in summary


class TestMappingStatsSource:
    def test_converts_counters(self):
        source = MappingStatsSource(lambda: {"msRTT": 33, "pktRecvACKTotal": 9})
        sample = source.sample()

        assert sample.rtt_ms == 33
        assert sample.ack_count == 9

    def test_fetch_errors_wrapped(self):
        def fetch():
            raise OSError("socket closed")

        source = MappingStatsSource(fetch)
        with pytest.raises(StatsSourceError, match="socket closed"):
            source.sample()

    def test_non_mapping_rejected(self):
        source = MappingStatsSource(lambda: [1, 2, 3])
        with pytest.raises(MalformedSampleError):
            source.sample()

    def test_malformed_counters_rejected(self):
        source = MappingStatsSource(lambda: {"msRTT": -10})
        with pytest.raises(MalformedSampleError):
            source.sample()


class TestSimulatedStatsSource:
    def test_samples_within_profile(self):
        source = SimulatedStatsSource(quality="EXCELLENT", seed=42)
        for _ in range(100):
            sample = source.sample()
            assert 10 <= sample.rtt_ms <= 30
            assert 0 <= sample.send_buffer_occupancy <= 50
            assert classify_connection_quality(sample) == ConnectionQuality.EXCELLENT

    def test_ack_count_advances(self):
        source = SimulatedStatsSource(quality="GOOD", seed=1)
        counts = [source.sample().ack_count for _ in range(20)]

        assert counts == sorted(counts)
        assert counts[-1] > counts[0]

    def test_critical_link_stops_acks(self):
        source = SimulatedStatsSource(quality="GOOD", seed=1)
        for _ in range(5):
            source.sample()

        source.update_quality(ConnectionQuality.CRITICAL)
        counts = {source.sample().ack_count for _ in range(10)}

        assert len(counts) == 1

    def test_poor_link_never_advances_acks(self):
        source = SimulatedStatsSource(quality="POOR", seed=3)
        counts = {source.sample().ack_count for _ in range(50)}

        assert counts == {0}

    def test_ranges_exclude_upper_bound(self):
        source = SimulatedStatsSource(quality="GOOD", seed=11)
        for _ in range(200):
            sample = source.sample()
            assert 30 <= sample.rtt_ms < 80
            assert 50 <= sample.send_buffer_occupancy < 200

    def test_seeded_runs_are_reproducible(self):
        a = SimulatedStatsSource(quality="FAIR", seed=7)
        b = SimulatedStatsSource(quality="FAIR", seed=7)

        assert [a.sample().rtt_ms for _ in range(10)] == [
            b.sample().rtt_ms for _ in range(10)
        ]

    def test_unknown_quality_rejected(self):
        source = SimulatedStatsSource()
        with pytest.raises(ValueError):
            source.update_quality("AMAZING")


class TestSimulatedEncoder:
    @pytest.mark.asyncio
    async def test_requires_pause_without_live_update(self):
        encoder = SimulatedEncoder(live_update=False)
        encoder.start_stream()

        with pytest.raises(ActuationError):
            await encoder.set_bitrate(1_000_000)

        await encoder.pause()
        await encoder.set_bitrate(1_000_000)
        await encoder.resume()

        assert encoder.bitrate_bps == 1_000_000
        assert encoder.is_streaming()
        assert [bps for _, bps in encoder.history] == [1_000_000]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_bitrate(self):
        encoder = SimulatedEncoder(live_update=True)
        with pytest.raises(ActuationError):
            await encoder.set_bitrate(0)
