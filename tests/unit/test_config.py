"""Unit tests for controller limits and service settings."""

import pytest
from pydantic import ValidationError

from adaptive_bitrate.config import (
    ABS_MAX_BITRATE_BPS,
    MIN_FLOOR_BPS,
    AdaptiveBitrateSettings,
    ControllerConfig,
    get_settings,
    reset_settings,
)
from adaptive_bitrate.controller import AdaptiveBitrateController
from adaptive_bitrate.encoder import SimulatedEncoder
from adaptive_bitrate.exceptions import ConfigurationError
from adaptive_bitrate.stats_source import MappingStatsSource
from adaptive_bitrate.thresholds import compute_thresholds
from adaptive_bitrate.transport_sample import TransportSample


class TestControllerConfig:
    """Clamping of runtime controller limits."""

    def test_defaults(self):
        config = ControllerConfig()
        assert config.min_bitrate_bps == 300_000
        assert config.max_bitrate_bps == 6_000_000
        assert config.latency_ms == 2000

    def test_min_clamped_to_floor(self):
        config = ControllerConfig.clamped(100_000, 2_000_000, 2000)
        assert config.min_bitrate_bps == MIN_FLOOR_BPS

    def test_max_never_below_min(self):
        config = ControllerConfig.clamped(1_000_000, 500_000, 2000)
        assert config.min_bitrate_bps == 1_000_000
        assert config.max_bitrate_bps == 1_000_000

    def test_max_clamped_to_absolute_maximum(self):
        config = ControllerConfig.clamped(300_000, 100_000_000, 2000)
        assert config.max_bitrate_bps == ABS_MAX_BITRATE_BPS

    def test_min_above_absolute_maximum(self):
        config = ControllerConfig.clamped(50_000_000, 60_000_000, 2000)
        assert config.min_bitrate_bps == ABS_MAX_BITRATE_BPS
        assert config.max_bitrate_bps == ABS_MAX_BITRATE_BPS

    @pytest.mark.parametrize(
        "requested,expected", [(0, 100), (50, 100), (2000, 2000), (20_000, 10_000)]
    )
    def test_latency_clamped(self, requested, expected):
        config = ControllerConfig.clamped(300_000, 6_000_000, requested)
        assert config.latency_ms == expected

    def test_clamping_is_idempotent(self):
        first = ControllerConfig.clamped(10, 99_000_000, 5)
        second = ControllerConfig.clamped(
            first.min_bitrate_bps, first.max_bitrate_bps, first.latency_ms
        )
        assert first == second

    def test_to_dict(self):
        assert ControllerConfig().to_dict() == {
            "min_bitrate_bps": 300_000,
            "max_bitrate_bps": 6_000_000,
            "latency_ms": 2000,
        }


class TestSettings:
    """Environment-driven service settings."""

    def test_defaults(self, monkeypatch):
        for name in ("ABR_MIN_BITRATE", "ABR_MAX_BITRATE", "ABR_LATENCY_MS"):
            monkeypatch.delenv(name, raising=False)
        settings = AdaptiveBitrateSettings()

        assert settings.controller_config() == ControllerConfig()
        assert settings.autostart is True
        assert settings.sample_interval_ms == 50
        assert settings.decision_interval_ms == 20

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("ABR_MIN_BITRATE", "500000")
        monkeypatch.setenv("ABR_MAX_BITRATE", "4000000")
        monkeypatch.setenv("ABR_LATENCY_MS", "1200")
        monkeypatch.setenv("ABR_AUTOSTART", "false")
        monkeypatch.setenv("ABR_SIMULATED_QUALITY", "POOR")

        settings = AdaptiveBitrateSettings()

        assert settings.controller_config() == ControllerConfig(
            min_bitrate_bps=500_000, max_bitrate_bps=4_000_000, latency_ms=1200
        )
        assert settings.autostart is False
        assert settings.simulated_quality == "POOR"

    def test_loop_timing_from_environment(self, monkeypatch):
        monkeypatch.setenv("ABR_SAMPLE_INTERVAL_MS", "100")
        monkeypatch.setenv("ABR_DECISION_INTERVAL_MS", "40")
        monkeypatch.setenv("ABR_ACTUATION_COOLDOWN_MS", "2500")
        monkeypatch.setenv("ABR_ACK_TIMEOUT_MS", "8000")

        settings = AdaptiveBitrateSettings()

        assert settings.sample_interval_ms == 100
        assert settings.decision_interval_ms == 40
        assert settings.actuation_cooldown_ms == 2500
        assert settings.ack_timeout_ms == 8000

    def test_unprefixed_loop_timing_ignored(self, monkeypatch):
        monkeypatch.delenv("ABR_SAMPLE_INTERVAL_MS", raising=False)
        monkeypatch.setenv("SAMPLE_INTERVAL_MS", "100")

        assert AdaptiveBitrateSettings().sample_interval_ms == 50

    def test_max_below_min_rejected(self, monkeypatch):
        monkeypatch.setenv("ABR_MIN_BITRATE", "2000000")
        monkeypatch.setenv("ABR_MAX_BITRATE", "1000000")

        with pytest.raises(ValidationError):
            AdaptiveBitrateSettings()

    def test_min_below_floor_rejected(self, monkeypatch):
        monkeypatch.setenv("ABR_MIN_BITRATE", "1000")

        with pytest.raises(ValidationError):
            AdaptiveBitrateSettings()

    def test_settings_singleton(self):
        reset_settings()
        try:
            assert get_settings() is get_settings()
        finally:
            reset_settings()


@pytest.mark.parametrize("bad", ["fast", None, True, [1]])
def test_non_integer_limits_rejected(bad):
    with pytest.raises(ConfigurationError):
        ControllerConfig.clamped(bad, 6_000_000, 2000)


def test_configuring_twice_gives_same_thresholds():
    """Repeating a configure call changes nothing on the following ticks."""
    once = AdaptiveBitrateController(MappingStatsSource(dict), SimulatedEncoder())
    twice = AdaptiveBitrateController(MappingStatsSource(dict), SimulatedEncoder())

    once.configure(100_000, 50_000_000, 700)
    twice.configure(100_000, 50_000_000, 700)
    twice.configure(100_000, 50_000_000, 700)
    assert once.config == twice.config

    sample = TransportSample(rtt_ms=90, send_buffer_occupancy=40, throughput_mbps=4.0)
    for now_ms in (1000, 1020):
        decisions = []
        thresholds = []
        for controller in (once, twice):
            controller.slot.put(sample)
            decisions.append(controller.tick(now_ms=now_ms))
            thresholds.append(
                compute_thresholds(controller.smoother.metrics, controller.config)
            )

        assert thresholds[0] == thresholds[1]
        assert decisions[0].bitrate_bps == decisions[1].bitrate_bps
