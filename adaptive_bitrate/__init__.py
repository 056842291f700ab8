"""Adaptive bitrate controller for live low-latency video transport.

Adjusts the encoder bitrate of a live transport session from round-trip
time, send-buffer occupancy and throughput telemetry.
"""

from adaptive_bitrate.actuator import BitrateActuator, round_down_bitrate
from adaptive_bitrate.config import (
    AdaptiveBitrateSettings,
    ControllerConfig,
    get_settings,
)
from adaptive_bitrate.controller import AdaptiveBitrateController
from adaptive_bitrate.decision_engine import AdjustmentReason, Decision, DecisionEngine
from adaptive_bitrate.events import BitrateChanged, EventDispatcher, LivenessStalled
from adaptive_bitrate.liveness import LivenessWatchdog
from adaptive_bitrate.metrics import PerformanceMetrics
from adaptive_bitrate.observable_state import ControllerState, StateBroadcaster
from adaptive_bitrate.smoothing import MetricsSmoother, SmoothedMetrics
from adaptive_bitrate.stats_source import (
    ConnectionQuality,
    MappingStatsSource,
    SimulatedStatsSource,
)
from adaptive_bitrate.thresholds import Thresholds, compute_thresholds
from adaptive_bitrate.transport_sample import TransportSample

__version__ = "1.0.0"

__all__ = [
    # Core components
    "AdaptiveBitrateController",
    "MetricsSmoother",
    "DecisionEngine",
    "BitrateActuator",
    "LivenessWatchdog",
    "StateBroadcaster",
    "EventDispatcher",
    "compute_thresholds",
    "round_down_bitrate",
    # Data structures
    "TransportSample",
    "SmoothedMetrics",
    "Thresholds",
    "Decision",
    "AdjustmentReason",
    "ControllerState",
    "BitrateChanged",
    "LivenessStalled",
    # Stats sources
    "ConnectionQuality",
    "MappingStatsSource",
    "SimulatedStatsSource",
    # Configuration
    "AdaptiveBitrateSettings",
    "ControllerConfig",
    "get_settings",
    # Metrics
    "PerformanceMetrics",
]
