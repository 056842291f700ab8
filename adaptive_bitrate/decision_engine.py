"""Bitrate decision state machine.

Every tick evaluates an ordered rule set against the latest sample, the
smoothed metrics and this tick's thresholds. The first matching rule wins:

    1. severe  - snap to the minimum, ignoring the decrease gate
    2. heavy   - drop by 100 kbps + 10%, decrease gate 250 ms
    3. light   - drop by 100 kbps, decrease gate 200 ms
    4. recover - raise by 30 kbps + 1/30, increase gate 500 ms
    5. stable  - hold

The result is clamped to the configured [min, max] range.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from adaptive_bitrate.config import ControllerConfig
from adaptive_bitrate.smoothing import SmoothedMetrics
from adaptive_bitrate.thresholds import Thresholds
from adaptive_bitrate.transport_sample import TransportSample

logger = logging.getLogger(__name__)

# Increase settings
BITRATE_INCR_MIN = 30_000
BITRATE_INCR_SCALE = 30
BITRATE_INCR_INTERVAL_MS = 500

# Decrease settings
BITRATE_DECR_MIN = 100_000
BITRATE_DECR_SCALE = 10
BITRATE_DECR_INTERVAL_MS = 200
BITRATE_DECR_FAST_INTERVAL_MS = 250

# RTT trend must stay below this for an increase
MAX_INCREASE_TREND = 0.01

# Fractions of the latency budget for severe / heavy RTT congestion
SEVERE_LATENCY_DIVISOR = 3
HEAVY_LATENCY_DIVISOR = 5


class AdjustmentReason(str, Enum):
    """Why the bitrate is where it is after a tick."""

    SEVERE_RTT_CONGESTION = "SevereRttCongestion"
    SEVERE_BUFFER_CONGESTION = "SevereBufferCongestion"
    HEAVY_RTT_CONGESTION = "HeavyRttCongestion"
    HEAVY_BUFFER_CONGESTION = "HeavyBufferCongestion"
    LIGHT_RTT_CONGESTION = "LightRttCongestion"
    LIGHT_BUFFER_CONGESTION = "LightBufferCongestion"
    GOOD_CONDITIONS_INCREASING = "GoodConditionsIncreasing"
    STABLE = "Stable"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    AdjustmentReason.SEVERE_RTT_CONGESTION: "Severe RTT congestion",
    AdjustmentReason.SEVERE_BUFFER_CONGESTION: "Severe buffer congestion",
    AdjustmentReason.HEAVY_RTT_CONGESTION: "Heavy RTT congestion",
    AdjustmentReason.HEAVY_BUFFER_CONGESTION: "Heavy buffer congestion",
    AdjustmentReason.LIGHT_RTT_CONGESTION: "Light RTT congestion",
    AdjustmentReason.LIGHT_BUFFER_CONGESTION: "Light buffer congestion",
    AdjustmentReason.GOOD_CONDITIONS_INCREASING: "Good conditions - increasing",
    AdjustmentReason.STABLE: "Stable",
}


class Rule(str, Enum):
    """Rule that fired on a tick."""

    SEVERE = "severe"
    HEAVY = "heavy"
    LIGHT = "light"
    RECOVERY = "recovery"
    STABLE = "stable"


@dataclass
class TimingGates:
    """Earliest monotonic times (ms) at which the next change may fire."""

    next_increase_allowed_at: float = 0.0
    next_decrease_allowed_at: float = 0.0


@dataclass(frozen=True)
class Decision:
    """Outcome of one tick.

    Attributes:
        bitrate_bps: Bitrate after the tick (clamped)
        previous_bitrate_bps: Bitrate before the tick
        rule: Rule that fired
        reason: Observability reason, re-derived from the conditions
    """

    bitrate_bps: int
    previous_bitrate_bps: int
    rule: Rule
    reason: AdjustmentReason

    @property
    def changed(self) -> bool:
        return self.bitrate_bps != self.previous_bitrate_bps


class DecisionEngine:
    """Owns the current bitrate and the increase/decrease timing gates."""

    def __init__(self, initial_bitrate_bps: int) -> None:
        self.current_bitrate_bps = initial_bitrate_bps
        self.gates = TimingGates()

    def reset(self, initial_bitrate_bps: int) -> None:
        """Restart from `initial_bitrate_bps` with both gates open."""
        self.current_bitrate_bps = initial_bitrate_bps
        self.gates = TimingGates()

    def decide(
        self,
        sample: TransportSample,
        metrics: SmoothedMetrics,
        thresholds: Thresholds,
        config: ControllerConfig,
        now_ms: float,
    ) -> Decision:
        """Run the rule set for one tick and update the current bitrate.

        Args:
            sample: Latest telemetry sample
            metrics: Smoothed metrics including this sample
            thresholds: Thresholds computed from `metrics`
            config: Controller limits in effect for this tick
            now_ms: Monotonic time in milliseconds

        Returns:
            Decision describing the change (if any)
        """
        previous = self.current_bitrate_bps
        bitrate = previous
        rtt = sample.rtt_ms
        buffer = sample.send_buffer_occupancy
        gates = self.gates

        if bitrate > config.min_bitrate_bps and (
            rtt >= config.latency_ms // SEVERE_LATENCY_DIVISOR
            or buffer > thresholds.buffer_th3
        ):
            # Circuit breaker: bypasses the decrease gate
            bitrate = config.min_bitrate_bps
            gates.next_decrease_allowed_at = now_ms + BITRATE_DECR_INTERVAL_MS
            rule = Rule.SEVERE
        elif now_ms > gates.next_decrease_allowed_at and (
            rtt > config.latency_ms // HEAVY_LATENCY_DIVISOR
            or buffer > thresholds.buffer_th2
        ):
            bitrate -= BITRATE_DECR_MIN + bitrate // BITRATE_DECR_SCALE
            gates.next_decrease_allowed_at = now_ms + BITRATE_DECR_FAST_INTERVAL_MS
            rule = Rule.HEAVY
        elif now_ms > gates.next_decrease_allowed_at and (
            rtt > thresholds.rtt_threshold_max or buffer > thresholds.buffer_th1
        ):
            bitrate -= BITRATE_DECR_MIN
            gates.next_decrease_allowed_at = now_ms + BITRATE_DECR_INTERVAL_MS
            rule = Rule.LIGHT
        elif (
            now_ms > gates.next_increase_allowed_at
            and rtt < thresholds.rtt_threshold_min
            and metrics.rtt_avg_delta < MAX_INCREASE_TREND
        ):
            bitrate += BITRATE_INCR_MIN + bitrate // BITRATE_INCR_SCALE
            gates.next_increase_allowed_at = now_ms + BITRATE_INCR_INTERVAL_MS
            rule = Rule.RECOVERY
        else:
            rule = Rule.STABLE

        bitrate = max(config.min_bitrate_bps, min(bitrate, config.max_bitrate_bps))
        self.current_bitrate_bps = bitrate

        decision = Decision(
            bitrate_bps=bitrate,
            previous_bitrate_bps=previous,
            rule=rule,
            reason=classify_reason(sample, metrics, thresholds, config),
        )

        if decision.changed:
            logger.debug(
                f"Bitrate {previous} -> {bitrate} bps ({rule.value})",
                extra={"bitrate_bps": bitrate, "rtt_ms": rtt, "reason": decision.reason.value},
            )

        return decision


def classify_reason(
    sample: TransportSample,
    metrics: SmoothedMetrics,
    thresholds: Thresholds,
    config: ControllerConfig,
) -> AdjustmentReason:
    """Re-check the rule conditions, ignoring gates, to name the situation.

    Args:
        sample: Latest telemetry sample
        metrics: Smoothed metrics including this sample
        thresholds: Thresholds computed from `metrics`
        config: Controller limits in effect for this tick

    Returns:
        First matching AdjustmentReason
    """
    rtt = sample.rtt_ms
    buffer = sample.send_buffer_occupancy

    if rtt >= config.latency_ms // SEVERE_LATENCY_DIVISOR:
        return AdjustmentReason.SEVERE_RTT_CONGESTION
    if buffer > thresholds.buffer_th3:
        return AdjustmentReason.SEVERE_BUFFER_CONGESTION
    if rtt > config.latency_ms // HEAVY_LATENCY_DIVISOR:
        return AdjustmentReason.HEAVY_RTT_CONGESTION
    if buffer > thresholds.buffer_th2:
        return AdjustmentReason.HEAVY_BUFFER_CONGESTION
    if rtt > thresholds.rtt_threshold_max:
        return AdjustmentReason.LIGHT_RTT_CONGESTION
    if buffer > thresholds.buffer_th1:
        return AdjustmentReason.LIGHT_BUFFER_CONGESTION
    if rtt < thresholds.rtt_threshold_min and metrics.rtt_avg_delta < MAX_INCREASE_TREND:
        return AdjustmentReason.GOOD_CONDITIONS_INCREASING
    return AdjustmentReason.STABLE
