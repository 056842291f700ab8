"""Adaptive bitrate controller orchestrating the control loop.

Runs two independent periodic tasks:

    sampler (50ms):  stats source -> LatestSampleSlot, liveness watchdog
    decision (20ms): slot -> MetricsSmoother -> thresholds -> DecisionEngine
                     -> (on change) BitrateActuator -> StateBroadcaster

The decision tick is a plain synchronous function, so ticks never overlap
and a tick in flight always completes before cancellation is observed.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from adaptive_bitrate.actuator import DEFAULT_ACTUATION_COOLDOWN_MS, BitrateActuator
from adaptive_bitrate.clock import Clock, monotonic_ms
from adaptive_bitrate.config import ControllerConfig
from adaptive_bitrate.decision_engine import Decision, DecisionEngine
from adaptive_bitrate.events import BitrateChanged, EventDispatcher, LivenessStalled
from adaptive_bitrate.exceptions import StatsSourceError
from adaptive_bitrate.interfaces.encoder import IEncoderControl
from adaptive_bitrate.interfaces.stats_source import ITransportStatsSource
from adaptive_bitrate.liveness import DEFAULT_ACK_TIMEOUT_MS, LivenessWatchdog
from adaptive_bitrate.metrics import PerformanceMetrics
from adaptive_bitrate.observable_state import ControllerState, StateBroadcaster
from adaptive_bitrate.sample_slot import LatestSampleSlot
from adaptive_bitrate.smoothing import MetricsSmoother
from adaptive_bitrate.stats_source import classify_connection_quality, stats_summary
from adaptive_bitrate.thresholds import compute_thresholds
from adaptive_bitrate.transport_sample import TransportSample

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_INTERVAL_MS = 50
DEFAULT_DECISION_INTERVAL_MS = 20


class AdaptiveBitrateController:
    """Closed-loop encoder bitrate controller driven by transport telemetry."""

    def __init__(
        self,
        stats_source: ITransportStatsSource,
        encoder: IEncoderControl,
        config: Optional[ControllerConfig] = None,
        metrics: Optional[PerformanceMetrics] = None,
        sample_interval_ms: float = DEFAULT_SAMPLE_INTERVAL_MS,
        decision_interval_ms: float = DEFAULT_DECISION_INTERVAL_MS,
        actuation_cooldown_ms: float = DEFAULT_ACTUATION_COOLDOWN_MS,
        ack_timeout_ms: float = DEFAULT_ACK_TIMEOUT_MS,
        clock: Clock = monotonic_ms,
    ):
        """Initialize controller.

        Args:
            stats_source: Transport telemetry collaborator
            encoder: Encoder control surface
            config: Initial bitrate range and latency budget
            metrics: Metrics collector (created if omitted)
            sample_interval_ms: Telemetry sampler period
            decision_interval_ms: Decision loop period
            actuation_cooldown_ms: Minimum interval between encoder updates
            ack_timeout_ms: ACK silence that counts as a liveness stall
            clock: Monotonic millisecond clock
        """
        self.stats_source = stats_source
        self.encoder = encoder
        self.metrics = metrics or PerformanceMetrics()
        self.sample_interval_ms = sample_interval_ms
        self.decision_interval_ms = decision_interval_ms
        self._clock = clock
        self._config = config or ControllerConfig()

        # Control loop state (single writer: the decision tick)
        self.smoother = MetricsSmoother()
        self.engine = DecisionEngine(self._config.min_bitrate_bps)
        self.slot = LatestSampleSlot()
        self.watchdog = LivenessWatchdog(ack_timeout_ms)
        self._tick_count = 0

        self.events = EventDispatcher()
        self.actuator = BitrateActuator(
            encoder, self.events, self.metrics, actuation_cooldown_ms, clock
        )
        self.state_broadcaster = StateBroadcaster(self._initial_state(running=False))

        self._running = False
        self._sampler_task: Optional[asyncio.Task] = None
        self._decision_task: Optional[asyncio.Task] = None
        # Held for the whole of start() and stop()
        self._lifecycle_lock = asyncio.Lock()

        logger.info("Adaptive bitrate controller initialized")

    # Configuration

    @property
    def config(self) -> ControllerConfig:
        return self._config

    def configure(
        self, min_bitrate_bps: int, max_bitrate_bps: int, latency_ms: int
    ) -> ControllerConfig:
        """Update the bitrate range and latency budget.

        Values are clamped into their legal ranges. Takes effect on the
        next tick; safe to call while running.

        Args:
            min_bitrate_bps: Minimum bitrate
            max_bitrate_bps: Maximum bitrate
            latency_ms: Transport latency budget

        Returns:
            The configuration actually in effect

        Raises:
            ConfigurationError: If a value is not an integer (nothing changes)
        """
        self._config = ControllerConfig.clamped(
            min_bitrate_bps, max_bitrate_bps, latency_ms
        )
        logger.info(
            f"Configuration updated: min={self._config.min_bitrate_bps}, "
            f"max={self._config.max_bitrate_bps}, latency={self._config.latency_ms}"
        )
        return self._config

    # Events

    def on_bitrate_changed(
        self, listener: Callable[[BitrateChanged], Optional[Awaitable[None]]]
    ) -> None:
        """Register a listener for bitrates that reached the encoder."""
        self.events.add_listener(BitrateChanged, listener)

    def on_liveness_stalled(
        self, listener: Callable[[LivenessStalled], Optional[Awaitable[None]]]
    ) -> None:
        """Register a listener for ACK stalls (reconnection is the caller's job)."""
        self.events.add_listener(LivenessStalled, listener)

    # State

    def state(self) -> ControllerState:
        """Latest published snapshot."""
        return self.state_broadcaster.get()

    def subscribe_state(self) -> asyncio.Queue:
        return self.state_broadcaster.subscribe()

    def unsubscribe_state(self, queue: asyncio.Queue) -> None:
        self.state_broadcaster.unsubscribe(queue)

    def _initial_state(self, running: bool) -> ControllerState:
        bitrate = self.engine.current_bitrate_bps
        return ControllerState(
            current_bitrate_bps=bitrate,
            target_bitrate_bps=bitrate,
            running=running,
        )

    # Lifecycle

    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sampler and decision loops from default state.

        Waits for a stop in progress to finish first.
        """
        async with self._lifecycle_lock:
            await self._start()

    async def _start(self) -> None:
        if self._running:
            logger.warning("Adaptive bitrate controller already running")
            return

        # No carry-over from a previous run
        self.smoother.reset()
        self.engine.reset(self._config.min_bitrate_bps)
        self.watchdog.reset()
        self.slot.clear()
        self._tick_count = 0

        self._running = True
        self.events.start()
        self.actuator.start()
        self.actuator.submit(self.engine.current_bitrate_bps)
        self.state_broadcaster.publish(self._initial_state(running=True))

        self._sampler_task = asyncio.create_task(self._sampler_loop())
        self._decision_task = asyncio.create_task(self._decision_loop())

        logger.info(
            f"Adaptive bitrate control started at {self.engine.current_bitrate_bps} bps",
            extra={"bitrate_bps": self.engine.current_bitrate_bps},
        )

    async def stop(self) -> None:
        """Stop both loops and the actuator.

        No BitrateChanged or LivenessStalled event is delivered once this
        returns. A start() issued meanwhile runs after the stop completes.
        """
        async with self._lifecycle_lock:
            await self._stop()

    async def _stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping adaptive bitrate control")
        self._running = False

        for task in (self._sampler_task, self._decision_task):
            if task is not None:
                task.cancel()
        for task in (self._sampler_task, self._decision_task):
            if task is not None:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._sampler_task = None
        self._decision_task = None

        await self.actuator.stop()
        await self.events.close()
        self.slot.clear()

        last = self.state()
        self.state_broadcaster.publish(
            ControllerState(
                current_bitrate_bps=last.current_bitrate_bps,
                target_bitrate_bps=last.target_bitrate_bps,
                last_sample=last.last_sample,
                adjustment_reason=last.adjustment_reason,
                applied_bitrate_bps=self.actuator.applied_bitrate_bps,
                actuation_failed=self.actuator.actuation_failed,
                connection_quality=last.connection_quality,
                running=False,
                tick=last.tick,
            )
        )
        logger.info("Adaptive bitrate control stopped")

    # Sampler

    async def poll_sample(self) -> Optional[TransportSample]:
        """Fetch one sample and hand it to the decision loop.

        Returns:
            The sample, or None if the fetch failed (nothing is stored)
        """
        start_time = time.perf_counter()
        try:
            sample = await asyncio.to_thread(self.stats_source.sample)
        except StatsSourceError as e:
            self.metrics.increment_sample_failure()
            logger.warning(f"Telemetry sample skipped: {e}")
            return None
        except Exception as e:
            self.metrics.increment_sample_failure()
            logger.error(f"Error gathering transport statistics: {e}", exc_info=True)
            return None
        finally:
            self.metrics.record_sample_fetch((time.perf_counter() - start_time) * 1000.0)

        if not isinstance(sample, TransportSample):
            self.metrics.increment_sample_failure()
            logger.warning(f"Stats source returned {type(sample).__name__}, skipping")
            return None

        self.slot.put(sample)

        now_ms = self._clock()
        if self.watchdog.observe(sample.ack_count, now_ms):
            self.metrics.increment_liveness_stall()
            self.events.emit(
                LivenessStalled(
                    silent_for_ms=self.watchdog.silent_for_ms(now_ms),
                    ack_count=sample.ack_count,
                )
            )

        return sample

    async def _sampler_loop(self) -> None:
        """Internal telemetry sampler loop."""
        try:
            while self._running:
                await self.poll_sample()
                await asyncio.sleep(self.sample_interval_ms / 1000.0)
        except asyncio.CancelledError:
            logger.debug("Sampler loop cancelled")

    # Decision loop

    def tick(self, now_ms: Optional[float] = None) -> Optional[Decision]:
        """Run one decision step on the freshest sample.

        Args:
            now_ms: Monotonic time in milliseconds (clock if omitted)

        Returns:
            Decision, or None if no fresh sample was available (nothing
            changes: no new information)
        """
        sample = self.slot.take()
        if sample is None:
            self.metrics.increment_idle_tick()
            return None

        start_time = time.perf_counter()
        now = self._clock() if now_ms is None else now_ms
        config = self._config

        metrics = self.smoother.update(sample)
        thresholds = compute_thresholds(metrics, config)
        decision = self.engine.decide(sample, metrics, thresholds, config, now)

        if decision.changed:
            self.metrics.increment_bitrate_change()
            self.actuator.submit(decision.bitrate_bps)

        self._tick_count += 1
        self.state_broadcaster.publish(
            ControllerState(
                current_bitrate_bps=self.engine.current_bitrate_bps,
                target_bitrate_bps=decision.bitrate_bps,
                last_sample=sample,
                adjustment_reason=decision.reason,
                applied_bitrate_bps=self.actuator.applied_bitrate_bps,
                actuation_failed=self.actuator.actuation_failed,
                connection_quality=classify_connection_quality(sample).value,
                running=self._running,
                tick=self._tick_count,
            )
        )

        logger.debug(
            f"RTT {sample.rtt_ms}ms (avg {metrics.rtt_avg:.0f}, min {metrics.rtt_min:.0f}, "
            f"jitter {metrics.rtt_jitter:.0f}), buffer {sample.send_buffer_occupancy} "
            f"(avg {metrics.buffer_avg:.0f}, jitter {metrics.buffer_jitter:.0f}), "
            f"throughput {metrics.throughput_avg:.1f}Mbps, "
            f"bitrate {self.engine.current_bitrate_bps // 1000}kbps",
            extra={"tick": self._tick_count, "reason": decision.reason.value},
        )

        self.metrics.record_tick_duration((time.perf_counter() - start_time) * 1000.0)
        return decision

    async def _decision_loop(self) -> None:
        """Internal decision loop."""
        try:
            while self._running:
                try:
                    self.tick()
                except Exception as e:
                    logger.error(f"Error in decision tick: {e}", exc_info=True)
                await asyncio.sleep(self.decision_interval_ms / 1000.0)
        except asyncio.CancelledError:
            logger.debug("Decision loop cancelled")

    # Reporting

    def get_status_summary(self) -> str:
        """Multi-line operator summary of the current state."""
        state = self.state()
        sample = state.last_sample
        lines = [
            f"Adaptive Bitrate: {'Active' if state.running else 'Inactive'}",
            f"Current: {state.current_bitrate_bps // 1000} kbps",
            f"Target: {state.target_bitrate_bps // 1000} kbps",
            "Applied: "
            + (
                f"{state.applied_bitrate_bps // 1000} kbps"
                if state.applied_bitrate_bps is not None
                else "none"
            )
            + (" (last update failed)" if state.actuation_failed else ""),
            f"Network: {state.connection_quality or 'unknown'}",
            f"RTT: {sample.rtt_ms}ms" if sample else "RTT: n/a",
            f"Reason: {state.adjustment_reason.description}",
        ]
        if sample:
            lines.append(stats_summary(sample))
        return "\n".join(lines)

    def get_status(self) -> dict[str, Any]:
        """Controller status for the REST API."""
        state = self.state()
        return {
            "running": self._running,
            "config": self._config.to_dict(),
            "current_bitrate_bps": state.current_bitrate_bps,
            "applied_bitrate_bps": state.applied_bitrate_bps,
            "adjustment_reason": state.adjustment_reason.value,
            "liveness_stalled": self.watchdog.stalled,
            "state_subscribers": self.state_broadcaster.subscriber_count(),
        }


