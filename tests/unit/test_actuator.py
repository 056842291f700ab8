"""Unit tests for throttled encoder actuation."""

import asyncio

import pytest
import pytest_asyncio

from adaptive_bitrate.actuator import BitrateActuator, round_down_bitrate
from adaptive_bitrate.encoder import SimulatedEncoder
from adaptive_bitrate.events import BitrateChanged, EventDispatcher
from adaptive_bitrate.exceptions import ActuationError
from adaptive_bitrate.metrics import PerformanceMetrics


class RecordingEncoder(SimulatedEncoder):
    """Simulated encoder that records calls and can be told to fail."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls: list[str] = []
        self.fail_next = 0
        self.active = 0
        self.max_active = 0

    async def set_bitrate(self, bitrate_bps: int) -> None:
        self.calls.append(f"set:{bitrate_bps}")
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.fail_next > 0:
                self.fail_next -= 1
                raise ActuationError("encoder busy")
            await super().set_bitrate(bitrate_bps)
        finally:
            self.active -= 1

    async def pause(self) -> None:
        self.calls.append("pause")
        await super().pause()

    async def resume(self) -> None:
        self.calls.append("resume")
        await super().resume()


@pytest.mark.parametrize(
    "decided,applied",
    [
        (381_333, 300_000),
        (1_999_999, 1_900_000),
        (2_000_000, 2_000_000),
        (99_999, 0),
    ],
)
def test_round_down_bitrate(decided, applied):
    assert round_down_bitrate(decided) == applied


@pytest_asyncio.fixture
async def dispatcher():
    events = EventDispatcher()
    events.start()
    yield events
    await events.close()


def make_actuator(encoder, events, cooldown_ms=5000):
    return BitrateActuator(encoder, events, PerformanceMetrics(), cooldown_ms=cooldown_ms)


class TestApply:
    """Direct application, bypassing the cooldown."""

    @pytest.mark.asyncio
    async def test_apply_rounds_and_emits(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        actuator = make_actuator(encoder, dispatcher)
        received = []
        dispatcher.add_listener(BitrateChanged, received.append)

        assert await actuator.apply(381_333) is True
        await asyncio.sleep(0.01)

        assert encoder.bitrate_bps == 300_000
        assert actuator.applied_bitrate_bps == 300_000
        assert [e.bitrate_bps for e in received] == [300_000]

    @pytest.mark.asyncio
    async def test_same_rounded_value_is_not_reapplied(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        actuator = make_actuator(encoder, dispatcher)

        await actuator.apply(1_000_000)
        assert await actuator.apply(1_050_000) is False
        assert encoder.calls == ["set:1000000"]

    @pytest.mark.asyncio
    async def test_pause_resume_around_non_live_update(self, dispatcher):
        encoder = RecordingEncoder(live_update=False)
        encoder.start_stream()
        actuator = make_actuator(encoder, dispatcher)

        await actuator.apply(1_200_000)

        assert encoder.calls == ["pause", "set:1200000", "resume"]
        assert encoder.is_streaming()

    @pytest.mark.asyncio
    async def test_live_update_without_pause(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        encoder.start_stream()
        actuator = make_actuator(encoder, dispatcher)

        await actuator.apply(1_200_000)
        assert encoder.calls == ["set:1200000"]

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, dispatcher):
        encoder = RecordingEncoder(live_update=False)
        encoder.start_stream()
        encoder.fail_next = 1
        actuator = make_actuator(encoder, dispatcher)
        received = []
        dispatcher.add_listener(BitrateChanged, received.append)

        assert await actuator.apply(1_000_000) is False
        await asyncio.sleep(0.01)

        assert actuator.actuation_failed
        assert actuator.applied_bitrate_bps is None
        assert actuator.metrics.actuation_failures == 1
        assert received == []
        # Encoder resumed even though the update failed
        assert encoder.calls == ["pause", "set:1000000", "resume"]
        assert encoder.is_streaming()

        # The same value is retried after a failure
        assert await actuator.apply(1_000_000) is True
        assert not actuator.actuation_failed
        assert actuator.applied_bitrate_bps == 1_000_000

    @pytest.mark.asyncio
    async def test_concurrent_applies_are_serialized(self, dispatcher):
        encoder = RecordingEncoder(live_update=True, reconfigure_delay_ms=20)
        actuator = make_actuator(encoder, dispatcher)

        await asyncio.gather(
            actuator.apply(1_000_000),
            actuator.apply(2_000_000),
            actuator.apply(3_000_000),
        )

        assert encoder.max_active == 1
        assert len(encoder.calls) == 3


class TestWorker:
    """Cooldown and trailing-edge application through submit()."""

    @pytest.mark.asyncio
    async def test_newest_value_applied_after_cooldown(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        actuator = make_actuator(encoder, dispatcher, cooldown_ms=200)
        actuator.start()
        try:
            actuator.submit(1_000_000)
            await asyncio.sleep(0.05)
            assert encoder.bitrate_bps == 1_000_000

            # Both arrive inside the cooldown window
            actuator.submit(2_000_000)
            actuator.submit(2_500_000)
            await asyncio.sleep(0.05)
            assert encoder.bitrate_bps == 1_000_000
            assert actuator.pending_bitrate_bps == 2_500_000

            await asyncio.sleep(0.4)
            assert encoder.bitrate_bps == 2_500_000
            assert encoder.calls == ["set:1000000", "set:2500000"]
        finally:
            await actuator.stop()

    @pytest.mark.asyncio
    async def test_failed_update_retried_after_cooldown(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        encoder.fail_next = 1
        actuator = make_actuator(encoder, dispatcher, cooldown_ms=100)
        actuator.start()
        try:
            actuator.submit(1_500_000)
            await asyncio.sleep(0.03)
            assert actuator.actuation_failed

            await asyncio.sleep(0.3)
            assert not actuator.actuation_failed
            assert encoder.bitrate_bps == 1_500_000
            assert encoder.calls == ["set:1500000", "set:1500000"]
        finally:
            await actuator.stop()

    @pytest.mark.asyncio
    async def test_submit_ignored_when_stopped(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        actuator = make_actuator(encoder, dispatcher, cooldown_ms=0)
        actuator.start()
        await actuator.stop()

        actuator.submit(1_000_000)
        await asyncio.sleep(0.02)

        assert not actuator.is_running()
        assert actuator.pending_bitrate_bps is None
        assert encoder.calls == []

    @pytest.mark.asyncio
    async def test_start_resets_acked_state(self, dispatcher):
        encoder = RecordingEncoder(live_update=True)
        actuator = make_actuator(encoder, dispatcher, cooldown_ms=0)
        await actuator.apply(1_000_000)

        actuator.start()
        try:
            assert actuator.applied_bitrate_bps is None
            assert not actuator.actuation_failed
        finally:
            await actuator.stop()
