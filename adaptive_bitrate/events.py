"""Outbound controller events.

Events are queued in emission order and delivered to listeners by a single
task, so listeners never run inside the control loop and each event is
delivered at most once. Closing the dispatcher discards anything still
queued: nothing is delivered after close() returns.
"""

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BitrateChanged:
    """A new bitrate reached the encoder (post-throttle, post-rounding)."""

    bitrate_bps: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class LivenessStalled:
    """ACK count stopped advancing for longer than the timeout."""

    silent_for_ms: float
    ack_count: int
    timestamp: float = field(default_factory=time.time)


ControllerEvent = Union[BitrateChanged, LivenessStalled]
Listener = Callable[[Any], Optional[Awaitable[None]]]


class EventDispatcher:
    """Ordered, non-blocking event fan-out."""

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = defaultdict(list)
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self.delivered = 0

    def add_listener(self, event_type: type, listener: Listener) -> None:
        """Register a callback (sync or async) for one event type."""
        self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: type, listener: Listener) -> None:
        if listener in self._listeners[event_type]:
            self._listeners[event_type].remove(listener)

    def is_open(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Open the dispatcher. Must be called from a running event loop."""
        if self._task is not None:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._deliver_loop())

    def emit(self, event: ControllerEvent) -> bool:
        """Queue an event without blocking.

        Args:
            event: Event to deliver

        Returns:
            True if queued, False if the dispatcher is closed
        """
        if self._task is None or self._queue is None:
            logger.debug(f"Dispatcher closed, dropping {type(event).__name__}")
            return False
        self._queue.put_nowait(event)
        return True

    async def _deliver_loop(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            for listener in list(self._listeners[type(event)]):
                try:
                    result = listener(event)
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(
                        f"Listener for {type(event).__name__} failed: {e}",
                        exc_info=True,
                    )
            self.delivered += 1

    async def close(self) -> None:
        """Stop delivery and discard pending events."""
        task, queue = self._task, self._queue
        self._task = None
        self._queue = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        if queue is not None and not queue.empty():
            logger.info(f"Discarded {queue.qsize()} undelivered events on close")
