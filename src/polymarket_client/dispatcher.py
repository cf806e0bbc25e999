"""
Event Dispatcher - delivers stream events to registered consumers.

Each consumer gets one bounded lane per channel, drained by its own worker
task. Arrival order is preserved within a channel; channels do not wait on
each other. When a lane is full the oldest queued event is dropped
(drop-oldest backpressure), so a slow consumer never blocks the transport
and memory stays bounded.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Union

from .models.events import StreamEvent
from .models.stream import Channel

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], Union[None, Awaitable[None]]]


class _Consumer:
    """One registered callback and its per-channel lanes."""

    def __init__(self, callback: EventCallback):
        self.callback = callback
        self.lanes: Dict[Optional[Channel], asyncio.Queue] = {}
        self.workers: List[asyncio.Task] = []
        self.dropped = 0


class EventDispatcher:
    """Fan-out of stream events with per-channel ordering."""

    def __init__(self, queue_size: int = 1000):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._queue_size = queue_size
        self._consumers: List[_Consumer] = []
        self._stopped = False

    @property
    def dropped(self) -> int:
        """Events discarded by the drop-oldest policy, over all consumers."""
        return sum(consumer.dropped for consumer in self._consumers)

    def add_consumer(self, callback: EventCallback) -> Callable[[], None]:
        """
        Register a consumer.

        Args:
            callback: Plain function or coroutine function taking one event

        Returns:
            Function that unregisters the consumer
        """
        consumer = _Consumer(callback)
        self._consumers.append(consumer)

        def remove() -> None:
            if consumer in self._consumers:
                self._consumers.remove(consumer)
                for worker in consumer.workers:
                    worker.cancel()

        return remove

    def publish(self, event: StreamEvent) -> None:
        """Queue an event for every consumer. Never blocks."""
        if self._stopped:
            return
        for consumer in self._consumers:
            lane = consumer.lanes.get(event.channel)
            if lane is None:
                lane = self._open_lane(consumer, event.channel)

            if lane.full():
                lane.get_nowait()
                lane.task_done()
                consumer.dropped += 1
                logger.warning(
                    f"Consumer lagging on {self._lane_name(event.channel)} channel, "
                    f"dropped oldest event ({consumer.dropped} dropped so far)"
                )
            lane.put_nowait(event)

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        for consumer in list(self._consumers):
            for lane in list(consumer.lanes.values()):
                await lane.join()

    async def stop(self) -> None:
        """Stop all workers. Queued events are discarded."""
        self._stopped = True
        workers = [w for consumer in self._consumers for w in consumer.workers]
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    def _open_lane(self, consumer: _Consumer, channel: Optional[Channel]) -> asyncio.Queue:
        lane: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        consumer.lanes[channel] = lane
        worker = asyncio.get_running_loop().create_task(self._drain(consumer, lane))
        consumer.workers.append(worker)
        return lane

    async def _drain(self, consumer: _Consumer, lane: asyncio.Queue) -> None:
        while True:
            event = await lane.get()
            try:
                result = consumer.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Event consumer failed on {type(event).__name__}")
            finally:
                lane.task_done()

    @staticmethod
    def _lane_name(channel: Optional[Channel]) -> str:
        return channel.value if channel is not None else "session"
