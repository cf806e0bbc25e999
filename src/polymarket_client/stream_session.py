"""
Streaming Session - one multiplexed WebSocket session with automatic recovery.

The session runs as a single asyncio task that exclusively owns the
transport. Subscription changes requested by callers travel through an
intake queue and are applied by that task, so the desired subscription set
has exactly one writer. State machine:

    DISCONNECTED -> CONNECTING      connect()
    CONNECTING   -> SUBSCRIBED      connected and every subscription replayed
    CONNECTING   -> DEGRADED        connect/handshake failure or timeout
    SUBSCRIBED   -> DEGRADED        transport error, malformed frame burst,
                                    no frame within heartbeat_timeout
    DEGRADED     -> CONNECTING      retry scheduled by the backoff controller
    DEGRADED     -> CLOSED          retry budget exhausted (StreamUnavailable)
    any          -> CLOSED          close()
"""

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .backoff import ReconnectionController
from .constants import PING_FRAME, PONG_FRAME
from .dispatcher import EventCallback, EventDispatcher
from .errors import DecodeWarning, StreamUnavailable, TransportError
from .frames import Frame, decode_frame, is_heartbeat
from .models.config import StreamConfig
from .models.events import ConnectionStateChange, Heartbeat, StreamEvent
from .models.stream import Channel, ConnectionState, Subscription
from .monitoring import StreamStatistics
from .transport import Transport, TransportFactory

logger = logging.getLogger(__name__)

SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"

_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING, ConnectionState.CLOSED},
    ConnectionState.CONNECTING: {
        ConnectionState.SUBSCRIBED,
        ConnectionState.DEGRADED,
        ConnectionState.CLOSED,
    },
    ConnectionState.SUBSCRIBED: {ConnectionState.DEGRADED, ConnectionState.CLOSED},
    ConnectionState.DEGRADED: {ConnectionState.CONNECTING, ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}

ErrorCallback = Callable[[StreamUnavailable], None]
SubscriptionKey = Tuple[Channel, FrozenSet[str]]


@dataclass(frozen=True)
class _Command:
    operation: str
    subscription: Subscription


class StreamingSession:
    """
    Multiplexed market/user stream over one WebSocket connection.

    Example:
        session = StreamingSession(
            aiohttp_transport_factory(DEFAULT_WS_URL),
            subscriptions=[Subscription.market(["1234..."])],
        )
        session.on_event(print)
        await session.connect()
        ...
        await session.close()
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        config: Optional[StreamConfig] = None,
        subscriptions: Iterable[Subscription] = (),
        controller: Optional[ReconnectionController] = None,
        dispatcher: Optional[EventDispatcher] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the session. No I/O happens until connect().

        Args:
            transport_factory: Coroutine function opening a new Transport
            config: Timeouts, heartbeat and backoff settings
            subscriptions: Initial subscriptions, replayed in this order
            controller: Reconnection controller (built from config.backoff by default)
            dispatcher: Event dispatcher (built from config.queue_size by default)
            clock: Monotonic time source used for heartbeat staleness
        """
        self._config = config or StreamConfig()
        self._factory = transport_factory
        self._controller = controller or ReconnectionController(self._config.backoff)
        self._dispatcher = dispatcher or EventDispatcher(self._config.queue_size)
        self._clock = clock

        self._state = ConnectionState.DISCONNECTED
        self._desired: Dict[SubscriptionKey, Subscription] = {}
        for subscription in subscriptions:
            self._desired.setdefault(subscription.key, subscription)

        self._intake: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._closed_event = asyncio.Event()
        self._dispatcher_stopped = False

        self._sequences: Dict[Optional[Channel], int] = {}
        self._error_callbacks: List[ErrorCallback] = []
        self._fatal_error: Optional[StreamUnavailable] = None
        self._last_frame_at = 0.0
        self._last_ping_at = 0.0

        self.statistics = StreamStatistics()

    # Public API
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def subscriptions(self) -> Tuple[Subscription, ...]:
        """Snapshot of the desired subscriptions in replay order."""
        return tuple(self._desired.values())

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    async def connect(self) -> "StreamingSession":
        """Start the session task. Returns immediately; progress is reported via events."""
        if self._state is not ConnectionState.DISCONNECTED:
            raise RuntimeError(f"Cannot connect a session in state {self._state.value}")

        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())
        return self

    def subscribe(self, subscription: Subscription) -> None:
        """Add a subscription. Thread-safe, never blocks."""
        self._submit(_Command(SUBSCRIBE, subscription))

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Thread-safe, never blocks."""
        self._submit(_Command(UNSUBSCRIBE, subscription))

    def on_event(self, callback: EventCallback) -> Callable[[], None]:
        """Register an event consumer; returns a function that unregisters it."""
        return self._dispatcher.add_consumer(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        """Register a callback for the fatal StreamUnavailable error."""
        self._error_callbacks.append(callback)

    async def wait_closed(self) -> None:
        """
        Wait until the session is closed.

        Raises:
            StreamUnavailable: If the session closed because retries were exhausted
        """
        await self._closed_event.wait()
        if self._fatal_error is not None:
            raise self._fatal_error

    async def close(self) -> None:
        """Close the session. Pending reads and writes are cancelled immediately."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._state is not ConnectionState.CLOSED:
            self._set_state(ConnectionState.CLOSED, "closed by caller")
            logger.info("Streaming session closed")

        await self._stop_dispatcher()
        self._closed_event.set()

    async def __aenter__(self) -> "StreamingSession":
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Session task
    async def _run(self) -> None:
        last_error: Optional[BaseException] = None
        try:
            while True:
                self._set_state(ConnectionState.CONNECTING, "opening connection")
                try:
                    transport = await self._open()
                except (TransportError, asyncio.TimeoutError, OSError) as e:
                    last_error = e
                    self._set_state(ConnectionState.DEGRADED, f"connect failed: {e}")
                else:
                    try:
                        await self._pump(transport)
                    except (TransportError, asyncio.TimeoutError) as e:
                        last_error = e
                        self._set_state(ConnectionState.DEGRADED, str(e) or type(e).__name__)
                    finally:
                        await self._close_transport(transport)

                delay = self._controller.next_delay()
                if delay is None:
                    await self._give_up(last_error)
                    return

                self.statistics.reconnects += 1
                logger.warning(
                    f"Stream degraded ({last_error}), reconnecting in {delay:.2f}s "
                    f"(attempt {self._controller.attempts})"
                )
                await self._wait_backoff(delay)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Streaming session failed unexpectedly")
            await self._give_up(e)

    async def _open(self) -> Transport:
        cfg = self._config
        transport = await asyncio.wait_for(self._factory(), cfg.connect_timeout)
        self._drain_intake()
        try:
            await asyncio.wait_for(self._replay(transport), cfg.handshake_timeout)
        except BaseException:
            await self._close_transport(transport)
            raise

        self._controller.reset()
        now = self._now()
        self._last_frame_at = now
        self._last_ping_at = now
        self._set_state(ConnectionState.SUBSCRIBED, f"{len(self._desired)} subscriptions active")
        return transport

    async def _replay(self, transport: Transport) -> None:
        for subscription in list(self._desired.values()):
            await self._send(transport, subscription.to_message(SUBSCRIBE))
            logger.info(
                f"Subscribed to {subscription.channel.value} channel: {len(subscription.ids)} ids"
            )

    async def _pump(self, transport: Transport) -> None:
        cfg = self._config
        recv_task: Optional[asyncio.Future] = None
        intake_task: Optional[asyncio.Future] = None
        malformed = 0
        try:
            while True:
                if recv_task is None:
                    recv_task = asyncio.ensure_future(transport.recv())
                if intake_task is None:
                    intake_task = asyncio.ensure_future(self._intake.get())

                now = self._now()
                stale_in = self._last_frame_at + cfg.heartbeat_timeout - now
                if stale_in <= 0:
                    raise TransportError(
                        f"No frames received for {cfg.heartbeat_timeout}s, connection is stale"
                    )
                ping_in = self._last_ping_at + cfg.ping_interval - now

                done, _ = await asyncio.wait(
                    {recv_task, intake_task},
                    timeout=max(0.0, min(stale_in, ping_in)),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if recv_task in done:
                    frame = recv_task.result()
                    recv_task = None
                    self._last_frame_at = self._now()
                    malformed = await self._handle_frame(transport, frame, malformed)

                if intake_task in done:
                    command = intake_task.result()
                    intake_task = None
                    await self._apply(command, transport)

                if self._now() - self._last_ping_at >= cfg.ping_interval:
                    await transport.send(PING_FRAME)
                    self._last_ping_at = self._now()
        finally:
            if recv_task is not None:
                self._discard(recv_task)
            if intake_task is not None:
                if intake_task.done() and not intake_task.cancelled():
                    self._apply_offline(intake_task.result())
                else:
                    intake_task.cancel()

    async def _handle_frame(self, transport: Transport, frame: Frame, malformed: int) -> int:
        self.statistics.record_frame()

        if is_heartbeat(frame):
            if isinstance(frame, str) and frame.strip().upper() == PING_FRAME:
                await transport.send(PONG_FRAME)
            logger.debug("Heartbeat received")
            self._emit(Heartbeat(channel=None, sequence=0, timestamp=None))
            return malformed

        try:
            events = decode_frame(frame)
        except DecodeWarning as e:
            malformed += 1
            self.statistics.frames_dropped += 1
            logger.warning(f"Dropping undecodable frame ({malformed} in a row): {e}")
            if malformed >= self._config.max_malformed_frames:
                raise TransportError(f"{malformed} consecutive malformed frames") from e
            return malformed

        for event in events:
            self._emit(event)
        return 0

    async def _apply(self, command: _Command, transport: Transport) -> None:
        subscription = command.subscription
        key = subscription.key

        if command.operation == SUBSCRIBE:
            if key in self._desired:
                logger.debug(f"Already subscribed: {subscription}")
                return
            self._desired[key] = subscription
            await self._send(transport, subscription.to_message(SUBSCRIBE))
            logger.info(f"Subscribed to {subscription.channel.value} channel: {list(subscription.ids)}")
        else:
            existing = self._desired.pop(key, None)
            if existing is None:
                logger.debug(f"Not subscribed, ignoring unsubscribe: {subscription}")
                return
            await self._send(transport, existing.to_message(UNSUBSCRIBE))
            logger.info(f"Unsubscribed from {subscription.channel.value} channel: {list(subscription.ids)}")

    def _apply_offline(self, command: _Command) -> None:
        key = command.subscription.key
        if command.operation == SUBSCRIBE:
            self._desired.setdefault(key, command.subscription)
        else:
            self._desired.pop(key, None)

    def _drain_intake(self) -> None:
        while not self._intake.empty():
            self._apply_offline(self._intake.get_nowait())

    async def _wait_backoff(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            try:
                command = await asyncio.wait_for(self._intake.get(), remaining)
            except asyncio.TimeoutError:
                return
            self._apply_offline(command)

    async def _give_up(self, last_error: Optional[BaseException]) -> None:
        error = StreamUnavailable(
            f"Stream unavailable after {self._controller.attempts} reconnection attempts: {last_error}",
            attempts=self._controller.attempts,
            last_error=last_error,
        )
        self._fatal_error = error
        logger.error(str(error))
        self._set_state(ConnectionState.CLOSED, "retry budget exhausted")

        for callback in self._error_callbacks:
            try:
                callback(error)
            except Exception:
                logger.exception("Error callback failed")

        await self._stop_dispatcher()
        self._closed_event.set()

    # Helpers
    def _submit(self, command: _Command) -> None:
        if self._state is ConnectionState.CLOSED:
            raise RuntimeError("Stream is closed")

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is not None and running is not self._loop:
            self._loop.call_soon_threadsafe(self._intake.put_nowait, command)
        else:
            self._intake.put_nowait(command)

    def _set_state(self, new_state: ConnectionState, reason: Optional[str] = None) -> None:
        previous = self._state
        if new_state not in _TRANSITIONS[previous]:
            raise RuntimeError(f"Illegal state transition {previous.value} -> {new_state.value}")

        self._state = new_state
        logger.info(f"Stream state {previous.value} -> {new_state.value}" + (f": {reason}" if reason else ""))
        self._emit(ConnectionStateChange(
            channel=None,
            sequence=0,
            timestamp=None,
            previous=previous,
            current=new_state,
            reason=reason,
            attempt=self._controller.attempts,
        ))

    def _emit(self, event: StreamEvent) -> None:
        sequence = self._sequences.get(event.channel, 0) + 1
        self._sequences[event.channel] = sequence
        self._dispatcher.publish(dataclasses.replace(event, sequence=sequence))
        self.statistics.events_published += 1

    async def _send(self, transport: Transport, message: dict) -> None:
        await transport.send(json.dumps(message))
        self.statistics.messages_sent += 1

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error while closing transport: {e}")

    async def _stop_dispatcher(self) -> None:
        if self._dispatcher_stopped:
            return
        self._dispatcher_stopped = True
        try:
            await asyncio.wait_for(self._dispatcher.join(), self._config.handshake_timeout)
        except asyncio.TimeoutError:
            logger.warning("Event consumers did not drain before close")
        await self._dispatcher.stop()

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    @staticmethod
    def _discard(task: asyncio.Future) -> None:
        if task.done():
            if not task.cancelled():
                task.exception()
        else:
            task.cancel()
