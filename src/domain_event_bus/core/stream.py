"""
Broadcast channel and lazily-built event streams.

A :class:`BroadcastChannel` fans every published value out to the receivers
attached to it. An :class:`EventStream` describes a pipeline of operators
over a channel; each call to :meth:`EventStream.listen` builds a fresh copy
of that pipeline, so operator state (throttle windows, buffers, the last
distinct value) is never shared between listeners.

Operators run synchronously inside ``publish``. Their output is queued per
subscription and handed to the listener's callback by a dedicated asyncio
task, so publishers never wait on subscriber code and every subscription
sees its events in publish order.
"""

import asyncio
import inspect
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generic, List, Optional, Set, Tuple, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")

Window = Union[float, timedelta]
EventCallback = Callable[[Any], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], None]
DoneCallback = Callable[[], None]

logger = logging.getLogger(__name__)


def _seconds(window: Window) -> float:
    seconds = window.total_seconds() if isinstance(window, timedelta) else float(window)
    if seconds <= 0:
        raise ValueError("window must be positive")
    return seconds


class Sink:
    """Receiver of stream notifications. Stages forward to a downstream sink."""

    def __init__(self, downstream: "Sink") -> None:
        self._downstream = downstream

    def on_next(self, value: Any) -> None:
        self._downstream.on_next(value)

    def on_error(self, error: Exception) -> None:
        self._downstream.on_error(error)

    def on_done(self) -> None:
        self._downstream.on_done()

    def dispose(self) -> None:
        """Release timers or state held by this stage and everything below it."""
        self._downstream.dispose()


class WhereStage(Sink):
    """Pass through values for which the predicate holds."""

    def __init__(self, downstream: Sink, predicate: Callable[[Any], bool]) -> None:
        super().__init__(downstream)
        self._predicate = predicate

    def on_next(self, value: Any) -> None:
        try:
            matches = self._predicate(value)
        except Exception as e:
            self._downstream.on_error(e)
            return
        if matches:
            self._downstream.on_next(value)


class MapStage(Sink):
    """Transform each value with a mapper function."""

    def __init__(self, downstream: Sink, mapper: Callable[[Any], Any]) -> None:
        super().__init__(downstream)
        self._mapper = mapper

    def on_next(self, value: Any) -> None:
        try:
            mapped = self._mapper(value)
        except Exception as e:
            self._downstream.on_error(e)
            return
        self._downstream.on_next(mapped)


class ThrottleStage(Sink):
    """
    Leading-edge throttle.

    The first value is emitted immediately and opens a window; values
    arriving before the window elapses are dropped.
    """

    def __init__(self, downstream: Sink, window: float) -> None:
        super().__init__(downstream)
        self._window = window
        self._loop = asyncio.get_running_loop()
        self._last_emit: Optional[float] = None

    def on_next(self, value: Any) -> None:
        now = self._loop.time()
        if self._last_emit is not None and now - self._last_emit < self._window:
            return
        self._last_emit = now
        self._downstream.on_next(value)


class BufferStage(Sink):
    """
    Collect values into consecutive fixed time windows.

    Windows start when the stage is built. At the end of each window the
    collected values are emitted as one list; empty windows emit nothing.
    A partial window is flushed when the source completes.
    """

    def __init__(self, downstream: Sink, window: float) -> None:
        super().__init__(downstream)
        self._window = window
        self._loop = asyncio.get_running_loop()
        self._items: List[Any] = []
        self._deadline = self._loop.time() + window
        self._timer: Optional[asyncio.TimerHandle] = self._loop.call_at(self._deadline, self._tick)

    def _tick(self) -> None:
        self._deadline += self._window
        self._timer = self._loop.call_at(self._deadline, self._tick)
        self._flush()

    def _flush(self) -> None:
        if not self._items:
            return
        batch, self._items = self._items, []
        self._downstream.on_next(batch)

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def on_next(self, value: Any) -> None:
        self._items.append(value)

    def on_done(self) -> None:
        self._stop_timer()
        self._flush()
        self._downstream.on_done()

    def dispose(self) -> None:
        self._stop_timer()
        self._items.clear()
        self._downstream.dispose()


_UNSET = object()


class DistinctStage(Sink):
    """Drop values equal to the previously emitted one."""

    def __init__(self, downstream: Sink) -> None:
        super().__init__(downstream)
        self._last: Any = _UNSET

    def on_next(self, value: Any) -> None:
        if self._last is not _UNSET and value == self._last:
            return
        self._last = value
        self._downstream.on_next(value)


class BroadcastChannel:
    """
    Single multiplexed pipe carrying every published value to every receiver.

    The only mutations are ``add`` and a one-time terminal ``close``.
    """

    def __init__(self) -> None:
        self._receivers: Set[Sink] = set()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def receiver_count(self) -> int:
        return len(self._receivers)

    def stream(self) -> "EventStream[Any]":
        """Return an unfiltered stream over this channel."""
        return EventStream(self)

    def attach(self, receiver: Sink) -> None:
        if self._closed:
            receiver.on_done()
            return
        self._receivers.add(receiver)

    def detach(self, receiver: Sink) -> None:
        self._receivers.discard(receiver)

    def add(self, value: Any) -> None:
        """
        Push a value to every attached receiver.

        Raises:
            ChannelClosedError: If the channel has been closed.
        """
        if self._closed:
            raise ChannelClosedError("Cannot add to a closed channel")
        for receiver in list(self._receivers):
            try:
                receiver.on_next(value)
            except Exception as e:
                # Keep one broken pipeline from starving the others
                receiver.on_error(e)

    def close(self) -> None:
        """Close the channel and complete every attached receiver. Idempotent."""
        if self._closed:
            return
        self._closed = True
        receivers = list(self._receivers)
        self._receivers.clear()
        for receiver in receivers:
            receiver.on_done()


StageFactory = Callable[[Sink], Sink]


class EventStream(Generic[T]):
    """
    Lazy, restartable stream of values flowing out of a broadcast channel.

    Operators return new streams and never mutate this one. Nothing is
    attached to the channel until :meth:`listen` is called.
    """

    def __init__(
        self,
        channel: Optional[BroadcastChannel],
        stages: Tuple[StageFactory, ...] = (),
    ) -> None:
        self._channel = channel
        self._stages = stages

    @classmethod
    def empty(cls) -> "EventStream[Any]":
        """Return a stream that completes as soon as it is listened to."""
        return cls(None)

    @property
    def is_empty(self) -> bool:
        return self._channel is None

    def _pipe(self, factory: StageFactory) -> "EventStream[Any]":
        if self._channel is None:
            return self
        return EventStream(self._channel, self._stages + (factory,))

    def where(self, predicate: Callable[[T], bool]) -> "EventStream[T]":
        """Keep values for which ``predicate`` returns True."""
        return self._pipe(lambda sink: WhereStage(sink, predicate))

    def of_type(self, event_cls: type) -> "EventStream[Any]":
        """Keep values that are instances of ``event_cls``."""
        return self._pipe(lambda sink: WhereStage(sink, lambda value: isinstance(value, event_cls)))

    def map(self, mapper: Callable[[T], U]) -> "EventStream[U]":
        """Transform every value with ``mapper``."""
        return self._pipe(lambda sink: MapStage(sink, mapper))

    def throttle(self, window: Window) -> "EventStream[T]":
        """Emit a value, then drop values until ``window`` has elapsed."""
        seconds = _seconds(window)
        return self._pipe(lambda sink: ThrottleStage(sink, seconds))

    def buffer(self, window: Window) -> "EventStream[List[T]]":
        """Emit non-empty batches collected over consecutive ``window`` slices."""
        seconds = _seconds(window)
        return self._pipe(lambda sink: BufferStage(sink, seconds))

    def distinct(self) -> "EventStream[T]":
        """Drop values equal to the one emitted just before."""
        return self._pipe(DistinctStage)

    def listen(
        self,
        on_event: EventCallback,
        on_error: Optional[ErrorCallback] = None,
        on_done: Optional[DoneCallback] = None,
    ) -> "Subscription":
        """
        Start receiving values from this stream.

        Must be called from a running event loop.

        Args:
            on_event: Called with each value. May be sync or async; exceptions
                are logged and never end the subscription.
            on_error: Called with errors raised by operators of this stream.
            on_done: Called once when the source closes.

        Returns:
            A Subscription handle that cancels delivery.
        """
        subscription = Subscription(on_event, on_error=on_error, on_done=on_done)
        if self._channel is None:
            subscription._start(None, None)
            subscription.on_done()
            return subscription

        head: Sink = subscription
        for factory in reversed(self._stages):
            head = factory(head)
        subscription._start(self._channel, head)
        return subscription


_EVENT = "event"
_ERROR = "error"
_DONE = "done"


class Subscription(Sink):
    """
    Handle for one active listener of an :class:`EventStream`.

    Cancellation is idempotent and takes effect for future values only.
    Values already queued for this subscription but not yet handed to its
    callback are dropped. A callback that is already running when
    :meth:`cancel` is called runs to completion.
    """

    def __init__(
        self,
        on_event: EventCallback,
        on_error: Optional[ErrorCallback] = None,
        on_done: Optional[DoneCallback] = None,
    ) -> None:
        self._on_event = on_event
        self._on_error = on_error
        self._on_done = on_done
        self._queue: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue()
        self._channel: Optional[BroadcastChannel] = None
        self._head: Optional[Sink] = None
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self._done = False
        self._delivering = False
        self._done_callbacks: List[Callable[["Subscription"], None]] = []

    @property
    def is_active(self) -> bool:
        """Whether the subscription still delivers values."""
        return not (self._cancelled or self._done)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_done(self) -> bool:
        """Whether the source completed naturally."""
        return self._done

    def add_done_callback(self, callback: Callable[["Subscription"], None]) -> None:
        """
        Register a callback run once when the subscription ends, either by
        natural completion or by cancellation.
        """
        if not self.is_active:
            callback(self)
            return
        self._done_callbacks.append(callback)

    def _start(self, channel: Optional[BroadcastChannel], head: Optional[Sink]) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._channel = channel
        self._head = head
        if channel is not None and head is not None:
            channel.attach(head)

    # Terminal sink: queue everything for the delivery task.

    def on_next(self, value: Any) -> None:
        if not self._cancelled:
            self._queue.put_nowait((_EVENT, value))

    def on_error(self, error: Exception) -> None:
        if not self._cancelled:
            self._queue.put_nowait((_ERROR, error))

    def on_done(self) -> None:
        if not self._cancelled:
            self._queue.put_nowait((_DONE, None))

    def dispose(self) -> None:
        pass

    async def _run(self) -> None:
        while not self._cancelled:
            kind, payload = await self._queue.get()
            if kind == _DONE:
                self._complete()
                return
            if kind == _ERROR:
                self._report_error(payload)
            else:
                self._delivering = True
                try:
                    await self._deliver(payload)
                finally:
                    self._delivering = False

    async def _deliver(self, value: Any) -> None:
        try:
            result = self._on_event(value)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Event callback failed for %s", value)

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            logger.warning("Unhandled stream error: %s", error)
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("Stream error handler failed")

    def _complete(self) -> None:
        self._done = True
        if self._on_done is not None:
            try:
                self._on_done()
            except Exception:
                logger.exception("Stream done handler failed")
        self._fire_done_callbacks()

    def _fire_done_callbacks(self) -> None:
        callbacks, self._done_callbacks = self._done_callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception("Subscription done callback failed")

    async def cancel(self) -> None:
        """
        Stop delivery and detach from the channel.

        Safe to call more than once, from inside the subscription's own
        callback, and after the channel has closed.
        """
        if self._cancelled or self._done:
            return
        self._cancelled = True
        if self._channel is not None and self._head is not None:
            self._channel.detach(self._head)
            self._head.dispose()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._fire_done_callbacks()

        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        if self._delivering:
            # The running callback completes; the loop then sees the flag and exits
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class EventBusError(Exception):
    """Base class for event bus errors."""
    pass


class ChannelClosedError(EventBusError):
    """Raised when a value is added to a closed broadcast channel."""
    pass
