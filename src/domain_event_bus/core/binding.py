"""
Lifecycle binding for event subscriptions.

Owners such as UI components or dependency-injection scopes tie a
subscription to their own lifetime through these helpers: events are routed
through a guarded callback, callback failures are reported but never
propagated, and the subscription is cancelled exactly once when the owner
goes away.
"""

import inspect
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
)

from ..utils.logging import SubscriptionLoggerAdapter, get_subscription_logger
from .event_bus import DomainEventBus
from .stream import EventCallback, EventStream, Subscription

Cleanup = Callable[[], Union[None, Awaitable[None]]]
HandlerErrorCallback = Callable[[Exception], None]

logger = logging.getLogger(__name__)


class LifecycleScope(Protocol):
    """Anything that can run a cleanup callback when its scope ends."""

    def on_dispose(self, callback: Cleanup) -> None:
        ...


class DisposableScope:
    """
    Minimal lifecycle scope.

    Cleanup callbacks run once, in reverse registration order, when
    :meth:`dispose` is awaited. Async callbacks are awaited.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name
        self._callbacks: List[Cleanup] = []
        self._is_disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    def on_dispose(self, callback: Cleanup) -> None:
        if self._is_disposed:
            raise RuntimeError(f"Scope {self.name!r} is already disposed")
        self._callbacks.append(callback)

    async def dispose(self) -> None:
        if self._is_disposed:
            return
        self._is_disposed = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in reversed(callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Cleanup callback failed in scope %s", self.name)


def _guard(
    get_handler: Callable[[], EventCallback],
    on_error: Optional[HandlerErrorCallback],
    log: SubscriptionLoggerAdapter,
) -> Callable[[Any], Awaitable[None]]:
    """Wrap an event handler so its exceptions are reported, never raised."""

    async def deliver(event: Any) -> None:
        log.debug("Event received: %s", type(event).__name__)
        try:
            result = get_handler()(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            if on_error is not None:
                try:
                    on_error(e)
                except Exception:
                    log.exception("Error handler failed")
            log.error("Event handler error: %s", e, exc_info=True)

    return deliver


def _subscribe(
    stream: EventStream[Any],
    get_handler: Callable[[], EventCallback],
    on_error: Optional[HandlerErrorCallback],
    log: SubscriptionLoggerAdapter,
    bus: Optional[DomainEventBus],
) -> Subscription:
    subscription = stream.listen(
        _guard(get_handler, on_error, log),
        on_error=lambda error: log.warning("Event stream error: %s", error),
    )
    if bus is not None:
        bus.track_subscription(subscription)
    log.debug("Event subscription started")
    return subscription


def listen_to_event(
    scope: LifecycleScope,
    stream: EventStream[Any],
    on_event: EventCallback,
    *,
    on_error: Optional[HandlerErrorCallback] = None,
    debug_name: Optional[str] = None,
    bus: Optional[DomainEventBus] = None,
) -> Subscription:
    """
    Subscribe to a stream for the lifetime of ``scope``.

    Args:
        scope: Owner whose disposal cancels the subscription.
        stream: Stream derived from an event bus.
        on_event: Handler for each event, sync or async.
        on_error: Called with any exception raised by ``on_event``.
        debug_name: Name used in log records.
        bus: Bus to register the subscription with for debug counts.

    Returns:
        The Subscription, usually not needed directly.

    Raises:
        RuntimeError: If ``scope`` has already ended; nothing is subscribed.
    """
    log = get_subscription_logger(debug_name)
    subscription: Optional[Subscription] = None

    async def cancel() -> None:
        if subscription is None:
            return
        await subscription.cancel()
        log.debug("Event subscription disposed")

    # Raises for an ended scope before anything is attached
    scope.on_dispose(cancel)
    subscription = _subscribe(stream, lambda: on_event, on_error, log, bus)
    return subscription


def listen_to_event_when(
    scope: LifecycleScope,
    stream: EventStream[Any],
    condition: Callable[[Any], bool],
    on_event: EventCallback,
    **kwargs: Any,
) -> Subscription:
    """Like :func:`listen_to_event`, for events matching ``condition`` only."""
    return listen_to_event(scope, stream.where(condition), on_event, **kwargs)


def listen_to_multiple_events(
    scope: LifecycleScope,
    handlers: Mapping[EventStream[Any], EventCallback],
    **kwargs: Any,
) -> List[Subscription]:
    """Subscribe each stream in ``handlers`` to its callback for the lifetime of ``scope``."""
    return [
        listen_to_event(scope, stream, on_event, **kwargs)
        for stream, on_event in handlers.items()
    ]


class EventSubscriptionBinding:
    """
    Subscription owned by a component that mounts, re-renders and unmounts.

    The subscription is created on :meth:`mount` and recreated by
    :meth:`update` when the stream object or any dependency value changes.
    Handler changes alone are picked up without resubscribing.
    """

    def __init__(
        self,
        stream: EventStream[Any],
        on_event: EventCallback,
        *,
        on_error: Optional[HandlerErrorCallback] = None,
        dependencies: Sequence[Any] = (),
        debug_name: Optional[str] = None,
        bus: Optional[DomainEventBus] = None,
    ) -> None:
        self.stream = stream
        self.on_event = on_event
        self.on_error = on_error
        self.dependencies = tuple(dependencies)
        self._bus = bus
        self._log = get_subscription_logger(debug_name)
        self._subscription: Optional[Subscription] = None

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def mount(self) -> Optional[Subscription]:
        if self._subscription is None:
            self._create()
        return self._subscription

    async def update(
        self,
        stream: Optional[EventStream[Any]] = None,
        on_event: Optional[EventCallback] = None,
        dependencies: Optional[Sequence[Any]] = None,
    ) -> Optional[Subscription]:
        """
        Apply new inputs, resubscribing if the stream or dependencies changed.

        Returns:
            The current subscription.
        """
        new_stream = self.stream if stream is None else stream
        new_dependencies = self.dependencies if dependencies is None else tuple(dependencies)
        if on_event is not None:
            self.on_event = on_event

        changed = new_stream is not self.stream or not _list_equals(
            self.dependencies, new_dependencies
        )
        self.stream = new_stream
        self.dependencies = new_dependencies
        if changed:
            await self._dispose()
            self._create()
        return self._subscription

    async def unmount(self) -> None:
        await self._dispose()

    def _create(self) -> None:
        """
        Subscribe to the current stream.

        Raises:
            RuntimeError: If called outside a running event loop
        """
        self._subscription = _subscribe(
            self.stream, lambda: self.on_event, self.on_error, self._log, self._bus
        )

    async def _dispose(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            await subscription.cancel()
            self._log.debug("Event subscription disposed")
        except Exception as e:
            self._log.warning("Subscription disposal error: %s", e)


class MultiEventSubscriptionBinding:
    """Binding for several streams, each with its own handler, sharing one lifetime."""

    def __init__(
        self,
        handlers: Mapping[EventStream[Any], EventCallback],
        *,
        dependencies: Sequence[Any] = (),
        debug_name: Optional[str] = None,
        bus: Optional[DomainEventBus] = None,
    ) -> None:
        self.handlers: Dict[EventStream[Any], EventCallback] = dict(handlers)
        self.dependencies = tuple(dependencies)
        self._bus = bus
        self._log = get_subscription_logger(debug_name)
        self._subscriptions: Optional[List[Subscription]] = None

    @property
    def subscriptions(self) -> Optional[List[Subscription]]:
        return self._subscriptions

    def mount(self) -> Optional[List[Subscription]]:
        if self._subscriptions is None:
            self._create()
        return self._subscriptions

    async def update(
        self,
        handlers: Optional[Mapping[EventStream[Any], EventCallback]] = None,
        dependencies: Optional[Sequence[Any]] = None,
    ) -> Optional[List[Subscription]]:
        new_handlers = self.handlers if handlers is None else dict(handlers)
        new_dependencies = self.dependencies if dependencies is None else tuple(dependencies)
        changed = list(new_handlers) != list(self.handlers) or not _list_equals(
            self.dependencies, new_dependencies
        )
        self.handlers = new_handlers
        self.dependencies = new_dependencies
        if changed:
            await self._dispose()
            self._create()
        return self._subscriptions

    async def unmount(self) -> None:
        await self._dispose()

    def _create(self) -> None:
        self._subscriptions = [
            _subscribe(
                stream,
                lambda stream=stream: self.handlers.get(stream, _ignore),
                None,
                self._log,
                self._bus,
            )
            for stream in self.handlers
        ]
        self._log.debug("Event subscriptions started: %d streams", len(self.handlers))

    async def _dispose(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, None
        for subscription in subscriptions or []:
            try:
                await subscription.cancel()
            except Exception as e:
                self._log.warning("Subscription disposal error: %s", e)


def _ignore(event: Any) -> None:
    pass


def _list_equals(a: Sequence[Any], b: Sequence[Any]) -> bool:
    """Shallow element-wise equality."""
    if len(a) != len(b):
        return False
    return all(x == y for x, y in zip(a, b))
