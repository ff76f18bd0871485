"""
Type-indexed domain event bus built on a single broadcast channel.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Set, Type, TypeVar

from ..utils.logging import log_bus_event
from .category import EventCategory
from .event import DomainEvent
from .stream import BroadcastChannel, EventStream, Subscription, Window

E = TypeVar("E", bound=DomainEvent)

logger = logging.getLogger(__name__)


@dataclass
class EventBusConfig:
    """Configuration for a single event bus."""

    name: str = "default"
    debug: bool = False  # log publishes that a disposed bus ignores


class DomainEventBus:
    """
    Publish domain events and subscribe to them by type and category.

    Every published event flows through one broadcast channel; each
    subscribe-family call derives a filtered view of it. Once disposed the
    bus is inert: publishing is ignored and subscribing yields streams that
    complete immediately.

    Example:
        bus = DomainEventBus()
        bus.of_type(UserRegistered).listen(lambda event: print(event.user_id))
        bus.publish(UserRegistered(user_id="u1"))
    """

    def __init__(self, config: Optional[EventBusConfig] = None) -> None:
        """
        Initialize the bus with an open channel and no tracked subscriptions.

        Args:
            config: Optional EventBusConfig naming the bus
        """
        self.config = config or EventBusConfig()
        self._channel = BroadcastChannel()
        self._subscriptions: Set[Subscription] = set()
        self._is_disposed = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    @property
    def subscription_count(self) -> int:
        """Number of subscriptions registered through :meth:`track_subscription`."""
        return len(self._subscriptions)

    def _is_inert(self) -> bool:
        return self._is_disposed or self._channel.is_closed

    def publish(self, event: DomainEvent) -> None:
        """
        Publish an event to every matching subscriber.

        Never raises. Events published after disposal are dropped.

        Args:
            event: The event to broadcast.
        """
        if self._is_inert():
            if self.config.debug:
                log_bus_event(
                    logger, logging.DEBUG, "Event ignored, bus disposed", self.name, event.event_type
                )
            return

        try:
            self._channel.add(event)
            log_bus_event(
                logger, logging.DEBUG, "Event published", self.name, event.event_type,
                event_id=event.event_id,
            )
        except Exception as e:
            logger.error("Publish failed on bus %s: %s", self.name, e, exc_info=True)

    def of_type(self, event_cls: Type[E]) -> EventStream[E]:
        """
        Stream of published events that are instances of ``event_cls``.

        Args:
            event_cls: Concrete DomainEvent subclass to filter on.

        Returns:
            A lazy stream; already complete if the bus is disposed.
        """
        if self._is_inert():
            return EventStream.empty()
        return self._channel.stream().of_type(event_cls)

    def on(self, event_cls: Type[E], category: EventCategory) -> EventStream[E]:
        """
        Stream of events of ``event_cls`` whose category equals ``category``.

        Args:
            event_cls: Concrete DomainEvent subclass to filter on.
            category: Category the events must carry (compared by value).

        Returns:
            A lazy stream; already complete if the bus is disposed.
        """
        return self.of_type(event_cls).where(lambda event: event.category == category)

    @property
    def all_events(self) -> EventStream[DomainEvent]:
        """Unfiltered stream of every published event."""
        if self._is_inert():
            return EventStream.empty()
        return self._channel.stream()

    def track_subscription(self, subscription: Subscription) -> None:
        """
        Register a subscription for counting and cancellation on dispose.

        The subscription is untracked automatically when it ends.
        """
        if self._is_disposed:
            return
        self._subscriptions.add(subscription)
        subscription.add_done_callback(self.untrack_subscription)

    def untrack_subscription(self, subscription: Subscription) -> None:
        """Remove a subscription from tracking."""
        self._subscriptions.discard(subscription)

    async def dispose(self) -> None:
        """
        Cancel tracked subscriptions and close the channel.

        Calls after the first have no effect.
        """
        if self._is_disposed:
            return
        self._is_disposed = True

        tracked: List[Subscription] = list(self._subscriptions)
        for subscription in tracked:
            try:
                await subscription.cancel()
            except Exception as e:
                logger.error("Failed to cancel subscription on bus %s: %s", self.name, e)
        self._subscriptions.clear()

        self._channel.close()
        logger.debug("Disposed bus %s", self.name)


class AdvancedDomainEventBus(DomainEventBus):
    """Event bus with predicate, throttle, buffer and distinct views."""

    def of_type_where(
        self, event_cls: Type[E], predicate: Callable[[E], bool]
    ) -> EventStream[E]:
        """
        Events of ``event_cls`` for which ``predicate(event)`` is true.

        An exception raised by the predicate is delivered to the listener's
        error handler; the stream keeps running.
        """
        return self.of_type(event_cls).where(predicate)

    def throttle(self, event_cls: Type[E], window: Window) -> EventStream[E]:
        """Leading-edge throttle of ``event_cls`` events over ``window``."""
        return self.of_type(event_cls).throttle(window)

    def buffer(self, event_cls: Type[E], window: Window) -> EventStream[List[E]]:
        """Non-empty batches of ``event_cls`` events per ``window`` slice."""
        return self.of_type(event_cls).buffer(window)

    def distinct(self, event_cls: Type[E]) -> EventStream[E]:
        """Events of ``event_cls`` with consecutive duplicates removed."""
        return self.of_type(event_cls).distinct()
