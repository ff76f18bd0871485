"""
Audit trail of recently published events.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .event import DomainEvent
from .event_bus import DomainEventBus
from .stream import Subscription


class EventRecorder:
    """Keeps the serialized form of the last ``capacity`` events seen on a bus."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._records: Deque[Dict[str, Any]] = deque(maxlen=capacity)
        self._subscription: Optional[Subscription] = None

    @property
    def is_recording(self) -> bool:
        return self._subscription is not None and self._subscription.is_active

    def start(self, bus: DomainEventBus) -> None:
        """
        Start recording every event published on ``bus``.

        Args:
            bus: The bus to record; its subscription is tracked for debug counts.
        """
        if self._subscription is not None:
            return
        self._subscription = bus.all_events.listen(self._record)
        bus.track_subscription(self._subscription)

    def _record(self, event: DomainEvent) -> None:
        self._records.append(event.to_json())

    async def stop(self) -> None:
        """Stop recording. Records collected so far are kept."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.cancel()

    def records(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Recorded events, oldest first.

        Args:
            limit: Return only the most recent ``limit`` records.
        """
        records = list(self._records)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def clear(self) -> None:
        self._records.clear()
