"""
Domain event records published through the event bus.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from .category import EventCategory

# Fields every event carries; anything else is declared by a concrete variant.
BASE_FIELDS = frozenset({"event_type", "category", "occurred_at", "event_id", "metadata"})


def generate_event_id() -> str:
    """Generate a unique event identifier."""
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    """
    Base model for all domain events.

    Concrete variants subclass this model and declare their own fields.
    Instances are immutable. Two events are equal when they share the
    concrete class, ``event_type``, ``event_id``, ``occurred_at`` and every
    variant-declared field; ``category`` and ``metadata`` are descriptive
    only.

    Example:
        class UserRegistered(DomainEvent):
            event_type: str = "user.registered"
            category: EventCategory = AUTH
            user_id: str
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    event_type: str
    category: EventCategory
    occurred_at: datetime = Field(default_factory=_utc_now)
    event_id: str = Field(default_factory=generate_event_id)
    metadata: Mapping[str, Any] = Field(default_factory=dict)

    @classmethod
    def now(
        cls,
        event_type: str,
        category: EventCategory,
        event_id: Optional[str] = None,
    ) -> "SimpleDomainEvent":
        """
        Create a generic event stamped with the current time.

        Args:
            event_type: Event type identifier, e.g. ``"user.registered"``.
            category: Category the event belongs to.
            event_id: Optional identifier; generated when omitted.

        Returns:
            A SimpleDomainEvent instance.
        """
        return SimpleDomainEvent(
            event_type=event_type,
            category=category,
            occurred_at=_utc_now(),
            event_id=event_id or generate_event_id(),
        )

    @field_serializer("category")
    def serialize_category(self, category: EventCategory) -> str:
        return category.value

    @field_serializer("occurred_at")
    def serialize_occurred_at(self, occurred_at: datetime) -> str:
        return occurred_at.isoformat()

    def identity(self) -> Tuple[Any, ...]:
        """Values that decide equality, in declaration order."""
        extra = tuple(
            getattr(self, name) for name in type(self).model_fields if name not in BASE_FIELDS
        )
        return (type(self), self.event_type, self.event_id, self.occurred_at) + extra

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize the event to its JSON-compatible wire format.

        Returns:
            Dict with ``eventType``, ``category``, ``occurredAt``, ``eventId``,
            ``metadata`` followed by the variant's own fields in camelCase.
        """
        return self.model_dump(mode="json", by_alias=True)

    def __eq__(self, other: Any) -> bool:
        if self is other:
            return True
        if not isinstance(other, DomainEvent):
            return NotImplemented
        return self.identity() == other.identity()

    def __hash__(self) -> int:
        return hash((type(self), self.event_type, self.event_id, self.occurred_at))

    def __str__(self) -> str:
        return (
            f"{type(self).__name__}{{eventType: {self.event_type}, eventId: {self.event_id}, "
            f"category: {self.category.value}, occurredAt: {self.occurred_at.isoformat()}}}"
        )


class SimpleDomainEvent(DomainEvent):
    """Concrete event with no extra fields, built by :meth:`DomainEvent.now`."""
