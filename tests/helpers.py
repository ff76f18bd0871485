"""Event variants, categories and helpers shared by the test suite."""

import asyncio
from typing import Any, Mapping

from pydantic import Field

from domain_event_bus.core.category import Category, EventCategory
from domain_event_bus.core.event import DomainEvent

AUTH = Category("auth", "Authentication Events")
SYNC = Category("sync", "Data Synchronization Events")


class MedicalCategory(EventCategory):
    """Application-defined category class, as a consumer would write it."""

    def __init__(self, value: str, display_name: str) -> None:
        self._value = value
        self._display_name = display_name

    @property
    def value(self) -> str:
        return self._value

    @property
    def display_name(self) -> str:
        return self._display_name


PATIENT = MedicalCategory("medical.patient", "Patient Events")


class UserRegistered(DomainEvent):
    """A user signed up."""

    event_type: str = "user.registered"
    category: EventCategory = AUTH
    user_id: str
    email: str = ""


class AdminRegistered(UserRegistered):
    """Subclass used to check instance-based type filtering."""

    event_type: str = "admin.registered"


class OrderCreated(DomainEvent):
    """An order was placed."""

    event_type: str = "order.created"
    category: EventCategory = SYNC
    order_id: str
    metadata: Mapping[str, Any] = Field(default_factory=lambda: {"source": "checkout"})


async def settle(delay: float = 0.01) -> None:
    """Give delivery tasks a chance to drain their queues."""
    await asyncio.sleep(delay)
