"""
Test fixtures for the domain event bus.
"""

from typing import AsyncGenerator

import pytest

from domain_event_bus.core.binding import DisposableScope
from domain_event_bus.core.event_bus import AdvancedDomainEventBus, DomainEventBus
from domain_event_bus.core.registry import EventBusRegistry
from domain_event_bus.core.stream import BroadcastChannel


@pytest.fixture
async def bus() -> AsyncGenerator[DomainEventBus, None]:
    """
    Fixture to create and dispose a DomainEventBus.

    Yields:
        A DomainEventBus instance.
    """
    bus = DomainEventBus()
    yield bus
    await bus.dispose()


@pytest.fixture
async def advanced_bus() -> AsyncGenerator[AdvancedDomainEventBus, None]:
    """Fixture providing an AdvancedDomainEventBus that is disposed after the test."""
    bus = AdvancedDomainEventBus()
    yield bus
    await bus.dispose()


@pytest.fixture
async def channel() -> AsyncGenerator[BroadcastChannel, None]:
    """Fixture providing a BroadcastChannel that is closed after the test."""
    channel = BroadcastChannel()
    yield channel
    channel.close()


@pytest.fixture
async def scope() -> AsyncGenerator[DisposableScope, None]:
    """Fixture providing a lifecycle scope disposed after the test."""
    scope = DisposableScope("test")
    yield scope
    await scope.dispose()


@pytest.fixture
async def registry() -> AsyncGenerator[EventBusRegistry, None]:
    """Fixture providing an EventBusRegistry disposed after the test."""
    registry = EventBusRegistry()
    yield registry
    await registry.dispose()
