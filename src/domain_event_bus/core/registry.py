"""
Registry that owns the application's event buses and tears them down together.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .binding import Cleanup
from .event_bus import AdvancedDomainEventBus, DomainEventBus, EventBusConfig

DEFAULT_BUS = "default"
ADVANCED_BUS = "advanced"

logger = logging.getLogger(__name__)


@dataclass
class RegistryConfig:
    """Configuration for the buses a registry creates."""

    debug: bool = False


@dataclass(frozen=True)
class EventBusDebugInfo:
    """Debug information about one bus."""

    name: str
    subscription_count: int
    is_disposed: bool

    def __str__(self) -> str:
        return (
            f"EventBusDebugInfo(subscriptionCount: {self.subscription_count}, "
            f"isDisposed: {self.is_disposed})"
        )


class EventBusRegistry:
    """
    Keyed collection of event buses sharing one lifetime.

    Holds a default bus, an advanced bus, and any number of named scoped
    buses. Each bus has its own broadcast channel; events never cross
    between them. The registry is itself a lifecycle scope, so
    subscriptions can be bound to it with ``listen_to_event``.
    """

    def __init__(self, config: Optional[RegistryConfig] = None) -> None:
        self.config = config or RegistryConfig()
        self._buses: Dict[str, DomainEventBus] = {}
        self._cleanups: List[Cleanup] = []
        self._is_disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    def _get_or_create(self, name: str, bus_cls: type) -> DomainEventBus:
        if self._is_disposed:
            raise RuntimeError("Event bus registry is disposed")
        bus = self._buses.get(name)
        if bus is None:
            bus = bus_cls(EventBusConfig(name=name, debug=self.config.debug))
            self._buses[name] = bus
            logger.debug("Created event bus %s", name)
        return bus

    @property
    def default(self) -> DomainEventBus:
        """The application-wide bus."""
        return self._get_or_create(DEFAULT_BUS, DomainEventBus)

    @property
    def advanced(self) -> AdvancedDomainEventBus:
        """The application-wide bus with stream operators."""
        return self._get_or_create(ADVANCED_BUS, AdvancedDomainEventBus)  # type: ignore[return-value]

    def scoped(self, scope: str) -> DomainEventBus:
        """
        Get the isolated bus for a feature scope, creating it on first use.

        Args:
            scope: Scope key such as ``"chat"`` or ``"notifications"``.
        """
        return self._get_or_create(f"scoped:{scope}", DomainEventBus)

    def get(self, name: str) -> Optional[DomainEventBus]:
        """Look up an already-created bus by its registry name."""
        return self._buses.get(name)

    def names(self) -> List[str]:
        return list(self._buses)

    def debug_info(self, name: str = DEFAULT_BUS) -> EventBusDebugInfo:
        """
        Snapshot debug information for a bus.

        Raises:
            KeyError: If no bus with that name has been created
        """
        bus = self._buses[name]
        return EventBusDebugInfo(
            name=name,
            subscription_count=bus.subscription_count,
            is_disposed=bus.is_disposed,
        )

    def on_dispose(self, callback: Cleanup) -> None:
        """Run ``callback`` when the registry is disposed, before its buses."""
        if self._is_disposed:
            raise RuntimeError("Event bus registry is disposed")
        self._cleanups.append(callback)

    async def dispose(self) -> None:
        """Run registered cleanups, then dispose every bus. Idempotent."""
        if self._is_disposed:
            return
        self._is_disposed = True

        cleanups, self._cleanups = self._cleanups, []
        for callback in reversed(cleanups):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Registry cleanup callback failed")

        for bus in self._buses.values():
            await bus.dispose()
        logger.info("Disposed %d event buses", len(self._buses))
