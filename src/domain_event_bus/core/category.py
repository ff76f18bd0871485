"""
Event categories: consumer-defined namespaces attached to domain events.

The bus ships no categories of its own. Applications declare their own
values (e.g. ``"medical.patient"``) by implementing :class:`EventCategory`
or by instantiating :class:`Category`.
"""

from abc import ABC, abstractmethod
from typing import Any


class EventCategoryMixin:
    """
    Value-based equality for category objects.

    Two categories are equal iff their ``value`` strings match, regardless
    of the concrete class that declares them.
    """

    value: str

    def __eq__(self, other: Any) -> bool:
        if self is other:
            return True
        return isinstance(other, EventCategoryMixin) and self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __str__(self) -> str:
        return self.value

    def belongs_to(self, family: str) -> bool:
        """
        Check whether this category sits in a dotted namespace.

        Args:
            family: Namespace prefix, without the trailing dot.

        Returns:
            True if ``value`` starts with ``family + "."``.
        """
        return self.value.startswith(f"{family}.")

    @property
    def is_user_related(self) -> bool:
        """Whether the category value starts with ``user``."""
        return self.value.startswith("user")

    @property
    def is_system_related(self) -> bool:
        """Whether the category value starts with ``system``."""
        return self.value.startswith("system")


class EventCategory(EventCategoryMixin, ABC):
    """Interface every event category implements."""

    @property
    @abstractmethod
    def value(self) -> str:
        """Unique identifier value for this category."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable label."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"


class Category(EventCategory):
    """Ready-made category value for applications that need no custom class."""

    def __init__(self, value: str, display_name: str = "") -> None:
        self._value = value
        self._display_name = display_name or value

    @property
    def value(self) -> str:
        return self._value

    @property
    def display_name(self) -> str:
        return self._display_name
