"""Tests for domain event records."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from domain_event_bus.core.category import Category
from domain_event_bus.core.event import DomainEvent, SimpleDomainEvent

from helpers import AUTH, SYNC, OrderCreated, UserRegistered

OCCURRED_AT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def make_user(**kwargs) -> UserRegistered:
    """Helper to create a UserRegistered with fixed identity fields."""
    fields = {"user_id": "u1", "event_id": "e1", "occurred_at": OCCURRED_AT}
    fields.update(kwargs)
    return UserRegistered(**fields)


class TestDefaults:
    """Test defaulted fields."""

    def test_generates_event_id_and_timestamp(self):
        """Test that id and timestamp are filled in when omitted."""
        event = UserRegistered(user_id="u1")
        assert event.event_id
        assert event.occurred_at.tzinfo is not None
        assert event.metadata == {}

    def test_generated_ids_are_unique(self):
        """Test that rapid successive construction yields distinct ids."""
        ids = {UserRegistered(user_id="u1").event_id for _ in range(1000)}
        assert len(ids) == 1000

    def test_variant_defaults(self):
        """Test that a variant supplies its own type, category and metadata."""
        event = OrderCreated(order_id="o1")
        assert event.event_type == "order.created"
        assert event.category == SYNC
        assert event.metadata == {"source": "checkout"}

    def test_now_factory(self):
        """Test the generic event factory."""
        event = DomainEvent.now("system.started", Category("system"))
        assert isinstance(event, SimpleDomainEvent)
        assert event.event_type == "system.started"
        assert event.event_id
        assert DomainEvent.now("x", AUTH, event_id="fixed").event_id == "fixed"


class TestImmutability:
    """Test that events cannot be modified."""

    def test_assignment_rejected(self):
        """Test that assigning to a field raises."""
        event = make_user()
        with pytest.raises(ValidationError):
            event.user_id = "u2"


class TestEquality:
    """Test the identity contract."""

    def test_separately_constructed_events_are_equal(self):
        """Test that identical identifying fields make events interchangeable."""
        assert make_user() == make_user()
        assert hash(make_user()) == hash(make_user())

    def test_category_and_metadata_are_not_identifying(self):
        """Test that category and metadata do not affect equality."""
        assert make_user(category=SYNC, metadata={"a": 1}) == make_user()

    def test_variant_fields_are_identifying(self):
        """Test that a differing variant field breaks equality."""
        assert make_user(user_id="u2") != make_user()

    def test_base_identity_fields(self):
        """Test that id, timestamp and type are identifying."""
        assert make_user(event_id="e2") != make_user()
        assert make_user(occurred_at=datetime(2025, 1, 1, tzinfo=timezone.utc)) != make_user()
        assert make_user(event_type="user.created") != make_user()

    def test_different_variants_are_not_equal(self):
        """Test that the concrete class is part of identity."""
        order = OrderCreated(order_id="u1", event_id="e1", occurred_at=OCCURRED_AT)
        assert order != make_user()


class TestSerialization:
    """Test the JSON wire format."""

    def test_to_json(self):
        """Test stable field names and values."""
        event = make_user(email="user@example.com")
        assert event.to_json() == {
            "eventType": "user.registered",
            "category": "auth",
            "occurredAt": "2024-01-02T03:04:05+00:00",
            "eventId": "e1",
            "metadata": {},
            "userId": "u1",
            "email": "user@example.com",
        }

    def test_to_json_includes_metadata(self):
        """Test that variant metadata is serialized."""
        data = OrderCreated(order_id="o1").to_json()
        assert data["metadata"] == {"source": "checkout"}
        assert data["orderId"] == "o1"
        assert data["category"] == "sync"

    def test_str(self):
        """Test the log-friendly string form."""
        assert str(make_user()) == (
            "UserRegistered{eventType: user.registered, eventId: e1, "
            "category: auth, occurredAt: 2024-01-02T03:04:05+00:00}"
        )
