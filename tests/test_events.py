"""Tests for EventBus and visibility event types."""

from __future__ import annotations

import functools
import logging

import pytest

from vaultshare.events import EventBus, EventType, VisibilityEvent

# =========================================================================
# Helpers
# =========================================================================


async def _collecting_handler(
    events: list[VisibilityEvent], event: VisibilityEvent
) -> None:
    """Append event to a list for assertion."""
    events.append(event)


async def _failing_handler(event: VisibilityEvent) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on {event.item_ids}")


# =========================================================================
# EventType
# =========================================================================


class TestEventType:
    def test_member_count(self) -> None:
        assert len(EventType) == 15

    def test_values(self) -> None:
        assert EventType.SHARED.value == "shared"
        assert EventType.OWNER_TRASHED.value == "owner_trashed"
        assert EventType.RECIPIENT_PURGED.value == "recipient_purged"
        assert EventType.RECONCILED.value == "reconciled"
        assert EventType.LINK_CREATED.value == "link_created"

    def test_unique_values(self) -> None:
        values = [et.value for et in EventType]
        assert len(values) == len(set(values))


# =========================================================================
# VisibilityEvent
# =========================================================================


class TestVisibilityEvent:
    def test_construction(self) -> None:
        ev = VisibilityEvent(event_type=EventType.SHARED, item_ids=("f1",))
        assert ev.event_type is EventType.SHARED
        assert ev.item_ids == ("f1",)
        assert ev.recipient_ids == ()
        assert ev.actor_id is None

    def test_full(self) -> None:
        ev = VisibilityEvent(
            event_type=EventType.RECIPIENT_TRASHED,
            item_ids=("d1", "f2"),
            recipient_ids=("carol@x.com",),
            actor_id="carol@x.com",
        )
        assert ev.recipient_ids == ("carol@x.com",)
        assert ev.actor_id == "carol@x.com"

    def test_immutable(self) -> None:
        ev = VisibilityEvent(event_type=EventType.SHARED)
        with pytest.raises(AttributeError):
            ev.actor_id = "mallory@x.com"  # type: ignore[misc]


# =========================================================================
# EventBus Registration
# =========================================================================


class TestEventBusRegistration:
    def test_initial_handler_count(self) -> None:
        bus = EventBus()
        assert bus.handler_count == 0

    def test_register_increments_count(self) -> None:
        bus = EventBus()
        bus.register(EventType.SHARED, _failing_handler)
        assert bus.handler_count == 1

    def test_register_all(self) -> None:
        bus = EventBus()
        bus.register_all(_failing_handler)
        assert bus.handler_count == len(EventType)

    def test_unregister_returns_true(self) -> None:
        bus = EventBus()
        bus.register(EventType.SHARED, _failing_handler)
        assert bus.unregister(EventType.SHARED, _failing_handler) is True
        assert bus.handler_count == 0

    def test_unregister_missing_returns_false(self) -> None:
        bus = EventBus()
        assert bus.unregister(EventType.SHARED, _failing_handler) is False

    def test_clear(self) -> None:
        bus = EventBus()
        bus.register_all(_failing_handler)
        bus.clear()
        assert bus.handler_count == 0


# =========================================================================
# EventBus Emit
# =========================================================================


class TestEventBusEmit:
    async def test_handler_called_with_event(self) -> None:
        bus = EventBus()
        received: list[VisibilityEvent] = []
        bus.register(EventType.HIDDEN, functools.partial(_collecting_handler, received))

        ev = VisibilityEvent(event_type=EventType.HIDDEN, item_ids=("f1",))
        await bus.emit(ev)
        assert received == [ev]

    async def test_multiple_handlers_called_in_order(self) -> None:
        bus = EventBus()
        order: list[str] = []

        async def first(event: VisibilityEvent) -> None:
            order.append("first")

        async def second(event: VisibilityEvent) -> None:
            order.append("second")

        bus.register(EventType.UNSHARED, first)
        bus.register(EventType.UNSHARED, second)
        await bus.emit(VisibilityEvent(event_type=EventType.UNSHARED))
        assert order == ["first", "second"]

    async def test_type_filtering(self) -> None:
        bus = EventBus()
        received: list[VisibilityEvent] = []
        bus.register(EventType.SHARED, functools.partial(_collecting_handler, received))

        await bus.emit(VisibilityEvent(event_type=EventType.UNSHARED))
        assert received == []

    async def test_error_isolation(self) -> None:
        bus = EventBus()
        received: list[VisibilityEvent] = []
        bus.register(EventType.SHARED, _failing_handler)
        bus.register(EventType.SHARED, functools.partial(_collecting_handler, received))

        await bus.emit(VisibilityEvent(event_type=EventType.SHARED, item_ids=("f1",)))
        assert len(received) == 1

    async def test_error_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        bus.register(EventType.SHARED, _failing_handler)

        with caplog.at_level(logging.WARNING, logger="vaultshare.events"):
            await bus.emit(VisibilityEvent(event_type=EventType.SHARED, item_ids=("f1",)))
        assert "failed for shared on f1" in caplog.text
