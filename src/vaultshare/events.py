"""EventBus and event types for the visibility-changed signal."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Committed transitions that change what some user can see."""

    SHARED = "shared"
    UNSHARED = "unshared"
    OWNER_TRASHED = "owner_trashed"
    OWNER_RESTORED = "owner_restored"
    OWNER_PURGED = "owner_purged"
    RECIPIENT_TRASHED = "recipient_trashed"
    RECIPIENT_RESTORED = "recipient_restored"
    RECIPIENT_PURGED = "recipient_purged"
    HIDDEN = "hidden"
    UNHIDDEN = "unhidden"
    ITEM_CREATED = "item_created"
    ITEM_UPDATED = "item_updated"
    LINK_CREATED = "link_created"
    LINK_REVOKED = "link_revoked"
    RECONCILED = "reconciled"


@dataclass(frozen=True, slots=True)
class VisibilityEvent:
    """Immutable record of a committed transition.

    Attributes:
        event_type: The kind of transition that occurred.
        item_ids: Items whose visibility may have changed.
        recipient_ids: Recipients whose views should be refreshed.
        actor_id: Identity that performed the operation, if any.
    """

    event_type: EventType
    item_ids: tuple[str, ...] = ()
    recipient_ids: tuple[str, ...] = ()
    actor_id: str | None = None


class EventBus:
    """Dispatches visibility events to registered handlers.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated.  Handlers run after
    commit, so a failing handler cannot undo the transition.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def register_all(self, handler: Callable[..., Any]) -> None:
        """Append *handler* for every event type."""
        for event_type in EventType:
            self.register(event_type, handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: VisibilityEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in self._handlers[event.event_type]:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    ", ".join(event.item_ids),
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()
