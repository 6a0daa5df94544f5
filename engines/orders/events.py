"""
OrderDesk Orders Engine - Event Types and In-Process Event Source
====================================================================
Realtime notifications the orders engine listens to, plus an
EventSource backed by the core subscriber registry.

Wire names ("order:item-added") are what the socket layer emits; the
engine works with dotted engine.domain.action names internally.
"""

from __future__ import annotations

from typing import Any, Optional

from core.events.dispatcher import dispatch
from core.events.registry import SubscriberRegistry, Unsubscribe


# ══════════════════════════════════════════════════════════════
# EVENT TYPE CONSTANTS
# ══════════════════════════════════════════════════════════════

ORDER_ITEM_ADDED = "order.item.added"
ORDER_ITEM_REMOVED = "order.item.removed"
ORDER_DOCUMENT_UPDATED = "order.document.updated"

ORDER_EVENT_TYPES = (
    ORDER_ITEM_ADDED,
    ORDER_ITEM_REMOVED,
    ORDER_DOCUMENT_UPDATED,
)

WIRE_TO_EVENT_TYPE = {
    "order:item-added": ORDER_ITEM_ADDED,
    "order:item-removed": ORDER_ITEM_REMOVED,
    "order:updated": ORDER_DOCUMENT_UPDATED,
}


def resolve_order_event_type(name: str) -> Optional[str]:
    """Map a wire name (or an already dotted name) to an event type."""
    if name in ORDER_EVENT_TYPES:
        return name
    return WIRE_TO_EVENT_TYPE.get(name)


# ══════════════════════════════════════════════════════════════
# IN-PROCESS EVENT SOURCE
# ══════════════════════════════════════════════════════════════

class InMemoryOrderEventSource:
    """
    EventSource that delivers published events synchronously.

    Handlers are keyed by document id, so publishing for order A never
    reaches a view bound to order B.
    """

    def __init__(self, registry: Optional[SubscriberRegistry] = None):
        self.registry = registry or SubscriberRegistry()

    def on_item_added(self, document_id, handler) -> Unsubscribe:
        return self.registry.register_subscriber(ORDER_ITEM_ADDED, document_id, handler)

    def on_item_removed(self, document_id, handler) -> Unsubscribe:
        return self.registry.register_subscriber(ORDER_ITEM_REMOVED, document_id, handler)

    def on_document_updated(self, document_id, handler) -> Unsubscribe:
        return self.registry.register_subscriber(ORDER_DOCUMENT_UPDATED, document_id, handler)

    def publish(self, event_type: str, document_id, payload: Any) -> dict:
        resolved = resolve_order_event_type(event_type) or event_type
        return dispatch(resolved, document_id, payload, self.registry)

    def publish_item_added(self, document_id, payload: Any) -> dict:
        return self.publish(ORDER_ITEM_ADDED, document_id, payload)

    def publish_item_removed(self, document_id, payload: Any) -> dict:
        return self.publish(ORDER_ITEM_REMOVED, document_id, payload)

    def publish_document_updated(self, document_id, payload: Any) -> dict:
        return self.publish(ORDER_DOCUMENT_UPDATED, document_id, payload)
