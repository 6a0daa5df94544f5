"""
OrderDesk Event Bus - Subscriber Registry
============================================
Controls which handlers receive which events for which document.

Subscriptions are scoped to a document id: a view listening to order
42 never hears events for order 43. Every registration returns an
unsubscribe callable so the owner can detach when the view changes.

Rules:
- Event types must follow engine.domain.action format
- Multiple subscribers per (event type, document) allowed
- Duplicate handler for the same (event type, document) forbidden
- Unsubscribing twice is a no-op
- In-memory only, thread-safe
"""

import logging
from threading import Lock
from typing import Callable

from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)

logger = logging.getLogger("orderdesk.events")

Unsubscribe = Callable[[], None]


class SubscriberRegistry:
    """
    In-memory registry of document-scoped event subscribers.

    Each entry maps (event_type, document_id) to a list of handlers.
    """

    def __init__(self):
        self._subscribers: dict[tuple[str, str], list[Callable]] = {}
        self._lock = Lock()

    @staticmethod
    def _validate_event_type_format(event_type: str) -> None:
        """Validate engine.domain.action format."""
        if not event_type or not isinstance(event_type, str):
            raise InvalidEventTypeFormat(event_type or "")

        parts = event_type.strip().split(".")
        if len(parts) < 3 or not all(part.strip() for part in parts):
            raise InvalidEventTypeFormat(event_type)

    def register_subscriber(
        self,
        event_type: str,
        document_id,
        handler: Callable,
    ) -> Unsubscribe:
        """
        Register a handler for an event type on one document.

        Args:
            event_type:  e.g. 'order.item.added'
            document_id: Document the handler is bound to
            handler:     Callable(document_id, payload)

        Returns:
            Callable that removes this registration.

        Raises:
            InvalidEventTypeFormat:   Bad event type format
            DuplicateSubscriberError: Handler already registered
        """
        self._validate_event_type_format(event_type)

        if not callable(handler):
            raise EventBusError(
                f"Handler must be callable, got {type(handler)}."
            )

        key = (event_type, str(document_id))
        handler_name = getattr(handler, "__qualname__", str(handler))

        with self._lock:
            handlers = self._subscribers.setdefault(key, [])
            for existing in handlers:
                if existing == handler:
                    raise DuplicateSubscriberError(
                        event_type, key[1], handler_name
                    )
            handlers.append(handler)

        logger.debug(
            f"Subscriber registered: {handler_name} → {event_type} "
            f"(document: {key[1]})"
        )

        def unsubscribe() -> None:
            self._remove(key, handler)

        return unsubscribe

    def _remove(self, key: tuple[str, str], handler: Callable) -> None:
        with self._lock:
            handlers = self._subscribers.get(key)
            if not handlers:
                return
            remaining = [h for h in handlers if h != handler]
            if remaining:
                self._subscribers[key] = remaining
            else:
                del self._subscribers[key]

    def get_subscribers(self, event_type: str, document_id) -> list[Callable]:
        """
        Get all subscribers for an event type on a document.
        Returns empty list if no subscribers (not an error).
        """
        with self._lock:
            return list(self._subscribers.get((event_type, str(document_id)), []))

    def has_subscribers(self, event_type: str, document_id) -> bool:
        with self._lock:
            return bool(self._subscribers.get((event_type, str(document_id))))

    def subscriber_count(self, event_type: str, document_id) -> int:
        with self._lock:
            return len(self._subscribers.get((event_type, str(document_id)), []))

    def documents_with_subscribers(self) -> frozenset[str]:
        with self._lock:
            return frozenset(document_id for _, document_id in self._subscribers)
