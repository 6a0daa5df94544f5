"""
OrderDesk Event Bus - Dispatcher
==================================
Routes an incoming event to the handlers bound to its document.

Dispatch behavior:
1. Look up subscribers by (event_type, document_id)
2. Execute handlers sequentially
3. Catch subscriber exceptions per handler, log, continue

This module does NOT interpret payload meaning.
"""

import logging
from typing import Any

from core.events.registry import SubscriberRegistry

logger = logging.getLogger("orderdesk.events")


def dispatch(
    event_type: str,
    document_id,
    payload: Any,
    registry: SubscriberRegistry,
) -> dict:
    """
    Dispatch an event to every handler bound to (event_type, document_id).

    Returns:
        dict with dispatch results:
        {
            'event_type': str,
            'document_id': str,
            'subscribers_notified': int,
            'subscribers_failed': int,
            'failures': list[dict]
        }

    This function NEVER raises exceptions.
    """
    document_key = str(document_id)
    subscribers = registry.get_subscribers(event_type, document_key)

    result = {
        "event_type": event_type,
        "document_id": document_key,
        "subscribers_notified": 0,
        "subscribers_failed": 0,
        "failures": [],
    }

    if not subscribers:
        logger.debug(
            f"No subscribers for '{event_type}' on document {document_key}"
        )
        return result

    for handler in subscribers:
        handler_name = getattr(handler, "__qualname__", str(handler))

        try:
            handler(document_id, payload)
            result["subscribers_notified"] += 1
        except Exception as exc:
            result["subscribers_failed"] += 1
            result["failures"].append({
                "handler": handler_name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            logger.error(
                f"Subscriber failed: {handler_name} for {event_type} "
                f"(document: {document_key}): {exc}",
                exc_info=True,
            )

    logger.debug(
        f"Dispatch complete: {event_type} (document: {document_key}) - "
        f"{result['subscribers_notified']} notified, "
        f"{result['subscribers_failed']} failed"
    )

    return result
