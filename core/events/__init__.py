"""
OrderDesk Event Bus - Public API
==================================
Document-scoped, in-process event routing.
"""

from core.events.dispatcher import dispatch
from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)
from core.events.registry import SubscriberRegistry, Unsubscribe

__all__ = [
    "dispatch",
    "SubscriberRegistry",
    "Unsubscribe",
    "EventBusError",
    "InvalidEventTypeFormat",
    "DuplicateSubscriberError",
]
