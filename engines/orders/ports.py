"""
OrderDesk Orders Engine - Collaborator Protocols
===================================================
Interfaces of the systems the engine talks to. The engine ships no
implementation of the store or the catalog; tests use in-memory stubs.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol, Union

from core.events.registry import Unsubscribe
from engines.orders.models import ProductRef

EventHandler = Callable[[Any, Any], None]


class DocumentStore(Protocol):
    async def get_order(self, document_id: str) -> Mapping[str, Any]:
        """Wire dict with `lines`, `party_tax_config` (or `partyTaxConfig`) and `state`."""
        ...

    async def update_order(self, document_id: str, patch: Mapping[str, Any]) -> Any:
        ...

    async def add_item(self, document_id: str, payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Create an item; `payload` is {product, item}. Returns the stored item."""
        ...

    async def remove_item(self, document_id: str, item_id: str) -> Any:
        ...


class CatalogLookup(Protocol):
    async def find_product(self, identifier_or_name: str) -> Union[ProductRef, Mapping[str, Any], None]:
        ...


class EventSource(Protocol):
    def on_item_added(self, document_id: str, handler: EventHandler) -> Unsubscribe:
        ...

    def on_item_removed(self, document_id: str, handler: EventHandler) -> Unsubscribe:
        ...

    def on_document_updated(self, document_id: str, handler: EventHandler) -> Unsubscribe:
        ...
