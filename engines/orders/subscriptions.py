"""
OrderDesk Orders Engine - Realtime Sync
==========================================
Applies item-added / item-removed / document-updated notifications
onto the open document view.

Subscriptions:
- order.item.added       -> prepend the item to its product's line
- order.item.removed     -> drop the item from its product's line
- order.document.updated -> advance state, adopt echoed server ids

RULES:
- Every handler is idempotent: replaying an event changes nothing
- Handlers touch only `items` (and, for document updates, the state);
  price, requested quantity and other line metadata are never written
- An event for a line or item that is no longer there is a no-op
- Events carrying another document id are ignored
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, List, Mapping, Optional, Sequence

from core.primitives.numeric import to_number
from engines.orders.lines import find_line_by_product_id
from engines.orders.models import DocumentView, Item, OrderLine, OrderState, ref_id
from engines.orders.ports import EventSource

logger = logging.getLogger("orderdesk.orders")


def _product_id_of(payload: Mapping[str, Any]) -> Optional[str]:
    return ref_id(payload.get("product"))


# ══════════════════════════════════════════════════════════════
# PURE EVENT APPLICATION
# ══════════════════════════════════════════════════════════════

def apply_item_added(lines: Sequence[OrderLine], payload: Mapping[str, Any]) -> List[OrderLine]:
    product_id = _product_id_of(payload)
    index = find_line_by_product_id(lines, product_id)
    if index == -1:
        logger.debug(f"item-added for product {product_id} with no line; ignored")
        return list(lines)

    if payload.get("id") is None:
        logger.debug(f"item-added for product {product_id} without an item id; ignored")
        return list(lines)

    incoming = Item.from_wire(payload)
    line = lines[index]
    if line.find_item(incoming.server_id) is not None:
        return list(lines)

    updated = list(lines)
    updated[index] = line.with_items((incoming, *line.items))
    return updated


def apply_item_removed(lines: Sequence[OrderLine], payload: Mapping[str, Any]) -> List[OrderLine]:
    product_id = _product_id_of(payload)
    item_id = payload.get("id")
    index = find_line_by_product_id(lines, product_id)
    if index == -1 or item_id is None:
        logger.debug(f"item-removed for product {product_id} with no line; ignored")
        return list(lines)

    line = lines[index]
    kept = [item for item in line.items if not item.matches(item_id)]
    if len(kept) == len(line.items):
        return list(lines)

    updated = list(lines)
    updated[index] = line.with_items(kept)
    return updated


def _echo_key(item: Item):
    return (item.lot_number, item.item_number, to_number(item.quantity))


def adopt_server_items(lines: Sequence[OrderLine], remote_lines: Sequence[Mapping[str, Any]]) -> List[OrderLine]:
    """
    Give local items the server ids the store echoed back.

    A remote item already known by server id is skipped. Otherwise the
    first local item with no server id and the same (lot, item number,
    quantity) takes its id. Local field values are kept as they are.
    """
    updated = list(lines)
    for remote in remote_lines or ():
        index = find_line_by_product_id(updated, _product_id_of(remote))
        if index == -1:
            continue

        items = list(updated[index].items)
        changed = False
        for raw in remote.get("items") or ():
            echoed = Item.from_wire(raw)
            if echoed.server_id is None:
                continue
            if any(item.matches(echoed.server_id) for item in items):
                continue
            for position, item in enumerate(items):
                if not item.is_persisted and _echo_key(item) == _echo_key(echoed):
                    items[position] = replace(item, server_id=echoed.server_id)
                    changed = True
                    break

        if changed:
            updated[index] = updated[index].with_items(items)
    return updated


# ══════════════════════════════════════════════════════════════
# ADAPTER
# ══════════════════════════════════════════════════════════════

class RealtimeSyncAdapter:
    """
    Binds the three order handlers to one document at a time.

    The adapter writes into the DocumentView it was given; rebinding
    detaches the previous document's handlers first.
    """

    def __init__(self, event_source: EventSource, view: Optional[DocumentView] = None):
        self._event_source = event_source
        self.view = view
        self._document_id: Optional[str] = None
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def bound_document_id(self) -> Optional[str]:
        return self._document_id

    def bind(self, document_id, view: Optional[DocumentView] = None) -> None:
        self.unbind()
        if view is not None:
            self.view = view
        self._document_id = str(document_id)
        self._unsubscribers = [
            self._event_source.on_item_added(self._document_id, self.handle_item_added),
            self._event_source.on_item_removed(self._document_id, self.handle_item_removed),
            self._event_source.on_document_updated(self._document_id, self.handle_document_updated),
        ]
        logger.debug(f"Realtime sync bound to document {self._document_id}")

    def unbind(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        if self._document_id is not None:
            logger.debug(f"Realtime sync released document {self._document_id}")
        self._unsubscribers = []
        self._document_id = None

    def _accepts(self, document_id) -> bool:
        if (
            self.view is None
            or self._document_id is None
            or str(document_id) != self._document_id
            or str(self.view.document_id) != self._document_id
        ):
            logger.debug(f"Ignoring event for document {document_id}")
            return False
        return True

    # ── Handlers ───────────────────────────────────────────────

    def handle_item_added(self, document_id, payload: Mapping[str, Any]) -> None:
        if self._accepts(document_id):
            self.view.transform(lambda lines: apply_item_added(lines, payload))

    def handle_item_removed(self, document_id, payload: Mapping[str, Any]) -> None:
        if self._accepts(document_id):
            self.view.transform(lambda lines: apply_item_removed(lines, payload))

    def handle_document_updated(self, document_id, payload: Mapping[str, Any]) -> None:
        if not self._accepts(document_id):
            return

        if "state" in payload:
            incoming = OrderState.parse(payload.get("state"))
            if incoming.rank > self.view.state.rank:
                logger.info(
                    f"Document {document_id} moved {self.view.state.value} -> {incoming.value}"
                )
                self.view.state = incoming

        remote_lines = payload.get("lines") or payload.get("products") or ()
        if remote_lines:
            self.view.transform(lambda lines: adopt_server_items(lines, remote_lines))
