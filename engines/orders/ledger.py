"""
OrderDesk Orders Engine - Item Ledger
========================================
Owns one line's item sequence plus the single "next ghost" slot used
for inline entry.

RULES:
- Real items keep insertion order and never collide on id
- Exactly one ghost is visible at a time
- The ghost keeps its id until it is consumed, so a focused input
  stays focused while the user types
- Consuming a ghost produces an Item with the ghost's id
- A removed id stays removed: later edits to it are no-ops
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Iterable, List, Optional, Set

from core.config.settings import get_setting
from engines.orders.models import GhostItem, Item, LedgerEntry, new_client_id

logger = logging.getLogger("orderdesk.orders")

EDITABLE_ITEM_FIELDS = frozenset({"quantity", "lot_number", "item_number", "barcode"})

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def next_item_number(item_number: Any) -> str:
    """Leading integer + 1; "1" when there is none."""
    match = _LEADING_INT.match(str(item_number or ""))
    if match is None:
        return "1"
    return str(int(match.group(1)) + 1)


class ItemLedger:
    """
    Item list of a single order line.

    The ledger never hands out its internal list; every operation
    returns a fresh copy of the real items.
    """

    def __init__(self, items: Iterable[Item] = (), default_lot_number: Optional[str] = None):
        self._items: List[Item] = []
        self._ghost: Optional[GhostItem] = None
        self._removed: Set[str] = set()
        self._default_lot = (
            default_lot_number if default_lot_number is not None
            else str(get_setting("DEFAULT_LOT_NUMBER"))
        )
        self._adopt(items)

    @property
    def items(self) -> List[Item]:
        return list(self._items)

    @property
    def ghost(self) -> Optional[GhostItem]:
        return self._ghost

    def _adopt(self, items: Iterable[Item]) -> None:
        adopted: List[Item] = []
        seen: Set[str] = set()
        for item in items:
            if item.id in seen or item.id in self._removed:
                continue
            seen.add(item.id)
            adopted.append(item)
        self._items = adopted

    def _index_of(self, item_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.matches(item_id):
                return index
        return -1

    @staticmethod
    def _check_field(field_name: str) -> None:
        if field_name not in EDITABLE_ITEM_FIELDS:
            raise ValueError(f"Item field '{field_name}' is not editable.")

    # ── Ghost ──────────────────────────────────────────────────

    def append_ghost(self, items: Optional[Iterable[Item]] = None) -> LedgerEntry:
        """
        Return the entry the user types into next.

        If `items` is given it replaces the ledger's current list first.
        When the last real item has no quantity yet, that item is the
        entry and no ghost is produced.
        """
        if items is not None:
            self._adopt(items)

        if not self._items:
            return self._ghost_with(item_number="1", lot_number=self._default_lot)

        last = self._items[-1]
        if not last.has_quantity:
            return last

        return self._ghost_with(
            item_number=next_item_number(last.item_number),
            lot_number=last.lot_number or self._default_lot,
        )

    def _ghost_with(self, item_number: str, lot_number: str) -> GhostItem:
        ghost = self._ghost
        if ghost is None or self._index_of(ghost.id) != -1 or ghost.id in self._removed:
            ghost = GhostItem(id=new_client_id(), lot_number=lot_number, item_number=item_number)
        elif ghost.item_number != item_number or ghost.lot_number != lot_number:
            ghost = replace(ghost, item_number=item_number, lot_number=lot_number)
        self._ghost = ghost
        return ghost

    def entries(self) -> List[LedgerEntry]:
        """Real items followed by the ghost, if one is visible."""
        entry = self.append_ghost()
        if isinstance(entry, GhostItem):
            return [*self._items, entry]
        return list(self._items)

    def commit_ghost(self, ghost_id: str, field_name: str, value: Any) -> List[Item]:
        """
        Materialize the ghost with its first edited field.

        Committing an id that already became an item edits that item.
        """
        self._check_field(field_name)

        if ghost_id in self._removed:
            logger.debug(f"Ignoring edit of removed item {ghost_id}")
            return self.items

        if self._index_of(ghost_id) != -1:
            return self.update_item(ghost_id, field_name, value)

        ghost = self._ghost
        if ghost is None or ghost.id != ghost_id:
            logger.debug(f"No ghost with id {ghost_id}; edit ignored")
            return self.items

        self._items.append(ghost.materialize(**{field_name: value}))
        self._ghost = None
        return self.items

    # ── Real items ─────────────────────────────────────────────

    def update_item(self, item_id: str, field_name: str, value: Any) -> List[Item]:
        self._check_field(field_name)
        if item_id in self._removed:
            logger.debug(f"Ignoring edit of removed item {item_id}")
            return self.items
        index = self._index_of(item_id)
        if index != -1:
            self._items[index] = replace(self._items[index], **{field_name: value})
        return self.items

    def edit(self, entry_id: str, field_name: str, value: Any) -> List[Item]:
        """Edit whichever entry carries `entry_id`, ghost or real."""
        if self._ghost is not None and self._ghost.id == entry_id:
            return self.commit_ghost(entry_id, field_name, value)
        return self.update_item(entry_id, field_name, value)

    def remove_item(self, item_id: str) -> List[Item]:
        """Drop the item and remember the id. Idempotent."""
        self._removed.add(str(item_id))
        self._items = [item for item in self._items if not item.matches(item_id)]
        if self._ghost is not None and self._ghost.id == item_id:
            self._ghost = None
        return self.items
