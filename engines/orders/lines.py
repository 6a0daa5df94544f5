"""
OrderDesk Orders Engine - Line List Operations
=================================================
Pure transformations of an order's line list. Each function takes the
current list and returns a new one; nothing is mutated in place.

RULES:
- At most one line per product (dedupe_lines merges duplicates)
- Zero or one ghost line, always last (ensure_ghost_line)
- A ghost line keeps its id when it is promoted to a real line
- Line metadata edits never touch items
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from core.config.settings import get_setting
from core.primitives.numeric import is_blank
from engines.orders.models import Item, OrderLine, ProductRef, new_client_id

logger = logging.getLogger("orderdesk.orders")

EDITABLE_LINE_FIELDS = frozenset({
    "price",
    "iva_included",
    "invoice_percentage",
    "requested_quantity",
})


def new_ghost_line() -> OrderLine:
    return OrderLine(
        id=new_client_id(),
        price="",
        invoice_percentage=get_setting("DEFAULT_INVOICE_PERCENTAGE"),
    )


def ensure_ghost_line(lines: Sequence[OrderLine], *, ensure_empty_row: bool = True) -> List[OrderLine]:
    """
    Move the first ghost line to the tail and drop any other ghost.

    With ensure_empty_row a fresh ghost is appended when none exists.
    """
    real: List[OrderLine] = []
    ghost: Optional[OrderLine] = None
    for line in lines:
        if line.is_ghost:
            if ghost is None:
                ghost = line
            continue
        real.append(line)
    if ghost is None and ensure_empty_row:
        ghost = new_ghost_line()
    if ghost is not None:
        real.append(ghost)
    return real


def find_line_for_product(lines: Sequence[OrderLine], product: ProductRef) -> int:
    """Index of the line holding `product` (matched by id or code), -1 if none."""
    for index, line in enumerate(lines):
        if line.product is not None and line.product.same_product(product):
            return index
    return -1


def find_line_by_product_id(lines: Sequence[OrderLine], product_id: Any) -> int:
    if product_id is None:
        return -1
    key = str(product_id).strip().lower()
    for index, line in enumerate(lines):
        if line.product is not None and line.product.id.strip().lower() == key:
            return index
    return -1


def _line_index(lines: Sequence[OrderLine], line_id: str) -> int:
    for index, line in enumerate(lines):
        if line.id == line_id:
            return index
    return -1


def select_product(lines: Sequence[OrderLine], line_id: str, product: ProductRef) -> List[OrderLine]:
    """
    Put `product` on the line. A ghost line is promoted in place.

    Picking a product another line already holds merges the two.
    """
    updated = list(lines)
    index = _line_index(updated, line_id)
    if index == -1:
        logger.debug(f"select_product: line {line_id} not found")
        return ensure_ghost_line(updated)
    line = updated[index]
    keep_items = line.product is not None and line.product.same_product(product)
    updated[index] = replace(line, product=product, items=line.items if keep_items else ())
    return dedupe_lines(updated)


def update_line(lines: Sequence[OrderLine], line_id: str, **changes: Any) -> List[OrderLine]:
    unknown = set(changes) - EDITABLE_LINE_FIELDS
    if unknown:
        raise ValueError(f"Line fields not editable: {', '.join(sorted(unknown))}.")
    return [
        replace(line, **changes) if line.id == line_id else line
        for line in lines
    ]


def set_line_items(lines: Sequence[OrderLine], line_id: str, items: Sequence[Item]) -> List[OrderLine]:
    updated = [
        line.with_items(items) if line.id == line_id else line
        for line in lines
    ]
    return ensure_ghost_line(updated)


def remove_line(lines: Sequence[OrderLine], line_id: str) -> List[OrderLine]:
    return ensure_ghost_line([line for line in lines if line.id != line_id])


def dedupe_lines(lines: Sequence[OrderLine], *, ensure_empty_row: bool = True) -> List[OrderLine]:
    """
    Merge lines that resolve to the same product.

    The first occurrence keeps its id and position; items are
    concatenated in order (an item id already present is skipped) and
    the first non-empty requested quantity and price win.
    """
    merged: Dict[str, int] = {}
    result: List[OrderLine] = []
    for line in ensure_ghost_line(lines, ensure_empty_row=False):
        if line.product is None or not line.product_key:
            result.append(line)
            continue

        index = merged.get(line.product_key)
        if index is None:
            index = next(
                (i for i, kept in enumerate(result)
                 if kept.product is not None and kept.product.same_product(line.product)),
                None,
            )
        if index is None:
            merged[line.product_key] = len(result)
            result.append(line)
            continue

        existing = result[index]
        items = list(existing.items)
        for item in line.items:
            if existing.find_item(item.id) is None and existing.find_item(item.server_id) is None:
                items.append(item)
        result[index] = replace(
            existing,
            items=tuple(items),
            requested_quantity=(
                line.requested_quantity if is_blank(existing.requested_quantity)
                else existing.requested_quantity
            ),
            price=line.price if is_blank(existing.price) else existing.price,
        )
        merged[line.product_key] = index
        logger.debug(f"Merged duplicate line {line.id} into {existing.id}")

    return ensure_ghost_line(result, ensure_empty_row=ensure_empty_row)
