"""
OrderDesk Orders Engine - Quantity Reconciler
================================================
Derives confirmed quantities from item lists and decides when a
document moves forward in its lifecycle.

RULES:
- confirmed_quantity = round2(sum of item quantities); no items -> 0.0
- Non-numeric item quantities count as 0 in sums
- draft -> confirmed happens automatically once every selected line is
  fully counted; nothing here ever moves a document backwards
- Draft documents invoice their requested quantities, every later
  state invoices confirmed quantities
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence, Tuple

from core.primitives.numeric import is_blank, sum2, to_number
from engines.orders.models import Item, OrderLine, OrderState


class QuantityMode(Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"


def confirmed_quantity(line: OrderLine) -> float:
    return sum_item_quantities(line.items)


def sum_item_quantities(items: Iterable[Item]) -> float:
    return sum2(item.numeric_quantity or 0.0 for item in items)


def is_item_confirmed(item: Item) -> bool:
    """Quantity is present and a finite number."""
    if is_blank(item.quantity):
        return False
    return to_number(item.quantity) is not None


def is_order_fully_confirmed(lines: Sequence[OrderLine]) -> bool:
    """
    True iff every line with a product has only counted items.

    Items whose quantity is numerically zero are ignored; an item left
    with an empty or non-numeric quantity blocks confirmation.
    """
    for line in lines:
        if line.product is None:
            continue
        for item in line.items:
            if item.numeric_quantity == 0:
                continue
            if not is_item_confirmed(item):
                return False
    return True


def next_state(current: OrderState, lines: Sequence[OrderLine]) -> OrderState:
    """State to persist on save. Only draft can move, and only forward."""
    current = OrderState.parse(current)
    if current is OrderState.DRAFT and is_order_fully_confirmed(lines):
        return OrderState.CONFIRMED
    return current


def quantity_mode_for(state: Any) -> QuantityMode:
    if OrderState.parse(state) is OrderState.DRAFT:
        return QuantityMode.REQUESTED
    return QuantityMode.CONFIRMED


def invoice_quantity(line: OrderLine, mode: QuantityMode) -> Any:
    """
    Raw quantity the invoice is computed against.

    Requested mode returns the value as entered (possibly blank or
    malformed); confirmed mode always returns a rounded number.
    """
    if mode is QuantityMode.REQUESTED:
        return line.requested_quantity
    return confirmed_quantity(line)


# ══════════════════════════════════════════════════════════════
# PROGRESS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineProgress:
    line_id: str
    name: str
    requested_quantity: Any
    confirmed_quantity: float


@dataclass(frozen=True)
class OrderProgress:
    """Read-only counting summary for headers and exports."""
    products_count: int
    total_items: int
    items_with_quantity: int
    total_quantity: float
    total_requested: float
    percent_complete: int
    lines: Tuple[LineProgress, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.total_requested > 0 and self.total_quantity >= self.total_requested


def progress(lines: Sequence[OrderLine]) -> OrderProgress:
    selected = [line for line in lines if line.product is not None]
    per_line = tuple(
        LineProgress(
            line_id=line.id,
            name=line.product.name,
            requested_quantity=line.requested_quantity,
            confirmed_quantity=confirmed_quantity(line),
        )
        for line in selected
    )
    total_quantity = sum2(row.confirmed_quantity for row in per_line)
    total_requested = sum2(to_number(line.requested_quantity) or 0.0 for line in selected)
    percent = 0
    if total_requested > 0:
        percent = int(math.floor(total_quantity / total_requested * 100 + 0.5))
    return OrderProgress(
        products_count=len(selected),
        total_items=sum(len(line.items) for line in selected),
        items_with_quantity=sum(
            1 for line in selected for item in line.items
            if (item.numeric_quantity or 0) > 0
        ),
        total_quantity=total_quantity,
        total_requested=total_requested,
        percent_complete=percent,
        lines=per_line,
    )
