"""
OrderDesk Orders Engine - Data Model
=======================================
Order lines, items, ghost entries and the document view they live in.

RULES:
- At most one OrderLine per distinct product within an order
- A line with no product and no items is a ghost row; at most one
  exists and it sits at the tail of the list
- Items are owned by exactly one line; an item's `id` never changes
  once created, a server echo only fills `server_id`
- GhostItem is its own variant, never a flagged Item

Wire helpers (from_wire / to_patch) translate the Document Store's
camelCase payloads. Everything else here is plain data.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from core.primitives.numeric import is_blank, to_number


def new_client_id() -> str:
    return str(uuid.uuid4())


def ref_id(value: Any) -> Optional[str]:
    """Id of a relation that may arrive expanded (dict) or as a bare id."""
    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        inner = value.get("id")
        return None if inner is None else str(inner)
    return str(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


# ══════════════════════════════════════════════════════════════
# ORDER STATE
# ══════════════════════════════════════════════════════════════

class OrderState(Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: Any) -> "OrderState":
        if isinstance(raw, OrderState):
            return raw
        key = str(raw or "").strip().lower()
        if key == "canceled":
            return cls.CANCELLED
        try:
            return cls(key)
        except ValueError:
            return cls.DRAFT

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {
    OrderState.DRAFT: 0,
    OrderState.CONFIRMED: 1,
    OrderState.COMPLETED: 2,
    OrderState.CANCELLED: 3,
}


# ══════════════════════════════════════════════════════════════
# PRODUCT REFERENCE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProductRef:
    """Catalog product as seen by an order."""
    id: str
    code: str = ""
    name: str = ""
    unit: str = ""
    barcode: str = ""

    @property
    def key(self) -> str:
        """Identity used for deduplication (id, else code), lower-cased."""
        return (self.id or self.code).strip().lower()

    def matches(self, identifier: Optional[str], name: Optional[str] = None) -> bool:
        """Case-insensitive match on id/code, or on exact name."""
        target = (identifier or "").strip().lower()
        if target and target in (self.id.strip().lower(), self.code.strip().lower()):
            return True
        if name and name.strip():
            return self.name.strip().lower() == name.strip().lower()
        return False

    def same_product(self, other: "ProductRef") -> bool:
        mine = {k for k in (self.id.lower(), self.code.lower()) if k}
        theirs = {k for k in (other.id.lower(), other.code.lower()) if k}
        return bool(mine & theirs)

    @classmethod
    def from_wire(cls, data: Any) -> Optional["ProductRef"]:
        """Normalize a catalog payload; attributes are flattened."""
        if data is None or data == "":
            return None
        if isinstance(data, ProductRef):
            return data
        if not isinstance(data, Mapping):
            return cls(id=str(data))
        merged = {**(data.get("attributes") or {}), **data}
        return cls(
            id=_text(merged.get("id")),
            code=_text(merged.get("code")),
            name=_text(merged.get("name")),
            unit=_text(merged.get("unit")),
            barcode=_text(merged.get("barcode")),
        )


# ══════════════════════════════════════════════════════════════
# ITEMS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Item:
    """
    One serialized/lotted unit (or quantity slice) of a line.

    quantity keeps what the user typed ("" while empty); numeric
    interpretation is left to the reconcilers.
    """
    id: str
    quantity: Any = ""
    lot_number: str = ""
    item_number: str = ""
    barcode: Optional[str] = None
    parent_item: Optional[str] = None
    warehouse: Optional[str] = None
    server_id: Optional[str] = None

    @property
    def has_quantity(self) -> bool:
        return not is_blank(self.quantity)

    @property
    def numeric_quantity(self) -> Optional[float]:
        return to_number(self.quantity)

    @property
    def is_persisted(self) -> bool:
        return self.server_id is not None

    @property
    def is_derived(self) -> bool:
        """Return/transformation item pointing back at its source unit."""
        return self.parent_item is not None

    def matches(self, identifier: Any) -> bool:
        if identifier is None:
            return False
        key = str(identifier)
        return key == self.id or key == self.server_id

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Item":
        """Build from a Document Store item; its id is the server id."""
        raw_id = data.get("id")
        server_id = None if raw_id is None else str(raw_id)
        quantity = data.get("currentQuantity", data.get("quantity", ""))
        return cls(
            id=server_id or new_client_id(),
            quantity="" if quantity is None else quantity,
            lot_number=_text(data.get("lotNumber", data.get("lot"))),
            item_number=_text(data.get("itemNumber")),
            barcode=data.get("barcode"),
            parent_item=ref_id(data.get("parentItem")),
            warehouse=ref_id(data.get("warehouse")),
            server_id=server_id,
        )

    def to_patch(self, warehouse: Optional[str] = None) -> dict:
        return {
            "id": self.server_id,
            "quantity": to_number(self.quantity),
            "lot": self.lot_number,
            "itemNumber": self.item_number,
            "parentItem": self.parent_item,
            "warehouse": warehouse or self.warehouse,
        }


@dataclass(frozen=True)
class GhostItem:
    """
    Placeholder entry shown after the last item for inline entry.

    It carries defaults only; editing any field turns it into an Item
    with the same id.
    """
    id: str
    lot_number: str = ""
    item_number: str = ""

    @property
    def quantity(self) -> str:
        return ""

    def materialize(self, **changes: Any) -> Item:
        item = Item(id=self.id, lot_number=self.lot_number, item_number=self.item_number)
        return replace(item, **changes)


LedgerEntry = Union[Item, GhostItem]


# ══════════════════════════════════════════════════════════════
# ORDER LINE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class OrderLine:
    """
    One product row of an order.

    Fields:
        id:                 Stable client-generated row id
        product:            Selected product, None on the ghost row
        price:              Unit price as entered
        iva_included:       Price already embeds IVA
        invoice_percentage: Share of the quantity that is invoiced (0-100)
        requested_quantity: Quantity the customer asked for
        items:              Physical units counted against this line
    """
    id: str
    product: Optional[ProductRef] = None
    price: Any = ""
    iva_included: bool = False
    invoice_percentage: Any = 100
    requested_quantity: Any = None
    items: Tuple[Item, ...] = ()

    @property
    def is_ghost(self) -> bool:
        return self.product is None and not any(i.has_quantity for i in self.items)

    @property
    def product_key(self) -> Optional[str]:
        if self.product is None:
            return None
        return self.product.key or None

    def find_item(self, identifier: Any) -> Optional[Item]:
        for item in self.items:
            if item.matches(identifier):
                return item
        return None

    def with_items(self, items) -> "OrderLine":
        return replace(self, items=tuple(items))

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "OrderLine":
        raw_id = data.get("id")
        return cls(
            id=new_client_id() if raw_id is None else str(raw_id),
            product=ProductRef.from_wire(data.get("product")),
            price=data.get("price", ""),
            iva_included=bool(data.get("ivaIncluded", False)),
            invoice_percentage=data.get("invoicePercentage", 100),
            requested_quantity=data.get("requestedQuantity"),
            items=tuple(Item.from_wire(i) for i in data.get("items") or ()),
        )

    def to_patch(self, warehouse: Optional[str] = None) -> dict:
        """Partial-update payload; zero and empty quantities are left out."""
        kept = [
            item for item in self.items
            if item.has_quantity and item.numeric_quantity != 0
        ]
        return {
            "product": self.product.id if self.product else None,
            "requestedQuantity": self.requested_quantity,
            "price": self.price,
            "ivaIncluded": self.iva_included,
            "invoicePercentage": self.invoice_percentage,
            "items": [item.to_patch(warehouse) for item in kept],
        }


# ══════════════════════════════════════════════════════════════
# DOCUMENT VIEW
# ══════════════════════════════════════════════════════════════

@dataclass
class DocumentView:
    """
    In-memory state of the document currently being edited.

    Only the owning service (and the sync adapter it binds) mutate it,
    always through transform() so every change is one step.
    """
    document_id: str
    lines: List[OrderLine] = field(default_factory=list)
    state: OrderState = OrderState.DRAFT
    tax_rules: tuple = ()
    warehouse: Optional[str] = None
    revision: int = 0

    def transform(self, fn: Callable[[List[OrderLine]], List[OrderLine]]) -> List[OrderLine]:
        self.lines = list(fn(list(self.lines)))
        self.revision += 1
        return self.lines

    def find_line(self, line_id: str) -> Optional[OrderLine]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None
