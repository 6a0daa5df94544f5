"""
OrderDesk Orders Engine - Bulk Reconciler
============================================
Merges spreadsheet/scanner rows into an order's lines.

Flow:
1. Validate every row; any rejection aborts with InvalidImportFormat
2. Group rows by normalized identifier (id, else name, else code)
3. Resolve each group: selected lines, fetched catalog page, then
   CatalogLookup (by identifier, then by name)
4. Report unresolved groups together in `missing`
5. Append items to existing lines or insert new lines before the ghost
6. Deduplicate by product and re-append the ghost row if requested

RULES:
- Local matches never trigger a lookup
- A failed lookup counts as a miss, it never aborts the import
- Resolution awaits; the merge itself is one synchronous step
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.config.settings import get_setting
from core.primitives.numeric import is_blank, sum2, to_number
from engines.orders.errors import InvalidImportFormat
from engines.orders.lines import dedupe_lines, find_line_for_product
from engines.orders.models import Item, OrderLine, ProductRef, new_client_id
from engines.orders.policies import validate_bulk_rows
from engines.orders.ports import CatalogLookup

logger = logging.getLogger("orderdesk.orders")


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


# ══════════════════════════════════════════════════════════════
# INPUT / OUTPUT SHAPES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BulkRow:
    product_id: str = ""
    code: str = ""
    name: str = ""
    quantity: Any = None
    lot_number: str = ""
    item_number: str = ""

    @property
    def identifier(self) -> str:
        return self.product_id or self.code

    @property
    def group_key(self) -> str:
        return (self.product_id or self.name or self.code).strip().lower()

    @classmethod
    def from_wire(cls, data: Any) -> "BulkRow":
        if isinstance(data, BulkRow):
            return data
        return cls(
            product_id=_clean(data.get("productId", data.get("product_id"))),
            code=_clean(data.get("code", data.get("CODE"))),
            name=_clean(data.get("name")),
            quantity=data.get("quantity"),
            lot_number=_clean(data.get("lotNumber", data.get("lot_number", data.get("lot")))),
            item_number=_clean(data.get("itemNumber", data.get("item_number"))),
        )

    def to_item(self) -> Item:
        return Item(
            id=new_client_id(),
            quantity=self.quantity,
            lot_number=self.lot_number,
            item_number=self.item_number,
        )


@dataclass
class RowGroup:
    key: str
    name: str
    rows: List[BulkRow] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedImport:
    """Rows grouped per resolved product, plus the groups nobody knew."""
    matched: Tuple[Tuple[ProductRef, Tuple[BulkRow, ...]], ...]
    missing: Tuple[str, ...]


@dataclass(frozen=True)
class BulkMergeResult:
    lines: List[OrderLine]
    missing: Tuple[str, ...] = ()
    added_items: int = 0
    matched_products: int = 0

    @property
    def applied(self) -> bool:
        return self.matched_products > 0


# ══════════════════════════════════════════════════════════════
# RECONCILER
# ══════════════════════════════════════════════════════════════

class BulkReconciler:
    """
    Turns raw import rows into a new line list.

    `catalog` is any CatalogLookup; without one only local products
    (selected lines and the fetched page) can resolve.
    """

    def __init__(self, catalog: Optional[CatalogLookup] = None):
        self._catalog = catalog

    # ── Step 1: validation gate ───────────────────────────────

    def validate(self, raw_rows: Iterable[Any]) -> List[BulkRow]:
        rows = [BulkRow.from_wire(raw) for raw in raw_rows or ()]
        rejections = validate_bulk_rows(rows)
        if rejections:
            logger.warning(f"Bulk import rejected: {len(rejections)} invalid row(s)")
            raise InvalidImportFormat(rejections)
        return rows

    # ── Steps 2-4: grouping and resolution ─────────────────────

    @staticmethod
    def group(rows: Sequence[BulkRow]) -> List[RowGroup]:
        groups: Dict[str, RowGroup] = {}
        for row in rows:
            key = row.group_key
            if not key:
                continue
            if key not in groups:
                groups[key] = RowGroup(key=key, name=row.name)
            groups[key].rows.append(row)
        return list(groups.values())

    @staticmethod
    def find_local(
        group: RowGroup,
        lines: Sequence[OrderLine],
        fetched_products: Sequence[ProductRef] = (),
    ) -> Optional[ProductRef]:
        candidates = [line.product for line in lines if line.product is not None]
        candidates.extend(fetched_products)
        for product in candidates:
            if product.matches(group.key, group.name):
                return product
        return None

    async def _lookup(self, group: RowGroup) -> Optional[ProductRef]:
        if self._catalog is None:
            return None
        queries = [group.key]
        if group.name and group.name.strip().lower() != group.key:
            queries.append(group.name)
        for query in queries:
            try:
                found = await self._catalog.find_product(query)
            except Exception as exc:
                logger.warning(f"Catalog lookup for '{query}' failed: {exc}")
                continue
            product = ProductRef.from_wire(found)
            if product is not None:
                return product
        return None

    async def resolve(
        self,
        rows: Sequence[BulkRow],
        lines: Sequence[OrderLine],
        *,
        fetched_products: Iterable[Any] = (),
    ) -> ResolvedImport:
        fetched = [p for p in (ProductRef.from_wire(raw) for raw in fetched_products) if p is not None]
        groups = self.group(rows)

        resolved: List[Optional[ProductRef]] = [
            self.find_local(group, lines, fetched) for group in groups
        ]
        pending = [i for i, product in enumerate(resolved) if product is None]
        if pending:
            looked_up = await asyncio.gather(*(self._lookup(groups[i]) for i in pending))
            for index, product in zip(pending, looked_up):
                resolved[index] = product

        matched: Dict[str, Tuple[ProductRef, List[BulkRow]]] = {}
        missing: List[str] = []
        for group, product in zip(groups, resolved):
            if product is None:
                missing.append(group.key or group.name or "-")
                continue
            key = product.key
            if key in matched:
                matched[key][1].extend(group.rows)
            else:
                matched[key] = (product, list(group.rows))

        if missing:
            logger.info(f"Bulk import: products not found: {', '.join(missing)}")

        return ResolvedImport(
            matched=tuple((product, tuple(rows)) for product, rows in matched.values()),
            missing=tuple(missing),
        )

    # ── Steps 5-7: merge ───────────────────────────────────────

    def apply(
        self,
        resolution: ResolvedImport,
        lines: Sequence[OrderLine],
        *,
        ensure_empty_row: bool = True,
    ) -> BulkMergeResult:
        if not resolution.matched:
            return BulkMergeResult(lines=list(lines), missing=resolution.missing)

        updated = list(lines)
        added = 0
        for product, rows in resolution.matched:
            new_items = tuple(row.to_item() for row in rows)
            total = sum2(to_number(row.quantity) or 0.0 for row in rows)
            added += len(new_items)

            index = find_line_for_product(updated, product)
            if index != -1:
                existing = updated[index]
                updated[index] = replace(
                    existing,
                    product=product,
                    requested_quantity=(
                        total if is_blank(existing.requested_quantity)
                        else existing.requested_quantity
                    ),
                    items=existing.items + new_items,
                )
                continue

            line = OrderLine(
                id=new_client_id(),
                product=product,
                price=0,
                iva_included=False,
                invoice_percentage=get_setting("DEFAULT_INVOICE_PERCENTAGE"),
                requested_quantity=total,
                items=new_items,
            )
            ghost_index = next((i for i, candidate in enumerate(updated) if candidate.is_ghost), len(updated))
            updated.insert(ghost_index, line)

        logger.info(
            f"Bulk import: {added} item(s) added across {len(resolution.matched)} product(s)"
        )
        return BulkMergeResult(
            lines=dedupe_lines(updated, ensure_empty_row=ensure_empty_row),
            missing=resolution.missing,
            added_items=added,
            matched_products=len(resolution.matched),
        )

    async def merge(
        self,
        raw_rows: Iterable[Any],
        lines: Sequence[OrderLine],
        *,
        fetched_products: Iterable[Any] = (),
        ensure_empty_row: bool = True,
    ) -> BulkMergeResult:
        """Validate, resolve and merge in one call."""
        rows = self.validate(raw_rows)
        resolution = await self.resolve(rows, lines, fetched_products=fetched_products)
        return self.apply(resolution, lines, ensure_empty_row=ensure_empty_row)
