"""
OrderDesk Orders Engine - Document Service
=============================================
Single sequential owner of one open order document.

It loads the document, keeps its line list consistent while the user
edits, imports and scans, listens to realtime events through the sync
adapter, and saves the result back to the DocumentStore.

RULES:
- Only one document is open at a time; opening another closes the first
- Every line-list change goes through DocumentView.transform
- Closing the view cancels in-flight imports and discards their results
- User-facing outcomes are recorded as Notices and logged
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from core.config.rules import parse_tax_rules
from core.primitives.numeric import parse_scanned_input
from engines.invoicing.tax_cascade import InvoiceSummary, TaxCascadeCalculator
from engines.orders.bulk import BulkMergeResult, BulkReconciler
from engines.orders.errors import DocumentNotOpenError, InvalidImportFormat
from engines.orders.events import InMemoryOrderEventSource
from engines.orders.ledger import ItemLedger
from engines.orders.lines import (
    dedupe_lines,
    remove_line,
    select_product,
    set_line_items,
    update_line,
)
from engines.orders.models import (
    DocumentView,
    Item,
    LedgerEntry,
    OrderLine,
    OrderState,
    ProductRef,
    ref_id,
)
from engines.orders.ports import CatalogLookup, DocumentStore, EventSource
from engines.orders.quantities import OrderProgress, next_state, progress
from engines.orders.subscriptions import RealtimeSyncAdapter, apply_item_added

logger = logging.getLogger("orderdesk.orders")


# ══════════════════════════════════════════════════════════════
# NOTICES
# ══════════════════════════════════════════════════════════════

NOTICE_LEVELS = ("success", "info", "warning", "error")


@dataclass(frozen=True)
class Notice:
    level: str
    message: str

    def __post_init__(self):
        if self.level not in NOTICE_LEVELS:
            raise ValueError(f"Unknown notice level '{self.level}'.")


_LOG_LEVEL = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


# ══════════════════════════════════════════════════════════════
# SERVICE
# ══════════════════════════════════════════════════════════════

class OrderDocumentService:
    """
    Wires the order engine to its collaborators.

    Args:
        store:        DocumentStore
        catalog:      CatalogLookup used by bulk imports (optional)
        event_source: EventSource for realtime updates; an in-process
                      one is created when omitted
        calculator:   TaxCascadeCalculator (settings-driven by default)
    """

    def __init__(
        self,
        store: DocumentStore,
        catalog: Optional[CatalogLookup] = None,
        event_source: Optional[EventSource] = None,
        calculator: Optional[TaxCascadeCalculator] = None,
    ):
        self._store = store
        self._bulk = BulkReconciler(catalog)
        self._event_source = event_source or InMemoryOrderEventSource()
        self._sync = RealtimeSyncAdapter(self._event_source)
        self._calculator = calculator or TaxCascadeCalculator()
        self._ledgers: Dict[str, ItemLedger] = {}
        self._import_tasks: Set[asyncio.Future] = set()
        self._generation = 0
        self.fetched_products: List[ProductRef] = []
        self.notices: List[Notice] = []
        self.view: Optional[DocumentView] = None

    @property
    def event_source(self) -> EventSource:
        return self._event_source

    def _notify(self, level: str, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self.notices.append(notice)
        logger.log(_LOG_LEVEL[level], message)
        return notice

    def _require_view(self, operation: str) -> DocumentView:
        if self.view is None:
            raise DocumentNotOpenError(operation)
        return self.view

    # ── Lifecycle ──────────────────────────────────────────────

    async def open(self, document_id) -> Optional[DocumentView]:
        """Load and bind a document. Returns None if closed while loading."""
        self.close()
        generation = self._generation
        data = await self._store.get_order(document_id)
        if generation != self._generation:
            logger.info(f"Load of document {document_id} discarded: view changed")
            return None

        raw_lines = data.get("lines") or data.get("products") or ()
        lines = dedupe_lines([OrderLine.from_wire(raw) for raw in raw_lines])
        rules = parse_tax_rules(data.get("party_tax_config", data.get("partyTaxConfig")))
        self.view = DocumentView(
            document_id=str(document_id),
            lines=lines,
            state=OrderState.parse(data.get("state")),
            tax_rules=rules,
            warehouse=ref_id(data.get("warehouse")),
        )
        self._sync.bind(document_id, self.view)
        logger.info(
            f"Opened document {document_id} ({self.view.state.value}, "
            f"{sum(1 for line in lines if line.product is not None)} product line(s))"
        )
        return self.view

    def close(self) -> None:
        """Detach realtime handlers and drop every pending import."""
        self._generation += 1
        self._sync.unbind()
        for task in list(self._import_tasks):
            task.cancel()
        self._import_tasks.clear()
        self._ledgers.clear()
        if self.view is not None:
            logger.info(f"Closed document {self.view.document_id}")
        self.view = None

    # ── Lines ──────────────────────────────────────────────────

    def select_product(self, line_id: str, product: Any) -> List[OrderLine]:
        view = self._require_view("select a product")
        ref = ProductRef.from_wire(product)
        if ref is None:
            raise ValueError("A product is required.")
        return view.transform(lambda lines: select_product(lines, line_id, ref))

    def update_line(self, line_id: str, **changes: Any) -> List[OrderLine]:
        view = self._require_view("update a line")
        return view.transform(lambda lines: update_line(lines, line_id, **changes))

    def delete_line(self, line_id: str) -> List[OrderLine]:
        view = self._require_view("delete a line")
        self._ledgers.pop(line_id, None)
        return view.transform(lambda lines: remove_line(lines, line_id))

    # ── Items ──────────────────────────────────────────────────

    def _ledger(self, line: OrderLine) -> ItemLedger:
        ledger = self._ledgers.get(line.id)
        if ledger is None:
            ledger = self._ledgers[line.id] = ItemLedger()
        ledger.append_ghost(line.items)
        return ledger

    def entries(self, line_id: str) -> List[LedgerEntry]:
        """Items of the line followed by its ghost entry, if any."""
        view = self._require_view("list items")
        line = view.find_line(line_id)
        if line is None:
            return []
        return self._ledger(line).entries()

    def edit_item(self, line_id: str, entry_id: str, field_name: str, value: Any) -> List[Item]:
        """Edit an item or the line's ghost entry."""
        view = self._require_view("edit an item")
        line = view.find_line(line_id)
        if line is None:
            logger.debug(f"edit_item: line {line_id} not found")
            return []
        items = self._ledger(line).edit(entry_id, field_name, value)
        view.transform(lambda lines: set_line_items(lines, line_id, items))
        return items

    async def add_item(self, line_id: str, raw_input: Any) -> Optional[Item]:
        """Create an item on the server from scanner/keyboard input."""
        view = self._require_view("add an item")
        line = view.find_line(line_id)
        if line is None or line.product is None:
            self._notify("error", "Select a product before adding items.")
            return None

        scanned = parse_scanned_input(raw_input)
        if scanned.is_empty:
            return None

        product_id = line.product.id
        payload = {
            "product": product_id,
            "item": {
                "barcode": scanned.barcode,
                "quantity": scanned.quantity,
                "product": product_id,
                "warehouse": view.warehouse,
            },
        }
        try:
            stored = await self._store.add_item(view.document_id, payload)
        except Exception as exc:
            logger.error(f"add_item failed for document {view.document_id}: {exc}", exc_info=True)
            self._notify("error", "Could not add the item.")
            return None

        if not stored:
            self._notify("error", "Could not add the item: it does not exist or was already sold.")
            return None
        if self.view is not view:
            return None

        echo = {**stored, "product": stored.get("product") or product_id}
        view.transform(lambda lines: apply_item_added(lines, echo))
        item = Item.from_wire(echo)
        self._notify("success", f"{line.product.name or product_id}: item added.")
        return item

    async def remove_item(self, line_id: str, item_id: str) -> List[Item]:
        """Remove locally (removal wins over later edits) and on the server."""
        view = self._require_view("remove an item")
        line = view.find_line(line_id)
        if line is None:
            return []

        target = line.find_item(item_id)
        items = self._ledger(line).remove_item(item_id)
        view.transform(lambda lines: set_line_items(lines, line_id, items))

        if target is not None and target.is_persisted:
            try:
                await self._store.remove_item(view.document_id, target.server_id)
            except Exception as exc:
                logger.error(f"remove_item failed for document {view.document_id}: {exc}", exc_info=True)
                self._notify("error", "Could not remove the item on the server.")
        return items

    # ── Bulk import ────────────────────────────────────────────

    async def import_rows(self, rows: Iterable[Any], *, ensure_empty_row: bool = True) -> Optional[BulkMergeResult]:
        """
        Import spreadsheet rows into the open document.

        Raises:
            InvalidImportFormat: a row failed validation; nothing changed.

        Returns None when the view was closed or switched before the
        catalog lookups finished.
        """
        view = self._require_view("import rows")
        try:
            valid_rows = self._bulk.validate(rows)
        except InvalidImportFormat:
            self._notify("error", "The file format is not valid.")
            raise

        generation = self._generation
        task = asyncio.ensure_future(
            self._bulk.resolve(valid_rows, view.lines, fetched_products=self.fetched_products)
        )
        self._import_tasks.add(task)
        try:
            resolution = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.info("Bulk import discarded: document closed")
                return None
            raise
        finally:
            self._import_tasks.discard(task)

        if generation != self._generation or self.view is not view:
            logger.info("Bulk import discarded: document changed")
            return None

        result = self._bulk.apply(resolution, view.lines, ensure_empty_row=ensure_empty_row)
        if result.missing:
            self._notify("error", f"Products not found: {', '.join(result.missing)}")
        if not result.applied:
            if valid_rows:
                self._notify("error", "No imported item could be matched to a product.")
            return result

        view.transform(lambda _lines: result.lines)
        self._notify("success", f"{result.added_items} item(s) added to the order.")
        return result

    # ── Save / summaries ───────────────────────────────────────

    def build_patch(self, state: Optional[OrderState] = None) -> dict:
        view = self._require_view("build a patch")
        patch = {
            "lines": [
                line.to_patch(view.warehouse)
                for line in view.lines
                if line.product is not None
            ],
        }
        if state is not None:
            patch["state"] = state.value
        return patch

    async def save(self) -> bool:
        """Persist the lines; a fully counted draft is confirmed on the way."""
        view = self._require_view("save")
        state = next_state(view.state, view.lines)
        patch = self.build_patch(state)
        try:
            await self._store.update_order(view.document_id, patch)
        except Exception as exc:
            logger.error(f"update_order failed for document {view.document_id}: {exc}", exc_info=True)
            self._notify("error", "Could not update the document.")
            return False

        # realtime events may have advanced the state during the store call
        if state.rank > view.state.rank:
            logger.info(f"Document {view.document_id}: {view.state.value} -> {state.value}")
            view.state = state
        self._notify("success", "Document updated.")
        return True

    def invoice(self) -> InvoiceSummary:
        view = self._require_view("compute the invoice")
        summary = self._calculator.compute_for_state(view.lines, view.tax_rules, view.state)
        for warning in summary.warnings:
            self.notices.append(Notice(level="warning", message=warning))
        return summary

    def progress(self) -> OrderProgress:
        return progress(self._require_view("compute progress").lines)

    def set_fetched_products(self, products: Iterable[Any]) -> None:
        """Catalog page already on screen; bulk imports resolve against it first."""
        self.fetched_products = [
            p for p in (ProductRef.from_wire(raw) for raw in products or ()) if p is not None
        ]

    def clear_notices(self) -> List[Notice]:
        notices, self.notices = self.notices, []
        return notices


__all__ = ["Notice", "OrderDocumentService"]
