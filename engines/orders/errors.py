"""
OrderDesk Orders Engine - Errors
===================================
Only a bulk import that fails its validation gate raises. Lookup
misses, stale realtime events and malformed numbers degrade to
"no change" or "partial result with a warning" instead.
"""

from __future__ import annotations

from typing import Sequence


class OrderEngineError(Exception):
    """Base class for order engine errors."""


class InvalidImportFormat(OrderEngineError):
    """
    Raised when bulk-import rows fail validation.

    The import is all-or-nothing at this gate: no line is touched.
    `rejections` holds one RowRejection per offending row.
    """

    def __init__(self, rejections: Sequence):
        self.rejections = tuple(rejections)
        rows = sorted({r.row_index for r in self.rejections})
        super().__init__(
            f"Invalid import format: {len(self.rejections)} problem(s) "
            f"in row(s) {', '.join(str(r) for r in rows)}."
        )


class DocumentNotOpenError(OrderEngineError):
    """Raised when a document operation runs with no document open."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: no document is open.")
