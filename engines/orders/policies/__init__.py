"""
OrderDesk Orders Engine - Policies
=====================================
Validation policies for bulk-import rows.

A policy returns a RowRejection when the row is unusable, None when it
passes. validate_bulk_rows runs every policy on every row and collects
all rejections so the caller can report them in one go.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from core.primitives.numeric import is_blank, to_number


# ══════════════════════════════════════════════════════════════
# ROW REJECTION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RowRejection:
    """
    Why a bulk-import row was refused.

    Fields:
        code:        Machine-readable code (e.g. 'QUANTITY_REQUIRED').
        message:     Human-readable explanation.
        policy_name: Policy that produced the rejection.
        row_index:   Zero-based position of the row in the import.
    """

    code: str
    message: str
    policy_name: str
    row_index: int

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")
        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
            "row_index": self.row_index,
        }


# ══════════════════════════════════════════════════════════════
# POLICIES
# ══════════════════════════════════════════════════════════════

def bulk_row_quantity_required_policy(row, row_index: int) -> Optional[RowRejection]:
    """Quantity must be present, numeric and non-zero."""
    if is_blank(row.quantity):
        return RowRejection(
            code="QUANTITY_REQUIRED",
            message=f"Row {row_index + 1} has no quantity.",
            policy_name="bulk_row_quantity_required_policy",
            row_index=row_index,
        )

    quantity = to_number(row.quantity)
    if quantity is None or quantity == 0:
        return RowRejection(
            code="QUANTITY_INVALID",
            message=f"Row {row_index + 1} has an invalid quantity {row.quantity!r}.",
            policy_name="bulk_row_quantity_required_policy",
            row_index=row_index,
        )

    return None


def bulk_row_identifier_required_policy(row, row_index: int) -> Optional[RowRejection]:
    """A row needs a product id, a code or a name."""
    if row.identifier or row.name:
        return None
    return RowRejection(
        code="IDENTIFIER_REQUIRED",
        message=f"Row {row_index + 1} has neither a product identifier nor a name.",
        policy_name="bulk_row_identifier_required_policy",
        row_index=row_index,
    )


BULK_ROW_POLICIES: Sequence[Callable] = (
    bulk_row_quantity_required_policy,
    bulk_row_identifier_required_policy,
)


def validate_bulk_rows(rows: Sequence, policies: Sequence[Callable] = BULK_ROW_POLICIES) -> List[RowRejection]:
    rejections = []
    for index, row in enumerate(rows):
        for policy in policies:
            rejection = policy(row, index)
            if rejection is not None:
                rejections.append(rejection)
    return rejections
