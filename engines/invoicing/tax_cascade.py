"""
OrderDesk Invoicing Engine - Tax Cascade
===========================================
Computes subtotal, taxes, retentions and total for an order.

Three passes, in this order:
1. Preliminary subtotal: price * effective quantity per line, with
   IVA backed out of IVA-inclusive prices. Only used to gate
   product-depending-subtotal rules.
2. Per-line pass: each applicable rule contributes round2(base * rate)
   per line. When the line is IVA-inclusive and the summed applicable
   rate matches the IVA rate, base = gross - line tax.
3. Retentions: subtotal rules gated on the final invoice subtotal.

RULES:
- Inactive rules (should_appear = False) and self-retention rules never
  touch totals
- Malformed numbers contribute 0 and add a warning, nothing raises
- Taxes are listed in display priority order; others keep input order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.config.rules import ApplicationType, TaxRule, TaxUse, parse_tax_rules
from core.config.settings import get_setting
from core.primitives.numeric import is_blank, round2, to_number
from engines.orders.models import OrderLine, OrderState
from engines.orders.quantities import (
    QuantityMode,
    invoice_quantity,
    quantity_mode_for,
)

logger = logging.getLogger("orderdesk.invoicing")


# ══════════════════════════════════════════════════════════════
# RESULT TYPES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TaxLine:
    id: str
    name: str
    amount: float
    use: TaxUse

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "amount": self.amount, "use": self.use.value}


@dataclass(frozen=True)
class LineDetail:
    """Per-line row of the invoice table."""
    line_id: str
    name: str
    unit_price: float
    quantity: float
    base: float

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "base": self.base,
        }


@dataclass(frozen=True)
class InvoiceSummary:
    """
    Read-only result handed to renderers.

    Fields:
        subtotal:             Final invoice subtotal (rounded)
        taxes:                Product taxes and retentions, display order
        total:                subtotal +/- every listed tax (rounded)
        per_line:             Line detail table
        warnings:             Data-quality findings, never fatal
        preliminary_subtotal: Pass-one subtotal used for gating
    """
    subtotal: float
    taxes: Tuple[TaxLine, ...]
    total: float
    per_line: Tuple[LineDetail, ...] = ()
    warnings: Tuple[str, ...] = ()
    preliminary_subtotal: float = 0.0

    def tax_amount(self, tax_id: str) -> Optional[float]:
        for tax in self.taxes:
            if tax.id == tax_id:
                return tax.amount
        return None

    def summary_rows(self) -> List[dict]:
        """Subtotal, every tax, then total, as the invoice footer shows them."""
        return [
            {"id": "subtotal", "name": "Subtotal", "amount": self.subtotal},
            *({"id": t.id, "name": t.name, "amount": t.amount} for t in self.taxes),
            {"id": "total", "name": "Total", "amount": self.total},
        ]

    def to_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "taxes": [t.to_dict() for t in self.taxes],
            "total": self.total,
            "per_line": [d.to_dict() for d in self.per_line],
            "warnings": list(self.warnings),
        }


@dataclass
class _LineInput:
    line: OrderLine
    gross: float
    effective_quantity: float
    quantity: float
    price: float


@dataclass
class _Accumulator:
    amounts: Dict[str, float] = field(default_factory=dict)

    def add(self, rule_id: str, amount: float) -> None:
        self.amounts[rule_id] = self.amounts.get(rule_id, 0.0) + amount


# ══════════════════════════════════════════════════════════════
# CALCULATOR
# ══════════════════════════════════════════════════════════════

class TaxCascadeCalculator:
    """
    Stateless calculator; configuration is read once at construction.

    Arguments left as None come from the ORDERDESK settings.
    """

    def __init__(
        self,
        iva_rate: Optional[float] = None,
        iva_match_tolerance: Optional[float] = None,
        display_priority: Optional[Sequence[str]] = None,
    ):
        self.iva_rate = float(get_setting("IVA_RATE") if iva_rate is None else iva_rate)
        self.iva_match_tolerance = float(
            get_setting("IVA_MATCH_TOLERANCE") if iva_match_tolerance is None
            else iva_match_tolerance
        )
        self.display_priority = tuple(
            get_setting("TAX_DISPLAY_PRIORITY") if display_priority is None
            else display_priority
        )
        self._iva_divisor = round(1 + self.iva_rate, 12)

    def compute_for_state(self, lines: Sequence[OrderLine], rules: Iterable[Any], state: Any) -> InvoiceSummary:
        """Draft documents invoice requested quantities, later states confirmed ones."""
        return self.compute(lines, rules, quantity_mode_for(OrderState.parse(state)))

    def compute(
        self,
        lines: Sequence[OrderLine],
        rules: Iterable[Any],
        mode: QuantityMode = QuantityMode.CONFIRMED,
    ) -> InvoiceSummary:
        warnings: List[str] = []
        active = self._active_rules(parse_tax_rules(rules), warnings)
        inputs = self._line_inputs(lines, mode, warnings)

        # Pass 1: preliminary subtotal, only for gating.
        preliminary = sum(self._initial_base(entry) for entry in inputs)
        conditional = {
            rule.id for rule in active
            if rule.application_type is ApplicationType.PRODUCT_DEPENDING_SUBTOTAL
            and rule.applies_to(preliminary)
        }
        per_line_rules = [
            rule for rule in active
            if rule.application_type is ApplicationType.PRODUCT
            or (rule.application_type is ApplicationType.PRODUCT_DEPENDING_SUBTOTAL
                and rule.id in conditional)
        ]

        # Pass 2: per-line taxes.
        accumulated = _Accumulator()
        details: List[LineDetail] = []
        subtotal = 0.0
        for entry in inputs:
            base = self._initial_base(entry)
            line_tax = 0.0
            line_rate = 0.0
            for rule in per_line_rules:
                value = round2(base * rule.amount)
                accumulated.add(rule.id, value)
                line_tax += value
                line_rate += rule.amount

            if entry.line.iva_included and abs(line_rate - self.iva_rate) < self.iva_match_tolerance:
                base = entry.gross - line_tax

            subtotal += base
            details.append(self._detail(entry, base))

        subtotal = round2(subtotal)

        # Pass 3: retentions on the final subtotal.
        retentions = _Accumulator()
        for rule in active:
            if rule.application_type is ApplicationType.SUBTOTAL and rule.applies_to(subtotal):
                retentions.add(rule.id, round2(subtotal * rule.amount))

        taxes = self._tax_lines(active, accumulated, retentions)
        total = subtotal
        for tax in taxes:
            total = tax.use.apply(total, tax.amount)
        total = round2(total)

        for warning in warnings:
            logger.warning(warning)

        return InvoiceSummary(
            subtotal=subtotal,
            taxes=self._sorted_for_display(taxes),
            total=total,
            per_line=tuple(details),
            warnings=tuple(warnings),
            preliminary_subtotal=round2(preliminary),
        )

    # ── Inputs ─────────────────────────────────────────────────

    @staticmethod
    def _active_rules(rules: Sequence[TaxRule], warnings: List[str]) -> List[TaxRule]:
        active = []
        for rule in rules:
            if not rule.should_appear:
                continue
            warnings.extend(rule.issues)
            if rule.application_type is None or not rule.is_active:
                continue
            active.append(rule)
        return active

    def _line_inputs(
        self,
        lines: Sequence[OrderLine],
        mode: QuantityMode,
        warnings: List[str],
    ) -> List[_LineInput]:
        inputs = []
        for line in lines:
            if line.product is None:
                continue
            raw_quantity = invoice_quantity(line, mode)
            if is_blank(raw_quantity):
                continue

            label = line.product.name or line.product.id
            quantity = self._number(raw_quantity, f"quantity of '{label}'", warnings)
            price = self._number(line.price, f"price of '{label}'", warnings)
            percentage = line.invoice_percentage
            if is_blank(percentage):
                percentage = get_setting("DEFAULT_INVOICE_PERCENTAGE")
            share = self._number(percentage, f"invoice percentage of '{label}'", warnings) / 100

            if mode is QuantityMode.CONFIRMED:
                for item in line.items:
                    if item.has_quantity and item.numeric_quantity is None:
                        warnings.append(
                            f"Item {item.item_number or item.id} of '{label}' has a "
                            f"non-numeric quantity {item.quantity!r}; counted as 0."
                        )

            effective = quantity * share
            inputs.append(_LineInput(
                line=line,
                gross=price * effective,
                effective_quantity=effective,
                quantity=quantity,
                price=price,
            ))
        return inputs

    @staticmethod
    def _number(value: Any, what: str, warnings: List[str]) -> float:
        if is_blank(value):
            return 0.0
        number = to_number(value)
        if number is None:
            warnings.append(f"Non-numeric {what}: {value!r}; counted as 0.")
            return 0.0
        return number

    def _initial_base(self, entry: _LineInput) -> float:
        if entry.line.iva_included:
            return entry.gross / self._iva_divisor
        return entry.gross

    def _detail(self, entry: _LineInput, base: float) -> LineDetail:
        unit_price = entry.price / self._iva_divisor if entry.line.iva_included else entry.price
        product = entry.line.product
        return LineDetail(
            line_id=entry.line.id,
            name=product.name if product else "",
            unit_price=round2(unit_price),
            quantity=round2(entry.quantity),
            base=round2(base),
        )

    # ── Output ─────────────────────────────────────────────────

    @staticmethod
    def _tax_lines(
        rules: Sequence[TaxRule],
        accumulated: _Accumulator,
        retentions: _Accumulator,
    ) -> List[TaxLine]:
        taxes: List[TaxLine] = []
        listed = set()
        for rule in rules:
            amount = accumulated.amounts.get(rule.id)
            if amount and rule.id not in listed:
                listed.add(rule.id)
                taxes.append(TaxLine(id=rule.id, name=rule.name, amount=round2(amount), use=rule.use))
        retained = set()
        for rule in rules:
            if rule.application_type is not ApplicationType.SUBTOTAL or rule.id in retained:
                continue
            if rule.id in retentions.amounts:
                retained.add(rule.id)
                taxes.append(TaxLine(
                    id=rule.id,
                    name=rule.name,
                    amount=round2(retentions.amounts[rule.id]),
                    use=rule.use,
                ))
        return taxes

    def _sorted_for_display(self, taxes: Sequence[TaxLine]) -> Tuple[TaxLine, ...]:
        priority = {name: index for index, name in enumerate(self.display_priority)}
        fallback = len(priority)
        return tuple(sorted(taxes, key=lambda tax: priority.get(tax.name, fallback)))
