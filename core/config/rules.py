"""
OrderDesk Core Config - Party Tax Rules
==========================================
Tax rules arrive as data attached to the invoiced party (customer or
supplier), never hardcoded in engine logic.

The rule shape is a closed set of variants:
- ApplicationType: product | product-depending-subtotal | subtotal | self-retention
- TaxUse:          increment | decrement
- ThresholdCondition: > | >= | < | <= | ==

Wire payloads are parsed leniently. A rule the engine cannot interpret
is kept (so callers can report it) with application_type=None and a
human-readable entry in `issues`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from core.primitives.numeric import to_number


# ══════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════

class ApplicationType(Enum):
    PRODUCT = "product"                                        # every line
    PRODUCT_DEPENDING_SUBTOTAL = "product-depending-subtotal"  # every line, gated on subtotal
    SUBTOTAL = "subtotal"                                      # retention on final subtotal
    SELF_RETENTION = "self-retention"                          # informational only


class TaxUse(Enum):
    INCREMENT = "increment"
    DECREMENT = "decrement"

    def apply(self, total: float, amount: float) -> float:
        if self is TaxUse.DECREMENT:
            return total - amount
        return total + amount


class ThresholdCondition(Enum):
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="

    @classmethod
    def parse(cls, raw: Any) -> "ThresholdCondition":
        """Parse a symbol or word form. Unknown or missing means >=."""
        if isinstance(raw, ThresholdCondition):
            return raw
        key = str(raw or "").strip()
        return _CONDITION_ALIASES.get(key, cls.GTE)

    def holds(self, value: float, threshold: float) -> bool:
        if self is ThresholdCondition.GT:
            return value > threshold
        if self is ThresholdCondition.LT:
            return value < threshold
        if self is ThresholdCondition.LTE:
            return value <= threshold
        if self is ThresholdCondition.EQ:
            return value == threshold
        return value >= threshold


_CONDITION_ALIASES = {
    ">": ThresholdCondition.GT,
    ">=": ThresholdCondition.GTE,
    "<": ThresholdCondition.LT,
    "<=": ThresholdCondition.LTE,
    "==": ThresholdCondition.EQ,
    "===": ThresholdCondition.EQ,
    "greaterThan": ThresholdCondition.GT,
    "greaterThanOrEqualTo": ThresholdCondition.GTE,
    "lessThan": ThresholdCondition.LT,
    "lessThanOrEqualTo": ThresholdCondition.LTE,
    "equalTo": ThresholdCondition.EQ,
}


def check_threshold(
    value: float,
    threshold: float,
    condition: Union[ThresholdCondition, str, None] = None,
) -> bool:
    """Evaluate `value <condition> threshold`; default condition is >=."""
    return ThresholdCondition.parse(condition).holds(value, threshold)


# ══════════════════════════════════════════════════════════════
# TAX RULE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TaxRule:
    """
    One tax configured for a party.

    Fields:
        id:                  Rule identifier (taxes accumulate per id)
        name:                Display name, e.g. "IVA - 19%"
        amount:              Rate, 0.19 means 19%
        application_type:    Variant, None when unrecognized
        use:                 increment adds to the total, decrement subtracts
        threshold:           Comparison threshold (0 when absent)
        threshold_condition: Comparison operator
        should_appear:       False disables the rule entirely
        raw_application_type: Value as received, kept for reporting
        issues:              Data-integrity findings from parsing
    """
    id: str
    name: str
    amount: float
    application_type: Optional[ApplicationType]
    use: TaxUse = TaxUse.INCREMENT
    threshold: float = 0.0
    threshold_condition: ThresholdCondition = ThresholdCondition.GTE
    should_appear: bool = True
    raw_application_type: str = ""
    issues: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.amount <= 1:
            raise ValueError(f"Tax rate must be between 0 and 1, got {self.amount}.")

    @property
    def is_active(self) -> bool:
        return self.should_appear and self.application_type is not ApplicationType.SELF_RETENTION

    def applies_to(self, value: float) -> bool:
        return self.threshold_condition.holds(value, self.threshold)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "TaxRule":
        """
        Build a rule from a backend payload.

        Accepts camelCase keys and the backend's historical spellings
        ("treshold", "tresholdCondition", "tresholdContidion").
        """
        issues = []
        rule_id = str(data.get("id", "") or data.get("name", ""))
        name = str(data.get("name", "") or rule_id)

        raw_type = str(data.get("applicationType", data.get("application_type", "")) or "")
        try:
            application_type = ApplicationType(raw_type)
        except ValueError:
            application_type = None
            issues.append(f"Tax '{name}' has unrecognized applicationType '{raw_type}'.")

        rate = to_number(data.get("amount"))
        if rate is None or not 0 <= rate <= 1:
            issues.append(f"Tax '{name}' has invalid rate {data.get('amount')!r}.")
            rate = 0.0

        raw_use = str(data.get("use", "") or "")
        try:
            use = TaxUse(raw_use)
        except ValueError:
            use = TaxUse.INCREMENT

        raw_threshold = _first_present(data, "threshold", "treshold")
        threshold = to_number(raw_threshold)
        if threshold is None:
            if raw_threshold not in (None, ""):
                issues.append(f"Tax '{name}' has invalid threshold {raw_threshold!r}.")
            threshold = 0.0

        condition = ThresholdCondition.parse(_first_present(
            data,
            "thresholdCondition", "threshold_condition",
            "tresholdCondition", "tresholdContidion",
        ))

        return cls(
            id=rule_id,
            name=name,
            amount=rate,
            application_type=application_type,
            use=use,
            threshold=threshold,
            threshold_condition=condition,
            should_appear=data.get("shouldAppear", data.get("should_appear", True)) is not False,
            raw_application_type=raw_type,
            issues=tuple(issues),
        )


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def parse_tax_rules(raw_rules: Optional[Iterable[Any]]) -> Tuple[TaxRule, ...]:
    """Parse a party's tax configuration; TaxRule instances pass through."""
    rules = []
    for raw in raw_rules or ():
        if isinstance(raw, TaxRule):
            rules.append(raw)
        elif isinstance(raw, Mapping):
            rules.append(TaxRule.from_wire(raw))
    return tuple(rules)
