"""
OrderDesk Numeric Primitive - Rounding, Lenient Parsing, Formatting
=====================================================================
Shared numeric helpers for quantities and money.

RULES:
- Boundary values (display, export, persisted totals) are rounded to
  exactly 2 decimals with round2().
- round2() rounds half away from zero on the scaled integer
  (x * 100), so repeated rounding is stable.
- Parsing never raises. Anything that is not a finite number parses
  to None and the caller decides whether that is a zero contribution
  or an incomplete value.

This file contains NO engine logic.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional


_QUANTITY_PATTERN = re.compile(r"^-?\d+([.,]\d+)?$")
BARCODE_MIN_LENGTH = 16


# ══════════════════════════════════════════════════════════════
# ROUNDING
# ══════════════════════════════════════════════════════════════

def round2(value: float) -> float:
    """
    Round to 2 decimals, half away from zero on the scaled integer.

    round2(round2(x)) == round2(x) for every finite x.
    Non-finite values are returned unchanged.
    """
    number = float(value)
    if not math.isfinite(number):
        return number
    scaled = number * 100
    rounded = math.floor(abs(scaled) + 0.5)
    if scaled < 0:
        rounded = -rounded
    return rounded / 100


def sum2(values: Iterable[float]) -> float:
    """Sum with full precision, rounded once at the end."""
    return round2(math.fsum(values))


# ══════════════════════════════════════════════════════════════
# LENIENT PARSING
# ══════════════════════════════════════════════════════════════

def to_number(value: Any) -> Optional[float]:
    """
    Best-effort conversion to a finite float.

    Returns None for None, "", booleans, non-numeric strings, NaN and
    infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def number_or_zero(value: Any) -> float:
    number = to_number(value)
    return 0.0 if number is None else number


def is_blank(value: Any) -> bool:
    """True for None and empty/whitespace strings."""
    return value is None or (isinstance(value, str) and not value.strip())


# ══════════════════════════════════════════════════════════════
# SCANNER INPUT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScannedInput:
    """
    A single entry typed or scanned into the item input.

    Exactly one of barcode / quantity is set for non-empty input.
    """
    barcode: Optional[str] = None
    quantity: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.barcode is None and self.quantity is None


def parse_scanned_input(raw: Any) -> ScannedInput:
    """
    Classify scanner/keyboard input as a quantity or a barcode.

    Input of 16 or more characters is always a barcode. Shorter input
    like "12", "12.5" or "12,5" is a quantity; anything else is a barcode.
    """
    if raw is None:
        return ScannedInput()
    text = str(raw).strip()
    if not text:
        return ScannedInput()
    if len(text) >= BARCODE_MIN_LENGTH:
        return ScannedInput(barcode=text)
    if _QUANTITY_PATTERN.match(text):
        quantity = to_number(text.replace(",", ".", 1))
        if quantity is not None:
            return ScannedInput(quantity=quantity)
    return ScannedInput(barcode=text)


# ══════════════════════════════════════════════════════════════
# FORMATTING
# ══════════════════════════════════════════════════════════════

def format_amount(value: Any, symbol: Optional[str] = None) -> str:
    """
    Format for display/export: 2 decimals, "." thousands, "," decimals.

    Non-numeric input formats as an empty string.
    """
    number = to_number(value)
    if number is None:
        return ""
    text = f"{round2(number):,.2f}"
    text = text.replace(",", "\x00").replace(".", ",").replace("\x00", ".")
    if symbol:
        return f"{symbol} {text}"
    return text
