"""
OrderDesk Core Config - Engine Settings
==========================================
Engine constants come from the Django settings module (ORDERDESK dict),
never from source code. When Django is not configured (engine used as a
plain library) the defaults below apply.
"""

from __future__ import annotations

import os
from typing import Any, Dict

from django.conf import ENVIRONMENT_VARIABLE, settings
from django.core.exceptions import ImproperlyConfigured


DEFAULTS: Dict[str, Any] = {
    "IVA_RATE": 0.19,
    "IVA_MATCH_TOLERANCE": 0.01,
    "TAX_DISPLAY_PRIORITY": ("IVA - 19%", "Retefuente - 2,5%", "ICA - 0,77%"),
    "DEFAULT_INVOICE_PERCENTAGE": 100,
    "DEFAULT_LOT_NUMBER": "1",
}


def _overrides() -> Dict[str, Any]:
    if not settings.configured and not os.environ.get(ENVIRONMENT_VARIABLE):
        return {}
    return getattr(settings, "ORDERDESK", None) or {}


def get_setting(name: str) -> Any:
    """Return the effective value of an ORDERDESK setting."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown OrderDesk setting '{name}'.")
    return _overrides().get(name, DEFAULTS[name])


def effective_settings() -> Dict[str, Any]:
    return {name: get_setting(name) for name in DEFAULTS}


def validate_settings() -> None:
    """
    Check the ORDERDESK settings.

    Raises:
        ImproperlyConfigured: unknown key or out-of-range value.
    """
    unknown = sorted(set(_overrides()) - set(DEFAULTS))
    if unknown:
        raise ImproperlyConfigured(
            f"Unknown ORDERDESK settings: {', '.join(unknown)}."
        )

    iva_rate = get_setting("IVA_RATE")
    if not isinstance(iva_rate, (int, float)) or not 0 <= iva_rate < 1:
        raise ImproperlyConfigured(
            f"ORDERDESK['IVA_RATE'] must be in [0, 1), got {iva_rate!r}."
        )

    tolerance = get_setting("IVA_MATCH_TOLERANCE")
    if not isinstance(tolerance, (int, float)) or tolerance < 0:
        raise ImproperlyConfigured(
            "ORDERDESK['IVA_MATCH_TOLERANCE'] must be a non-negative number."
        )

    percentage = get_setting("DEFAULT_INVOICE_PERCENTAGE")
    if not isinstance(percentage, (int, float)) or not 0 <= percentage <= 100:
        raise ImproperlyConfigured(
            "ORDERDESK['DEFAULT_INVOICE_PERCENTAGE'] must be between 0 and 100."
        )
