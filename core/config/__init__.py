"""
OrderDesk Core Config - Public API
=====================================
Party tax rules and engine settings.
"""

from core.config.rules import (
    ApplicationType,
    TaxRule,
    TaxUse,
    ThresholdCondition,
    check_threshold,
    parse_tax_rules,
)
from core.config.settings import get_setting, validate_settings

__all__ = [
    "ApplicationType",
    "TaxRule",
    "TaxUse",
    "ThresholdCondition",
    "check_threshold",
    "parse_tax_rules",
    "get_setting",
    "validate_settings",
]
