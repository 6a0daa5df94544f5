"""
Tests for core.config.settings - ORDERDESK settings through Django.
"""

import pytest
from django.core.exceptions import ImproperlyConfigured

from core.config.settings import DEFAULTS, effective_settings, get_setting, validate_settings
from engines.invoicing.tax_cascade import TaxCascadeCalculator


class TestGetSetting:
    def test_project_settings_match_defaults(self):
        assert effective_settings() == DEFAULTS

    def test_override(self, settings):
        settings.ORDERDESK = {"DEFAULT_LOT_NUMBER": "A"}
        assert get_setting("DEFAULT_LOT_NUMBER") == "A"
        assert get_setting("IVA_RATE") == 0.19

    def test_unknown_name(self):
        with pytest.raises(KeyError):
            get_setting("NOPE")

    def test_calculator_reads_settings(self, settings):
        settings.ORDERDESK = {"IVA_RATE": 0.05, "TAX_DISPLAY_PRIORITY": ["ICA - 0,77%"]}
        calculator = TaxCascadeCalculator()
        assert calculator.iva_rate == 0.05
        assert calculator.display_priority == ("ICA - 0,77%",)


class TestValidateSettings:
    def test_valid(self):
        validate_settings()

    @pytest.mark.parametrize("overrides", [
        {"BOGUS": 1},
        {"IVA_RATE": 1.2},
        {"IVA_RATE": "0.19"},
        {"IVA_MATCH_TOLERANCE": -0.1},
        {"DEFAULT_INVOICE_PERCENTAGE": 150},
    ])
    def test_invalid(self, settings, overrides):
        settings.ORDERDESK = overrides
        with pytest.raises(ImproperlyConfigured):
            validate_settings()
