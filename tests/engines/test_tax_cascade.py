"""
Tests for engines.invoicing.tax_cascade - three-pass tax cascade.
"""

import pytest

from core.config.rules import TaxUse
from engines.invoicing.tax_cascade import TaxCascadeCalculator
from engines.orders.models import Item, OrderLine, ProductRef
from engines.orders.quantities import QuantityMode

IVA = {"id": "iva", "name": "IVA - 19%", "amount": 0.19, "applicationType": "product", "use": "increment"}
ICA = {"id": "ica", "name": "ICA - 0,77%", "amount": 0.0077, "applicationType": "product", "use": "increment"}
RETEFUENTE = {
    "id": "rf", "name": "Retefuente - 2,5%", "amount": 0.025,
    "applicationType": "subtotal", "use": "decrement",
}


def _line(price, *quantities, iva=False, requested=None, percentage=100, name="Tela", line_id="l1"):
    items = tuple(Item(id=f"{line_id}-{n}", quantity=q) for n, q in enumerate(quantities))
    return OrderLine(
        id=line_id,
        product=ProductRef(id=line_id, name=name),
        price=price,
        iva_included=iva,
        invoice_percentage=percentage,
        requested_quantity=requested,
        items=items,
    )


@pytest.fixture
def calculator():
    return TaxCascadeCalculator(iva_rate=0.19, iva_match_tolerance=0.01)


class TestIvaInclusive:
    def test_price_119_backs_out_to_100(self, calculator):
        summary = calculator.compute([_line(119, 1, iva=True)], [IVA])

        assert summary.subtotal == 100.0
        assert summary.tax_amount("iva") == 19.0
        assert summary.total == 119.0
        assert summary.per_line[0].base == 100.0
        assert summary.per_line[0].unit_price == 100.0

    def test_correction_removes_division_residue(self, calculator):
        summary = calculator.compute([_line(10, 1, iva=True)], [IVA])
        assert summary.tax_amount("iva") == 1.6
        assert summary.subtotal == 8.4
        assert summary.total == 10.0

    def test_several_product_taxes_skip_correction(self, calculator):
        # Known edge case: the correction only runs when the line's rates add up to IVA.
        consumption = {"id": "ic", "name": "Impoconsumo", "amount": 0.08, "applicationType": "product"}
        summary = calculator.compute([_line(119, 1, iva=True)], [IVA, consumption])

        assert summary.subtotal == 100.0
        assert summary.tax_amount("iva") == 19.0
        assert summary.tax_amount("ic") == 8.0
        assert summary.total == 127.0


class TestConditionalGating:
    RULE = {
        "id": "cond", "name": "Sobretasa", "amount": 0.1,
        "applicationType": "product-depending-subtotal",
        "treshold": 500000, "tresholdCondition": ">=",
    }

    def test_below_threshold_does_not_apply(self, calculator):
        summary = calculator.compute([_line(499999.99, 1)], [self.RULE])
        assert summary.tax_amount("cond") is None
        assert summary.total == 499999.99

    def test_at_threshold_applies(self, calculator):
        summary = calculator.compute([_line(500000, 1)], [self.RULE])
        assert summary.tax_amount("cond") == 50000.0
        assert summary.total == 550000.0

    def test_gate_uses_preliminary_subtotal_across_lines(self, calculator):
        lines = [_line(300000, 1, line_id="a"), _line(200000, 1, line_id="b")]
        summary = calculator.compute(lines, [self.RULE])
        assert summary.preliminary_subtotal == 500000.0
        assert summary.tax_amount("cond") == 50000.0


class TestRetentions:
    def test_threshold_uses_final_subtotal(self, calculator):
        retention = {**RETEFUENTE, "amount": 0.1, "threshold": 8.4, "thresholdCondition": "<="}
        summary = calculator.compute([_line(10, 1, iva=True)], [IVA, retention])

        assert summary.preliminary_subtotal == 8.4
        assert summary.subtotal == 8.4
        assert summary.tax_amount("rf") == 0.84
        assert summary.total == 9.16

    def test_preliminary_value_would_pass_but_final_does_not(self, calculator):
        retention = {**RETEFUENTE, "threshold": 8.401, "thresholdCondition": ">="}
        summary = calculator.compute([_line(10, 1, iva=True)], [IVA, retention])
        assert summary.tax_amount("rf") is None
        assert summary.total == 10.0

    def test_decrement_subtracts(self, calculator):
        summary = calculator.compute([_line(1000, 10)], [RETEFUENTE])
        assert summary.tax_amount("rf") == 250.0
        assert summary.total == 9750.0


class TestRuleFiltering:
    def test_self_retention_and_hidden_rules_never_touch_totals(self, calculator):
        rules = [
            IVA,
            {"id": "auto", "name": "Autorretención", "amount": 0.004, "applicationType": "self-retention"},
            {**ICA, "shouldAppear": False},
        ]
        summary = calculator.compute([_line(100, 1)], rules)
        assert [t.id for t in summary.taxes] == ["iva"]
        assert summary.total == 119.0

    def test_unknown_application_type_is_ignored_with_warning(self, calculator):
        odd = {"id": "odd", "name": "Odd", "amount": 0.5, "applicationType": "per-unit"}
        summary = calculator.compute([_line(100, 1)], [IVA, odd])
        assert summary.tax_amount("odd") is None
        assert summary.total == 119.0
        assert any("per-unit" in w for w in summary.warnings)

    def test_zero_amount_taxes_are_not_listed(self, calculator):
        exempt = {"id": "ex", "name": "Exento", "amount": 0, "applicationType": "product"}
        summary = calculator.compute([_line(100, 1)], [exempt])
        assert summary.taxes == ()


class TestDegradation:
    def test_non_numeric_price_contributes_zero(self, calculator, caplog):
        lines = [_line("abc", 1, line_id="a"), _line(50, 2, line_id="b")]
        summary = calculator.compute(lines, [])
        assert summary.subtotal == 100.0
        assert any("price" in w for w in summary.warnings)
        assert "abc" in caplog.text

    def test_non_numeric_item_quantity_is_flagged(self, calculator):
        summary = calculator.compute([_line(10, 1, "lots")], [])
        assert summary.subtotal == 10.0
        assert summary.warnings

    def test_invalid_rate_is_flagged(self, calculator):
        bad = {"id": "bad", "name": "Bad", "amount": "x", "applicationType": "product"}
        summary = calculator.compute([_line(100, 1)], [bad])
        assert summary.total == 100.0
        assert summary.warnings

    def test_blank_price_is_silent(self, calculator):
        summary = calculator.compute([_line("", 1)], [])
        assert summary.subtotal == 0.0
        assert summary.warnings == ()


class TestQuantities:
    def test_draft_uses_requested_quantity(self, calculator):
        line = _line(10, 2, requested=5)
        assert calculator.compute_for_state([line], [], "draft").subtotal == 50.0
        assert calculator.compute_for_state([line], [], "confirmed").subtotal == 20.0

    def test_requested_mode_skips_lines_without_request(self, calculator):
        summary = calculator.compute([_line(10, 2)], [IVA], QuantityMode.REQUESTED)
        assert summary.subtotal == 0.0
        assert summary.per_line == ()

    def test_lines_without_product_are_skipped(self, calculator):
        ghost = OrderLine(id="g", price=999, items=(Item(id="x", quantity=1),))
        assert calculator.compute([ghost], []).subtotal == 0.0

    @pytest.mark.parametrize("percentage,expected", [(50, 50.0), ("", 100.0), (None, 100.0), (0, 0.0)])
    def test_invoice_percentage(self, calculator, percentage, expected):
        summary = calculator.compute([_line(10, 10, percentage=percentage)], [])
        assert summary.subtotal == expected


class TestOutput:
    def test_display_order(self, calculator):
        other = {"id": "otro", "name": "Otro", "amount": 0.01, "applicationType": "product"}
        rules = [ICA, other, IVA, RETEFUENTE]
        summary = calculator.compute([_line(1000, 10)], rules)

        assert [t.name for t in summary.taxes] == [
            "IVA - 19%", "Retefuente - 2,5%", "ICA - 0,77%", "Otro",
        ]
        assert summary.subtotal == 10000.0
        assert summary.total == 11827.0

    def test_summary_rows_and_dict(self, calculator):
        summary = calculator.compute([_line(100, 1, name="Tela")], [IVA])
        assert summary.summary_rows() == [
            {"id": "subtotal", "name": "Subtotal", "amount": 100.0},
            {"id": "iva", "name": "IVA - 19%", "amount": 19.0},
            {"id": "total", "name": "Total", "amount": 119.0},
        ]
        data = summary.to_dict()
        assert data["taxes"] == [{"id": "iva", "name": "IVA - 19%", "amount": 19.0, "use": "increment"}]
        assert data["per_line"][0]["name"] == "Tela"
        assert summary.taxes[0].use is TaxUse.INCREMENT

    def test_custom_priority(self):
        calculator = TaxCascadeCalculator(display_priority=["ICA - 0,77%"])
        summary = calculator.compute([_line(1000, 10)], [IVA, ICA])
        assert [t.id for t in summary.taxes] == ["ica", "iva"]
