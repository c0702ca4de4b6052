from __future__ import annotations

from boq_import.models.config_models import AddOnConfig
from boq_import.models.line_record import LineRecord
from boq_import.models.row_data import RowType
from boq_import.services.calculation import (
    calculate_add_ons,
    calculate_amount,
    calculate_subtotals,
    estimate_totals,
    round_money,
)


def _line(amount, section="", category="", row_type=RowType.LINE_ITEM) -> LineRecord:
    return LineRecord(
        id="x",
        revision_id="r",
        row_type=row_type,
        item_no="",
        section=section,
        description="d",
        amount=amount,
        category=category,
    )


def test_calculate_amount():
    assert calculate_amount(10, 2.5, 2) == 25.0
    assert calculate_amount(3, 0.333, 2) == 1.0
    assert calculate_amount(None, 5, 2) is None
    assert calculate_amount(5, None, 2) is None
    assert calculate_amount(0, 5, 2) == 0.0


def test_round_money_is_half_up_on_float_value():
    assert round_money(0.125, 2) == 0.13
    assert round_money(2.5, 0) == 3.0
    assert round_money(1.005, 2) == 1.0  # 1.005 is stored as 1.00499...
    assert round_money(76.22999999999999, 2) == 76.23
    assert round_money(1.23456, 3) == 1.235


def test_subtotals_group_line_items_only():
    lines = [
        _line(100.0, "Civil", "Material"),
        _line(50.0, "Civil", "Labour"),
        _line(25.0),
        _line(None, "Civil", "Labour"),
        _line(None, "Civil", row_type=RowType.SECTION_HEADER),
    ]
    s = calculate_subtotals(lines, 2)
    assert s.by_section == {"Civil": 150.0}
    assert s.by_category == {"Material": 100.0, "Labour": 50.0}
    assert s.subtotal == 175.0


def test_subtotals_are_rounded():
    s = calculate_subtotals([_line(0.1, "A"), _line(0.2, "A")], 2)
    assert s.by_section["A"] == 0.3
    assert s.subtotal == 0.3


def test_add_on_cascade():
    cfg = AddOnConfig("est", prelims_pct=10, contingency_pct=5, profit_pct=10, tax_pct=6, rounding_decimals=2)
    b = calculate_add_ons(1000, cfg)
    assert b.subtotal == 1000.0
    assert b.prelims == 100.0
    assert b.contingency == 55.0
    assert b.profit == 115.5
    assert b.tax == 76.23
    assert b.grand_total == 1346.73


def test_add_ons_zero_percent():
    b = calculate_add_ons(1234.5, AddOnConfig("est"))
    assert (b.prelims, b.contingency, b.profit, b.tax) == (0.0, 0.0, 0.0, 0.0)
    assert b.grand_total == 1234.5


def test_estimate_totals_uses_config_rounding():
    cfg = AddOnConfig("est", tax_pct=10, rounding_decimals=0)
    t = estimate_totals([_line(10.4, "A"), _line(10.4, "A")], cfg)
    assert t.subtotals.subtotal == 21.0
    assert t.add_ons.tax == 2.0
    assert t.add_ons.grand_total == 23.0
    assert t.rounding_decimals == 0
