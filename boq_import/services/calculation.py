from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from ..models.config_models import DEFAULT_ROUNDING_DECIMALS, AddOnConfig
from ..models.line_record import LineRecord
from ..models.row_data import RowType
from ..models.totals import AddOnBreakdown, EstimateTotals, Subtotals

"""Calculation engine: line amounts, subtotals and the add-on cascade.

Pure and deterministic. Arithmetic runs in binary floating point; rounding is
decimal half-up applied to the exact value of the float, which matches
fixed-point formatting of the same number (1.005 -> 1.0, 0.125 -> 0.13).

The cascade compounds each surcharge on the full-precision running total and
rounds each returned figure on its own. grand_total is therefore not always
the sum of the other rounded outputs; that is the intended behavior.
"""

__all__ = [
    "round_money",
    "calculate_amount",
    "calculate_subtotals",
    "calculate_add_ons",
    "estimate_totals",
]


def round_money(value: float, decimals: int = DEFAULT_ROUNDING_DECIMALS) -> float:
    """Round half-up to ``decimals`` places."""
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_amount(
    qty: float | None, rate: float | None, decimals: int = DEFAULT_ROUNDING_DECIMALS
) -> float | None:
    """qty * rate rounded, or None when either operand is missing."""
    if qty is None or rate is None:
        return None
    return round_money(qty * rate, decimals)


def calculate_subtotals(
    lines: Iterable[LineRecord], decimals: int = DEFAULT_ROUNDING_DECIMALS
) -> Subtotals:
    """Sum LineItem amounts by section, by category and overall.

    Per-row amounts are already rounded; each group sum is rounded again at
    the end.
    """
    by_section: dict[str, float] = {}
    by_category: dict[str, float] = {}
    total = 0.0
    for line in lines:
        if line.row_type is not RowType.LINE_ITEM or line.amount is None:
            continue
        amount = float(line.amount)
        if line.section:
            by_section[line.section] = by_section.get(line.section, 0.0) + amount
        if line.category:
            by_category[line.category] = by_category.get(line.category, 0.0) + amount
        total += amount
    return Subtotals(
        by_section={k: round_money(v, decimals) for k, v in by_section.items()},
        by_category={k: round_money(v, decimals) for k, v in by_category.items()},
        subtotal=round_money(total, decimals),
    )


def calculate_add_ons(subtotal: float, config: AddOnConfig) -> AddOnBreakdown:
    """Sequential prelims -> contingency -> profit -> tax cascade."""
    prelims = subtotal * (config.prelims_pct / 100)
    base_with_prelims = subtotal + prelims

    contingency = base_with_prelims * (config.contingency_pct / 100)
    base_with_contingency = base_with_prelims + contingency

    profit = base_with_contingency * (config.profit_pct / 100)
    base_with_profit = base_with_contingency + profit

    tax = base_with_profit * (config.tax_pct / 100)
    grand_total = base_with_profit + tax

    d = config.rounding_decimals
    return AddOnBreakdown(
        subtotal=round_money(subtotal, d),
        prelims=round_money(prelims, d),
        contingency=round_money(contingency, d),
        profit=round_money(profit, d),
        tax=round_money(tax, d),
        grand_total=round_money(grand_total, d),
    )


def estimate_totals(lines: Iterable[LineRecord], config: AddOnConfig) -> EstimateTotals:
    """Subtotals of ``lines`` followed by the add-on cascade on the grand subtotal."""
    subtotals = calculate_subtotals(lines, config.rounding_decimals)
    return EstimateTotals(
        subtotals=subtotals,
        add_ons=calculate_add_ons(subtotals.subtotal, config),
        rounding_decimals=config.rounding_decimals,
    )
