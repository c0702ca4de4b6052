from __future__ import annotations

from dataclasses import dataclass, field

"""Calculation Engine output models."""

__all__ = [
    "Subtotals",
    "AddOnBreakdown",
    "EstimateTotals",
]


@dataclass(frozen=True)
class Subtotals:
    """LineItem amounts grouped by section and by category.

    Each grouped sum and the grand subtotal are rounded independently.
    Rows with an empty section (or category) contribute to the grand
    subtotal only.
    """
    by_section: dict[str, float] = field(default_factory=dict)
    by_category: dict[str, float] = field(default_factory=dict)
    subtotal: float = 0.0


@dataclass(frozen=True)
class AddOnBreakdown:
    """Cascade result. Every field is rounded on its own, so grand_total is not
    guaranteed to equal the sum of the other five."""
    subtotal: float
    prelims: float
    contingency: float
    profit: float
    tax: float
    grand_total: float


@dataclass(frozen=True)
class EstimateTotals:
    """Subtotals and cascade, with the rounding rule both were computed (and
    are displayed) with."""
    subtotals: Subtotals
    add_ons: AddOnBreakdown
    rounding_decimals: int = 2
