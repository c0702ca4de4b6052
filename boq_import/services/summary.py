from __future__ import annotations

from ..models.import_report import ImportReport
from ..models.totals import EstimateTotals
from ..models.validation import ValidationResult

"""Summary line rendering for CLI output.

Contract: ``SUMMARY created=N updated=N deleted=N warnings=N processed=N``.
The label itself is added by the SUMMARY log level, so the ``render_*``
functions return the bare key=value content.
"""


def render_summary_line(report: ImportReport) -> str:
    """Render the commit SUMMARY content for an ImportReport.

    Examples:
        >>> render_summary_line(ImportReport(3, 0, 0, 0, 3))
        'created=3 updated=0 deleted=0 warnings=0 processed=3'
    """
    return (
        f"created={report.rows_created} "
        f"updated={report.rows_updated} "
        f"deleted={report.rows_deleted} "
        f"warnings={report.warning_count} "
        f"processed={report.total_processed}"
    )


def render_validation_line(result: ValidationResult) -> str:
    return (
        f"rows={result.total_parsed_rows} "
        f"valid={len(result.valid_rows)} "
        f"errors={len(result.errors)} "
        f"warnings={len(result.warnings)}"
    )


def _fmt(value: float, decimals: int) -> str:
    return f"{value:.{decimals}f}"


def render_totals_lines(totals: EstimateTotals) -> list[str]:
    """Human-readable subtotal / add-on breakdown, one figure per line.

    Figures are formatted with the rounding rule they were computed with.
    """
    decimals = totals.rounding_decimals
    lines: list[str] = []
    for section, amount in totals.subtotals.by_section.items():
        lines.append(f"section {section}: {_fmt(amount, decimals)}")
    for category, amount in totals.subtotals.by_category.items():
        lines.append(f"category {category}: {_fmt(amount, decimals)}")
    a = totals.add_ons
    lines.extend(
        [
            f"subtotal: {_fmt(a.subtotal, decimals)}",
            f"prelims: {_fmt(a.prelims, decimals)}",
            f"contingency: {_fmt(a.contingency, decimals)}",
            f"profit: {_fmt(a.profit, decimals)}",
            f"tax: {_fmt(a.tax, decimals)}",
            f"grand_total: {_fmt(a.grand_total, decimals)}",
        ]
    )
    return lines
