from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence

from .calculation import calculate_amount
from ..models.config_models import DEFAULT_CATEGORIES, DEFAULT_FALLBACK_CATEGORY, DEFAULT_MAX_ROWS
from ..models.context import ImportContext
from ..models.field_mapping import BoqField, FieldMapping
from ..models.raw_table import RawTable
from ..models.row_data import ImportAction, LineItemRow, RowType, SectionHeaderRow, ValidatedRow
from ..models.validation import FILE_LEVEL_ROW, Severity, ValidationIssue, ValidationResult

"""Row validator: RawTable rows + FieldMapping -> ValidationResult.

Issues are collected, never raised. A row with at least one error is left out
of ``valid_rows``; warnings never exclude a row. Display line numbers are
``row_index + 2`` (1-indexed, header row counted).
"""

__all__ = [
    "validate",
    "validate_rows",
    "parse_number",
    "preview_amount",
]

logger = logging.getLogger(__name__)

_PLAIN_DECIMAL = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


def parse_number(raw: str) -> float | None:
    """Parse a plain decimal string. Returns None when unparseable."""
    if not _PLAIN_DECIMAL.match(raw):
        return None
    value = float(raw)
    if not math.isfinite(value):
        return None
    return value


def _cell(row: Sequence[str], mapping: FieldMapping, fld: BoqField) -> str:
    idx = mapping.index_of(fld)
    if idx is None or idx >= len(row):
        return ""
    value = row[idx]
    return value.strip() if value else ""


class _RowIssues:
    """Collects issues for one row and tracks whether any error was raised."""

    def __init__(self, row_index: int, errors: list[ValidationIssue], warnings: list[ValidationIssue]) -> None:
        self.row_index = row_index
        self.display_row = row_index + 2
        self._errors = errors
        self._warnings = warnings
        self.has_error = False

    def error(self, fld: BoqField, message: str) -> None:
        self._errors.append(
            ValidationIssue(self.row_index, fld.value, Severity.ERROR, f"Row {self.display_row}: {message}")
        )
        self.has_error = True

    def warning(self, fld: BoqField, message: str) -> None:
        self._warnings.append(
            ValidationIssue(self.row_index, fld.value, Severity.WARNING, f"Row {self.display_row}: {message}")
        )


def _parse_quantity(issues: _RowIssues, fld: BoqField, label: str, raw: str) -> float | None:
    if raw == "":
        return None
    value = parse_number(raw)
    if value is None or value < 0:
        issues.error(fld, f'{label} must be a number >= 0. Got "{raw}".')
        return None
    return value


def validate_rows(
    rows: Sequence[Sequence[str]],
    mapping: FieldMapping,
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    fallback_category: str = DEFAULT_FALLBACK_CATEGORY,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> ValidationResult:
    """Validate every row against the business rules."""
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    valid_rows: list[ValidatedRow] = []
    total = len(rows)

    if total > max_rows:
        errors.append(
            ValidationIssue(
                FILE_LEVEL_ROW,
                "",
                Severity.ERROR,
                f"File contains {total} data rows, exceeding the maximum of {max_rows}.",
            )
        )
        logger.debug("validation short-circuited rows=%d max_rows=%d", total, max_rows)
        return ValidationResult(valid_rows=[], errors=errors, warnings=[], total_parsed_rows=total)

    known_categories = set(categories)

    for i, row in enumerate(rows):
        issues = _RowIssues(i, errors, warnings)

        raw_row_type = _cell(row, mapping, BoqField.ROW_TYPE)
        raw_action = _cell(row, mapping, BoqField.ACTION).upper()
        description = _cell(row, mapping, BoqField.DESCRIPTION)
        uom = _cell(row, mapping, BoqField.UOM)
        raw_qty = _cell(row, mapping, BoqField.QTY)
        raw_rate = _cell(row, mapping, BoqField.RATE)
        category = _cell(row, mapping, BoqField.CATEGORY)
        raw_amount = _cell(row, mapping, BoqField.AMOUNT)
        external_key = _cell(row, mapping, BoqField.EXTERNAL_KEY)
        section = _cell(row, mapping, BoqField.SECTION)
        measurement = _cell(row, mapping, BoqField.MEASUREMENT)
        assumptions = _cell(row, mapping, BoqField.ASSUMPTIONS)

        row_type = RowType.parse(raw_row_type or RowType.LINE_ITEM.value)
        if row_type is None:
            issues.error(
                BoqField.ROW_TYPE,
                f'Invalid row_type "{raw_row_type}". Must be LineItem or SectionHeader.',
            )

        if not description:
            issues.error(BoqField.DESCRIPTION, "Description is required.")

        action = ImportAction.DELETE if raw_action == ImportAction.DELETE.value else ImportAction.UPSERT
        if action is ImportAction.DELETE and not external_key:
            issues.error(
                BoqField.ACTION,
                "DELETE action requires an external_key to identify the row.",
            )

        qty: float | None = None
        rate: float | None = None
        if row_type is RowType.LINE_ITEM:
            if not uom and action is not ImportAction.DELETE:
                issues.error(BoqField.UOM, "UOM is required for LineItem rows.")
            qty = _parse_quantity(issues, BoqField.QTY, "Qty", raw_qty)
            rate = _parse_quantity(issues, BoqField.RATE, "Rate", raw_rate)
            if category and category not in known_categories:
                issues.warning(
                    BoqField.CATEGORY,
                    f'Unknown category "{category}" will be mapped to "{fallback_category}".',
                )
                category = fallback_category

        if raw_amount != "":
            issues.warning(BoqField.AMOUNT, "Amount value ignored; will be computed as Qty x Rate.")

        if issues.has_error:
            continue

        if row_type is RowType.SECTION_HEADER:
            valid_rows.append(
                SectionHeaderRow(
                    row_index=i,
                    action=action,
                    external_key=external_key,
                    section=section,
                    description=description,
                    measurement=measurement,
                    assumptions=assumptions,
                )
            )
        else:
            valid_rows.append(
                LineItemRow(
                    row_index=i,
                    action=action,
                    external_key=external_key,
                    section=section,
                    description=description,
                    uom=uom,
                    qty=qty,
                    rate=rate,
                    category=category,
                    measurement=measurement,
                    assumptions=assumptions,
                )
            )

    logger.debug(
        "validated rows=%d valid=%d errors=%d warnings=%d",
        total,
        len(valid_rows),
        len(errors),
        len(warnings),
    )
    return ValidationResult(valid_rows=valid_rows, errors=errors, warnings=warnings, total_parsed_rows=total)


def validate(table: RawTable, mapping: FieldMapping, context: ImportContext | None = None) -> ValidationResult:
    """Validate a parsed table using the rules carried by ``context``."""
    if context is None:
        return validate_rows(table.rows, mapping)
    return validate_rows(
        table.rows,
        mapping,
        categories=context.categories,
        fallback_category=context.fallback_category,
        max_rows=context.max_rows,
    )


def preview_amount(row: ValidatedRow, decimals: int) -> float | None:
    """Amount the committed row will carry (None for section headers)."""
    if isinstance(row, SectionHeaderRow):
        return None
    return calculate_amount(row.qty, row.rate, decimals)
