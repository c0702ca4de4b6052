from __future__ import annotations

import csv
import io
from collections.abc import Sequence

import pandas as pd
from openpyxl.worksheet.datavalidation import DataValidation

from ..models.config_models import DEFAULT_CATEGORIES, DEFAULT_UOMS, DEFAULT_MAX_ROWS

"""Import template generation (CSV and XLSX).

The XLSX variant carries list validations on the Data sheet and a Reference
sheet describing the accepted values for every column.
"""

__all__ = [
    "TEMPLATE_HEADERS",
    "SAMPLE_ROWS",
    "generate_csv_template",
    "generate_xlsx_template",
]

TEMPLATE_HEADERS: tuple[str, ...] = (
    "row_type",
    "external_key",
    "section",
    "description",
    "uom",
    "qty",
    "rate",
    "category",
    "measurement",
    "assumptions",
    "action",
)

SAMPLE_ROWS: tuple[tuple[str, ...], ...] = (
    ("SectionHeader", "", "Structural Works", "Structural Works", "", "", "", "", "", "", ""),
    ("LineItem", "STR-001", "Structural Works", "Reinforced concrete grade 30", "m3", "150", "450.00",
     "Material", "As per BQ measurement", "Based on structural drawings", ""),
    ("LineItem", "STR-002", "Structural Works", "Steel reinforcement bar Y16", "kg", "5000", "3.50",
     "Material", "Weight from bar schedule", "", ""),
)

_COLUMN_WIDTHS = (15, 15, 20, 35, 10, 10, 12, 12, 25, 30, 10)


def generate_csv_template() -> str:
    """Header row plus sample rows as comma-separated text (``\\n`` line ends)."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(TEMPLATE_HEADERS)
    writer.writerows(SAMPLE_ROWS)
    return buf.getvalue().rstrip("\n")


def _reference_rows(categories: Sequence[str], uoms: Sequence[str], max_rows: int) -> list[list[str]]:
    return [
        ["row_type", "LineItem, SectionHeader",
         "Required. LineItem for cost items, SectionHeader for section dividers."],
        ["external_key", "Any unique text",
         "Optional. Used for updating existing rows via UPSERT or DELETE actions."],
        ["section", "Any text", "Section name. Typically matches the SectionHeader description."],
        ["description", "Any text", "Required. The item description."],
        ["uom", ", ".join(uoms), "Unit of measure. Custom values are accepted."],
        ["qty", "Numbers only", "Quantity. Must be non-negative. Empty means not provided."],
        ["rate", "Numbers only", "Unit rate. Must be non-negative. Empty means not provided."],
        ["category", ", ".join(categories), 'Cost category. Unknown values will map to the fallback category.'],
        ["measurement", "Any text", "Optional. Measurement notes or methodology."],
        ["assumptions", "Any text", "Optional. Assumptions or clarifications."],
        ["action", "UPSERT, DELETE",
         "Optional. UPSERT creates/updates rows, DELETE removes rows by external_key."],
        ["", "", ""],
        ["Tips:", "", ""],
        ["1. Use external_key", "", "Assign unique keys to enable updates via re-import."],
        ["2. Row limit", "", f"Maximum {max_rows:,} data rows per import."],
        ["3. SectionHeaders", "", "Use SectionHeader rows to organize items into logical groups."],
        ["4. DELETE action", "", "Requires external_key to identify which row to delete."],
    ]


def generate_xlsx_template(
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    uoms: Sequence[str] = DEFAULT_UOMS,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> bytes:
    """Build the XLSX template workbook (Data + Reference sheets)."""
    data_df = pd.DataFrame([list(r) for r in SAMPLE_ROWS], columns=list(TEMPLATE_HEADERS))
    ref_df = pd.DataFrame(_reference_rows(categories, uoms, max_rows), columns=["Field", "Valid Values", "Notes"])

    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        data_df.to_excel(writer, sheet_name="Data", index=False)
        ref_df.to_excel(writer, sheet_name="Reference", index=False)

        ws = writer.sheets["Data"]
        for idx, width in enumerate(_COLUMN_WIDTHS):
            ws.column_dimensions[chr(ord("A") + idx)].width = width
        last = max_rows + 1
        validations = [
            ("A", '"LineItem,SectionHeader"', False),
            ("E", f'"{",".join(uoms)}"', True),
            ("H", f'"{",".join(categories)}"', True),
            ("K", '"UPSERT,DELETE"', True),
        ]
        for col, formula, allow_blank in validations:
            dv = DataValidation(type="list", formula1=formula, allow_blank=allow_blank)
            dv.add(f"{col}2:{col}{last}")
            ws.add_data_validation(dv)

        ref_ws = writer.sheets["Reference"]
        for col, width in zip("ABC", (20, 40, 60), strict=True):
            ref_ws.column_dimensions[col].width = width
    return buf.getvalue()
