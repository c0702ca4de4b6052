from __future__ import annotations

import csv
import io
import math
import numbers
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

import pandas as pd

from ..errors import ParseError
from ..models.raw_table import RawTable, TableFormat

"""Tabular parser: delimited text or spreadsheet bytes -> RawTable.

Rules shared by both formats:
- the first non-blank row is the header row, remaining rows are data rows
- a row whose cells are all empty is dropped
- every data row is padded/truncated to the header's column count
- every cell is a trimmed string

Delimited text: UTF-8 with an optional leading BOM, comma separated, `"`
quoting with `""` as a literal quote, `\\r\\n` or `\\n` row terminators.

Spreadsheets are read through pandas (openpyxl engine). Numeric cells are
stringified without locale formatting; integral floats lose the trailing
``.0`` so ``150`` stays ``"150"`` even in a column pandas widened to float.
"""

__all__ = [
    "parse_table",
    "parse_delimited",
    "parse_spreadsheet",
    "list_sheet_names",
    "read_excel_file",
    "normalize_sheet",
    "table_from_records",
]


def _decode(data: bytes | str) -> str:
    if isinstance(data, str):
        return data[1:] if data.startswith("\ufeff") else data
    try:
        # utf-8-sig は先頭 BOM を除去
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"file is not valid UTF-8 text: {e}") from e


def _is_blank(cells: Sequence[str]) -> bool:
    return all(c == "" for c in cells)


def _rectangularize(headers: list[str], rows: Iterable[list[str]]) -> list[list[str]]:
    width = len(headers)
    out: list[list[str]] = []
    for row in rows:
        if len(row) < width:
            row = row + [""] * (width - len(row))
        out.append(row[:width])
    return out


def _split_header(rows: list[list[str]]) -> RawTable:
    rows = [r for r in rows if not _is_blank(r)]
    if not rows:
        return RawTable(headers=[], rows=[])
    headers = rows[0]
    return RawTable(headers=headers, rows=_rectangularize(headers, rows[1:]))


def parse_delimited(data: bytes | str) -> RawTable:
    """Parse comma-separated text into a RawTable."""
    text = _decode(data)
    try:
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=",", quotechar='"', doublequote=True)
        rows = [[cell.strip() for cell in row] for row in reader]
    except csv.Error as e:
        raise ParseError(f"malformed delimited text: {e}") from e
    return _split_header(rows)


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        f = float(value)
        if math.isfinite(f) and f.is_integer():
            return str(int(f))
        return repr(f)
    return str(value).strip()


def list_sheet_names(data: bytes) -> list[str]:
    """Return workbook sheet names in workbook order."""
    try:
        xls = pd.ExcelFile(io.BytesIO(data))
    except Exception as e:
        raise ParseError(f"failed to read spreadsheet: {e}") from e
    return [str(n) for n in xls.sheet_names]


def read_excel_file(
    data: bytes, target_sheets: Iterable[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read a workbook returning raw DataFrames keyed by sheet name.

    Cells are read as objects without header inference and without pandas'
    default NA-string conversion, so literal text such as "NA" survives.
    """
    try:
        xls = pd.ExcelFile(io.BytesIO(data))
    except Exception as e:
        raise ParseError(f"failed to read spreadsheet: {e}") from e
    wanted = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    for name in xls.sheet_names:
        if wanted is not None and str(name) not in wanted:
            continue
        try:
            df = xls.parse(name, header=None, dtype=object, keep_default_na=False, na_values=[])
        except Exception as e:
            raise ParseError(f"failed to read sheet '{name}': {e}") from e
        dfs[str(name)] = df
    return dfs


def normalize_sheet(df: pd.DataFrame) -> RawTable:
    """Turn a raw header-less DataFrame into a RawTable (first row = header)."""
    rows = [[_cell_to_str(v) for v in raw] for raw in df.itertuples(index=False, name=None)]
    return _split_header(rows)


def parse_spreadsheet(data: bytes, sheet_name: str | None = None) -> RawTable:
    """Parse the selected sheet (default: first sheet) into a RawTable."""
    names = list_sheet_names(data)
    if not names:
        raise ParseError("Invalid sheet name or empty workbook")
    target = sheet_name or names[0]
    if target not in names:
        raise ParseError(f"Invalid sheet name or empty workbook: '{target}'")
    dfs = read_excel_file(data, target_sheets=[target])
    return normalize_sheet(dfs[target])


def parse_table(
    data: bytes, fmt: TableFormat, sheet_name: str | None = None
) -> RawTable:
    """Parse raw bytes in the declared format. Raises ParseError on failure."""
    if fmt is TableFormat.SPREADSHEET:
        return parse_spreadsheet(data, sheet_name)
    return parse_delimited(data)


def table_from_records(
    records: Iterable[Mapping[str, Any]], headers: Sequence[str] | None = None
) -> RawTable:
    """Build a RawTable from candidate row dicts (e.g. drafted rows).

    Keys become headers (first-seen order unless ``headers`` is given) and
    values are stringified with the same rules as spreadsheet cells, so the
    result flows through the usual mapper and validator.
    """
    records = list(records)
    if headers is None:
        seen: dict[str, None] = {}
        for rec in records:
            for key in rec:
                seen.setdefault(str(key), None)
        headers = list(seen)
    header_list = [str(h) for h in headers]
    rows = [[_cell_to_str(rec.get(h)) for h in header_list] for rec in records]
    rows = [r for r in rows if not _is_blank(r)]
    return RawTable(headers=header_list, rows=rows)
