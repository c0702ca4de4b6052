from __future__ import annotations

import pytest

from boq_import.errors import ParseError
from boq_import.excel.reader import (
    list_sheet_names,
    parse_delimited,
    parse_spreadsheet,
    parse_table,
    table_from_records,
)
from boq_import.models.raw_table import TableFormat
from conftest import make_xlsx


def test_delimited_bom_crlf_quotes_and_trimming():
    data = (
        '\ufeffDescription , Qty\r\n'
        '"Concrete, grade ""30""", 5 \r\n'
        'Formwork,12\r\n'
    ).encode("utf-8")
    table = parse_delimited(data)
    assert table.headers == ["Description", "Qty"]
    assert table.rows == [['Concrete, grade "30"', "5"], ["Formwork", "12"]]


def test_delimited_drops_blank_rows_and_rectangularizes():
    text = "a,b,c\n\n , ,\nonly\n1,2,3,4\n"
    table = parse_delimited(text)
    assert table.headers == ["a", "b", "c"]
    assert table.rows == [["only", "", ""], ["1", "2", "3"]]
    assert all(len(r) == len(table.headers) for r in table.rows)


def test_delimited_header_is_first_non_blank_row():
    table = parse_delimited("\n,,\nDescription,UOM\nSlab,m2\n")
    assert table.headers == ["Description", "UOM"]
    assert table.row_count == 1


def test_delimited_quoted_newline_stays_in_cell():
    table = parse_delimited('Description,Notes\nWall,"line one\nline two"\n')
    assert table.rows == [["Wall", "line one\nline two"]]


def test_delimited_header_only_and_empty():
    assert parse_delimited("Description,Qty\n").is_empty
    empty = parse_delimited(b"")
    assert empty.headers == []
    assert empty.rows == []


def test_delimited_invalid_utf8_raises():
    with pytest.raises(ParseError):
        parse_delimited(b"Description\n\xff\xfe\xfa\n")


def test_spreadsheet_first_sheet_and_numeric_cells():
    data = make_xlsx(
        {
            "Data": [
                ["Description", "Qty", "Rate", "Notes"],
                ["Concrete", 150, 450.5, "NA"],
                ["Rebar", 5000.0, 3.5, None],
            ],
            "Other": [["Description"], ["ignored"]],
        }
    )
    table = parse_spreadsheet(data)
    assert table.headers == ["Description", "Qty", "Rate", "Notes"]
    assert table.rows[0] == ["Concrete", "150", "450.5", "NA"]
    assert table.rows[1] == ["Rebar", "5000", "3.5", ""]


def test_spreadsheet_sheet_selection_and_names():
    data = make_xlsx({"Summary": [["x"], ["1"]], "Items": [["Description"], ["Pile cap"]]})
    assert list_sheet_names(data) == ["Summary", "Items"]
    table = parse_table(data, TableFormat.SPREADSHEET, sheet_name="Items")
    assert table.rows == [["Pile cap"]]


def test_spreadsheet_unknown_sheet_raises():
    data = make_xlsx({"Data": [["Description"], ["a"]]})
    with pytest.raises(ParseError, match="Invalid sheet name"):
        parse_spreadsheet(data, "Missing")


def test_spreadsheet_garbage_bytes_raise_parse_error():
    with pytest.raises(ParseError):
        parse_spreadsheet(b"not a workbook")


def test_table_format_from_file_name():
    assert TableFormat.from_file_name("BoQ.XLSX") is TableFormat.SPREADSHEET
    assert TableFormat.from_file_name("boq.csv") is TableFormat.DELIMITED


def test_table_from_records_uses_cell_rules():
    table = table_from_records(
        [
            {"description": " Excavation ", "qty": 2.0, "rate": 12.5},
            {"description": "Backfill", "uom": "m3"},
            {"description": None},
        ]
    )
    assert table.headers == ["description", "qty", "rate", "uom"]
    assert table.rows == [["Excavation", "2", "12.5", ""], ["Backfill", "", "", "m3"]]
