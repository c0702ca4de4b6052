from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..errors import MappingError
from ..models.field_mapping import BoqField, FieldMapping

"""Column mapper: free-form header labels -> semantic fields.

Greedy and order-dependent. Fields are visited in FIELD_SPECS order; each
takes the first unclaimed header whose normalized text matches one of its
aliases. When two fields share an alias, the earlier field wins the column.
"""

__all__ = [
    "FieldSpec",
    "FIELD_SPECS",
    "ALIASES",
    "normalize_header",
    "auto_map_columns",
    "unmapped_headers",
    "apply_overrides",
    "require_description",
]


@dataclass(frozen=True)
class FieldSpec:
    field: BoqField
    label: str
    required: bool = False


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec(BoqField.ROW_TYPE, "Row Type"),
    FieldSpec(BoqField.EXTERNAL_KEY, "External Key"),
    FieldSpec(BoqField.SECTION, "Section"),
    FieldSpec(BoqField.DESCRIPTION, "Description", required=True),
    FieldSpec(BoqField.UOM, "UOM"),
    FieldSpec(BoqField.QTY, "Qty"),
    FieldSpec(BoqField.RATE, "Rate"),
    FieldSpec(BoqField.AMOUNT, "Amount"),
    FieldSpec(BoqField.CATEGORY, "Category"),
    FieldSpec(BoqField.MEASUREMENT, "Measurement"),
    FieldSpec(BoqField.ASSUMPTIONS, "Assumptions"),
    FieldSpec(BoqField.ACTION, "Action"),
)

ALIASES: dict[BoqField, tuple[str, ...]] = {
    BoqField.ROW_TYPE: ("row_type", "rowtype", "type", "row type", "line type"),
    BoqField.EXTERNAL_KEY: (
        "external_key", "externalkey", "external key", "ext_key", "ref", "reference", "ref_id", "external id",
    ),
    BoqField.SECTION: ("section", "section name", "group", "category group"),
    BoqField.DESCRIPTION: (
        "description", "desc", "item description", "item", "item name", "line description", "scope", "work item",
    ),
    BoqField.UOM: ("uom", "unit", "unit of measure", "units", "unit of measurement", "measure"),
    BoqField.QTY: ("qty", "quantity", "amount qty", "no", "count", "number"),
    BoqField.RATE: ("rate", "unit rate", "unit price", "price", "cost", "unit cost"),
    BoqField.AMOUNT: ("amount", "total", "total amount", "line total", "line amount", "sum", "value"),
    BoqField.CATEGORY: ("category", "cost category", "type category", "classification", "cost type", "trade"),
    BoqField.MEASUREMENT: ("measurement", "measurements", "measurement notes", "measure notes", "dimensions"),
    BoqField.ASSUMPTIONS: ("assumptions", "assumption", "notes", "remarks", "comments", "clarifications"),
    BoqField.ACTION: ("action", "operation", "op", "crud", "import action"),
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(label: str) -> str:
    """Lowercase and strip every non-alphanumeric character."""
    return _NON_ALNUM.sub("", label.lower())


def auto_map_columns(headers: Sequence[str]) -> FieldMapping:
    """Propose a FieldMapping for ``headers`` without user interaction."""
    normalized = [normalize_header(h) for h in headers]
    columns: dict[BoqField, int] = {}
    used: set[int] = set()
    for spec in FIELD_SPECS:
        aliases = {normalize_header(a) for a in ALIASES[spec.field]}
        for idx, norm in enumerate(normalized):
            if idx in used:
                continue
            if norm in aliases:
                columns[spec.field] = idx
                used.add(idx)
                break
    return FieldMapping(columns)


def unmapped_headers(headers: Sequence[str], mapping: FieldMapping) -> list[int]:
    """Column indices no field has claimed."""
    claimed = mapping.mapped_indices()
    return [i for i in range(len(headers)) if i not in claimed]


def apply_overrides(
    mapping: FieldMapping,
    overrides: Mapping[str | BoqField, int | None],
    header_count: int,
) -> FieldMapping:
    """Apply manual mapping changes on top of a proposed mapping.

    ``None`` (or -1) unmaps a field. Assigning a column already held by a
    field not being overridden moves the column to the overriding field.
    """
    columns = dict(mapping.columns)
    overridden = _override_fields(overrides)
    for raw_field, idx in overrides.items():
        try:
            fld = raw_field if isinstance(raw_field, BoqField) else BoqField(raw_field)
        except ValueError as e:
            raise MappingError(f"unknown field: {raw_field!r}") from e
        if idx is None or idx == -1:
            columns.pop(fld, None)
            continue
        if not 0 <= idx < header_count:
            raise MappingError(f"column {idx} out of range for field '{fld.value}' (0..{header_count - 1})")
        for other, other_idx in list(columns.items()):
            if other is not fld and other_idx == idx:
                if other not in overridden:
                    del columns[other]
        columns[fld] = idx
    try:
        return FieldMapping(columns)
    except ValueError as e:
        raise MappingError(str(e)) from e


def _override_fields(overrides: Mapping[str | BoqField, int | None]) -> set[BoqField]:
    out: set[BoqField] = set()
    for key in overrides:
        try:
            out.add(key if isinstance(key, BoqField) else BoqField(key))
        except ValueError:
            continue
    return out


def require_description(mapping: FieldMapping) -> None:
    """Commit gate: the description column must be mapped."""
    if not mapping.is_mapped(BoqField.DESCRIPTION):
        raise MappingError("description column must be mapped before commit")
