from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

"""Semantic field set and the FieldMapping (field -> column index) model."""

__all__ = [
    "BoqField",
    "FieldMapping",
]


class BoqField(str, Enum):
    """Fixed semantic fields, declared in mapping priority order."""
    ROW_TYPE = "row_type"
    EXTERNAL_KEY = "external_key"
    SECTION = "section"
    DESCRIPTION = "description"
    UOM = "uom"
    QTY = "qty"
    RATE = "rate"
    AMOUNT = "amount"
    CATEGORY = "category"
    MEASUREMENT = "measurement"
    ASSUMPTIONS = "assumptions"
    ACTION = "action"


@dataclass(frozen=True)
class FieldMapping:
    """Mapping from semantic field to a column position.

    Fields absent from ``columns`` are unmapped. At most one field may claim a
    given column; construction rejects mappings that break this rule.
    """
    columns: Mapping[BoqField, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        seen: dict[int, BoqField] = {}
        for fld, idx in self.columns.items():
            if idx < 0:
                raise ValueError(f"negative column index for field '{fld.value}': {idx}")
            if idx in seen:
                raise ValueError(
                    f"column {idx} claimed by both '{seen[idx].value}' and '{fld.value}'"
                )
            seen[idx] = fld

    def index_of(self, fld: BoqField) -> int | None:
        return self.columns.get(fld)

    def is_mapped(self, fld: BoqField) -> bool:
        return fld in self.columns

    def mapped_indices(self) -> set[int]:
        return set(self.columns.values())

    def __iter__(self) -> Iterator[tuple[BoqField, int]]:
        return iter(self.columns.items())

    def __len__(self) -> int:
        return len(self.columns)

    def to_dict(self) -> dict[str, int]:
        return {fld.value: idx for fld, idx in self.columns.items()}
