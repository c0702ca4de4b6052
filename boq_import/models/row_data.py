from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

"""ValidatedRow: typed, normalized record derived from one RawTable row.

ValidatedRow is a tagged union of LineItemRow and SectionHeaderRow. Only the
LineItem variant carries unit, quantity, rate and category, so a section
header can never smuggle pricing fields into persistence.
"""

__all__ = [
    "RowType",
    "ImportAction",
    "LineItemRow",
    "SectionHeaderRow",
    "ValidatedRow",
]


class RowType(Enum):
    LINE_ITEM = "LineItem"
    SECTION_HEADER = "SectionHeader"

    @classmethod
    def parse(cls, value: str) -> RowType | None:
        """Exact (case-sensitive) match against the recognized values."""
        for member in cls:
            if member.value == value:
                return member
        return None


class ImportAction(Enum):
    UPSERT = "UPSERT"
    DELETE = "DELETE"


@dataclass(frozen=True)
class LineItemRow:
    row_type: ClassVar[RowType] = RowType.LINE_ITEM

    row_index: int  # 0-based data row index within the RawTable
    action: ImportAction
    external_key: str
    section: str
    description: str
    uom: str
    qty: float | None  # None = not provided (never coerced to zero)
    rate: float | None
    category: str
    measurement: str
    assumptions: str


@dataclass(frozen=True)
class SectionHeaderRow:
    row_type: ClassVar[RowType] = RowType.SECTION_HEADER

    row_index: int
    action: ImportAction
    external_key: str
    section: str
    description: str
    measurement: str
    assumptions: str


ValidatedRow = Union[LineItemRow, SectionHeaderRow]
