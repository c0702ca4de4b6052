from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .row_data import RowType

"""LineRecord: the persisted cost-table row the import reconciles against.

Owned by a single revision. Frozen revisions must never be a mutation target;
that check belongs to the application layer, not to the reconciler.
"""

__all__ = [
    "RowStatus",
    "LineRecord",
    "LineFields",
    "Revision",
]


class RowStatus(Enum):
    DRAFT = "AIDraft"
    FINAL = "Final"


@dataclass(frozen=True)
class LineFields:
    """Column payload for create/update of a LineRecord.

    Built per row variant by the reconciler; section headers always carry
    empty unit/category and no quantity, rate or amount.
    """
    row_type: RowType
    item_no: str
    section: str
    description: str
    uom: str
    qty: float | None
    rate: float | None
    amount: float | None
    measurement: str
    assumptions: str
    category: str
    row_status: RowStatus
    sort_order: int
    external_key: str | None

    def __post_init__(self) -> None:
        if self.row_type is RowType.SECTION_HEADER and (
            self.qty is not None
            or self.rate is not None
            or self.amount is not None
            or self.uom
            or self.category
        ):
            raise ValueError("SectionHeader rows cannot carry uom/qty/rate/amount/category")

    def as_columns(self) -> dict[str, Any]:
        return {
            "row_type": self.row_type.value,
            "item_no": self.item_no,
            "section": self.section,
            "description": self.description,
            "uom": self.uom,
            "qty": self.qty,
            "rate": self.rate,
            "amount": self.amount,
            "measurement": self.measurement,
            "assumptions": self.assumptions,
            "category": self.category,
            "row_status": self.row_status.value,
            "sort_order": self.sort_order,
            "external_key": self.external_key,
        }


@dataclass(frozen=True)
class LineRecord:
    id: str
    revision_id: str
    row_type: RowType
    item_no: str
    section: str
    description: str
    uom: str = ""
    qty: float | None = None
    rate: float | None = None
    amount: float | None = None
    measurement: str = ""
    assumptions: str = ""
    category: str = ""
    row_status: RowStatus = RowStatus.FINAL
    sort_order: int = 0
    external_key: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_fields(
        cls,
        record_id: str,
        revision_id: str,
        fields: LineFields,
        *,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> LineRecord:
        return cls(
            id=record_id,
            revision_id=revision_id,
            row_type=fields.row_type,
            item_no=fields.item_no,
            section=fields.section,
            description=fields.description,
            uom=fields.uom,
            qty=fields.qty,
            rate=fields.rate,
            amount=fields.amount,
            measurement=fields.measurement,
            assumptions=fields.assumptions,
            category=fields.category,
            row_status=fields.row_status,
            sort_order=fields.sort_order,
            external_key=fields.external_key,
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class Revision:
    """A versioned snapshot of line records for one estimate (revision group)."""
    id: str
    revision_group_id: str
    label: str
    is_frozen: bool = False
    based_on_revision_id: str | None = None
