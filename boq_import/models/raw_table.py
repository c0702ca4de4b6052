from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""RawTable model: parser output, one per import attempt.

A RawTable is never persisted. Every row is rectangular (padded or truncated to
the header width) and every cell is a string.
"""

__all__ = [
    "TableFormat",
    "RawTable",
]


class TableFormat(Enum):
    """Declared format of an uploaded import file."""
    DELIMITED = "csv"
    SPREADSHEET = "xlsx"

    @classmethod
    def from_file_name(cls, name: str) -> TableFormat:
        lowered = name.lower()
        if lowered.endswith((".xlsx", ".xlsm")):
            return cls.SPREADSHEET
        return cls.DELIMITED


@dataclass(frozen=True)
class RawTable:
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows
