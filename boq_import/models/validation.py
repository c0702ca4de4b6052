from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .row_data import ValidatedRow

"""Validation result models.

Issues are collected and returned, never raised. Errors block commit;
warnings are surfaced to the operator but never block.
"""

__all__ = [
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "FILE_LEVEL_ROW",
]

FILE_LEVEL_ROW = -1  # rowIndex for issues not tied to a single row (size limit)


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    row_index: int  # 0-based data row index, -1 for file-level issues
    field: str
    severity: Severity
    message: str

    @property
    def display_row(self) -> int:
        """1-indexed sheet line (header row counted), -1 for file-level issues."""
        if self.row_index == FILE_LEVEL_ROW:
            return FILE_LEVEL_ROW
        return self.row_index + 2


@dataclass(frozen=True)
class ValidationResult:
    valid_rows: list[ValidatedRow] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    total_parsed_rows: int = 0

    @property
    def can_commit(self) -> bool:
        return not self.errors

    @property
    def warning_count(self) -> int:
        return len(self.warnings)
