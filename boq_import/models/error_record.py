from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .validation import FILE_LEVEL_ROW, ValidationIssue

"""IssueRecord model for the JSON Lines issue log.

Supports row=-1 as a sentinel for file-level issues (size limit, parse
failures) where no single data row applies.
"""

__all__ = [
    "IssueRecord",
]


@dataclass(frozen=True)
class IssueRecord:
    """Structured issue record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: import file name
        row: display row (1-based, header counted). -1 for file-level issues
        field: semantic field name, empty when not field-specific
        severity: "error" or "warning"
        message: operator-facing description
    """
    timestamp: str
    file: str
    row: int
    field: str
    severity: str
    message: str

    @staticmethod
    def create(file: str, row: int, field: str, severity: str, message: str) -> IssueRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return IssueRecord(
            timestamp=ts,
            file=file,
            row=row,
            field=field,
            severity=severity,
            message=message,
        )

    @staticmethod
    def from_issue(file: str, issue: ValidationIssue) -> IssueRecord:
        row = FILE_LEVEL_ROW if issue.row_index == FILE_LEVEL_ROW else issue.display_row
        return IssueRecord.create(
            file=file,
            row=row,
            field=issue.field,
            severity=issue.severity.value,
            message=issue.message,
        )

    def to_json_line(self) -> str:
        # 追加キー禁止: dataclass -> dict のみ
        return json.dumps(asdict(self), ensure_ascii=False)
