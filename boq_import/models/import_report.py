from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

"""Commit outcome models: ImportReport, ImportJob and AuditEntry.

An ImportReport is persisted as an audit artifact and never mutated after
creation; the reconciler builds it once, after both passes complete.
"""

__all__ = [
    "ImportReport",
    "JobStatus",
    "ImportJob",
    "AuditEntry",
    "IMPORT_COMMITTED",
]

IMPORT_COMMITTED = "import_committed"  # audit action_type for a finished import


@dataclass(frozen=True)
class ImportReport:
    rows_created: int = 0
    rows_updated: int = 0
    rows_deleted: int = 0
    warning_count: int = 0
    total_processed: int = 0

    def to_json_dict(self) -> dict[str, int]:
        """Serialized shape stored in import jobs and audit payloads."""
        return {
            "rowsCreated": self.rows_created,
            "rowsUpdated": self.rows_updated,
            "rowsDeleted": self.rows_deleted,
            "warningCount": self.warning_count,
            "totalProcessed": self.total_processed,
        }

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> ImportReport:
        return cls(
            rows_created=int(data.get("rowsCreated", 0)),
            rows_updated=int(data.get("rowsUpdated", 0)),
            rows_deleted=int(data.get("rowsDeleted", 0)),
            warning_count=int(data.get("warningCount", 0)),
            total_processed=int(data.get("totalProcessed", 0)),
        )


class JobStatus(Enum):
    COMMITTED = "committed"


@dataclass(frozen=True)
class ImportJob:
    id: str
    revision_group_id: str
    revision_id: str
    actor_id: str
    file_name: str
    file_type: str | None
    status: JobStatus
    report: ImportReport
    file_path: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class AuditEntry:
    revision_group_id: str
    actor_id: str
    action_type: str
    entity_type: str
    entity_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data

