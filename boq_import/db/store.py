from __future__ import annotations

import copy
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol

from ..models.config_models import AddOnConfig
from ..models.import_report import AuditEntry, ImportJob, ImportReport, JobStatus
from ..models.line_record import LineFields, LineRecord, Revision

"""Persistence collaborator interface and the in-memory implementation.

The reconciler only talks to ``LineRecordStore``. ``InMemoryStore`` backs mock
mode (no database) and the test-suite; ``PostgresStore`` in
``boq_import.db.postgres`` is the live implementation.
"""

__all__ = [
    "LineRecordStore",
    "InMemoryStore",
]


class LineRecordStore(Protocol):
    def get_revision(self, revision_id: str) -> Revision | None: ...

    def get_line_records(self, revision_id: str) -> list[LineRecord]: ...

    def create_line_record(self, revision_id: str, fields: LineFields) -> LineRecord: ...

    def create_line_records(self, revision_id: str, fields: Sequence[LineFields]) -> list[LineRecord]: ...

    def update_line_record(self, record_id: str, fields: LineFields) -> LineRecord: ...

    def delete_line_record(self, record_id: str) -> None: ...

    def append_audit_entry(self, entry: AuditEntry) -> None: ...

    def create_import_job(
        self,
        *,
        revision_group_id: str,
        revision_id: str,
        actor_id: str,
        file_name: str,
        file_type: str | None,
        status: JobStatus,
        report: ImportReport,
    ) -> ImportJob: ...

    def update_import_job_file_path(self, job_id: str, file_path: str) -> None: ...

    def get_add_on_config(self, revision_group_id: str) -> AddOnConfig | None: ...

    def transaction(self): ...  # context manager: all-or-nothing block


class InMemoryStore:
    """Dict-backed store. Ordering of get_line_records follows sort_order then
    insertion order, like the live table query."""

    def __init__(self) -> None:
        self.revisions: dict[str, Revision] = {}
        self.records: dict[str, LineRecord] = {}
        self.audit_entries: list[AuditEntry] = []
        self.import_jobs: dict[str, ImportJob] = {}
        self.add_on_configs: dict[str, AddOnConfig] = {}
        self.write_count = 0

    # -- seeding helpers -------------------------------------------------
    def add_revision(self, revision: Revision) -> Revision:
        self.revisions[revision.id] = revision
        return revision

    def add_record(self, record: LineRecord) -> LineRecord:
        self.records[record.id] = record
        return record

    def set_add_on_config(self, config: AddOnConfig) -> None:
        self.add_on_configs[config.revision_group_id] = config

    # -- LineRecordStore -------------------------------------------------
    def get_revision(self, revision_id: str) -> Revision | None:
        return self.revisions.get(revision_id)

    def get_line_records(self, revision_id: str) -> list[LineRecord]:
        rows = [r for r in self.records.values() if r.revision_id == revision_id]
        return sorted(rows, key=lambda r: r.sort_order)

    def create_line_record(self, revision_id: str, fields: LineFields) -> LineRecord:
        now = datetime.now(UTC)
        record = LineRecord.from_fields(str(uuid.uuid4()), revision_id, fields, created_at=now, updated_at=now)
        self.records[record.id] = record
        self.write_count += 1
        return record

    def create_line_records(self, revision_id: str, fields: Sequence[LineFields]) -> list[LineRecord]:
        return [self.create_line_record(revision_id, f) for f in fields]

    def update_line_record(self, record_id: str, fields: LineFields) -> LineRecord:
        current = self.records.get(record_id)
        if current is None:
            raise KeyError(f"line record not found: {record_id}")
        updated = LineRecord.from_fields(
            record_id,
            current.revision_id,
            fields,
            created_at=current.created_at,
            updated_at=datetime.now(UTC),
        )
        self.records[record_id] = updated
        self.write_count += 1
        return updated

    def delete_line_record(self, record_id: str) -> None:
        if self.records.pop(record_id, None) is None:
            raise KeyError(f"line record not found: {record_id}")
        self.write_count += 1

    def append_audit_entry(self, entry: AuditEntry) -> None:
        if entry.created_at is None:
            entry = replace(entry, created_at=datetime.now(UTC))
        self.audit_entries.append(entry)

    def create_import_job(
        self,
        *,
        revision_group_id: str,
        revision_id: str,
        actor_id: str,
        file_name: str,
        file_type: str | None,
        status: JobStatus,
        report: ImportReport,
    ) -> ImportJob:
        job = ImportJob(
            id=str(uuid.uuid4()),
            revision_group_id=revision_group_id,
            revision_id=revision_id,
            actor_id=actor_id,
            file_name=file_name,
            file_type=file_type,
            status=status,
            report=report,
            created_at=datetime.now(UTC),
        )
        self.import_jobs[job.id] = job
        return job

    def update_import_job_file_path(self, job_id: str, file_path: str) -> None:
        self.import_jobs[job_id] = replace(self.import_jobs[job_id], file_path=file_path)

    def get_add_on_config(self, revision_group_id: str) -> AddOnConfig | None:
        return self.add_on_configs.get(revision_group_id)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = (
            copy.copy(self.records),
            list(self.audit_entries),
            copy.copy(self.import_jobs),
            self.write_count,
        )
        try:
            yield
        except BaseException:
            self.records, self.audit_entries, self.import_jobs, self.write_count = snapshot
            raise
