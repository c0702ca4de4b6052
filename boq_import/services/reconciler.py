from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from ..db.batch import Operation, OperationBatch, OperationFailed, OperationKind
from ..db.file_storage import FileStorage
from ..db.store import LineRecordStore
from ..errors import PersistenceFailure
from ..models.config_models import CommitMode
from ..models.context import ImportContext
from ..models.import_report import IMPORT_COMMITTED, AuditEntry, ImportJob, ImportReport, JobStatus
from ..models.line_record import LineFields, RowStatus
from ..models.row_data import ImportAction, LineItemRow, RowType, SectionHeaderRow, ValidatedRow
from .calculation import calculate_amount
from .progress import RowProgress

"""Reconciler / committer: validated rows -> create/update/delete against one revision.

1. Existing records of the revision are indexed by external key. Records
   without a key are never touched.
2. DELETE rows run first, in file order. A key with no match is a silent
   no-op.
3. UPSERT rows run in file order. Section headers bump the section counter
   and reset the item counter; line items bump the item counter. Item
   numbers read ``"{section}.{item}"`` once a header has been seen, else
   the bare item counter. sort_order is the 0-based position in this pass;
   untouched records keep their previous sort_order.
4. Matching keys update in place, everything else is created. Imported rows
   are always Final.
5. The ImportReport is stored on an import job and as one audit entry.
   Storing the original file is best-effort.

A key written earlier in the same file is matched by later rows too, so
duplicate keys land on one record (last write wins).
"""

__all__ = [
    "CommitOutcome",
    "assign_item_numbers",
    "record_fields",
    "commit_import",
    "commit",
]

logger = logging.getLogger(__name__)

ENTITY_TYPE = "boq_version"


@dataclass(frozen=True)
class CommitOutcome:
    report: ImportReport
    job: ImportJob
    operations: list[Operation]


class _ItemNumbering:
    def __init__(self) -> None:
        self.section_counter = 0
        self.item_counter = 0

    def next(self, row_type: RowType) -> str:
        if row_type is RowType.SECTION_HEADER:
            self.section_counter += 1
            self.item_counter = 0
            return ""
        self.item_counter += 1
        if self.section_counter > 0:
            return f"{self.section_counter}.{self.item_counter}"
        return str(self.item_counter)


def assign_item_numbers(rows: Sequence[ValidatedRow]) -> list[str]:
    """Display item numbers for UPSERT rows in order (headers get "")."""
    numbering = _ItemNumbering()
    return [numbering.next(r.row_type) for r in rows if r.action is ImportAction.UPSERT]


def record_fields(row: ValidatedRow, *, item_no: str, sort_order: int, decimals: int) -> LineFields:
    """Column payload for one validated row, built per variant."""
    external_key = row.external_key or None
    if isinstance(row, SectionHeaderRow):
        return LineFields(
            row_type=RowType.SECTION_HEADER,
            item_no=item_no,
            section=row.section,
            description=row.description,
            uom="",
            qty=None,
            rate=None,
            amount=None,
            measurement=row.measurement,
            assumptions=row.assumptions,
            category="",
            row_status=RowStatus.FINAL,
            sort_order=sort_order,
            external_key=external_key,
        )
    if isinstance(row, LineItemRow):
        return LineFields(
            row_type=RowType.LINE_ITEM,
            item_no=item_no,
            section=row.section,
            description=row.description,
            uom=row.uom,
            qty=row.qty,
            rate=row.rate,
            amount=calculate_amount(row.qty, row.rate, decimals),
            measurement=row.measurement,
            assumptions=row.assumptions,
            category=row.category,
            row_status=RowStatus.FINAL,
            sort_order=sort_order,
            external_key=external_key,
        )
    raise TypeError(f"unsupported row variant: {type(row).__name__}")


def _report_from_applied(applied: Sequence[Operation], warning_count: int, total: int) -> ImportReport:
    kinds = [op.kind for op in applied]
    return ImportReport(
        rows_created=kinds.count(OperationKind.CREATE),
        rows_updated=kinds.count(OperationKind.UPDATE),
        rows_deleted=kinds.count(OperationKind.DELETE),
        warning_count=warning_count,
        total_processed=total,
    )


def _failure(e: OperationFailed, warning_count: int, total: int) -> PersistenceFailure:
    report = _report_from_applied(e.applied, warning_count, total)
    where = f" at row {e.operation.row_index + 2}" if e.operation is not None else ""
    mode = "rolled back" if e.rolled_back else "earlier writes kept"
    return PersistenceFailure(
        f"persistence failed{where} ({mode}): {e.cause}",
        report=report,
        applied=e.applied,
        failed_operation=e.operation,
        rolled_back=e.rolled_back,
    )


def commit_import(
    valid_rows: Sequence[ValidatedRow],
    context: ImportContext,
    store: LineRecordStore,
    *,
    warning_count: int = 0,
    mode: CommitMode = CommitMode.SEQUENTIAL,
    file_storage: FileStorage | None = None,
) -> CommitOutcome:
    """Reconcile ``valid_rows`` into ``context.revision_id``.

    The target revision must not be frozen; that check is the caller's.

    Raises:
        PersistenceFailure: a store write failed. In sequential mode the
            writes listed in ``applied`` remain persisted.
    """
    total = len(valid_rows)
    existing = store.get_line_records(context.revision_id)
    by_key: dict[str, str | Operation] = {}
    for record in existing:
        if record.external_key:
            by_key[record.external_key] = record.id

    batch = OperationBatch(store, context.revision_id, mode)
    created = updated = deleted = 0

    delete_rows = [r for r in valid_rows if r.action is ImportAction.DELETE]
    upsert_rows = [r for r in valid_rows if r.action is ImportAction.UPSERT]

    try:
        for row in delete_rows:
            if not row.external_key:
                continue
            target = by_key.pop(row.external_key, None)
            if target is None:
                logger.debug("delete key not found key=%s row=%d", row.external_key, row.row_index + 2)
                continue
            batch.delete(target, row_index=row.row_index, external_key=row.external_key)  # type: ignore[arg-type]
            deleted += 1

        numbering = _ItemNumbering()
        with RowProgress(len(upsert_rows)) as progress:
            for sort_order, row in enumerate(upsert_rows):
                fields = record_fields(
                    row,
                    item_no=numbering.next(row.row_type),
                    sort_order=sort_order,
                    decimals=context.rounding_decimals,
                )
                key = row.external_key or None
                target = by_key.get(key) if key else None
                if target is not None:
                    batch.update(target, fields, row_index=row.row_index, external_key=key)
                    updated += 1
                else:
                    op = batch.create(fields, row_index=row.row_index, external_key=key)
                    if key:
                        by_key[key] = op.record_id or op
                    created += 1
                progress.advance()

        batch.flush()
    except OperationFailed as e:
        raise _failure(e, warning_count, total) from e.cause

    report = ImportReport(
        rows_created=created,
        rows_updated=updated,
        rows_deleted=deleted,
        warning_count=warning_count,
        total_processed=total,
    )

    try:
        job = store.create_import_job(
            revision_group_id=context.revision_group_id,
            revision_id=context.revision_id,
            actor_id=context.actor_id,
            file_name=context.file_name,
            file_type=context.file_type,
            status=JobStatus.COMMITTED,
            report=report,
        )
    except Exception as e:
        raise PersistenceFailure(
            f"failed to record import job: {e}", report=report, applied=batch.applied
        ) from e

    if file_storage is not None and context.file_bytes and context.file_name:
        try:
            path = file_storage.store_original_file(
                context.revision_group_id, job.id, context.file_name, context.file_bytes
            )
            store.update_import_job_file_path(job.id, path)
            job = replace(job, file_path=path)
        except Exception as e:
            logger.warning("failed to store import file name=%s job=%s: %s", context.file_name, job.id, e)

    try:
        store.append_audit_entry(
            AuditEntry(
                revision_group_id=context.revision_group_id,
                actor_id=context.actor_id,
                action_type=IMPORT_COMMITTED,
                entity_type=ENTITY_TYPE,
                entity_id=context.revision_id,
                before=None,
                after=report.to_json_dict(),
            )
        )
    except Exception as e:
        raise PersistenceFailure(
            f"failed to append audit entry: {e}", report=report, applied=batch.applied
        ) from e

    logger.info(
        "commit revision=%s mode=%s created=%d updated=%d deleted=%d",
        context.revision_id,
        mode.value,
        created,
        updated,
        deleted,
    )
    return CommitOutcome(report=report, job=job, operations=list(batch.applied))


def commit(
    valid_rows: Sequence[ValidatedRow],
    context: ImportContext,
    store: LineRecordStore,
    **kwargs,
) -> ImportReport:
    """Same as commit_import, returning only the ImportReport."""
    return commit_import(valid_rows, context, store, **kwargs).report
