from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ..db.file_storage import FileStorage
from ..db.store import LineRecordStore
from ..errors import ParseError, RevisionFrozenError, SizeLimitExceeded, ValidationBlocked
from ..excel.reader import parse_table
from ..logging.error_log import IssueLogBuffer
from ..models.config_models import AddOnConfig, CommitMode, ImportSettings
from ..models.context import ImportContext
from ..models.field_mapping import BoqField, FieldMapping
from ..models.line_record import Revision
from ..models.raw_table import RawTable, TableFormat
from ..models.totals import EstimateTotals
from ..models.validation import ValidationResult
from .calculation import estimate_totals
from .column_mapper import apply_overrides, auto_map_columns, require_description
from .reconciler import CommitOutcome, commit_import
from .validator import validate

"""Import pipeline orchestration.

Flow for one uploaded file:

1. ``load_table``: parse bytes (CSV or the selected XLSX sheet) and apply
   the upload checks (no content, headers only, over the row ceiling).
2. ``prepare_import``: propose a field mapping, apply manual overrides and
   validate every row. Nothing is written.
3. ``run_import``: gate on the mapping and on validation errors, write the
   issue log, check the revision is mutable and hand the valid rows to the
   reconciler.

``compute_totals`` re-derives subtotals and the add-on cascade for a
revision from its stored records.
"""

__all__ = [
    "PreparedImport",
    "load_table",
    "prepare_import",
    "ensure_mutable",
    "run_import",
    "resolve_add_on_config",
    "compute_totals",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedImport:
    """Parsed table, effective mapping and validation outcome for one file."""
    table: RawTable
    mapping: FieldMapping
    result: ValidationResult
    file_name: str = ""
    file_type: TableFormat | None = None


def load_table(
    data: bytes,
    file_name: str,
    *,
    sheet_name: str | None = None,
    max_rows: int | None = None,
) -> RawTable:
    """Parse an uploaded file and apply the upload-step checks.

    Raises:
        ParseError: legacy .xls file, unreadable content, no headers or
            no data rows.
        SizeLimitExceeded: more data rows than ``max_rows``.
    """
    if file_name.lower().endswith(".xls"):
        raise ParseError("Legacy .xls workbooks are not supported. Please save the file as .xlsx.")
    fmt = TableFormat.from_file_name(file_name)

    table = parse_table(data, fmt, sheet_name)
    where = "selected sheet" if fmt is TableFormat.SPREADSHEET else "file"
    if not table.headers:
        raise ParseError(f"No data found in the {where}. Please check the file contents.")
    if table.is_empty:
        label = "Sheet" if fmt is TableFormat.SPREADSHEET else "File"
        raise ParseError(f"{label} contains headers but no data rows.")
    if max_rows is not None and table.row_count > max_rows:
        raise SizeLimitExceeded(table.row_count, max_rows)

    logger.debug("parsed file=%s format=%s rows=%d cols=%d", file_name, fmt.value, table.row_count, len(table.headers))
    return table


def prepare_import(
    table: RawTable,
    context: ImportContext,
    *,
    overrides: Mapping[str | BoqField, int | None] | None = None,
) -> PreparedImport:
    """Map columns (auto + overrides) and validate every row of ``table``."""
    mapping = auto_map_columns(table.headers)
    if overrides:
        mapping = apply_overrides(mapping, overrides, len(table.headers))
    result = validate(table, mapping, context)
    fmt = TableFormat(context.file_type) if context.file_type else None
    return PreparedImport(
        table=table,
        mapping=mapping,
        result=result,
        file_name=context.file_name,
        file_type=fmt,
    )


def ensure_mutable(revision: Revision | None, revision_id: str) -> Revision:
    """Return the revision, or raise when it is missing or frozen."""
    if revision is None:
        raise RevisionFrozenError(f"revision not found: {revision_id}")
    if revision.is_frozen:
        raise RevisionFrozenError(f"revision {revision_id} is frozen and cannot be modified")
    return revision


def run_import(
    prepared: PreparedImport,
    context: ImportContext,
    store: LineRecordStore,
    *,
    mode: CommitMode = CommitMode.SEQUENTIAL,
    file_storage: FileStorage | None = None,
    issue_log: IssueLogBuffer | None = None,
) -> CommitOutcome:
    """Commit a prepared import.

    Validation issues (errors and warnings) are written to ``issue_log``
    before anything else so a blocked run still leaves its diagnostics.

    Raises:
        MappingError: description column unmapped.
        ValidationBlocked: at least one validation error exists.
        RevisionFrozenError: target revision missing or frozen.
        PersistenceFailure: a store write failed (see CommitMode).
    """
    result = prepared.result
    if issue_log is not None:
        issue_log.extend_issues(context.file_name, result.errors)
        issue_log.extend_issues(context.file_name, result.warnings)
        path = issue_log.flush()
        if path is not None:
            logger.info("issues written: %s", path)

    require_description(prepared.mapping)
    if not result.can_commit:
        raise ValidationBlocked(len(result.errors))

    ensure_mutable(store.get_revision(context.revision_id), context.revision_id)
    return commit_import(
        result.valid_rows,
        context,
        store,
        warning_count=result.warning_count,
        mode=mode,
        file_storage=file_storage,
    )


def resolve_add_on_config(
    store: LineRecordStore, revision_group_id: str, settings: ImportSettings
) -> AddOnConfig:
    """Stored AddOnConfig for the estimate, else the configured defaults."""
    config = store.get_add_on_config(revision_group_id)
    if config is None:
        config = settings.add_ons.for_group(revision_group_id, settings.rounding_decimals)
    return config


def compute_totals(
    store: LineRecordStore, revision_id: str, revision_group_id: str, settings: ImportSettings
) -> EstimateTotals:
    config = resolve_add_on_config(store, revision_group_id, settings)
    return estimate_totals(store.get_line_records(revision_id), config)
