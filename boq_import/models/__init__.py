"""Domain models for the cost-table import pipeline.

Parser output (RawTable), mapping (FieldMapping), validation (ValidatedRow,
ValidationIssue), persistence (LineRecord, Revision) and commit outcome
(ImportReport, ImportJob, AuditEntry) models live here.
"""

from .config_models import AddOnConfig, CommitMode, DatabaseConfig, ImportSettings
from .context import ImportContext
from .field_mapping import BoqField, FieldMapping
from .import_report import AuditEntry, ImportJob, ImportReport, JobStatus
from .line_record import LineFields, LineRecord, Revision, RowStatus
from .raw_table import RawTable, TableFormat
from .row_data import ImportAction, LineItemRow, RowType, SectionHeaderRow, ValidatedRow
from .totals import AddOnBreakdown, EstimateTotals, Subtotals
from .validation import Severity, ValidationIssue, ValidationResult

__all__ = [
    # Configuration models
    "AddOnConfig",
    "CommitMode",
    "DatabaseConfig",
    "ImportSettings",
    "ImportContext",
    # Parsing / mapping
    "RawTable",
    "TableFormat",
    "BoqField",
    "FieldMapping",
    # Validation
    "ImportAction",
    "RowType",
    "LineItemRow",
    "SectionHeaderRow",
    "ValidatedRow",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    # Persistence
    "LineFields",
    "LineRecord",
    "Revision",
    "RowStatus",
    # Outcome
    "AuditEntry",
    "ImportJob",
    "ImportReport",
    "JobStatus",
    "AddOnBreakdown",
    "EstimateTotals",
    "Subtotals",
]
