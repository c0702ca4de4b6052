from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models.import_report import ImportReport

"""Exception taxonomy for the import pipeline.

Validation problems are data (ValidationIssue) and are never raised; the
classes below cover the fatal paths only.
"""

__all__ = [
    "ImportPipelineError",
    "ParseError",
    "SizeLimitExceeded",
    "MappingError",
    "ValidationBlocked",
    "PersistenceFailure",
    "RevisionFrozenError",
    "StoreUnavailable",
]


class ImportPipelineError(Exception):
    """Base exception for import pipeline failures."""


class ParseError(ImportPipelineError):
    """Malformed or unreadable file/sheet. Aborts before validation."""


class SizeLimitExceeded(ParseError):
    """More data rows than the configured ceiling."""

    def __init__(self, row_count: int, max_rows: int) -> None:
        super().__init__(
            f"File contains {row_count} data rows, exceeding the maximum of {max_rows:,}."
        )
        self.row_count = row_count
        self.max_rows = max_rows


class MappingError(ImportPipelineError):
    """Field mapping is unusable (description unmapped, bad override)."""


class ValidationBlocked(ImportPipelineError):
    """Commit requested while validation errors exist."""

    def __init__(self, error_count: int) -> None:
        super().__init__(f"commit blocked: {error_count} validation error(s)")
        self.error_count = error_count


class PersistenceFailure(ImportPipelineError):
    """A downstream create/update/delete call failed during commit.

    ``report`` holds the counters reached before the failure and ``applied``
    the operations that completed. In sequential mode those writes stay in
    place; in atomic mode they were rolled back and ``rolled_back`` is True.
    """

    def __init__(
        self,
        message: str,
        *,
        report: ImportReport,
        applied: list[Any],
        failed_operation: Any | None = None,
        rolled_back: bool = False,
    ) -> None:
        super().__init__(message)
        self.report = report
        self.applied = applied
        self.failed_operation = failed_operation
        self.rolled_back = rolled_back


class RevisionFrozenError(ImportPipelineError):
    """Target revision is frozen and cannot be mutated."""


class StoreUnavailable(ImportPipelineError):
    """The persistence store could not be reached. Nothing was written."""
