from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from boq_import.models.error_record import IssueRecord
from boq_import.models.validation import ValidationIssue

"""Issue log generation & buffering.

- JSON Lines, fixed schema (no extra keys)
- one ``logs/issues-YYYYMMDD-HHMMSS.log`` (UTC) per run, created lazily
- records are buffered and appended on flush()
"""

__all__ = [
    "IssueRecord",
    "IssueLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class IssueLogBuffer:
    """In-memory buffer for issue records. Flush writes JSON Lines.

    Not thread-safe; the pipeline is single-threaded.
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[IssueRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"issues-{stamp}.log"
        return self._file_path

    def append(self, record: IssueRecord) -> None:
        self._records.append(record)

    def extend_issues(self, file: str, issues: Iterable[ValidationIssue]) -> None:
        for issue in issues:
            self._records.append(IssueRecord.from_issue(file, issue))

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records. Returns the file path, or None when empty."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
