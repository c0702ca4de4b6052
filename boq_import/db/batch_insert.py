from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

from ..models.line_record import LineFields

"""Bulk INSERT of line records with psycopg2.extras.execute_values.

Used by the atomic commit mode, where every staged create is written in one
statement inside the surrounding transaction. RETURNING yields the full rows
in input order so callers can map them back to LineRecord objects.
"""

__all__ = [
    "LINE_COLUMNS",
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "insert_line_records",
]

LINE_COLUMNS: tuple[str, ...] = (
    "boq_version_id",
    "row_type",
    "item_no",
    "section",
    "description",
    "uom",
    "qty",
    "rate",
    "amount",
    "measurement",
    "assumptions",
    "category",
    "row_status",
    "sort_order",
    "external_key",
)


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing for one execute_values call."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]]
    column_names: list[str]


def _row_values(revision_id: str, fields: LineFields) -> tuple[Any, ...]:
    cols = fields.as_columns()
    return (revision_id, *(cols[c] for c in LINE_COLUMNS[1:]))


def insert_line_records(
    cursor: Any,
    revision_id: str,
    fields: Sequence[LineFields],
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert ``fields`` into boq_rows for ``revision_id`` returning every column.

    metrics_callback is not invoked when ``fields`` is empty.
    """
    if not fields:
        return InsertResult(inserted_rows=0, returned_values=[], column_names=[])

    rows = [_row_values(revision_id, f) for f in fields]
    cols_sql = ",".join(f'"{c}"' for c in LINE_COLUMNS)
    sql = f"INSERT INTO boq_rows ({cols_sql}) VALUES %s RETURNING *"

    start_time = time.time()
    try:
        returned = execute_values(cursor, sql, rows, page_size=page_size, fetch=True)
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    column_names = [d[0] for d in cursor.description] if getattr(cursor, "description", None) else []
    return InsertResult(inserted_rows=len(rows), returned_values=list(returned or []), column_names=column_names)
