from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..models.config_models import AddOnConfig, DatabaseConfig
from ..models.import_report import AuditEntry, ImportJob, ImportReport, JobStatus
from ..models.line_record import LineFields, LineRecord, Revision, RowStatus
from ..models.row_data import RowType
from .batch_insert import LINE_COLUMNS, insert_line_records

"""PostgreSQL persistence collaborator (psycopg2).

Outside ``transaction()`` every write is committed on its own, which is what
the sequential (no-rollback) commit mode relies on: a failure part-way
through leaves earlier rows persisted. Inside ``transaction()`` writes are
held until the block exits and rolled back on any exception.

Table layout: boq_versions, boq_rows, import_jobs, audit_logs, addon_configs.
"""

__all__ = [
    "resolve_dsn",
    "db_connection",
    "PostgresStore",
]

logger = logging.getLogger(__name__)

_RECORD_SELECT = "SELECT * FROM boq_rows WHERE boq_version_id = %s ORDER BY sort_order, created_at"


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string resolution order.

    1. DATABASE_URL / PGDSN (whole DSN)
    2. individual PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the config file's ``database`` block for anything still missing
    """
    dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn_env:
        return dsn_env
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a cursor on a fresh connection; closes both on exit."""
    conn = psycopg2.connect(resolve_dsn(db_cfg))
    conn.autocommit = False  # トランザクション境界は PostgresStore が明示的に制御
    cur = conn.cursor()
    try:
        yield cur
    finally:
        try:
            cur.close()
        finally:
            conn.close()


def _fetch_dicts(cursor: Any, rows: Sequence[Sequence[Any]]) -> list[dict[str, Any]]:
    names = [d[0] for d in cursor.description]
    return [dict(zip(names, r, strict=False)) for r in rows]


def _opt_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _record_from_row(row: dict[str, Any]) -> LineRecord:
    return LineRecord(
        id=str(row["id"]),
        revision_id=str(row["boq_version_id"]),
        row_type=RowType(row["row_type"]),
        item_no=row.get("item_no") or "",
        section=row.get("section") or "",
        description=row.get("description") or "",
        uom=row.get("uom") or "",
        qty=_opt_float(row.get("qty")),
        rate=_opt_float(row.get("rate")),
        amount=_opt_float(row.get("amount")),
        measurement=row.get("measurement") or "",
        assumptions=row.get("assumptions") or "",
        category=row.get("category") or "",
        row_status=RowStatus(row.get("row_status") or RowStatus.FINAL.value),
        sort_order=int(row.get("sort_order") or 0),
        external_key=row.get("external_key"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _job_from_row(row: dict[str, Any]) -> ImportJob:
    return ImportJob(
        id=str(row["id"]),
        revision_group_id=str(row["estimate_id"]),
        revision_id=str(row["boq_version_id"]),
        actor_id=str(row["actor_user_id"]),
        file_name=row.get("file_name") or "",
        file_type=row.get("file_type"),
        status=JobStatus(row["status"]),
        report=ImportReport.from_json_dict(row.get("report_json") or {}),
        file_path=row.get("file_path"),
        created_at=row.get("created_at"),
    )


class PostgresStore:
    """LineRecordStore over a psycopg2 cursor."""

    def __init__(self, cursor: Any, page_size: int = 1000) -> None:
        self.cursor = cursor
        self.page_size = page_size
        self._in_transaction = False

    def _autocommit(self) -> None:
        if not self._in_transaction:
            self.cursor.execute("COMMIT")

    def _fetch_one(self) -> dict[str, Any]:
        row = self.cursor.fetchone()
        if row is None:
            raise LookupError("statement returned no row")
        return _fetch_dicts(self.cursor, [row])[0]

    def get_revision(self, revision_id: str) -> Revision | None:
        self.cursor.execute(
            "SELECT id, estimate_id, version_label, is_frozen, based_on_boq_version_id "
            "FROM boq_versions WHERE id = %s",
            (revision_id,),
        )
        row = self.cursor.fetchone()
        if row is None:
            return None
        data = _fetch_dicts(self.cursor, [row])[0]
        based_on = data.get("based_on_boq_version_id")
        return Revision(
            id=str(data["id"]),
            revision_group_id=str(data["estimate_id"]),
            label=data.get("version_label") or "",
            is_frozen=bool(data.get("is_frozen")),
            based_on_revision_id=str(based_on) if based_on else None,
        )

    def get_line_records(self, revision_id: str) -> list[LineRecord]:
        self.cursor.execute(_RECORD_SELECT, (revision_id,))
        return [_record_from_row(r) for r in _fetch_dicts(self.cursor, self.cursor.fetchall())]

    def create_line_record(self, revision_id: str, fields: LineFields) -> LineRecord:
        cols = fields.as_columns()
        placeholders = ",".join(["%s"] * len(LINE_COLUMNS))
        self.cursor.execute(
            f"INSERT INTO boq_rows ({','.join(LINE_COLUMNS)}) VALUES ({placeholders}) RETURNING *",
            (revision_id, *(cols[c] for c in LINE_COLUMNS[1:])),
        )
        record = _record_from_row(self._fetch_one())
        self._autocommit()
        return record

    def create_line_records(self, revision_id: str, fields: Sequence[LineFields]) -> list[LineRecord]:
        result = insert_line_records(self.cursor, revision_id, fields, page_size=self.page_size)
        logger.debug("bulk insert boq_rows rows=%d", result.inserted_rows)
        records = [
            _record_from_row(dict(zip(result.column_names, r, strict=False))) for r in result.returned_values
        ]
        self._autocommit()
        return records

    def update_line_record(self, record_id: str, fields: LineFields) -> LineRecord:
        cols = fields.as_columns()
        assignments = ",".join(f"{c} = %s" for c in cols)
        self.cursor.execute(
            f"UPDATE boq_rows SET {assignments}, updated_at = now() WHERE id = %s RETURNING *",
            (*cols.values(), record_id),
        )
        record = _record_from_row(self._fetch_one())
        self._autocommit()
        return record

    def delete_line_record(self, record_id: str) -> None:
        self.cursor.execute("DELETE FROM boq_rows WHERE id = %s", (record_id,))
        self._autocommit()

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self.cursor.execute(
            "INSERT INTO audit_logs (estimate_id, actor_user_id, action_type, entity_type, entity_id, "
            "before_snapshot, after_snapshot) VALUES (%s, %s, %s, %s, %s, %s, %s)",
            (
                entry.revision_group_id,
                entry.actor_id,
                entry.action_type,
                entry.entity_type,
                entry.entity_id,
                Json(entry.before) if entry.before is not None else None,
                Json(entry.after) if entry.after is not None else None,
            ),
        )
        self._autocommit()

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
        self.cursor.execute(
            "INSERT INTO import_jobs (estimate_id, boq_version_id, actor_user_id, file_name, file_path, "
            "file_type, status, report_json) VALUES (%s, %s, %s, %s, NULL, %s, %s, %s) RETURNING *",
            (
                revision_group_id,
                revision_id,
                actor_id,
                file_name,
                file_type,
                status.value,
                Json(report.to_json_dict()),
            ),
        )
        job = _job_from_row(self._fetch_one())
        self._autocommit()
        return job

    def update_import_job_file_path(self, job_id: str, file_path: str) -> None:
        self.cursor.execute("UPDATE import_jobs SET file_path = %s WHERE id = %s", (file_path, job_id))
        self._autocommit()

    def get_add_on_config(self, revision_group_id: str) -> AddOnConfig | None:
        self.cursor.execute(
            "SELECT estimate_id, prelims_pct, contingency_pct, profit_pct, tax_pct, rounding_rule "
            "FROM addon_configs WHERE estimate_id = %s",
            (revision_group_id,),
        )
        row = self.cursor.fetchone()
        if row is None:
            return None
        data = _fetch_dicts(self.cursor, [row])[0]
        return AddOnConfig(
            revision_group_id=str(data["estimate_id"]),
            prelims_pct=float(data["prelims_pct"]),
            contingency_pct=float(data["contingency_pct"]),
            profit_pct=float(data["profit_pct"]),
            tax_pct=float(data["tax_pct"]),
            rounding_decimals=int(data["rounding_rule"]),
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._in_transaction:
            yield
            return
        self.cursor.execute("BEGIN")
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._in_transaction = False
            try:
                self.cursor.execute("ROLLBACK")
            except Exception as rollback_e:  # pragma: no cover
                # 元の例外を優先
                logger.error("rollback failed: %s", rollback_e)
            raise
        else:
            self._in_transaction = False
            self.cursor.execute("COMMIT")
