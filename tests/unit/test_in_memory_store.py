from __future__ import annotations

import pytest

from boq_import.db.file_storage import LocalFileStorage
from boq_import.db.store import InMemoryStore
from boq_import.models.config_models import AddOnConfig
from boq_import.models.import_report import AuditEntry, ImportReport, JobStatus
from boq_import.models.line_record import LineFields, RowStatus
from boq_import.models.row_data import RowType


def _fields(description: str, sort_order: int) -> LineFields:
    return LineFields(
        row_type=RowType.SECTION_HEADER,
        item_no="",
        section=description,
        description=description,
        uom="",
        qty=None,
        rate=None,
        amount=None,
        measurement="",
        assumptions="",
        category="",
        row_status=RowStatus.FINAL,
        sort_order=sort_order,
        external_key=None,
    )


def test_records_ordered_by_sort_order():
    s = InMemoryStore()
    s.create_line_records("rev", [_fields("b", 2), _fields("a", 1)])
    s.create_line_record("other", _fields("z", 0))
    assert [r.description for r in s.get_line_records("rev")] == ["a", "b"]


def test_update_keeps_created_at_and_missing_raises():
    s = InMemoryStore()
    rec = s.create_line_record("rev", _fields("a", 0))
    updated = s.update_line_record(rec.id, _fields("b", 0))
    assert updated.created_at == rec.created_at
    assert updated.description == "b"
    with pytest.raises(KeyError):
        s.update_line_record("nope", _fields("b", 0))
    with pytest.raises(KeyError):
        s.delete_line_record("nope")


def test_transaction_restores_state():
    s = InMemoryStore()
    rec = s.create_line_record("rev", _fields("a", 0))
    with pytest.raises(RuntimeError):
        with s.transaction():
            s.delete_line_record(rec.id)
            s.append_audit_entry(AuditEntry("g", "u", "x", "y", "z"))
            raise RuntimeError("boom")
    assert rec.id in s.records
    assert s.audit_entries == []
    assert s.write_count == 1


def test_jobs_audit_and_add_on_config():
    s = InMemoryStore()
    job = s.create_import_job(
        revision_group_id="g",
        revision_id="rev",
        actor_id="u",
        file_name="f.csv",
        file_type="csv",
        status=JobStatus.COMMITTED,
        report=ImportReport(),
    )
    s.update_import_job_file_path(job.id, "g/j/f.csv")
    assert s.import_jobs[job.id].file_path == "g/j/f.csv"
    s.append_audit_entry(AuditEntry("g", "u", "import_committed", "boq_version", "rev"))
    assert s.audit_entries[0].created_at is not None
    assert s.audit_entries[0].to_dict()["created_at"].endswith("+00:00")
    assert s.get_add_on_config("g") is None
    s.set_add_on_config(AddOnConfig("g", tax_pct=6))
    assert s.get_add_on_config("g").tax_pct == 6


def test_local_file_storage(tmp_path):
    storage = LocalFileStorage(tmp_path)
    path = storage.store_original_file("est", "job", "../My BoQ (v2).csv", b"data")
    assert path == "est/job/My_BoQ__v2_.csv"
    assert (tmp_path / path).read_bytes() == b"data"
    with pytest.raises(FileExistsError):
        storage.store_original_file("est", "job", "../My BoQ (v2).csv", b"again")
