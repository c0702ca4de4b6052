from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from boq_import.db.file_storage import LocalFileStorage
from boq_import.db.store import InMemoryStore
from boq_import.errors import PersistenceFailure
from boq_import.excel.reader import parse_delimited
from boq_import.models.config_models import CommitMode
from boq_import.models.import_report import IMPORT_COMMITTED, ImportReport, JobStatus
from boq_import.models.line_record import LineRecord, Revision, RowStatus
from boq_import.models.row_data import ImportAction, LineItemRow, RowType, SectionHeaderRow
from boq_import.services.calculation import calculate_subtotals
from boq_import.services.column_mapper import auto_map_columns
from boq_import.services.reconciler import assign_item_numbers, commit, commit_import
from boq_import.services.validator import validate
from conftest import GROUP_ID, REVISION_ID


def _item(i, key="", description="item", qty=1.0, rate=1.0, section="", action=ImportAction.UPSERT):
    return LineItemRow(
        row_index=i,
        action=action,
        external_key=key,
        section=section,
        description=description,
        uom="m",
        qty=qty,
        rate=rate,
        category="Material",
        measurement="",
        assumptions="",
    )


def _header(i, section, key=""):
    return SectionHeaderRow(
        row_index=i,
        action=ImportAction.UPSERT,
        external_key=key,
        section=section,
        description=section,
        measurement="",
        assumptions="",
    )


def _existing(store, record_id, key, sort_order=0, description="old"):
    return store.add_record(
        LineRecord(
            id=record_id,
            revision_id=REVISION_ID,
            row_type=RowType.LINE_ITEM,
            item_no="9",
            section="",
            description=description,
            uom="m",
            qty=1.0,
            rate=1.0,
            amount=1.0,
            row_status=RowStatus.DRAFT,
            sort_order=sort_order,
            external_key=key,
        )
    )


class RecordingStore(InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    def delete_line_record(self, record_id):
        self.calls.append(f"delete:{record_id}")
        super().delete_line_record(record_id)

    def update_line_record(self, record_id, fields):
        self.calls.append(f"update:{record_id}")
        return super().update_line_record(record_id, fields)

    def create_line_record(self, revision_id, fields):
        self.calls.append(f"create:{fields.description}")
        return super().create_line_record(revision_id, fields)


class FailingStore(InMemoryStore):
    """Fails the n-th create call (1-based)."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.creates = 0

    def create_line_record(self, revision_id, fields):
        self.creates += 1
        if self.creates == self.fail_on:
            raise RuntimeError("disk full")
        return super().create_line_record(revision_id, fields)


def _seed(s: InMemoryStore) -> InMemoryStore:
    s.add_revision(Revision(id=REVISION_ID, revision_group_id=GROUP_ID, label="Rev A"))
    return s


def test_item_numbering_scenario():
    rows = [_header(0, "Civil"), _item(1), _item(2), _header(3, "M&E"), _item(4)]
    assert assign_item_numbers(rows) == ["", "1.1", "1.2", "", "2.1"]


def test_item_numbering_without_headers_and_before_first_header():
    assert assign_item_numbers([_item(0), _item(1)]) == ["1", "2"]
    assert assign_item_numbers([_item(0), _header(1, "A"), _item(2)]) == ["1", "", "1.1"]


def test_item_numbering_skips_delete_rows():
    rows = [_item(0, key="K", action=ImportAction.DELETE), _item(1)]
    assert assign_item_numbers(rows) == ["1"]


def test_end_to_end_three_row_scenario(store, context, scenario_csv):
    table = parse_delimited(scenario_csv)
    result = validate(table, auto_map_columns(table.headers), context)
    assert result.can_commit

    outcome = commit_import(result.valid_rows, context, store, warning_count=result.warning_count)

    assert outcome.report == ImportReport(
        rows_created=3, rows_updated=0, rows_deleted=0, warning_count=0, total_processed=3
    )
    records = store.get_line_records(REVISION_ID)
    assert [r.item_no for r in records] == ["", "1.1", "1.2"]
    assert [r.amount for r in records] == [None, 50.0, 100.0]
    assert [r.sort_order for r in records] == [0, 1, 2]
    assert all(r.row_status is RowStatus.FINAL for r in records)
    header = records[0]
    assert (header.uom, header.qty, header.rate, header.category) == ("", None, None, "")
    assert calculate_subtotals(records, 2).by_section == {"Civil": 150.0}


def test_reimport_is_idempotent(store, context, scenario_csv):
    table = parse_delimited(scenario_csv)
    rows = validate(table, auto_map_columns(table.headers), context).valid_rows
    commit(rows, context, store)
    before = {r.external_key: r for r in store.get_line_records(REVISION_ID)}

    report = commit(rows, context, store)

    assert (report.rows_created, report.rows_updated, report.rows_deleted) == (0, 3, 0)
    after = {r.external_key: r for r in store.get_line_records(REVISION_ID)}
    assert after.keys() == before.keys()
    for key, rec in after.items():
        assert rec.id == before[key].id
        assert (rec.item_no, rec.amount, rec.sort_order) == (
            before[key].item_no,
            before[key].amount,
            before[key].sort_order,
        )


def test_deletes_run_before_upserts(context):
    s = _seed(RecordingStore())
    _existing(s, "r1", "K1")
    _existing(s, "r2", "K2")
    rows = [_item(0, key="K1", description="new"), _item(1, key="K2", action=ImportAction.DELETE)]

    report = commit(rows, context, s)

    assert s.calls == ["delete:r2", "update:r1"]
    assert (report.rows_updated, report.rows_deleted) == (1, 1)
    assert report.total_processed == 2
    assert s.records["r1"].description == "new"
    assert s.records["r1"].row_status is RowStatus.FINAL


def test_unresolved_delete_is_silent(store, context):
    report = commit([_item(0, key="NOPE", action=ImportAction.DELETE)], context, store)
    assert report.rows_deleted == 0
    assert report.total_processed == 1


def test_unkeyed_records_are_never_touched(store, context):
    _existing(store, "manual", None, sort_order=7, description="typed by hand")
    commit([_item(0, description="imported")], context, store)
    assert store.records["manual"].description == "typed by hand"
    assert store.records["manual"].sort_order == 7
    assert len(store.records) == 2


def test_upsert_without_key_always_creates(store, context):
    rows = [_item(0, description="a"), _item(1, description="a")]
    commit(rows, context, store)
    report = commit(rows, context, store)
    assert report.rows_created == 2
    assert len(store.records) == 4


@pytest.mark.parametrize("mode", list(CommitMode))
def test_duplicate_key_in_file_last_write_wins(store, context, mode):
    rows = [_item(0, key="D", description="first"), _item(1, key="D", description="second", qty=2.0)]
    report = commit(rows, context, store, mode=mode)
    assert (report.rows_created, report.rows_updated) == (1, 1)
    records = store.get_line_records(REVISION_ID)
    assert len(records) == 1
    assert records[0].description == "second"
    assert records[0].amount == 2.0


def test_delete_then_upsert_same_key_recreates(store, context):
    _existing(store, "r1", "K1")
    rows = [_item(0, key="K1", action=ImportAction.DELETE), _item(1, key="K1", description="fresh")]
    report = commit(rows, context, store)
    assert (report.rows_created, report.rows_updated, report.rows_deleted) == (1, 0, 1)
    assert "r1" not in store.records
    assert [r.description for r in store.get_line_records(REVISION_ID)] == ["fresh"]


def test_sequential_failure_keeps_earlier_writes(context):
    s = _seed(FailingStore(fail_on=2))
    rows = [_item(0, key="A"), _item(1, key="B"), _item(2, key="C")]

    with pytest.raises(PersistenceFailure) as exc:
        commit_import(rows, context, s, warning_count=1)

    err = exc.value
    assert err.rolled_back is False
    assert err.report.rows_created == 1
    assert err.report.total_processed == 3
    assert err.report.warning_count == 1
    assert [op.external_key for op in err.applied] == ["A"]
    assert err.failed_operation.external_key == "B"
    assert "row 3" in str(err)
    assert len(s.records) == 1
    assert s.import_jobs == {}
    assert s.audit_entries == []


def test_atomic_failure_rolls_back_everything(context):
    s = _seed(FailingStore(fail_on=2))
    _existing(s, "r1", "K1", description="untouched")
    rows = [
        _item(0, key="K1", description="changed"),
        _item(1, key="A"),
        _item(2, key="B"),
    ]

    with pytest.raises(PersistenceFailure) as exc:
        commit_import(rows, context, s, mode=CommitMode.ATOMIC)

    assert exc.value.rolled_back is True
    assert exc.value.applied == []
    assert list(s.records) == ["r1"]
    assert s.records["r1"].description == "untouched"


def test_atomic_mode_matches_sequential_result(store, context, scenario_csv):
    table = parse_delimited(scenario_csv)
    rows = validate(table, auto_map_columns(table.headers), context).valid_rows
    outcome = commit_import(rows, context, store, mode=CommitMode.ATOMIC)
    assert outcome.report.rows_created == 3
    assert [op.record_id is not None for op in outcome.operations] == [True, True, True]
    assert [r.item_no for r in store.get_line_records(REVISION_ID)] == ["", "1.1", "1.2"]


def test_import_job_and_audit_entry(store, context):
    outcome = commit_import([_item(0, key="A")], context, store, warning_count=2)
    job = store.import_jobs[outcome.job.id]
    assert job.status is JobStatus.COMMITTED
    assert job.report == outcome.report
    assert job.file_name == "boq.csv"
    assert len(store.audit_entries) == 1
    entry = store.audit_entries[0]
    assert entry.action_type == IMPORT_COMMITTED
    assert entry.entity_type == "boq_version"
    assert entry.entity_id == REVISION_ID
    assert entry.actor_id == "user-1"
    assert entry.after == {
        "rowsCreated": 1,
        "rowsUpdated": 0,
        "rowsDeleted": 0,
        "warningCount": 2,
        "totalProcessed": 1,
    }


def test_original_file_is_stored(store, context, tmp_path):
    ctx = replace(context, file_bytes=b"description,uom\nx,m\n")
    outcome = commit_import([_item(0)], ctx, store, file_storage=LocalFileStorage(tmp_path))
    expected = f"{GROUP_ID}/{outcome.job.id}/boq.csv"
    assert outcome.job.file_path == expected
    assert store.import_jobs[outcome.job.id].file_path == expected
    assert (tmp_path / expected).read_bytes() == b"description,uom\nx,m\n"


def test_file_storage_failure_does_not_fail_commit(store, context, caplog):
    class BrokenStorage:
        def store_original_file(self, revision_group_id, job_id, name, data):
            raise OSError("bucket unavailable")

    ctx = replace(context, file_bytes=b"x")
    with caplog.at_level(logging.WARNING, logger="boq_import"):
        outcome = commit_import([_item(0)], ctx, store, file_storage=BrokenStorage())
    assert outcome.report.rows_created == 1
    assert outcome.job.file_path is None
    assert "failed to store import file" in caplog.text


def test_rounding_decimals_from_context(store, context):
    commit([_item(0, qty=3, rate=0.3333)], replace(context, rounding_decimals=3), store)
    assert store.get_line_records(REVISION_ID)[0].amount == 1.0
