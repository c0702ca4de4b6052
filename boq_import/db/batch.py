from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..models.config_models import CommitMode
from ..models.line_record import LineFields
from .store import LineRecordStore

"""Batch-operation abstraction for the reconciler's write pass.

SEQUENTIAL applies each operation the moment it is staged. There is no
rollback: when a write fails, ``OperationFailed.applied`` lists exactly the
operations that went through before it.

ATOMIC stages every operation and applies them in ``flush()`` inside one
store transaction (deletes, then updates, then one bulk create). A failure
rolls the whole batch back.
"""

__all__ = [
    "OperationKind",
    "Operation",
    "OperationFailed",
    "OperationBatch",
]

logger = logging.getLogger(__name__)


class OperationKind(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Operation:
    kind: OperationKind
    row_index: int  # source data row (0-based)
    external_key: str | None
    record_id: str | None = None  # target for update/delete; assigned on create once applied
    fields: LineFields | None = None


class OperationFailed(Exception):
    def __init__(self, operation: Operation | None, applied: list[Operation], cause: Exception, rolled_back: bool):
        super().__init__(str(cause))
        self.operation = operation
        self.applied = applied
        self.cause = cause
        self.rolled_back = rolled_back


class OperationBatch:
    def __init__(self, store: LineRecordStore, revision_id: str, mode: CommitMode = CommitMode.SEQUENTIAL) -> None:
        self.store = store
        self.revision_id = revision_id
        self.mode = mode
        self.staged: list[Operation] = []
        self.applied: list[Operation] = []

    def _apply(self, op: Operation) -> None:
        try:
            if op.kind is OperationKind.DELETE:
                self.store.delete_line_record(op.record_id)  # type: ignore[arg-type]
            elif op.kind is OperationKind.UPDATE:
                self.store.update_line_record(op.record_id, op.fields)  # type: ignore[arg-type]
            else:
                op.record_id = self.store.create_line_record(self.revision_id, op.fields).id  # type: ignore[arg-type]
        except Exception as e:
            logger.error("write failed op=%s row=%d key=%s: %s", op.kind.value, op.row_index, op.external_key, e)
            raise OperationFailed(op, list(self.applied), e, rolled_back=False) from e
        self.applied.append(op)

    def _submit(self, op: Operation) -> Operation:
        if self.mode is CommitMode.SEQUENTIAL:
            self._apply(op)
        else:
            self.staged.append(op)
        return op

    def delete(self, record_id: str, *, row_index: int, external_key: str | None) -> Operation:
        return self._submit(Operation(OperationKind.DELETE, row_index, external_key, record_id=record_id))

    def update(self, target: str | Operation, fields: LineFields, *, row_index: int,
               external_key: str | None) -> Operation:
        """Update an existing record, or re-stage a create not yet applied."""
        if isinstance(target, Operation):
            if target.record_id is None:
                # 未適用の create: 最後の書き込みで上書き
                target.fields = fields
                target.row_index = row_index
                return target
            target = target.record_id
        return self._submit(Operation(OperationKind.UPDATE, row_index, external_key, record_id=target, fields=fields))

    def create(self, fields: LineFields, *, row_index: int, external_key: str | None) -> Operation:
        return self._submit(Operation(OperationKind.CREATE, row_index, external_key, fields=fields))

    def flush(self) -> None:
        """Apply staged operations (atomic mode). No-op in sequential mode."""
        if self.mode is CommitMode.SEQUENTIAL or not self.staged:
            return
        creates = [op for op in self.staged if op.kind is OperationKind.CREATE]
        others = [op for op in self.staged if op.kind is not OperationKind.CREATE]
        others.sort(key=lambda op: 0 if op.kind is OperationKind.DELETE else 1)
        current: Operation | None = None
        try:
            with self.store.transaction():
                for op in others:
                    current = op
                    if op.kind is OperationKind.DELETE:
                        self.store.delete_line_record(op.record_id)  # type: ignore[arg-type]
                    else:
                        self.store.update_line_record(op.record_id, op.fields)  # type: ignore[arg-type]
                current = creates[0] if creates else None
                created = self.store.create_line_records(
                    self.revision_id, [op.fields for op in creates]  # type: ignore[misc]
                )
        except Exception as e:
            for op in creates:
                op.record_id = None
            logger.error("atomic batch rolled back staged=%d: %s", len(self.staged), e)
            raise OperationFailed(current, [], e, rolled_back=True) from e
        for op, record in zip(creates, created, strict=True):
            op.record_id = record.id
        self.applied = list(others) + creates
        self.staged = []
