# rasuva/imports/store.py
"""SQLAlchemy-backed persistence for import generations, tasks and edit history.

Every task/history call is scoped to one import id; full keys are only
unique inside that scope.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from rasuva.extensions import db
from rasuva.imports.keys import suffix_number
from rasuva.imports.schema import parse_snapshot
from rasuva.imports.types import (
    CommandHistoryEntry,
    DiffSummary,
    ImportSummary,
    ImportWarning,
    NormalizedTask,
)
from rasuva.models import CommandHistoryRow, ImportRecord, ImportWarningRow, TaskRow

logger = logging.getLogger(__name__)

# columns a task write may touch
EDITABLE_FIELDS = (
    "task_key", "task_key_full", "member_name", "project_id", "project_group",
    "task_name", "assignees", "start", "end", "raw_date", "note", "status",
)


def row_to_task(row: TaskRow) -> NormalizedTask:
    assignees = row.assignees if isinstance(row.assignees, list) else []
    return NormalizedTask(
        id=row.id,
        task_key=row.task_key,
        task_key_full=row.task_key_full,
        member_name=row.member_name,
        project_id=row.project_id,
        project_group=row.project_group,
        task_name=row.task_name,
        assignees=[a for a in assignees if isinstance(a, str)],
        start=row.start,
        end=row.end,
        raw_date=row.raw_date,
        note=row.note,
        status=row.status,
    )


class TaskStore:
    def __init__(self, session=None):
        self.session = session or db.session

    # ---- transactions ----

    @contextmanager
    def transaction(self):
        """Commit on success; roll back and re-raise on any error."""
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    # ---- import generations ----

    def insert_import(self, source: str, raw_json: str, summary: ImportSummary,
                      diff_summary: DiffSummary) -> int:
        rec = ImportRecord(
            created_at=datetime.now(timezone.utc),
            source=source,
            raw_json=raw_json,
            total_members=summary.total_members,
            total_projects=summary.total_projects,
            total_tasks=summary.total_tasks,
            added_count=diff_summary.added,
            updated_count=diff_summary.updated,
            archived_count=diff_summary.archived,
            invalid_count=diff_summary.invalid,
            unscheduled_count=diff_summary.unscheduled,
            warnings_count=summary.warnings_count,
        )
        self.session.add(rec)
        self.session.flush()
        return rec.id

    def insert_tasks(self, import_id: int, tasks: Iterable[NormalizedTask]) -> None:
        self.session.add_all([
            TaskRow(import_id=import_id, **{f: getattr(t, f) for f in EDITABLE_FIELDS})
            for t in tasks
        ])
        self.session.flush()

    def insert_warnings(self, import_id: int, warnings: Iterable[ImportWarning]) -> None:
        self.session.add_all([
            ImportWarningRow(import_id=import_id, code=w.code, message=w.message,
                             context=_json_safe(w.context))
            for w in warnings
        ])
        self.session.flush()

    def get_import(self, import_id: int) -> Optional[ImportRecord]:
        return self.session.get(ImportRecord, import_id)

    def list_imports(self) -> List[ImportRecord]:
        return self.session.query(ImportRecord).order_by(ImportRecord.id.desc()).all()

    def latest_import_id(self) -> Optional[int]:
        rec = self.session.query(ImportRecord).order_by(ImportRecord.id.desc()).first()
        return rec.id if rec else None

    def previous_import_id(self, import_id: int) -> Optional[int]:
        rec = (self.session.query(ImportRecord)
               .filter(ImportRecord.id < import_id)
               .order_by(ImportRecord.id.desc())
               .first())
        return rec.id if rec else None

    def tasks_by_import(self, import_id: int) -> List[NormalizedTask]:
        rows = (self.session.query(TaskRow)
                .filter_by(import_id=import_id)
                .order_by(TaskRow.member_name, TaskRow.project_id, TaskRow.task_name, TaskRow.id)
                .all())
        return [row_to_task(r) for r in rows]

    def warnings_by_import(self, import_id: int) -> List[ImportWarning]:
        rows = (self.session.query(ImportWarningRow)
                .filter_by(import_id=import_id)
                .order_by(ImportWarningRow.id)
                .all())
        return [ImportWarning(r.code, r.message, r.context or {}) for r in rows]

    # ---- tasks ----

    def _task_row(self, import_id: int, full_key: str) -> Optional[TaskRow]:
        return self.session.query(TaskRow).filter_by(import_id=import_id, task_key_full=full_key).first()

    def get_task_by_key(self, import_id: int, full_key: str) -> Optional[NormalizedTask]:
        row = self._task_row(import_id, full_key)
        return row_to_task(row) if row else None

    def get_task_by_id(self, task_id: int) -> Optional[NormalizedTask]:
        row = self.session.get(TaskRow, task_id)
        return row_to_task(row) if row else None

    def list_tasks_sharing_base_key(self, import_id: int, base_key: str,
                                    excluding_full_key: Optional[str] = None) -> List[str]:
        q = self.session.query(TaskRow).filter_by(import_id=import_id, task_key=base_key)
        if excluding_full_key is not None:
            q = q.filter(TaskRow.task_key_full != excluding_full_key)
        return [r.task_key_full for r in q.order_by(TaskRow.id).all()]

    def occupied_full_keys(self, import_id: int, base_key: str,
                           excluding_full_key: Optional[str] = None) -> List[str]:
        """Full keys spelling a slot of `base_key` but held under another base key."""
        q = (self.session.query(TaskRow.task_key_full)
             .filter(TaskRow.import_id == import_id,
                     TaskRow.task_key != base_key,
                     TaskRow.task_key_full.startswith(base_key, autoescape=True)))
        if excluding_full_key is not None:
            q = q.filter(TaskRow.task_key_full != excluding_full_key)
        return [k for (k,) in q.all() if suffix_number(base_key, k) is not None]

    def write_task(self, import_id: int, full_key: str, fields: Dict[str, Any]) -> bool:
        """Overwrite editable fields of the task currently stored under `full_key`."""
        row = self._task_row(import_id, full_key)
        if row is None:
            return False
        for k, v in fields.items():
            if k in EDITABLE_FIELDS:
                setattr(row, k, list(v) if k == "assignees" else v)
        self.session.flush()
        return True

    def apply_snapshot_by_storage_id(self, snapshot: NormalizedTask) -> bool:
        """Write every snapshot field over the row with the snapshot's id.

        False when the row is gone or the write is rejected; the session is
        rolled back in the latter case so earlier committed state is intact.
        """
        if snapshot.id is None:
            return False
        try:
            row = self.session.get(TaskRow, snapshot.id)
            if row is None:
                return False
            for f in EDITABLE_FIELDS:
                value = getattr(snapshot, f)
                setattr(row, f, list(value) if f == "assignees" else value)
            self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning("Snapshot apply failed for task %s: %s", snapshot.id, e)
            return False
        return True

    # ---- command history ----

    def append_history_entry(self, entry: CommandHistoryEntry) -> int:
        row = CommandHistoryRow(
            import_id=entry.import_id,
            command_type=entry.command_type,
            task_id=entry.task_id,
            prev_state=entry.before.to_dict() if entry.before else None,
            next_state=entry.after.to_dict() if entry.after else None,
            undone=False,
            created_at=entry.created_at or datetime.now(timezone.utc),
        )
        self.session.add(row)
        self.session.flush()
        return row.id

    def read_history_entry(self, history_id: int) -> Optional[CommandHistoryEntry]:
        row = self.session.get(CommandHistoryRow, history_id)
        if row is None:
            return None
        return CommandHistoryEntry(
            id=row.id,
            import_id=row.import_id,
            command_type=row.command_type,
            task_id=row.task_id,
            before=parse_snapshot(row.prev_state),
            after=parse_snapshot(row.next_state),
            created_at=row.created_at,
        )

    def undo_target_id(self, import_id: int) -> Optional[int]:
        """Newest entry that is still applied."""
        row = (self.session.query(CommandHistoryRow)
               .filter_by(import_id=import_id, undone=False)
               .order_by(CommandHistoryRow.id.desc())
               .first())
        return row.id if row else None

    def redo_target_id(self, import_id: int) -> Optional[int]:
        """Oldest entry that has been undone."""
        row = (self.session.query(CommandHistoryRow)
               .filter_by(import_id=import_id, undone=True)
               .order_by(CommandHistoryRow.id.asc())
               .first())
        return row.id if row else None

    def mark_history_undone(self, history_id: int, undone: bool) -> None:
        row = self.session.get(CommandHistoryRow, history_id)
        if row is not None:
            row.undone = undone
            self.session.flush()

    def drop_redo_branch(self, import_id: int) -> List[int]:
        """Delete undone entries of an import; a new mutation supersedes them."""
        rows = self.session.query(CommandHistoryRow).filter_by(import_id=import_id, undone=True).all()
        ids = [r.id for r in rows]
        for r in rows:
            self.session.delete(r)
        if ids:
            self.session.flush()
            logger.info("Dropped %d superseded history entries for import %s", len(ids), import_id)
        return ids


def _json_safe(context: Dict[str, Any]) -> Dict[str, Any]:
    # warning contexts are diagnostic; anything json can't carry is stringified
    return json.loads(json.dumps(context or {}, default=str))
