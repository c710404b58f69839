# rasuva/imports/history.py
"""Reversible single-task edits.

Each edit commits the task write and a history entry carrying full before and
after snapshots in one transaction. Undo/redo replay a snapshot onto the row
with the snapshot's storage id; full keys may have changed in between, so they
are never used to find the row.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from rasuva.imports.ingest.normalize import (
    normalize_assignees,
    parse_date_strict,
    to_trimmed,
)
from rasuva.imports.keys import allocate_task_key_full, build_task_key
from rasuva.imports.types import (
    STATUS_SCHEDULED,
    STATUS_UNSCHEDULED,
    CommandHistoryEntry,
    CommandResult,
    NormalizedTask,
    TaskUpdateInput,
)

logger = logging.getLogger(__name__)

TASK_UPDATE = "task_update"


def prepare_update_fields(intent: TaskUpdateInput) -> Tuple[Optional[Dict], Optional[str]]:
    """Validate an edit intent. Returns (fields, error)."""
    member_name = (intent.member_name or "").strip()
    project_id = (intent.project_id or "").strip()
    task_name = (intent.task_name or "").strip()
    if not member_name or not project_id or not task_name:
        return None, "Required fields are missing."

    start_raw = to_trimmed(intent.start)
    end_raw = to_trimmed(intent.end)
    start = None if start_raw is None else parse_date_strict(start_raw)
    end = None if end_raw is None else parse_date_strict(end_raw)
    if start_raw is not None and start is None:
        return None, "Invalid start date (expected YYYY-MM-DD)."
    if end_raw is not None and end is None:
        return None, "Invalid end date (expected YYYY-MM-DD)."

    if start is None or end is None:
        status, start, end = STATUS_UNSCHEDULED, None, None
    elif end < start:
        return None, "End date precedes start date."
    else:
        status = STATUS_SCHEDULED

    return {
        "member_name": member_name,
        "project_id": project_id,
        "project_group": to_trimmed(intent.project_group),
        "task_name": task_name,
        "assignees": normalize_assignees(intent.assignees, member_name),
        "start": start,
        "end": end,
        "note": to_trimmed(intent.note),
        "status": status,
    }, None


class CommandHistory:
    """Edit/undo/redo against a store (see rasuva.imports.store.TaskStore)."""

    def __init__(self, store):
        self.store = store

    # ---- status ----

    def status(self, import_id: int) -> Dict[str, bool]:
        return {
            "can_undo": self.store.undo_target_id(import_id) is not None,
            "can_redo": self.store.redo_target_id(import_id) is not None,
        }

    # ---- mutation ----

    def update_task(self, import_id: int, intent: TaskUpdateInput) -> CommandResult:
        fields, error = prepare_update_fields(intent)
        if error:
            return CommandResult.failed(error)

        try:
            with self.store.transaction():
                current = self.store.get_task_by_key(import_id, intent.current_task_key_full)
                if current is None:
                    return CommandResult.failed("Task not found.")

                base_key = build_task_key(fields["project_id"], fields["task_name"])
                if base_key == current.task_key:
                    full_key = current.task_key_full
                else:
                    full_key = self._allocate(import_id, base_key, current.task_key_full)

                fields.update(task_key=base_key, task_key_full=full_key)
                self.store.write_task(import_id, current.task_key_full, fields)
                committed = self.store.get_task_by_key(import_id, full_key)

                self.store.drop_redo_branch(import_id)
                history_id = self.store.append_history_entry(CommandHistoryEntry(
                    import_id=import_id,
                    command_type=TASK_UPDATE,
                    task_id=committed.id,
                    before=current,
                    after=committed,
                    created_at=datetime.now(timezone.utc),
                ))
        except SQLAlchemyError as e:
            logger.warning("Update of %s in import %s rejected: %s",
                           intent.current_task_key_full, import_id, e)
            return CommandResult.failed("Update failed.")

        logger.info("Task %s updated in import %s (history %s)", committed.id, import_id, history_id)
        return CommandResult(ok=True, task=committed, history_id=history_id)

    # ---- replay ----

    def undo(self, import_id: int) -> CommandResult:
        history_id = self.store.undo_target_id(import_id)
        if history_id is None:
            return CommandResult.failed("No undo history.")
        return self._replay(import_id, history_id, use_before=True)

    def redo(self, import_id: int) -> CommandResult:
        history_id = self.store.redo_target_id(import_id)
        if history_id is None:
            return CommandResult.failed("No redo history.")
        return self._replay(import_id, history_id, use_before=False)

    def _replay(self, import_id: int, history_id: int, use_before: bool) -> CommandResult:
        label = "Undo" if use_before else "Redo"
        entry = self.store.read_history_entry(history_id)
        if entry is None or entry.import_id != import_id:
            return CommandResult.failed("History entry not found.")

        snapshot = entry.before if use_before else entry.after
        if snapshot is None:
            return CommandResult.failed(f"{label} snapshot missing.")

        snapshot = self._resolve_snapshot_key(import_id, snapshot)
        if snapshot is None or not self.store.apply_snapshot_by_storage_id(snapshot):
            self.store.rollback()
            return CommandResult.failed(f"{label} failed.")

        self.store.mark_history_undone(history_id, use_before)
        self.store.commit()
        logger.info("%s applied history %s to task %s", label, history_id, snapshot.id)
        return CommandResult(ok=True, task=snapshot, history_id=history_id)

    def _allocate(self, import_id: int, base_key: str, current_full_key: str) -> str:
        siblings = self.store.list_tasks_sharing_base_key(import_id, base_key, current_full_key)
        occupied = self.store.occupied_full_keys(import_id, base_key, current_full_key)
        return allocate_task_key_full(base_key, current_full_key, siblings, occupied)

    def _resolve_snapshot_key(self, import_id: int, snapshot: NormalizedTask) -> Optional[NormalizedTask]:
        """Keep the snapshot's own full key unless another task now holds it."""
        if snapshot.id is None:
            return None
        row = self.store.get_task_by_id(snapshot.id)
        if row is None:
            return None
        holder = self.store.get_task_by_key(import_id, snapshot.task_key_full)
        if holder is None or holder.id == snapshot.id:
            return snapshot
        full_key = self._allocate(import_id, snapshot.task_key, row.task_key_full)
        logger.info("Snapshot key %s taken; replaying task %s as %s",
                    snapshot.task_key_full, snapshot.id, full_key)
        return replace(snapshot, task_key_full=full_key)
