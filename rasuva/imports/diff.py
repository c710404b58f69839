"""Field-level comparison between two task generations."""

from __future__ import annotations

from typing import Dict, Iterable, List

from rasuva.imports.types import (
    STATUS_INVALID,
    STATUS_UNSCHEDULED,
    DiffResult,
    DiffSummary,
    NormalizedTask,
)

# Fields that make a matched task count as "updated".
TRACKED_FIELDS = (
    "start",
    "end",
    "note",
    "raw_date",
    "member_name",
    "project_group",
    "status",
    "assignees",
)


def has_task_changed(prev: NormalizedTask, nxt: NormalizedTask) -> bool:
    return any(getattr(prev, f) != getattr(nxt, f) for f in TRACKED_FIELDS)


def diff_tasks(prev_tasks: Iterable[NormalizedTask], next_tasks: Iterable[NormalizedTask]) -> DiffResult:
    prev_tasks = list(prev_tasks)
    next_tasks = list(next_tasks)
    prev_by_key: Dict[str, NormalizedTask] = {t.task_key_full: t for t in prev_tasks}
    next_keys = {t.task_key_full for t in next_tasks}

    added: List[NormalizedTask] = []
    updated: List[NormalizedTask] = []
    for task in next_tasks:
        prev = prev_by_key.get(task.task_key_full)
        if prev is None:
            added.append(task)
        elif has_task_changed(prev, task):
            updated.append(task)

    archived = [t for t in prev_tasks if t.task_key_full not in next_keys]

    summary = DiffSummary(
        added=len(added),
        updated=len(updated),
        archived=len(archived),
        invalid=sum(1 for t in next_tasks if t.status == STATUS_INVALID),
        unscheduled=sum(1 for t in next_tasks if t.status == STATUS_UNSCHEDULED),
    )
    return DiffResult(summary=summary, added=added, updated=updated, archived=archived)
