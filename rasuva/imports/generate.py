"""Deterministic synthetic task sets for seeding and load checks."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List

from rasuva.imports.keys import build_task_key
from rasuva.imports.types import (
    STATUS_INVALID,
    STATUS_SCHEDULED,
    STATUS_UNSCHEDULED,
    NormalizedTask,
)


def generate_normalized_tasks(count: int, member_count: int = 8, project_count: int = 6,
                              start_date: str = "2024-01-01", max_duration_days: int = 10,
                              include_unscheduled: bool = False,
                              include_invalid: bool = False) -> List[NormalizedTask]:
    base = date.fromisoformat(start_date)
    members = [f"Member-{i + 1}" for i in range(member_count)]
    projects = [f"P-{i + 1:02d}" for i in range(project_count)]

    tasks = []
    for i in range(count):
        project_id = projects[i % project_count]
        task_name = f"Task-{i + 1}"
        start = base + timedelta(days=i % 180)
        end = start + timedelta(days=i % max_duration_days)

        status = STATUS_SCHEDULED
        start_iso, end_iso = start.isoformat(), end.isoformat()
        raw_date = f"{start_iso} - {end_iso}"
        if include_unscheduled and i % 25 == 0:
            status, start_iso, end_iso, raw_date = STATUS_UNSCHEDULED, None, None, "unscheduled"
        elif include_invalid and i % 40 == 0:
            status, start_iso, end_iso, raw_date = STATUS_INVALID, None, None, "invalid_date"

        key = build_task_key(project_id, task_name)
        tasks.append(NormalizedTask(
            task_key=key,
            task_key_full=key,
            member_name=members[i % member_count],
            project_id=project_id,
            project_group=None,
            task_name=task_name,
            assignees=[],
            start=start_iso,
            end=end_iso,
            raw_date=raw_date,
            note=None,
            status=status,
        ))
    return tasks
