# rasuva/imports/ingest/normalize.py
from __future__ import annotations

import calendar
import re
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from rasuva.imports.keys import build_task_key, next_occurrence_key
from rasuva.imports.schema import RawImport
from rasuva.imports.types import (
    STATUS_INVALID,
    STATUS_SCHEDULED,
    STATUS_UNSCHEDULED,
    ImportSummary,
    ImportWarning,
    NormalizedTask,
    NormalizeResult,
)

DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")

UNKNOWN_MEMBER = "Unknown"
UNTITLED_TASK = "Untitled task"
RAW_DATE_PLACEHOLDER = "TBD"


# -------------------------- helpers --------------------------

def to_trimmed(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    return s or None


def parse_date_strict(value: str) -> Optional[str]:
    """Return `value` if it is an exact, real YYYY-MM-DD calendar date."""
    if not isinstance(value, str) or not DATE_RE.fullmatch(value):
        return None
    year, month, day = (int(p) for p in value.split("-"))
    if month < 1 or month > 12:
        return None
    if day < 1 or day > calendar.monthrange(year, month)[1]:
        return None
    return value


def normalize_assignees(values: Optional[Iterable[str]], member_name: Optional[str] = None) -> List[str]:
    """Trim, drop blanks and the owning member, dedupe in first-seen order."""
    out: List[str] = []
    for v in values or []:
        s = (v or "").strip()
        if not s or s == member_name or s in out:
            continue
        out.append(s)
    return out


def build_raw_date(start: Optional[str], end: Optional[str], raw_date: Optional[str]) -> str:
    if raw_date and raw_date.strip():
        return raw_date
    if start and end:
        return start if start == end else f"{start}..{end}"
    return start or end or RAW_DATE_PLACEHOLDER


def classify_dates(start_raw: Optional[str], end_raw: Optional[str],
                   warnings: List[ImportWarning], context: Dict[str, Any]
                   ) -> Tuple[str, Optional[str], Optional[str]]:
    """Returns (status, start, end), appending at most one warning."""
    start = None if start_raw is None else parse_date_strict(start_raw)
    end = None if end_raw is None else parse_date_strict(end_raw)

    if start_raw is not None and start is None:
        warnings.append(ImportWarning(
            "invalid_date_format",
            "Invalid start date format (expected YYYY-MM-DD).",
            {**context, "value": start_raw},
        ))
        return STATUS_INVALID, None, None

    if end_raw is not None and end is None:
        warnings.append(ImportWarning(
            "invalid_date_format",
            "Invalid end date format (expected YYYY-MM-DD).",
            {**context, "value": end_raw},
        ))
        return STATUS_INVALID, None, None

    if start is None or end is None:
        if start != end:
            warnings.append(ImportWarning(
                "partial_date",
                "Start or end date is missing; task treated as unscheduled.",
                dict(context),
            ))
        return STATUS_UNSCHEDULED, None, None

    # ISO strings order the same way as the dates they spell
    if end < start:
        warnings.append(ImportWarning(
            "date_range_invalid",
            "End date precedes start date; task treated as invalid.",
            {**context, "start": start, "end": end},
        ))
        return STATUS_INVALID, None, None

    return STATUS_SCHEDULED, start, end


# -------------------------- normalize --------------------------

def normalize_import(raw: RawImport) -> NormalizeResult:
    """Turn one recovered document into canonical tasks. Never raises on bad rows."""
    warnings: List[ImportWarning] = []
    tasks: List[NormalizedTask] = []
    key_counts: Dict[str, int] = {}
    emitted_keys: Set[str] = set()

    total_projects = 0
    skipped_projects = 0
    counts = {STATUS_SCHEDULED: 0, STATUS_UNSCHEDULED: 0, STATUS_INVALID: 0}

    for member in raw.members:
        member_name = to_trimmed(member.name) or UNKNOWN_MEMBER

        for project in member.projects:
            project_id = to_trimmed(project.project_id)
            if not project_id:
                warnings.append(ImportWarning(
                    "project_id_missing",
                    "Project ID is missing; project skipped.",
                    {"member": member_name, "tasks": len(project.tasks)},
                ))
                skipped_projects += 1
                continue

            total_projects += 1
            project_group = to_trimmed(project.group)

            for task in project.tasks:
                task_name = to_trimmed(task.task_name) or UNTITLED_TASK
                base_key = build_task_key(project_id, task_name)
                task_key_full, occurrence = next_occurrence_key(base_key, key_counts, emitted_keys)
                if occurrence > 1:
                    warnings.append(ImportWarning(
                        "duplicate_task_key",
                        f"Duplicate task key detected (occurrence {occurrence}); "
                        "suffixed to keep uniqueness.",
                        {"taskKey": base_key, "member": member_name, "occurrence": occurrence},
                    ))

                start_raw = to_trimmed(task.start)
                end_raw = to_trimmed(task.end)
                status, start, end = classify_dates(
                    start_raw, end_raw, warnings,
                    {"task": task_name, "projectId": project_id, "member": member_name},
                )
                counts[status] += 1

                tasks.append(NormalizedTask(
                    task_key=base_key,
                    task_key_full=task_key_full,
                    member_name=member_name,
                    project_id=project_id,
                    project_group=project_group,
                    task_name=task_name,
                    assignees=normalize_assignees(task.assign, member_name),
                    start=start,
                    end=end,
                    raw_date=build_raw_date(start_raw, end_raw, task.raw_date),
                    note=to_trimmed(task.note),
                    status=status,
                ))

    summary = ImportSummary(
        total_members=len(raw.members),
        total_projects=total_projects,
        total_tasks=len(tasks),
        scheduled_count=counts[STATUS_SCHEDULED],
        unscheduled_count=counts[STATUS_UNSCHEDULED],
        invalid_count=counts[STATUS_INVALID],
        warnings_count=len(warnings),
        skipped_projects=skipped_projects,
    )
    return NormalizeResult(tasks=tasks, warnings=warnings, summary=summary)
