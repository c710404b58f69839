# rasuva/imports/ingest/flat.py
"""Conversions between flat task rows / stored tasks and the nested import document."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from rasuva.imports.ingest.normalize import UNKNOWN_MEMBER, build_raw_date, to_trimmed
from rasuva.imports.schema import RawImport, RawMember, RawProject, RawTask
from rasuva.imports.types import NormalizedTask

FLAT_COLUMNS = [
    "member_name", "project_id", "project_group", "task_name",
    "assignees", "start", "end", "note", "raw_date",
]


class _Grouper:
    """Member -> project buckets in encounter order; first non-blank group wins."""

    def __init__(self):
        self.members: List[RawMember] = []
        self._index: Dict[str, Tuple[RawMember, Dict[Optional[str], RawProject]]] = {}

    def project(self, member_name: str, project_id: Optional[str], group: Optional[str]) -> RawProject:
        entry = self._index.get(member_name)
        if entry is None:
            entry = (RawMember(name=member_name, projects=[]), {})
            self._index[member_name] = entry
            self.members.append(entry[0])
        member, projects = entry

        project = projects.get(project_id)
        if project is None:
            project = RawProject(project_id=project_id, group=group, tasks=[])
            projects[project_id] = project
            member.projects.append(project)
        elif not project.group and group:
            project.group = group
        return project

    def result(self) -> RawImport:
        return RawImport(members=self.members)


def _as_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    return to_trimmed(v if isinstance(v, str) else str(v))


def flat_rows_to_raw_import(rows: Iterable[Dict[str, Any]]) -> RawImport:
    """Group spreadsheet-shaped rows into a members/projects/tasks document.

    A blank project id is kept as None so normalization reports the project.
    """
    grouper = _Grouper()
    for row in rows:
        member_name = _as_str(row.get("member_name")) or UNKNOWN_MEMBER
        project_id = _as_str(row.get("project_id"))
        project = grouper.project(member_name, project_id, _as_str(row.get("project_group")))

        start = _as_str(row.get("start"))
        end = _as_str(row.get("end"))
        assignees = row.get("assignees") or []
        if isinstance(assignees, str):
            assignees = assignees.split(",")
        project.tasks.append(RawTask(
            task_name=_as_str(row.get("task_name")) or "",
            start=start,
            end=end,
            raw_date=build_raw_date(start, end, _as_str(row.get("raw_date"))),
            note=_as_str(row.get("note")),
            assign=[a.strip() for a in assignees if isinstance(a, str) and a.strip()],
        ))
    return grouper.result()


def tasks_to_raw_import(tasks: Iterable[NormalizedTask]) -> RawImport:
    """Rebuild the nested document from stored tasks (JSON export)."""
    grouper = _Grouper()
    for task in tasks:
        member_name = to_trimmed(task.member_name) or UNKNOWN_MEMBER
        project = grouper.project(member_name, to_trimmed(task.project_id),
                                  to_trimmed(task.project_group))
        project.tasks.append(RawTask(
            task_name=to_trimmed(task.task_name) or "",
            start=task.start,
            end=task.end,
            raw_date=build_raw_date(task.start, task.end, task.raw_date),
            note=to_trimmed(task.note),
            assign=list(task.assignees or []),
        ))
    return grouper.result()
