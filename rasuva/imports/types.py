"""Core value records passed between the import pipeline stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

STATUS_SCHEDULED = "scheduled"
STATUS_UNSCHEDULED = "unscheduled"
STATUS_INVALID = "invalid_date"
TASK_STATUSES = (STATUS_SCHEDULED, STATUS_UNSCHEDULED, STATUS_INVALID)

WARNING_CODES = (
    "project_id_missing",
    "duplicate_task_key",
    "invalid_date_format",
    "date_range_invalid",
    "partial_date",
)


@dataclass
class NormalizedTask:
    """Canonical task record; `task_key_full` is unique within one import."""

    task_key: str
    task_key_full: str
    member_name: str
    project_id: str
    project_group: Optional[str]
    task_name: str
    assignees: List[str]
    start: Optional[str]
    end: Optional[str]
    raw_date: str
    note: Optional[str]
    status: str
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["assignees"] = list(self.assignees)
        return out


@dataclass
class ImportWarning:
    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.code not in WARNING_CODES:
            raise ValueError(f"Unknown warning code {self.code!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": dict(self.context)}


@dataclass(frozen=True)
class ImportSummary:
    total_members: int = 0
    total_projects: int = 0
    total_tasks: int = 0
    scheduled_count: int = 0
    unscheduled_count: int = 0
    invalid_count: int = 0
    warnings_count: int = 0
    skipped_projects: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class NormalizeResult:
    tasks: List[NormalizedTask]
    warnings: List[ImportWarning]
    summary: ImportSummary


@dataclass(frozen=True)
class DiffSummary:
    added: int = 0
    updated: int = 0
    archived: int = 0
    invalid: int = 0
    unscheduled: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class DiffResult:
    summary: DiffSummary
    added: List[NormalizedTask] = field(default_factory=list)
    updated: List[NormalizedTask] = field(default_factory=list)
    archived: List[NormalizedTask] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "added": [t.to_dict() for t in self.added],
            "updated": [t.to_dict() for t in self.updated],
            "archived": [t.to_dict() for t in self.archived],
        }


@dataclass
class TaskUpdateInput:
    """Edit intent for one task, addressed by its current full key."""

    current_task_key_full: str
    member_name: str
    project_id: str
    project_group: Optional[str]
    task_name: str
    start: Optional[str]
    end: Optional[str]
    note: Optional[str]
    assignees: List[str] = field(default_factory=list)


@dataclass
class CommandHistoryEntry:
    import_id: int
    command_type: str
    task_id: Optional[int]
    before: Optional[NormalizedTask]
    after: Optional[NormalizedTask]
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class CommandResult:
    """Outcome of an edit/undo/redo; `ok` False carries a reason in `error`."""

    ok: bool
    task: Optional[NormalizedTask] = None
    error: Optional[str] = None
    history_id: Optional[int] = None

    @classmethod
    def failed(cls, error: str) -> "CommandResult":
        return cls(ok=False, error=error)
