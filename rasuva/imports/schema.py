"""Pydantic schemas for recovered import documents and stored task snapshots."""

from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, StrictInt, StrictStr, ValidationError

from rasuva.imports.types import TASK_STATUSES, NormalizedTask


class RawTask(BaseModel):
    task_name: StrictStr
    start: Optional[StrictStr]
    end: Optional[StrictStr]
    raw_date: StrictStr
    note: Optional[StrictStr] = None
    assign: Optional[List[StrictStr]] = None


class RawProject(BaseModel):
    project_id: Optional[StrictStr]
    group: Optional[StrictStr] = None
    tasks: List[RawTask]


class RawMember(BaseModel):
    name: StrictStr
    projects: List[RawProject]


class RawImport(BaseModel):
    members: List[RawMember]


class TaskSnapshot(BaseModel):
    id: Optional[StrictInt] = None
    task_key: StrictStr
    task_key_full: StrictStr
    member_name: StrictStr
    project_id: StrictStr
    project_group: Optional[StrictStr] = None
    task_name: StrictStr
    assignees: List[StrictStr] = []
    start: Optional[StrictStr] = None
    end: Optional[StrictStr] = None
    raw_date: StrictStr
    note: Optional[StrictStr] = None
    status: StrictStr


def validate_raw_import(payload: Any) -> Optional[RawImport]:
    """Schema-check an already parsed document; None when the shape is wrong."""
    try:
        return RawImport.model_validate(payload)
    except ValidationError:
        return None


def parse_import_json(json_text: str) -> Tuple[Optional[RawImport], List[str]]:
    """Strictly parse well-formed JSON text. Returns (raw_import, issues)."""
    try:
        payload = json.loads(json_text)
    except (TypeError, ValueError) as e:
        return None, [f"Invalid JSON: {e}"]
    try:
        return RawImport.model_validate(payload), []
    except ValidationError as e:
        issues = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            issues.append(f"{loc}: {err.get('msg')}")
        return None, issues


def parse_snapshot(payload: Any) -> Optional[NormalizedTask]:
    """Loose structural check of a stored snapshot.

    Accepts a dict or JSON text. Anything unreadable or of the wrong shape
    comes back as None, which callers treat the same as a missing snapshot.
    """
    if payload is None:
        return None
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            return None
    try:
        snap = TaskSnapshot.model_validate(payload)
    except ValidationError:
        return None
    if snap.status not in TASK_STATUSES:
        return None
    return NormalizedTask(**snap.model_dump())
