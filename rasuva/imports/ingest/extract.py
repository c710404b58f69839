# rasuva/imports/ingest/extract.py
from __future__ import annotations

import json
import re
from typing import Dict, List, Optional, Tuple

from rasuva.imports.schema import RawImport, RawMember, RawProject, validate_raw_import


CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
MEMBERS_KEY = '"members"'

# scanner states
NORMAL, IN_STRING, ESCAPED = range(3)

_CLOSERS = {"{": "}", "[": "]"}


# -------------------------- candidates --------------------------

def extract_code_blocks(text: str) -> List[str]:
    blocks = []
    for m in CODE_BLOCK_RE.finditer(text):
        block = m.group(1).strip()
        if block:
            blocks.append(block)
    return blocks


def _is_members_key(text: str, index: int) -> bool:
    """True when a '"members"' literal starts at `index` and is used as a key."""
    if not text.startswith(MEMBERS_KEY, index):
        return False
    j = index + len(MEMBERS_KEY)
    while j < len(text) and text[j].isspace():
        j += 1
    return j < len(text) and text[j] == ":"


def extract_raw_blocks(text: str) -> List[str]:
    """Balanced (or truncated) `{...}` spans that contain a "members" key.

    The prose between candidates is not tokenized; inside a candidate the
    scanner tracks string literals so braces in string content are ignored.
    """
    blocks: List[str] = []
    length = len(text)
    index = 0

    while index < length:
        if text[index] != "{":
            index += 1
            continue

        start = index
        state = NORMAL
        found_members = False
        stack = ["{"]
        index += 1

        while index < length:
            ch = text[index]

            if state == ESCAPED:
                state = IN_STRING
            elif state == IN_STRING:
                if ch == "\\":
                    state = ESCAPED
                elif ch == '"':
                    state = NORMAL
            elif ch == '"':
                if not found_members and _is_members_key(text, index):
                    found_members = True
                state = IN_STRING
            elif ch in "{[":
                stack.append(ch)
            elif ch in "}]":
                # mismatched closers pop too
                if stack:
                    stack.pop()
                if not stack:
                    index += 1
                    if found_members:
                        blocks.append(text[start:index])
                    break
            index += 1

        if stack:
            # truncated: everything from the candidate start to end-of-text
            if found_members:
                blocks.append(text[start:])
            break

    return blocks


# -------------------------- repair --------------------------

def repair_json_text(text: str) -> str:
    """Close a dangling string and any still-open `{`/`[`, innermost first."""
    stack: List[str] = []
    state = NORMAL

    for ch in text:
        if state == ESCAPED:
            state = IN_STRING
        elif state == IN_STRING:
            if ch == "\\":
                state = ESCAPED
            elif ch == '"':
                state = NORMAL
        elif ch == '"':
            state = IN_STRING
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if stack and _CLOSERS[stack[-1]] == ch:
                stack.pop()

    tail = []
    if state != NORMAL:
        if state == ESCAPED:
            # a lone trailing backslash would escape the closing quote
            text = text[:-1]
        tail.append('"')
    tail.extend(_CLOSERS[opener] for opener in reversed(stack))
    return text + "".join(tail)


def parse_raw_import(text: str) -> Optional[RawImport]:
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    return validate_raw_import(payload)


# -------------------------- merge --------------------------

def merge_raw_imports(imports: List[RawImport]) -> RawImport:
    """Members by exact name, projects by exact project_id, tasks concatenated."""
    members: List[RawMember] = []
    member_index: Dict[str, Tuple[RawMember, Dict[Optional[str], RawProject]]] = {}

    for raw in imports:
        for member in raw.members:
            entry = member_index.get(member.name)
            if entry is None:
                entry = (RawMember(name=member.name, projects=[]), {})
                member_index[member.name] = entry
                members.append(entry[0])
            target_member, projects = entry

            for project in member.projects:
                target = projects.get(project.project_id)
                if target is None:
                    target = RawProject(
                        project_id=project.project_id,
                        group=project.group,
                        tasks=list(project.tasks),
                    )
                    projects[project.project_id] = target
                    target_member.projects.append(target)
                    continue
                if not target.group and project.group:
                    target.group = project.group
                target.tasks.extend(project.tasks)

    return RawImport(members=members)


def extract_json_from_text(text: str) -> Optional[RawImport]:
    """Recover one RawImport from noisy text, or None when nothing is recoverable."""
    if not text:
        return None

    blocks = extract_code_blocks(text) or extract_raw_blocks(text)

    seen = set()
    repaired_blocks = []
    for block in blocks:
        repaired = repair_json_text(block.strip())
        if repaired and repaired not in seen:
            seen.add(repaired)
            repaired_blocks.append(repaired)

    parsed = [p for p in (parse_raw_import(b) for b in repaired_blocks) if p is not None]
    if not parsed:
        return None
    if len(parsed) == 1:
        return parsed[0]
    return merge_raw_imports(parsed)
