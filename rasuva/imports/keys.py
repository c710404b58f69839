"""Identity key helpers.

A task's base key is ``<project_id>::<task_name>``. Several tasks of one import
may share a base key; their full keys disambiguate them as ``base``,
``base#2``, ``base#3``...
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, Optional, Set, Tuple

KEY_SEPARATOR = "::"
SUFFIX_SEPARATOR = "#"


def build_task_key(project_id: str, task_name: str) -> str:
    return f"{project_id}{KEY_SEPARATOR}{task_name}"


def _slot_key(base_key: str, n: int) -> str:
    return base_key if n == 1 else f"{base_key}{SUFFIX_SEPARATOR}{n}"


def next_occurrence_key(base_key: str, counts: Dict[str, int],
                        taken: Optional[Set[str]] = None) -> Tuple[str, int]:
    """First-seen numbering during one normalization pass.

    `counts` and `taken` are owned by the caller and scoped to a single import.
    A slot whose key was already handed out (e.g. a literal "b#2" task name)
    is skipped. Returns (full_key, occurrence).
    """
    occurrence = counts.get(base_key, 0) + 1
    full_key = _slot_key(base_key, occurrence)
    if taken is not None:
        while full_key in taken:
            occurrence += 1
            full_key = _slot_key(base_key, occurrence)
        taken.add(full_key)
    counts[base_key] = occurrence
    return full_key, occurrence


def suffix_number(base_key: str, full_key: str) -> Optional[int]:
    """Slot occupied by `full_key` under `base_key`; bare base is slot 1."""
    if full_key == base_key:
        return 1
    m = re.fullmatch(re.escape(base_key + SUFFIX_SEPARATOR) + r"(\d+)", full_key)
    return int(m.group(1)) if m else None


def allocate_task_key_full(base_key: str, current_full_key: Optional[str],
                           sibling_full_keys: Iterable[str],
                           occupied_full_keys: Iterable[str] = ()) -> str:
    """Full key for a task being (re)keyed onto `base_key`.

    `sibling_full_keys` are the full keys of the other tasks in the same import
    whose base key equals `base_key`; the edited task's own key is ignored if
    present. `occupied_full_keys` are keys held by tasks under a different
    base key that still spell a slot of `base_key`; those slots are skipped.
    """
    used = set()
    for key in sibling_full_keys:
        if key == current_full_key:
            continue
        n = suffix_number(base_key, key)
        if n is not None:
            used.add(n)
    blocked = {k for k in occupied_full_keys if k != current_full_key}

    n = 1
    while n in used or _slot_key(base_key, n) in blocked:
        n += 1
    return _slot_key(base_key, n)
