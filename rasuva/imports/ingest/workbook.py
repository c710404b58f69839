# rasuva/imports/ingest/workbook.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import load_workbook

from rasuva.imports.ingest.flat import FLAT_COLUMNS

TASKS_SHEET = "tasks"
REQUIRED_COLUMNS = ("member_name", "project_id", "task_name")
EXCEL_EPOCH = datetime(1899, 12, 30)


# -------------------------- helpers --------------------------

def _clean_cell(v) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date().isoformat()
    if isinstance(v, date):
        return v.isoformat()
    s = v.strip() if isinstance(v, str) else str(v).strip()
    return s or None


def _date_cell(v) -> Optional[str]:
    # openpyxl hands back datetimes for date-formatted cells; bare serials stay numeric
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return (EXCEL_EPOCH + timedelta(days=float(v))).date().isoformat()
    return _clean_cell(v)


def _assignees_cell(v) -> List[str]:
    s = _clean_cell(v)
    if not s:
        return []
    return [p.strip() for p in s.split(",") if p.strip()]


# -------------------------- parsing --------------------------

def read_task_rows_from_workbook(stream) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """
    Returns (rows, error). Rows carry the flat task columns; error is a
    human-readable reason when the workbook can't be used.
    """
    data = stream.read() if hasattr(stream, "read") else stream
    try:
        wb = load_workbook(filename=BytesIO(data), data_only=True, read_only=True)
    except Exception as e:
        return [], f"Could not read workbook: {e}"

    try:
        ws = next((w for w in wb.worksheets if w.title.strip().lower() == TASKS_SHEET), None)
        if ws is None:
            return [], 'Sheet "Tasks" not found.'

        row_iter = ws.iter_rows(values_only=True)
        header_cells = next(row_iter, None) or ()
        header: Dict[str, int] = {}
        for j, h in enumerate(header_cells):
            name = _clean_cell(h)
            if name:
                header.setdefault(name.lower(), j)

        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            return [], f"Required columns missing: {', '.join(missing)}"

        def cell(r, col):
            j = header.get(col)
            return r[j] if j is not None and j < len(r) else None

        rows: List[Dict[str, Any]] = []
        for r in row_iter:
            rec: Dict[str, Any] = {}
            for col in FLAT_COLUMNS:
                if col in ("start", "end"):
                    rec[col] = _date_cell(cell(r, col))
                elif col == "assignees":
                    rec[col] = _assignees_cell(cell(r, col))
                else:
                    rec[col] = _clean_cell(cell(r, col))
            if not any(rec[c] for c in REQUIRED_COLUMNS):
                continue
            rows.append(rec)
        return rows, None
    finally:
        wb.close()
