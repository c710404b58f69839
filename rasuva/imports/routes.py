# rasuva/imports/routes.py
import json

from flask import Blueprint, current_app, jsonify, request

from rasuva.imports.diff import diff_tasks
from rasuva.imports.history import CommandHistory
from rasuva.imports.ingest.extract import extract_json_from_text
from rasuva.imports.ingest.flat import flat_rows_to_raw_import, tasks_to_raw_import
from rasuva.imports.ingest.normalize import normalize_import
from rasuva.imports.ingest.workbook import read_task_rows_from_workbook
from rasuva.imports.schema import parse_import_json
from rasuva.imports.store import TaskStore
from rasuva.imports.types import TaskUpdateInput

imports_api_bp = Blueprint("imports_api", __name__, url_prefix="/api")

SOURCES = ("paste", "file", "excel")
NO_DOCUMENT = "No JSON document with a \"members\" list could be recovered from the text."


# ---- helpers ----

def _error(message, status=400, **extra):
    return jsonify({"ok": False, "error": message, **extra}), status


def _json_body():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else None


def _input_text(payload):
    """Returns (text, error_response)."""
    text = payload.get("text", payload.get("json_text"))
    if not isinstance(text, str) or not text.strip():
        return None, _error("'text' must be a non-empty string")
    limit = current_app.config["RASUVA_MAX_TEXT_CHARS"]
    if len(text) > limit:
        return None, _error(f"Text exceeds {limit} characters", 413)
    return text, None


def _recover(text, strict=False):
    """Returns (raw_import, error_response).

    Strict mode parses the text as one well-formed document and reports every
    schema issue; otherwise the text goes through recovery.
    """
    if strict:
        raw, issues = parse_import_json(text)
        if raw is None:
            current_app.logger.warning(f"Strict import rejected: {len(issues)} issue(s)")
            return None, _error("Import document is not valid.", 422, issues=issues)
        return raw, None
    raw = extract_json_from_text(text)
    if raw is None:
        current_app.logger.warning("Import text rejected: no recoverable document")
        return None, _error(NO_DOCUMENT, 422)
    return raw, None


def _resolve_import(store, import_ref):
    """'latest' or a numeric id -> (import_id, error_response)."""
    if import_ref == "latest":
        import_id = store.latest_import_id()
        return import_id, None
    try:
        import_id = int(import_ref)
    except (TypeError, ValueError):
        return None, _error(f"Invalid import id {import_ref!r}")
    if store.get_import(import_id) is None:
        return None, _error(f"Import {import_id} not found", 404)
    return import_id, None


# ---- preview / apply ----

@imports_api_bp.post("/imports/preview")
def preview_import():
    payload = _json_body()
    if payload is None:
        return _error("Send a JSON object")
    text, err = _input_text(payload)
    if err:
        return err

    raw, err = _recover(text, strict=bool(payload.get("strict")))
    if err:
        return err

    normalized = normalize_import(raw)
    return jsonify({
        "ok": True,
        "preview": {
            "summary": normalized.summary.to_dict(),
            "warnings": [w.to_dict() for w in normalized.warnings],
        },
        "json_text": raw.model_dump_json(indent=2),
    })


@imports_api_bp.post("/imports/excel/preview")
def preview_excel_import():
    f = request.files.get("file")
    if f is None or not f.filename:
        return _error("No file uploaded")

    rows, error = read_task_rows_from_workbook(f.stream)
    if error:
        current_app.logger.warning(f"Workbook {f.filename} rejected: {error}")
        return _error(error)

    raw = flat_rows_to_raw_import(rows)
    normalized = normalize_import(raw)
    return jsonify({
        "ok": True,
        "filename": f.filename,
        "preview": {
            "summary": normalized.summary.to_dict(),
            "warnings": [w.to_dict() for w in normalized.warnings],
        },
        "json_text": raw.model_dump_json(indent=2),
    })


@imports_api_bp.post("/imports")
def apply_import():
    payload = _json_body()
    if payload is None:
        return _error("Send a JSON object")
    text, err = _input_text(payload)
    if err:
        return err
    source = (payload.get("source") or "paste").strip().lower()
    if source not in SOURCES:
        return _error(f"'source' must be one of {', '.join(SOURCES)}")

    raw, err = _recover(text, strict=bool(payload.get("strict")))
    if err:
        return err

    store = TaskStore()
    normalized = normalize_import(raw)
    latest_id = store.latest_import_id()
    prev_tasks = store.tasks_by_import(latest_id) if latest_id else []
    diff = diff_tasks(prev_tasks, normalized.tasks)

    with store.transaction():
        import_id = store.insert_import(
            source=source,
            raw_json=raw.model_dump_json(),
            summary=normalized.summary,
            diff_summary=diff.summary,
        )
        store.insert_tasks(import_id, normalized.tasks)
        store.insert_warnings(import_id, normalized.warnings)

    current_app.logger.info(
        f"Import {import_id} committed: {normalized.summary.total_tasks} tasks, "
        f"{len(normalized.warnings)} warnings"
    )
    return jsonify({
        "ok": True,
        "result": {
            "import_id": import_id,
            "summary": normalized.summary.to_dict(),
            "diff": diff.to_dict(),
        },
    }), 201


# ---- generations ----

@imports_api_bp.get("/imports")
def list_imports():
    store = TaskStore()
    return jsonify({"ok": True, "imports": [r.to_dict() for r in store.list_imports()]})


@imports_api_bp.get("/imports/<int:import_id>")
def get_import(import_id):
    rec = TaskStore().get_import(import_id)
    if rec is None:
        return _error(f"Import {import_id} not found", 404)
    return jsonify({"ok": True, "import": rec.to_dict()})


@imports_api_bp.get("/imports/<import_ref>/diff")
def get_diff(import_ref):
    store = TaskStore()
    import_id, err = _resolve_import(store, import_ref)
    if err:
        return err
    if import_id is None:
        return jsonify({"ok": True, "import_id": None, "diff": diff_tasks([], []).to_dict()})

    prev_id = store.previous_import_id(import_id)
    current = store.tasks_by_import(import_id)
    previous = store.tasks_by_import(prev_id) if prev_id else []
    return jsonify({
        "ok": True,
        "import_id": import_id,
        "previous_import_id": prev_id,
        "diff": diff_tasks(previous, current).to_dict(),
    })


@imports_api_bp.get("/imports/<import_ref>/tasks")
def get_tasks(import_ref):
    store = TaskStore()
    import_id, err = _resolve_import(store, import_ref)
    if err:
        return err
    tasks = store.tasks_by_import(import_id) if import_id else []
    return jsonify({"ok": True, "import_id": import_id, "tasks": [t.to_dict() for t in tasks]})


@imports_api_bp.get("/imports/<int:import_id>/warnings")
def get_warnings(import_id):
    store = TaskStore()
    if store.get_import(import_id) is None:
        return _error(f"Import {import_id} not found", 404)
    warnings = store.warnings_by_import(import_id)
    return jsonify({"ok": True, "warnings": [w.to_dict() for w in warnings]})


@imports_api_bp.get("/imports/<int:import_id>/export.json")
def export_json(import_id):
    store = TaskStore()
    if store.get_import(import_id) is None:
        return _error(f"Import {import_id} not found", 404)
    raw = tasks_to_raw_import(store.tasks_by_import(import_id))
    resp = current_app.response_class(
        json.dumps(raw.model_dump(), ensure_ascii=False, indent=2),
        mimetype="application/json",
    )
    resp.headers["Content-Disposition"] = f'attachment; filename="rasuva_export_{import_id}.json"'
    return resp


# ---- edits & history ----

@imports_api_bp.patch("/imports/<int:import_id>/tasks")
def update_task(import_id):
    store = TaskStore()
    if store.get_import(import_id) is None:
        return _error(f"Import {import_id} not found", 404)

    data = _json_body()
    if data is None:
        return _error("Send a JSON object")
    current_key = data.get("current_task_key_full")
    if not isinstance(current_key, str) or not current_key:
        return _error("'current_task_key_full' is required")
    assignees = data.get("assignees") or []
    if not isinstance(assignees, list) or not all(isinstance(a, str) for a in assignees):
        return _error("'assignees' must be a list of strings")
    for k in ("member_name", "project_id", "task_name", "project_group", "start", "end", "note"):
        if data.get(k) is not None and not isinstance(data[k], str):
            return _error(f"'{k}' must be a string or null")

    intent = TaskUpdateInput(
        current_task_key_full=current_key,
        member_name=data.get("member_name") or "",
        project_id=data.get("project_id") or "",
        project_group=data.get("project_group"),
        task_name=data.get("task_name") or "",
        start=data.get("start"),
        end=data.get("end"),
        note=data.get("note"),
        assignees=assignees,
    )
    result = CommandHistory(store).update_task(import_id, intent)
    if not result.ok:
        status = 404 if result.error == "Task not found." else 400
        return _error(result.error, status)
    return jsonify({"ok": True, "task": result.task.to_dict(), "history_id": result.history_id})


@imports_api_bp.get("/imports/<int:import_id>/history")
def history_status(import_id):
    store = TaskStore()
    if store.get_import(import_id) is None:
        return _error(f"Import {import_id} not found", 404)
    return jsonify({"ok": True, **CommandHistory(store).status(import_id)})


def _replay(import_id, action):
    store = TaskStore()
    if store.get_import(import_id) is None:
        return _error(f"Import {import_id} not found", 404)
    history = CommandHistory(store)
    result = history.undo(import_id) if action == "undo" else history.redo(import_id)
    if not result.ok:
        current_app.logger.warning(f"{action} on import {import_id} not applied: {result.error}")
        return _error(result.error, 409)
    return jsonify({"ok": True, "task": result.task.to_dict(), **history.status(import_id)})


@imports_api_bp.post("/imports/<int:import_id>/history/undo")
def history_undo(import_id):
    return _replay(import_id, "undo")


@imports_api_bp.post("/imports/<int:import_id>/history/redo")
def history_redo(import_id):
    return _replay(import_id, "redo")
