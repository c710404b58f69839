import json

import pytest

from rasuva import create_app, db
from rasuva.imports.diff import diff_tasks
from rasuva.imports.ingest.extract import extract_json_from_text
from rasuva.imports.ingest.normalize import normalize_import
from rasuva.imports.store import TaskStore


def make_doc(members):
    """members: {name: {project_id: [task dicts]}} -> import document dict."""
    out = []
    for name, projects in members.items():
        out.append({
            "name": name,
            "projects": [
                {"project_id": pid, "group": None, "tasks": [
                    {"task_name": t["task_name"], "start": t.get("start"), "end": t.get("end"),
                     "raw_date": t.get("raw_date", ""), "note": t.get("note"),
                     "assign": t.get("assign", [])}
                    for t in tasks
                ]}
                for pid, tasks in projects.items()
            ],
        })
    return {"members": out}


def make_text(members):
    return json.dumps(make_doc(members))


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'rasuva.db'}",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return TaskStore()


@pytest.fixture
def apply_text(store):
    """Run the whole pipeline on text and persist it; returns the import id."""
    def _apply(text, source="paste"):
        raw = extract_json_from_text(text)
        assert raw is not None
        normalized = normalize_import(raw)
        latest = store.latest_import_id()
        prev = store.tasks_by_import(latest) if latest else []
        with store.transaction():
            import_id = store.insert_import(source, raw.model_dump_json(), normalized.summary,
                                            diff_tasks(prev, normalized.tasks).summary)
            store.insert_tasks(import_id, normalized.tasks)
            store.insert_warnings(import_id, normalized.warnings)
        return import_id
    return _apply
