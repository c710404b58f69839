# seed_data.py
import sys

from rasuva import create_app, db
from rasuva.imports.diff import diff_tasks
from rasuva.imports.generate import generate_normalized_tasks
from rasuva.imports.ingest.flat import tasks_to_raw_import
from rasuva.imports.ingest.normalize import normalize_import
from rasuva.imports.store import TaskStore

count = int(sys.argv[1]) if len(sys.argv) > 1 else 200

app = create_app()

with app.app_context():
    db.drop_all()
    db.create_all()

    raw = tasks_to_raw_import(
        generate_normalized_tasks(count, include_unscheduled=True, include_invalid=True)
    )
    normalized = normalize_import(raw)

    store = TaskStore()
    with store.transaction():
        import_id = store.insert_import(
            source="file",
            raw_json=raw.model_dump_json(),
            summary=normalized.summary,
            diff_summary=diff_tasks([], normalized.tasks).summary,
        )
        store.insert_tasks(import_id, normalized.tasks)
        store.insert_warnings(import_id, normalized.warnings)

    print(f"Seeded import {import_id}: {normalized.summary.total_tasks} tasks, "
          f"{len(normalized.warnings)} warnings")
