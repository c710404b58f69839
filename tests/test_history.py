import pytest
from sqlalchemy.exc import IntegrityError

from rasuva.extensions import db
from rasuva.imports.history import CommandHistory, prepare_update_fields
from rasuva.imports.types import TaskUpdateInput
from rasuva.models import CommandHistoryRow, TaskRow

from .conftest import make_text


@pytest.fixture
def import_id(apply_text):
    return apply_text(make_text({
        "Alice": {"P1": [
            {"task_name": "Design", "start": "2024-01-01", "end": "2024-01-05", "raw_date": "wk1",
             "assign": ["Bob"]},
            {"task_name": "Review"},
            {"task_name": "Review"},
        ]},
        "Bob": {"P1": [{"task_name": "Build", "note": "phase 1"}]},
    }))


@pytest.fixture
def history(store):
    return CommandHistory(store)


def intent(current, **kw):
    fields = dict(member_name="Alice", project_id="P1", project_group=None, task_name="Design",
                  start="2024-01-01", end="2024-01-05", note=None, assignees=["Bob"])
    fields.update(kw)
    return TaskUpdateInput(current_task_key_full=current, **fields)


def keys(store, import_id):
    return sorted(t.task_key_full for t in store.tasks_by_import(import_id))


def test_prepare_update_fields_validation():
    assert prepare_update_fields(intent("x", member_name=" "))[1] == "Required fields are missing."
    assert prepare_update_fields(intent("x", start="2024-02-30"))[1] == \
        "Invalid start date (expected YYYY-MM-DD)."
    assert prepare_update_fields(intent("x", end="soon"))[1] == "Invalid end date (expected YYYY-MM-DD)."
    assert prepare_update_fields(intent("x", start="2024-01-09"))[1] == "End date precedes start date."

    fields, error = prepare_update_fields(intent("x", end=" ", task_name=" Design ",
                                                 assignees=["Alice", " Carol", "Carol"]))
    assert error is None
    assert fields["task_name"] == "Design"
    assert (fields["status"], fields["start"], fields["end"]) == ("unscheduled", None, None)
    assert fields["assignees"] == ["Carol"]


def test_edit_in_place_keeps_key_and_records_history(store, history, import_id):
    result = history.update_task(import_id, intent("P1::Design", note="kickoff", end="2024-01-07"))
    assert result.ok
    assert result.task.task_key_full == "P1::Design"
    assert result.task.note == "kickoff"
    assert result.task.raw_date == "wk1"
    assert history.status(import_id) == {"can_undo": True, "can_redo": False}

    entry = store.read_history_entry(result.history_id)
    assert entry.before.note is None
    assert entry.after.end == "2024-01-07"
    assert entry.task_id == result.task.id


def test_rename_onto_taken_base_key_gets_next_slot(store, history, import_id):
    result = history.update_task(import_id, intent("P1::Build", member_name="Bob", task_name="Review",
                                                   start=None, end=None, assignees=[]))
    assert result.ok
    assert result.task.task_key == "P1::Review"
    assert result.task.task_key_full == "P1::Review#3"
    assert keys(store, import_id) == ["P1::Design", "P1::Review", "P1::Review#2", "P1::Review#3"]


def test_rename_reuses_free_first_slot(store, history, import_id):
    assert history.update_task(import_id, intent("P1::Review", task_name="Audit", start=None, end=None)).ok
    result = history.update_task(import_id, intent("P1::Build", member_name="Bob", task_name="Review",
                                                   start=None, end=None))
    assert result.task.task_key_full == "P1::Review"


def test_unknown_task_and_invalid_intent_fail_without_history(history, import_id):
    assert history.update_task(import_id, intent("P1::Nope")).error == "Task not found."
    assert history.update_task(import_id, intent("P1::Design", start="2024-01-09")).ok is False
    assert history.status(import_id) == {"can_undo": False, "can_redo": False}


def test_undo_restores_snapshot_verbatim_and_redo_reapplies(store, history, import_id):
    before = store.get_task_by_key(import_id, "P1::Build")
    edited = history.update_task(import_id, intent("P1::Build", member_name="Bob", task_name="Review",
                                                   start="2024-03-01", end="2024-03-02"))

    undone = history.undo(import_id)
    assert undone.ok
    assert store.get_task_by_id(before.id) == before
    assert history.status(import_id) == {"can_undo": False, "can_redo": True}

    redone = history.redo(import_id)
    assert redone.ok
    assert store.get_task_by_id(before.id) == edited.task
    assert history.status(import_id) == {"can_undo": True, "can_redo": False}


def test_undo_redo_walk_multiple_entries_in_order(store, history, import_id):
    history.update_task(import_id, intent("P1::Design", note="one"))
    history.update_task(import_id, intent("P1::Design", note="two"))

    history.undo(import_id)
    assert store.get_task_by_key(import_id, "P1::Design").note == "one"
    history.undo(import_id)
    assert store.get_task_by_key(import_id, "P1::Design").note is None
    assert history.undo(import_id).error == "No undo history."

    history.redo(import_id)
    assert store.get_task_by_key(import_id, "P1::Design").note == "one"
    history.redo(import_id)
    assert store.get_task_by_key(import_id, "P1::Design").note == "two"
    assert history.redo(import_id).error == "No redo history."


def test_new_edit_discards_redo_branch(store, history, import_id):
    history.update_task(import_id, intent("P1::Design", note="one"))
    history.undo(import_id)
    history.update_task(import_id, intent("P1::Design", note="other"))
    assert history.status(import_id) == {"can_undo": True, "can_redo": False}
    assert db.session.query(CommandHistoryRow).filter_by(import_id=import_id).count() == 1


def test_undo_resolves_key_collision_on_replay(store, history, import_id):
    # Design -> Plan, then a second task takes the freed Design key
    history.update_task(import_id, intent("P1::Design", task_name="Plan"))
    store.write_task(import_id, "P1::Build",
                     {"task_key": "P1::Design", "task_key_full": "P1::Design"})
    store.commit()

    result = history.undo(import_id)
    assert result.ok
    assert result.task.task_name == "Design"
    assert result.task.task_key_full == "P1::Design#2"
    assert "P1::Design#2" in keys(store, import_id)


def test_undo_on_deleted_row_is_not_applied(store, history, import_id):
    result = history.update_task(import_id, intent("P1::Design", note="x"))
    db.session.delete(db.session.get(TaskRow, result.task.id))
    db.session.commit()

    undone = history.undo(import_id)
    assert undone.ok is False
    assert undone.error == "Undo failed."
    assert history.status(import_id)["can_undo"] is True


def test_rename_onto_another_tasks_suffixed_key_is_resolved(store, history, apply_text):
    other_import = apply_text(make_text({"Alice": {"P1": [
        {"task_name": "b"}, {"task_name": "b"}, {"task_name": "c"},
    ]}}))
    result = history.update_task(other_import, intent("P1::c", task_name="b#2", start=None, end=None))
    assert result.ok
    assert result.task.task_key == "P1::b#2"
    assert result.task.task_key_full == "P1::b#2#2"
    assert keys(store, other_import) == ["P1::b", "P1::b#2", "P1::b#2#2"]

    assert history.undo(other_import).task.task_key_full == "P1::c"
    assert history.redo(other_import).task.task_key_full == "P1::b#2#2"


def test_storage_error_during_edit_is_a_failed_outcome(store, history, import_id, monkeypatch):
    def broken_write(*args, **kwargs):
        raise IntegrityError("UPDATE tasks", {}, Exception("constraint"))

    monkeypatch.setattr(store, "write_task", broken_write)
    result = history.update_task(import_id, intent("P1::Design", note="x"))
    assert result.ok is False
    assert result.error == "Update failed."
    assert history.status(import_id) == {"can_undo": False, "can_redo": False}
    assert store.get_task_by_key(import_id, "P1::Design").note is None
