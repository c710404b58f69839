import json
from io import BytesIO

from openpyxl import Workbook

from .conftest import make_text

FIRST = make_text({"Alice": {"P1": [
    {"task_name": "Design", "start": "2024-01-01", "end": "2024-01-05"},
    {"task_name": "Review", "start": "2024-01-08", "end": None},
    {"task_name": "Old"},
]}})
SECOND = make_text({"Alice": {"P1": [
    {"task_name": "Design", "start": "2024-01-01", "end": "2024-01-09"},
    {"task_name": "Review", "start": "2024-01-08", "end": None},
    {"task_name": "New", "start": "2024-02-30", "end": "2024-03-01"},
]}})


def post_import(client, text, source="paste"):
    return client.post("/api/imports", json={"text": text, "source": source})


def test_health(client):
    resp = client.get("/api/health/db")
    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True


def test_root_redirects_to_imports(client):
    resp = client.get("/")
    assert resp.status_code == 308
    assert resp.headers["Location"].endswith("/api/imports")


def test_preview_reports_summary_without_saving(client):
    resp = client.post("/api/imports/preview", json={"text": "Here you go:\n```json\n" + FIRST + "\n```"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["preview"]["summary"]["total_tasks"] == 3
    assert [w["code"] for w in body["preview"]["warnings"]] == ["partial_date"]
    assert json.loads(body["json_text"])["members"][0]["name"] == "Alice"
    assert client.get("/api/imports").get_json()["imports"] == []


def test_preview_and_apply_reject_bad_input(client, app):
    assert client.post("/api/imports/preview", json={"text": "no braces here"}).status_code == 422
    assert client.post("/api/imports/preview", json={"text": "  "}).status_code == 400
    assert client.post("/api/imports/preview", data="plain").status_code == 400
    assert post_import(client, FIRST, source="email").status_code == 400

    app.config["RASUVA_MAX_TEXT_CHARS"] = 10
    assert client.post("/api/imports/preview", json={"text": FIRST}).status_code == 413


def test_apply_twice_reports_diff(client):
    first = post_import(client, FIRST)
    assert first.status_code == 201
    assert first.get_json()["result"]["diff"]["summary"]["added"] == 3

    second = post_import(client, SECOND, source="file")
    result = second.get_json()["result"]
    assert result["diff"]["summary"] == {
        "added": 1, "updated": 1, "archived": 1, "invalid": 1, "unscheduled": 1,
    }
    import_id = result["import_id"]

    imports = client.get("/api/imports").get_json()["imports"]
    assert [i["id"] for i in imports] == [import_id, first.get_json()["result"]["import_id"]]
    assert imports[0]["source"] == "file"
    assert imports[0]["archived_count"] == 1

    diff = client.get("/api/imports/latest/diff").get_json()
    assert diff["import_id"] == import_id
    assert [t["task_name"] for t in diff["diff"]["archived"]] == ["Old"]

    warnings = client.get(f"/api/imports/{import_id}/warnings").get_json()["warnings"]
    assert {w["code"] for w in warnings} == {"partial_date", "invalid_date_format"}


def test_tasks_and_unknown_imports(client):
    assert client.get("/api/imports/latest/tasks").get_json()["tasks"] == []
    assert client.get("/api/imports/99").status_code == 404
    assert client.get("/api/imports/99/tasks").status_code == 404
    assert client.get("/api/imports/abc/tasks").status_code == 400

    post_import(client, FIRST)
    tasks = client.get("/api/imports/latest/tasks").get_json()["tasks"]
    assert [t["task_key_full"] for t in tasks] == ["P1::Design", "P1::Old", "P1::Review"]


def test_export_json_rebuilds_document(client):
    import_id = post_import(client, FIRST).get_json()["result"]["import_id"]
    resp = client.get(f"/api/imports/{import_id}/export.json")
    assert resp.status_code == 200
    assert "attachment" in resp.headers["Content-Disposition"]
    doc = json.loads(resp.data)
    assert doc["members"][0]["projects"][0]["project_id"] == "P1"
    assert len(doc["members"][0]["projects"][0]["tasks"]) == 3


def test_edit_undo_redo_over_http(client):
    import_id = post_import(client, FIRST).get_json()["result"]["import_id"]
    edit = {
        "current_task_key_full": "P1::Old", "member_name": "Alice", "project_id": "P1",
        "task_name": "Design", "start": "2024-04-01", "end": "2024-04-02", "assignees": ["Bob"],
    }
    resp = client.patch(f"/api/imports/{import_id}/tasks", json=edit)
    assert resp.status_code == 200
    assert resp.get_json()["task"]["task_key_full"] == "P1::Design#2"

    history = client.get(f"/api/imports/{import_id}/history").get_json()
    assert (history["can_undo"], history["can_redo"]) == (True, False)

    undo = client.post(f"/api/imports/{import_id}/history/undo")
    assert undo.status_code == 200
    assert undo.get_json()["task"]["task_key_full"] == "P1::Old"
    assert client.post(f"/api/imports/{import_id}/history/undo").status_code == 409

    redo = client.post(f"/api/imports/{import_id}/history/redo")
    assert redo.get_json()["task"]["task_key_full"] == "P1::Design#2"
    assert redo.get_json()["can_redo"] is False


def test_edit_errors(client):
    import_id = post_import(client, FIRST).get_json()["result"]["import_id"]
    url = f"/api/imports/{import_id}/tasks"
    base = {"member_name": "Alice", "project_id": "P1", "task_name": "X"}

    assert client.patch(url, json=base).status_code == 400
    assert client.patch(url, json={**base, "current_task_key_full": "P1::Nope"}).status_code == 404
    resp = client.patch(url, json={**base, "current_task_key_full": "P1::Old", "start": "2024-13-01"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid start date (expected YYYY-MM-DD)."
    assert client.patch(url, json={**base, "current_task_key_full": "P1::Old", "assignees": "Bob"}).status_code == 400
    assert client.patch("/api/imports/99/tasks", json=base).status_code == 404


def test_excel_preview(client):
    wb = Workbook()
    ws = wb.active
    ws.title = "Tasks"
    ws.append(["member_name", "project_id", "task_name", "start", "end", "assignees"])
    ws.append(["Alice", "P1", "Design", "2024-01-01", "2024-01-02", "Bob"])
    ws.append(["Alice", "", "Loose", None, None, None])
    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)

    resp = client.post("/api/imports/excel/preview", data={"file": (buf, "plan.xlsx")},
                       content_type="multipart/form-data")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["preview"]["summary"]["total_tasks"] == 1
    assert body["preview"]["summary"]["skipped_projects"] == 1

    applied = post_import(client, body["json_text"], source="excel")
    assert applied.status_code == 201


def test_excel_preview_requires_file(client):
    assert client.post("/api/imports/excel/preview", data={},
                       content_type="multipart/form-data").status_code == 400


def test_apply_keeps_full_keys_unique_with_literal_suffixes(client):
    text = make_text({"Alice": {"P1": [{"task_name": "b"}, {"task_name": "b"}, {"task_name": "b#2"}]}})
    resp = post_import(client, text)
    assert resp.status_code == 201
    tasks = client.get("/api/imports/latest/tasks").get_json()["tasks"]
    assert sorted(t["task_key_full"] for t in tasks) == ["P1::b", "P1::b#2", "P1::b#2#2"]


def test_rename_onto_suffixed_key_over_http(client):
    text = make_text({"Alice": {"P1": [{"task_name": "b"}, {"task_name": "b"}, {"task_name": "c"}]}})
    import_id = post_import(client, text).get_json()["result"]["import_id"]
    resp = client.patch(f"/api/imports/{import_id}/tasks", json={
        "current_task_key_full": "P1::c", "member_name": "Alice", "project_id": "P1", "task_name": "b#2",
    })
    assert resp.status_code == 200
    assert resp.get_json()["task"]["task_key_full"] == "P1::b#2#2"


def test_strict_mode_reports_schema_issues(client):
    bad = json.dumps({"members": [{"name": "Alice", "projects": [{"tasks": []}]}]})
    resp = client.post("/api/imports/preview", json={"text": bad, "strict": True})
    assert resp.status_code == 422
    assert any("project_id" in issue for issue in resp.get_json()["issues"])

    fenced = "```json\n" + FIRST + "\n```"
    assert client.post("/api/imports/preview", json={"text": fenced, "strict": True}).status_code == 422
    assert client.post("/api/imports/preview", json={"text": fenced}).status_code == 200

    applied = client.post("/api/imports", json={"text": FIRST, "source": "file", "strict": True})
    assert applied.status_code == 201
    assert applied.get_json()["result"]["summary"]["total_tasks"] == 3
