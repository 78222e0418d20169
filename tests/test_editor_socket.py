import pytest
from jose import jwt
from starlette.websockets import WebSocketDisconnect

from course_authoring.config import settings
from course_authoring.infrastructure.models import Lesson, Module

from conftest import INSTRUCTOR, TestingSessionLocal


def token_for(claims):
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def receive_until(ws, predicate, limit=20):
    for _ in range(limit):
        message = ws.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message not received")


def saved(entity_id):
    return lambda m: m.get("type") == "save_state" and m["entity_id"] == entity_id and m["state"] == "saved"


@pytest.fixture
def fast_autosave(monkeypatch):
    """Короткие таймеры автосохранения для сокета"""
    monkeypatch.setattr(settings, "AUTOSAVE_DEBOUNCE_SECONDS", 0.05)
    monkeypatch.setattr(settings, "SAVED_DISPLAY_SECONDS", 0.05)
    monkeypatch.setattr(settings, "ERROR_DISPLAY_SECONDS", 0.05)


@pytest.fixture
def course(client, instructor_override):
    course = client.post("/api/courses", json={"title": "Python Basics"}).json()
    module = client.post(f"/api/courses/{course['id']}/modules", json={"title": "Basics"}).json()
    lesson = client.post(f"/api/courses/{course['id']}/modules/{module['id']}/lessons",
                         json={"title": "Intro"}).json()
    return {"id": course["id"], "module_id": module["id"], "lesson_id": lesson["id"]}


def editor_url(course_id, claims=INSTRUCTOR):
    return f"/api/courses/{course_id}/editor?token={token_for(claims)}"


def test_editor_sends_snapshot_on_connect(client, course):
    with client.websocket_connect(editor_url(course["id"])) as ws:
        message = ws.receive_json()
    assert message["type"] == "snapshot"
    assert message["course"]["title"] == "Python Basics"
    assert message["course"]["modules"][0]["lessons"][0]["id"] == course["lesson_id"]


def test_editor_autosaves_lesson_edit(client, course, fast_autosave):
    """Правка урока через сокет сохраняется в БД после паузы"""
    with client.websocket_connect(editor_url(course["id"])) as ws:
        ws.receive_json()
        ws.send_json({"op": "edit_lesson", "module_id": course["module_id"],
                      "lesson_id": course["lesson_id"], "fields": {"content": {"text": "Hello"}}})
        ack = receive_until(ws, lambda m: m.get("type") == "ack")
        assert ack == {"type": "ack", "op": "edit_lesson", "applied": True}
        receive_until(ws, saved(course["lesson_id"]))

    db = TestingSessionLocal()
    try:
        assert db.get(Lesson, course["lesson_id"]).content == {"text": "Hello"}
    finally:
        db.close()


def test_editor_generated_content_and_flush(client, course):
    """Сгенерированный текст применяется к выбранному уроку, flush пишет сразу"""
    with client.websocket_connect(editor_url(course["id"])) as ws:
        ws.receive_json()
        ws.send_json({"op": "select_lesson", "module_id": course["module_id"], "lesson_id": course["lesson_id"]})
        receive_until(ws, lambda m: m.get("op") == "select_lesson")
        ws.send_json({"op": "apply_generated_content", "content": {"text": "Generated"}})
        receive_until(ws, lambda m: m.get("op") == "apply_generated_content")
        ws.send_json({"op": "flush"})
        receive_until(ws, saved(course["lesson_id"]))

    db = TestingSessionLocal()
    try:
        assert db.get(Lesson, course["lesson_id"]).content == {"text": "Generated"}
    finally:
        db.close()


def test_editor_module_edit(client, course, fast_autosave):
    with client.websocket_connect(editor_url(course["id"])) as ws:
        ws.receive_json()
        ws.send_json({"op": "edit_module", "module_id": course["module_id"],
                      "fields": {"title": "Fundamentals", "unlocks_on_week": 2}})
        receive_until(ws, saved(course["module_id"]))

    db = TestingSessionLocal()
    try:
        row = db.get(Module, course["module_id"])
        assert row.title == "Fundamentals"
        assert row.unlocks_on_week == 2
    finally:
        db.close()


def test_editor_structure_saved_explicitly(client, course):
    """Новый урок получает настоящий id после явного сохранения"""
    with client.websocket_connect(editor_url(course["id"])) as ws:
        ws.receive_json()
        ws.send_json({"op": "add_lesson", "module_id": course["module_id"], "title": "Loops"})
        ack = receive_until(ws, lambda m: m.get("type") == "ack")
        assert ack["applied"] is True
        ws.send_json({"op": "move_lesson", "module_id": course["module_id"], "from_index": 1, "to_index": 0})
        receive_until(ws, lambda m: m.get("op") == "move_lesson")
        ws.send_json({"op": "save"})
        snapshot = receive_until(ws, lambda m: m.get("type") == "snapshot")

    lessons = snapshot["course"]["modules"][0]["lessons"]
    assert [(l["title"], l["order"]) for l in lessons] == [("Loops", 0), ("Intro", 1)]
    assert not any(l["id"].startswith("temp-") for l in lessons)
    detail = client.get(f"/api/courses/{course['id']}").json()
    assert [l["title"] for l in detail["modules"][0]["lessons"]] == ["Loops", "Intro"]


def test_editor_ignored_edit_not_applied(client, course):
    with client.websocket_connect(editor_url(course["id"])) as ws:
        ws.receive_json()
        ws.send_json({"op": "edit_lesson", "module_id": course["module_id"],
                      "lesson_id": course["lesson_id"], "fields": {"title": "  "}})
        ack = receive_until(ws, lambda m: m.get("type") == "ack")
    assert ack["applied"] is False


def test_editor_invalid_messages(client, course):
    with client.websocket_connect(editor_url(course["id"])) as ws:
        ws.receive_json()
        ws.send_json({"op": "explode"})
        assert ws.receive_json() == {"type": "error", "op": "explode", "detail": "unknown op"}
        ws.send_json({"op": "delete_lesson"})
        assert ws.receive_json()["detail"] == "invalid message"
        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "detail": "invalid json"}


def test_editor_rejects_student(client, course):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(editor_url(course["id"], {"sub": "s@example.com", "role": "student"})):
            pass
    assert exc.value.code == 4003


def test_editor_rejects_foreign_course(client, course):
    other = {"sub": "other@example.com", "role": "instructor"}
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(editor_url(course["id"], other)):
            pass
    assert exc.value.code == 4003


def test_editor_rejects_bad_token(client, course):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/api/courses/{course['id']}/editor?token=broken"):
            pass
    assert exc.value.code == 4001


def test_editor_unknown_course(client, instructor_override):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(editor_url("missing")):
            pass
    assert exc.value.code == 4004
