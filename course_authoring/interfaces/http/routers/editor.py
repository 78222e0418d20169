import asyncio
import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from ....application.autosave import AutosaveCoordinator, SaveState
from ....application.curriculum_service import CurriculumService
from ....application.editor_session import EditorSession
from ....application.timers import loop_call_later
from ....domain.curriculum import CurriculumTree
from ....domain.entities import DEFAULT_LESSON_TITLE, DEFAULT_MODULE_TITLE
from ....domain.errors import DomainError, NotFoundError
from ....infrastructure.db import get_session_factory
from ....infrastructure.repositories import CurriculumRepository, SqlPersister
from ..authz import decode_token, ensure_owner, require_instructor
from ..presenters import course_detail

router = APIRouter(prefix="/api/courses/{course_id}", tags=["editor"])
logger = structlog.get_logger()

# Коды закрытия сокета до accept
CLOSE_UNAUTHORIZED = 4001
CLOSE_FORBIDDEN = 4003
CLOSE_NOT_FOUND = 4004


def _load_tree(session_factory, course_id: str) -> CurriculumTree:
    db = session_factory()
    try:
        return CurriculumService(CurriculumRepository(db)).get_tree(course_id)
    finally:
        db.close()


def _save_tree(session_factory, tree: CurriculumTree) -> CurriculumTree:
    db = session_factory()
    try:
        service = CurriculumService(CurriculumRepository(db))
        return service.save_curriculum(tree.course.id, [asdict(m) for m in tree.modules])
    finally:
        db.close()


def _snapshot(tree: CurriculumTree) -> dict:
    detail = course_detail(tree, datetime.now(timezone.utc))
    return {"type": "snapshot", "course": detail.model_dump(mode="json")}


# op -> (сессия, сообщение) -> применена ли правка
COMMANDS: dict[str, Callable[[EditorSession, dict], Any]] = {
    "select_module": lambda s, m: s.select_module(m["module_id"]),
    "select_lesson": lambda s, m: s.select_lesson(m["module_id"], m["lesson_id"]),
    "add_module": lambda s, m: s.add_module(m.get("title", DEFAULT_MODULE_TITLE)),
    "delete_module": lambda s, m: s.delete_module(m["module_id"]),
    "move_module": lambda s, m: s.move_module(m["from_index"], m["to_index"]),
    "add_lesson": lambda s, m: s.add_lesson(m["module_id"], m.get("title", DEFAULT_LESSON_TITLE)),
    "delete_lesson": lambda s, m: s.delete_lesson(m["module_id"], m["lesson_id"]),
    "move_lesson": lambda s, m: s.move_lesson(m["module_id"], m["from_index"], m["to_index"]),
    "edit_module": lambda s, m: s.edit_module(m["module_id"], **m["fields"]),
    "edit_lesson": lambda s, m: s.edit_lesson(m["module_id"], m["lesson_id"], **m["fields"]),
    "apply_generated_content": lambda s, m: s.apply_generated_content(m["content"]),
    "apply_generated_quiz": lambda s, m: s.apply_generated_quiz(m["quiz"]),
    "flush": lambda s, m: s.flush(),
}


async def _handle(session: EditorSession, message: dict, session_factory) -> dict:
    op = message.get("op")
    if op == "save":
        # явное сохранение всего плана после завершения автосохранений
        session.flush()
        await session.wait_saved()
        try:
            saved = await asyncio.to_thread(_save_tree, session_factory, session.tree)
        except DomainError as exc:
            return {"type": "error", "op": op, "detail": str(exc)}
        session.reset(saved)
        return _snapshot(saved)

    command = COMMANDS.get(op)
    if command is None:
        return {"type": "error", "op": op, "detail": "unknown op"}
    try:
        applied = command(session, message)
    except (KeyError, TypeError):
        return {"type": "error", "op": op, "detail": "invalid message"}
    return {"type": "ack", "op": op, "applied": applied is not False}


async def _sender(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        if message is None:
            break
        try:
            await websocket.send_json(message)
        except Exception:
            # соединение уже закрыто
            break


@router.websocket("/editor")
async def editor_socket(
    websocket: WebSocket,
    course_id: str,
    token: str = Query(...),
    session_factory=Depends(get_session_factory),
):
    """Сессия редактора курса: правки по сокету, автосохранение на сервере.

    Подключение: /api/courses/{course_id}/editor?token=JWT
    """
    try:
        claims = require_instructor(decode_token(token))
        tree = await asyncio.to_thread(_load_tree, session_factory, course_id)
        ensure_owner(tree.course.owner, claims)
    except HTTPException as exc:
        code = CLOSE_UNAUTHORIZED if exc.status_code == 401 else CLOSE_FORBIDDEN
        await websocket.close(code=code, reason=str(exc.detail))
        return
    except NotFoundError as exc:
        await websocket.close(code=CLOSE_NOT_FOUND, reason=str(exc))
        return

    outbox: asyncio.Queue = asyncio.Queue()

    def push_state(entity_id: str, state: SaveState) -> None:
        outbox.put_nowait({"type": "save_state", "entity_id": entity_id, "state": state.value})

    coordinator = AutosaveCoordinator(SqlPersister(session_factory), call_later=loop_call_later)
    coordinator.subscribe(push_state)
    session = EditorSession(tree, coordinator)

    await websocket.accept()
    logger.info("editor_connected", course_id=course_id, user=claims["sub"])
    sender = asyncio.create_task(_sender(websocket, outbox))
    outbox.put_nowait(_snapshot(tree))
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                outbox.put_nowait({"type": "error", "detail": "invalid json"})
                continue
            if not isinstance(message, dict):
                outbox.put_nowait({"type": "error", "detail": "invalid message"})
                continue
            outbox.put_nowait(await _handle(session, message, session_factory))
    except WebSocketDisconnect:
        logger.info("editor_disconnected", course_id=course_id, user=claims["sub"])
    finally:
        outbox.put_nowait(None)
        await sender
        # несохранённые правки уходят в хранилище до закрытия сессии
        await session.close()
