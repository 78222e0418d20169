from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from ..config import settings
from ..domain.entities import is_placeholder
from ..infrastructure.metrics import autosave_persist_total
from .timers import CallLater, Debouncer

logger = structlog.get_logger()


class SaveState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class PersistRequest:
    entity_id: str
    kind: str
    fields: dict[str, Any]
    updated_at: datetime


Persist = Callable[[PersistRequest], Awaitable[None]]
Listener = Callable[[str, SaveState], None]


@dataclass
class _Entry:
    kind: str
    baseline: dict[str, Any] = field(default_factory=dict)
    pending: dict[str, Any] = field(default_factory=dict)
    state: SaveState = SaveState.IDLE
    last_saved_at: datetime | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutosaveCoordinator:
    """Отложенное сохранение правок уроков и модулей.

    Правка сразу применяется к дереву в памяти (это делает вызывающий код),
    а сюда попадают только изменённые поля. Через debounce-окно поля
    сравниваются с последним сохранённым состоянием; если ничего не
    изменилось, запрос в хранилище не уходит.

    persist асинхронный и запускается задачей в текущем event loop. На одну
    сущность одновременно выполняется не больше одной задачи; правка во
    время сохранения перезапускает таймер, и следующий цикл начнётся только
    после завершения текущего. Задачу сохранения не отменяем.
    """

    def __init__(
        self,
        persist: Persist,
        call_later: CallLater | None = None,
        clock: Callable[[], datetime] = _utcnow,
        debounce: float | None = None,
        saved_display: float | None = None,
        error_display: float | None = None,
    ):
        self._persist = persist
        self._clock = clock
        self._debouncer = Debouncer(
            settings.AUTOSAVE_DEBOUNCE_SECONDS if debounce is None else debounce,
            call_later,
        )
        self._display = Debouncer(0.0, call_later)
        self._saved_display = (
            settings.SAVED_DISPLAY_SECONDS if saved_display is None else saved_display
        )
        self._error_display = (
            settings.ERROR_DISPLAY_SECONDS if error_display is None else error_display
        )
        self._entries: dict[str, _Entry] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def track(self, entity_id: str, kind: str, baseline: dict[str, Any]) -> None:
        """Запоминает последнее сохранённое состояние сущности (один раз)."""
        if entity_id not in self._entries:
            self._entries[entity_id] = _Entry(kind=kind, baseline=dict(baseline))

    def state(self, entity_id: str) -> SaveState:
        entry = self._entries.get(entity_id)
        return entry.state if entry else SaveState.IDLE

    def last_saved_at(self, entity_id: str) -> datetime | None:
        entry = self._entries.get(entity_id)
        return entry.last_saved_at if entry else None

    def has_pending(self, entity_id: str) -> bool:
        return self._debouncer.pending(entity_id)

    def is_saving(self, entity_id: str) -> bool:
        return entity_id in self._tasks

    def submit(self, entity_id: str, fields: dict[str, Any], kind: str = "lesson") -> None:
        entry = self._entries.setdefault(entity_id, _Entry(kind=kind))
        entry.pending.update(fields)
        self._display.cancel(entity_id)
        # во время сохранения только перезапускаем таймер, второй запрос не шлём
        if not self.is_saving(entity_id):
            self._set_state(entity_id, SaveState.PENDING)
        self._debouncer.schedule(entity_id, lambda: self._run(entity_id))

    def flush(self, entity_id: str | None = None) -> None:
        """Немедленно запускает отложенные сохранения (кнопка Save, закрытие сессии).

        Вызывается из event loop; дождаться записи можно через drain().
        """
        keys = [entity_id] if entity_id is not None else self._debouncer.keys()
        for key in keys:
            if self._debouncer.cancel(key):
                self._run(key)

    async def drain(self) -> None:
        """Ждёт завершения всех запущенных сохранений."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def cancel(self, entity_id: str) -> None:
        """Забывает сущность: отложенное сохранение отменяется, запущенное доработает."""
        self._debouncer.cancel(entity_id)
        self._display.cancel(entity_id)
        self._entries.pop(entity_id, None)

    def close(self) -> None:
        self._debouncer.cancel_all()
        self._display.cancel_all()

    def _run(self, entity_id: str) -> None:
        entry = self._entries.get(entity_id)
        if entry is None:
            return
        if self.is_saving(entity_id):
            self._debouncer.schedule(entity_id, lambda: self._run(entity_id))
            return

        changes = {
            key: value
            for key, value in entry.pending.items()
            if key not in entry.baseline or entry.baseline[key] != value
        }
        if not changes:
            entry.pending.clear()
            self._set_state(entity_id, SaveState.IDLE)
            return

        if is_placeholder(entity_id):
            # сущности ещё нет в хранилище: её создаст явное сохранение
            self._commit(entry, changes, self._clock())
            self._finish(entity_id, SaveState.SAVED, self._saved_display)
            return

        request = PersistRequest(
            entity_id=entity_id,
            kind=entry.kind,
            fields=changes,
            updated_at=self._clock(),
        )
        self._set_state(entity_id, SaveState.SAVING)
        loop = asyncio.get_running_loop()
        self._tasks[entity_id] = loop.create_task(self._save(entry, request))

    async def _save(self, entry: _Entry, request: PersistRequest) -> None:
        entity_id = request.entity_id
        try:
            await self._persist(request)
        except Exception as exc:
            self._tasks.pop(entity_id, None)
            autosave_persist_total.labels(kind=entry.kind, outcome="error").inc()
            logger.warning(
                "autosave_failed",
                entity_id=entity_id,
                kind=entry.kind,
                fields=sorted(request.fields),
                error=str(exc),
            )
            if self._entries.get(entity_id) is entry:
                self._finish(entity_id, SaveState.ERROR, self._error_display)
            return

        self._tasks.pop(entity_id, None)
        autosave_persist_total.labels(kind=entry.kind, outcome="saved").inc()
        logger.info("autosave_persisted", entity_id=entity_id, kind=entry.kind, fields=sorted(request.fields))
        self._commit(entry, request.fields, request.updated_at)
        # сущность забыли (удалена) пока шла запись
        if self._entries.get(entity_id) is entry:
            self._finish(entity_id, SaveState.SAVED, self._saved_display)

    def _commit(self, entry: _Entry, changes: dict[str, Any], saved_at: datetime) -> None:
        entry.baseline.update(changes)
        # правка, пришедшая во время сохранения, остаётся в очереди
        for key, value in changes.items():
            if key in entry.pending and entry.pending[key] == value:
                del entry.pending[key]
        entry.last_saved_at = saved_at

    def _finish(self, entity_id: str, state: SaveState, display: float) -> None:
        self._set_state(entity_id, state)
        if self._debouncer.pending(entity_id):
            self._set_state(entity_id, SaveState.PENDING)
            return
        self._display.schedule(
            entity_id, lambda: self._set_state(entity_id, SaveState.IDLE), delay=display
        )

    def _set_state(self, entity_id: str, state: SaveState) -> None:
        entry = self._entries.get(entity_id)
        if entry is None or entry.state is state:
            return
        entry.state = state
        for listener in self._listeners:
            listener(entity_id, state)
