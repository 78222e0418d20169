from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from ..domain.curriculum import LESSON_FIELDS, MODULE_FIELDS, CurriculumTree
from ..domain.entities import DEFAULT_LESSON_TITLE, DEFAULT_MODULE_TITLE, LessonType
from .autosave import AutosaveCoordinator, SaveState

logger = structlog.get_logger()


@dataclass(frozen=True)
class Selection:
    module_id: str | None = None
    lesson_id: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EditorSession:
    """Сессия редактирования одного курса одним инструктором.

    Держит актуальное дерево, текущий выбор и координатор автосохранения.
    Структурные операции (добавить, удалить, переставить) меняют только
    дерево в памяти; на сервер их отправляет явное сохранение учебного плана.
    Правки полей урока или модуля применяются сразу и уходят в автосохранение.
    """

    def __init__(
        self,
        tree: CurriculumTree,
        autosave: AutosaveCoordinator,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._tree = tree
        self._autosave = autosave
        self._clock = clock
        self.selection = Selection()

    @property
    def tree(self) -> CurriculumTree:
        return self._tree

    @property
    def is_locked(self) -> bool:
        return self._tree.is_locked(self._clock())

    def save_state(self, entity_id: str) -> SaveState:
        return self._autosave.state(entity_id)

    # --- Выбор

    def select_module(self, module_id: str) -> None:
        if self._tree.find_module(module_id) is not None:
            self.selection = Selection(module_id=module_id)

    def select_lesson(self, module_id: str, lesson_id: str) -> None:
        if self._tree.find_lesson(module_id, lesson_id) is not None:
            self.selection = Selection(module_id=module_id, lesson_id=lesson_id)

    def clear_selection(self) -> None:
        self.selection = Selection()

    # --- Структура

    def add_module(self, title: str = DEFAULT_MODULE_TITLE) -> bool:
        return self._apply("add_module", self._tree.add_module(self._clock(), title))

    def delete_module(self, module_id: str) -> bool:
        module = self._tree.find_module(module_id)
        if not self._apply("delete_module", self._tree.delete_module(self._clock(), module_id)):
            return False
        self._autosave.cancel(module_id)
        for lesson in module.lessons:
            self._autosave.cancel(lesson.id)
        if self.selection.module_id == module_id:
            self.clear_selection()
        return True

    def add_lesson(self, module_id: str, title: str = DEFAULT_LESSON_TITLE) -> bool:
        return self._apply("add_lesson", self._tree.add_lesson(self._clock(), module_id, title))

    def delete_lesson(self, module_id: str, lesson_id: str) -> bool:
        tree = self._tree.delete_lesson(self._clock(), module_id, lesson_id)
        if not self._apply("delete_lesson", tree):
            return False
        self._autosave.cancel(lesson_id)
        if self.selection.lesson_id == lesson_id:
            self.clear_selection()
        return True

    def move_module(self, from_index: int, to_index: int) -> bool:
        tree = self._tree.move_module(self._clock(), from_index, to_index)
        return self._apply("move_module", tree)

    def move_lesson(self, module_id: str, from_index: int, to_index: int) -> bool:
        tree = self._tree.move_lesson(self._clock(), module_id, from_index, to_index)
        return self._apply("move_lesson", tree)

    # --- Правка полей с автосохранением

    def edit_module(self, module_id: str, **fields: Any) -> bool:
        module = self._tree.find_module(module_id)
        if module is None:
            return False
        tree = self._tree.update_module(module_id, **fields)
        if tree is self._tree:
            return False
        self._autosave.track(
            module_id, "module", {name: getattr(module, name) for name in MODULE_FIELDS}
        )
        updated = tree.find_module(module_id)
        self._tree = tree
        self._autosave.submit(module_id, self._changed(module, updated, MODULE_FIELDS), kind="module")
        return True

    def edit_lesson(self, module_id: str, lesson_id: str, **fields: Any) -> bool:
        lesson = self._tree.find_lesson(module_id, lesson_id)
        if lesson is None:
            return False
        tree = self._tree.update_lesson(module_id, lesson_id, **fields)
        if tree is self._tree:
            return False
        self._autosave.track(
            lesson_id, "lesson", {name: getattr(lesson, name) for name in LESSON_FIELDS}
        )
        updated = tree.find_lesson(module_id, lesson_id)
        self._tree = tree
        self._autosave.submit(lesson_id, self._changed(lesson, updated, LESSON_FIELDS), kind="lesson")
        return True

    def rename_module(self, module_id: str, title: str) -> bool:
        return self.edit_module(module_id, title=title)

    def rename_lesson(self, module_id: str, lesson_id: str, title: str) -> bool:
        return self.edit_lesson(module_id, lesson_id, title=title)

    # --- Сгенерированный контент для выбранного урока

    def apply_generated_content(self, content: Any) -> bool:
        if self.selection.lesson_id is None:
            return False
        return self.edit_lesson(self.selection.module_id, self.selection.lesson_id, content=content)

    def apply_generated_quiz(self, quiz: Any) -> bool:
        if self.selection.lesson_id is None:
            return False
        return self.edit_lesson(
            self.selection.module_id,
            self.selection.lesson_id,
            content=quiz,
            type=LessonType.QUIZ.value,
        )

    def reset(self, tree: CurriculumTree) -> None:
        """Подменяет дерево после явного сохранения (временные id стали настоящими)."""
        self._tree = tree
        module_id, lesson_id = self.selection.module_id, self.selection.lesson_id
        if lesson_id is not None and tree.find_lesson(module_id, lesson_id) is None:
            self.clear_selection()
        elif module_id is not None and tree.find_module(module_id) is None:
            self.clear_selection()

    def flush(self) -> None:
        self._autosave.flush()

    async def wait_saved(self) -> None:
        await self._autosave.drain()

    async def close(self) -> None:
        self._autosave.flush()
        await self.wait_saved()
        self._autosave.close()

    def _apply(self, operation: str, tree: CurriculumTree) -> bool:
        if tree is self._tree:
            logger.debug("curriculum_edit_ignored", operation=operation, course_id=tree.course.id)
            return False
        self._tree = tree
        return True

    @staticmethod
    def _changed(before: Any, after: Any, names: frozenset[str]) -> dict[str, Any]:
        return {
            name: getattr(after, name)
            for name in names
            if getattr(before, name) != getattr(after, name)
        }
