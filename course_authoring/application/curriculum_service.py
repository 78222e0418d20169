from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol

import structlog

from ..domain.curriculum import CurriculumTree
from ..domain.entities import CourseStatus, Lesson, Module, new_placeholder_id
from ..domain.errors import (
    CourseLocked,
    CourseNotFound,
    InvalidTransition,
    LessonNotFound,
    ModuleNotFound,
)
from ..infrastructure.metrics import curriculum_mutations_total

logger = structlog.get_logger()


class ICurriculumRepository(Protocol):
    def load(self, course_id: str) -> CurriculumTree | None: ...
    def save(self, tree: CurriculumTree) -> CurriculumTree: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


REVIEWABLE = {CourseStatus.DRAFT.value, CourseStatus.REJECTED.value}


class CurriculumService:
    """Сценарии правки учебного плана поверх хранилища.

    Загружает дерево, применяет к нему операцию и записывает результат.
    Там, где дерево молча игнорирует операцию, здесь поднимается ошибка,
    чтобы HTTP-слой мог ответить 404 или 409.
    """

    def __init__(self, repo: ICurriculumRepository, clock: Callable[[], datetime] = _utcnow):
        self.repo = repo
        self.clock = clock

    def get_tree(self, course_id: str) -> CurriculumTree:
        tree = self.repo.load(course_id)
        if tree is None:
            raise CourseNotFound(course_id)
        return tree

    def _unlocked_tree(self, course_id: str) -> tuple[CurriculumTree, datetime]:
        tree = self.get_tree(course_id)
        now = self.clock()
        if tree.is_locked(now):
            raise CourseLocked(course_id)
        return tree, now

    def _module(self, tree: CurriculumTree, module_id: str) -> Module:
        module = tree.find_module(module_id)
        if module is None:
            raise ModuleNotFound(module_id)
        return module

    def _lesson(self, tree: CurriculumTree, module_id: str, lesson_id: str) -> Lesson:
        self._module(tree, module_id)
        lesson = tree.find_lesson(module_id, lesson_id)
        if lesson is None:
            raise LessonNotFound(lesson_id)
        return lesson

    def _store(self, operation: str, before: CurriculumTree, after: CurriculumTree) -> CurriculumTree:
        if after is before:
            return before
        saved = self.repo.save(after)
        curriculum_mutations_total.labels(operation=operation).inc()
        logger.info("curriculum_updated", operation=operation, course_id=before.course.id)
        return saved

    # --- Модули

    def add_module(self, course_id: str, title: str) -> Module:
        tree, now = self._unlocked_tree(course_id)
        saved = self._store("add_module", tree, tree.add_module(now, title))
        return saved.modules[-1]

    def update_module(self, course_id: str, module_id: str, fields: dict[str, Any]) -> Module:
        tree = self.get_tree(course_id)
        self._module(tree, module_id)
        saved = self._store("update_module", tree, tree.update_module(module_id, **fields))
        return saved.find_module(module_id)

    def delete_module(self, course_id: str, module_id: str) -> CurriculumTree:
        tree, now = self._unlocked_tree(course_id)
        self._module(tree, module_id)
        return self._store("delete_module", tree, tree.delete_module(now, module_id))

    def move_module(self, course_id: str, from_index: int, to_index: int) -> CurriculumTree:
        tree, now = self._unlocked_tree(course_id)
        return self._store("move_module", tree, tree.move_module(now, from_index, to_index))

    # --- Уроки

    def add_lesson(self, course_id: str, module_id: str, title: str, type: str) -> Lesson:
        tree, now = self._unlocked_tree(course_id)
        self._module(tree, module_id)
        saved = self._store("add_lesson", tree, tree.add_lesson(now, module_id, title, type=type))
        return saved.find_module(module_id).lessons[-1]

    def update_lesson(
        self, course_id: str, module_id: str, lesson_id: str, fields: dict[str, Any]
    ) -> Lesson:
        tree = self.get_tree(course_id)
        self._lesson(tree, module_id, lesson_id)
        saved = self._store(
            "update_lesson", tree, tree.update_lesson(module_id, lesson_id, **fields)
        )
        return saved.find_lesson(module_id, lesson_id)

    def delete_lesson(self, course_id: str, module_id: str, lesson_id: str) -> CurriculumTree:
        tree, now = self._unlocked_tree(course_id)
        self._lesson(tree, module_id, lesson_id)
        return self._store("delete_lesson", tree, tree.delete_lesson(now, module_id, lesson_id))

    def move_lesson(
        self, course_id: str, module_id: str, from_index: int, to_index: int
    ) -> CurriculumTree:
        tree, now = self._unlocked_tree(course_id)
        self._module(tree, module_id)
        return self._store(
            "move_lesson", tree, tree.move_lesson(now, module_id, from_index, to_index)
        )

    # --- Явное сохранение всего плана

    def save_curriculum(self, course_id: str, modules: Iterable[dict[str, Any]]) -> CurriculumTree:
        """Заменяет план курса присланным; order берётся из позиции в списке."""
        tree, _ = self._unlocked_tree(course_id)
        built = []
        for index, payload in enumerate(modules):
            lessons = tuple(
                Lesson(
                    id=item.get("id") or new_placeholder_id("lesson"),
                    title=item["title"],
                    order=position,
                    type=item.get("type", "text"),
                    content=item.get("content"),
                    is_published=item.get("is_published", False),
                )
                for position, item in enumerate(payload.get("lessons", []))
            )
            built.append(
                Module(
                    id=payload.get("id") or new_placeholder_id("module"),
                    title=payload["title"],
                    order=index,
                    lessons=lessons,
                    weekly_sprint_goal=payload.get("weekly_sprint_goal"),
                    unlocks_on_week=payload.get("unlocks_on_week"),
                )
            )
        replacement = CurriculumTree(course=tree.course, modules=tuple(built))
        return self._store("save_curriculum", tree, replacement)


def submit_for_review(status: str) -> str:
    """Черновик или отклонённый курс уходит на модерацию."""
    if status not in REVIEWABLE:
        raise InvalidTransition(status, CourseStatus.PENDING_REVIEW.value)
    return CourseStatus.PENDING_REVIEW.value
