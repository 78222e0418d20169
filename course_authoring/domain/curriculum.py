from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable

from .entities import (
    DEFAULT_LESSON_TITLE,
    DEFAULT_MODULE_TITLE,
    Course,
    DeliveryType,
    Lesson,
    LessonType,
    Module,
    new_placeholder_id,
)
from .reorder import move, renumber

MODULE_FIELDS = frozenset({"title", "weekly_sprint_goal", "unlocks_on_week"})
LESSON_FIELDS = frozenset({"title", "type", "content", "is_published"})


def _valid_title(title: Any) -> bool:
    return isinstance(title, str) and bool(title.strip())


def _editable(fields: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    changes = {key: value for key, value in fields.items() if key in allowed}
    # пустой заголовок никогда не сохраняется
    if "title" in changes and not _valid_title(changes["title"]):
        del changes["title"]
    return changes


@dataclass(frozen=True)
class CurriculumStats:
    total_modules: int
    total_lessons: int
    published_lessons: int
    lessons_by_type: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CurriculumTree:
    """Снимок учебного плана курса: модули и уроки в порядке отображения.

    Все операции чистые: возвращают новый снимок, а если операция отклонена
    (курс заблокирован, неизвестный id, пустой заголовок, неверный индекс),
    возвращают этот же объект без изменений.
    """

    course: Course
    modules: tuple[Module, ...] = ()

    @classmethod
    def build(cls, course: Course, modules: Iterable[Module]) -> "CurriculumTree":
        """Собирает дерево из строк хранилища, приводя order к плотной нумерации."""
        ordered = sorted(modules, key=lambda m: m.order)
        normalized = [
            replace(m, lessons=renumber(sorted(m.lessons, key=lambda l: l.order)))
            for m in ordered
        ]
        return cls(course=course, modules=renumber(normalized))

    def is_locked(self, now: datetime) -> bool:
        return self.course.is_locked(now)

    # --- Поиск

    def find_module(self, module_id: str) -> Module | None:
        return next((m for m in self.modules if m.id == module_id), None)

    def find_lesson(self, module_id: str, lesson_id: str) -> Lesson | None:
        module = self.find_module(module_id)
        if module is None:
            return None
        return next((l for l in module.lessons if l.id == lesson_id), None)

    def ordered_lessons(self) -> list[Lesson]:
        return [lesson for module in self.modules for lesson in module.lessons]

    # --- Структурные операции

    def add_module(
        self,
        now: datetime,
        title: str = DEFAULT_MODULE_TITLE,
        module_id: str | None = None,
    ) -> "CurriculumTree":
        if self.is_locked(now) or not _valid_title(title):
            return self
        module = Module(
            id=module_id or new_placeholder_id("module"),
            title=title,
            order=len(self.modules),
        )
        return replace(self, modules=self.modules + (module,))

    def delete_module(self, now: datetime, module_id: str) -> "CurriculumTree":
        if self.is_locked(now) or self.find_module(module_id) is None:
            return self
        remaining = [m for m in self.modules if m.id != module_id]
        return replace(self, modules=renumber(remaining))

    def add_lesson(
        self,
        now: datetime,
        module_id: str,
        title: str = DEFAULT_LESSON_TITLE,
        lesson_id: str | None = None,
        type: str = LessonType.TEXT.value,
    ) -> "CurriculumTree":
        module = self.find_module(module_id)
        if self.is_locked(now) or module is None or not _valid_title(title):
            return self
        lesson = Lesson(
            id=lesson_id or new_placeholder_id("lesson"),
            title=title,
            order=len(module.lessons),
            type=type,
        )
        return self._with_module(replace(module, lessons=module.lessons + (lesson,)))

    def delete_lesson(self, now: datetime, module_id: str, lesson_id: str) -> "CurriculumTree":
        if self.is_locked(now) or self.find_lesson(module_id, lesson_id) is None:
            return self
        module = self.find_module(module_id)
        remaining = [l for l in module.lessons if l.id != lesson_id]
        return self._with_module(replace(module, lessons=renumber(remaining)))

    def move_module(self, now: datetime, from_index: int, to_index: int) -> "CurriculumTree":
        if self.is_locked(now):
            return self
        moved = move(self.modules, from_index, to_index)
        if moved is self.modules:
            return self
        return replace(self, modules=moved)

    def move_lesson(
        self, now: datetime, module_id: str, from_index: int, to_index: int
    ) -> "CurriculumTree":
        module = self.find_module(module_id)
        if self.is_locked(now) or module is None:
            return self
        moved = move(module.lessons, from_index, to_index)
        if moved is module.lessons:
            return self
        return self._with_module(replace(module, lessons=moved))

    # --- Правка полей (не структурная, разрешена и для заблокированного курса)

    def rename_module(self, module_id: str, title: str) -> "CurriculumTree":
        if not _valid_title(title):
            return self
        return self.update_module(module_id, title=title)

    def rename_lesson(self, module_id: str, lesson_id: str, title: str) -> "CurriculumTree":
        if not _valid_title(title):
            return self
        return self.update_lesson(module_id, lesson_id, title=title)

    def update_module(self, module_id: str, **fields: Any) -> "CurriculumTree":
        module = self.find_module(module_id)
        changes = _editable(fields, MODULE_FIELDS)
        if module is None or not changes:
            return self
        updated = replace(module, **changes)
        if updated == module:
            return self
        return self._with_module(updated)

    def update_lesson(self, module_id: str, lesson_id: str, **fields: Any) -> "CurriculumTree":
        lesson = self.find_lesson(module_id, lesson_id)
        changes = _editable(fields, LESSON_FIELDS)
        if lesson is None or not changes:
            return self
        updated = replace(lesson, **changes)
        if updated == lesson:
            return self
        module = self.find_module(module_id)
        lessons = tuple(updated if l.id == lesson_id else l for l in module.lessons)
        return self._with_module(replace(module, lessons=lessons))

    # --- Сводки

    def stats(self) -> CurriculumStats:
        lessons = self.ordered_lessons()
        return CurriculumStats(
            total_modules=len(self.modules),
            total_lessons=len(lessons),
            published_lessons=sum(1 for l in lessons if l.is_published),
            lessons_by_type=dict(Counter(l.type for l in lessons)),
        )

    def modules_by_week(self) -> list[tuple[int | None, tuple[Module, ...]]]:
        """Группировка модулей по неделе открытия; для self-paced одна группа."""
        if self.course.delivery_type != DeliveryType.COHORT.value:
            return [(None, self.modules)]
        weeks: dict[int, list[Module]] = {}
        for module in self.modules:
            weeks.setdefault(module.unlocks_on_week or 1, []).append(module)
        return [(week, tuple(weeks[week])) for week in sorted(weeks)]

    def _with_module(self, module: Module) -> "CurriculumTree":
        modules = tuple(module if m.id == module.id else m for m in self.modules)
        return replace(self, modules=modules)
