import asyncio
from typing import Callable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .cache import invalidate_course
from .db import SessionLocal
from .models import (
    CourseORM,
    EnrollmentORM,
    LessonORM,
    LessonProgressORM,
    ModuleORM,
    ReviewORM,
    new_id,
)
from ..application.autosave import PersistRequest
from ..domain.analytics import CompletionRow, EnrollmentRow, ReviewRow
from ..domain.curriculum import CurriculumTree
from ..domain.entities import Course, Lesson, Module, is_placeholder
from ..domain.errors import CourseNotFound, LessonNotFound, ModuleNotFound


def lesson_to_domain(row: LessonORM) -> Lesson:
    return Lesson(
        id=row.id,
        title=row.title,
        order=row.order,
        type=row.type,
        content=row.content,
        is_published=row.is_published,
    )


def module_to_domain(row: ModuleORM) -> Module:
    return Module(
        id=row.id,
        title=row.title,
        order=row.order,
        lessons=tuple(lesson_to_domain(l) for l in row.lessons),
        weekly_sprint_goal=row.weekly_sprint_goal,
        unlocks_on_week=row.unlocks_on_week,
    )


def course_to_domain(row: CourseORM) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        description=row.description,
        delivery_type=row.delivery_type,
        start_date=row.start_date,
        end_date=row.end_date,
        status=row.status,
        owner=row.owner,
    )


class CurriculumRepository:
    def __init__(self, db: Session): self.db = db

    def load(self, course_id: str) -> CurriculumTree | None:
        row = self.db.get(CourseORM, course_id)
        if row is None:
            return None
        return CurriculumTree.build(
            course_to_domain(row), [module_to_domain(m) for m in row.modules]
        )

    def save(self, tree: CurriculumTree) -> CurriculumTree:
        """Приводит строки модулей и уроков курса к состоянию дерева.

        order берётся из позиции в дереве, временные id заменяются новыми.
        """
        row = self.db.get(CourseORM, tree.course.id)
        if row is None:
            raise CourseNotFound(tree.course.id)

        existing = {m.id: m for m in row.modules}
        module_rows = []
        for index, module in enumerate(tree.modules):
            mrow = None if is_placeholder(module.id) else existing.get(module.id)
            if mrow is None:
                mrow = ModuleORM(id=new_id())
            mrow.title = module.title
            mrow.order = index
            mrow.weekly_sprint_goal = module.weekly_sprint_goal
            mrow.unlocks_on_week = module.unlocks_on_week
            mrow.lessons = self._lesson_rows(mrow, module.lessons)
            module_rows.append(mrow)

        # модули, которых нет в дереве, удаляются через delete-orphan
        row.modules = module_rows
        self.db.commit()
        invalidate_course(tree.course.id)
        return self.load(tree.course.id)

    @staticmethod
    def _lesson_rows(mrow: ModuleORM, lessons: Sequence[Lesson]) -> list[LessonORM]:
        existing = {l.id: l for l in mrow.lessons}
        rows = []
        for index, lesson in enumerate(lessons):
            lrow = None if is_placeholder(lesson.id) else existing.get(lesson.id)
            if lrow is None:
                lrow = LessonORM(id=new_id())
            lrow.title = lesson.title
            lrow.type = lesson.type
            lrow.content = lesson.content
            lrow.is_published = lesson.is_published
            lrow.order = index
            rows.append(lrow)
        return rows


class AnalyticsReader:
    def __init__(self, db: Session): self.db = db

    def enrollments(self, course_id: str) -> list[EnrollmentRow]:
        q = (select(EnrollmentORM)
             .where(EnrollmentORM.course_id == course_id)
             .order_by(EnrollmentORM.enrolled_at))
        return [
            EnrollmentRow(user_id=r.user_id, enrolled_at=r.enrolled_at,
                          full_name=r.full_name, email=r.email)
            for r in self.db.scalars(q)
        ]

    def completions(self, lesson_ids: Sequence[str]) -> list[CompletionRow]:
        if not lesson_ids:
            return []
        q = select(LessonProgressORM).where(LessonProgressORM.lesson_id.in_(list(lesson_ids)))
        return [
            CompletionRow(lesson_id=r.lesson_id, user_id=r.user_id, completed_at=r.completed_at)
            for r in self.db.scalars(q)
        ]

    def reviews(self, course_id: str) -> list[ReviewRow]:
        q = select(ReviewORM).where(ReviewORM.course_id == course_id)
        return [
            ReviewRow(id=r.id, rating=r.rating, comment=r.comment,
                      user_name=r.user_name, created_at=r.created_at)
            for r in self.db.scalars(q)
        ]


class SqlPersister:
    """Запись автосохранения: одно обновление полей урока или модуля."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def __call__(self, request: PersistRequest) -> None:
        # синхронная сессия SQLAlchemy, event loop не блокируем
        await asyncio.to_thread(self.write, request)

    def write(self, request: PersistRequest) -> None:
        db = self.session_factory()
        try:
            if request.kind == "module":
                row = db.get(ModuleORM, request.entity_id)
                if row is None:
                    raise ModuleNotFound(request.entity_id)
                course_id = row.course_id
            else:
                row = db.get(LessonORM, request.entity_id)
                if row is None:
                    raise LessonNotFound(request.entity_id)
                course_id = row.module.course_id
            for name, value in request.fields.items():
                setattr(row, name, value)
            row.updated_at = request.updated_at
            db.commit()
        finally:
            db.close()
        invalidate_course(course_id)
