from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DeliveryType(str, Enum):
    SELF_PACED = "self_paced"
    COHORT = "cohort"


class CourseStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    REJECTED = "rejected"


class LessonType(str, Enum):
    VIDEO = "video"
    TEXT = "text"
    QUIZ = "quiz"


DEFAULT_MODULE_TITLE = "New Module"
DEFAULT_LESSON_TITLE = "New Lesson"

# Сущности, созданные в редакторе до сохранения, получают временный id
PLACEHOLDER_PREFIX = "temp-"


def new_placeholder_id(kind: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{kind}-{uuid.uuid4().hex}"


def is_placeholder(entity_id: str) -> bool:
    return entity_id.startswith(PLACEHOLDER_PREFIX)


def as_utc(value: datetime) -> datetime:
    # SQLite отдаёт naive datetime, считаем его UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Lesson:
    id: str
    title: str
    order: int
    type: str = LessonType.TEXT.value
    content: Any = None
    is_published: bool = False


@dataclass(frozen=True)
class Module:
    id: str
    title: str
    order: int
    lessons: tuple[Lesson, ...] = ()
    weekly_sprint_goal: str | None = None
    unlocks_on_week: int | None = None


@dataclass(frozen=True)
class Course:
    id: str
    title: str
    description: str | None = None
    delivery_type: str = DeliveryType.SELF_PACED.value
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: str = CourseStatus.DRAFT.value
    owner: str | None = None

    def is_locked(self, now: datetime) -> bool:
        """Когортный курс после старта закрыт для структурных правок."""
        if self.delivery_type != DeliveryType.COHORT.value or self.start_date is None:
            return False
        return as_utc(self.start_date) <= as_utc(now)
