from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence

from .entities import Lesson


@dataclass(frozen=True)
class EnrollmentRow:
    user_id: str
    enrolled_at: datetime
    full_name: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class CompletionRow:
    lesson_id: str
    user_id: str
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ReviewRow:
    rating: int
    created_at: datetime
    comment: str | None = None
    user_name: str | None = None
    id: str | None = None


def round_half_up(value: float, digits: int = 0) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percent(part: float, total: float) -> int:
    if total <= 0:
        return 0
    return int(round_half_up(part * 100 / total))


def _completed_by_lesson(completions: Iterable[CompletionRow]) -> dict[str, set[str]]:
    completed: dict[str, set[str]] = defaultdict(set)
    for row in completions:
        completed[row.lesson_id].add(row.user_id)
    return completed


def enrollment_trends(enrollments: Iterable[EnrollmentRow]) -> list[dict[str, Any]]:
    """Число записей на курс по календарным месяцам, по возрастанию.

    Пустые месяцы не достраиваются.
    """
    buckets = Counter(row.enrolled_at.strftime("%Y-%m") for row in enrollments)
    return [{"month": month, "enrollments": buckets[month]} for month in sorted(buckets)]


def engagement_funnel(
    lessons: Sequence[Lesson],
    completions: Iterable[CompletionRow],
    total_enrollments: int,
) -> list[dict[str, Any]]:
    """Воронка прохождения по урокам в порядке модулей и уроков.

    drop_off_rate это разница показанных (округлённых) процентов соседних
    уроков, не бывает отрицательным; у первого урока его нет.
    """
    completed = _completed_by_lesson(completions)
    funnel = []
    previous_rate: int | None = None
    for position, lesson in enumerate(lessons):
        count = len(completed.get(lesson.id, ()))
        rate = percent(count, total_enrollments)
        drop_off = None
        if previous_rate is not None:
            drop_off = max(0, previous_rate - rate)
        funnel.append(
            {
                "lesson_id": lesson.id,
                "lesson_title": lesson.title,
                "lesson_order": position,
                "completed_count": count,
                "completion_rate": rate,
                "drop_off_rate": drop_off,
            }
        )
        previous_rate = rate
    return funnel


def average_rating(reviews: Sequence[ReviewRow]) -> float:
    if not reviews:
        return 0.0
    return round_half_up(sum(r.rating for r in reviews) / len(reviews), 1)


def course_completion_rate(
    lessons: Sequence[Lesson],
    completions: Iterable[CompletionRow],
    total_enrollments: int,
) -> int:
    """Доля записавшихся, прошедших последний урок курса, в процентах."""
    if not lessons:
        return 0
    final_lesson = lessons[-1]
    finished = {row.user_id for row in completions if row.lesson_id == final_lesson.id}
    return percent(len(finished), total_enrollments)


def build_course_analytics(
    lessons: Sequence[Lesson],
    enrollments: Sequence[EnrollmentRow],
    completions: Sequence[CompletionRow],
    reviews: Sequence[ReviewRow],
    now: datetime,
    recent_reviews: int = 10,
) -> dict[str, Any]:
    total = len(enrollments)
    latest = sorted(reviews, key=lambda r: r.created_at, reverse=True)[:recent_reviews]
    return {
        "totalEnrollments": total,
        "totalLessons": len(lessons),
        "enrollmentTrends": enrollment_trends(enrollments),
        "engagementFunnel": engagement_funnel(lessons, completions, total),
        "averageRating": average_rating(reviews),
        "totalReviews": len(reviews),
        "completionRate": course_completion_rate(lessons, completions, total),
        "reviews": [
            {
                "id": r.id,
                "user_name": r.user_name,
                "rating": r.rating,
                "comment": r.comment,
                "created_at": r.created_at,
            }
            for r in latest
        ],
        "lastUpdated": now,
    }


def student_progress(
    enrollments: Iterable[EnrollmentRow],
    completions: Iterable[CompletionRow],
    lesson_ids: Sequence[str],
) -> list[dict[str, Any]]:
    """Прогресс каждого записавшегося студента по урокам курса."""
    course_lessons = set(lesson_ids)
    done: dict[str, set[str]] = defaultdict(set)
    for row in completions:
        if row.lesson_id in course_lessons:
            done[row.user_id].add(row.lesson_id)

    total = len(course_lessons)
    return [
        {
            "user_id": row.user_id,
            "full_name": row.full_name,
            "email": row.email,
            "enrolled_at": row.enrolled_at,
            "completed_lessons": len(done[row.user_id]),
            "total_lessons": total,
            "progress": percent(len(done[row.user_id]), total),
        }
        for row in enrollments
    ]


def filter_students(rows: Iterable[dict[str, Any]], query: str | None) -> list[dict[str, Any]]:
    rows = list(rows)
    needle = (query or "").strip().lower()
    if not needle:
        return rows
    return [
        row
        for row in rows
        if needle in (row.get("full_name") or "").lower()
        or needle in (row.get("email") or "").lower()
    ]
