from datetime import datetime, timezone

from course_authoring.domain.analytics import (
    CompletionRow,
    EnrollmentRow,
    ReviewRow,
    average_rating,
    build_course_analytics,
    course_completion_rate,
    engagement_funnel,
    enrollment_trends,
    filter_students,
    round_half_up,
    student_progress,
)
from course_authoring.domain.entities import Lesson

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def enroll(user_id, year, month, day=1, **kw):
    return EnrollmentRow(user_id=user_id, enrolled_at=datetime(year, month, day, tzinfo=timezone.utc), **kw)


def completions(lesson_id, users):
    return [CompletionRow(lesson_id=lesson_id, user_id=u) for u in users]


LESSONS = [
    Lesson(id="l1", title="Intro", order=0),
    Lesson(id="l2", title="Variables", order=1),
    Lesson(id="l3", title="Loops", order=0),
]


def test_enrollment_trends_by_month():
    """Группировка записей по месяцам"""
    rows = [enroll("u1", 2024, 1, 5), enroll("u2", 2024, 1, 20), enroll("u3", 2024, 2, 3)]
    assert enrollment_trends(rows) == [
        {"month": "2024-01", "enrollments": 2},
        {"month": "2024-02", "enrollments": 1},
    ]


def test_enrollment_trends_sorted_without_gaps():
    rows = [enroll("u1", 2024, 5), enroll("u2", 2023, 12), enroll("u3", 2024, 2)]
    assert [p["month"] for p in enrollment_trends(rows)] == ["2023-12", "2024-02", "2024-05"]


def test_enrollment_trends_empty():
    assert enrollment_trends([]) == []


def test_funnel_completion_and_drop_off():
    """10 записей, 7 и 5 прохождений: 70% и отток 20"""
    users = [f"u{i}" for i in range(10)]
    rows = completions("l1", users[:7]) + completions("l2", users[:5])
    funnel = engagement_funnel(LESSONS[:2], rows, total_enrollments=10)
    assert funnel[0]["completion_rate"] == 70
    assert funnel[0]["drop_off_rate"] is None
    assert funnel[1]["completion_rate"] == 50
    assert funnel[1]["drop_off_rate"] == 20
    assert funnel[1]["completed_count"] == 5
    assert [step["lesson_order"] for step in funnel] == [0, 1]


def test_funnel_drop_off_matches_shown_rates():
    """Отток считается по показанным процентам: 13 -> 11 даёт 2"""
    users = [f"u{i}" for i in range(1000)]
    rows = completions("l1", users[:125]) + completions("l2", users[:114])
    funnel = engagement_funnel(LESSONS[:2], rows, total_enrollments=1000)
    assert [step["completion_rate"] for step in funnel] == [13, 11]
    assert funnel[1]["drop_off_rate"] == 2


def test_funnel_drop_off_never_negative():
    rows = completions("l1", ["u1"]) + completions("l2", ["u1", "u2", "u3"])
    funnel = engagement_funnel(LESSONS[:2], rows, total_enrollments=4)
    assert funnel[1]["completion_rate"] == 75
    assert funnel[1]["drop_off_rate"] == 0


def test_funnel_counts_each_user_once():
    rows = completions("l1", ["u1", "u1", "u2"])
    funnel = engagement_funnel(LESSONS[:1], rows, total_enrollments=4)
    assert funnel[0]["completed_count"] == 2
    assert funnel[0]["completion_rate"] == 50


def test_funnel_without_enrollments():
    funnel = engagement_funnel(LESSONS, [], total_enrollments=0)
    assert [step["completion_rate"] for step in funnel] == [0, 0, 0]
    assert [step["drop_off_rate"] for step in funnel] == [None, 0, 0]


def test_funnel_rounds_half_up():
    # 1 из 8 = 12.5%
    funnel = engagement_funnel(LESSONS[:1], completions("l1", ["u1"]), total_enrollments=8)
    assert funnel[0]["completion_rate"] == 13


def test_average_rating_zero_reviews():
    assert average_rating([]) == 0.0


def test_average_rating_one_decimal():
    reviews = [ReviewRow(rating=r, created_at=NOW) for r in (5, 4, 4)]
    assert average_rating(reviews) == 4.3
    assert round_half_up(4.25, 1) == 4.3


def test_course_completion_rate_uses_final_lesson():
    rows = completions("l1", ["u1", "u2", "u3"]) + completions("l3", ["u1"])
    assert course_completion_rate(LESSONS, rows, total_enrollments=4) == 25


def test_course_completion_rate_edge_cases():
    assert course_completion_rate([], [], total_enrollments=5) == 0
    assert course_completion_rate(LESSONS, [], total_enrollments=0) == 0


def test_build_course_analytics_shape():
    enrollments = [enroll("u1", 2024, 1), enroll("u2", 2024, 2)]
    reviews = [
        ReviewRow(rating=5, created_at=datetime(2024, 3, 1, tzinfo=timezone.utc), comment="Great"),
        ReviewRow(rating=3, created_at=datetime(2024, 4, 1, tzinfo=timezone.utc)),
    ]
    data = build_course_analytics(LESSONS, enrollments, completions("l3", ["u1"]), reviews, NOW)
    assert data["totalEnrollments"] == 2
    assert data["totalLessons"] == 3
    assert data["totalReviews"] == 2
    assert data["averageRating"] == 4.0
    assert data["completionRate"] == 50
    assert data["lastUpdated"] == NOW
    # свежие отзывы первыми
    assert [r["rating"] for r in data["reviews"]] == [3, 5]
    assert len(data["engagementFunnel"]) == 3


def test_build_course_analytics_empty():
    data = build_course_analytics([], [], [], [], NOW)
    assert data["averageRating"] == 0.0
    assert data["totalReviews"] == 0
    assert data["completionRate"] == 0
    assert data["enrollmentTrends"] == []


def test_student_progress():
    enrollments = [
        enroll("u1", 2024, 1, full_name="Ann Lee", email="ann@example.com"),
        enroll("u2", 2024, 1, full_name="Bob Stone", email="bob@example.com"),
    ]
    rows = completions("l1", ["u1", "u2"]) + completions("l2", ["u1"]) + completions("other", ["u2"])
    progress = student_progress(enrollments, rows, ["l1", "l2", "l3"])
    assert progress[0]["completed_lessons"] == 2
    assert progress[0]["progress"] == 67
    assert progress[1]["completed_lessons"] == 1
    assert progress[1]["progress"] == 33
    assert progress[1]["total_lessons"] == 3


def test_student_progress_without_lessons():
    progress = student_progress([enroll("u1", 2024, 1)], [], [])
    assert progress[0]["progress"] == 0


def test_filter_students():
    rows = [
        {"full_name": "Ann Lee", "email": "ann@example.com"},
        {"full_name": None, "email": "bob@school.org"},
    ]
    assert filter_students(rows, "ANN") == rows[:1]
    assert filter_students(rows, "school") == rows[1:]
    assert filter_students(rows, "") == rows
    assert filter_students(rows, None) == rows
