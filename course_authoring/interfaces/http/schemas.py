from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field

DeliveryType = Literal["self_paced", "cohort"]
LessonKind = Literal["video", "text", "quiz"]


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("title must not be empty")
    return value


# пустой заголовок никогда не сохраняется
Title = Annotated[str, Field(min_length=1, max_length=255), AfterValidator(_not_blank)]


class CourseCreate(BaseModel):
    title: Title
    description: str | None = None
    delivery_type: DeliveryType = "self_paced"
    start_date: datetime | None = None
    end_date: datetime | None = None

class CourseUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    delivery_type: DeliveryType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

class CourseOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    delivery_type: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: str
    class Config: from_attributes = True

class LessonOut(BaseModel):
    id: str
    title: str
    type: str
    content: Any = None
    is_published: bool
    order: int
    class Config: from_attributes = True

class ModuleOut(BaseModel):
    id: str
    title: str
    order: int
    weekly_sprint_goal: str | None = None
    unlocks_on_week: int | None = None
    lessons: list[LessonOut] = []
    class Config: from_attributes = True

class CurriculumStatsOut(BaseModel):
    total_modules: int
    total_lessons: int
    published_lessons: int
    lessons_by_type: dict[str, int]
    class Config: from_attributes = True

class CourseDetailOut(CourseOut):
    is_locked: bool
    modules: list[ModuleOut]
    stats: CurriculumStatsOut

class ModuleCreate(BaseModel):
    title: Title = "New Module"

class ModuleUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    weekly_sprint_goal: str | None = None
    unlocks_on_week: int | None = Field(default=None, ge=1)

class LessonCreate(BaseModel):
    title: Title = "New Lesson"
    type: LessonKind = "text"

class LessonUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    type: LessonKind | None = None
    content: Any = None
    is_published: bool | None = None

class ReorderReq(BaseModel):
    from_index: int
    to_index: int

class LessonIn(BaseModel):
    id: str | None = None
    title: Title
    type: LessonKind = "text"
    content: Any = None
    is_published: bool = False

class ModuleIn(BaseModel):
    id: str | None = None
    title: Title
    weekly_sprint_goal: str | None = None
    unlocks_on_week: int | None = Field(default=None, ge=1)
    lessons: list[LessonIn] = []

class CurriculumIn(BaseModel):
    modules: list[ModuleIn]

class ReviewSubmitResp(BaseModel):
    id: str
    status: str
    message: str

# --- Аналитика

class TrendPoint(BaseModel):
    month: str
    enrollments: int

class FunnelStep(BaseModel):
    lesson_id: str
    lesson_title: str
    lesson_order: int
    completed_count: int
    completion_rate: int
    drop_off_rate: int | None = None

class ReviewOut(BaseModel):
    id: str | None = None
    user_name: str | None = None
    rating: int
    comment: str | None = None
    created_at: datetime

class AnalyticsOut(BaseModel):
    courseId: str
    courseTitle: str
    totalEnrollments: int
    totalLessons: int
    enrollmentTrends: list[TrendPoint]
    engagementFunnel: list[FunnelStep]
    averageRating: float
    totalReviews: int
    completionRate: int
    reviews: list[ReviewOut]
    lastUpdated: datetime

class StudentOut(BaseModel):
    user_id: str
    full_name: str | None = None
    email: str | None = None
    enrolled_at: datetime
    progress: int
    completed_lessons: int
    total_lessons: int
