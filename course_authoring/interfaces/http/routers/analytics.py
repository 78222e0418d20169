from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from ....application.curriculum_service import CurriculumService
from ....domain.analytics import build_course_analytics, filter_students, student_progress
from ....infrastructure.db import get_db
from ....infrastructure.cache import cached, analytics_key, students_key
from ....infrastructure.metrics import db_queries_total
from ....infrastructure.repositories import AnalyticsReader
from ..schemas import AnalyticsOut, StudentOut
from ..deps import curriculum_service

router = APIRouter(prefix="/api/courses/{course_id}", tags=["analytics"])

@router.get("/analytics", response_model=AnalyticsOut)
def course_analytics(course_id: str, db: Session = Depends(get_db),
                     service: CurriculumService = Depends(curriculum_service)):
    def load():
        db_queries_total.inc()
        tree = service.get_tree(course_id)
        lessons = tree.ordered_lessons()
        reader = AnalyticsReader(db)
        data = build_course_analytics(
            lessons=lessons,
            enrollments=reader.enrollments(course_id),
            completions=reader.completions([l.id for l in lessons]),
            reviews=reader.reviews(course_id),
            now=datetime.now(timezone.utc),
        )
        data.update(courseId=tree.course.id, courseTitle=tree.course.title)
        return AnalyticsOut.model_validate(data).model_dump(mode="json")
    return cached(analytics_key(course_id), load)

@router.get("/students", response_model=list[StudentOut])
def course_students(course_id: str, db: Session = Depends(get_db),
                    service: CurriculumService = Depends(curriculum_service),
                    q: str | None = Query(None, max_length=255)):
    def load():
        db_queries_total.inc()
        lesson_ids = [l.id for l in service.get_tree(course_id).ordered_lessons()]
        reader = AnalyticsReader(db)
        rows = student_progress(reader.enrollments(course_id), reader.completions(lesson_ids), lesson_ids)
        return [StudentOut.model_validate(r).model_dump(mode="json") for r in rows]
    # кэшируем полный список, поиск делаем по нему
    return filter_students(cached(students_key(course_id), load), q)
