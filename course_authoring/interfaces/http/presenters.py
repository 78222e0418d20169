from datetime import datetime

from ...domain.curriculum import CurriculumTree
from .schemas import CourseDetailOut, CurriculumStatsOut, ModuleOut


def course_detail(tree: CurriculumTree, now: datetime) -> CourseDetailOut:
    course = tree.course
    return CourseDetailOut(
        id=course.id,
        title=course.title,
        description=course.description,
        delivery_type=course.delivery_type,
        start_date=course.start_date,
        end_date=course.end_date,
        status=course.status,
        is_locked=tree.is_locked(now),
        modules=[ModuleOut.model_validate(m) for m in tree.modules],
        stats=CurriculumStatsOut.model_validate(tree.stats()),
    )
