from fastapi import Depends
from sqlalchemy.orm import Session

from ...application.curriculum_service import CurriculumService
from ...infrastructure.db import get_db
from ...infrastructure.repositories import CurriculumRepository
from .authz import ensure_owner, require_instructor


def curriculum_service(
    course_id: str,
    claims: dict = Depends(require_instructor),
    db: Session = Depends(get_db),
) -> CurriculumService:
    service = CurriculumService(CurriculumRepository(db))
    ensure_owner(service.get_tree(course_id).course.owner, claims)
    return service
