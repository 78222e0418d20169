from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session
from ....application.curriculum_service import CurriculumService, submit_for_review
from ....domain.entities import Course as DomainCourse
from ....infrastructure.db import get_db
from ....infrastructure.models import Course
from ....infrastructure.cache import (
    cached, curriculum_key, invalidate_course, invalidate_course_list,
)
from ....infrastructure.metrics import db_queries_total
from ..schemas import CourseOut, CourseCreate, CourseUpdate, CourseDetailOut, CurriculumIn, ReviewSubmitResp
from ..authz import require_instructor, ensure_owner
from ..deps import curriculum_service
from ..presenters import course_detail

router = APIRouter(prefix="/api/courses", tags=["courses"])

@router.get("/health")
def health(): return {"status":"ok"}

def _owned_course(course_id: str, claims: dict, db: Session) -> Course:
    row = db.get(Course, course_id)
    if not row: raise HTTPException(404, "course not found")
    ensure_owner(row.owner, claims)
    return row

@router.get("", response_model=list[CourseOut])
def list_courses(db: Session = Depends(get_db),
                 claims: dict = Depends(require_instructor),
                 limit: int = Query(10, ge=1, le=100),
                 offset: int = Query(0, ge=0)):
    owner = claims["sub"]
    def load():
        db_queries_total.inc()
        q = db.query(Course)
        if claims.get("role") != "admin":
            q = q.filter(Course.owner == owner)
        rows = q.order_by(Course.created_at, Course.id).limit(limit).offset(offset).all()
        return [CourseOut.model_validate(row).model_dump(mode="json") for row in rows]
    # Кэширование списка курсов инструктора
    return cached(f"courses:list:{owner}:{limit}:{offset}", load)

@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(payload: CourseCreate, db: Session = Depends(get_db),
                  claims: dict = Depends(require_instructor)):
    row = Course(title=payload.title, description=payload.description,
                 delivery_type=payload.delivery_type, start_date=payload.start_date,
                 end_date=payload.end_date, owner=claims["sub"])
    db.add(row); db.commit(); db.refresh(row)
    # Инвалидируем кэш списка курсов
    invalidate_course_list()
    return row

@router.get("/{course_id}", response_model=CourseDetailOut)
def get_course(course_id: str, service: CurriculumService = Depends(curriculum_service)):
    def load():
        db_queries_total.inc()
        tree = service.get_tree(course_id)
        return course_detail(tree, datetime.now(timezone.utc)).model_dump(mode="json")
    detail = CourseDetailOut.model_validate(cached(curriculum_key(course_id), load))
    # блокировка зависит от текущего времени, в кэше она могла устареть
    course = DomainCourse(id=detail.id, title=detail.title,
                          delivery_type=detail.delivery_type, start_date=detail.start_date)
    detail.is_locked = course.is_locked(datetime.now(timezone.utc))
    return detail

@router.put("/{course_id}", response_model=CourseOut)
def update_course(course_id: str, payload: CourseUpdate, db: Session = Depends(get_db),
                  claims: dict = Depends(require_instructor)):
    row = _owned_course(course_id, claims, db)
    changes = payload.model_dump(exclude_unset=True)
    # пустой заголовок не сохраняем
    if not (changes.get("title") or "").strip(): changes.pop("title", None)
    if changes.get("delivery_type") is None: changes.pop("delivery_type", None)
    for name, value in changes.items():
        setattr(row, name, value)
    db.commit(); db.refresh(row)
    # Инвалидируем кэш
    invalidate_course_list()
    invalidate_course(course_id)
    return row

@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_course(course_id: str, db: Session = Depends(get_db),
                  claims: dict = Depends(require_instructor)):
    row = _owned_course(course_id, claims, db)
    db.delete(row); db.commit()
    # Инвалидируем кэш
    invalidate_course_list()
    invalidate_course(course_id)

@router.post("/{course_id}/submit-review", response_model=ReviewSubmitResp)
def submit_review(course_id: str, db: Session = Depends(get_db),
                  claims: dict = Depends(require_instructor)):
    row = _owned_course(course_id, claims, db)
    row.status = submit_for_review(row.status)
    db.commit()
    invalidate_course_list()
    invalidate_course(course_id)
    return ReviewSubmitResp(id=row.id, status=row.status, message="Course submitted for review")

@router.put("/{course_id}/curriculum", response_model=CourseDetailOut)
def save_curriculum(course_id: str, payload: CurriculumIn,
                    service: CurriculumService = Depends(curriculum_service)):
    tree = service.save_curriculum(course_id, [m.model_dump() for m in payload.modules])
    return course_detail(tree, datetime.now(timezone.utc))
