from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from ....application.curriculum_service import CurriculumService
from ..schemas import (
    CourseDetailOut, LessonCreate, LessonOut, LessonUpdate,
    ModuleCreate, ModuleOut, ModuleUpdate, ReorderReq,
)
from ..deps import curriculum_service
from ..presenters import course_detail

router = APIRouter(prefix="/api/courses/{course_id}/modules", tags=["curriculum"])

# --- Модули

@router.post("", response_model=ModuleOut, status_code=status.HTTP_201_CREATED)
def add_module(course_id: str, payload: ModuleCreate,
               service: CurriculumService = Depends(curriculum_service)):
    return service.add_module(course_id, payload.title)

@router.post("/reorder", response_model=CourseDetailOut)
def reorder_modules(course_id: str, payload: ReorderReq,
                    service: CurriculumService = Depends(curriculum_service)):
    tree = service.move_module(course_id, payload.from_index, payload.to_index)
    return course_detail(tree, datetime.now(timezone.utc))

@router.patch("/{module_id}", response_model=ModuleOut)
def update_module(course_id: str, module_id: str, payload: ModuleUpdate,
                  service: CurriculumService = Depends(curriculum_service)):
    return service.update_module(course_id, module_id, payload.model_dump(exclude_unset=True))

@router.delete("/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_module(course_id: str, module_id: str,
                  service: CurriculumService = Depends(curriculum_service)):
    service.delete_module(course_id, module_id)

# --- Уроки

@router.post("/{module_id}/lessons", response_model=LessonOut, status_code=status.HTTP_201_CREATED)
def add_lesson(course_id: str, module_id: str, payload: LessonCreate,
               service: CurriculumService = Depends(curriculum_service)):
    return service.add_lesson(course_id, module_id, payload.title, payload.type)

@router.post("/{module_id}/lessons/reorder", response_model=CourseDetailOut)
def reorder_lessons(course_id: str, module_id: str, payload: ReorderReq,
                    service: CurriculumService = Depends(curriculum_service)):
    tree = service.move_lesson(course_id, module_id, payload.from_index, payload.to_index)
    return course_detail(tree, datetime.now(timezone.utc))

@router.patch("/{module_id}/lessons/{lesson_id}", response_model=LessonOut)
def update_lesson(course_id: str, module_id: str, lesson_id: str, payload: LessonUpdate,
                  service: CurriculumService = Depends(curriculum_service)):
    # сюда приходят запросы автосохранения редактора
    return service.update_lesson(course_id, module_id, lesson_id, payload.model_dump(exclude_unset=True))

@router.delete("/{module_id}/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lesson(course_id: str, module_id: str, lesson_id: str,
                  service: CurriculumService = Depends(curriculum_service)):
    service.delete_lesson(course_id, module_id, lesson_id)
