# academy/routers/courses.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from academy import activity, auth, models, progress, schemas
from academy.access_guard import require_active_access
from academy.database import get_db

router = APIRouter(
    tags=["courses"],
    dependencies=[Depends(require_active_access)],
)


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": f"{what} not found"})


def ensure_unlocked(row: Any, viewer: Any) -> None:
    """Locked content is listed, but only admins may open it."""
    if getattr(row, "locked", False) and not auth.is_admin(viewer):
        raise HTTPException(
            status_code=403,
            detail={"code": "CONTENT_LOCKED", "message": "This content is locked"},
        )


def get_course(db: Session, course_id: int) -> models.Course:
    course = db.get(models.Course, course_id)
    if not course:
        raise _not_found("Course")
    return course


def get_module(db: Session, course_id: int, module_id: int) -> models.CourseModule:
    module = db.get(models.CourseModule, module_id)
    if not module or module.course_id != course_id:
        raise _not_found("Module")
    return module


def get_lesson(db: Session, course_id: int, module_id: int, lesson_id: int) -> models.Lesson:
    lesson = db.get(models.Lesson, lesson_id)
    if not lesson or lesson.module_id != module_id or lesson.course_id != course_id:
        raise _not_found("Lesson")
    return lesson


# -------------------------------------------------
# CATALOG
# -------------------------------------------------
@router.get("/courses", response_model=list[schemas.CourseOut])
def list_courses(db: Session = Depends(get_db)):
    return db.scalars(select(models.Course).order_by(models.Course.order, models.Course.id)).all()


@router.get("/courses/{course_id}", response_model=schemas.CourseOut)
def read_course(
    course_id: int,
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    course = get_course(db, course_id)
    ensure_unlocked(course, profile)
    return course


@router.get("/courses/{course_id}/modules", response_model=list[schemas.ModuleOut])
def list_modules(
    course_id: int,
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    course = get_course(db, course_id)
    ensure_unlocked(course, profile)
    return db.scalars(
        select(models.CourseModule)
        .where(models.CourseModule.course_id == course_id)
        .order_by(models.CourseModule.order, models.CourseModule.id)
    ).all()


@router.get("/courses/{course_id}/first-lesson", response_model=schemas.LessonSummaryOut)
def first_lesson(
    course_id: int,
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    course = get_course(db, course_id)
    ensure_unlocked(course, profile)

    lesson: Optional[models.Lesson] = db.scalar(
        select(models.Lesson)
        .join(models.CourseModule, models.Lesson.module_id == models.CourseModule.id)
        .where(models.Lesson.course_id == course_id)
        .order_by(models.CourseModule.order, models.CourseModule.id, models.Lesson.order, models.Lesson.id)
        .limit(1)
    )
    if lesson is None:
        raise _not_found("Lesson")
    return lesson


@router.get("/courses/{course_id}/modules/{module_id}/lessons", response_model=list[schemas.LessonSummaryOut])
def list_lessons(
    course_id: int,
    module_id: int,
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    ensure_unlocked(get_course(db, course_id), profile)
    ensure_unlocked(get_module(db, course_id, module_id), profile)
    return db.scalars(
        select(models.Lesson)
        .where(models.Lesson.module_id == module_id)
        .order_by(models.Lesson.order, models.Lesson.id)
    ).all()


@router.get("/courses/{course_id}/modules/{module_id}/lessons/{lesson_id}", response_model=schemas.LessonOut)
def read_lesson(
    course_id: int,
    module_id: int,
    lesson_id: int,
    request: Request,
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    ensure_unlocked(get_course(db, course_id), profile)
    ensure_unlocked(get_module(db, course_id, module_id), profile)
    lesson = get_lesson(db, course_id, module_id, lesson_id)
    ensure_unlocked(lesson, profile)

    if isinstance(profile, models.Profile):
        progress.record_last_watched(db, profile.id, lesson)
        activity.log_activity(
            db,
            profile,
            activity.WATCH_LESSON,
            {"course_id": course_id, "module_id": module_id, "lesson_id": lesson_id, "lesson_title": lesson.title},
            request,
        )
    return lesson


# -------------------------------------------------
# PROGRESS
# -------------------------------------------------
@router.get("/progress/continue", response_model=Optional[schemas.ContinueLearningOut])
def continue_card(
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    if not isinstance(profile, models.Profile):
        return None
    return progress.continue_learning(db, profile.id)
