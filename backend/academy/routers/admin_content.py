# academy/routers/admin_content.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from academy import models, progress, schemas
from academy.access_guard import require_active_admin
from academy.database import get_db
from academy.media import validate_image

router = APIRouter(
    prefix="/admin",
    tags=["admin-content"],
    dependencies=[Depends(require_active_admin)],
)


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": f"{what} not found"})


def _next_order(db: Session, column, *where) -> int:
    current = db.scalar(select(func.max(column)).where(*where))
    return 0 if current is None else int(current) + 1


def _apply(row: Any, fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        setattr(row, key, value)
    row.updated_at = datetime.utcnow()


def _reorder(db: Session, rows: Sequence[Any], ids: list[int]) -> list[Any]:
    """Position in `ids` becomes each row's order. `ids` must name exactly these rows."""
    by_id = {r.id: r for r in rows}
    if len(ids) != len(set(ids)) or set(ids) != set(by_id):
        raise HTTPException(
            status_code=400,
            detail={"code": "BAD_REORDER", "message": "ids must list every item exactly once"},
        )
    for index, row_id in enumerate(ids):
        by_id[row_id].order = index
    db.commit()
    return [by_id[i] for i in ids]


def _get_course(db: Session, course_id: int) -> models.Course:
    course = db.get(models.Course, course_id)
    if not course:
        raise _not_found("Course")
    return course


def _get_module(db: Session, module_id: int) -> models.CourseModule:
    module = db.get(models.CourseModule, module_id)
    if not module:
        raise _not_found("Module")
    return module


def _get_lesson(db: Session, lesson_id: int) -> models.Lesson:
    lesson = db.get(models.Lesson, lesson_id)
    if not lesson:
        raise _not_found("Lesson")
    return lesson


# -------------------------------------------------
# COURSES
# -------------------------------------------------
@router.post("/courses", response_model=schemas.CourseOut, status_code=201)
def create_course(payload: schemas.CourseIn, db: Session = Depends(get_db)):
    course = models.Course(
        title=payload.title.strip(),
        description=payload.description,
        thumbnail=validate_image(payload.thumbnail, field="thumbnail"),
        instructor=payload.instructor,
        order=payload.order if payload.order is not None else _next_order(db, models.Course.order),
        locked=payload.locked,
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@router.put("/courses/reorder", response_model=list[schemas.CourseOut])
def reorder_courses(payload: schemas.ReorderIn, db: Session = Depends(get_db)):
    return _reorder(db, db.scalars(select(models.Course)).all(), payload.ids)


@router.patch("/courses/{course_id}", response_model=schemas.CourseOut)
def update_course(course_id: int, payload: schemas.CourseUpdateIn, db: Session = Depends(get_db)):
    course = _get_course(db, course_id)
    fields = payload.model_dump(exclude_unset=True)
    if "thumbnail" in fields:
        fields["thumbnail"] = validate_image(fields["thumbnail"], field="thumbnail")
    _apply(course, fields)
    db.commit()
    db.refresh(course)
    return course


@router.delete("/courses/{course_id}", status_code=204)
def delete_course(course_id: int, db: Session = Depends(get_db)):
    course = _get_course(db, course_id)
    progress.clear_for_course(db, course_id)
    db.delete(course)
    db.commit()
    return None


# -------------------------------------------------
# MODULES
# -------------------------------------------------
@router.post("/courses/{course_id}/modules", response_model=schemas.ModuleOut, status_code=201)
def create_module(course_id: int, payload: schemas.ModuleIn, db: Session = Depends(get_db)):
    _get_course(db, course_id)
    module = models.CourseModule(
        course_id=course_id,
        title=payload.title.strip(),
        description=payload.description,
        icon_url=validate_image(payload.icon_url, field="icon_url"),
        order=(
            payload.order
            if payload.order is not None
            else _next_order(db, models.CourseModule.order, models.CourseModule.course_id == course_id)
        ),
        locked=payload.locked,
    )
    db.add(module)
    db.commit()
    db.refresh(module)
    return module


@router.put("/courses/{course_id}/modules/reorder", response_model=list[schemas.ModuleOut])
def reorder_modules(course_id: int, payload: schemas.ReorderIn, db: Session = Depends(get_db)):
    _get_course(db, course_id)
    rows = db.scalars(select(models.CourseModule).where(models.CourseModule.course_id == course_id)).all()
    return _reorder(db, rows, payload.ids)


@router.patch("/modules/{module_id}", response_model=schemas.ModuleOut)
def update_module(module_id: int, payload: schemas.ModuleUpdateIn, db: Session = Depends(get_db)):
    module = _get_module(db, module_id)
    fields = payload.model_dump(exclude_unset=True)
    if "icon_url" in fields:
        fields["icon_url"] = validate_image(fields["icon_url"], field="icon_url")
    _apply(module, fields)
    db.commit()
    db.refresh(module)
    return module


@router.delete("/modules/{module_id}", status_code=204)
def delete_module(module_id: int, db: Session = Depends(get_db)):
    module = _get_module(db, module_id)
    progress.clear_for_module(db, module_id)
    db.delete(module)
    db.commit()
    return None


# -------------------------------------------------
# LESSONS
# -------------------------------------------------
def _new_lesson(module: models.CourseModule, item: schemas.LessonIn, order: int) -> models.Lesson:
    return models.Lesson(
        course_id=module.course_id,
        module_id=module.id,
        title=item.title.strip(),
        description=item.description,
        lesson_type=item.lesson_type,
        video_url=item.video_url,
        audio_url=item.audio_url,
        duration=item.duration,
        locked=item.locked,
        transcript=item.transcript,
        text_content=item.text_content,
        resources=list(item.resources),
        notes=list(item.notes),
        order=item.order if item.order is not None else order,
    )


@router.post("/modules/{module_id}/lessons", response_model=schemas.LessonOut, status_code=201)
def create_lesson(module_id: int, payload: schemas.LessonIn, db: Session = Depends(get_db)):
    module = _get_module(db, module_id)
    lesson = _new_lesson(module, payload, _next_order(db, models.Lesson.order, models.Lesson.module_id == module_id))
    db.add(lesson)
    db.commit()
    db.refresh(lesson)
    return lesson


@router.post("/modules/{module_id}/lessons/bulk", response_model=list[schemas.LessonOut], status_code=201)
def create_lessons_bulk(module_id: int, payload: schemas.LessonBulkIn, db: Session = Depends(get_db)):
    """Lessons without an explicit order are appended in the order given."""
    module = _get_module(db, module_id)
    start = _next_order(db, models.Lesson.order, models.Lesson.module_id == module_id)

    lessons = [_new_lesson(module, item, start + i) for i, item in enumerate(payload.lessons)]
    db.add_all(lessons)
    db.commit()
    for lesson in lessons:
        db.refresh(lesson)
    return lessons


@router.put("/modules/{module_id}/lessons/reorder", response_model=list[schemas.LessonOut])
def reorder_lessons(module_id: int, payload: schemas.ReorderIn, db: Session = Depends(get_db)):
    _get_module(db, module_id)
    rows = db.scalars(select(models.Lesson).where(models.Lesson.module_id == module_id)).all()
    return _reorder(db, rows, payload.ids)


@router.patch("/lessons/{lesson_id}", response_model=schemas.LessonOut)
def update_lesson(lesson_id: int, payload: schemas.LessonUpdateIn, db: Session = Depends(get_db)):
    lesson = _get_lesson(db, lesson_id)
    _apply(lesson, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(lesson)
    return lesson


@router.delete("/lessons/{lesson_id}", status_code=204)
def delete_lesson(lesson_id: int, db: Session = Depends(get_db)):
    lesson = _get_lesson(db, lesson_id)
    progress.clear_for_lesson(db, lesson_id)
    db.delete(lesson)
    db.commit()
    return None
