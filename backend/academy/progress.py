# academy/progress.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy import models


def record_last_watched(db: Session, user_id: int, lesson: models.Lesson) -> models.LastWatched:
    """One row per (user, course), overwritten by the latest lesson opened."""
    row = db.scalar(
        select(models.LastWatched)
        .where(models.LastWatched.user_id == user_id)
        .where(models.LastWatched.course_id == lesson.course_id)
    )
    if row is None:
        row = models.LastWatched(user_id=user_id, course_id=lesson.course_id)
        db.add(row)

    row.module_id = lesson.module_id
    row.lesson_id = lesson.id
    row.lesson_order = int(lesson.order or 0)
    row.watched_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return row


def continue_learning(db: Session, user_id: int) -> Optional[dict[str, Any]]:
    """Most recently watched lesson that still exists, or None."""
    rows = db.scalars(
        select(models.LastWatched)
        .where(models.LastWatched.user_id == user_id)
        .order_by(models.LastWatched.watched_at.desc())
    ).all()

    for row in rows:
        lesson = db.get(models.Lesson, row.lesson_id)
        course = db.get(models.Course, row.course_id)
        if lesson is None or course is None:
            continue
        return {
            "course_id": course.id,
            "course_title": course.title,
            "module_id": lesson.module_id,
            "lesson_id": lesson.id,
            "lesson_title": lesson.title,
            "lesson_order": row.lesson_order,
            "watched_at": row.watched_at,
        }
    return None


def clear_for_course(db: Session, course_id: int) -> None:
    db.query(models.LastWatched).filter(models.LastWatched.course_id == course_id).delete(synchronize_session=False)


def clear_for_module(db: Session, module_id: int) -> None:
    db.query(models.LastWatched).filter(models.LastWatched.module_id == module_id).delete(synchronize_session=False)


def clear_for_lesson(db: Session, lesson_id: int) -> None:
    db.query(models.LastWatched).filter(models.LastWatched.lesson_id == lesson_id).delete(synchronize_session=False)
