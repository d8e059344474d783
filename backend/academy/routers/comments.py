# academy/routers/comments.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from academy import activity, auth, models, schemas
from academy.access_guard import require_active_admin, require_stored_profile
from academy.database import get_db
from academy.routers.courses import ensure_unlocked, get_course, get_lesson, get_module

router = APIRouter(tags=["comments"])


def _comment_out(c: models.LessonComment) -> schemas.CommentOut:
    author = c.author
    return schemas.CommentOut(
        id=c.id,
        course_id=c.course_id,
        module_id=c.module_id,
        lesson_id=c.lesson_id,
        user_id=c.user_id,
        body=c.body,
        created_at=c.created_at,
        author_name=(author.name or author.email) if author else None,
        author_avatar=author.avatar_url if author else None,
    )


def _owned_comment(db: Session, comment_id: int, profile: models.Profile) -> models.LessonComment:
    c = db.get(models.LessonComment, comment_id)
    if not c:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Comment not found"})
    if c.user_id != profile.id and not auth.is_admin(profile):
        raise HTTPException(status_code=403, detail={"code": "NOT_OWNER", "message": "You can only change your own comments"})
    return c


@router.get(
    "/courses/{course_id}/modules/{module_id}/lessons/{lesson_id}/comments",
    response_model=list[schemas.CommentOut],
)
def list_comments(
    course_id: int,
    module_id: int,
    lesson_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    ensure_unlocked(get_course(db, course_id), profile)
    get_module(db, course_id, module_id)
    get_lesson(db, course_id, module_id, lesson_id)

    rows = db.scalars(
        select(models.LessonComment)
        .options(joinedload(models.LessonComment.author))
        .where(models.LessonComment.lesson_id == lesson_id)
        .order_by(models.LessonComment.created_at.desc(), models.LessonComment.id.desc())
    ).all()
    return [_comment_out(c) for c in rows]


@router.post(
    "/courses/{course_id}/modules/{module_id}/lessons/{lesson_id}/comments",
    response_model=schemas.CommentOut,
    status_code=201,
)
def add_comment(
    course_id: int,
    module_id: int,
    lesson_id: int,
    payload: schemas.CommentIn,
    request: Request,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    ensure_unlocked(get_course(db, course_id), profile)
    get_module(db, course_id, module_id)
    lesson = get_lesson(db, course_id, module_id, lesson_id)
    ensure_unlocked(lesson, profile)

    c = models.LessonComment(
        course_id=course_id,
        module_id=module_id,
        lesson_id=lesson_id,
        user_id=profile.id,
        body=payload.body.strip(),
    )
    db.add(c)
    db.commit()
    db.refresh(c)

    activity.log_activity(db, profile, activity.COMMENT, {"lesson_id": lesson_id, "comment_id": c.id}, request)
    return _comment_out(c)


@router.put("/comments/{comment_id}", response_model=schemas.CommentOut)
def edit_comment(
    comment_id: int,
    payload: schemas.CommentIn,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    c = _owned_comment(db, comment_id, profile)
    c.body = payload.body.strip()
    db.commit()
    db.refresh(c)
    return _comment_out(c)


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    c = _owned_comment(db, comment_id, profile)
    db.delete(c)
    db.commit()
    return None


# -------------------------------------------------
# ADMIN
# -------------------------------------------------
@router.get("/admin/comments", response_model=list[schemas.CommentOut], dependencies=[Depends(require_active_admin)])
def admin_search_comments(
    search: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    stmt = (
        select(models.LessonComment)
        .options(joinedload(models.LessonComment.author))
        .join(models.Profile, models.LessonComment.user_id == models.Profile.id)
    )
    q = (search or "").strip()
    if q:
        like = f"%{q}%"
        stmt = stmt.where(
            or_(
                models.LessonComment.body.ilike(like),
                models.Profile.name.ilike(like),
                models.Profile.email.ilike(like),
            )
        )
    rows = db.scalars(stmt.order_by(models.LessonComment.created_at.desc()).limit(limit)).unique().all()
    return [_comment_out(c) for c in rows]
