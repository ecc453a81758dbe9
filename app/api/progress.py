"""
Progression, lesson completion and achievement endpoints
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging
from app.database import get_db
from app.exceptions import NotFoundError
from app.models import Lesson
from app.schemas.progress import (
    BadgeResponse,
    LeaderboardEntry,
    LessonCompletionResponse,
    LessonCreate,
    LessonResponse,
    ProgressResponse,
)
from app.services.badge_service import badge_service
from app.services.ledger_service import ledger_service
from app.utils.auth import ADMIN, LEARNER, TEACHER, Principal, get_current_principal, require_roles


router = APIRouter(tags=["progress"])
logger = logging.getLogger(__name__)


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Points, level and completion counters (zero baseline if none yet)"""
    return ledger_service.get_progress(db, principal.id)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    records = ledger_service.leaderboard(db, limit)
    return [
        LeaderboardEntry(rank=index + 1, **ProgressResponse.model_validate(record).model_dump())
        for index, record in enumerate(records)
    ]


@router.post("/admin/progress/{learner_id}/recompute", response_model=ProgressResponse)
async def recompute_progress(
    learner_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(ADMIN)),
):
    """Rebuild a learner's record from the ledger journal"""
    logger.warning(f"Admin {principal.id} recomputing progression for {learner_id}")
    return ledger_service.recompute(db, learner_id)


@router.post("/lessons", response_model=LessonResponse, status_code=201)
async def create_lesson(
    payload: LessonCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    lesson = Lesson(title=payload.title, owner_id=principal.id)
    db.add(lesson)
    db.commit()
    db.refresh(lesson)
    return lesson


@router.post("/lessons/{lesson_id}/complete", response_model=LessonCompletionResponse)
async def complete_lesson(
    lesson_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
):
    """Mark a lesson completed; the lesson award is credited once"""
    lesson = db.query(Lesson).filter(Lesson.id == lesson_id).first()
    if not lesson:
        raise NotFoundError("Lesson not found")

    progress, credited = ledger_service.complete_lesson(db, principal.id, lesson)
    return LessonCompletionResponse(
        lesson_id=lesson.id,
        completed=progress.completed,
        completed_at=progress.completed_at,
        points_awarded=ledger_service.lesson_points if credited else 0,
        progress=ledger_service.get_progress(db, principal.id),
    )


@router.get("/achievements", response_model=List[BadgeResponse])
async def get_achievements(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
):
    """Evaluate the badge catalog and return it with award status"""
    return badge_service.evaluate(db, principal.id)
