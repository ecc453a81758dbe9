"""
Adaptive practice and academic record endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging
from app.database import get_db
from app.models import ExamGoal, InternalAssessment
from app.schemas.progress import (
    ExamGoalCreate,
    ExamGoalResponse,
    InternalAssessmentCreate,
    InternalAssessmentResponse,
    PracticeGenerateResponse,
)
from app.services.practice_service import PracticeService, get_practice_service
from app.utils.auth import ADMIN, LEARNER, TEACHER, Principal, require_roles


router = APIRouter(tags=["practice"])
logger = logging.getLogger(__name__)


@router.post("/practice/generate", response_model=PracticeGenerateResponse, status_code=201)
async def generate_practice(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
    practice: PracticeService = Depends(get_practice_service),
):
    """
    Generate a personalized practice quiz

    - Weights subjects by marks lost in internal assessments
    - Revisits focus areas answered incorrectly in recent attempts
    - Rejects the whole quiz if any question fails validation
    """
    assessment, remarks = await practice.generate(db, principal.id)
    return PracticeGenerateResponse(
        assessment_id=assessment.id,
        title=assessment.title,
        total_questions=len(assessment.questions),
        remarks=remarks,
    )


@router.post("/internal-assessments", response_model=InternalAssessmentResponse, status_code=201)
async def record_internal_assessment(
    payload: InternalAssessmentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    record = InternalAssessment(recorded_by=principal.id, **payload.model_dump())
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(f"Internal assessment recorded for {record.learner_id}: {record.subject_name}")
    return record


@router.post("/exam-goals", response_model=ExamGoalResponse, status_code=201)
async def set_exam_goal(
    payload: ExamGoalCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
):
    goal = ExamGoal(learner_id=principal.id, **payload.model_dump())
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return goal
