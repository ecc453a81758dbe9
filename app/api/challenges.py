"""
Challenge and submission endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
from app.database import get_db
from app.models import Challenge
from app.schemas.challenge import (
    ChallengeCreate,
    ChallengeResponse,
    SubmissionCreate,
    SubmissionGrade,
    SubmissionResponse,
    SubmissionRetakeDecision,
)
from app.services.challenge_service import challenge_service
from app.utils.auth import ADMIN, LEARNER, TEACHER, Principal, require_roles


challenges_router = APIRouter(prefix="/challenges", tags=["challenges"])
submissions_router = APIRouter(prefix="/submissions", tags=["submissions"])


@challenges_router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    payload: ChallengeCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    challenge = Challenge(
        title=payload.title,
        description=payload.description,
        owner_id=principal.id,
        points=payload.points,
    )
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    return challenge


@challenges_router.post("/{challenge_id}/submit", response_model=SubmissionResponse)
async def submit_challenge(
    challenge_id: UUID,
    payload: SubmissionCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
):
    """Create or resubmit; approved submissions need an approved retake first"""
    return challenge_service.submit(db, principal.id, challenge_id, payload.submission_text)


@challenges_router.post("/{challenge_id}/request-retake", response_model=SubmissionResponse)
async def request_challenge_retake(
    challenge_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
):
    return challenge_service.request_retake(db, principal.id, challenge_id)


@submissions_router.get("/retake-requests", response_model=List[SubmissionResponse])
async def list_submission_retakes(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    """Pending retake flags on the caller's challenges"""
    return challenge_service.pending_retakes(db, principal.id)


@submissions_router.post("/{submission_id}/grade", response_model=SubmissionResponse)
async def grade_submission(
    submission_id: UUID,
    grade: SubmissionGrade,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    """
    Approve with points or reject

    Only the points above the submission's best approved score are credited.
    """
    return challenge_service.grade(db, principal, submission_id, grade.status, grade.points)


@submissions_router.post("/{submission_id}/handle-retake", response_model=SubmissionResponse)
async def handle_submission_retake(
    submission_id: UUID,
    decision: SubmissionRetakeDecision,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    return challenge_service.handle_retake(db, principal, submission_id, decision.status)
