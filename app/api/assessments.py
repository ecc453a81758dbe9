"""
Assessment authoring, submission and retake request endpoints
"""

from fastapi import APIRouter, Depends
from typing import Union
from sqlalchemy import func
from sqlalchemy.orm import Session
from uuid import UUID
import logging
from app.database import get_db
from app.exceptions import AuthorizationError, ConflictError, NotFoundError
from app.models import Assessment, Attempt, AttemptStatus, Question
from app.schemas.assessment import (
    AccessStateResponse,
    AnswerResult,
    AssessmentCreate,
    AssessmentDetail,
    AssessmentResponse,
    AttemptGradingResponse,
    AttemptSubmission,
    QuestionSetReplace,
    RetakeRequestResponse,
)
from app.services.attempt_service import attempt_service
from app.services.grading_service import GradingService, get_grading_service
from app.services.ledger_service import ledger_service
from app.utils.auth import ADMIN, LEARNER, TEACHER, Principal, get_current_principal, require_roles


router = APIRouter(prefix="/assessments", tags=["assessments"])
logger = logging.getLogger(__name__)


def _build_questions(payload) -> list:
    return [
        Question(
            question_text=q.question_text,
            question_type=q.question_type.value,
            options=q.options if q.options else None,
            correct_answer=q.correct_answer,
            marks=q.marks,
            order_index=index,
            subject=q.subject,
            focus_area=q.focus_area,
            difficulty=q.difficulty,
            explanation=q.explanation,
        )
        for index, q in enumerate(payload)
    ]


def _get_owned(db: Session, assessment_id: UUID, principal: Principal) -> Assessment:
    assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
    if not assessment:
        raise NotFoundError("Assessment not found")
    if assessment.owner_id != principal.id and not principal.is_admin:
        raise AuthorizationError("Only the assessment owner can modify it")
    return assessment


@router.post("", response_model=AssessmentDetail, status_code=201)
async def create_assessment(
    payload: AssessmentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    """Create an assessment together with its full question set"""
    assessment = Assessment(
        title=payload.title,
        description=payload.description,
        owner_id=principal.id,
        time_limit=payload.time_limit,
        max_attempts=payload.max_attempts,
        unlimited_attempts=payload.unlimited_attempts,
    )
    assessment.questions = _build_questions(payload.questions)
    assessment.total_marks = sum(q.marks for q in payload.questions)

    db.add(assessment)
    db.commit()
    db.refresh(assessment)

    logger.info(f"Assessment created: {assessment.id} ({len(payload.questions)} questions)")
    return assessment


@router.put("/{assessment_id}/questions", response_model=AssessmentDetail)
async def replace_questions(
    assessment_id: UUID,
    payload: QuestionSetReplace,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    """
    Replace the question set as a whole

    Refused while any attempt on the assessment is in progress.
    """
    assessment = _get_owned(db, assessment_id, principal)

    attempt_service.expire_stale_attempts(db, assessment)
    in_progress = (
        db.query(func.count(Attempt.id))
        .filter(Attempt.assessment_id == assessment.id, Attempt.status == AttemptStatus.IN_PROGRESS.value)
        .scalar()
    )
    if in_progress:
        raise ConflictError("Questions cannot be replaced while an attempt is in progress")

    assessment.questions = _build_questions(payload.questions)
    assessment.total_marks = sum(q.marks for q in payload.questions)
    db.commit()
    db.refresh(assessment)

    logger.info(f"Assessment {assessment.id} question set replaced ({len(payload.questions)} questions)")
    return assessment


@router.get("/{assessment_id}", response_model=Union[AssessmentDetail, AssessmentResponse])
async def get_assessment(
    assessment_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Assessment with the caller's access state

    Owners see the answer key; learners see questions only while an attempt
    is allowed.
    """
    assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
    if not assessment:
        raise NotFoundError("Assessment not found")

    # Generated practice is owned by its learner, who must not see the key
    if principal.is_admin or (assessment.owner_id == principal.id and not assessment.is_generated):
        return AssessmentDetail.model_validate(assessment)

    state = attempt_service.access_state(db, principal.id, assessment)
    response = AssessmentResponse.model_validate(assessment)
    response.access = AccessStateResponse.model_validate(state)
    if not state.can_attempt:
        response.questions = []
    return response


@router.post("/{assessment_id}/submit", response_model=AttemptGradingResponse)
async def submit_assessment(
    assessment_id: UUID,
    submission: AttemptSubmission,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
    grader: GradingService = Depends(get_grading_service),
):
    """
    Submit answers and grade them

    - Consumes one attempt (403 when none remain)
    - Multiple choice / true-false: normalized exact match
    - Short answer: exact match, then delegated grading for long answers
    - Credits round(percentage * 2) points once per completed attempt
    """
    attempt = attempt_service.begin_attempt(db, principal.id, assessment_id)

    try:
        questions = (
            db.query(Question)
            .filter(Question.assessment_id == assessment_id)
            .order_by(Question.order_index)
            .all()
        )
        outcome = await grader.grade_submission(questions, submission.answers)

        attempt_service.complete_attempt(db, attempt, outcome)
        points = ledger_service.credit_quiz_attempt(db, attempt)
        db.commit()
    except Exception as e:
        logger.error(f"Attempt {attempt.id} failed during grading: {str(e)}", exc_info=True)
        attempt_service.abandon_attempt(db, attempt)
        raise

    logger.info(
        f"Attempt {attempt.id} completed: {outcome.score}/{outcome.total_marks} "
        f"({outcome.percentage}%), points={points}"
    )

    return AttemptGradingResponse(
        attempt_id=attempt.id,
        score=outcome.score,
        total_marks=outcome.total_marks,
        score_display=f"{outcome.score:g}/{outcome.total_marks:g}",
        percentage=outcome.percentage,
        points_awarded=points,
        breakdown=[
            AnswerResult(
                question_id=r.question_id,
                submitted_answer=r.submitted_answer,
                is_correct=r.is_correct,
                marks_obtained=r.marks_obtained,
                grading_method=r.grading_method,
                feedback=r.feedback,
                breakdown=r.breakdown,
            )
            for r in outcome.results
        ],
    )


@router.post("/{assessment_id}/request-retake", response_model=RetakeRequestResponse, status_code=201)
async def request_retake(
    assessment_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(LEARNER)),
):
    """Ask the assessment owner for one more attempt"""
    return attempt_service.request_retake(db, principal.id, assessment_id)
