"""
Attempt accounting and retake authorization

Access to an assessment is derived at read time from completed attempts and
approved retake requests; nothing about it is stored separately.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.exceptions import AuthorizationError, ConflictError, NotFoundError
from app.models import (
    Answer,
    Assessment,
    Attempt,
    AttemptStatus,
    RetakeRequest,
    RetakeStatus,
)
from app.services.grading_service import GradingOutcome
from app.utils.auth import Principal

logger = logging.getLogger(__name__)


@dataclass
class AccessState:
    attempts_completed: int
    allowed_attempts: Optional[int]  # None = unlimited
    can_attempt: bool
    request_status: Optional[str]


class AttemptService:
    """State machine for attempts and retake requests"""

    def _count_attempts(self, db: Session, learner_id: UUID, assessment_id: UUID, statuses: List[str]) -> int:
        return (
            db.query(func.count(Attempt.id))
            .filter(
                Attempt.learner_id == learner_id,
                Attempt.assessment_id == assessment_id,
                Attempt.status.in_(statuses),
            )
            .scalar()
        )

    def _count_requests(self, db: Session, learner_id: UUID, assessment_id: UUID, status: RetakeStatus) -> int:
        return (
            db.query(func.count(RetakeRequest.id))
            .filter(
                RetakeRequest.learner_id == learner_id,
                RetakeRequest.assessment_id == assessment_id,
                RetakeRequest.status == status.value,
            )
            .scalar()
        )

    def allowed_attempts(self, db: Session, learner_id: UUID, assessment: Assessment) -> Optional[int]:
        if assessment.unlimited_attempts:
            return None
        base = assessment.max_attempts or 1
        return base + self._count_requests(db, learner_id, assessment.id, RetakeStatus.APPROVED)

    def access_state(self, db: Session, learner_id: UUID, assessment: Assessment) -> AccessState:
        completed = self._count_attempts(db, learner_id, assessment.id, [AttemptStatus.COMPLETED.value])
        allowed = self.allowed_attempts(db, learner_id, assessment)
        pending = self._count_requests(db, learner_id, assessment.id, RetakeStatus.PENDING)
        return AccessState(
            attempts_completed=completed,
            allowed_attempts=allowed,
            can_attempt=allowed is None or completed < allowed,
            request_status=RetakeStatus.PENDING.value if pending else None,
        )

    def expire_stale_attempts(self, db: Session, assessment: Assessment) -> int:
        """
        Mark in_progress attempts older than the time limit as abandoned

        Assessments without a time limit fall back to STALE_ATTEMPT_MINUTES.
        The caller commits.
        """
        minutes = assessment.time_limit or settings.STALE_ATTEMPT_MINUTES
        cutoff = utcnow() - timedelta(minutes=minutes)
        result = db.execute(
            update(Attempt)
            .where(
                Attempt.assessment_id == assessment.id,
                Attempt.status == AttemptStatus.IN_PROGRESS.value,
                Attempt.started_at < cutoff,
            )
            .values(status=AttemptStatus.ABANDONED.value)
        )
        if result.rowcount:
            logger.warning(f"Expired {result.rowcount} stale attempt(s) on assessment {assessment.id}")
        return result.rowcount

    def begin_attempt(self, db: Session, learner_id: UUID, assessment_id: UUID) -> Attempt:
        """
        Open an in_progress attempt if the learner still has one available

        The assessment row is locked only for the accounting check and the
        insert; grading runs after the commit.
        """
        assessment = (
            db.query(Assessment)
            .filter(Assessment.id == assessment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not assessment:
            raise NotFoundError("Assessment not found")

        self.expire_stale_attempts(db, assessment)
        allowed = self.allowed_attempts(db, learner_id, assessment)
        if allowed is not None:
            consumed = self._count_attempts(
                db,
                learner_id,
                assessment.id,
                [AttemptStatus.COMPLETED.value, AttemptStatus.IN_PROGRESS.value],
            )
            if consumed >= allowed:
                db.rollback()
                raise AuthorizationError(
                    f"No attempts remaining ({consumed}/{allowed}); request a retake to try again"
                )

        attempt = Attempt(
            assessment_id=assessment.id,
            learner_id=learner_id,
            status=AttemptStatus.IN_PROGRESS.value,
        )
        db.add(attempt)
        db.commit()
        db.refresh(attempt)
        logger.info(f"Attempt {attempt.id} started: learner={learner_id}, assessment={assessment.id}")
        return attempt

    def complete_attempt(self, db: Session, attempt: Attempt, outcome: GradingOutcome) -> Attempt:
        """
        Persist one Answer per graded question and close the attempt

        Answers already stored for (attempt, question) are left untouched.
        The caller commits.
        """
        existing = {
            question_id
            for (question_id,) in db.query(Answer.question_id).filter(Answer.attempt_id == attempt.id).all()
        }
        for result in outcome.results:
            if result.question_id in existing:
                continue
            db.add(Answer(
                attempt_id=attempt.id,
                question_id=result.question_id,
                submitted_answer=result.submitted_answer,
                is_correct=result.is_correct,
                marks_obtained=result.marks_obtained,
                grading_method=result.grading_method,
                feedback=result.feedback,
                breakdown=result.breakdown,
            ))

        attempt.score = outcome.score
        attempt.total_marks = outcome.total_marks
        attempt.percentage = outcome.percentage
        attempt.status = AttemptStatus.COMPLETED.value
        attempt.completed_at = utcnow()
        db.flush()
        return attempt

    def abandon_attempt(self, db: Session, attempt: Attempt) -> None:
        db.rollback()
        attempt.status = AttemptStatus.ABANDONED.value
        db.commit()
        logger.warning(f"Attempt {attempt.id} abandoned")

    def request_retake(self, db: Session, learner_id: UUID, assessment_id: UUID) -> RetakeRequest:
        assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
        if not assessment:
            raise NotFoundError("Assessment not found")

        state = self.access_state(db, learner_id, assessment)
        if state.can_attempt:
            raise ConflictError("Attempts are still available; no retake needed")

        request = RetakeRequest(
            learner_id=learner_id,
            assessment_id=assessment.id,
            authorizer_id=assessment.owner_id,
            status=RetakeStatus.PENDING.value,
        )
        db.add(request)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Request already pending")

        db.refresh(request)
        logger.info(f"Retake request {request.id} created: learner={learner_id}, assessment={assessment.id}")
        return request

    def resolve_retake(self, db: Session, principal: Principal, request_id: UUID, status: RetakeStatus) -> RetakeRequest:
        """
        pending -> approved | rejected, exactly once, by the authorizer
        """
        if status == RetakeStatus.PENDING:
            raise ConflictError("A retake request can only be approved or rejected")

        request = db.query(RetakeRequest).filter(RetakeRequest.id == request_id).first()
        if not request:
            raise NotFoundError("Request not found")
        if request.authorizer_id != principal.id and not principal.is_admin:
            raise AuthorizationError("Not authorized")

        result = db.execute(
            update(RetakeRequest)
            .where(RetakeRequest.id == request_id, RetakeRequest.status == RetakeStatus.PENDING.value)
            .values(status=status.value, responded_at=utcnow())
        )
        if result.rowcount == 0:
            db.rollback()
            raise ConflictError("Request already resolved")
        db.commit()

        db.refresh(request)
        logger.info(f"Retake request {request.id} {status.value} by {principal.id}")
        return request

    def pending_requests(self, db: Session, authorizer_id: UUID) -> List[RetakeRequest]:
        return (
            db.query(RetakeRequest)
            .filter(
                RetakeRequest.authorizer_id == authorizer_id,
                RetakeRequest.status == RetakeStatus.PENDING.value,
            )
            .order_by(RetakeRequest.created_at.desc())
            .all()
        )


# Global instance
attempt_service = AttemptService()
