"""
Challenge submissions - manual grading with a resubmission permission flag
"""
import logging
from typing import List
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models import Challenge, Submission, SubmissionRetakeStatus, SubmissionStatus
from app.services.ledger_service import LedgerService, ledger_service
from app.utils.auth import Principal

logger = logging.getLogger(__name__)


class ChallengeService:
    """Submission status and retake workflow for challenges"""

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger

    def _locked_submission(self, db: Session, submission_id: UUID) -> Submission:
        submission = (
            db.query(Submission)
            .filter(Submission.id == submission_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not submission:
            raise NotFoundError("Submission not found")
        return submission

    def _authorize_reviewer(self, submission: Submission, principal: Principal) -> None:
        if principal.is_admin:
            return
        if submission.challenge.owner_id != principal.id:
            raise AuthorizationError("Only the challenge owner can review this submission")

    def submit(self, db: Session, learner_id: UUID, challenge_id: UUID, text: str) -> Submission:
        """
        Create or resubmit the learner's single submission for a challenge

        Pending submissions are overwritten and rejected ones reopen; an
        approved submission stays locked until its retake is approved.
        """
        challenge = db.query(Challenge).filter(Challenge.id == challenge_id).first()
        if not challenge:
            raise NotFoundError("Challenge not found")

        submission = (
            db.query(Submission)
            .filter(Submission.challenge_id == challenge_id, Submission.learner_id == learner_id)
            .with_for_update()
            .first()
        )

        if submission is None:
            submission = Submission(
                challenge_id=challenge_id,
                learner_id=learner_id,
                submission_text=text,
                status=SubmissionStatus.PENDING.value,
            )
            db.add(submission)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ConflictError("A submission for this challenge already exists")
            db.refresh(submission)
            logger.info(f"Submission {submission.id} created for challenge {challenge_id}")
            return submission

        if submission.status == SubmissionStatus.APPROVED.value:
            raise AuthorizationError("You need permission to retake this challenge")

        submission.submission_text = text
        submission.status = SubmissionStatus.PENDING.value
        submission.submitted_at = utcnow()
        db.commit()
        db.refresh(submission)
        logger.info(f"Submission {submission.id} resubmitted")
        return submission

    def request_retake(self, db: Session, learner_id: UUID, challenge_id: UUID) -> Submission:
        submission = (
            db.query(Submission)
            .filter(Submission.challenge_id == challenge_id, Submission.learner_id == learner_id)
            .with_for_update()
            .first()
        )
        if not submission:
            raise NotFoundError("No submission found to retake")
        if submission.status != SubmissionStatus.APPROVED.value:
            raise ConflictError("Can only retake approved challenges")
        if submission.retake_status == SubmissionRetakeStatus.PENDING.value:
            raise ConflictError("Retake request already pending")

        submission.retake_status = SubmissionRetakeStatus.PENDING.value
        db.commit()
        db.refresh(submission)
        return submission

    def grade(
        self,
        db: Session,
        principal: Principal,
        submission_id: UUID,
        status: SubmissionStatus,
        points: int = 0,
    ) -> Submission:
        """
        Approve with points or reject; approval credits only the delta above
        the high-water mark
        """
        if status == SubmissionStatus.PENDING:
            raise ValidationError("Grade must be approved or rejected")

        submission = self._locked_submission(db, submission_id)
        self._authorize_reviewer(submission, principal)

        if status == SubmissionStatus.APPROVED:
            if points < 0:
                raise ValidationError("Points must be non-negative")
            credited = self.ledger.apply_challenge_score(db, submission, points)
            submission.points_awarded = points
            logger.info(f"Submission {submission.id} approved with {points} points (credited {credited})")

        submission.status = status.value
        submission.reviewed_at = utcnow()
        submission.reviewed_by = principal.id
        db.commit()
        db.refresh(submission)
        return submission

    def handle_retake(
        self,
        db: Session,
        principal: Principal,
        submission_id: UUID,
        status: SubmissionRetakeStatus,
    ) -> Submission:
        """
        Resolve a pending retake flag

        Approval reopens grading: status goes back to pending and the flag
        resets to none.
        """
        if status not in (SubmissionRetakeStatus.APPROVED, SubmissionRetakeStatus.REJECTED):
            raise ValidationError("Retake decision must be approved or rejected")

        submission = self._locked_submission(db, submission_id)
        self._authorize_reviewer(submission, principal)

        if submission.retake_status != SubmissionRetakeStatus.PENDING.value:
            raise ConflictError("No pending retake request for this submission")

        if status == SubmissionRetakeStatus.APPROVED:
            submission.status = SubmissionStatus.PENDING.value
            submission.retake_status = SubmissionRetakeStatus.NONE.value
        else:
            submission.retake_status = SubmissionRetakeStatus.REJECTED.value

        db.commit()
        db.refresh(submission)
        logger.info(f"Submission {submission.id} retake {status.value} by {principal.id}")
        return submission

    def pending_retakes(self, db: Session, owner_id: UUID) -> List[Submission]:
        """Pending retake flags on challenges owned by ``owner_id``"""
        challenge_ids = [
            challenge_id
            for (challenge_id,) in db.query(Challenge.id).filter(Challenge.owner_id == owner_id).all()
        ]
        if not challenge_ids:
            return []

        return (
            db.query(Submission)
            .filter(
                Submission.challenge_id.in_(challenge_ids),
                Submission.retake_status == SubmissionRetakeStatus.PENDING.value,
            )
            .order_by(Submission.submitted_at.desc())
            .all()
        )


# Global instance
challenge_service = ChallengeService(ledger_service)
