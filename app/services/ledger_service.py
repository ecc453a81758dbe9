"""
Progression ledger - converts graded outcomes into points, level and counters

Every credit is journaled as a LedgerEntry whose (learner, category,
source_key) is unique, so retries and double submissions credit once.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.database import insert_ignore, utcnow
from app.models import (
    Attempt,
    LedgerEntry,
    Lesson,
    LessonProgress,
    ProgressCategory,
    ProgressionRecord,
    Submission,
)

logger = logging.getLogger(__name__)

# Completion counter touched by each credit category
COMPLETION_COUNTERS: Dict[ProgressCategory, str] = {
    ProgressCategory.LESSON: "lessons_completed",
    ProgressCategory.QUIZ: "quizzes_completed",
    ProgressCategory.CHALLENGE: "challenges_completed",
}
_missing = set(ProgressCategory) - set(COMPLETION_COUNTERS)
if _missing:
    raise RuntimeError(f"No completion counter registered for categories: {sorted(c.value for c in _missing)}")


def level_for_points(points: int) -> int:
    """level = max(1, floor(sqrt(points / 100)) + 1)"""
    return max(1, math.isqrt(max(int(points), 0) // 100) + 1)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class LedgerService:
    """Idempotent accumulator of learner points"""

    def __init__(self, lesson_points: int = 50):
        self.lesson_points = lesson_points

    def ensure_record(self, db: Session, learner_id: UUID) -> None:
        """Create the learner's zero-baseline record unless one exists (race-safe)"""
        db.execute(insert_ignore(db, ProgressionRecord).values(learner_id=learner_id))

    def _locked_record(self, db: Session, learner_id: UUID) -> ProgressionRecord:
        return (
            db.query(ProgressionRecord)
            .filter(ProgressionRecord.learner_id == learner_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def credit(
        self,
        db: Session,
        learner_id: UUID,
        category: ProgressCategory,
        source_key: str,
        points: int,
        counts_completion: bool = False,
    ) -> bool:
        """
        Apply one credit; the caller owns the transaction

        Returns:
            False when this (category, source_key) was already credited
        """
        journaled = db.execute(
            insert_ignore(db, LedgerEntry).values(
                learner_id=learner_id,
                category=category.value,
                source_key=source_key,
                points=points,
                counts_completion=counts_completion,
            )
        )
        if journaled.rowcount == 0:
            logger.info(f"Credit already applied: learner={learner_id}, {category.value}:{source_key}")
            return False

        self.ensure_record(db, learner_id)
        record = self._locked_record(db, learner_id)

        record.total_points += points
        record.current_level = level_for_points(record.total_points)
        if counts_completion:
            counter = COMPLETION_COUNTERS[category]
            setattr(record, counter, getattr(record, counter) + 1)
        record.updated_at = utcnow()
        db.flush()

        logger.info(
            f"Credited {points} points to {learner_id} ({category.value}:{source_key}); "
            f"total={record.total_points}, level={record.current_level}"
        )
        return True

    def credit_quiz_attempt(self, db: Session, attempt: Attempt) -> int:
        """
        Every completed attempt earns round(percentage * 2) points, once

        The percentage is taken from score / total, not the stored two-decimal
        ``percentage`` column.
        """
        if attempt.total_marks:
            points = round_half_up((attempt.score or 0.0) / attempt.total_marks * 200)
        else:
            points = 0
        credited = self.credit(
            db, attempt.learner_id, ProgressCategory.QUIZ, str(attempt.id), points, counts_completion=True
        )
        return points if credited else 0

    def complete_lesson(self, db: Session, learner_id: UUID, lesson: Lesson) -> Tuple[LessonProgress, bool]:
        """
        Mark a lesson completed and credit the flat lesson award exactly once

        Returns:
            (progress row, whether points were credited by this call)
        """
        inserted = db.execute(
            insert_ignore(db, LessonProgress).values(learner_id=learner_id, lesson_id=lesson.id)
        )
        credited = False
        if inserted.rowcount == 1:
            credited = self.credit(
                db, learner_id, ProgressCategory.LESSON, str(lesson.id), self.lesson_points, counts_completion=True
            )
        else:
            logger.info(f"Lesson {lesson.id} already completed by {learner_id}")
        db.commit()

        progress = (
            db.query(LessonProgress)
            .filter(LessonProgress.learner_id == learner_id, LessonProgress.lesson_id == lesson.id)
            .one()
        )
        return progress, credited

    def apply_challenge_score(self, db: Session, submission: Submission, awarded: int) -> int:
        """
        Credit only the positive delta above the submission's high-water mark

        ``submission`` must be row-locked by the caller. The completion counter
        moves only the first time the submission earns points.
        """
        previous = submission.highest_points or 0
        delta = max(0, awarded - previous)
        if delta == 0:
            logger.info(f"Submission {submission.id} re-approved at {awarded} <= high-water {previous}; no credit")
            return 0

        submission.highest_points = awarded
        self.credit(
            db,
            submission.learner_id,
            ProgressCategory.CHALLENGE,
            f"{submission.id}:{awarded}",
            delta,
            counts_completion=previous == 0,
        )
        return delta

    def get_progress(self, db: Session, learner_id: UUID) -> Dict[str, Any]:
        record = db.query(ProgressionRecord).filter(ProgressionRecord.learner_id == learner_id).first()
        if not record:
            return {
                "learner_id": learner_id,
                "total_points": 0,
                "current_level": 1,
                "lessons_completed": 0,
                "quizzes_completed": 0,
                "challenges_completed": 0,
            }
        return {
            "learner_id": record.learner_id,
            "total_points": record.total_points,
            "current_level": record.current_level,
            "lessons_completed": record.lessons_completed,
            "quizzes_completed": record.quizzes_completed,
            "challenges_completed": record.challenges_completed,
        }

    def leaderboard(self, db: Session, limit: int = 100) -> List[ProgressionRecord]:
        return (
            db.query(ProgressionRecord)
            .order_by(ProgressionRecord.total_points.desc(), ProgressionRecord.updated_at.asc())
            .limit(limit)
            .all()
        )

    def recompute(self, db: Session, learner_id: UUID) -> Dict[str, Any]:
        """Administrative reset: rebuild the record from the ledger journal"""
        self.ensure_record(db, learner_id)
        record = self._locked_record(db, learner_id)

        total: Optional[int] = (
            db.query(func.coalesce(func.sum(LedgerEntry.points), 0))
            .filter(LedgerEntry.learner_id == learner_id)
            .scalar()
        )
        record.total_points = int(total or 0)
        record.current_level = level_for_points(record.total_points)

        for category, counter in COMPLETION_COUNTERS.items():
            count = (
                db.query(func.count(LedgerEntry.id))
                .filter(
                    LedgerEntry.learner_id == learner_id,
                    LedgerEntry.category == category.value,
                    LedgerEntry.counts_completion.is_(True),
                )
                .scalar()
            )
            setattr(record, counter, count)

        record.updated_at = utcnow()
        db.commit()
        logger.info(f"Progression recomputed for {learner_id}: {record.total_points} points")
        return self.get_progress(db, learner_id)


# Global instance
ledger_service = LedgerService(lesson_points=settings.LESSON_COMPLETION_POINTS)
