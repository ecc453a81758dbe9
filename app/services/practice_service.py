"""
Adaptive practice generator

Aggregates a learner's internal marks and recent quiz history, asks the
generation capability for a personalized quiz, validates every question and
persists the result as one practice assessment (all or nothing).
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from app.config import settings
from app.database import utcnow
from app.exceptions import ExternalServiceError, ValidationError
from app.models import (
    Answer,
    Assessment,
    Attempt,
    AttemptStatus,
    Difficulty,
    InternalAssessment,
    Question,
    QuestionType,
)
from app.services.gemini_service import gemini_service
from app.utils.normalizer import CHOICE_KEYS, normalize_choice

logger = logging.getLogger(__name__)

TREND_THRESHOLD = 5.0
HIGH_PERFORMANCE_PERCENTAGE = 75.0
DISTRIBUTION_BASE_WEIGHT = 20


@dataclass
class SubjectSummary:
    subject: str
    marks: float = 0.0
    total: float = 0.0
    focus_areas: Set[str] = field(default_factory=set)

    @property
    def marks_lost(self) -> float:
        return max(0.0, self.total - self.marks)


@dataclass
class RecentPerformance:
    attempts_count: int = 0
    subject_accuracy: Dict[str, float] = field(default_factory=dict)
    incorrect_focus_areas: List[str] = field(default_factory=list)
    trend: str = "average"
    high_performance: bool = False


def parse_focus_areas(raw: Optional[str]) -> Set[str]:
    """'Limits, derivatives , ,Series' -> {'Limits', 'derivatives', 'Series'}"""
    if not raw:
        return set()
    return {part.strip() for part in raw.split(",") if part.strip()}


def compute_trend(percentages: List[float]) -> str:
    """
    Compare the mean of the newest (up to) two attempts against the prior
    (up to) two; ``percentages`` is ordered newest first
    """
    if len(percentages) < 2:
        return "average"

    recent = percentages[:2] if len(percentages) >= 3 else percentages[:1]
    prior = percentages[len(recent):len(recent) + 2]

    difference = sum(recent) / len(recent) - sum(prior) / len(prior)
    if difference > TREND_THRESHOLD:
        return "improving"
    if difference < -TREND_THRESHOLD:
        return "declining"
    return "stagnant"


def distribute_questions(subjects: List[SubjectSummary], total_questions: int) -> List[Dict[str, Any]]:
    """
    Split ``total_questions`` across subjects proportionally to marks lost + 20

    Every subject gets at least one question; leftovers go to the weakest
    subjects first and any excess is taken back from the strongest. With more
    subjects than questions only the weakest ``total_questions`` are kept.
    """
    if not subjects:
        return []
    if len(subjects) > total_questions:
        subjects = sorted(subjects, key=lambda s: s.marks_lost, reverse=True)[:total_questions]

    weights = [s.marks_lost + DISTRIBUTION_BASE_WEIGHT for s in subjects]
    total_weight = sum(weights)

    rows = []
    for summary, weight in zip(subjects, weights):
        share = weight / total_weight * total_questions
        rows.append({
            "subject": summary.subject,
            "weight": weight,
            "count": max(1, int(share)),
            "marks": summary.marks,
            "total": summary.total,
        })

    current = sum(r["count"] for r in rows)
    if current < total_questions:
        by_weakness = sorted(rows, key=lambda r: r["weight"], reverse=True)
        for i in range(total_questions - current):
            by_weakness[i % len(by_weakness)]["count"] += 1
    elif current > total_questions:
        by_strength = sorted(rows, key=lambda r: r["weight"])
        excess = current - total_questions
        while excess > 0 and any(r["count"] > 1 for r in by_strength):
            for row in by_strength:
                if excess == 0:
                    break
                if row["count"] > 1:
                    row["count"] -= 1
                    excess -= 1

    return [{k: r[k] for k in ("subject", "count", "marks", "total")} for r in rows]


class PracticeService:
    """Builds, validates and stores adaptive practice quizzes"""

    def __init__(self, generator, question_count: int = 25, recent_window: int = 5):
        self.generator = generator
        self.question_count = question_count
        self.recent_window = recent_window

    # ----- aggregation -----

    def summarize_subjects(self, db: Session, learner_id: UUID) -> List[SubjectSummary]:
        records = (
            db.query(InternalAssessment)
            .filter(InternalAssessment.learner_id == learner_id)
            .order_by(InternalAssessment.created_at.asc())
            .all()
        )

        summaries: Dict[str, SubjectSummary] = {}
        for record in records:
            key = record.subject_name.strip().lower()
            if key not in summaries:
                summaries[key] = SubjectSummary(subject=record.subject_name.strip())
            summary = summaries[key]
            summary.marks += record.marks_obtained or 0.0
            summary.total += record.total_marks or 0.0
            summary.focus_areas |= parse_focus_areas(record.focus_areas)

        return list(summaries.values())

    def summarize_recent(self, db: Session, learner_id: UUID) -> RecentPerformance:
        attempts = (
            db.query(Attempt)
            .options(selectinload(Attempt.answers).selectinload(Answer.question))
            .filter(
                Attempt.learner_id == learner_id,
                Attempt.status == AttemptStatus.COMPLETED.value,
            )
            .order_by(Attempt.completed_at.desc())
            .limit(self.recent_window)
            .all()
        )

        performance = RecentPerformance(attempts_count=len(attempts))
        if not attempts:
            return performance

        answered: Dict[str, int] = defaultdict(int)
        correct: Dict[str, int] = defaultdict(int)
        incorrect_focus: List[str] = []

        for attempt in attempts:
            for answer in attempt.answers:
                question = answer.question
                if question is None or not question.subject:
                    continue
                answered[question.subject] += 1
                if answer.is_correct:
                    correct[question.subject] += 1
                elif question.focus_area and question.focus_area not in incorrect_focus:
                    incorrect_focus.append(question.focus_area)

        performance.subject_accuracy = {
            subject: round(correct[subject] / count * 100, 2) for subject, count in answered.items()
        }
        performance.incorrect_focus_areas = incorrect_focus
        percentages = [a.percentage or 0.0 for a in attempts]
        performance.trend = compute_trend(percentages)
        performance.high_performance = percentages[0] > HIGH_PERFORMANCE_PERCENTAGE
        return performance

    def build_context(self, subjects: List[SubjectSummary], recent: RecentPerformance) -> Dict[str, Any]:
        return {
            "examPlanner": [
                {
                    "subject": s.subject,
                    "marks": s.marks,
                    "totalMarks": s.total,
                    "focusAreas": sorted(s.focus_areas),
                }
                for s in subjects
            ],
            "distribution": distribute_questions(subjects, self.question_count),
            "previousQuizRemarks": {
                "attemptsCount": recent.attempts_count,
                "subjectAccuracy": recent.subject_accuracy,
                "incorrectFocusAreas": recent.incorrect_focus_areas,
                "overallTrend": recent.trend,
                "highPerformanceMode": recent.high_performance,
            },
        }

    # ----- validation -----

    def _options(self, raw: Any, index: int) -> Dict[str, str]:
        if isinstance(raw, dict):
            if len(raw) != len(CHOICE_KEYS):
                raise ValidationError(f"Question {index + 1}: expected 4 options, got {len(raw)}")
            values = [raw.get(key) for key in CHOICE_KEYS] if set(raw) >= set(CHOICE_KEYS) else list(raw.values())
        elif isinstance(raw, list):
            values = raw
        else:
            raise ValidationError(f"Question {index + 1}: options must be a list of 4 entries")

        if len(values) != len(CHOICE_KEYS):
            raise ValidationError(f"Question {index + 1}: expected 4 options, got {len(values)}")

        options = {}
        for key, value in zip(CHOICE_KEYS, values):
            text = str(value).strip() if value is not None else ""
            if not text:
                raise ValidationError(f"Question {index + 1}: option {key} is empty")
            options[key] = text
        return options

    def validate_quiz(self, raw: Dict[str, Any], subjects: List[SubjectSummary]) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """
        Validate the generated payload as a whole

        Returns:
            (normalized question dicts, remarks)

        Raises:
            ValidationError: on any malformed question; nothing is kept
        """
        quiz = raw.get("quiz")
        if not isinstance(quiz, list):
            raise ValidationError("Generated response has no quiz list")
        if len(quiz) != self.question_count:
            raise ValidationError(
                f"Generated quiz must contain exactly {self.question_count} questions, got {len(quiz)}"
            )

        remarks = raw.get("remarks")
        if not isinstance(remarks, dict):
            raise ValidationError("Generated response has no remarks")

        known_subjects = {s.subject.lower(): s.subject for s in subjects}
        difficulties = {d.value for d in Difficulty}

        questions = []
        for index, item in enumerate(quiz):
            if not isinstance(item, dict):
                raise ValidationError(f"Question {index + 1} is not an object")

            text = str(item.get("question") or "").strip()
            if not text:
                raise ValidationError(f"Question {index + 1} has no text")

            options = self._options(item.get("options"), index)

            answer = str(item.get("correctAnswer") or "").strip()
            if not answer:
                raise ValidationError(f"Question {index + 1} has no correct answer")
            key = normalize_choice(answer, options)
            if key not in CHOICE_KEYS:
                logger.warning(
                    f"Generated question {index + 1}: answer '{answer}' matches no option; defaulting to A"
                )
                key = CHOICE_KEYS[0]

            subject = known_subjects.get(str(item.get("subject") or "").strip().lower())
            if subject is None:
                raise ValidationError(
                    f"Question {index + 1} has unknown subject '{item.get('subject')}'"
                )

            difficulty = str(item.get("difficulty") or "").strip().lower()
            if difficulty not in difficulties:
                difficulty = Difficulty.MEDIUM.value

            questions.append({
                "question_text": text,
                "options": options,
                "correct_answer": key,
                "subject": subject,
                "focus_area": str(item.get("focusArea") or "").strip() or None,
                "difficulty": difficulty,
                "explanation": str(item.get("explanation") or "").strip() or None,
            })

        return questions, remarks

    # ----- pipeline -----

    async def generate(self, db: Session, learner_id: UUID) -> Tuple[Assessment, Dict[str, Any]]:
        """
        Generate and persist a practice assessment for ``learner_id``

        Returns:
            (new assessment, narrative remarks for display)
        """
        subjects = self.summarize_subjects(db, learner_id)
        if not subjects:
            raise ValidationError("No internal assessment marks recorded; cannot personalize practice")

        recent = self.summarize_recent(db, learner_id)
        context = self.build_context(subjects, recent)

        if not getattr(self.generator, "available", False):
            raise ExternalServiceError("Quiz generation service is not configured")

        logger.info(
            f"Generating practice for {learner_id}: {len(subjects)} subjects, "
            f"{recent.attempts_count} recent attempts, trend={recent.trend}"
        )
        raw = await self.generator.generate_practice_quiz(context, self.question_count)
        questions, remarks = self.validate_quiz(raw, subjects)

        assessment = Assessment(
            title=f"Smart Practice - {utcnow():%Y-%m-%d}",
            description="Adaptive practice generated from your recent performance",
            owner_id=learner_id,
            total_marks=float(len(questions)),
            unlimited_attempts=True,
            is_generated=True,
        )
        assessment.questions = [
            Question(
                question_type=QuestionType.MULTIPLE_CHOICE.value,
                marks=1.0,
                order_index=index,
                **question,
            )
            for index, question in enumerate(questions)
        ]

        db.add(assessment)
        db.commit()
        db.refresh(assessment)

        logger.info(f"Practice assessment {assessment.id} stored with {len(questions)} questions")
        return assessment, remarks


# Global instance
practice_service = PracticeService(
    generator=gemini_service,
    question_count=settings.PRACTICE_QUESTION_COUNT,
    recent_window=settings.RECENT_ATTEMPT_WINDOW,
)


def get_practice_service() -> PracticeService:
    return practice_service
