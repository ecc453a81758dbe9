"""
Quiz grading service with hybrid approach
Multiple choice / true-false: normalized exact match
Short answer: exact match, falling back to the delegated grader for long answers
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from app.config import settings
from app.exceptions import ExternalServiceError
from app.models import GradingMethod, Question, QuestionType
from app.services.gemini_service import gemini_service
from app.services.grading_gateway import GeminiGradingGateway, GradingGateway
from app.utils.cache import cache_service
from app.utils.normalizer import normalize_answer, normalize_choice

logger = logging.getLogger(__name__)


@dataclass
class QuestionResult:
    """Grading verdict for one question"""
    question_id: Any
    submitted_answer: str
    is_correct: bool
    marks_obtained: float
    max_marks: float
    grading_method: str = GradingMethod.EXACT_MATCH.value
    feedback: Optional[str] = None
    breakdown: Optional[Dict[str, float]] = None


@dataclass
class GradingOutcome:
    results: List[QuestionResult] = field(default_factory=list)
    score: float = 0.0
    total_marks: float = 0.0
    percentage: float = 0.0

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.results if r.is_correct)


Grader = Callable[[Question, str], Awaitable[QuestionResult]]


class GradingService:
    """
    Service for grading assessment submissions

    Strategy:
    - Every question: normalized exact match first
    - Short answer only: on a miss, answers of at least ``min_fallback_length``
      characters go to the delegated grader when one is available
    - Delegated failures or timeouts degrade to zero credit, never to an error
    """

    def __init__(
        self,
        gateway: Optional[GradingGateway],
        min_fallback_length: int = 60,
        timeout: float = 45.0,
    ):
        self.gateway = gateway
        self.min_fallback_length = min_fallback_length
        self.timeout = timeout
        self._graders: Dict[QuestionType, Grader] = {
            QuestionType.MULTIPLE_CHOICE: self._grade_choice,
            QuestionType.TRUE_FALSE: self._grade_exact,
            QuestionType.SHORT_ANSWER: self._grade_short_answer,
        }
        missing = set(QuestionType) - set(self._graders)
        if missing:
            raise RuntimeError(f"No grader registered for question types: {sorted(t.value for t in missing)}")

    @property
    def delegated_available(self) -> bool:
        return self.gateway is not None and self.gateway.available

    async def grade_submission(
        self,
        questions: List[Question],
        answers: Mapping[str, Any],
    ) -> GradingOutcome:
        """
        Grade every question of an assessment

        Args:
            questions: Questions of the assessment
            answers: Submitted answers keyed by question id (missing -> empty)

        Returns:
            GradingOutcome with per-question results and aggregates
        """
        outcome = GradingOutcome()

        for question in questions:
            submitted = answers.get(str(question.id))
            submitted = "" if submitted is None else str(submitted)

            result = await self.grade_question(question, submitted)
            outcome.results.append(result)
            outcome.score += result.marks_obtained
            outcome.total_marks += result.max_marks

        outcome.score = round(outcome.score, 2)
        outcome.total_marks = round(outcome.total_marks, 2)
        outcome.percentage = (
            round(outcome.score / outcome.total_marks * 100, 2) if outcome.total_marks > 0 else 0.0
        )

        logger.info(
            f"Submission graded: {outcome.score:.2f}/{outcome.total_marks:.2f} "
            f"({outcome.percentage:.2f}%), correct={outcome.correct_count}/{len(outcome.results)}"
        )
        return outcome

    async def grade_question(self, question: Question, submitted: str) -> QuestionResult:
        grader = self._graders[QuestionType(question.question_type)]
        return await grader(question, submitted)

    def _result(self, question: Question, submitted: str, is_correct: bool) -> QuestionResult:
        return QuestionResult(
            question_id=question.id,
            submitted_answer=submitted,
            is_correct=is_correct,
            marks_obtained=float(question.marks) if is_correct else 0.0,
            max_marks=float(question.marks),
        )

    async def _grade_choice(self, question: Question, submitted: str) -> QuestionResult:
        options = question.options or {}
        chosen = normalize_choice(submitted, options)
        correct = normalize_choice(question.correct_answer, options)
        return self._result(question, submitted, bool(chosen) and chosen == correct)

    async def _grade_exact(self, question: Question, submitted: str) -> QuestionResult:
        normalized = normalize_answer(submitted)
        is_correct = bool(normalized) and normalized == normalize_answer(question.correct_answer)
        return self._result(question, submitted, is_correct)

    async def _grade_short_answer(self, question: Question, submitted: str) -> QuestionResult:
        result = await self._grade_exact(question, submitted)
        if result.is_correct:
            return result

        if len(normalize_answer(submitted)) < self.min_fallback_length or not self.delegated_available:
            return result

        rubric = f"Expected answer: {question.correct_answer}"
        try:
            grade = await asyncio.wait_for(
                self.gateway.grade(question.question_text, submitted, rubric),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Delegated grading timed out for question {question.id}; keeping zero credit")
            return result
        except ExternalServiceError as e:
            logger.warning(f"Delegated grading failed for question {question.id}: {e.message}")
            return result
        except Exception as e:
            logger.error(f"Delegated grading crashed for question {question.id}: {str(e)}", exc_info=True)
            return result

        marks = round(float(question.marks) * grade.score / 100, 2)
        return QuestionResult(
            question_id=question.id,
            submitted_answer=submitted,
            is_correct=marks >= float(question.marks),
            marks_obtained=marks,
            max_marks=float(question.marks),
            grading_method=GradingMethod.DELEGATED.value,
            feedback=grade.feedback,
            breakdown=grade.breakdown(),
        )


# Global instance
grading_service = GradingService(
    gateway=GeminiGradingGateway(gemini_service, cache=cache_service, enabled=settings.AI_GRADING_ENABLED),
    min_fallback_length=settings.DELEGATED_GRADING_MIN_LENGTH,
    timeout=settings.AI_TIMEOUT_SECONDS,
)


def get_grading_service() -> GradingService:
    return grading_service
