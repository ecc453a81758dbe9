"""
Delegated grading gateway - thin wrapper around the external text grader
"""
import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from app.exceptions import ExternalServiceError
from app.services.gemini_service import GeminiService
from app.utils.cache import CacheService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DelegatedGrade:
    """Verdict of the external grader, every score clamped to [0, 100]"""
    score: float
    grammar: float
    clarity: float
    factual_accuracy: float
    feedback: str

    def breakdown(self) -> Dict[str, float]:
        return {
            "grammar": self.grammar,
            "clarity": self.clarity,
            "factual_accuracy": self.factual_accuracy,
        }


def clamp_score(value: Any) -> float:
    """Coerce to a float in [0, 100]; missing, non-numeric and non-finite become 0"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, min(100.0, number))


def to_delegated_grade(raw: Dict[str, Any]) -> DelegatedGrade:
    feedback = raw.get("feedback")
    return DelegatedGrade(
        score=clamp_score(raw.get("score")),
        grammar=clamp_score(raw.get("grammar")),
        clarity=clamp_score(raw.get("clarity")),
        factual_accuracy=clamp_score(raw.get("factualAccuracy", raw.get("factual_accuracy"))),
        feedback=str(feedback) if feedback is not None else "",
    )


class GradingGateway:
    """
    Interface of the delegated grader

    ``grade`` returns a ``DelegatedGrade`` or raises ``ExternalServiceError``.
    """

    @property
    def available(self) -> bool:
        return True

    async def grade(self, question_text: str, answer: str, rubric: str) -> DelegatedGrade:
        raise NotImplementedError


class GeminiGradingGateway(GradingGateway):
    """Gateway backed by Gemini, with verdicts memoized in Redis"""

    def __init__(self, client: GeminiService, cache: Optional[CacheService] = None, enabled: bool = True):
        self.client = client
        self.cache = cache
        self.enabled = enabled

    @property
    def available(self) -> bool:
        return self.enabled and self.client.available

    async def grade(self, question_text: str, answer: str, rubric: str) -> DelegatedGrade:
        if not self.available:
            raise ExternalServiceError("Delegated grading is not configured")

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.grading_key(question_text, answer, rubric)
            cached = self.cache.get(cache_key)
            if cached:
                return DelegatedGrade(**cached)

        raw = await self.client.grade_free_response(question_text, answer, rubric)
        grade = to_delegated_grade(raw)

        if cache_key is not None:
            self.cache.set(cache_key, asdict(grade))

        logger.info(f"Delegated grade: score={grade.score:.1f}")
        return grade
