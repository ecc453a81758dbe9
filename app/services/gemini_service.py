"""
Gemini AI service for delegated free-text grading and adaptive quiz generation
"""
import google.generativeai as genai
import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

from app.config import settings
from app.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class GeminiService:
    """Service for all Gemini AI operations"""

    def __init__(self, api_key: Optional[str], model_name: str, timeout: float):
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self.model = None
        if api_key:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(model_name)

    @property
    def available(self) -> bool:
        return self.model is not None

    async def _generate_json(self, prompt: str, temperature: float) -> Dict[str, Any]:
        """
        Run one generation call and parse the first JSON object it returns

        Raises:
            ExternalServiceError: not configured, timed out, failed, or no JSON
        """
        if not self.available:
            raise ExternalServiceError("AI service not configured (missing GEMINI_API_KEY)")

        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(
                    prompt,
                    generation_config={"temperature": temperature},
                    request_options={"timeout": self.timeout},
                ),
                timeout=self.timeout,
            )
            text = response.text
        except asyncio.TimeoutError as e:
            logger.error(f"Gemini call timed out after {self.timeout}s")
            raise ExternalServiceError(f"AI service timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"Gemini call failed: {str(e)}")
            raise ExternalServiceError(f"AI service call failed: {str(e)}") from e

        return parse_json_object(text)

    async def grade_free_response(self, question_text: str, answer: str, rubric: str) -> Dict[str, Any]:
        """
        Grade a free-text answer

        Returns:
            Raw verdict dict: score, grammar, clarity, factualAccuracy, feedback
        """
        prompt = f"""
You are grading a student's free-response answer.
Return STRICT JSON with keys:
{{
  "score": <integer 0-100>,
  "grammar": <integer 0-100>,
  "clarity": <integer 0-100>,
  "factualAccuracy": <integer 0-100>,
  "feedback": <string>
}}

Question:
{question_text}

Rubric:
{rubric or 'Grade based on accuracy, clarity, relevance, and correctness.'}

Student answer:
{answer}
""".strip()

        return await self._generate_json(prompt, temperature=0.2)

    async def generate_practice_quiz(self, context: Dict[str, Any], question_count: int) -> Dict[str, Any]:
        """
        Generate an adaptive multiple-choice quiz with narrative remarks

        Args:
            context: Aggregated learner context (subjects, distribution, history)
            question_count: Exact number of questions requested

        Returns:
            Raw response dict with "quiz" and "remarks" keys (unvalidated)
        """
        distribution = "\n".join(
            f"- {item['subject']}: {item['count']} questions (Marks: {item['marks']}/{item['total']})"
            for item in context.get("distribution", [])
        )

        if context.get("previousQuizRemarks", {}).get("highPerformanceMode"):
            difficulty_instructions = (
                "The student scored above 75% in the last quiz. Raise the difficulty one level: "
                "prefer application, analysis and multi-step problems, and do not reuse standard questions."
            )
        else:
            difficulty_instructions = "Maintain a balanced difficulty curve following the difficulty rules."

        prompt = f"""
You are an adaptive academic quiz engine generating a personalized practice quiz.

STRICT QUESTION DISTRIBUTION (lower marks = more questions):
{distribution}

TOTAL QUESTIONS: {question_count}

Rules:
1. Generate questions ONLY for the subjects listed above and use the subject names EXACTLY.
2. Every subject gets at least one question; follow the distribution.
3. A majority of questions must target the weak focus areas; repeat focus areas answered incorrectly before.
4. Difficulty: weak performance -> easy + medium, average -> medium, strong -> medium + hard.
5. Multiple choice only, exactly 4 options, exactly one correct answer, with a brief explanation.

{difficulty_instructions}

Return a single JSON object with exactly two keys, no markdown:
{{
  "quiz": [
    {{
      "question": "Question text",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correctAnswer": "A",
      "explanation": "Why this option is correct",
      "subject": "Exact subject name",
      "focusArea": "Related focus topic",
      "difficulty": "easy | medium | hard"
    }}
  ],
  "remarks": {{
    "overallFeedback": "Short motivational academic feedback",
    "strengths": ["..."],
    "weakAreas": ["..."],
    "recommendation": "Actionable study advice"
  }}
}}

INPUT DATA:
{json.dumps(context, indent=2, default=str)}
""".strip()

        return await self._generate_json(prompt, temperature=0.7)


def parse_json_object(response_text: Optional[str]) -> Dict[str, Any]:
    """Parse the first JSON object out of a model response, tolerating code fences"""
    if not response_text:
        raise ExternalServiceError("Empty response from AI service")

    cleaned = response_text.strip()

    # Remove markdown code blocks
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    match = _JSON_OBJECT.search(cleaned)
    if not match:
        logger.error(f"No JSON object in AI response: {response_text[:500]}")
        raise ExternalServiceError("Failed to parse JSON from AI response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI JSON: {str(e)}")
        raise ExternalServiceError(f"Failed to parse AI response: {str(e)}") from e

    if not isinstance(parsed, dict):
        raise ExternalServiceError("AI response is not a JSON object")
    return parsed


# Global instance
gemini_service = GeminiService(
    api_key=settings.GEMINI_API_KEY,
    model_name=settings.GEMINI_MODEL,
    timeout=settings.AI_TIMEOUT_SECONDS,
)
