import asyncio
import os
import uuid

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["RATE_LIMIT_PER_HOUR"] = "100000"
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401
from app.database import Base, SessionLocal, engine
from app.main import app as fastapi_app
from app.services.grading_gateway import DelegatedGrade, GradingGateway
from app.services.grading_service import GradingService, get_grading_service
from app.services.practice_service import PracticeService, get_practice_service
from app.utils.auth import ADMIN, LEARNER, TEACHER, Principal, create_token


class FakeGateway(GradingGateway):
    """Delegated grader returning a fixed verdict"""

    def __init__(self, score=70.0, error=None, delay=0.0):
        self.score = score
        self.error = error
        self.delay = delay
        self.calls = []

    async def grade(self, question_text, answer, rubric):
        self.calls.append((question_text, answer, rubric))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return DelegatedGrade(
            score=self.score, grammar=80.0, clarity=75.0, factual_accuracy=65.0, feedback="Mostly right"
        )


class FakeGenerator:
    """Generation client returning a canned payload"""

    available = True

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.contexts = []

    async def generate_practice_quiz(self, context, question_count):
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return self.payload


def make_quiz_payload(subjects=("Mathematics", "Physics"), count=25):
    quiz = []
    for i in range(count):
        quiz.append({
            "question": f"Practice question {i + 1}?",
            "options": [f"Option {i}-1", f"Option {i}-2", f"Option {i}-3", f"Option {i}-4"],
            "correctAnswer": "B",
            "explanation": "Because.",
            "subject": subjects[i % len(subjects)],
            "focusArea": "Derivatives",
            "difficulty": "hard",
        })
    return {
        "quiz": quiz,
        "remarks": {
            "overallFeedback": "Keep going",
            "strengths": ["Algebra"],
            "weakAreas": ["Derivatives"],
            "recommendation": "Practice derivatives daily",
        },
    }


@pytest.fixture(autouse=True)
def reset_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def grader(gateway):
    return GradingService(gateway=gateway, min_fallback_length=60, timeout=2.0)


@pytest.fixture
def generator():
    return FakeGenerator(payload=make_quiz_payload())


@pytest.fixture
def client(grader, generator):
    fastapi_app.dependency_overrides[get_grading_service] = lambda: grader
    fastapi_app.dependency_overrides[get_practice_service] = lambda: PracticeService(generator=generator)
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def learner():
    return Principal(sub=uuid.uuid4(), role=LEARNER)


@pytest.fixture
def teacher():
    return Principal(sub=uuid.uuid4(), role=TEACHER)


@pytest.fixture
def admin():
    return Principal(sub=uuid.uuid4(), role=ADMIN)


def auth(principal):
    return {"Authorization": f"Bearer {create_token(principal.id, principal.role)}"}
