import asyncio
from datetime import datetime, timedelta

import pytest

from app.exceptions import ExternalServiceError, ValidationError
from app.models import (
    Answer,
    Assessment,
    Attempt,
    AttemptStatus,
    InternalAssessment,
    Question,
    QuestionType,
)
from app.services.practice_service import (
    PracticeService,
    SubjectSummary,
    compute_trend,
    distribute_questions,
    parse_focus_areas,
)

from conftest import FakeGenerator, make_quiz_payload


def add_marks(db, learner_id, subject, marks, total=100.0, focus=""):
    db.add(InternalAssessment(
        learner_id=learner_id,
        recorded_by=learner_id,
        subject_name=subject,
        marks_obtained=marks,
        total_marks=total,
        focus_areas=focus,
    ))
    db.commit()


@pytest.fixture
def subjects(db, learner):
    add_marks(db, learner.id, "Mathematics", 40, focus="Derivatives, Limits")
    add_marks(db, learner.id, "Mathematics", 30, focus="Limits,Series , ")
    add_marks(db, learner.id, "Physics", 85, focus="Optics")


def generate(service, db, learner_id):
    return asyncio.run(service.generate(db, learner_id))


def test_parse_focus_areas():
    assert parse_focus_areas("Limits, derivatives , ,Series") == {"Limits", "derivatives", "Series"}
    assert parse_focus_areas(None) == set()


@pytest.mark.parametrize("percentages, trend", [
    ([], "average"),
    ([80.0], "average"),
    ([80.0, 70.0], "improving"),
    ([70.0, 80.0], "declining"),
    ([72.0, 70.0], "stagnant"),
    ([90.0, 80.0, 60.0], "improving"),
    ([50.0, 60.0, 70.0, 80.0, 95.0], "declining"),
])
def test_compute_trend(percentages, trend):
    assert compute_trend(percentages) == trend


def test_distribution_sums_and_favours_weak_subjects():
    summaries = [
        SubjectSummary("Mathematics", marks=70, total=200),
        SubjectSummary("Physics", marks=85, total=100),
        SubjectSummary("Chemistry", marks=100, total=100),
    ]
    shares = {row["subject"]: row["count"] for row in distribute_questions(summaries, 25)}

    assert sum(shares.values()) == 25
    assert min(shares.values()) >= 1
    assert shares["Mathematics"] > shares["Physics"] >= shares["Chemistry"]


def test_distribution_gives_every_subject_a_question():
    summaries = [SubjectSummary(f"S{i}", marks=0, total=100) for i in range(5)]
    summaries.append(SubjectSummary("Perfect", marks=100, total=100))
    rows = distribute_questions(summaries, 25)
    assert sum(r["count"] for r in rows) == 25
    assert all(r["count"] >= 1 for r in rows)


def test_distribution_caps_subjects_at_question_count():
    summaries = [SubjectSummary(f"S{i}", marks=i, total=100) for i in range(30)]
    rows = distribute_questions(summaries, 25)

    assert len(rows) == 25
    assert sum(r["count"] for r in rows) == 25
    kept = {r["subject"] for r in rows}
    assert "S0" in kept and "S29" not in kept


def test_summaries_merge_subjects_and_focus_areas(db, learner, subjects):
    service = PracticeService(generator=FakeGenerator())
    summaries = {s.subject: s for s in service.summarize_subjects(db, learner.id)}

    assert summaries["Mathematics"].marks == 70
    assert summaries["Mathematics"].total == 200
    assert summaries["Mathematics"].focus_areas == {"Derivatives", "Limits", "Series"}
    assert summaries["Physics"].focus_areas == {"Optics"}


def test_recent_history_aggregation(db, learner, teacher):
    assessment = Assessment(title="Quiz", owner_id=teacher.id)
    question = Question(
        question_text="d/dx x^2?",
        question_type=QuestionType.SHORT_ANSWER.value,
        correct_answer="2x",
        subject="Mathematics",
        focus_area="Derivatives",
    )
    assessment.questions = [question]
    db.add(assessment)
    db.commit()

    base = datetime(2026, 3, 1)
    for offset, (percentage, correct) in enumerate([(40.0, False), (55.0, True), (80.0, False)]):
        attempt = Attempt(
            assessment_id=assessment.id,
            learner_id=learner.id,
            status=AttemptStatus.COMPLETED.value,
            percentage=percentage,
            completed_at=base + timedelta(days=offset),
        )
        attempt.answers = [Answer(question_id=question.id, submitted_answer="x", is_correct=correct)]
        db.add(attempt)
    db.add(Attempt(assessment_id=assessment.id, learner_id=learner.id, status=AttemptStatus.IN_PROGRESS.value))
    db.commit()

    recent = PracticeService(generator=FakeGenerator()).summarize_recent(db, learner.id)

    assert recent.attempts_count == 3
    assert recent.subject_accuracy == {"Mathematics": 33.33}
    assert recent.incorrect_focus_areas == ["Derivatives"]
    assert recent.trend == "improving"
    assert recent.high_performance


def test_generate_persists_practice_assessment(db, learner, subjects):
    generator = FakeGenerator(payload=make_quiz_payload(subjects=("mathematics", "PHYSICS")))
    assessment, remarks = generate(PracticeService(generator=generator), db, learner.id)

    assert remarks["recommendation"] == "Practice derivatives daily"
    assert assessment.owner_id == learner.id
    assert assessment.unlimited_attempts and assessment.is_generated
    assert assessment.title.startswith("Smart Practice - ")
    assert len(assessment.questions) == 25
    assert assessment.total_marks == 25.0

    first = assessment.questions[0]
    assert first.subject == "Mathematics"
    assert first.correct_answer == "B"
    assert set(first.options) == {"A", "B", "C", "D"}
    assert first.difficulty == "hard"

    context = generator.contexts[0]
    assert sum(row["count"] for row in context["distribution"]) == 25
    assert context["previousQuizRemarks"]["overallTrend"] == "average"


@pytest.mark.parametrize("count", [24, 26])
def test_wrong_question_count_rejects_everything(db, learner, subjects, count):
    service = PracticeService(generator=FakeGenerator(payload=make_quiz_payload(count=count)))
    with pytest.raises(ValidationError):
        generate(service, db, learner.id)
    assert db.query(Assessment).count() == 0
    assert db.query(Question).count() == 0


def test_unknown_subject_rejects_everything(db, learner, subjects):
    payload = make_quiz_payload()
    payload["quiz"][7]["subject"] = "History"
    with pytest.raises(ValidationError):
        generate(PracticeService(generator=FakeGenerator(payload=payload)), db, learner.id)
    assert db.query(Assessment).count() == 0


def test_malformed_options_reject_everything(db, learner, subjects):
    payload = make_quiz_payload()
    payload["quiz"][3]["options"] = ["only", "three", "options"]
    with pytest.raises(ValidationError):
        generate(PracticeService(generator=FakeGenerator(payload=payload)), db, learner.id)


def test_extra_keyed_options_reject_everything(db, learner, subjects):
    payload = make_quiz_payload()
    payload["quiz"][0]["options"] = {"A": "1", "B": "2", "C": "3", "D": "4", "E": "5"}
    with pytest.raises(ValidationError):
        generate(PracticeService(generator=FakeGenerator(payload=payload)), db, learner.id)
    assert db.query(Assessment).count() == 0
    assert db.query(Question).count() == 0


def test_missing_remarks_rejected(db, learner, subjects):
    payload = make_quiz_payload()
    del payload["remarks"]
    with pytest.raises(ValidationError):
        generate(PracticeService(generator=FakeGenerator(payload=payload)), db, learner.id)


def test_answer_and_difficulty_normalization(db, learner, subjects):
    payload = make_quiz_payload()
    payload["quiz"][0]["correctAnswer"] = "option 0-3"
    payload["quiz"][1]["correctAnswer"] = "something else entirely"
    payload["quiz"][2]["difficulty"] = "impossible"
    payload["quiz"][3].pop("difficulty")

    assessment, _ = generate(PracticeService(generator=FakeGenerator(payload=payload)), db, learner.id)
    questions = assessment.questions

    assert questions[0].correct_answer == "C"
    assert questions[1].correct_answer == "A"
    assert questions[2].difficulty == "medium"
    assert questions[3].difficulty == "medium"


def test_empty_correct_answer_rejected(db, learner, subjects):
    payload = make_quiz_payload()
    payload["quiz"][5]["correctAnswer"] = "  "
    with pytest.raises(ValidationError):
        generate(PracticeService(generator=FakeGenerator(payload=payload)), db, learner.id)


def test_no_subjects_is_a_validation_error(db, learner):
    with pytest.raises(ValidationError):
        generate(PracticeService(generator=FakeGenerator(payload=make_quiz_payload())), db, learner.id)


def test_generator_failure_aborts(db, learner, subjects):
    generator = FakeGenerator(error=ExternalServiceError("model down"))
    with pytest.raises(ExternalServiceError):
        generate(PracticeService(generator=generator), db, learner.id)
    assert db.query(Assessment).count() == 0
