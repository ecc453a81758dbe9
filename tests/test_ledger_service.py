import uuid

import pytest

from app.models import (
    Assessment,
    Attempt,
    AttemptStatus,
    Challenge,
    LedgerEntry,
    Lesson,
    ProgressCategory,
    ProgressionRecord,
    Submission,
    SubmissionStatus,
)
from app.services.challenge_service import challenge_service
from app.services.ledger_service import COMPLETION_COUNTERS, LedgerService, level_for_points, round_half_up


@pytest.fixture
def ledger():
    return LedgerService(lesson_points=50)


@pytest.mark.parametrize("points, level", [(0, 1), (99, 1), (100, 2), (399, 2), (400, 3), (900, 4), (-5, 1)])
def test_level_formula(points, level):
    assert level_for_points(points) == level


def test_round_half_up():
    assert round_half_up(170.0) == 170
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3


def test_credit_creates_zero_baseline_record(db, ledger, learner):
    assert ledger.get_progress(db, learner.id)["total_points"] == 0

    assert ledger.credit(db, learner.id, ProgressCategory.QUIZ, "a1", 120, counts_completion=True)
    db.commit()

    progress = ledger.get_progress(db, learner.id)
    assert progress["total_points"] == 120
    assert progress["current_level"] == 2
    assert progress["quizzes_completed"] == 1


def test_same_source_credits_once(db, ledger, learner):
    assert ledger.credit(db, learner.id, ProgressCategory.QUIZ, "a1", 100)
    assert not ledger.credit(db, learner.id, ProgressCategory.QUIZ, "a1", 100)
    db.commit()

    assert db.query(ProgressionRecord).count() == 1
    assert ledger.get_progress(db, learner.id)["total_points"] == 100


def test_lesson_completion_is_idempotent(db, ledger, learner, teacher):
    lesson = Lesson(title="Intro", owner_id=teacher.id)
    db.add(lesson)
    db.commit()

    _, first = ledger.complete_lesson(db, learner.id, lesson)
    progress, second = ledger.complete_lesson(db, learner.id, lesson)

    assert first and not second
    assert progress.completed
    snapshot = ledger.get_progress(db, learner.id)
    assert snapshot["total_points"] == 50
    assert snapshot["lessons_completed"] == 1


def completed_attempt(db, assessment, learner_id, score, total, percentage):
    attempt = Attempt(
        assessment_id=assessment.id,
        learner_id=learner_id,
        status=AttemptStatus.COMPLETED.value,
        score=score,
        total_marks=total,
        percentage=percentage,
    )
    db.add(attempt)
    db.commit()
    return attempt


def test_every_completed_attempt_credits(db, ledger, learner, teacher):
    assessment = Assessment(title="Quiz", owner_id=teacher.id)
    db.add(assessment)
    db.commit()

    first = completed_attempt(db, assessment, learner.id, 17.0, 20.0, 85.0)
    second = completed_attempt(db, assessment, learner.id, 8.46, 20.0, 42.3)

    assert ledger.credit_quiz_attempt(db, first) == 170
    assert ledger.credit_quiz_attempt(db, second) == 85
    assert ledger.credit_quiz_attempt(db, first) == 0
    db.commit()

    snapshot = ledger.get_progress(db, learner.id)
    assert snapshot["total_points"] == 255
    assert snapshot["quizzes_completed"] == 2


def test_quiz_credit_uses_unrounded_ratio(db, ledger, learner, teacher):
    assessment = Assessment(title="Long quiz", owner_id=teacher.id)
    db.add(assessment)
    db.commit()

    # 48.99 / 400 = 12.2475%, stored as 12.25
    attempt = completed_attempt(db, assessment, learner.id, 48.99, 400.0, 12.25)
    assert ledger.credit_quiz_attempt(db, attempt) == 24


def test_empty_attempt_credits_nothing(db, ledger, learner, teacher):
    assessment = Assessment(title="Empty", owner_id=teacher.id)
    db.add(assessment)
    db.commit()

    attempt = completed_attempt(db, assessment, learner.id, 0.0, 0.0, 0.0)
    assert ledger.credit_quiz_attempt(db, attempt) == 0
    assert ledger.get_progress(db, learner.id)["quizzes_completed"] == 1


def test_registry_covers_every_category():
    assert set(COMPLETION_COUNTERS) == set(ProgressCategory)


def test_challenge_high_water_mark(db, learner, teacher):
    challenge = Challenge(title="Essay", owner_id=teacher.id)
    db.add(challenge)
    db.commit()
    submission = challenge_service.submit(db, learner.id, challenge.id, "first draft")

    def approve(points):
        challenge_service.grade(db, teacher, submission.id, SubmissionStatus.APPROVED, points)
        return challenge_service.ledger.get_progress(db, learner.id)

    progress = approve(60)
    assert progress["total_points"] == 60
    assert progress["challenges_completed"] == 1

    progress = approve(40)
    assert progress["total_points"] == 60

    progress = approve(60)
    assert progress["total_points"] == 60

    progress = approve(80)
    assert progress["total_points"] == 80
    assert progress["challenges_completed"] == 1

    db.refresh(submission)
    assert submission.highest_points == 80
    assert submission.points_awarded == 80


def test_recompute_rebuilds_from_ledger(db, ledger, learner):
    ledger.credit(db, learner.id, ProgressCategory.LESSON, "l1", 50, counts_completion=True)
    ledger.credit(db, learner.id, ProgressCategory.QUIZ, "q1", 170, counts_completion=True)
    ledger.credit(db, learner.id, ProgressCategory.CHALLENGE, "c1:80", 80, counts_completion=True)
    ledger.credit(db, learner.id, ProgressCategory.CHALLENGE, "c1:100", 20)
    db.commit()

    record = db.query(ProgressionRecord).filter(ProgressionRecord.learner_id == learner.id).one()
    record.total_points = 9999
    record.current_level = 42
    record.challenges_completed = 7
    db.commit()

    rebuilt = ledger.recompute(db, learner.id)
    assert rebuilt["total_points"] == 320
    assert rebuilt["current_level"] == 2
    assert rebuilt["lessons_completed"] == 1
    assert rebuilt["quizzes_completed"] == 1
    assert rebuilt["challenges_completed"] == 1
    assert db.query(LedgerEntry).count() == 4


def test_leaderboard_orders_by_points(db, ledger):
    learners = [uuid.uuid4() for _ in range(3)]
    for learner_id, points in zip(learners, (30, 300, 120)):
        ledger.credit(db, learner_id, ProgressCategory.QUIZ, "x", points)
    db.commit()

    board = ledger.leaderboard(db, limit=2)
    assert [r.learner_id for r in board] == [learners[1], learners[2]]
