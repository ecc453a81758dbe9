import uuid
from datetime import timedelta

import pytest

from app.config import settings
from app.database import utcnow
from app.exceptions import AuthorizationError, ConflictError, NotFoundError
from app.models import Assessment, Attempt, AttemptStatus, RetakeStatus
from app.services.attempt_service import attempt_service
from app.services.grading_service import GradingOutcome
from app.utils.auth import LEARNER, Principal


@pytest.fixture
def assessment(db, teacher):
    item = Assessment(title="Unit test", owner_id=teacher.id, max_attempts=1)
    db.add(item)
    db.commit()
    return item


def take(db, learner_id, assessment_id):
    attempt = attempt_service.begin_attempt(db, learner_id, assessment_id)
    attempt_service.complete_attempt(db, attempt, GradingOutcome())
    db.commit()
    return attempt


def test_single_attempt_without_retake(db, assessment, learner):
    take(db, learner.id, assessment.id)

    with pytest.raises(AuthorizationError):
        attempt_service.begin_attempt(db, learner.id, assessment.id)

    state = attempt_service.access_state(db, learner.id, assessment)
    assert state.attempts_completed == 1
    assert state.allowed_attempts == 1
    assert not state.can_attempt


def test_approved_retake_allows_exactly_one_more(db, assessment, learner, teacher):
    take(db, learner.id, assessment.id)
    request = attempt_service.request_retake(db, learner.id, assessment.id)
    assert request.authorizer_id == teacher.id
    assert request.status == RetakeStatus.PENDING.value

    attempt_service.resolve_retake(db, teacher, request.id, RetakeStatus.APPROVED)
    take(db, learner.id, assessment.id)

    with pytest.raises(AuthorizationError):
        attempt_service.begin_attempt(db, learner.id, assessment.id)

    completed = db.query(Attempt).filter(Attempt.status == AttemptStatus.COMPLETED.value).count()
    assert completed == 2


def test_in_progress_attempt_counts_against_allowance(db, assessment, learner):
    attempt_service.begin_attempt(db, learner.id, assessment.id)
    with pytest.raises(AuthorizationError):
        attempt_service.begin_attempt(db, learner.id, assessment.id)


def test_stale_in_progress_attempt_is_expired(db, assessment, learner):
    stale = attempt_service.begin_attempt(db, learner.id, assessment.id)
    stale.started_at = utcnow() - timedelta(minutes=settings.STALE_ATTEMPT_MINUTES + 1)
    db.commit()

    fresh = attempt_service.begin_attempt(db, learner.id, assessment.id)

    db.refresh(stale)
    assert stale.status == AttemptStatus.ABANDONED.value
    assert fresh.status == AttemptStatus.IN_PROGRESS.value


def test_time_limit_bounds_in_progress_attempts(db, learner, teacher):
    timed = Assessment(title="Timed", owner_id=teacher.id, max_attempts=1, time_limit=10)
    db.add(timed)
    db.commit()

    recent = attempt_service.begin_attempt(db, learner.id, timed.id)
    recent.started_at = utcnow() - timedelta(minutes=5)
    db.commit()
    with pytest.raises(AuthorizationError):
        attempt_service.begin_attempt(db, learner.id, timed.id)

    recent.started_at = utcnow() - timedelta(minutes=11)
    db.commit()
    assert attempt_service.expire_stale_attempts(db, timed) == 1
    db.commit()
    attempt_service.begin_attempt(db, learner.id, timed.id)


def test_retake_not_needed_while_attempts_remain(db, assessment, learner):
    with pytest.raises(ConflictError):
        attempt_service.request_retake(db, learner.id, assessment.id)


def test_second_pending_request_is_rejected(db, assessment, learner):
    take(db, learner.id, assessment.id)
    attempt_service.request_retake(db, learner.id, assessment.id)

    with pytest.raises(ConflictError):
        attempt_service.request_retake(db, learner.id, assessment.id)

    state = attempt_service.access_state(db, learner.id, assessment)
    assert state.request_status == RetakeStatus.PENDING.value


def test_request_again_after_rejection(db, assessment, learner, teacher):
    take(db, learner.id, assessment.id)
    first = attempt_service.request_retake(db, learner.id, assessment.id)
    attempt_service.resolve_retake(db, teacher, first.id, RetakeStatus.REJECTED)

    second = attempt_service.request_retake(db, learner.id, assessment.id)
    assert second.id != first.id
    assert attempt_service.access_state(db, learner.id, assessment).allowed_attempts == 1


def test_request_resolves_exactly_once(db, assessment, learner, teacher):
    take(db, learner.id, assessment.id)
    request = attempt_service.request_retake(db, learner.id, assessment.id)
    attempt_service.resolve_retake(db, teacher, request.id, RetakeStatus.APPROVED)

    with pytest.raises(ConflictError):
        attempt_service.resolve_retake(db, teacher, request.id, RetakeStatus.REJECTED)


def test_only_authorizer_resolves(db, assessment, learner):
    take(db, learner.id, assessment.id)
    request = attempt_service.request_retake(db, learner.id, assessment.id)
    stranger = Principal(sub=uuid.uuid4(), role="teacher")

    with pytest.raises(AuthorizationError):
        attempt_service.resolve_retake(db, stranger, request.id, RetakeStatus.APPROVED)


def test_admin_can_resolve(db, assessment, learner, admin):
    take(db, learner.id, assessment.id)
    request = attempt_service.request_retake(db, learner.id, assessment.id)
    resolved = attempt_service.resolve_retake(db, admin, request.id, RetakeStatus.APPROVED)
    assert resolved.status == RetakeStatus.APPROVED.value
    assert resolved.responded_at is not None


def test_pending_is_not_a_resolution(db, assessment, learner, teacher):
    take(db, learner.id, assessment.id)
    request = attempt_service.request_retake(db, learner.id, assessment.id)
    with pytest.raises(ConflictError):
        attempt_service.resolve_retake(db, teacher, request.id, RetakeStatus.PENDING)


def test_unlimited_practice_is_never_blocked(db, learner):
    practice = Assessment(title="Practice", owner_id=learner.id, unlimited_attempts=True)
    db.add(practice)
    db.commit()

    for _ in range(4):
        take(db, learner.id, practice.id)

    state = attempt_service.access_state(db, learner.id, practice)
    assert state.allowed_attempts is None
    assert state.can_attempt


def test_unknown_assessment(db):
    with pytest.raises(NotFoundError):
        attempt_service.begin_attempt(db, uuid.uuid4(), uuid.uuid4())


def test_pending_requests_for_authorizer(db, assessment, teacher):
    learners = [Principal(sub=uuid.uuid4(), role=LEARNER) for _ in range(2)]
    for learner in learners:
        take(db, learner.id, assessment.id)
        attempt_service.request_retake(db, learner.id, assessment.id)

    pending = attempt_service.pending_requests(db, teacher.id)
    assert {r.learner_id for r in pending} == {l.id for l in learners}
    assert attempt_service.pending_requests(db, uuid.uuid4()) == []
