"""
Attempt review endpoint
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, selectinload
from uuid import UUID
from app.database import get_db
from app.exceptions import AuthorizationError, NotFoundError
from app.models import Attempt
from app.schemas.assessment import AttemptResponse
from app.utils.auth import Principal, get_current_principal


router = APIRouter(prefix="/attempts", tags=["attempts"])


@router.get("/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(
    attempt_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Stored attempt with per-question grading details"""
    attempt = (
        db.query(Attempt)
        .options(selectinload(Attempt.answers), selectinload(Attempt.assessment))
        .filter(Attempt.id == attempt_id)
        .first()
    )
    if not attempt:
        raise NotFoundError("Attempt not found")

    if (
        attempt.learner_id != principal.id
        and attempt.assessment.owner_id != principal.id
        and not principal.is_admin
    ):
        raise AuthorizationError("Not authorized to view this attempt")

    return attempt
