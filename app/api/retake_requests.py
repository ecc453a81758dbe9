"""
Retake request queue and resolution endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
from app.database import get_db
from app.schemas.assessment import RetakeDecision, RetakeRequestResponse
from app.services.attempt_service import attempt_service
from app.utils.auth import ADMIN, TEACHER, Principal, require_roles


router = APIRouter(prefix="/retake-requests", tags=["retake-requests"])


@router.get("", response_model=List[RetakeRequestResponse])
async def list_pending_requests(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    """Pending requests addressed to the caller"""
    return attempt_service.pending_requests(db, principal.id)


@router.put("/{request_id}", response_model=RetakeRequestResponse)
async def resolve_request(
    request_id: UUID,
    decision: RetakeDecision,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(TEACHER, ADMIN)),
):
    """
    Approve or reject a pending request exactly once

    Approval grants one extra attempt; earlier attempts are kept.
    """
    return attempt_service.resolve_retake(db, principal, request_id, decision.status)
