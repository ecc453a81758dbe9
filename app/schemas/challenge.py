"""
Pydantic schemas for challenges and submissions
"""
from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.models import SubmissionStatus, SubmissionRetakeStatus


class ChallengeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    points: int = Field(100, ge=0)


class ChallengeResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = ""
    owner_id: UUID
    points: int
    created_at: datetime

    class Config:
        from_attributes = True


class SubmissionCreate(BaseModel):
    submission_text: str = Field(..., min_length=1)


class SubmissionGrade(BaseModel):
    status: SubmissionStatus
    points: int = Field(0, ge=0)


class SubmissionRetakeDecision(BaseModel):
    status: SubmissionRetakeStatus


class SubmissionResponse(BaseModel):
    id: UUID
    challenge_id: UUID
    learner_id: UUID
    submission_text: str
    status: str
    retake_status: str
    points_awarded: int
    highest_points: int
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
