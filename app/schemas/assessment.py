"""
Pydantic schemas for assessments, attempts and retake requests
"""
from pydantic import BaseModel, Field, model_validator
from typing import List, Dict, Any, Optional
from uuid import UUID
from datetime import datetime

from app.models import QuestionType, RetakeStatus


class QuestionCreate(BaseModel):
    """Authored question"""
    question_text: str = Field(..., min_length=1)
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: Dict[str, str] = Field(default_factory=dict, description="Option key (A-D) -> option text")
    correct_answer: str = Field(..., min_length=1)
    marks: float = Field(1.0, gt=0)
    subject: Optional[str] = None
    focus_area: Optional[str] = None
    difficulty: Optional[str] = Field(None, pattern="^(easy|medium|hard)$")
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def check_options(self):
        if self.question_type == QuestionType.MULTIPLE_CHOICE:
            keys = {k.upper() for k in self.options}
            if len(self.options) < 2 or not keys <= {"A", "B", "C", "D"}:
                raise ValueError("Multiple choice questions need 2-4 options keyed A-D")
            self.options = {k.upper(): v for k, v in self.options.items()}
        return self


class AssessmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    time_limit: Optional[int] = Field(None, ge=1, description="Minutes")
    max_attempts: int = Field(1, ge=1, description="Base attempt allowance")
    unlimited_attempts: bool = False
    questions: List[QuestionCreate] = Field(default_factory=list)


class QuestionSetReplace(BaseModel):
    questions: List[QuestionCreate]


class QuestionResponse(BaseModel):
    """Question as shown to learners (no answer key)"""
    id: UUID
    question_text: str
    question_type: str
    options: Optional[Dict[str, str]] = None
    marks: float
    order_index: int
    subject: Optional[str] = None
    focus_area: Optional[str] = None
    difficulty: Optional[str] = None

    class Config:
        from_attributes = True


class QuestionDetail(QuestionResponse):
    """Question as shown to the owner"""
    correct_answer: str
    explanation: Optional[str] = None


class AccessStateResponse(BaseModel):
    attempts_completed: int
    allowed_attempts: Optional[int] = None  # None = unlimited
    can_attempt: bool
    request_status: Optional[str] = None

    class Config:
        from_attributes = True


class AssessmentResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = ""
    owner_id: UUID
    total_marks: float
    time_limit: Optional[int] = None
    max_attempts: Optional[int] = None
    unlimited_attempts: bool
    is_generated: bool
    created_at: datetime
    questions: List[QuestionResponse] = []
    access: Optional[AccessStateResponse] = None

    class Config:
        from_attributes = True


class AssessmentDetail(AssessmentResponse):
    questions: List[QuestionDetail] = []


class AttemptSubmission(BaseModel):
    """Schema for attempt submission"""
    answers: Dict[str, Any] = Field(default_factory=dict, description="{question_id: answer}")


class AnswerResult(BaseModel):
    question_id: Optional[UUID] = None
    submitted_answer: str
    is_correct: bool
    marks_obtained: float
    grading_method: str
    feedback: Optional[str] = None
    breakdown: Optional[Dict[str, float]] = None

    class Config:
        from_attributes = True


class AttemptGradingResponse(BaseModel):
    """Response after attempt grading"""
    attempt_id: UUID
    score: float
    total_marks: float
    score_display: str  # "1.7/2"
    percentage: float
    points_awarded: int
    breakdown: List[AnswerResult]


class AttemptResponse(BaseModel):
    id: UUID
    assessment_id: UUID
    learner_id: UUID
    status: str
    score: float
    total_marks: float
    percentage: float
    started_at: datetime
    completed_at: Optional[datetime] = None
    answers: List[AnswerResult] = []

    class Config:
        from_attributes = True


class RetakeRequestResponse(BaseModel):
    id: UUID
    learner_id: UUID
    assessment_id: UUID
    authorizer_id: UUID
    status: str
    created_at: datetime
    responded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RetakeDecision(BaseModel):
    status: RetakeStatus
