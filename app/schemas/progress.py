"""
Pydantic schemas for progression, lessons, badges, practice and academic records
"""
from pydantic import BaseModel, Field
from typing import Dict, Any, Optional
from uuid import UUID
from datetime import datetime


class ProgressResponse(BaseModel):
    learner_id: UUID
    total_points: int
    current_level: int
    lessons_completed: int
    quizzes_completed: int
    challenges_completed: int

    class Config:
        from_attributes = True


class LeaderboardEntry(ProgressResponse):
    rank: int


class LessonCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)


class LessonResponse(BaseModel):
    id: UUID
    title: str
    owner_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


class LessonCompletionResponse(BaseModel):
    lesson_id: UUID
    completed: bool
    completed_at: Optional[datetime] = None
    points_awarded: int
    progress: ProgressResponse


class BadgeResponse(BaseModel):
    """Catalog entry with the learner's award status"""
    id: UUID
    name: str
    category: str
    description: Optional[str] = ""
    icon: Optional[str] = ""
    earned: bool
    earned_at: Optional[datetime] = None


class PracticeGenerateResponse(BaseModel):
    assessment_id: UUID
    title: str
    total_questions: int
    remarks: Dict[str, Any]


class InternalAssessmentCreate(BaseModel):
    learner_id: UUID
    subject_name: str = Field(..., min_length=1, max_length=100)
    marks_obtained: float = Field(..., ge=0)
    total_marks: float = Field(..., gt=0)
    semester: int = Field(1, ge=1)
    exam_type: str = "Internal"
    focus_areas: str = Field("", description="Comma-separated topics to work on")
    remarks: str = ""


class InternalAssessmentResponse(BaseModel):
    id: UUID
    learner_id: UUID
    recorded_by: UUID
    subject_name: str
    marks_obtained: float
    total_marks: float
    semester: int
    exam_type: Optional[str] = None
    focus_areas: str
    remarks: Optional[str] = ""
    created_at: datetime

    class Config:
        from_attributes = True


class ExamGoalCreate(BaseModel):
    subject_name: str = Field(..., min_length=1, max_length=100)
    target_grade: str = Field(..., min_length=1, max_length=10)
    target_sgpa: Optional[float] = Field(None, ge=0, le=10)


class ExamGoalResponse(BaseModel):
    id: UUID
    learner_id: UUID
    subject_name: str
    target_grade: str
    target_sgpa: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True
