"""
Assessment and Question models - authored or generated quizzes
"""
from sqlalchemy import Column, String, Integer, Float, Boolean, Text, TIMESTAMP, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum
import uuid


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Assessment(Base):
    """
    Assessments table - a named, owned collection of questions

    ``unlimited_attempts`` marks practice assessments that bypass attempt
    accounting; ``max_attempts`` is the base attempt allowance (1 when unset).
    """
    __tablename__ = "assessments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    owner_id = Column(Uuid, nullable=False, index=True)
    total_marks = Column(Float, default=0.0)
    time_limit = Column(Integer)  # minutes
    max_attempts = Column(Integer)
    unlimited_attempts = Column(Boolean, default=False, nullable=False)
    is_generated = Column(Boolean, default=False, nullable=False)
    created_at = Column(TIMESTAMP, default=utcnow)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)

    questions = relationship(
        "Question",
        back_populates="assessment",
        cascade="all, delete-orphan",
        order_by="Question.order_index",
    )
    attempts = relationship("Attempt", back_populates="assessment", cascade="all, delete-orphan")
    retake_requests = relationship("RetakeRequest", back_populates="assessment", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Assessment(id={self.id}, title={self.title})>"


class Question(Base):
    """
    Questions table - belongs to exactly one assessment

    ``options`` maps option keys ("A".."D") to option text for multiple choice;
    ``correct_answer`` holds the option key for multiple choice and the
    canonical text otherwise.
    """
    __tablename__ = "questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assessment_id = Column(Uuid, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(20), nullable=False, default=QuestionType.MULTIPLE_CHOICE.value)
    options = Column(JSON, default=dict)
    correct_answer = Column(Text, nullable=False)
    marks = Column(Float, nullable=False, default=1.0)
    order_index = Column(Integer, nullable=False, default=0)

    # Pedagogical metadata (always present on generated questions)
    subject = Column(String(100))
    focus_area = Column(String(255))
    difficulty = Column(String(10))
    explanation = Column(Text)

    assessment = relationship("Assessment", back_populates="questions")

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.question_type}, marks={self.marks})>"
