"""
Attempt and Answer models - one learner's scored instance of an assessment
"""
from sqlalchemy import Column, String, Float, Boolean, Text, TIMESTAMP, ForeignKey, JSON, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum
import uuid


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class GradingMethod(str, enum.Enum):
    EXACT_MATCH = "exact_match"
    DELEGATED = "delegated"


class Attempt(Base):
    """
    Attempts table - in_progress -> completed (abandoned is terminal)
    """
    __tablename__ = "attempts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assessment_id = Column(Uuid, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    learner_id = Column(Uuid, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value)
    score = Column(Float, default=0.0)
    total_marks = Column(Float, default=0.0)
    percentage = Column(Float, default=0.0)
    started_at = Column(TIMESTAMP, default=utcnow)
    completed_at = Column(TIMESTAMP)

    assessment = relationship("Assessment", back_populates="attempts")
    answers = relationship("Answer", back_populates="attempt", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Attempt(id={self.id}, learner_id={self.learner_id}, status={self.status}, score={self.score})>"


class Answer(Base):
    """
    Answers table - one row per scored question per attempt

    ``feedback`` and ``breakdown`` (grammar/clarity/factual_accuracy) are only
    set when the question was graded by the delegated grader.
    """
    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attempt_id = Column(Uuid, ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Uuid, ForeignKey("questions.id", ondelete="SET NULL"))
    submitted_answer = Column(Text, default="")
    is_correct = Column(Boolean, default=False, nullable=False)
    marks_obtained = Column(Float, default=0.0, nullable=False)
    grading_method = Column(String(20), nullable=False, default=GradingMethod.EXACT_MATCH.value)
    feedback = Column(Text)
    breakdown = Column(JSON)
    created_at = Column(TIMESTAMP, default=utcnow)

    attempt = relationship("Attempt", back_populates="answers")
    question = relationship("Question")

    def __repr__(self):
        return f"<Answer(attempt_id={self.attempt_id}, question_id={self.question_id}, marks={self.marks_obtained})>"
