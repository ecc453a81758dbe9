"""
Progression models - per-learner points/level record, credit journal, lessons
"""
from sqlalchemy import Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, Uuid, UniqueConstraint
from app.database import Base, utcnow
import enum
import uuid


class ProgressCategory(str, enum.Enum):
    LESSON = "lesson"
    QUIZ = "quiz"
    CHALLENGE = "challenge"


class ProgressionRecord(Base):
    """
    Progression records table - exactly one row per learner

    ``current_level`` is always written in the same UPDATE as ``total_points``.
    """
    __tablename__ = "progression_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, unique=True, index=True)
    total_points = Column(Integer, nullable=False, default=0)
    current_level = Column(Integer, nullable=False, default=1)
    lessons_completed = Column(Integer, nullable=False, default=0)
    quizzes_completed = Column(Integer, nullable=False, default=0)
    challenges_completed = Column(Integer, nullable=False, default=0)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ProgressionRecord(learner_id={self.learner_id}, points={self.total_points}, level={self.current_level})>"


class LedgerEntry(Base):
    """
    Ledger entries table - journal of every credit

    (learner, category, source_key) is unique: a duplicate insert means the
    event was already credited.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("learner_id", "category", "source_key", name="uq_ledger_entry_source"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, index=True)
    category = Column(String(20), nullable=False)
    source_key = Column(String(100), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    counts_completion = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, default=utcnow)

    def __repr__(self):
        return f"<LedgerEntry(learner_id={self.learner_id}, category={self.category}, points={self.points})>"


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    owner_id = Column(Uuid, nullable=False, index=True)
    created_at = Column(TIMESTAMP, default=utcnow)

    def __repr__(self):
        return f"<Lesson(id={self.id}, title={self.title})>"


class LessonProgress(Base):
    """
    Lesson progress table - unique per (learner, lesson)
    """
    __tablename__ = "lesson_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "lesson_id", name="uq_lesson_progress_learner_lesson"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, index=True)
    lesson_id = Column(Uuid, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    completed = Column(Boolean, nullable=False, default=True)
    completed_at = Column(TIMESTAMP, default=utcnow)

    def __repr__(self):
        return f"<LessonProgress(learner_id={self.learner_id}, lesson_id={self.lesson_id}, completed={self.completed})>"
