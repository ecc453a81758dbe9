"""
Challenge and Submission models - manually graded assessments
"""
from sqlalchemy import Column, String, Integer, Text, TIMESTAMP, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum
import uuid


class SubmissionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubmissionRetakeStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    owner_id = Column(Uuid, nullable=False, index=True)
    points = Column(Integer, default=100)
    created_at = Column(TIMESTAMP, default=utcnow)

    submissions = relationship("Submission", back_populates="challenge", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Challenge(id={self.id}, title={self.title})>"


class Submission(Base):
    """
    Challenge submissions table - one per (challenge, learner)

    ``highest_points`` is the high-water mark of every approval ever given;
    only the positive delta above it is credited to the ledger.
    """
    __tablename__ = "challenge_submissions"
    __table_args__ = (
        UniqueConstraint("challenge_id", "learner_id", name="uq_submission_challenge_learner"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id = Column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True)
    learner_id = Column(Uuid, nullable=False, index=True)
    submission_text = Column(Text, default="")
    status = Column(String(20), nullable=False, default=SubmissionStatus.PENDING.value)
    retake_status = Column(String(20), nullable=False, default=SubmissionRetakeStatus.NONE.value)
    points_awarded = Column(Integer, default=0, nullable=False)
    highest_points = Column(Integer, default=0, nullable=False)
    submitted_at = Column(TIMESTAMP, default=utcnow)
    reviewed_at = Column(TIMESTAMP)
    reviewed_by = Column(Uuid)

    challenge = relationship("Challenge", back_populates="submissions")

    def __repr__(self):
        return f"<Submission(id={self.id}, status={self.status}, highest_points={self.highest_points})>"
