"""
RetakeRequest model - learner asks the assessment owner for another attempt
"""
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, Uuid, Index, text
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum
import uuid


class RetakeStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RetakeRequest(Base):
    """
    Retake requests table - pending is the only non-terminal state

    At most one pending request per (learner, assessment), enforced by a
    partial unique index.
    """
    __tablename__ = "retake_requests"
    __table_args__ = (
        Index(
            "uq_retake_request_pending",
            "learner_id",
            "assessment_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, index=True)
    assessment_id = Column(Uuid, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    authorizer_id = Column(Uuid, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RetakeStatus.PENDING.value)
    created_at = Column(TIMESTAMP, default=utcnow)
    responded_at = Column(TIMESTAMP)

    assessment = relationship("Assessment", back_populates="retake_requests")

    def __repr__(self):
        return f"<RetakeRequest(id={self.id}, learner_id={self.learner_id}, status={self.status})>"
