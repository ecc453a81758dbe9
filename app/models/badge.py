"""
Badge catalog and awards
"""
from sqlalchemy import Column, String, Text, TIMESTAMP, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import uuid


class Badge(Base):
    __tablename__ = "badges"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    category = Column(String(20), nullable=False)  # Basic / Intermediate / Advanced
    description = Column(Text, default="")
    icon = Column(String(50), default="")

    def __repr__(self):
        return f"<Badge(name={self.name}, category={self.category})>"


class BadgeAward(Base):
    """
    Badge awards table - unique per (learner, badge), never revoked
    """
    __tablename__ = "badge_awards"
    __table_args__ = (
        UniqueConstraint("learner_id", "badge_id", name="uq_badge_award_learner_badge"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, index=True)
    badge_id = Column(Uuid, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(TIMESTAMP, default=utcnow)

    badge = relationship("Badge")

    def __repr__(self):
        return f"<BadgeAward(learner_id={self.learner_id}, badge_id={self.badge_id})>"
