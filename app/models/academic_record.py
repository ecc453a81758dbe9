"""
Academic records - teacher-entered internal marks and learner goals
"""
from sqlalchemy import Column, String, Integer, Float, Text, TIMESTAMP, Uuid
from app.database import Base, utcnow
import uuid


class InternalAssessment(Base):
    """
    Internal assessment marks per subject

    ``focus_areas`` is the teacher's comma-separated list of topics to work on.
    """
    __tablename__ = "internal_assessments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, index=True)
    recorded_by = Column(Uuid, nullable=False)
    subject_name = Column(String(100), nullable=False)
    marks_obtained = Column(Float, nullable=False)
    total_marks = Column(Float, nullable=False)
    semester = Column(Integer, nullable=False, default=1)
    exam_type = Column(String(50), default="Internal")
    focus_areas = Column(Text, nullable=False, default="")
    remarks = Column(Text, default="")
    created_at = Column(TIMESTAMP, default=utcnow)

    @property
    def ratio(self) -> float:
        return self.marks_obtained / self.total_marks if self.total_marks else 0.0

    def __repr__(self):
        return f"<InternalAssessment(learner_id={self.learner_id}, subject={self.subject_name})>"


class ExamGoal(Base):
    __tablename__ = "exam_goals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id = Column(Uuid, nullable=False, index=True)
    subject_name = Column(String(100), nullable=False)
    target_grade = Column(String(10), nullable=False)
    target_sgpa = Column(Float)
    created_at = Column(TIMESTAMP, default=utcnow)

    def __repr__(self):
        return f"<ExamGoal(learner_id={self.learner_id}, subject={self.subject_name})>"
