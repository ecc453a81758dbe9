"""
Database models package
"""
from app.models.assessment import Assessment, Question, QuestionType, Difficulty
from app.models.attempt import Attempt, Answer, AttemptStatus, GradingMethod
from app.models.retake_request import RetakeRequest, RetakeStatus
from app.models.challenge import Challenge, Submission, SubmissionStatus, SubmissionRetakeStatus
from app.models.progression import ProgressionRecord, LedgerEntry, ProgressCategory, Lesson, LessonProgress
from app.models.badge import Badge, BadgeAward
from app.models.academic_record import InternalAssessment, ExamGoal

__all__ = [
    "Assessment", "Question", "QuestionType", "Difficulty",
    "Attempt", "Answer", "AttemptStatus", "GradingMethod",
    "RetakeRequest", "RetakeStatus",
    "Challenge", "Submission", "SubmissionStatus", "SubmissionRetakeStatus",
    "ProgressionRecord", "LedgerEntry", "ProgressCategory", "Lesson", "LessonProgress",
    "Badge", "BadgeAward",
    "InternalAssessment", "ExamGoal",
]
