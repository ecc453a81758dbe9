"""
Badge evaluator - re-checks the achievement catalog against a learner's
academic history and awards newly satisfied badges once
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from app.database import insert_ignore
from app.models import Badge, BadgeAward, ExamGoal, InternalAssessment

logger = logging.getLogger(__name__)


BADGE_DEFINITIONS = [
    # Basic
    {"name": "Academic Explorer", "category": "Basic", "description": "Started exploring academic performance.", "icon": "Compass"},
    {"name": "Assessment Ready", "category": "Basic", "description": "Completed all internal assessments for the semester.", "icon": "CheckSquare"},
    {"name": "Progress Tracker", "category": "Basic", "description": "Regularly monitored progress.", "icon": "BarChart2"},
    {"name": "Goal Starter", "category": "Basic", "description": "Set at least one academic goal.", "icon": "Target"},
    {"name": "Planner Initiate", "category": "Basic", "description": "Used exam preparation suggestions.", "icon": "BookOpen"},
    # Intermediate
    {"name": "Consistent Performer", "category": "Intermediate", "description": "Maintained steady performance.", "icon": "Activity"},
    {"name": "Rising Scholar", "category": "Intermediate", "description": "Showed measurable improvement.", "icon": "TrendingUp"},
    {"name": "Balanced Learner", "category": "Intermediate", "description": "Performed reasonably well across all subjects.", "icon": "Scale"},
    {"name": "Target Achiever", "category": "Intermediate", "description": "Achieved a set academic target.", "icon": "Award"},
    {"name": "Strategic Improver", "category": "Intermediate", "description": "Improved after following suggestions.", "icon": "Zap"},
    # Advanced
    {"name": "Academic Star", "category": "Advanced", "description": "Strong overall semester performance.", "icon": "Star"},
    {"name": "Subject Excellence", "category": "Advanced", "description": "Exceptional performance in a specific subject.", "icon": "Medal"},
    {"name": "Comeback Champion", "category": "Advanced", "description": "Significantly improved after a weak start.", "icon": "CornerRightUp"},
    {"name": "Strategic Learner", "category": "Advanced", "description": "Consistently followed planner insights.", "icon": "Brain"},
    {"name": "Semester Achiever", "category": "Advanced", "description": "Completed semester with strong performance and planning.", "icon": "Trophy"},
]


@dataclass
class LearnerHistory:
    """Everything the badge predicates are allowed to look at"""
    records: List[InternalAssessment]
    goals: List[ExamGoal]

    @property
    def ratios(self) -> List[float]:
        return [r.ratio for r in self.records]


def _rising_scholar(history: LearnerHistory) -> bool:
    by_subject: Dict[str, List[InternalAssessment]] = defaultdict(list)
    for record in history.records:
        by_subject[record.subject_name.strip().lower()].append(record)

    for records in by_subject.values():
        if len(records) < 2:
            continue
        ordered = sorted(records, key=lambda r: r.created_at)
        if ordered[-1].ratio > ordered[0].ratio + 0.10:
            return True
    return False


def _academic_star(history: LearnerHistory) -> bool:
    ratios = history.ratios
    return len(ratios) >= 4 and sum(ratios) / len(ratios) >= 0.85


Predicate = Callable[[LearnerHistory], bool]

PREDICATES: Dict[str, Predicate] = {
    "Academic Explorer": lambda h: True,
    "Assessment Ready": lambda h: len(h.records) >= 3,
    "Progress Tracker": lambda h: len(h.records) > 1,
    "Goal Starter": lambda h: len(h.goals) > 0,
    "Planner Initiate": lambda h: len(h.goals) > 0 and len(h.records) > 0,
    "Consistent Performer": lambda h: len(h.records) >= 3 and all(r > 0.6 for r in h.ratios),
    "Rising Scholar": _rising_scholar,
    "Balanced Learner": lambda h: (
        len({r.subject_name.strip().lower() for r in h.records}) >= 3 and all(r >= 0.4 for r in h.ratios)
    ),
    "Target Achiever": lambda h: len(h.goals) > 0 and any(r >= 0.75 for r in h.ratios),
    "Strategic Improver": lambda h: len(h.records) > 5,
    "Academic Star": _academic_star,
    "Subject Excellence": lambda h: any(r >= 0.95 for r in h.ratios),
    "Comeback Champion": lambda h: any(r < 0.4 for r in h.ratios) and any(r > 0.8 for r in h.ratios),
    "Strategic Learner": lambda h: len(h.goals) >= 3 and len(h.records) >= 5,
    "Semester Achiever": lambda h: len(h.records) >= 6 and len(h.goals) >= 2,
}

_missing = {d["name"] for d in BADGE_DEFINITIONS} - set(PREDICATES)
if _missing:
    raise RuntimeError(f"No predicate registered for badges: {sorted(_missing)}")


class BadgeService:
    """Stateless evaluation pass over a fixed catalog"""

    def __init__(self, definitions: Sequence[dict] = BADGE_DEFINITIONS, predicates: Dict[str, Predicate] = PREDICATES):
        self.definitions = definitions
        self.predicates = predicates

    def seed_catalog(self, db: Session) -> None:
        """Insert any missing catalog entries, keyed by unique name"""
        for definition in self.definitions:
            db.execute(insert_ignore(db, Badge).values(**definition))
        db.commit()

    def load_history(self, db: Session, learner_id: UUID) -> LearnerHistory:
        records = (
            db.query(InternalAssessment)
            .filter(InternalAssessment.learner_id == learner_id)
            .order_by(InternalAssessment.created_at.asc())
            .all()
        )
        goals = db.query(ExamGoal).filter(ExamGoal.learner_id == learner_id).all()
        return LearnerHistory(records=records, goals=goals)

    def evaluate(self, db: Session, learner_id: UUID) -> List[dict]:
        """
        Award every newly satisfied badge and return the full catalog

        Returns:
            One dict per catalog badge with ``earned`` and ``earned_at``
        """
        self.seed_catalog(db)

        history = self.load_history(db, learner_id)
        badges = db.query(Badge).order_by(Badge.name.asc()).all()
        earned_ids = {
            badge_id
            for (badge_id,) in db.query(BadgeAward.badge_id).filter(BadgeAward.learner_id == learner_id).all()
        }

        new_awards = []
        for badge in badges:
            if badge.id in earned_ids:
                continue
            predicate = self.predicates.get(badge.name)
            if predicate is None:
                logger.warning(f"Badge '{badge.name}' has no predicate; skipping")
                continue
            if predicate(history):
                new_awards.append({"learner_id": learner_id, "badge_id": badge.id})

        if new_awards:
            # Concurrent passes may race on the same award; the unique key absorbs it
            inserted = sum(
                db.execute(insert_ignore(db, BadgeAward).values(**award)).rowcount
                for award in new_awards
            )
            db.commit()
            logger.info(f"Awarded {inserted} of {len(new_awards)} badge(s) to {learner_id}")

        awards = {
            award.badge_id: award.earned_at
            for award in db.query(BadgeAward).filter(BadgeAward.learner_id == learner_id).all()
        }

        return [
            {
                "id": badge.id,
                "name": badge.name,
                "category": badge.category,
                "description": badge.description,
                "icon": badge.icon,
                "earned": badge.id in awards,
                "earned_at": awards.get(badge.id),
            }
            for badge in badges
        ]


# Global instance
badge_service = BadgeService()
