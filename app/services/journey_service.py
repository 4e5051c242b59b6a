"""
Gamified user journey: milestone catalog, completion predicates and the
points / level / stage rollup kept in user_journey_progress.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import (
    Client,
    FollowUp,
    Interaction,
    JourneyStage,
    MilestoneCategory,
    UserJourneyMilestone,
    UserJourneyProgress,
)

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 50


@dataclass(frozen=True)
class MilestoneDefinition:
    title: str
    description: str
    category: MilestoneCategory
    points: int
    auto_complete: bool = True


MILESTONE_DEFINITIONS: Dict[str, MilestoneDefinition] = {
    "account_created": MilestoneDefinition(
        "Welcome Aboard!", "Successfully created your account", MilestoneCategory.GETTING_STARTED, 10),
    "profile_completed": MilestoneDefinition(
        "Profile Complete", "Filled out your complete profile information", MilestoneCategory.GETTING_STARTED, 15,
        auto_complete=False),
    "trial_started": MilestoneDefinition(
        "Trial Journey Begins", "Started your 7-day free trial", MilestoneCategory.GETTING_STARTED, 5),
    "first_client_added": MilestoneDefinition(
        "First Client Added", "Added your first client to the system", MilestoneCategory.CLIENT_MANAGEMENT, 20),
    "first_follow_up_scheduled": MilestoneDefinition(
        "Staying Organized", "Scheduled your first follow-up task", MilestoneCategory.CLIENT_MANAGEMENT, 15),
    "first_interaction_logged": MilestoneDefinition(
        "Communication Tracker", "Logged your first client interaction", MilestoneCategory.ENGAGEMENT, 15),
    "first_email_sent": MilestoneDefinition(
        "Direct Communication", "Sent your first email through the platform", MilestoneCategory.ENGAGEMENT, 20),
    "first_export": MilestoneDefinition(
        "Data Export Master", "Exported your first data report", MilestoneCategory.ADVANCED, 25),
    "five_clients_milestone": MilestoneDefinition(
        "Growing Network", "Reached 5 clients in your network", MilestoneCategory.GROWTH, 30),
    "ten_follow_ups_milestone": MilestoneDefinition(
        "Follow-up Pro", "Scheduled 10 follow-up tasks", MilestoneCategory.CLIENT_MANAGEMENT, 25),
    "twenty_clients_milestone": MilestoneDefinition(
        "Network Expansion", "Reached 20 clients in your network", MilestoneCategory.GROWTH, 50),
    "fifty_interactions_milestone": MilestoneDefinition(
        "Engagement Champion", "Logged 50 client interactions", MilestoneCategory.ENGAGEMENT, 40),
    "advanced_reporting_used": MilestoneDefinition(
        "Analytics Expert", "Used the advanced reporting features", MilestoneCategory.ADVANCED, 30),
    "account_upgraded": MilestoneDefinition(
        "Premium Member", "Upgraded to a premium account", MilestoneCategory.ADVANCED, 100),
}

INITIALLY_COMPLETED = ("account_created", "trial_started")

# Highest tier first: (stage, min points, min completed milestones)
STAGE_REQUIREMENTS = [
    (JourneyStage.EXPERT, 500, 15),
    (JourneyStage.POWER_USER, 300, 12),
    (JourneyStage.ACTIVE, 150, 8),
    (JourneyStage.EXPLORING, 50, 3),
    (JourneyStage.ONBOARDING, 0, 0),
]


@dataclass(frozen=True)
class ActivityCounts:
    clients: int = 0
    follow_ups: int = 0
    interactions: int = 0


MilestonePredicate = Callable[[ActivityCounts], bool]


def _manually_triggered(counts: ActivityCounts) -> bool:
    return True


MILESTONE_PREDICATES: Dict[str, MilestonePredicate] = {
    "first_client_added": lambda c: c.clients >= 1,
    "five_clients_milestone": lambda c: c.clients >= 5,
    "twenty_clients_milestone": lambda c: c.clients >= 20,
    "first_follow_up_scheduled": lambda c: c.follow_ups >= 1,
    "ten_follow_ups_milestone": lambda c: c.follow_ups >= 10,
    "first_interaction_logged": lambda c: c.interactions >= 1,
    "fifty_interactions_milestone": lambda c: c.interactions >= 50,
}

CLIENT_MILESTONES = ("first_client_added", "five_clients_milestone", "twenty_clients_milestone")
FOLLOW_UP_MILESTONES = ("first_follow_up_scheduled", "ten_follow_ups_milestone")
INTERACTION_MILESTONES = ("first_interaction_logged", "fifty_interactions_milestone")


def is_known_milestone(milestone_type: str) -> bool:
    return milestone_type in MILESTONE_DEFINITIONS


def is_milestone_satisfied(milestone_type: str, counts: ActivityCounts) -> bool:
    return MILESTONE_PREDICATES.get(milestone_type, _manually_triggered)(counts)


def calculate_level(total_points: int) -> int:
    return total_points // POINTS_PER_LEVEL + 1


def determine_stage(total_points: int, completed_count: int) -> JourneyStage:
    for stage, min_points, min_milestones in STAGE_REQUIREMENTS:
        if total_points >= min_points and completed_count >= min_milestones:
            return stage
    return JourneyStage.ONBOARDING


def get_activity_counts(db: Session, user_id) -> ActivityCounts:
    return ActivityCounts(
        clients=db.query(func.count(Client.id)).filter(Client.user_id == user_id).scalar() or 0,
        follow_ups=db.query(func.count(FollowUp.id)).filter(FollowUp.user_id == user_id).scalar() or 0,
        interactions=db.query(func.count(Interaction.id)).filter(Interaction.user_id == user_id).scalar() or 0,
    )


def _milestone_row(user_id, milestone_type: str, completed: bool, now: datetime) -> UserJourneyMilestone:
    definition = MILESTONE_DEFINITIONS[milestone_type]
    return UserJourneyMilestone(
        user_id=user_id,
        milestone_type=milestone_type,
        title=definition.title,
        description=definition.description,
        category=definition.category,
        points=definition.points,
        is_completed=completed,
        completed_at=now if completed else None,
    )


def initialize_user_journey(db: Session, user_id) -> UserJourneyProgress:
    """Seed every milestone row (two pre-completed) and the progress row for a new user."""
    now = datetime.utcnow()
    existing = {
        m.milestone_type
        for m in db.query(UserJourneyMilestone.milestone_type).filter(UserJourneyMilestone.user_id == user_id)
    }
    for milestone_type in MILESTONE_DEFINITIONS:
        if milestone_type not in existing:
            db.add(_milestone_row(user_id, milestone_type, milestone_type in INITIALLY_COMPLETED, now))

    if not db.query(UserJourneyProgress).filter(UserJourneyProgress.user_id == user_id).first():
        db.add(UserJourneyProgress(user_id=user_id))
    db.commit()

    progress = update_user_progress(db, user_id)
    logger.info("Initialized journey", extra={"user_id": str(user_id)})
    return progress


def update_user_progress(db: Session, user_id) -> UserJourneyProgress:
    """Recompute points, count, level and stage from the completed milestone rows."""
    completed = (
        db.query(UserJourneyMilestone)
        .filter(UserJourneyMilestone.user_id == user_id, UserJourneyMilestone.is_completed.is_(True))
        .all()
    )
    total_points = sum(m.points for m in completed)
    completed_count = len(completed)

    progress = db.query(UserJourneyProgress).filter(UserJourneyProgress.user_id == user_id).first()
    if progress is None:
        progress = UserJourneyProgress(user_id=user_id)
        db.add(progress)

    now = datetime.utcnow()
    progress.total_points = total_points
    progress.completed_milestones = completed_count
    progress.current_level = calculate_level(total_points)
    progress.journey_stage = determine_stage(total_points, completed_count)
    progress.last_activity_at = now
    progress.updated_at = now
    db.commit()
    db.refresh(progress)
    return progress


def check_and_complete_milestone(
    db: Session,
    user_id,
    milestone_type: str,
    counts: Optional[ActivityCounts] = None,
) -> bool:
    """
    Complete `milestone_type` for the user if its predicate holds.

    Returns True only on the transition from incomplete to complete; a milestone
    that is already completed is left untouched.
    """
    if not is_known_milestone(milestone_type):
        raise ValueError(f"Unknown milestone type: {milestone_type}")

    milestone = (
        db.query(UserJourneyMilestone)
        .filter(UserJourneyMilestone.user_id == user_id, UserJourneyMilestone.milestone_type == milestone_type)
        .first()
    )
    if milestone is not None and milestone.is_completed:
        return False

    if milestone_type in MILESTONE_PREDICATES:
        counts = counts or get_activity_counts(db, user_id)
        if not is_milestone_satisfied(milestone_type, counts):
            return False

    now = datetime.utcnow()
    try:
        if milestone is None:
            db.add(_milestone_row(user_id, milestone_type, True, now))
        else:
            milestone.is_completed = True
            milestone.completed_at = now
        db.commit()
    except IntegrityError:
        # Completed concurrently by another request
        db.rollback()
        return False

    update_user_progress(db, user_id)
    logger.info(f"Completed milestone {milestone_type}", extra={"user_id": str(user_id)})
    return True


def check_milestones(db: Session, user_id, milestone_types) -> List[str]:
    """Check several milestones against one count snapshot; returns the newly completed ones."""
    counts = get_activity_counts(db, user_id)
    return [t for t in milestone_types if check_and_complete_milestone(db, user_id, t, counts=counts)]


def check_all_milestones(db: Session, user_id) -> List[str]:
    """Re-evaluate the count-driven milestones; manually triggered ones are left alone."""
    auto_types = [t for t in MILESTONE_PREDICATES if MILESTONE_DEFINITIONS[t].auto_complete]
    return check_milestones(db, user_id, auto_types)


def safe_check_milestones(db: Session, user_id, *milestone_types: str) -> List[str]:
    """Milestone checks after a mutation: failures are logged and never reach the caller."""
    try:
        return check_milestones(db, user_id, milestone_types)
    except Exception as e:
        logger.error(f"Milestone check failed: {e}", exc_info=True, extra={"user_id": str(user_id)})
        db.rollback()
        return []


def get_user_journey_data(db: Session, user_id) -> dict:
    progress = db.query(UserJourneyProgress).filter(UserJourneyProgress.user_id == user_id).first()
    if progress is None:
        progress = initialize_user_journey(db, user_id)
    milestones = (
        db.query(UserJourneyMilestone)
        .filter(UserJourneyMilestone.user_id == user_id)
        .order_by(UserJourneyMilestone.created_at.asc())
        .all()
    )
    order = {t: i for i, t in enumerate(MILESTONE_DEFINITIONS)}
    milestones.sort(key=lambda m: order.get(m.milestone_type, len(order)))
    return {"progress": progress, "milestones": milestones}
