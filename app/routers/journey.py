from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db import get_db
from app.models import User
from app.schemas import JourneyProgressResponse, JourneyResponse, MilestoneCheckResult
from app.deps import check_trial_status
from app.exceptions import ValidationError
from app.services import journey_service

router = APIRouter(prefix="/api/journey", tags=["journey"])


@router.get("", response_model=JourneyResponse)
def get_journey(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return journey_service.get_user_journey_data(db, current_user.id)


@router.post("/milestone/{milestone_type}", response_model=MilestoneCheckResult)
def complete_milestone(
    milestone_type: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    if not journey_service.is_known_milestone(milestone_type):
        raise ValidationError(f"Unknown milestone type: {milestone_type}", details={"milestoneType": milestone_type})

    completed = journey_service.check_and_complete_milestone(db, current_user.id, milestone_type)
    progress = journey_service.get_user_journey_data(db, current_user.id)["progress"]
    return MilestoneCheckResult(
        completed=completed,
        milestone_type=milestone_type,
        newly_completed=[milestone_type] if completed else [],
        progress=JourneyProgressResponse.model_validate(progress),
    )


@router.post("/check-milestones", response_model=MilestoneCheckResult)
def check_milestones(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    newly_completed = journey_service.check_all_milestones(db, current_user.id)
    progress = journey_service.get_user_journey_data(db, current_user.id)["progress"]
    return MilestoneCheckResult(
        completed=bool(newly_completed),
        newly_completed=newly_completed,
        progress=JourneyProgressResponse.model_validate(progress),
    )
