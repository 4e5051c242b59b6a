from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Any, Callable, Dict
from app.db import get_db
from app.models import User
from app.deps import check_trial_status
from app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["v1-analytics"])

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90, "year": 365}
PERIOD_PATTERN = "^(week|month|quarter|year)$"


def _report(builder: Callable[..., Dict[str, Any]], db: Session, user: User, period: str) -> Dict[str, Any]:
    return {
        "data": builder(db, user.id, days=PERIOD_DAYS[period]),
        "period": period,
        "generatedAt": datetime.utcnow().isoformat() + "Z",
    }


@router.get("/dashboard")
def dashboard_analytics(
    period: str = Query("month", pattern=PERIOD_PATTERN),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return _report(AnalyticsService.get_dashboard_analytics, db, current_user, period)


@router.get("/clients")
def client_analytics(
    period: str = Query("month", pattern=PERIOD_PATTERN),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return _report(AnalyticsService.get_client_analytics, db, current_user, period)


@router.get("/performance")
def performance_analytics(
    period: str = Query("month", pattern=PERIOD_PATTERN),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return _report(AnalyticsService.get_performance_analytics, db, current_user, period)
