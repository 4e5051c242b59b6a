from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Any, Dict
from app.db import get_db
from app.models import User
from app.schemas import ClientResponse, DashboardStats, FollowUpResponse
from app.deps import check_trial_status
from app.services import journey_service, storage
from app.services.analytics_service import AnalyticsService
from app.services.cache_service import CacheService, get_cache_service

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
):
    return cache.get_or_set(
        "dashboard",
        current_user.id,
        lambda: AnalyticsService.get_dashboard_stats(db, current_user.id),
        CacheService.DASHBOARD_TTL,
        "stats",
    )


@router.get("/analytics/overview")
def analytics_overview(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
) -> Dict[str, Any]:
    overview = cache.get_or_set(
        "stats",
        current_user.id,
        lambda: AnalyticsService.get_overview(db, current_user.id),
        CacheService.STATS_TTL,
        "overview",
    )
    journey_service.safe_check_milestones(db, current_user.id, "advanced_reporting_used")
    return overview


def _export(records, kind: str) -> Dict[str, Any]:
    return {
        "exportedAt": datetime.utcnow().isoformat() + "Z",
        "type": kind,
        "count": len(records),
        "data": records,
    }


@router.get("/export/clients")
def export_clients(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
) -> Dict[str, Any]:
    records = [
        ClientResponse.model_validate(c).model_dump(mode="json", by_alias=True)
        for c in storage.list_clients(db, current_user.id)
    ]
    journey_service.safe_check_milestones(db, current_user.id, "first_export")
    return _export(records, "clients")


@router.get("/export/follow-ups")
def export_follow_ups(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
) -> Dict[str, Any]:
    records = [
        FollowUpResponse.model_validate(f).model_dump(mode="json", by_alias=True)
        for f in storage.list_follow_ups(db, current_user.id)
    ]
    journey_service.safe_check_milestones(db, current_user.id, "first_export")
    return _export(records, "follow-ups")
