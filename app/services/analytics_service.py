"""
Analytics service for dashboard counters and reporting breakdowns.
"""
import logging
from typing import Dict, List, Any
from sqlalchemy.orm import Session
from sqlalchemy import func
from app.models import Client, FollowUp, FollowUpStatus, Interaction
from app.schemas import ClientResponse, FollowUpResponse, InteractionResponse
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


def _enum_key(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def _dump(schema, rows) -> List[Dict[str, Any]]:
    return [schema.model_validate(r).model_dump(mode="json", by_alias=True) for r in rows]


class AnalyticsService:
    """Per-user metrics. Every query is scoped to the owning user."""

    @staticmethod
    def get_dashboard_stats(db: Session, user_id, now: datetime = None) -> Dict[str, int]:
        """
        Headline counters for the dashboard.

        Args:
            db: Database session
            user_id: Owning user
            now: Reference time (defaults to utcnow)

        Returns:
            totalClients, pendingFollowups, completedThisWeek, newThisMonth, overdueFollowups
        """
        now = now or datetime.utcnow()
        week_start = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        follow_ups = db.query(FollowUp).filter(FollowUp.user_id == user_id)
        return {
            "totalClients": db.query(Client).filter(Client.user_id == user_id).count(),
            "pendingFollowups": follow_ups.filter(FollowUp.status == FollowUpStatus.PENDING).count(),
            "completedThisWeek": follow_ups.filter(
                FollowUp.status == FollowUpStatus.COMPLETED,
                FollowUp.completed_at >= week_start,
            ).count(),
            "newThisMonth": db.query(Client).filter(
                Client.user_id == user_id,
                Client.created_at >= month_start,
            ).count(),
            "overdueFollowups": follow_ups.filter(
                FollowUp.status == FollowUpStatus.PENDING,
                FollowUp.due_date < now,
            ).count(),
        }

    @staticmethod
    def get_breakdown(db: Session, user_id, column) -> Dict[str, int]:
        results = db.query(column, func.count(Client.id)).filter(
            Client.user_id == user_id
        ).group_by(column).all()
        return {_enum_key(key): count for key, count in results}

    @staticmethod
    def get_overview(db: Session, user_id) -> Dict[str, Any]:
        """Totals, status and priority breakdowns, and the latest activity."""
        clients = db.query(Client).filter(Client.user_id == user_id)
        follow_ups = db.query(FollowUp).filter(FollowUp.user_id == user_id)
        interactions = db.query(Interaction).filter(Interaction.user_id == user_id)

        return {
            "totals": {
                "clients": clients.count(),
                "followUps": follow_ups.count(),
                "interactions": interactions.count(),
                "completedFollowUps": follow_ups.filter(FollowUp.status == FollowUpStatus.COMPLETED).count(),
            },
            "clientsByStatus": AnalyticsService.get_breakdown(db, user_id, Client.status),
            "clientsByPriority": AnalyticsService.get_breakdown(db, user_id, Client.priority),
            "recentActivity": {
                "clients": _dump(
                    ClientResponse,
                    clients.order_by(Client.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all(),
                ),
                "followUps": _dump(
                    FollowUpResponse,
                    follow_ups.order_by(FollowUp.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all(),
                ),
                "interactions": _dump(
                    InteractionResponse,
                    interactions.order_by(Interaction.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all(),
                ),
            },
        }

    @staticmethod
    def get_dashboard_analytics(db: Session, user_id, days: int = 30) -> Dict[str, Any]:
        cutoff = datetime.utcnow() - timedelta(days=days)
        follow_ups = db.query(FollowUp).filter(FollowUp.user_id == user_id)
        total_follow_ups = follow_ups.count()
        completed = follow_ups.filter(FollowUp.status == FollowUpStatus.COMPLETED).count()

        return {
            "periodDays": days,
            "totalClients": db.query(Client).filter(Client.user_id == user_id).count(),
            "totalFollowUps": total_follow_ups,
            "totalInteractions": db.query(Interaction).filter(Interaction.user_id == user_id).count(),
            "completedFollowUps": completed,
            "overdueFollowUps": follow_ups.filter(
                FollowUp.status == FollowUpStatus.PENDING,
                FollowUp.due_date < datetime.utcnow(),
            ).count(),
            "newClients": db.query(Client).filter(
                Client.user_id == user_id, Client.created_at >= cutoff
            ).count(),
            "completionRate": round(completed / total_follow_ups * 100, 1) if total_follow_ups else 0.0,
        }

    @staticmethod
    def get_client_analytics(db: Session, user_id, days: int = 30) -> Dict[str, Any]:
        cutoff = datetime.utcnow() - timedelta(days=days)
        day = func.date(Client.created_at)
        growth = db.query(day, func.count(Client.id)).filter(
            Client.user_id == user_id,
            Client.created_at >= cutoff,
        ).group_by(day).order_by(day).all()

        sources = db.query(Client.source, func.count(Client.id)).filter(
            Client.user_id == user_id,
            Client.source.isnot(None),
        ).group_by(Client.source).order_by(func.count(Client.id).desc()).limit(5).all()

        return {
            "periodDays": days,
            "clientGrowth": [{"date": str(d), "count": c} for d, c in growth],
            "statusDistribution": AnalyticsService.get_breakdown(db, user_id, Client.status),
            "topSources": [{"source": s, "count": c} for s, c in sources],
        }

    @staticmethod
    def get_performance_analytics(db: Session, user_id, days: int = 30) -> Dict[str, Any]:
        cutoff = datetime.utcnow() - timedelta(days=days)
        period_follow_ups = db.query(FollowUp).filter(
            FollowUp.user_id == user_id,
            FollowUp.created_at >= cutoff,
        )
        total = period_follow_ups.count()
        completed = period_follow_ups.filter(FollowUp.status == FollowUpStatus.COMPLETED).count()

        by_type = db.query(Interaction.type, func.count(Interaction.id)).filter(
            Interaction.user_id == user_id,
            Interaction.date >= cutoff,
        ).group_by(Interaction.type).all()

        engagement = db.query(
            Client.id,
            Client.name,
            func.count(Interaction.id).label("interaction_count"),
        ).join(
            Interaction, Interaction.client_id == Client.id
        ).filter(
            Client.user_id == user_id,
            Interaction.date >= cutoff,
        ).group_by(Client.id, Client.name).order_by(func.count(Interaction.id).desc()).limit(10).all()

        return {
            "periodDays": days,
            "followUpCompletion": {
                "total": total,
                "completed": completed,
                "rate": round(completed / total * 100, 1) if total else 0.0,
            },
            "interactionsByType": {_enum_key(t): c for t, c in by_type},
            "clientEngagement": [
                {"clientId": str(cid), "name": name, "interactions": count}
                for cid, name, count in engagement
            ],
        }
