from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from app.db import get_db
from app.models import User
from app.schemas import ClientResponse, FollowUpResponse, InteractionResponse
from app.deps import check_trial_status
from app.services import storage
from app.api.v1.common import dump

router = APIRouter(prefix="/search", tags=["v1-search"])

MAX_SEARCH_LIMIT = 50
SEARCH_TYPES = ("clients", "followups", "interactions")


def _search_query(db: Session, user: User, kind: str, term: str):
    if kind == "clients":
        return storage.query_clients(db, user.id, search=term, sort_by="name", sort_order="asc")
    if kind == "followups":
        return storage.search_follow_ups_query(db, user.id, term)
    return storage.search_interactions_query(db, user.id, term)


def _hit(kind: str, record: Dict[str, Any]) -> Dict[str, Any]:
    if kind == "clients":
        title = record["name"]
    elif kind == "followups":
        title = record["title"]
    else:
        title = f"{record['type'].title()} interaction"
    return {"type": kind, "id": record["id"], "title": title, "data": record}


SCHEMAS = {
    "clients": ClientResponse,
    "followups": FollowUpResponse,
    "interactions": InteractionResponse,
}


@router.get("")
def search(
    q: Optional[str] = Query(None),
    search_type: str = Query("all", alias="type", pattern="^(clients|followups|interactions|all)$"),
    limit: int = Query(20, ge=1, le=MAX_SEARCH_LIMIT),
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    """Case-insensitive search across the caller's own records."""
    term = (q or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query is required")

    kinds = SEARCH_TYPES if search_type == "all" else (search_type,)
    offset = (page - 1) * limit
    results: List[Dict[str, Any]] = []
    for kind in kinds:
        rows = _search_query(db, current_user, kind, term).offset(offset).limit(limit).all()
        results.extend(_hit(kind, record) for record in dump(SCHEMAS[kind], rows))
    results = results[:limit]

    return {
        "data": results,
        "query": term,
        "type": search_type,
        "pagination": {"page": page, "limit": limit, "hasMore": len(results) == limit},
    }
