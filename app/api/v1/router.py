"""
API v1 router - versioned API endpoints.
"""
from fastapi import APIRouter
from app.api.v1 import analytics, clients, followups, interactions, search, webhooks

API_NAME = "Tracker Suite API"
API_VERSION = "1.0.0"

# Create v1 API router
api_v1_router = APIRouter(prefix="/api/v1")


@api_v1_router.get("/", tags=["v1"])
def api_index():
    """Self-describing index of the versioned surface."""
    return {
        "name": API_NAME,
        "version": API_VERSION,
        "description": "RESTful API for Tracker Suite client relationship management",
        "endpoints": {
            "clients": "/api/v1/clients",
            "followups": "/api/v1/followups",
            "interactions": "/api/v1/interactions",
            "analytics": "/api/v1/analytics",
            "webhooks": "/api/v1/webhooks",
            "search": "/api/v1/search",
        },
        "authentication": "Session cookie or Bearer token required",
        "rateLimit": "100 requests per minute per IP",
    }


# Include all routers
api_v1_router.include_router(clients.router)
api_v1_router.include_router(followups.router)
api_v1_router.include_router(interactions.router)
api_v1_router.include_router(analytics.router)
api_v1_router.include_router(webhooks.router)
api_v1_router.include_router(search.router)
