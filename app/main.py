import os
import time
import logging

from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.exceptions import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    general_exception_handler,
)
from app.middleware.request_id import RequestIDMiddleware, REQUEST_ID_HEADER
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.rate_limit import limiter, rate_limit_exceeded_handler
from app.routers import admin, auth, clients, dashboard, follow_ups, interactions, journey
from app.api.v1.router import api_v1_router
from app.utils.cache import cache
from app.utils.logging import configure_logging

configure_logging(settings.LOG_LEVEL, json_lines=settings.LOG_JSON)
logger = logging.getLogger(__name__)

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
STARTED_AT = time.time()
VERSION = "1.0.0"


def init_sentry() -> None:
    if not settings.SENTRY_DSN:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=f"tracker-suite@{VERSION}",
    )
    logger.info("Sentry error tracking initialized")


def run_migrations() -> None:
    """`alembic upgrade head` against DATABASE_URL. A failure is logged, not fatal."""
    cfg = Config(os.path.join(ROOT_DIR, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(ROOT_DIR, "alembic"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url_fixed)
    cfg.attributes["skip_logging_config"] = True
    try:
        command.upgrade(cfg, "head")
    except Exception as e:
        logger.error(f"Database migrations failed: {e}", exc_info=True)
        return
    logger.info("Database schema is at head")


init_sentry()

app = FastAPI(
    title=settings.APP_NAME,
    description="Client relationship tracking with trials, milestones and outbound webhooks",
    version=VERSION,
)
app.state.limiter = limiter

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Starlette runs the last-added middleware first
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER, "X-Trial-Status", "X-Trial-Days-Remaining", "X-Trial-Expires"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

for router in (
    auth.router,
    clients.router,
    clients.templates_router,
    follow_ups.router,
    interactions.router,
    dashboard.router,
    journey.router,
    admin.router,
    api_v1_router,
):
    app.include_router(router)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()


@app.get("/")
def read_root():
    return {"message": f"{settings.APP_NAME} API", "version": VERSION, "status": "running"}


def _database_ok(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check with dependency verification"""
    health_status = {
        "status": "ok",
        "uptime": round(time.time() - STARTED_AT, 1),
        "environment": settings.ENVIRONMENT,
        "checks": {},
    }

    if _database_ok(db):
        health_status["checks"]["database"] = "ok"
    else:
        health_status["checks"]["database"] = "error"
        health_status["status"] = "degraded"

    # Redis is optional; without it caching and locks degrade to pass-through
    try:
        health_status["checks"]["redis"] = "ok" if cache.ping() else "not_configured"
    except Exception as e:
        health_status["checks"]["redis"] = "error"
        health_status["status"] = "degraded"
        logger.error(f"Redis health check failed: {e}")

    return health_status


@app.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    if not _database_ok(db):
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": {"database": "error"}})
    return {"status": "ready", "checks": {"database": "ok"}}
