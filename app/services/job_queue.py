"""
Postgres-backed work queue.

Rows in `jobs` are claimed by the worker loop (app/jobs/worker.py) under a
time-limited lease, so a delivery scheduled for later survives restarts and a
worker that dies mid-job only delays its job until the lease runs out.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.models import Job

logger = logging.getLogger(__name__)

JOB_TYPE_WEBHOOK_DELIVER = "webhook.deliver"

STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_RETRY = "retry"
STATUS_SUCCESS = "success"
STATUS_DEAD = "dead"
CLAIMABLE = (STATUS_QUEUED, STATUS_RETRY)

LEASE_SECONDS = 120
BACKOFF_BASE_SECONDS = 10
BACKOFF_MAX_SECONDS = 15 * 60
MAX_LAST_ERROR_LEN = 2000


@contextmanager
def _session(db: Optional[Session]) -> Iterator[Session]:
    if db is not None:
        yield db
        return
    owned = SessionLocal()
    try:
        yield owned
    finally:
        owned.close()


def _unlock(job: Job, now: datetime) -> None:
    job.locked_by = None
    job.locked_at = None
    job.lock_expires_at = None
    job.updated_at = now


def backoff_seconds(attempts: int) -> int:
    return min(BACKOFF_BASE_SECONDS * 2 ** attempts, BACKOFF_MAX_SECONDS)


def enqueue_job(
    type: str,
    payload: Dict[str, Any],
    idempotency_key: Optional[str] = None,
    run_at: Optional[datetime] = None,
    max_attempts: int = 5,
    db: Optional[Session] = None,
) -> UUID:
    """
    Insert a job and return its id.

    With an idempotency_key, a second enqueue for the same key is a no-op that
    returns the first job's id.
    """
    with _session(db) as session:
        if idempotency_key:
            existing_id = (
                session.query(Job.id).filter(Job.idempotency_key == idempotency_key).scalar()
            )
            if existing_id is not None:
                logger.debug("Duplicate enqueue for %s ignored", idempotency_key)
                return existing_id

        job = Job(
            type=type,
            payload_json=payload or {},
            status=STATUS_QUEUED,
            attempts=0,
            max_attempts=max_attempts,
            run_at=run_at or datetime.utcnow(),
            idempotency_key=idempotency_key,
        )
        session.add(job)
        session.commit()
        logger.debug("Enqueued %s", type, extra={"job_id": str(job.id), "job_type": type})
        return job.id


def claim_next_job(worker_id: str, lease_seconds: int = LEASE_SECONDS, db: Optional[Session] = None) -> Optional[Job]:
    """Lease the earliest due job to `worker_id`, skipping rows other workers hold."""
    with _session(db) as session:
        now = datetime.utcnow()
        job = (
            session.query(Job)
            .filter(Job.status.in_(CLAIMABLE), Job.run_at <= now)
            .filter((Job.lock_expires_at.is_(None)) | (Job.lock_expires_at < now))
            .order_by(Job.run_at.asc())
            .with_for_update(skip_locked=True)
            .first()
        )
        if job is None:
            return None

        job.status = STATUS_RUNNING
        job.locked_by = worker_id
        job.locked_at = now
        job.lock_expires_at = now + timedelta(seconds=lease_seconds)
        job.updated_at = now
        session.commit()
        session.refresh(job)
        return job


def release_expired_leases(db: Session) -> int:
    now = datetime.utcnow()
    stale = (
        db.query(Job)
        .filter(Job.status == STATUS_RUNNING, Job.lock_expires_at < now)
        .all()
    )
    for job in stale:
        logger.warning("Lease held by %s expired", job.locked_by, extra={"job_id": str(job.id)})
        job.status = STATUS_RETRY
        _unlock(job, now)
    if stale:
        db.commit()
    return len(stale)


def _finish(job_id: UUID, db: Optional[Session], settle) -> Optional[Job]:
    with _session(db) as session:
        job = session.get(Job, job_id)
        if job is None:
            return None
        now = datetime.utcnow()
        job.attempts += 1
        _unlock(job, now)
        settle(job, now)
        session.commit()
        session.refresh(job)
        return job


def mark_job_success(job_id: UUID, db: Optional[Session] = None) -> Optional[Job]:
    def settle(job: Job, now: datetime) -> None:
        job.status = STATUS_SUCCESS

    return _finish(job_id, db, settle)


def mark_job_failed(
    job_id: UUID,
    error_message: str,
    retryable: bool = True,
    db: Optional[Session] = None,
) -> Optional[Job]:
    """Record a failed attempt; the job is rescheduled with backoff or, when out of attempts, dead."""
    def settle(job: Job, now: datetime) -> None:
        job.last_error = (error_message or "")[:MAX_LAST_ERROR_LEN]
        if retryable and job.attempts < job.max_attempts:
            job.status = STATUS_RETRY
            job.run_at = now + timedelta(seconds=backoff_seconds(job.attempts))
        else:
            job.status = STATUS_DEAD

    return _finish(job_id, db, settle)
