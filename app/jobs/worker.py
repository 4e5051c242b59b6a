"""
Background worker: claims durable jobs (webhook deliveries and their retries)
and runs the periodic trial sweep.

    python -m app.jobs.worker
"""
import logging
import signal
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.db import SessionLocal
from app.models import Job
from app.services.job_queue import (
    JOB_TYPE_WEBHOOK_DELIVER,
    LEASE_SECONDS,
    claim_next_job,
    mark_job_failed,
    mark_job_success,
    release_expired_leases,
)
from app.services.trial_monitor import SWEEP_LOCK_KEY, run_trial_check
from app.services.webhook_service import WebhookService, webhook_service
from app.utils.cache import CacheManager, cache
from app.utils.logging import configure_logging
from app.utils.retry import retry_database

logger = logging.getLogger(__name__)

_should_stop = False
WORKER_HEARTBEAT_KEY = "worker:heartbeat:tracker-worker"
WORKER_HEARTBEAT_INTERVAL = 10
MAX_PARALLEL_JOBS = 4

_last_sweep_run = 0.0
_sweep_guard = threading.Lock()


def _handle_shutdown(signum, frame) -> None:
    global _should_stop
    _should_stop = True
    logger.info("Worker shutdown signal received")


def run_job(job: Job, db: Session, webhooks: WebhookService = webhook_service) -> None:
    """Run an already-claimed job and settle its status."""
    job_id = job.id
    logger.info(f"Job started: {job.type}", extra={"job_id": str(job_id)})
    try:
        if job.type == JOB_TYPE_WEBHOOK_DELIVER:
            # Failed HTTP attempts are recorded and re-enqueued by the service itself;
            # the job only fails when processing raises.
            webhooks.process_delivery_job(db, job.payload_json or {})
        else:
            mark_job_failed(job_id, f"Unknown job type: {job.type}", retryable=False, db=db)
            return
        mark_job_success(job_id, db=db)
        logger.info("Job completed", extra={"job_id": str(job_id)})
    except Exception as e:
        logger.exception("Job failed: %s", e)
        db.rollback()
        mark_job_failed(job_id, str(e), db=db)


@retry_database
def _claim(worker_id: str, db: Session) -> Optional[Job]:
    release_expired_leases(db)
    return claim_next_job(worker_id, lease_seconds=LEASE_SECONDS, db=db)


def run_once(worker_id: str) -> bool:
    """Claim and run at most one job. Returns True when a job was processed."""
    db = SessionLocal()
    try:
        job = _claim(worker_id, db)
        if not job:
            return False
        run_job(job, db)
        return True
    finally:
        db.close()


def maybe_run_trial_sweep(
    worker_id: str,
    now: Optional[float] = None,
    manager: Optional[CacheManager] = None,
) -> bool:
    """
    Run the trial sweep when the interval has elapsed and this worker holds the
    sweep lock. Returns True when the sweep ran.
    """
    global _last_sweep_run
    now = now or time.time()
    interval = settings.trial_check_interval
    with _sweep_guard:
        if now - _last_sweep_run < interval:
            return False
        _last_sweep_run = now

    manager = manager or cache
    # Lock TTL just under the interval so only one worker sweeps per window
    if not manager.acquire_lock(SWEEP_LOCK_KEY, worker_id, max(1, interval - 1)):
        logger.info("Trial sweep skipped, another worker holds the lock")
        return False

    db = SessionLocal()
    try:
        result = run_trial_check(db, webhook_service)
        logger.info(
            f"Trial sweep finished: {result['warnings_sent']} warnings, {result['expired']} expired"
        )
        return True
    except Exception as e:
        logger.error(f"Trial sweep failed: {e}", exc_info=True)
        return False
    finally:
        db.close()


def _heartbeat_loop() -> None:
    """Write worker heartbeat to Redis every 10s."""
    while not _should_stop:
        try:
            if cache.client:
                cache.client.set(WORKER_HEARTBEAT_KEY, str(time.time()), ex=90)
        except Exception as e:
            logger.debug("Worker heartbeat write failed: %s", e)
        for _ in range(WORKER_HEARTBEAT_INTERVAL):
            if _should_stop:
                break
            time.sleep(1)


def main(poll_interval_seconds: Optional[float] = None) -> None:
    configure_logging(settings.LOG_LEVEL, json_lines=settings.LOG_JSON)
    poll_interval_seconds = poll_interval_seconds or settings.WORKER_POLL_INTERVAL_SECONDS
    worker_id = f"worker-{uuid.uuid4()}"
    logger.info("Worker started: %s", worker_id)

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    heartbeat_thread = threading.Thread(target=_heartbeat_loop, daemon=True)
    heartbeat_thread.start()
    logger.info(
        "Worker ready (max_parallel_jobs=%s, trial_check_interval=%ss)",
        MAX_PARALLEL_JOBS,
        settings.trial_check_interval,
    )

    executor = ThreadPoolExecutor(max_workers=MAX_PARALLEL_JOBS)
    futures = set()
    while not _should_stop:
        maybe_run_trial_sweep(worker_id)
        futures = {f for f in futures if not f.done()}
        if len(futures) < MAX_PARALLEL_JOBS:
            futures.add(executor.submit(run_once, worker_id))
        time.sleep(poll_interval_seconds)

    executor.shutdown(wait=True)
    logger.info("Worker stopped: %s", worker_id)


if __name__ == "__main__":
    main()
