from datetime import datetime, timedelta

from app.models import Job
from app.services.job_queue import (
    JOB_TYPE_WEBHOOK_DELIVER,
    backoff_seconds,
    claim_next_job,
    enqueue_job,
    mark_job_failed,
    mark_job_success,
    release_expired_leases,
)


def _payload():
    return {"webhook_id": "abc", "payload": {"event": "client.created"}, "attempt": 1}


def test_job_queue_success_flow(db_session):
    job_id = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), db=db_session)

    job = claim_next_job("worker-1", db=db_session)
    assert job is not None
    assert job.id == job_id
    assert job.status == "running"
    assert job.locked_by == "worker-1"

    job = mark_job_success(job_id, db=db_session)
    assert job.status == "success"
    assert job.attempts == 1
    assert job.locked_by is None


def test_enqueue_is_idempotent(db_session):
    first = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), idempotency_key="delivery-1", db=db_session)
    second = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), idempotency_key="delivery-1", db=db_session)

    assert first == second
    assert db_session.query(Job).count() == 1


def test_future_job_is_not_claimed(db_session):
    enqueue_job(
        JOB_TYPE_WEBHOOK_DELIVER, _payload(), run_at=datetime.utcnow() + timedelta(seconds=30), db=db_session
    )

    assert claim_next_job("worker-1", db=db_session) is None


def test_claim_takes_earliest_due_job(db_session):
    now = datetime.utcnow()
    later = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), run_at=now - timedelta(seconds=5), db=db_session)
    earlier = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), run_at=now - timedelta(seconds=60), db=db_session)

    assert claim_next_job("worker-1", db=db_session).id == earlier
    assert claim_next_job("worker-2", db=db_session).id == later
    assert claim_next_job("worker-3", db=db_session) is None


def test_failure_backs_off_then_dies(db_session):
    job_id = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), max_attempts=2, db=db_session)
    claim_next_job("worker-1", db=db_session)

    job = mark_job_failed(job_id, "boom", db=db_session)
    assert job.status == "retry"
    assert job.last_error == "boom"
    assert job.run_at > datetime.utcnow() + timedelta(seconds=15)

    job = mark_job_failed(job_id, "boom again", db=db_session)
    assert job.status == "dead"


def test_non_retryable_failure_is_dead_immediately(db_session):
    job_id = enqueue_job("mystery", {}, db=db_session)

    job = mark_job_failed(job_id, "Unknown job type: mystery", retryable=False, db=db_session)

    assert job.status == "dead"
    assert job.attempts == 1


def test_expired_lease_is_released(db_session):
    job_id = enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), db=db_session)
    job = claim_next_job("worker-1", lease_seconds=60, db=db_session)
    job.lock_expires_at = datetime.utcnow() - timedelta(seconds=1)
    db_session.commit()

    assert release_expired_leases(db_session) == 1

    job = db_session.query(Job).filter(Job.id == job_id).one()
    assert job.status == "retry"
    assert job.locked_by is None
    assert claim_next_job("worker-2", db=db_session).id == job_id


def test_live_lease_is_kept(db_session):
    enqueue_job(JOB_TYPE_WEBHOOK_DELIVER, _payload(), db=db_session)
    claim_next_job("worker-1", db=db_session)

    assert release_expired_leases(db_session) == 0


def test_backoff_is_capped():
    assert backoff_seconds(1) == 20
    assert backoff_seconds(3) == 80
    assert backoff_seconds(10) == 900
