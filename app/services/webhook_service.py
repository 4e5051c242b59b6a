"""
Outbound webhook delivery.

Domain events are fanned out to the originating user's active subscriptions as
persisted `webhook.deliver` jobs. The worker performs the HTTP POST; retryable
failures are re-enqueued with fixed backoff tiers, so pending retries survive
restarts.
"""
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from app.config import settings
from app.models import DeliveryStatus, Webhook, WebhookDelivery
from app.services.job_queue import JOB_TYPE_WEBHOOK_DELIVER, enqueue_job

logger = logging.getLogger(__name__)

USER_AGENT = "Tracker-Suite-Webhooks/1.0"
SIGNATURE_HEADER = "X-Tracker-Suite-Signature"
MAX_ATTEMPTS = 3
RETRY_DELAYS_SECONDS = [30, 300, 1800]  # 30s, 5m, 30m
RESPONSE_MAX_LEN = 1000

TEST_EVENT = "webhook.test"

WEBHOOK_EVENTS: Dict[str, str] = {
    "client.created": "Triggered when a new client is created",
    "client.updated": "Triggered when a client is updated",
    "client.deleted": "Triggered when a client is deleted",
    "followup.created": "Triggered when a new follow-up is created",
    "followup.updated": "Triggered when a follow-up is updated",
    "followup.completed": "Triggered when a follow-up is marked as completed",
    "interaction.created": "Triggered when a new interaction is logged",
    "user.trial_expiring": "Triggered when the account trial is about to expire",
    "user.trial_expired": "Triggered when the account trial has expired",
}


@dataclass
class DeliveryResult:
    success: bool
    status_code: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    next_retry: Optional[datetime] = None


def serialize_payload(payload: Dict[str, Any]) -> str:
    """Compact JSON; the exact string that is both signed and sent."""
    return json.dumps(payload, separators=(",", ":"), default=str)


def generate_signature(body: Union[str, bytes], secret: str) -> str:
    if isinstance(body, str):
        body = body.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def validate_signature(body: Union[str, bytes], signature: str, secret: str) -> bool:
    """Recompute the signature and compare in constant time."""
    if not signature or not secret:
        return False
    expected = generate_signature(body, secret)
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))


def should_retry(status_code: Optional[int]) -> bool:
    """Network errors, 5xx and 429 are retryable; any other 4xx is not."""
    if status_code is None:
        return True
    if 400 <= status_code < 500:
        return status_code == 429
    return status_code >= 500


def retry_delay_seconds(attempt: int) -> int:
    """Delay before the attempt that follows `attempt` (1-indexed)."""
    index = min(max(attempt, 1) - 1, len(RETRY_DELAYS_SECONDS) - 1)
    return RETRY_DELAYS_SECONDS[index]


def build_payload(event: str, data: Any, webhook_id, timestamp: Optional[str] = None) -> Dict[str, Any]:
    payload = {
        "event": event,
        "data": data,
        "timestamp": timestamp or datetime.utcnow().isoformat() + "Z",
        "webhook_id": str(webhook_id),
    }
    # Normalise UUIDs/datetimes so the stored payload equals what goes on the wire
    return json.loads(serialize_payload(payload))


def subscribes_to(webhook: Webhook, event: str) -> bool:
    return event in (webhook.events or [])


class WebhookService:
    """Signs, sends and records webhook deliveries."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None, timeout: Optional[float] = None):
        self.transport = transport
        self.timeout = timeout or settings.WEBHOOK_TIMEOUT_SECONDS

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def build_headers(self, webhook: Webhook, body: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        headers.update(webhook.headers or {})
        if webhook.secret:
            headers[SIGNATURE_HEADER] = generate_signature(body, webhook.secret)
        return headers

    def trigger(self, db: Session, event: str, data: Any, user_id) -> int:
        """
        Enqueue a delivery for every active webhook of `user_id` subscribed to `event`.

        Never raises: webhook fan-out must not fail the request that caused it.
        Returns the number of deliveries enqueued.
        """
        try:
            webhooks = (
                db.query(Webhook)
                .filter(Webhook.user_id == user_id, Webhook.active.is_(True))
                .all()
            )
            count = 0
            timestamp = datetime.utcnow().isoformat() + "Z"
            for webhook in webhooks:
                if not subscribes_to(webhook, event):
                    continue
                payload = build_payload(event, data, webhook.id, timestamp=timestamp)
                enqueue_job(
                    JOB_TYPE_WEBHOOK_DELIVER,
                    {"webhook_id": str(webhook.id), "payload": payload, "attempt": 1},
                    max_attempts=MAX_ATTEMPTS,
                    db=db,
                )
                count += 1
            if count:
                logger.info(
                    f"Enqueued {count} webhook deliveries",
                    extra={"event": event, "user_id": str(user_id)},
                )
            return count
        except Exception as e:
            logger.error(f"Error triggering webhooks for event {event}: {e}", exc_info=True)
            db.rollback()
            return 0

    def deliver(
        self,
        db: Session,
        webhook: Webhook,
        payload: Dict[str, Any],
        attempt: int = 1,
        schedule_retry: bool = True,
    ) -> DeliveryResult:
        """POST one payload to one webhook and record the attempt."""
        if not webhook.active:
            return DeliveryResult(success=False, error="Webhook is inactive")

        event = payload.get("event", "")
        body = serialize_payload(payload)
        headers = self.build_headers(webhook, body)

        status_code: Optional[int] = None
        response_text: Optional[str] = None
        error: Optional[str] = None
        retryable = True
        try:
            with self._client() as client:
                response = client.post(webhook.url, content=body.encode("utf-8"), headers=headers)
            status_code = response.status_code
            response_text = response.text[:RESPONSE_MAX_LEN]
            if not 200 <= status_code < 300:
                error = f"Request failed with status code {status_code}"
        except httpx.HTTPError as exc:
            error = str(exc) or exc.__class__.__name__
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            # Request could not be built (bad URL or header): recorded, never retried
            error = f"Invalid request: {exc}"
            retryable = False

        log_extra = {"webhook_id": str(webhook.id), "event": event, "attempt": attempt, "status": status_code}

        if error is None:
            db.add(WebhookDelivery(
                webhook_id=webhook.id,
                event=event,
                payload=payload,
                status=DeliveryStatus.SUCCESS,
                status_code=status_code,
                response=response_text,
                attempts=attempt,
            ))
            db.commit()
            logger.info("Webhook delivered", extra=log_extra)
            return DeliveryResult(success=True, status_code=status_code, response=response_text)

        next_retry = None
        if schedule_retry and retryable and should_retry(status_code) and attempt < MAX_ATTEMPTS:
            next_retry = datetime.utcnow() + timedelta(seconds=retry_delay_seconds(attempt))

        db.add(WebhookDelivery(
            webhook_id=webhook.id,
            event=event,
            payload=payload,
            status=DeliveryStatus.FAILED,
            status_code=status_code,
            response=response_text,
            error=error,
            attempts=attempt,
            next_retry=next_retry,
        ))
        db.commit()

        if next_retry is not None:
            enqueue_job(
                JOB_TYPE_WEBHOOK_DELIVER,
                {"webhook_id": str(webhook.id), "payload": payload, "attempt": attempt + 1},
                run_at=next_retry,
                max_attempts=MAX_ATTEMPTS,
                db=db,
            )
            logger.warning(f"Webhook delivery failed, retry scheduled at {next_retry.isoformat()}", extra=log_extra)
        elif attempt >= MAX_ATTEMPTS:
            logger.warning("Webhook delivery failed, max retries reached", extra=log_extra)
        else:
            logger.warning(f"Webhook delivery failed: {error}", extra=log_extra)

        return DeliveryResult(
            success=False,
            status_code=status_code,
            response=response_text,
            error=error,
            next_retry=next_retry,
        )

    def process_delivery_job(self, db: Session, job_payload: Dict[str, Any]) -> Optional[DeliveryResult]:
        """Worker entry point for `webhook.deliver` jobs."""
        webhook_id = job_payload.get("webhook_id")
        payload = job_payload.get("payload") or {}
        attempt = int(job_payload.get("attempt") or 1)

        webhook = db.query(Webhook).filter(Webhook.id == _as_uuid(webhook_id)).first()
        if webhook is None or not webhook.active:
            logger.info("Skipping delivery for missing or inactive webhook", extra={"webhook_id": webhook_id})
            return None
        return self.deliver(db, webhook, payload, attempt=attempt)

    def test_webhook(self, db: Session, webhook: Webhook) -> Dict[str, Any]:
        """Send a `webhook.test` event right away and report the outcome with latency."""
        start = time.perf_counter()
        payload = build_payload(
            TEST_EVENT,
            {"message": "This is a test webhook payload", "timestamp": datetime.utcnow().isoformat() + "Z"},
            webhook.id,
        )
        result = self.deliver(db, webhook, payload, attempt=1, schedule_retry=False)
        latency_ms = int((time.perf_counter() - start) * 1000)
        return {
            "success": result.success,
            "status": result.status_code,
            "response": result.response,
            "error": result.error,
            "latency": latency_ms,
        }


def _as_uuid(value):
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except (TypeError, ValueError):
        return None


webhook_service = WebhookService()


def get_webhook_service() -> WebhookService:
    return webhook_service
