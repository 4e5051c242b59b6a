"""
Tests for trial rules, the request gate and the periodic trial sweep.
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi import status

from app.models import AccountStatus, AdminNotification, Job, Webhook
from app.services import trial_monitor
from app.services.email_service import EmailService
from app.services.notification_service import NotificationService
from app.services.trial_service import (
    EXPIRED_MESSAGE,
    get_days_remaining,
    is_trial_expired,
    should_send_warning,
    validate_trial_access,
)
from tests.helpers import headers_for, make_user

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _user(**fields):
    values = {"account_status": AccountStatus.TRIAL, "trial_email_sent": False, "trial_ends_at": None}
    values.update(fields)
    return SimpleNamespace(**values)


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing trial emails instead of calling the provider."""
    sent = []

    def warning(to_email, first_name, days_remaining):
        sent.append(("warning", to_email, days_remaining))
        return True

    def expired(to_email, first_name):
        sent.append(("expired", to_email))
        return True

    monkeypatch.setattr(EmailService, "send_trial_warning_email", staticmethod(warning))
    monkeypatch.setattr(EmailService, "send_trial_expired_email", staticmethod(expired))
    return sent


@pytest.mark.unit
class TestTrialRules:
    def test_days_remaining_rounds_up(self):
        assert get_days_remaining(NOW + timedelta(days=2, hours=1), NOW) == 3
        assert get_days_remaining(NOW + timedelta(hours=1), NOW) == 1
        assert get_days_remaining(NOW - timedelta(days=1), NOW) == 0
        assert get_days_remaining(None, NOW) == 0

    def test_expiry(self):
        assert is_trial_expired(NOW - timedelta(seconds=1), NOW) is True
        assert is_trial_expired(NOW + timedelta(seconds=1), NOW) is False
        assert is_trial_expired(None, NOW) is False

    def test_active_account_is_always_valid(self):
        info = validate_trial_access(_user(account_status=AccountStatus.ACTIVE), NOW)
        assert info["is_valid"] is True
        assert info["days_remaining"] is None

    def test_cancelled_account_is_rejected(self):
        info = validate_trial_access(_user(account_status=AccountStatus.CANCELLED), NOW)
        assert info["is_valid"] is False
        assert "cancelled" in info["message"]

    def test_lapsed_trial_reports_expired(self):
        info = validate_trial_access(_user(trial_ends_at=NOW - timedelta(hours=1)), NOW)
        assert info == {
            "is_valid": False,
            "message": EXPIRED_MESSAGE,
            "days_remaining": 0,
            "account_status": "expired",
        }

    def test_running_trial(self):
        info = validate_trial_access(_user(trial_ends_at=NOW + timedelta(days=5)), NOW)
        assert info["is_valid"] is True
        assert info["days_remaining"] == 5

    def test_warning_only_in_last_two_days_and_once(self):
        assert should_send_warning(_user(trial_ends_at=NOW + timedelta(days=2)), NOW) is True
        assert should_send_warning(_user(trial_ends_at=NOW + timedelta(days=4)), NOW) is False
        assert should_send_warning(
            _user(trial_ends_at=NOW + timedelta(days=1), trial_email_sent=True), NOW
        ) is False
        assert should_send_warning(
            _user(trial_ends_at=NOW + timedelta(days=1), account_status=AccountStatus.ACTIVE), NOW
        ) is False


@pytest.mark.integration
class TestTrialGate:
    def test_valid_trial_sets_headers(self, client, auth_headers):
        response = client.get("/api/clients", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["X-Trial-Status"] == "trial"
        assert response.headers["X-Trial-Days-Remaining"] == "7"
        assert response.headers["X-Trial-Valid"] == "true"
        assert "X-Trial-Expires" in response.headers

    def test_active_account_has_no_countdown(self, client, admin_headers):
        response = client.get("/api/clients", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["X-Trial-Status"] == "active"
        assert "X-Trial-Days-Remaining" not in response.headers

    def test_lapsed_trial_is_blocked_and_flipped(self, client, db_session, sent_emails):
        lapsed = make_user(db_session, "lapsed@test.com", trial_ends_at=datetime.utcnow() - timedelta(minutes=5))

        response = client.get("/api/clients", headers=headers_for(lapsed))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        body = response.json()
        assert body["error_code"] == "TRIAL_EXPIRED"
        assert body["details"] == {"trialExpired": True, "accountStatus": "expired", "daysRemaining": 0}
        db_session.refresh(lapsed)
        assert lapsed.account_status == AccountStatus.EXPIRED
        assert sent_emails == [("expired", "lapsed@test.com")]

    def test_lapse_seen_by_gate_notifies_admins_and_webhooks(self, client, db_session, webhooks, sent_emails):
        lapsed = make_user(db_session, "lapsed@test.com", trial_ends_at=datetime.utcnow() - timedelta(minutes=5))
        db_session.add(Webhook(
            user_id=lapsed.id, name="Billing", url="https://hooks.example.test/billing",
            events=["user.trial_expired"], active=True,
        ))
        db_session.commit()

        assert client.get("/api/clients", headers=headers_for(lapsed)).status_code == status.HTTP_403_FORBIDDEN

        job = db_session.query(Job).one()
        assert job.payload_json["payload"]["event"] == "user.trial_expired"
        assert db_session.query(AdminNotification).filter_by(type="trial_expired").count() == 1

        # The sweep no longer selects the user, so nothing fires twice
        assert trial_monitor.run_trial_check(db_session, webhooks) == {"warnings_sent": 0, "expired": 0}
        assert db_session.query(Job).count() == 1

    def test_expired_account_blocks_v1_api(self, client, db_session):
        expired = make_user(db_session, "gone@test.com", account_status=AccountStatus.EXPIRED)

        response = client.get("/api/v1/clients", headers=headers_for(expired))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error_code"] == "TRIAL_EXPIRED"

    def test_trial_endpoint_is_not_gated(self, client, db_session):
        expired = make_user(db_session, "gone@test.com", account_status=AccountStatus.EXPIRED)

        response = client.get("/api/auth/trial", headers=headers_for(expired))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["isValid"] is False

    def test_warning_email_sent_once_near_the_end(self, client, db_session, sent_emails):
        ending = make_user(db_session, "ending@test.com", trial_ends_at=datetime.utcnow() + timedelta(days=1, hours=12))
        headers = headers_for(ending)

        client.get("/api/clients", headers=headers)
        client.get("/api/clients", headers=headers)

        assert sent_emails == [("warning", "ending@test.com", 2)]
        db_session.refresh(ending)
        assert ending.trial_email_sent is True


@pytest.mark.integration
class TestTrialSweep:
    def test_warning_window_is_two_to_three_days(self, db_session):
        now = datetime.utcnow()
        inside = make_user(db_session, "inside@test.com", trial_ends_at=now + timedelta(days=2, hours=12))
        make_user(db_session, "early@test.com", trial_ends_at=now + timedelta(days=5))
        make_user(db_session, "late@test.com", trial_ends_at=now + timedelta(days=1))
        make_user(db_session, "warned@test.com", trial_ends_at=now + timedelta(days=2, hours=12), trial_email_sent=True)

        users = trial_monitor.get_users_needing_trial_warning(db_session, now)

        assert [u.id for u in users] == [inside.id]

    def test_expired_query_ignores_paid_accounts(self, db_session):
        now = datetime.utcnow()
        lapsed = make_user(db_session, "lapsed@test.com", trial_ends_at=now - timedelta(hours=1))
        make_user(
            db_session, "paid@test.com",
            account_status=AccountStatus.ACTIVE, trial_ends_at=now - timedelta(days=30),
        )

        assert [u.id for u in trial_monitor.get_users_with_expired_trials(db_session, now)] == [lapsed.id]

    def test_run_trial_check(self, db_session, webhooks, sent_emails):
        now = datetime.utcnow()
        warned = make_user(db_session, "soon@test.com", trial_ends_at=now + timedelta(days=2, hours=6))
        lapsed = make_user(db_session, "lapsed@test.com", trial_ends_at=now - timedelta(hours=1))
        db_session.add(Webhook(
            user_id=lapsed.id, name="Billing", url="https://hooks.example.test/billing",
            events=["user.trial_expired"], active=True,
        ))
        db_session.commit()

        result = trial_monitor.run_trial_check(db_session, webhooks, now)

        assert result == {"warnings_sent": 1, "expired": 1}
        db_session.refresh(warned)
        db_session.refresh(lapsed)
        assert warned.trial_email_sent is True
        assert lapsed.account_status == AccountStatus.EXPIRED
        assert ("expired", "lapsed@test.com") in sent_emails
        types = {n.type for n in db_session.query(AdminNotification).all()}
        assert types == {"trial_expiring", "trial_expired"}
        job = db_session.query(Job).one()
        assert job.payload_json["payload"]["event"] == "user.trial_expired"

    def test_second_sweep_is_a_no_op(self, db_session, webhooks, sent_emails):
        now = datetime.utcnow()
        make_user(db_session, "soon@test.com", trial_ends_at=now + timedelta(days=2, hours=6))
        make_user(db_session, "lapsed@test.com", trial_ends_at=now - timedelta(hours=1))

        trial_monitor.run_trial_check(db_session, webhooks, now)
        assert trial_monitor.run_trial_check(db_session, webhooks, now) == {"warnings_sent": 0, "expired": 0}

    def test_failed_warning_email_is_retried_next_sweep(self, db_session, webhooks, monkeypatch):
        now = datetime.utcnow()
        pending = make_user(db_session, "soon@test.com", trial_ends_at=now + timedelta(days=2, hours=6))
        monkeypatch.setattr(
            EmailService, "send_trial_warning_email", staticmethod(lambda *args: False)
        )

        assert trial_monitor.send_trial_warnings(db_session, webhooks, now) == 0
        db_session.refresh(pending)
        assert pending.trial_email_sent is False

    def test_failing_warning_does_not_stop_the_sweep(self, db_session, webhooks, monkeypatch):
        now = datetime.utcnow()
        broken = make_user(db_session, "broken@test.com", trial_ends_at=now + timedelta(days=2, hours=6))
        fine = make_user(db_session, "fine@test.com", trial_ends_at=now + timedelta(days=2, hours=8))

        def warning(to_email, first_name, days_remaining):
            if to_email == "broken@test.com":
                raise RuntimeError("provider rejected recipient")
            return True

        monkeypatch.setattr(EmailService, "send_trial_warning_email", staticmethod(warning))

        assert trial_monitor.send_trial_warnings(db_session, webhooks, now) == 1
        db_session.refresh(broken)
        db_session.refresh(fine)
        assert broken.trial_email_sent is False
        assert fine.trial_email_sent is True

    def test_failing_expiry_does_not_stop_the_sweep(self, db_session, webhooks, sent_emails, monkeypatch):
        now = datetime.utcnow()
        make_user(db_session, "broken@test.com", trial_ends_at=now - timedelta(hours=2))
        fine = make_user(db_session, "fine@test.com", trial_ends_at=now - timedelta(hours=1))
        original = NotificationService.notify_trial_expired

        def notify(db, user):
            if user.email == "broken@test.com":
                raise RuntimeError("notification insert failed")
            return original(db, user)

        monkeypatch.setattr(NotificationService, "notify_trial_expired", staticmethod(notify))

        result = trial_monitor.run_trial_check(db_session, webhooks, now)

        assert result == {"warnings_sent": 0, "expired": 1}
        db_session.refresh(fine)
        assert fine.account_status == AccountStatus.EXPIRED
        notes = db_session.query(AdminNotification).filter_by(type="trial_expired").all()
        assert [n.user_email for n in notes] == ["fine@test.com"]
