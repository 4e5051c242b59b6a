"""
Tests for follow-up scheduling, completion tracking and overdue derivation.
"""
import uuid
from datetime import datetime, timedelta

import pytest
from fastapi import status

from app.models import FollowUp, FollowUpStatus, Job, Webhook


def _iso(dt):
    return dt.replace(microsecond=0).isoformat()


def _follow_up(db_session, user, client_record, days=1, **fields):
    values = {
        "user_id": user.id,
        "client_id": client_record.id,
        "title": "Check in",
        "due_date": datetime.utcnow() + timedelta(days=days),
    }
    values.update(fields)
    record = FollowUp(**values)
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.mark.integration
class TestFollowUpCrud:
    def test_create(self, client, auth_headers, sample_client):
        response = client.post(
            "/api/follow-ups",
            headers=auth_headers,
            json={
                "clientId": str(sample_client.id),
                "title": "Send proposal",
                "dueDate": _iso(datetime.utcnow() + timedelta(days=2)),
                "priority": "high",
            },
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "pending"
        assert data["priority"] == "high"
        assert data["completedAt"] is None

    def test_create_for_foreign_client(self, client, other_headers, sample_client):
        response = client.post(
            "/api/follow-ups",
            headers=other_headers,
            json={"clientId": str(sample_client.id), "title": "Steal", "dueDate": _iso(datetime.utcnow())},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Client not found"

    def test_title_is_required(self, client, auth_headers, sample_client):
        response = client.post(
            "/api/follow-ups",
            headers=auth_headers,
            json={"clientId": str(sample_client.id), "dueDate": _iso(datetime.utcnow())},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_completing_sets_completed_at_once(self, client, db_session, user, auth_headers, sample_client):
        record = _follow_up(db_session, user, sample_client)

        response = client.put(f"/api/follow-ups/{record.id}", headers=auth_headers, json={"status": "completed"})
        assert response.status_code == status.HTTP_200_OK
        completed_at = response.json()["completedAt"]
        assert completed_at is not None

        response = client.put(f"/api/follow-ups/{record.id}", headers=auth_headers, json={"title": "Renamed"})
        assert response.json()["completedAt"] == completed_at

    def test_reopening_clears_completed_at(self, client, db_session, user, auth_headers, sample_client):
        record = _follow_up(
            db_session, user, sample_client, status=FollowUpStatus.COMPLETED, completed_at=datetime.utcnow()
        )

        response = client.put(f"/api/follow-ups/{record.id}", headers=auth_headers, json={"status": "pending"})

        assert response.json()["completedAt"] is None

    def test_completion_fires_completed_event(self, client, db_session, user, auth_headers, sample_client):
        db_session.add(Webhook(
            user_id=user.id, name="Done", url="https://hooks.example.test/done",
            events=["followup.completed"], active=True,
        ))
        db_session.commit()
        record = _follow_up(db_session, user, sample_client)

        client.put(f"/api/follow-ups/{record.id}", headers=auth_headers, json={"status": "completed"})

        job = db_session.query(Job).one()
        assert job.payload_json["payload"]["event"] == "followup.completed"

    def test_foreign_follow_up_is_forbidden(self, client, db_session, user, other_headers, sample_client):
        record = _follow_up(db_session, user, sample_client)

        response = client.delete(f"/api/follow-ups/{record.id}", headers=other_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_delete(self, client, db_session, user, auth_headers, sample_client):
        record = _follow_up(db_session, user, sample_client)

        assert client.delete(f"/api/follow-ups/{record.id}", headers=auth_headers).status_code == 204
        assert client.delete(f"/api/follow-ups/{record.id}", headers=auth_headers).status_code == 404

    def test_update_missing(self, client, auth_headers):
        response = client.put(f"/api/follow-ups/{uuid.uuid4()}", headers=auth_headers, json={"title": "x"})
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.integration
class TestFollowUpViews:
    def test_past_due_pending_lists_as_overdue(self, client, db_session, user, auth_headers, sample_client):
        record = _follow_up(db_session, user, sample_client, days=-2)

        listed = client.get("/api/follow-ups", headers=auth_headers).json()

        assert listed[0]["status"] == "overdue"
        db_session.refresh(record)
        assert record.status == FollowUpStatus.PENDING

    def test_overdue_status_is_never_stored(self, client, db_session, user, auth_headers, sample_client):
        record = _follow_up(db_session, user, sample_client)

        client.put(f"/api/follow-ups/{record.id}", headers=auth_headers, json={"status": "overdue"})

        db_session.refresh(record)
        assert record.status == FollowUpStatus.PENDING

    def test_upcoming_and_overdue(self, client, db_session, user, auth_headers, sample_client):
        _follow_up(db_session, user, sample_client, days=3, title="Later")
        _follow_up(db_session, user, sample_client, days=-1, title="Missed")
        _follow_up(db_session, user, sample_client, days=-1, title="Closed", status=FollowUpStatus.COMPLETED)

        upcoming = client.get("/api/follow-ups/upcoming", headers=auth_headers).json()
        overdue = client.get("/api/follow-ups/overdue", headers=auth_headers).json()

        assert [f["title"] for f in upcoming] == ["Later"]
        assert [f["title"] for f in overdue] == ["Missed"]

    def test_list_sorted_by_due_date(self, client, db_session, user, auth_headers, sample_client):
        _follow_up(db_session, user, sample_client, days=5, title="Second")
        _follow_up(db_session, user, sample_client, days=1, title="First")

        titles = [f["title"] for f in client.get("/api/follow-ups", headers=auth_headers).json()]
        assert titles == ["First", "Second"]

    def test_for_client(self, client, db_session, user, auth_headers, other_headers, sample_client):
        _follow_up(db_session, user, sample_client)

        assert len(client.get(f"/api/follow-ups/client/{sample_client.id}", headers=auth_headers).json()) == 1
        response = client.get(f"/api/follow-ups/client/{sample_client.id}", headers=other_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
