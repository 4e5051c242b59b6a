"""
Tests for authentication endpoints.
"""
import pytest
from fastapi import status

from app.config import settings
from app.models import AdminNotification, User, UserJourneyProgress
from tests.helpers import TEST_PASSWORD, make_user


def _register(client, email="new@test.com", **overrides):
    body = {
        "email": email,
        "password": "secret123",
        "firstName": "Nina",
        "lastName": "Novak",
    }
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


@pytest.mark.integration
class TestRegister:
    def test_register_starts_trial_and_session(self, client, db_session):
        response = _register(client)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["tokenType"] == "bearer"
        assert data["accessToken"]
        assert data["user"]["accountStatus"] == "trial"
        assert data["user"]["userRole"] == "user"
        assert data["user"]["trialEndsAt"] is not None
        assert settings.SESSION_COOKIE_NAME in response.cookies

    def test_register_initializes_journey_and_notifies_admins(self, client, db_session):
        _register(client)
        user = db_session.query(User).filter_by(email="new@test.com").one()

        progress = db_session.query(UserJourneyProgress).filter_by(user_id=user.id).one()
        assert progress.total_points == 15
        assert db_session.query(AdminNotification).filter_by(type="user_registration").count() == 1

    def test_email_is_stored_lowercase(self, client, db_session):
        _register(client, email="Mixed@Test.com")
        assert db_session.query(User).filter_by(email="mixed@test.com").count() == 1

    def test_duplicate_email_conflicts(self, client):
        _register(client)
        response = _register(client)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "CONFLICT"

    def test_short_password_is_rejected(self, client):
        response = _register(client, password="abc")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert any(err["field"] == "password" for err in body["details"]["errors"])


@pytest.mark.integration
class TestLogin:
    def test_login_success(self, client, user):
        response = client.post("/api/auth/login", json={"email": user.email, "password": TEST_PASSWORD})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["email"] == user.email
        assert settings.SESSION_COOKIE_NAME in response.cookies

    def test_login_is_case_insensitive_on_email(self, client, user):
        response = client.post("/api/auth/login", json={"email": "USER@test.com", "password": TEST_PASSWORD})
        assert response.status_code == status.HTTP_200_OK

    def test_login_invalid_password(self, client, user):
        response = client.post("/api/auth/login", json={"email": user.email, "password": "wrongpassword"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "Invalid email or password"

    def test_login_unknown_email(self, client):
        response = client.post("/api/auth/login", json={"email": "nobody@test.com", "password": "whatever"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_inactive_user(self, client, db_session):
        make_user(db_session, "inactive@test.com", is_active=False)

        response = client.post("/api/auth/login", json={"email": "inactive@test.com", "password": TEST_PASSWORD})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.integration
class TestSession:
    def test_me_requires_authentication(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_me_with_bearer_token(self, client, user, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == str(user.id)

    def test_me_with_session_cookie(self, client):
        _register(client)

        response = client.get("/api/auth/me")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "new@test.com"

    def test_invalid_token_is_rejected(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_clears_cookie(self, client):
        _register(client)
        response = client.post("/api/auth/logout")

        assert response.status_code == status.HTTP_200_OK
        assert client.get("/api/auth/me").status_code == status.HTTP_401_UNAUTHORIZED

    def test_trial_info(self, client, auth_headers):
        response = client.get("/api/auth/trial", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["isValid"] is True
        assert data["accountStatus"] == "trial"
        assert data["daysRemaining"] == 7


@pytest.mark.integration
class TestProfile:
    def test_update_profile(self, client, auth_headers):
        response = client.put("/api/auth/profile", headers=auth_headers, json={"firstName": "Renamed"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["firstName"] == "Renamed"

    def test_email_taken_by_other_user(self, client, auth_headers, other_user):
        response = client.put("/api/auth/profile", headers=auth_headers, json={"email": other_user.email})
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_corporate_account_needs_company(self, client, db_session):
        from app.models import AccountRole
        from tests.helpers import headers_for

        corporate = make_user(db_session, "corp@test.com", role=AccountRole.CORPORATE, company="Big Co")
        response = client.put("/api/auth/profile", headers=headers_for(corporate), json={"company": ""})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_change_password(self, client, user, auth_headers):
        response = client.put(
            "/api/auth/password",
            headers=auth_headers,
            json={"currentPassword": TEST_PASSWORD, "newPassword": "brandnew1"},
        )
        assert response.status_code == status.HTTP_200_OK

        login = client.post("/api/auth/login", json={"email": user.email, "password": "brandnew1"})
        assert login.status_code == status.HTTP_200_OK

    def test_change_password_wrong_current(self, client, auth_headers):
        response = client.put(
            "/api/auth/password",
            headers=auth_headers,
            json={"currentPassword": "nope", "newPassword": "brandnew1"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Current password is incorrect"
