"""
Test doubles shared by fixtures and test modules.
"""
from datetime import datetime, timedelta

import httpx

from app.auth import create_access_token, get_password_hash
from app.models import AccountStatus, User, UserRole
from app.services import storage


class FakeRedis:
    """In-memory stand-in for the handful of redis-py calls CacheManager makes."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def incr(self, key):
        value = int(self.store.get(key) or 0) + 1
        self.store[key] = str(value)
        return value

    def ping(self):
        return True


class BrokenRedis:
    """Every call fails the way an unreachable Redis does."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise ConnectionError("redis unavailable")
        return _fail


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request and answers with a fixed status."""

    def __init__(self, status_code: int = 200, body: str = "ok"):
        self.requests = []
        self.status_code = status_code
        self.body = body
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)


TEST_PASSWORD = "secret123"


def make_user(db_session, email, user_role=UserRole.USER, **fields):
    """Persist a user on a fresh 7-day trial; `fields` override any column."""
    values = {
        "email": email,
        "password_hash": get_password_hash(TEST_PASSWORD),
        "first_name": "Test",
        "last_name": "User",
        "user_role": user_role,
        "permissions": list(storage.ROLE_PERMISSIONS[user_role]),
        "account_status": AccountStatus.TRIAL,
        "trial_ends_at": datetime.utcnow() + timedelta(days=7),
        "is_active": True,
    }
    values.update(fields)
    user = User(**values)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def headers_for(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}
