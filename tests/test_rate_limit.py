from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from app.rate_limit import AUTH_RATE_LIMIT, rate_limit_exceeded_handler


def _app(default_limits=None):
    # The shared limiter is disabled under test; build an enabled one per app
    limiter = Limiter(key_func=get_remote_address, default_limits=default_limits or [], storage_uri="memory://")
    app = FastAPI()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    return app, limiter


def test_rate_limit_exceeded_returns_429():
    app, limiter = _app()

    @app.get("/limited")
    @limiter.limit("1/minute")
    def limited(request: Request):
        return {"ok": True}

    client = TestClient(app)
    assert client.get("/limited").status_code == 200
    response = client.get("/limited")
    assert response.status_code == 429
    body = response.json()
    assert body["error_code"] == "RATE_LIMIT_EXCEEDED"
    assert body["details"] == {"retry_after": "60 seconds"}
    assert response.headers["Retry-After"] == "60"


def test_default_limit_applies_to_undecorated_routes():
    app, limiter = _app(default_limits=["2/minute"])
    app.add_middleware(SlowAPIMiddleware)

    @app.get("/open")
    def open_route():
        return {"ok": True}

    client = TestClient(app)
    assert [client.get("/open").status_code for _ in range(3)] == [200, 200, 429]


def test_auth_limit_is_strict():
    app, limiter = _app()

    @app.post("/login")
    @limiter.limit(AUTH_RATE_LIMIT)
    def login(request: Request):
        return {"ok": True}

    client = TestClient(app)
    statuses = [client.post("/login").status_code for _ in range(6)]
    assert statuses == [200] * 5 + [429]
