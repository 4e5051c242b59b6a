"""
Tests for health and readiness endpoints and the cross-cutting middleware.
"""
import json
import logging

import pytest
from fastapi import status

import app.main as main_module
from app.utils.cache import CacheManager
from app.utils.logging import JsonFormatter, RequestContextFilter, request_id_var
from tests.helpers import BrokenRedis, FakeRedis


@pytest.mark.integration
class TestHealthEndpoints:
    def test_root(self, client):
        data = client.get("/").json()
        assert data["status"] == "running"
        assert data["version"] == "1.0.0"

    def test_health_without_redis(self, client, monkeypatch):
        manager = CacheManager()
        manager.client = None
        monkeypatch.setattr(main_module, "cache", manager)

        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["checks"] == {"database": "ok", "redis": "not_configured"}
        assert data["uptime"] >= 0

    def test_health_with_redis(self, client, monkeypatch):
        monkeypatch.setattr(main_module, "cache", CacheManager(client=FakeRedis()))

        assert client.get("/health").json()["checks"]["redis"] == "ok"

    def test_unreachable_redis_degrades(self, client, monkeypatch):
        monkeypatch.setattr(main_module, "cache", CacheManager(client=BrokenRedis()))

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["checks"]["redis"] == "error"

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ready", "checks": {"database": "ok"}}


@pytest.mark.integration
class TestMiddleware:
    def test_request_id_is_generated(self, client):
        response = client.get("/")
        assert len(response.headers["X-Request-ID"]) > 0

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_security_headers(self, client):
        response = client.get("/")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/nowhere")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "HTTP_ERROR"

    def test_oversized_request_id_is_replaced(self, client):
        response = client.get("/", headers={"X-Request-ID": "x" * 500})
        assert response.headers["X-Request-ID"] != "x" * 500


@pytest.mark.unit
class TestLogFormatting:
    def _record(self, **extra):
        record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_line_carries_context_fields(self):
        line = json.loads(JsonFormatter().format(self._record(job_id="j1", attempt=2)))

        assert line["msg"] == "hello world"
        assert line["level"] == "info"
        assert line["job_id"] == "j1"
        assert line["attempt"] == 2

    def test_filter_tags_records_with_current_request_id(self):
        token = request_id_var.set("req-9")
        try:
            record = self._record()
            RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert record.request_id == "req-9"

    def test_filter_keeps_explicit_request_id(self):
        token = request_id_var.set("req-9")
        try:
            record = self._record(request_id="explicit")
            RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert record.request_id == "explicit"
