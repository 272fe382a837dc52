# tests/test_middleware.py
"""Tests for researchcollab/transport/middleware.py: request ID, logging, error handling."""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from researchcollab.infra.metrics import get_metrics_collector
from researchcollab.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    SecurityHeadersMiddleware,
)


def _build_app(raise_for: set[str] | None = None, logging_enabled: bool = True):
    """Build a minimal FastAPI app with middleware for testing."""
    app = FastAPI()
    # Order matters: ErrorHandling wraps RequestLogging wraps RequestID
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=logging_enabled)
    app.add_middleware(RequestIDMiddleware)

    raise_for = raise_for or set()

    @app.get("/test")
    def test_endpoint():
        if "/test" in raise_for:
            raise RuntimeError("boom")
        return {"ok": True}

    @app.get("/items/{item_id}")
    def item_endpoint(item_id: str):
        return {"id": item_id}

    return app


# ============================================================================
# RequestIDMiddleware
# ============================================================================

class TestRequestIDMiddleware:
    def test_generates_request_id(self):
        client = TestClient(_build_app())
        resp = client.get("/test")
        assert resp.status_code == 200
        # UUID has 36 chars with dashes
        assert len(resp.headers["X-Request-ID"]) >= 32

    def test_preserves_existing_request_id(self):
        client = TestClient(_build_app())
        custom_id = "my-custom-request-id-123"
        resp = client.get("/test", headers={"X-Request-ID": custom_id})
        assert resp.headers["X-Request-ID"] == custom_id


# ============================================================================
# RequestLoggingMiddleware
# ============================================================================

class TestRequestLoggingMiddleware:
    def test_records_latency_by_route_template(self):
        client = TestClient(_build_app())
        client.get("/items/abc")
        client.get("/items/def")

        histograms = get_metrics_collector().get_metrics()["histograms"]
        keys = [k for k in histograms if k.startswith("http_request_seconds")]
        assert len(keys) == 1
        assert "/items/{item_id}" in keys[0]
        assert histograms[keys[0]]["count"] == 2

    def test_disabled_records_nothing(self):
        client = TestClient(_build_app(logging_enabled=False))
        client.get("/test")
        assert get_metrics_collector().get_metrics()["histograms"] == {}


# ============================================================================
# ErrorHandlingMiddleware
# ============================================================================

class TestErrorHandlingMiddleware:
    def test_normal_request_passes_through(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        resp = client.get("/test")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    def test_generic_error_returns_500(self):
        client = TestClient(_build_app(raise_for={"/test"}), raise_server_exceptions=False)
        resp = client.get("/test", headers={"X-Request-ID": "req-1"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error", "request_id": "req-1"}
        assert "boom" not in resp.text


class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        resp = TestClient(_build_app()).get("/test")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "no-store" in resp.headers["Cache-Control"]
