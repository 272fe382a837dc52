# tests/test_security.py
"""Tests for researchcollab/transport/security.py"""
from __future__ import annotations

import time

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from researchcollab.config import settings
from researchcollab.transport.security import (
    SessionSigner,
    build_session_signer,
    generate_secure_token,
    require_metrics_auth,
    sanitize_error_message,
    sanitize_headers_for_logging,
    validate_token_strength,
)

SECRET = "Xk9vQ2mN7pL4rT8wZ1yB5cF3hJ6dS0aE"


class TestTokenStrength:
    def test_strong_token_has_no_warnings(self):
        assert validate_token_strength(SECRET) == []

    def test_short_token(self):
        warnings = validate_token_strength("Ab1")
        assert any("too short" in w for w in warnings)

    def test_weak_pattern(self):
        warnings = validate_token_strength("MySecretValue123456789012345678901")
        assert any("weak pattern" in w for w in warnings)

    def test_low_diversity(self):
        warnings = validate_token_strength("a" * 40)
        assert any("diversity" in w for w in warnings)

    def test_generated_token_is_long(self):
        assert len(generate_secure_token()) >= 32


class TestSessionSigner:
    def test_round_trip(self):
        signer = SessionSigner(SECRET, ttl_seconds=60)
        user_id, error = signer.verify(signer.issue("user-1"))
        assert user_id == "user-1"
        assert error is None

    def test_claims(self):
        token = SessionSigner(SECRET, ttl_seconds=60).issue("user-1", now=time.time())
        claims = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert claims["sub"] == "user-1"
        assert claims["exp"] - claims["iat"] == 60

    def test_expired(self):
        signer = SessionSigner(SECRET, ttl_seconds=60)
        token = signer.issue("user-1", now=time.time() - 3600)
        assert signer.verify(token) == (None, "Session expired")

    def test_wrong_secret(self):
        token = SessionSigner(SECRET).issue("user-1")
        other = SessionSigner(SECRET[::-1])
        assert other.verify(token) == (None, "Invalid signature")

    def test_forged_user_id(self):
        signer = SessionSigner(SECRET)
        header, _, signature = signer.issue("user-1").split(".")
        forged = SessionSigner(SECRET[::-1]).issue("user-2").split(".")[1]
        assert signer.verify(f"{header}.{forged}.{signature}") == (None, "Invalid signature")

    def test_missing_subject(self):
        token = jwt.encode({"exp": int(time.time()) + 60}, SECRET, algorithm="HS256")
        assert SessionSigner(SECRET).verify(token) == (None, "Malformed token")

    def test_unsigned_token_rejected(self):
        token = jwt.encode({"sub": "user-1", "exp": int(time.time()) + 60}, None, algorithm="none")
        assert SessionSigner(SECRET).verify(token)[0] is None

    @pytest.mark.parametrize("token", ["", "garbage", "a.b", "user.notanumber.sig"])
    def test_malformed(self, token):
        assert SessionSigner(SECRET).verify(token) == (None, "Malformed token")

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            SessionSigner("")

    def test_build_without_secret_in_dev_is_ephemeral(self, monkeypatch):
        monkeypatch.setattr(settings, "session_secret", None)
        monkeypatch.setattr(settings, "app_env", "dev")
        a, b = build_session_signer(), build_session_signer()
        assert a.verify(b.issue("u"))[0] is None

    def test_build_without_secret_in_prod_fails(self, monkeypatch):
        monkeypatch.setattr(settings, "session_secret", None)
        monkeypatch.setattr(settings, "app_env", "prod")
        with pytest.raises(RuntimeError):
            build_session_signer()


class TestMetricsAuth:
    def _client(self):
        app = FastAPI()

        @app.get("/metrics", dependencies=[Depends(require_metrics_auth)])
        def metrics():
            return {"ok": True}

        return TestClient(app)

    def test_open_when_no_token_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "metrics_token", None)
        assert self._client().get("/metrics").status_code == 200

    def test_requires_token(self, monkeypatch):
        monkeypatch.setattr(settings, "metrics_token", SECRET)
        assert self._client().get("/metrics").status_code == 401

    def test_wrong_token(self, monkeypatch):
        monkeypatch.setattr(settings, "metrics_token", SECRET)
        resp = self._client().get("/metrics", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_correct_token(self, monkeypatch):
        monkeypatch.setattr(settings, "metrics_token", SECRET)
        resp = self._client().get("/metrics", headers={"Authorization": f"Bearer {SECRET}"})
        assert resp.status_code == 200


class TestSanitizers:
    def test_redacts_sensitive_headers(self):
        clean = sanitize_headers_for_logging({"Authorization": "Bearer x", "Cookie": "a=b", "Accept": "*/*"})
        assert clean["Authorization"] == "***REDACTED***"
        assert clean["Cookie"] == "***REDACTED***"
        assert clean["Accept"] == "*/*"

    def test_error_message_detailed_in_dev(self):
        assert sanitize_error_message(ValueError("bad id 42"), is_production=False) == "bad id 42"

    def test_error_message_generic_in_prod(self):
        assert sanitize_error_message(ValueError("bad id 42"), is_production=True) == "Invalid input"
        assert sanitize_error_message(RuntimeError("x"), is_production=True) == "An error occurred"
