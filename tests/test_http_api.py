# tests/test_http_api.py
"""End-to-end tests for the HTTP API over in-memory repositories."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from researchcollab.config import settings
from researchcollab.core.domain import DiscordProfile
from researchcollab.core.lifecycle import LifecycleManager
from researchcollab.core.queries import QuerySurface
from researchcollab.infra.discord_oauth import DiscordOAuthClient
from researchcollab.infra.http_client import HttpSessions
from researchcollab.infra.notification_channels import DisabledChannel, LogEmailChannel
from researchcollab.infra.notification_service import NotificationDispatcher
from researchcollab.transport.container import ServiceContainer
from researchcollab.transport.http_app import create_app
from researchcollab.transport.security import SessionSigner

SECRET = "Xk9vQ2mN7pL4rT8wZ1yB5cF3hJ6dS0aE"


@pytest.fixture
def dispatcher():
    return NotificationDispatcher(LogEmailChannel(), DisabledChannel(), "https://app.example.org")


@pytest.fixture
def signer():
    return SessionSigner(SECRET, ttl_seconds=3600)


@pytest.fixture
def container(call_repo, application_repo, user_repo, dispatcher, signer):
    http = HttpSessions()
    return ServiceContainer(
        lifecycle=LifecycleManager(call_repo, application_repo, user_repo, dispatcher),
        queries=QuerySurface(call_repo, application_repo),
        users=user_repo,
        dispatcher=dispatcher,
        oauth=DiscordOAuthClient(
            http,
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="https://api.example.org/auth/discord/callback",
        ),
        signer=signer,
        http=http,
    )


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def auth(signer):
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {signer.issue(user.id)}"}
    return _headers


CALL_BODY = {
    "title": "Graph Neural Networks for Drug Discovery",
    "summary": "Seeking collaborators for molecular property prediction.",
    "keywords": ["ml", "chemistry"],
    "credit_roles": ["conceptualization", "software"],
}


def _create_call(client, headers, **overrides) -> dict:
    resp = client.post("/api/calls", json={**CALL_BODY, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def _apply(client, headers, call_id, **overrides):
    body = {"callId": call_id, "roles": ["software"], "motivation": "I built the GNN library used here."}
    body.update(overrides)
    return client.post("/api/applications", json=body, headers=headers)


# ============================================================================
# Health / plumbing
# ============================================================================

class TestPlumbing:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

    def test_ready_without_database(self, client):
        resp = client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["ready"] is True

    def test_request_id_and_security_headers(self, client):
        resp = client.get("/health")
        assert "X-Request-ID" in resp.headers
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_metrics(self, client, monkeypatch):
        monkeypatch.setattr(settings, "metrics_token", None)
        client.get("/health")
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "histograms" in resp.json()

    def test_unknown_route(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}


# ============================================================================
# Auth
# ============================================================================

class TestAuth:
    def test_write_requires_session(self, client):
        resp = client.post("/api/calls", json=CALL_BODY)
        assert resp.status_code == 401
        assert resp.json()["error"] == "Authentication required"

    def test_tampered_token_rejected(self, client, lead, signer):
        header, _, signature = signer.issue(lead.id).split(".")
        forged = SessionSigner(SECRET[::-1]).issue(lead.id).split(".")[1]
        token = f"{header}.{forged}.{signature}"
        resp = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_session_cookie_accepted(self, client, lead, signer):
        client.cookies.set(settings.session_cookie_name, signer.issue(lead.id))
        resp = client.get("/api/me")
        assert resp.status_code == 200
        assert resp.json()["username"] == lead.username

    def test_discord_login_redirect_sets_state(self, client):
        resp = client.get("/auth/discord", follow_redirects=False)
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("https://discord.com/api/oauth2/authorize?")
        assert "scope=identify+email" in location
        assert settings.oauth_state_cookie_name in resp.cookies

    def test_discord_callback_upserts_user_and_sets_session(self, client, container, user_repo, signer):
        container.oauth.resolve = AsyncMock(return_value=DiscordProfile(
            discord_id="998877", username="grace", email="grace@example.org",
        ))
        client.cookies.set(settings.oauth_state_cookie_name, "state-abc")

        resp = client.get(
            "/auth/discord/callback",
            params={"code": "code-1", "state": "state-abc"},
            follow_redirects=False,
        )

        assert resp.status_code == 302
        assert resp.headers["location"] == f"{settings.public_base_url.rstrip('/')}/dashboard"
        token = resp.cookies[settings.session_cookie_name]
        user_id, error = signer.verify(token)
        assert error is None
        assert user_repo.users[user_id].username == "grace"
        container.oauth.resolve.assert_awaited_once_with("code-1")

    def test_discord_callback_state_mismatch(self, client, container):
        container.oauth.resolve = AsyncMock()
        client.cookies.set(settings.oauth_state_cookie_name, "expected")

        resp = client.get("/auth/discord/callback", params={"code": "c", "state": "forged"})

        assert resp.status_code == 400
        container.oauth.resolve.assert_not_awaited()

    def test_discord_callback_without_code(self, client):
        resp = client.get("/auth/discord/callback")
        assert resp.status_code == 400
        assert resp.json()["error"] == "No code provided"


# ============================================================================
# Roles
# ============================================================================

class TestRoles:
    def test_list_roles(self, client):
        resp = client.get("/api/roles")
        assert resp.status_code == 200
        assert len(resp.json()) == 14

    def test_filter_roles(self, client):
        resp = client.get("/api/roles", params={"category": "support"})
        ids = {r["id"] for r in resp.json()}
        assert ids == {"supervision", "project_administration", "funding_acquisition"}

    def test_unknown_category(self, client):
        resp = client.get("/api/roles", params={"category": "magic"})
        assert resp.status_code == 400


# ============================================================================
# Calls
# ============================================================================

class TestCallsApi:
    def test_create_call(self, client, lead, auth):
        resp = client.post("/api/calls", json=CALL_BODY, headers=auth(lead))

        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Research call created successfully"
        assert body["data"]["status"] == "open"
        assert body["data"]["lead_author_id"] == lead.id
        assert body["data"]["slug"].startswith("graph-neural-networks-for-drug-discovery-")

    def test_create_call_validation(self, client, lead, auth):
        resp = client.post("/api/calls", json={**CALL_BODY, "title": ""}, headers=auth(lead))
        assert resp.status_code == 400
        assert "title" in resp.json()["error"]

    def test_create_call_wrong_shape(self, client, lead, auth):
        resp = client.post("/api/calls", json={**CALL_BODY, "keywords": "ml"}, headers=auth(lead))
        assert resp.status_code == 400

    def test_create_call_invalid_json(self, client, lead, auth):
        resp = client.post(
            "/api/calls",
            content=b"{not json",
            headers={**auth(lead), "Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    def test_list_and_get_by_slug(self, client, lead, auth):
        created = _create_call(client, auth(lead))

        listed = client.get("/api/calls", params={"authorId": lead.id, "status": "open"})
        assert [c["id"] for c in listed.json()] == [created["id"]]

        resp = client.get(f"/api/calls/{created['slug']}")
        assert resp.status_code == 200
        assert resp.json()["title"] == CALL_BODY["title"]
        assert resp.json()["lead_author"] == {"id": lead.id, "username": "Ada Lovelace", "avatar_url": None}
        assert "email" not in resp.json()["lead_author"]

    def test_get_missing_slug(self, client):
        resp = client.get("/api/calls/missing-1")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Research call not found"}

    def test_update_call(self, client, lead, auth):
        created = _create_call(client, auth(lead))
        resp = client.patch(
            f"/api/calls/{created['id']}", json={"timeline": "6 months"}, headers=auth(lead)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["timeline"] == "6 months"

    def test_update_by_non_lead(self, client, lead, applicant, auth):
        created = _create_call(client, auth(lead))
        resp = client.patch(f"/api/calls/{created['id']}", json={"title": "x"}, headers=auth(applicant))
        assert resp.status_code == 403

    def test_close_call(self, client, lead, auth):
        created = _create_call(client, auth(lead))

        resp = client.post(
            f"/api/calls/{created['id']}/close",
            json={"publication_url": "https://doi.org/10.1/x"},
            headers=auth(lead),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "closed"

        again = client.post(f"/api/calls/{created['id']}/close", headers=auth(lead))
        assert again.status_code == 409

    def test_close_rejects_non_http_url(self, client, lead, auth):
        created = _create_call(client, auth(lead))
        resp = client.post(
            f"/api/calls/{created['id']}/close",
            json={"publication_url": "ftp://example.org/paper"},
            headers=auth(lead),
        )
        assert resp.status_code == 400


# ============================================================================
# Applications
# ============================================================================

class TestApplicationsApi:
    def test_submit_and_duplicate(self, client, lead, applicant, auth):
        call = _create_call(client, auth(lead))

        first = _apply(client, auth(applicant), call["id"])
        assert first.status_code == 201
        assert first.json()["data"]["status"] == "pending"

        second = _apply(client, auth(applicant), call["id"])
        assert second.status_code == 409
        assert second.json() == {"error": "You have already applied for this research call"}

    def test_submit_to_closed_call_is_404(self, client, lead, applicant, auth):
        call = _create_call(client, auth(lead))
        client.post(f"/api/calls/{call['id']}/close", headers=auth(lead))

        resp = _apply(client, auth(applicant), call["id"])
        assert resp.status_code == 404
        assert resp.json() == {"error": "Research call not found or closed"}

    def test_submit_missing_motivation(self, client, lead, applicant, auth):
        call = _create_call(client, auth(lead))
        resp = _apply(client, auth(applicant), call["id"], motivation="")
        assert resp.status_code == 400

    def test_list_requires_filter(self, client, applicant, auth):
        resp = client.get("/api/applications", headers=auth(applicant))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Either callId or userId is required"

    def test_list_own_and_for_lead(self, client, lead, applicant, auth):
        call = _create_call(client, auth(lead))
        application = _apply(client, auth(applicant), call["id"]).json()["data"]

        own = client.get("/api/applications", params={"userId": applicant.id}, headers=auth(applicant))
        assert [a["id"] for a in own.json()] == [application["id"]]

        for_lead = client.get("/api/applications", params={"callId": call["id"]}, headers=auth(lead))
        assert [a["id"] for a in for_lead.json()] == [application["id"]]

    def test_listings_carry_joined_profiles(self, client, lead, applicant, auth):
        call = _create_call(client, auth(lead))
        _apply(client, auth(applicant), call["id"])

        [for_lead] = client.get("/api/applications", params={"callId": call["id"]}, headers=auth(lead)).json()
        assert for_lead["user"]["username"] == "Alan Turing"
        assert for_lead["user"]["email"] == "alan@example.org"

        [own] = client.get("/api/applications", params={"userId": applicant.id}, headers=auth(applicant)).json()
        assert own["research_call"] == {"title": CALL_BODY["title"], "slug": call["slug"]}

    def test_list_other_users_forbidden(self, client, lead, applicant, auth):
        resp = client.get("/api/applications", params={"userId": applicant.id}, headers=auth(lead))
        assert resp.status_code == 403

    def test_accept_then_reject_conflicts(self, client, lead, applicant, auth, dispatcher):
        call = _create_call(client, auth(lead))
        application = _apply(client, auth(applicant), call["id"]).json()["data"]

        resp = client.patch(
            "/api/applications", json={"id": application["id"], "status": "accepted"}, headers=auth(lead)
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "accepted"
        assert data["research_call"]["title"] == CALL_BODY["title"]
        assert data["user"]["email"] == applicant.email

        again = client.patch(
            "/api/applications", json={"id": application["id"], "status": "rejected"}, headers=auth(lead)
        )
        assert again.status_code == 409

    def test_invalid_status_value(self, client, lead, auth):
        resp = client.patch("/api/applications", json={"id": "x", "status": "maybe"}, headers=auth(lead))
        assert resp.status_code == 400

    def test_applicant_cannot_decide(self, client, lead, applicant, auth):
        call = _create_call(client, auth(lead))
        application = _apply(client, auth(applicant), call["id"]).json()["data"]

        resp = client.patch(
            "/api/applications", json={"id": application["id"], "status": "accepted"}, headers=auth(applicant)
        )
        assert resp.status_code == 403

    def test_status_email_recorded(self, container, lead, applicant, auth, dispatcher):
        # Shutdown drains pending notifications
        with TestClient(create_app(container)) as client:
            call = _create_call(client, auth(lead))
            application = _apply(client, auth(applicant), call["id"]).json()["data"]
            client.patch(
                "/api/applications", json={"id": application["id"], "status": "accepted"}, headers=auth(lead)
            )

        recipients = [r.recipient for r in dispatcher.history]
        assert applicant.email in recipients
