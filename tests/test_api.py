"""
HTTP API tests.

Tests cover:
  - Authentication: missing, forged and expired tokens -> 401
  - Transitions: applied (200), queued (202), Forbidden (403), no-op (400),
    duplicate (409), foreign ticket (404)
  - Proposal approve / reject and resolve-once over HTTP
  - Pending list with proposer details
  - Own-profile read and update
"""
import uuid

import pytest
from fastapi.testclient import TestClient

from roadmap_engine.api import create_app
from roadmap_engine.config import TestingConfig
from roadmap_engine.models import Role, Ticket, TicketStatus, User
from roadmap_engine.services import encode_session_token

from conftest import ACCOUNT, OTHER_ACCOUNT, run

SECRET = TestingConfig.JWT_SECRET_KEY


@pytest.fixture()
def client(store):
    with TestClient(create_app(TestingConfig(), store)) as c:
        yield c


@pytest.fixture()
def login(store):
    """Add a member and return Authorization headers for them."""
    def _login(role, account_id=ACCOUNT, name=None):
        user = User(
            account_id=account_id,
            auth_subject=f"auth0|{uuid.uuid4().hex[:12]}",
            name=name or f"{role.value.title()} User",
            email=f"{role.value}@example.com",
            role=role,
        )
        run(store.users.add(user))
        token = encode_session_token(user.auth_subject, SECRET, account_id=account_id)
        return {"Authorization": f"Bearer {token}"}
    return _login


@pytest.fixture()
def api_ticket(store, project_id):
    ticket = Ticket(account_id=ACCOUNT, project_id=project_id, title="T101")
    run(store.tickets.add(ticket))
    return ticket


def _move(client, headers, ticket_id, to_status):
    return client.post(
        f"/tickets/{ticket_id}/transitions",
        json={"to_status": to_status},
        headers=headers,
    )


# ═════════════════════════════════════════════════════════════════════════
# HEALTH & AUTH
# ═════════════════════════════════════════════════════════════════════════

class TestHealthAndAuth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_missing_token(self, client, api_ticket):
        r = client.get(f"/tickets/{api_ticket.id}")
        assert r.status_code == 401
        body = r.json()
        assert body["success"] is False
        assert body["code"] == "unauthenticated"

    def test_forged_token(self, client, api_ticket):
        token = encode_session_token("auth0|x", "not-the-secret", account_id=ACCOUNT)
        r = client.get(f"/tickets/{api_ticket.id}", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401

    def test_expired_token(self, client):
        token = encode_session_token("auth0|x", SECRET, account_id=ACCOUNT, expires_in=-60)
        r = client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
        assert "expired" in r.json()["error"]

    def test_first_login_is_viewer(self, client):
        token = encode_session_token(
            "auth0|newcomer", SECRET, name="New Comer", email="new@acme.io", account_id=ACCOUNT
        )
        r = client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        profile = r.json()["data"]["profile"]
        assert profile["role"] == "viewer"
        assert profile["account_id"] == ACCOUNT


# ═════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════

class TestTransitions:
    def test_pm_applied(self, client, login, api_ticket):
        r = _move(client, login(Role.PM), api_ticket.id, "in_progress")
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["result"] == "applied"
        assert data["ticket"]["status"] == "in_progress"

    def test_engineer_queued(self, client, login, api_ticket):
        headers = login(Role.ENGINEER)
        r = _move(client, headers, api_ticket.id, "in_progress")
        assert r.status_code == 202
        data = r.json()["data"]
        assert data["result"] == "queued"
        assert data["proposal"]["status"] == "pending"
        assert data["proposal"]["from_status"] == "not_started"

        ticket = client.get(f"/tickets/{api_ticket.id}", headers=headers).json()["data"]["ticket"]
        assert ticket["status"] == "not_started"

    def test_viewer_forbidden(self, client, login, api_ticket):
        r = _move(client, login(Role.VIEWER), api_ticket.id, "in_progress")
        assert r.status_code == 403
        assert r.json()["code"] == "forbidden"

    def test_no_op(self, client, login, api_ticket):
        r = _move(client, login(Role.ADMIN), api_ticket.id, "not_started")
        assert r.status_code == 400
        assert r.json()["code"] == "no_op_transition"

    def test_duplicate(self, client, login, api_ticket):
        headers = login(Role.ENGINEER)
        assert _move(client, headers, api_ticket.id, "blocked").status_code == 202
        r = _move(client, headers, api_ticket.id, "complete")
        assert r.status_code == 409
        assert r.json()["code"] == "duplicate_pending_proposal"

    def test_foreign_ticket_not_found(self, client, login, api_ticket):
        r = _move(client, login(Role.ADMIN, account_id=OTHER_ACCOUNT), api_ticket.id, "complete")
        assert r.status_code == 404

    def test_unknown_status_rejected(self, client, login, api_ticket):
        r = _move(client, login(Role.PM), api_ticket.id, "archived")
        assert r.status_code == 422


# ═════════════════════════════════════════════════════════════════════════
# PROPOSALS
# ═════════════════════════════════════════════════════════════════════════

class TestProposals:
    @pytest.fixture()
    def proposal_id(self, client, login, api_ticket):
        r = _move(client, login(Role.ENGINEER, name="Eve Engineer"), api_ticket.id, "in_progress")
        return r.json()["data"]["proposal"]["id"]

    def test_pending_list(self, client, login, proposal_id, project_id):
        r = client.get(
            "/proposals/pending",
            params={"project_id": str(project_id)},
            headers=login(Role.PM),
        )
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["count"] == 1
        item = data["pending"][0]
        assert item["proposal"]["id"] == proposal_id
        assert item["proposed_by"]["name"] == "Eve Engineer"

    def test_approve(self, client, login, api_ticket, proposal_id):
        headers = login(Role.PM)
        r = client.post(f"/proposals/{proposal_id}/approve", headers=headers)
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["proposal"]["status"] == "approved"
        assert data["ticket"]["status"] == "in_progress"

        pending = client.get("/proposals/pending", headers=headers).json()["data"]
        assert pending["count"] == 0

    def test_reject_with_reason(self, client, login, api_ticket, proposal_id):
        headers = login(Role.ADMIN)
        r = client.post(
            f"/proposals/{proposal_id}/reject", json={"reason": "Not yet"}, headers=headers
        )
        assert r.status_code == 200
        proposal = r.json()["data"]["proposal"]
        assert proposal["status"] == "rejected"
        assert proposal["rejection_reason"] == "Not yet"

        ticket = client.get(f"/tickets/{api_ticket.id}", headers=headers).json()["data"]["ticket"]
        assert ticket["status"] == "not_started"

    def test_reject_without_body(self, client, login, proposal_id):
        r = client.post(f"/proposals/{proposal_id}/reject", headers=login(Role.PM))
        assert r.status_code == 200
        assert r.json()["data"]["proposal"]["rejection_reason"] is None

    def test_engineer_cannot_approve(self, client, login, proposal_id):
        r = client.post(f"/proposals/{proposal_id}/approve", headers=login(Role.ENGINEER))
        assert r.status_code == 403

    def test_resolve_once(self, client, login, proposal_id):
        headers = login(Role.PM)
        assert client.post(f"/proposals/{proposal_id}/approve", headers=headers).status_code == 200
        r = client.post(f"/proposals/{proposal_id}/reject", headers=headers)
        assert r.status_code == 409
        assert r.json()["code"] == "already_resolved"

    def test_unknown_proposal(self, client, login):
        r = client.post(f"/proposals/{uuid.uuid4()}/approve", headers=login(Role.PM))
        assert r.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# TICKETS & PROFILE
# ═════════════════════════════════════════════════════════════════════════

class TestTicketsAndProfile:
    def test_create_and_list(self, client, login, project_id):
        headers = login(Role.PM)
        r = client.post(
            f"/projects/{project_id}/tickets",
            json={"title": "Billing export", "priority": "high"},
            headers=headers,
        )
        assert r.status_code == 201
        assert r.json()["data"]["ticket"]["status"] == TicketStatus.NOT_STARTED.value

        tickets = client.get(f"/projects/{project_id}/tickets", headers=headers).json()["data"]["tickets"]
        assert [t["title"] for t in tickets] == ["Billing export"]

    def test_list_is_tenant_scoped(self, client, login, api_ticket, project_id):
        r = client.get(
            f"/projects/{project_id}/tickets", headers=login(Role.PM, account_id=OTHER_ACCOUNT)
        )
        assert r.json()["data"]["tickets"] == []

    def test_update_profile(self, client, login):
        headers = login(Role.VIEWER)
        r = client.patch("/me", json={"role": "engineer", "specialization": "QA"}, headers=headers)
        assert r.status_code == 200
        profile = r.json()["data"]["profile"]
        assert profile["role"] == "engineer"
        assert profile["specialization"] == "QA"

    def test_empty_profile_update(self, client, login):
        r = client.patch("/me", json={}, headers=login(Role.ENGINEER))
        assert r.status_code == 400
        assert r.json()["error"] == "No valid updates provided"

    def test_admin_self_demotion_forbidden(self, client, login):
        r = client.patch("/me", json={"role": "viewer"}, headers=login(Role.ADMIN))
        assert r.status_code == 403
