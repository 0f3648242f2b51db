"""
Shared pytest fixtures for the Roadmap Engine test suite.

Provides:
    - store: fresh in-memory store per test
    - ledger / workflow: services wired against the store
    - admin / pm / engineer / viewer: members of ACCOUNT
    - outsider: an engineer of OTHER_ACCOUNT
    - project_id, make_ticket: ticket factory for ACCOUNT
    - run: drive a coroutine to completion
"""

import asyncio
import uuid

import pytest

from roadmap_engine.models import Role, Ticket, TicketStatus, User
from roadmap_engine.services import AuthorizationGuard, ProposalLedger, WorkflowService
from roadmap_engine.store import InMemoryStore

ACCOUNT = "auth0|acme.io"
OTHER_ACCOUNT = "auth0|globex.io"


def run(coro):
    return asyncio.run(coro)


@pytest.fixture(name="run")
def run_fixture():
    return run


# ── Store & services ────────────────────────────────────────────────────


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def guard():
    return AuthorizationGuard()


@pytest.fixture()
def ledger(store, guard):
    return ProposalLedger(store.proposals, guard)


@pytest.fixture()
def workflow(store, ledger, guard):
    return WorkflowService(store.tickets, store.users, ledger, guard)


# ── Users ───────────────────────────────────────────────────────────────


def _member(store, role, account_id=ACCOUNT, name=None):
    user = User(
        account_id=account_id,
        auth_subject=f"auth0|{uuid.uuid4().hex[:12]}",
        name=name or f"{role.value.title()} User",
        email=f"{role.value}@{account_id.split('|')[1]}",
        role=role,
    )
    run(store.users.add(user))
    return user.identity()


@pytest.fixture()
def admin(store):
    return _member(store, Role.ADMIN)


@pytest.fixture()
def pm(store):
    return _member(store, Role.PM, name="Pat PM")


@pytest.fixture()
def engineer(store):
    return _member(store, Role.ENGINEER, name="Eve Engineer")


@pytest.fixture()
def viewer(store):
    return _member(store, Role.VIEWER)


@pytest.fixture()
def outsider(store):
    return _member(store, Role.ENGINEER, account_id=OTHER_ACCOUNT)


@pytest.fixture()
def member(store):
    """Factory for extra users: member(Role.ENGINEER, name="Ed")."""
    def _add(role, **kwargs):
        return _member(store, role, **kwargs)
    return _add


# ── Tickets ─────────────────────────────────────────────────────────────


@pytest.fixture()
def project_id():
    return uuid.uuid4()


@pytest.fixture()
def make_ticket(store, project_id):
    def _make(status=TicketStatus.NOT_STARTED, account_id=ACCOUNT, title="T101", project=None):
        ticket = Ticket(
            account_id=account_id,
            project_id=project or project_id,
            title=title,
            status=status,
        )
        run(store.tickets.add(ticket))
        return ticket
    return _make


@pytest.fixture()
def ticket(make_ticket):
    """T101, not_started."""
    return make_ticket()
