"""
Roadmap Engine In-Memory Store

Async repositories backed by dicts. Used for development and tests.

Check-and-write steps run without an await in between, so on a single
event loop they are atomic: this is what enforces one pending proposal
per ticket and resolve-once here. Records are copied on the way in and
out so callers never hold live references to stored rows.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from ..models.ticket import (
    Proposal,
    ProposalStatus,
    Ticket,
    TicketStatus,
    User,
    utcnow,
)
from ..services.errors import AlreadyResolved, DuplicatePendingProposal, NotFound


class InMemoryUserRepo:
    def __init__(self):
        self._users: Dict[UUID, User] = {}

    async def get(self, user_id: UUID) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_many(self, user_ids: Iterable[UUID]) -> Dict[UUID, User]:
        return {
            uid: self._users[uid].model_copy()
            for uid in set(user_ids)
            if uid in self._users
        }

    async def get_by_subject(self, auth_subject: str) -> Optional[User]:
        for user in self._users.values():
            if user.auth_subject == auth_subject:
                return user.model_copy()
        return None

    async def add(self, user: User) -> User:
        if await self.get_by_subject(user.auth_subject) is not None:
            raise ValueError(f"User with subject {user.auth_subject} already exists")
        self._users[user.id] = user.model_copy()
        return user

    async def save(self, user: User) -> User:
        stored = self._users.get(user.id)
        if stored is None:
            raise NotFound("User", user.id)
        # account_id is immutable once set
        self._users[user.id] = user.model_copy(update={"account_id": stored.account_id})
        return self._users[user.id].model_copy()


class InMemoryTicketRepo:
    def __init__(self):
        self._tickets: Dict[UUID, Ticket] = {}

    async def get(self, ticket_id: UUID) -> Optional[Ticket]:
        ticket = self._tickets.get(ticket_id)
        return ticket.model_copy() if ticket else None

    async def add(self, ticket: Ticket) -> Ticket:
        self._tickets[ticket.id] = ticket.model_copy()
        return ticket

    async def list_for_project(self, account_id: str, project_id: UUID) -> List[Ticket]:
        return [
            t.model_copy()
            for t in sorted(self._tickets.values(), key=lambda t: t.created_at)
            if t.account_id == account_id and t.project_id == project_id
        ]

    async def update_status(
        self,
        ticket_id: UUID,
        account_id: str,
        status: TicketStatus
    ) -> Ticket:
        """Single-row status update scoped to the account."""
        ticket = self._tickets.get(ticket_id)
        if ticket is None or ticket.account_id != account_id:
            raise NotFound("Ticket", ticket_id)
        updated = ticket.model_copy(update={"status": status, "updated_at": utcnow()})
        self._tickets[ticket_id] = updated
        return updated.model_copy()


class InMemoryProposalRepo:
    def __init__(self):
        self._proposals: Dict[UUID, Proposal] = {}

    async def get(self, proposal_id: UUID) -> Optional[Proposal]:
        proposal = self._proposals.get(proposal_id)
        return proposal.model_copy() if proposal else None

    async def get_pending_for_ticket(self, ticket_id: UUID) -> Optional[Proposal]:
        for proposal in self._proposals.values():
            if proposal.ticket_id == ticket_id and proposal.is_pending:
                return proposal.model_copy()
        return None

    async def insert_pending(self, proposal: Proposal) -> Proposal:
        """
        Insert a pending proposal.

        Equivalent of the partial unique index on (account_id, ticket_id)
        WHERE status = 'pending': the first insert wins.
        """
        for existing in self._proposals.values():
            if (
                existing.account_id == proposal.account_id
                and existing.ticket_id == proposal.ticket_id
                and existing.is_pending
            ):
                raise DuplicatePendingProposal(proposal.ticket_id)
        self._proposals[proposal.id] = proposal.model_copy()
        return proposal

    async def list_pending(
        self,
        account_id: str,
        project_id: Optional[UUID] = None
    ) -> List[Proposal]:
        return [
            p.model_copy()
            for p in sorted(self._proposals.values(), key=lambda p: p.created_at)
            if p.account_id == account_id
            and p.is_pending
            and (project_id is None or p.project_id == project_id)
        ]

    async def mark_resolved(
        self,
        proposal_id: UUID,
        account_id: str,
        status: ProposalStatus,
        resolved_by: UUID,
        resolved_at: datetime,
        rejection_reason: Optional[str] = None
    ) -> Proposal:
        """Conditional update: only a pending row can be resolved."""
        proposal = self._proposals.get(proposal_id)
        if proposal is None or proposal.account_id != account_id:
            raise NotFound("Proposal", proposal_id)
        if not proposal.is_pending:
            raise AlreadyResolved(proposal_id, proposal.status)
        resolved = proposal.model_copy(update={
            "status": status,
            "resolved_by": resolved_by,
            "resolved_at": resolved_at,
            "rejection_reason": rejection_reason,
        })
        self._proposals[proposal_id] = resolved
        return resolved.model_copy()


class InMemoryStore:
    """Bundle of the three repositories."""

    def __init__(self):
        self.users = InMemoryUserRepo()
        self.tickets = InMemoryTicketRepo()
        self.proposals = InMemoryProposalRepo()

    def close(self) -> None:
        pass
