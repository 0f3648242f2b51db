"""
Roadmap Engine Workflow Service

Where a ticket status change goes:

    PM / admin   -> applied to the ticket immediately
    engineer     -> recorded as a pending Proposal
    viewer       -> Forbidden

PMs and admins are the approval authority, so their own moves skip the
proposal step. Applying and proposing are mutually exclusive branches;
a request never does both.

Direct moves and approvals both write the ticket's status and are
serialized per ticket.
"""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
from uuid import UUID

from ..models.ticket import (
    Identity,
    PendingProposal,
    Priority,
    ProposalOutcome,
    ProposalStatus,
    ProposerSummary,
    Ticket,
    TicketStatus,
    TransitionResult,
)
from .authorization import AuthorizationGuard, can_apply_transition_directly
from .ledger import ProposalLedger
from .state_machine import validate_transition

logger = logging.getLogger(__name__)


class WorkflowService:
    """
    Orchestrates transition requests and proposal resolution.

    Nothing here retries or merges: every error reaches the caller,
    who decides what to show or retry.
    """

    def __init__(
        self,
        ticket_repo,
        user_repo,
        ledger: ProposalLedger,
        guard: Optional[AuthorizationGuard] = None
    ):
        self.ticket_repo = ticket_repo
        self.user_repo = user_repo
        self.ledger = ledger
        self.guard = guard or AuthorizationGuard()
        self._ticket_locks: Dict[UUID, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()

    @asynccontextmanager
    async def _ticket_lock(self, ticket_id: UUID):
        """Serialize status writes per ticket. The entry is dropped once idle."""
        lock = self._ticket_locks.setdefault(ticket_id, asyncio.Lock())
        self._lock_users[ticket_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[ticket_id] -= 1
            if not self._lock_users[ticket_id]:
                del self._lock_users[ticket_id]
                del self._ticket_locks[ticket_id]

    async def get_ticket(self, actor: Identity, ticket_id: UUID) -> Ticket:
        ticket = await self.ticket_repo.get(ticket_id)
        self.guard.require_same_account(actor, ticket, "Ticket", ticket_id)
        return ticket

    async def list_tickets(self, actor: Identity, project_id: UUID) -> List[Ticket]:
        return await self.ticket_repo.list_for_project(actor.account_id, project_id)

    async def create_ticket(
        self,
        actor: Identity,
        project_id: UUID,
        title: str,
        priority: Priority = Priority.MEDIUM,
        assignee_id: Optional[UUID] = None
    ) -> Ticket:
        """New tickets start in not_started, in the actor's account."""
        self.guard.require_create_ticket(actor)
        ticket = Ticket(
            account_id=actor.account_id,
            project_id=project_id,
            title=title,
            priority=priority,
            assignee_id=assignee_id,
        )
        await self.ticket_repo.add(ticket)
        logger.info(
            "Ticket %s created in project %s",
            ticket.id, project_id,
            extra={
                "account_id": actor.account_id,
                "ticket_id": str(ticket.id),
                "event_type": "ticket_created",
            },
        )
        return ticket

    async def request_transition(
        self,
        actor: Identity,
        ticket_id: UUID,
        to_status: TicketStatus
    ) -> TransitionResult:
        """
        Move a ticket, or propose the move.

        Raises:
            NotFound: ticket missing or in another account
            NoOpTransition: ticket already has to_status
            Forbidden: actor may not propose (viewer)
            DuplicatePendingProposal: a proposal for the ticket is pending
        """
        # Unknown and foreign ids fail here, before a lock is taken
        await self.get_ticket(actor, ticket_id)

        async with self._ticket_lock(ticket_id):
            ticket = await self.get_ticket(actor, ticket_id)
            target = validate_transition(ticket.status, to_status)
            self.guard.require_propose(actor)

            if can_apply_transition_directly(actor.role):
                updated = await self.ticket_repo.update_status(
                    ticket.id, actor.account_id, target
                )
                logger.info(
                    "Ticket %s moved %s -> %s by %s",
                    ticket.id, ticket.status.value, target.value, actor.user_id,
                    extra={
                        "account_id": actor.account_id,
                        "ticket_id": str(ticket.id),
                        "event_type": "transition_applied",
                    },
                )
                return TransitionResult(applied=updated)

        proposal = await self.ledger.create(
            ticket_id=ticket.id,
            account_id=actor.account_id,
            project_id=ticket.project_id,
            proposer=actor.user_id,
            from_status=ticket.status,
            to_status=target,
        )
        return TransitionResult(queued=proposal)

    async def resolve_transition(
        self,
        actor: Identity,
        proposal_id: UUID,
        outcome: ProposalOutcome,
        reason: Optional[str] = None
    ) -> Optional[Ticket]:
        """
        Approve or reject a proposal.

        Approval writes the proposal's to_status to the ticket, returning
        the updated ticket. Rejection leaves the ticket alone and returns
        None. The caller must refetch tickets and pending proposals.
        """
        proposal = await self.ledger.get(actor.account_id, proposal_id)

        async with self._ticket_lock(proposal.ticket_id):
            resolved = await self.ledger.resolve(proposal_id, actor, outcome, reason)
            if resolved.status != ProposalStatus.APPROVED:
                return None

            current = await self.ticket_repo.get(resolved.ticket_id)
            if current is not None and current.status != resolved.from_status:
                # Approval wins over drift; logged for the resolver to review
                logger.warning(
                    "Ticket %s drifted from %s to %s since proposal %s; applying %s",
                    resolved.ticket_id, resolved.from_status.value, current.status.value,
                    proposal_id, resolved.to_status.value,
                    extra={
                        "account_id": actor.account_id,
                        "ticket_id": str(resolved.ticket_id),
                        "proposal_id": str(proposal_id),
                        "event_type": "approval_over_drift",
                    },
                )
            return await self.ticket_repo.update_status(
                resolved.ticket_id, actor.account_id, resolved.to_status
            )

    async def list_pending(
        self,
        actor: Identity,
        project_id: Optional[UUID] = None
    ) -> List[PendingProposal]:
        """Pending proposals of the actor's account with proposer details."""
        proposals = await self.ledger.list_pending(actor.account_id, project_id)
        users = await self.user_repo.get_many(p.proposed_by for p in proposals)

        pending = []
        for proposal in proposals:
            user = users.get(proposal.proposed_by)
            summary = ProposerSummary(
                id=proposal.proposed_by,
                name=user.name if user else "Unknown",
                email=user.email if user else "",
            )
            pending.append(PendingProposal(proposal=proposal, proposed_by=summary))
        return pending
