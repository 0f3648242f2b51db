"""
Roadmap Engine Proposal Ledger

Durable record of status-change proposals.

Lifecycle:
    create() -> PENDING -> resolve() -> APPROVED | REJECTED

Rules:
1. At most one PENDING proposal per ticket (first proposer wins)
2. A proposal is resolved exactly once; resolving again is an error,
   never a silent success
3. Resolved proposals are kept for audit but drop out of list_pending()
"""

import logging
from typing import List, Optional
from uuid import UUID

from ..models.ticket import (
    Identity,
    Proposal,
    ProposalOutcome,
    ProposalStatus,
    TicketStatus,
    utcnow,
)
from .authorization import AuthorizationGuard
from .errors import NotFound
from .state_machine import validate_transition

logger = logging.getLogger(__name__)


class ProposalLedger:
    """
    Creates, lists and resolves proposals.

    Uniqueness and resolve-once are enforced by the proposal repository
    (partial unique index / conditional update), not by a read-then-write
    here, so concurrent callers cannot both succeed.
    """

    def __init__(self, proposal_repo, guard: Optional[AuthorizationGuard] = None):
        self.proposal_repo = proposal_repo
        self.guard = guard or AuthorizationGuard()

    async def create(
        self,
        ticket_id: UUID,
        account_id: str,
        project_id: UUID,
        proposer: UUID,
        from_status: TicketStatus,
        to_status: TicketStatus
    ) -> Proposal:
        """
        Record a pending proposal.

        Raises:
            NoOpTransition: from_status == to_status
            DuplicatePendingProposal: the ticket already has a pending proposal
        """
        target = validate_transition(from_status, to_status)

        proposal = Proposal(
            account_id=account_id,
            ticket_id=ticket_id,
            project_id=project_id,
            proposed_by=proposer,
            from_status=TicketStatus(from_status),
            to_status=target,
        )
        await self.proposal_repo.insert_pending(proposal)

        logger.info(
            "Proposal %s created: ticket %s %s -> %s",
            proposal.id, ticket_id, proposal.from_status.value, target.value,
            extra={
                "account_id": account_id,
                "ticket_id": str(ticket_id),
                "proposal_id": str(proposal.id),
                "event_type": "proposal_created",
            },
        )
        return proposal

    async def get(self, account_id: str, proposal_id: UUID) -> Proposal:
        proposal = await self.proposal_repo.get(proposal_id)
        if proposal is None or proposal.account_id != account_id:
            raise NotFound("Proposal", proposal_id)
        return proposal

    async def list_pending(
        self,
        account_id: str,
        project_id: Optional[UUID] = None
    ) -> List[Proposal]:
        """Pending proposals of one account, optionally one project, oldest first."""
        return await self.proposal_repo.list_pending(account_id, project_id)

    async def resolve(
        self,
        proposal_id: UUID,
        resolver: Identity,
        outcome: ProposalOutcome,
        reason: Optional[str] = None
    ) -> Proposal:
        """
        Approve or reject a pending proposal.

        Raises:
            Forbidden: resolver is not a PM or admin
            NotFound: no such proposal in the resolver's account
            AlreadyResolved: the proposal is no longer pending
        """
        self.guard.require_resolve(resolver)
        outcome = ProposalOutcome(outcome)

        status = (
            ProposalStatus.APPROVED
            if outcome == ProposalOutcome.APPROVED
            else ProposalStatus.REJECTED
        )
        resolved = await self.proposal_repo.mark_resolved(
            proposal_id,
            resolver.account_id,
            status,
            resolved_by=resolver.user_id,
            resolved_at=utcnow(),
            rejection_reason=reason if status == ProposalStatus.REJECTED else None,
        )

        logger.info(
            "Proposal %s %s by %s",
            proposal_id, status.value, resolver.user_id,
            extra={
                "account_id": resolver.account_id,
                "ticket_id": str(resolved.ticket_id),
                "proposal_id": str(proposal_id),
                "event_type": f"proposal_{status.value}",
            },
        )
        return resolved
