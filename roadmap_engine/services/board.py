"""
Roadmap Engine Board Client

The caller side of a project board: one user looking at one project.

Flow for a drag-and-drop move:
1. Show the new status locally (OptimisticView.begin)
2. Ask the workflow service to move the ticket
3. Applied  -> clear the local edit
   Queued   -> keep it, marked pending
   Error    -> drop it, then re-raise for the UI to display
4. Invalidate cached tickets/pending lists for the project
"""

import logging
from typing import List, Optional
from uuid import UUID

from ..models.ticket import (
    Identity,
    PendingProposal,
    ProposalOutcome,
    Ticket,
    TicketStatus,
    TransitionResult,
)
from .cache import TimedCache
from .errors import WorkflowError
from .reconciliation import EffectiveTicket, OptimisticView
from .workflow import WorkflowService

logger = logging.getLogger(__name__)


class BoardClient:
    def __init__(
        self,
        workflow: WorkflowService,
        actor: Identity,
        project_id: UUID,
        cache: Optional[TimedCache] = None
    ):
        self.workflow = workflow
        self.actor = actor
        self.project_id = project_id
        self.cache = cache or TimedCache()
        self.view = OptimisticView()

    def _key(self, kind: str):
        return (self.actor.account_id, self.project_id, kind)

    async def tickets(self) -> List[Ticket]:
        return await self.cache.get_or_load(
            self._key("tickets"),
            lambda: self.workflow.list_tickets(self.actor, self.project_id),
        )

    async def pending(self) -> List[PendingProposal]:
        return await self.cache.get_or_load(
            self._key("pending"),
            lambda: self.workflow.list_pending(self.actor, self.project_id),
        )

    async def refresh(self) -> List[EffectiveTicket]:
        """Refetch canonical state and settle edits whose proposal resolved."""
        self.invalidate()
        pending = await self.pending()
        self.view.settle_resolved(p.proposal.id for p in pending)
        return await self.board()

    async def board(self) -> List[EffectiveTicket]:
        return self.view.project(await self.tickets())

    def invalidate(self) -> None:
        self.cache.invalidate_prefix((self.actor.account_id, self.project_id))

    async def move(self, ticket_id: UUID, to_status: TicketStatus) -> TransitionResult:
        snapshot = next((t for t in await self.tickets() if t.id == ticket_id), None)
        self.view.begin(ticket_id, to_status, snapshot.updated_at if snapshot else None)
        try:
            result = await self.workflow.request_transition(self.actor, ticket_id, to_status)
        except Exception as e:
            # Any failure reverts the card, known workflow errors included
            self.view.fail(ticket_id)
            level = logging.INFO if isinstance(e, WorkflowError) else logging.ERROR
            logger.log(level, "Move of ticket %s rolled back: %s", ticket_id, e)
            raise
        finally:
            self.invalidate()

        self.view.confirm(ticket_id, result)
        return result

    async def resolve(
        self,
        proposal_id: UUID,
        outcome: ProposalOutcome,
        reason: Optional[str] = None
    ) -> Optional[Ticket]:
        try:
            return await self.workflow.resolve_transition(
                self.actor, proposal_id, outcome, reason
            )
        finally:
            self.invalidate()

    async def approve(self, proposal_id: UUID) -> Optional[Ticket]:
        return await self.resolve(proposal_id, ProposalOutcome.APPROVED)

    async def reject(self, proposal_id: UUID, reason: Optional[str] = None) -> None:
        await self.resolve(proposal_id, ProposalOutcome.REJECTED, reason)
