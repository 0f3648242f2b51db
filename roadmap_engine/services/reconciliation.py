"""
Roadmap Engine Optimistic Reconciliation

Client-side view of a board while a drag-and-drop move is in flight.

    effective = canonical tickets overlaid with local edits

A local edit lives from the moment the card is dropped until:
- the move is applied          -> cleared (canonical now carries it)
- the move is queued           -> kept, marked pending, until the
                                  proposal is resolved
- the request fails for any reason -> discarded at once

A failed request must never leave a ghost status on the board.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.ticket import Ticket, TicketStatus, TransitionResult, utcnow


class LocalEdit(BaseModel):
    """A status the client shows before the server has confirmed it."""
    ticket_id: UUID
    to_status: TicketStatus
    created_at: datetime = Field(default_factory=utcnow)
    # updated_at of the canonical ticket the edit was made on (server clock)
    base_updated_at: Optional[datetime] = None
    proposal_id: Optional[UUID] = None  # Set once the move is queued

    @property
    def is_pending_approval(self) -> bool:
        return self.proposal_id is not None


class EffectiveTicket(BaseModel):
    ticket: Ticket
    canonical_status: TicketStatus
    pending_proposal_id: Optional[UUID] = None

    @property
    def is_optimistic(self) -> bool:
        return self.ticket.status != self.canonical_status


def is_superseded(canonical: Ticket, edit: LocalEdit) -> bool:
    """
    True once canonical state has caught up with or overtaken the edit.

    Only server timestamps are compared: canonical has moved on when its
    updated_at is newer than the snapshot the edit was made on. Queued
    edits are only superseded by their target status arriving; the
    canonical ticket is expected to stay put while the proposal waits.
    """
    if canonical.status == edit.to_status:
        return True
    if edit.is_pending_approval or edit.base_updated_at is None:
        return False
    return canonical.updated_at > edit.base_updated_at


def project(
    canonical_tickets: Iterable[Ticket],
    local_edits: Mapping[UUID, LocalEdit]
) -> List[EffectiveTicket]:
    """
    Pure projection of canonical tickets plus local edits.

    Order of canonical_tickets is preserved. Edits for tickets absent
    from the canonical list are ignored.
    """
    effective = []
    for ticket in canonical_tickets:
        edit = local_edits.get(ticket.id)
        if edit is None or is_superseded(ticket, edit):
            effective.append(EffectiveTicket(ticket=ticket, canonical_status=ticket.status))
            continue
        effective.append(EffectiveTicket(
            ticket=ticket.model_copy(update={"status": edit.to_status}),
            canonical_status=ticket.status,
            pending_proposal_id=edit.proposal_id,
        ))
    return effective


class OptimisticView:
    """Holds the local edits of one board and applies the rules above."""

    def __init__(self):
        self._edits: Dict[UUID, LocalEdit] = {}

    @property
    def edits(self) -> Dict[UUID, LocalEdit]:
        return dict(self._edits)

    def begin(
        self,
        ticket_id: UUID,
        to_status: TicketStatus,
        base_updated_at: Optional[datetime] = None
    ) -> LocalEdit:
        edit = LocalEdit(
            ticket_id=ticket_id,
            to_status=TicketStatus(to_status),
            base_updated_at=base_updated_at,
        )
        self._edits[ticket_id] = edit
        return edit

    def confirm(self, ticket_id: UUID, result: TransitionResult) -> None:
        if result.is_queued:
            edit = self._edits.get(ticket_id)
            if edit is not None:
                self._edits[ticket_id] = edit.model_copy(
                    update={"proposal_id": result.queued.id}
                )
        else:
            self._edits.pop(ticket_id, None)

    def fail(self, ticket_id: UUID) -> None:
        self._edits.pop(ticket_id, None)

    def settle(self, ticket_id: UUID) -> None:
        """Drop the edit once its proposal has been approved or rejected."""
        self._edits.pop(ticket_id, None)

    def settle_resolved(self, pending_proposal_ids: Iterable[UUID]) -> None:
        """Drop queued edits whose proposal is no longer pending."""
        still_pending = set(pending_proposal_ids)
        for ticket_id, edit in list(self._edits.items()):
            if edit.is_pending_approval and edit.proposal_id not in still_pending:
                del self._edits[ticket_id]

    def project(self, canonical_tickets: Iterable[Ticket]) -> List[EffectiveTicket]:
        return project(canonical_tickets, self._edits)
