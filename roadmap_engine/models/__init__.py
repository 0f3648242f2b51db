"""
Roadmap Engine Models

Tenants, tickets and status-change proposals.
"""

from .ticket import (
    # Enums
    Role,
    Specialization,
    TicketStatus,
    Priority,
    ProposalStatus,
    ProposalOutcome,

    # Core models
    Identity,
    User,
    Ticket,
    Proposal,

    # Read models
    ProposerSummary,
    PendingProposal,
    TransitionResult,

    utcnow,
)

__all__ = [
    "Role", "Specialization", "TicketStatus", "Priority", "ProposalStatus", "ProposalOutcome",
    "Identity", "User", "Ticket", "Proposal",
    "ProposerSummary", "PendingProposal", "TransitionResult",
    "utcnow",
]
