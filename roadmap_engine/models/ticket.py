"""
Roadmap Engine Models

Tenant-scoped tickets and the status-change proposals raised against them.

Core principles:
1. Every entity carries an account_id (tenant); it never changes once set
2. Ticket status moves only through the workflow service
3. Non-privileged moves become Proposals (pending -> approved | rejected)
4. A Proposal is resolved exactly once and kept for audit
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    ADMIN = "admin"
    PM = "pm"
    ENGINEER = "engineer"
    VIEWER = "viewer"      # Read-only member of the account


class Specialization(str, Enum):
    BACKEND = "Backend"
    FRONTEND = "Frontend"
    QA = "QA"
    DEVOPS = "DevOps"


class TicketStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETE = "complete"      # No automatic exit, manual moves still legal


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProposalStatus(str, Enum):
    PENDING = "pending"    # Waiting for a PM/admin decision
    APPROVED = "approved"
    REJECTED = "rejected"


class ProposalOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# CORE MODELS
# =============================================================================

class Identity(BaseModel):
    """
    Resolved caller of an operation.

    Produced once per request by the IdentityResolver; nothing downstream
    re-validates the session.
    """
    user_id: UUID
    account_id: str
    role: Role


class User(BaseModel):
    """Account member. Created on first login, never deleted."""
    id: UUID = Field(default_factory=uuid4)
    account_id: str

    auth_subject: str  # "sub" claim of the identity provider
    name: str
    email: str = ""

    role: Role = Role.VIEWER
    specialization: Optional[Specialization] = None

    created_at: datetime = Field(default_factory=utcnow)

    def identity(self) -> Identity:
        return Identity(user_id=self.id, account_id=self.account_id, role=self.role)


class Ticket(BaseModel):
    """
    A feature/ticket on a project roadmap.

    `status` is the subject of the workflow.
    """
    id: UUID = Field(default_factory=uuid4)
    account_id: str
    project_id: UUID

    title: str
    status: TicketStatus = TicketStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    assignee_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Proposal(BaseModel):
    """
    A recorded, unresolved request to move a ticket to another status.

    At most one PENDING proposal exists per ticket.
    """
    id: UUID = Field(default_factory=uuid4)
    account_id: str
    ticket_id: UUID
    project_id: UUID

    proposed_by: UUID
    from_status: TicketStatus
    to_status: TicketStatus

    status: ProposalStatus = ProposalStatus.PENDING
    rejection_reason: Optional[str] = None

    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == ProposalStatus.PENDING


# =============================================================================
# READ MODELS
# =============================================================================

class ProposerSummary(BaseModel):
    id: UUID
    name: str
    email: str = ""


class PendingProposal(BaseModel):
    """Pending proposal as shown in the approval list."""
    proposal: Proposal
    proposed_by: ProposerSummary


class TransitionResult(BaseModel):
    """
    Outcome of a transition request.

    Exactly one of `applied` (privileged, ticket already moved) or
    `queued` (proposal awaiting approval) is set.
    """
    applied: Optional[Ticket] = None
    queued: Optional[Proposal] = None

    @property
    def is_queued(self) -> bool:
        return self.queued is not None
