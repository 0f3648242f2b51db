"""
Roadmap Engine Services

Status-change workflow for tenant-scoped tickets.
Leaves first: identity -> authorization -> state machine -> ledger
-> workflow -> reconciliation.
"""

from .errors import (
    WorkflowError,
    Unauthenticated,
    Forbidden,
    NotFound,
    NoOpTransition,
    DuplicatePendingProposal,
    AlreadyResolved,
    InvalidRequest,
)
from .identity import IdentityResolver, extract_account_id, encode_session_token
from .authorization import (
    AuthorizationGuard,
    can_propose_transition,
    can_apply_transition_directly,
    can_resolve_proposal,
)
from .state_machine import validate_transition, is_legal_transition
from .ledger import ProposalLedger
from .workflow import WorkflowService
from .reconciliation import LocalEdit, EffectiveTicket, OptimisticView, project
from .cache import TimedCache
from .board import BoardClient
from .users import UserService

__all__ = [
    # Errors
    "WorkflowError", "Unauthenticated", "Forbidden", "NotFound",
    "NoOpTransition", "DuplicatePendingProposal", "AlreadyResolved", "InvalidRequest",

    # Identity & authorization
    "IdentityResolver", "extract_account_id", "encode_session_token",
    "AuthorizationGuard", "can_propose_transition", "can_apply_transition_directly",
    "can_resolve_proposal",

    # Workflow core
    "validate_transition", "is_legal_transition",
    "ProposalLedger", "WorkflowService",

    # Client side
    "LocalEdit", "EffectiveTicket", "OptimisticView", "project",
    "TimedCache", "BoardClient",

    "UserService",
]
