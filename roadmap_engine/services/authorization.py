"""
Roadmap Engine Authorization Guard

The single place that knows which role may do what.

Every call site delegates here instead of re-checking
`role in (pm, admin)` on its own. All checks are pure functions of the
role (and, for tenant checks, of the entity's account_id); a denial
raises, it never silently no-ops.
"""

import logging
from typing import Optional

from ..models.ticket import Identity, Role
from .errors import Forbidden, NotFound

logger = logging.getLogger(__name__)


PRIVILEGED_ROLES = frozenset({Role.PM, Role.ADMIN})
READ_ONLY_ROLES = frozenset({Role.VIEWER})


def can_propose_transition(role: Role) -> bool:
    """Any account member except viewers."""
    return Role(role) not in READ_ONLY_ROLES


def can_apply_transition_directly(role: Role) -> bool:
    return Role(role) in PRIVILEGED_ROLES


def can_resolve_proposal(role: Role) -> bool:
    """
    PMs and admins only.

    Evaluated against the resolver's role at resolution time, so a
    proposer can never approve their own proposal while non-privileged.
    """
    return Role(role) in PRIVILEGED_ROLES


class AuthorizationGuard:
    """
    Raises Forbidden / NotFound before protected operations.

    Use before:
    - Proposing or applying a status change
    - Approving or rejecting a proposal
    - Reading any tenant-scoped entity
    """

    def require_propose(self, identity: Identity) -> None:
        if not can_propose_transition(identity.role):
            self._deny(identity, "propose status changes",
                       "Viewers have read-only access.")

    def require_create_ticket(self, identity: Identity) -> None:
        # Ticket creation shares the direct-edit privilege
        if not can_apply_transition_directly(identity.role):
            self._deny(identity, "create tickets",
                       "Only PMs and admins can create tickets.")

    def require_resolve(self, identity: Identity) -> None:
        if not can_resolve_proposal(identity.role):
            self._deny(identity, "approve or reject status changes",
                       "Only PMs and admins can resolve proposals.")

    def require_same_account(
        self,
        identity: Identity,
        entity,
        entity_name: str,
        entity_id: Optional[object] = None
    ) -> None:
        """
        Raise NotFound if the entity is missing or lives in another account.

        Foreign entities are reported as missing so that ids from other
        tenants cannot be enumerated.
        """
        if entity is None or entity.account_id != identity.account_id:
            raise NotFound(entity_name, entity_id)

    def _deny(self, identity: Identity, action: str, hint: str) -> None:
        logger.warning(
            "Denied %s for user %s (role=%s)",
            action, identity.user_id, identity.role.value,
            extra={"account_id": identity.account_id, "event_type": "access_denied"},
        )
        raise Forbidden(f"Access denied. You cannot {action}. {hint}")
