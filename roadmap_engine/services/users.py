"""
Roadmap Engine User Service

Own-profile reads and updates.

Rules:
1. Users only ever touch their own row
2. Non-admins may change their own role; admins keep theirs
3. Specialization is for engineers only; leaving the engineer role clears it
"""

import logging
from typing import Optional

from ..models.ticket import Identity, Role, Specialization, User
from .errors import Forbidden, InvalidRequest, NotFound

logger = logging.getLogger(__name__)

_UNSET = object()


class UserService:
    def __init__(self, user_repo):
        self.user_repo = user_repo

    async def get_profile(self, identity: Identity) -> User:
        user = await self.user_repo.get(identity.user_id)
        if user is None or user.account_id != identity.account_id:
            raise NotFound("User", identity.user_id)
        return user

    async def update_own_profile(
        self,
        identity: Identity,
        role: Optional[Role] = None,
        specialization=_UNSET
    ) -> User:
        """
        Change the caller's role and/or specialization.

        Pass specialization=None to clear it.
        """
        if role is None and specialization is _UNSET:
            raise InvalidRequest("No valid updates provided")

        user = await self.get_profile(identity)
        updates = {}

        if role is not None:
            role = Role(role)
            if user.role == Role.ADMIN and role != Role.ADMIN:
                raise Forbidden("Admins cannot change their own role.")
            updates["role"] = role
            if role != Role.ENGINEER:
                updates["specialization"] = None

        if specialization is not _UNSET:
            effective_role = updates.get("role", user.role)
            if specialization is not None:
                try:
                    specialization = Specialization(specialization)
                except ValueError:
                    raise InvalidRequest(
                        f"Invalid specialization '{specialization}'. Must be one of: "
                        + ", ".join(s.value for s in Specialization)
                    )
                if effective_role != Role.ENGINEER:
                    raise InvalidRequest("Specialization can only be set for engineers")
            updates["specialization"] = specialization

        updated = await self.user_repo.save(user.model_copy(update=updates))
        if "role" in updates and updates["role"] != user.role:
            logger.info(
                "User %s changed role %s -> %s",
                user.id, user.role.value, updates["role"].value,
                extra={"account_id": user.account_id, "event_type": "role_changed"},
            )
        return updated
