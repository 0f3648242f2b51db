"""
Roadmap Engine Identity & Tenant Resolver

Maps a session token from the identity provider to
(user_id, account_id, role).

Token:     HS256 JWT, Auth0-style claims
Account:   app_metadata.account_id
           -> user_metadata.account_id
           -> org_id
           -> "<provider>|<email domain or 'default'>"
Users:     created on first login with role 'viewer'

Everything downstream trusts the returned Identity and never looks at
the token again.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from ..models.ticket import Identity, User
from .errors import Unauthenticated

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def extract_account_id(claims: dict) -> str:
    """Pick the tenant for a set of verified claims."""
    subject = claims.get("sub")
    if not subject:
        raise Unauthenticated()

    for metadata_key in ("app_metadata", "user_metadata"):
        metadata = claims.get(metadata_key) or {}
        if metadata.get("account_id"):
            return str(metadata["account_id"])

    if claims.get("org_id"):
        return str(claims["org_id"])

    # Single-tenant fallback: provider prefix + email domain
    provider = subject.split("|")[0]
    email = claims.get("email") or ""
    domain = email.split("@")[1] if "@" in email else "default"
    return f"{provider}|{domain}"


def encode_session_token(
    subject: str,
    secret: str,
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    account_id: Optional[str] = None,
    org_id: Optional[str] = None,
    expires_in: int = DEFAULT_ACCESS_EXPIRES,
    audience: Optional[str] = None,
    algorithm: str = ALGORITHM
) -> str:
    """Issue a session token in the identity provider's format (dev/tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "jti": str(uuid.uuid4()),
    }
    if name:
        payload["name"] = name
    if email:
        payload["email"] = email
    if account_id:
        payload["app_metadata"] = {"account_id": account_id}
    if org_id:
        payload["org_id"] = org_id
    if audience:
        payload["aud"] = audience
    return jwt.encode(payload, secret, algorithm=algorithm)


class IdentityResolver:
    """
    Verifies session tokens and resolves the calling user.

    Raises Unauthenticated for a missing, expired or forged token, and
    for a user whose stored account differs from the token's account
    (account_id never changes once set).
    """

    def __init__(
        self,
        user_repo,
        secret: str,
        algorithm: str = ALGORITHM,
        audience: Optional[str] = None
    ):
        self.user_repo = user_repo
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def decode(self, token: Optional[str]) -> dict:
        if not token:
            raise Unauthenticated()
        options = {"require": ["sub", "exp"]}
        if not self.audience:
            options["verify_aud"] = False
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Session expired. Please sign in again.")
        except jwt.InvalidTokenError as e:
            logger.warning("Rejected session token: %s", e, extra={"event_type": "invalid_token"})
            raise Unauthenticated()

    async def current_user(self, token: Optional[str]) -> User:
        claims = self.decode(token)
        account_id = extract_account_id(claims)
        subject = claims["sub"]

        user = await self.user_repo.get_by_subject(subject)
        if user is None:
            user = User(
                account_id=account_id,
                auth_subject=subject,
                name=claims.get("name") or claims.get("email") or "Unknown",
                email=claims.get("email") or "",
            )
            await self.user_repo.add(user)
            logger.info(
                "Created user %s on first login",
                user.id,
                extra={"account_id": account_id, "event_type": "user_created"},
            )
            return user

        if user.account_id != account_id:
            logger.warning(
                "User %s presented account %s but belongs to %s",
                user.id, account_id, user.account_id,
                extra={"account_id": user.account_id, "event_type": "account_mismatch"},
            )
            raise Unauthenticated("Session does not match your account. Please sign in again.")
        return user

    async def resolve(self, token: Optional[str]) -> Identity:
        user = await self.current_user(token)
        return user.identity()
