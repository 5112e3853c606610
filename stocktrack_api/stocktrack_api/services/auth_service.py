"""Identity and authorization gate for billing operations.

Resolves a bearer token to a :class:`Caller`: the verified user, the tenant
drawn from the user's profile and the profile's role.  The tenant is never
taken from the request itself, so a caller can only act on their own
company.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from stocktrack_api.errors import Forbidden, NotFound, UpstreamError
from stocktrack_api.middleware.rbac import Role, can_manage_billing, parse_role
from stocktrack_api.security import TokenVerifier
from stocktrack_api.state.repository import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """An authenticated, authorized member of a tenant."""

    user_id: str
    tenant_id: str
    role: Role
    email: str | None = None


class AuthorizationGate:
    """Authenticate a token and require a billing-capable role.

    Parameters
    ----------
    verifier:
        Identity token verifier.
    profiles:
        Profile lookup used to resolve tenant and role.
    """

    def __init__(self, verifier: TokenVerifier, profiles: ProfileRepository) -> None:
        self._verifier = verifier
        self._profiles = profiles

    async def authorize(self, token: str | None) -> Caller:
        """Return the caller behind *token*.

        Raises
        ------
        Unauthenticated
            No token, or the token does not verify.
        NotFound
            The user has no profile.
        Forbidden
            The profile has no tenant, or its role is not manager/admin.
        UpstreamError
            The profile lookup itself failed.
        """
        identity = self._verifier.verify(token)

        try:
            profile = await self._profiles.get(identity.user_id)
        except SQLAlchemyError as exc:
            logger.error("Profile lookup failed for user %s", identity.user_id, exc_info=True)
            raise UpstreamError("Datastore unavailable, please retry") from exc

        if profile is None:
            raise NotFound("Profile not found")

        tenant_id = profile.company_id
        if not tenant_id or not profile.role:
            raise Forbidden("Only managers and admins can manage billing")

        try:
            role = parse_role(profile.role)
        except ValueError:
            logger.warning("Profile %s has unrecognised role %r", identity.user_id, profile.role)
            raise Forbidden("Only managers and admins can manage billing")

        if not can_manage_billing(role):
            raise Forbidden("Only managers and admins can manage billing")

        # Prefer the token's email; fall back to the one on the profile.
        email = identity.email or profile.email
        return Caller(user_id=identity.user_id, tenant_id=tenant_id, role=role, email=email)
