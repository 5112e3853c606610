"""Bearer-token verification for identity provider JWTs.

The identity provider issues signed JWTs whose ``sub`` claim is the user id
(the primary key of the ``profiles`` table) and whose ``email`` claim is the
user's billing-contact address.  Verification is signature, expiry and,
when configured, audience and issuer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import jwt

from stocktrack_api.config import APISettings
from stocktrack_api.errors import Unauthenticated

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class VerifiedIdentity:
    """Claims extracted from a successfully verified identity token."""

    user_id: str
    email: str | None = None


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        return None
    token = authorization[len(_BEARER_PREFIX) :].strip()
    return token or None


class TokenVerifier:
    """Verify identity tokens with PyJWT.

    Parameters
    ----------
    secret:
        Shared HMAC secret (or PEM public key for asymmetric algorithms).
    algorithm:
        Accepted signing algorithm.
    audience, issuer:
        Optional expected ``aud`` / ``iss`` claims.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        audience: str | None = None,
        issuer: str | None = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience
        self._issuer = issuer

    @classmethod
    def from_settings(cls, settings: APISettings) -> TokenVerifier:
        return cls(
            settings.jwt_secret.get_secret_value(),
            algorithm=settings.jwt_algorithm,
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )

    def verify(self, token: str | None) -> VerifiedIdentity:
        """Validate *token* and return the caller's identity.

        Raises
        ------
        Unauthenticated
            If no token is given, the verifier has no secret, or the token
            is invalid, expired, or lacks a subject.
        """
        if not token:
            raise Unauthenticated("Authorization required")
        if not self._secret:
            logger.error("Identity token secret is not configured; rejecting request")
            raise Unauthenticated("Invalid or expired session")

        options = {"require": ["exp", "sub"]}
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired identity token")
            raise Unauthenticated("Invalid or expired session")
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected invalid identity token: %s", exc)
            raise Unauthenticated("Invalid or expired session")

        user_id = str(claims.get("sub") or "").strip()
        if not user_id:
            raise Unauthenticated("Invalid or expired session")

        email = claims.get("email")
        return VerifiedIdentity(user_id=user_id, email=email if isinstance(email, str) and email else None)
