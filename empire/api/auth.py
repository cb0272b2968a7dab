"""
Authentication for the Empire REST API.

Sign-in happens against the hosted auth provider; this API never issues
credentials. It only verifies the bearer JWTs the provider signs:

- HS256 signature with the provider's JWT secret (via PyJWT)
- ``aud`` must match the configured audience ("authenticated")
- ``exp`` is required and enforced
- ``sub`` carries the user's UUID

Usage:
    verifier = TokenVerifier(settings.JWT_SECRET, audience=settings.JWT_AUDIENCE)
    user = verifier.verify(token)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import jwt as pyjwt

from empire.lib.exceptions import AuthenticationError
from empire.lib.security import hash_uid

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified provider token."""

    user_id: str
    expires_at: datetime
    email: str | None = None
    role: str = "authenticated"

    def is_expired(self) -> bool:
        return datetime.now(UTC) >= self.expires_at


class TokenVerifier:
    """
    Verifies provider-issued bearer tokens.

    Args:
        secret: Provider JWT secret. Empty means every token is rejected.
        audience: Expected ``aud`` claim
        issuer: Expected ``iss`` claim, not checked when None
        leeway_seconds: Clock skew tolerated on ``exp``/``iat``
    """

    ALGORITHMS = ["HS256"]

    def __init__(
        self,
        secret: str,
        audience: str = "authenticated",
        issuer: str | None = None,
        leeway_seconds: int = 0,
    ) -> None:
        self._secret = secret
        self.audience = audience
        self.issuer = issuer
        self.leeway_seconds = leeway_seconds

    def verify(self, token: str) -> AuthenticatedUser:
        """
        Verify a JWT and extract the user.

        Raises:
            AuthenticationError: Missing secret, bad signature, wrong audience,
                expired token, or a subject that is not a UUID
        """
        if not self._secret:
            raise AuthenticationError("Token verification is not configured.")

        try:
            payload = pyjwt.decode(
                token,
                self._secret,
                algorithms=self.ALGORITHMS,
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway_seconds,
                options={"require": ["exp", "sub"]},
            )
        except pyjwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise AuthenticationError("Token has expired.") from e
        except pyjwt.InvalidTokenError as e:
            logger.warning("Invalid token: %s", type(e).__name__)
            raise AuthenticationError("Invalid token.") from e

        subject = str(payload["sub"])
        try:
            user_id = str(uuid.UUID(subject))
        except ValueError as e:
            logger.warning("Token subject is not a UUID")
            raise AuthenticationError("Invalid token subject.") from e

        user = AuthenticatedUser(
            user_id=user_id,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
            email=payload.get("email"),
            role=payload.get("role", "authenticated"),
        )
        logger.debug("Token verified for user_hash=%s", hash_uid(user.user_id))
        return user


__all__ = ["AuthenticatedUser", "BEARER_PREFIX", "TokenVerifier"]
