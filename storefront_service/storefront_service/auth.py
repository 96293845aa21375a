"""Bearer token decoding and role checks."""

import time
from dataclasses import dataclass
from typing import Optional

import jwt

from .exceptions import AuthenticationError, AuthorizationError
from .logger import logger

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by a verified bearer token."""

    user_id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    token = authorization.replace("Bearer ", "", 1).strip()
    return token or None


class TokenDecoder:
    """Verify HMAC-signed bearer tokens issued by the auth service.

    Args:
        secret: Shared signing secret.
        algorithm: Expected signing algorithm.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def decode(self, token: str) -> TokenClaims:
        """Verify ``token`` and return its claims.

        Raises:
            AuthenticationError: If the token is malformed, expired or badly signed.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token") from e
        return TokenClaims(
            user_id=str(payload.get("userId", "")),
            email=payload.get("email", ""),
            role=payload.get("role", "user"),
        )

    def encode(self, claims: TokenClaims, expires_in: Optional[int] = None) -> str:
        """Sign claims into a token. Used by tooling and tests."""
        payload: dict = {"userId": claims.user_id, "email": claims.email, "role": claims.role}
        if expires_in is not None:
            payload["exp"] = int(time.time()) + expires_in
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def optional_claims(self, authorization: Optional[str]) -> Optional[TokenClaims]:
        """Claims for a valid token, or None when the header is missing or invalid."""
        token = bearer_token(authorization)
        if token is None:
            return None
        try:
            return self.decode(token)
        except AuthenticationError:
            logger.info("Ignoring invalid bearer token")
            return None

    def require_claims(self, authorization: Optional[str]) -> TokenClaims:
        """Claims for a valid token.

        Raises:
            AuthenticationError: If the header is missing or the token is invalid.
        """
        token = bearer_token(authorization)
        if token is None:
            raise AuthenticationError("Authorization required")
        return self.decode(token)

    def require_admin(self, authorization: Optional[str]) -> TokenClaims:
        """Claims for a valid admin token.

        Raises:
            AuthenticationError: If the header is missing or the token is invalid.
            AuthorizationError: If the token does not carry the admin role.
        """
        claims = self.require_claims(authorization)
        if not claims.is_admin:
            raise AuthorizationError("Admin access required")
        return claims
