"""Session token issuance and verification (HS256 JWT)."""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import uuid4

import jwt
from jwt import InvalidTokenError

from ..core.exceptions import ExpiredToken, InvalidToken

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 86400  # 24h


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _signing_key(secret_key: str) -> str:
    # Separate from the vault master key derived from the same secret.
    return hashlib.sha256(f"session-token:{secret_key}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TokenClaims:
    """Claims a verified session token carries."""

    identity_key: str
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class IssuedToken:
    token: str
    claims: TokenClaims


class SessionTokenService:
    """Mint and verify stateless session tokens.

    Tokens bind an identity key (``sub``) and issue time (``iat``) and expire
    after ``ttl_seconds``. There is no server-side revocation list; expiry is
    purely claim based.
    """

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        issuer: str = "sp-vault",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._signing_key = _signing_key(secret_key)
        self.ttl = timedelta(seconds=ttl_seconds)
        self.issuer = issuer
        self._clock = clock or _utcnow

    def issue(self, identity_key: str) -> IssuedToken:
        """Sign a token for identity_key."""
        now = self._clock().replace(microsecond=0)
        expires_at = now + self.ttl
        jti = str(uuid4())

        claims = {
            "sub": identity_key,
            "iss": self.issuer,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": jti,
        }
        token = jwt.encode(claims, self._signing_key, algorithm=ALGORITHM)
        return IssuedToken(
            token=token,
            claims=TokenClaims(identity_key=identity_key, issued_at=now, expires_at=expires_at, token_id=jti),
        )

    def verify(self, token: str) -> TokenClaims:
        """Decode and validate a token.

        Raises:
            ExpiredToken: Signature is valid but ``exp`` has passed.
            InvalidToken: Anything else (missing, tampered, wrong issuer, no subject).
        """
        if not token:
            raise InvalidToken()

        try:
            claims = jwt.decode(
                token,
                key=self._signing_key,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"require": ["sub", "iat", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except InvalidTokenError as exc:
            raise InvalidToken() from exc

        # Expiry is checked against the service clock, not PyJWT's.
        try:
            issued_at = datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        except (TypeError, ValueError) as exc:
            raise InvalidToken() from exc

        if self._clock() >= expires_at:
            raise ExpiredToken()

        subject = str(claims.get("sub") or "").strip()
        if not subject:
            raise InvalidToken()

        return TokenClaims(
            identity_key=subject,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(claims.get("jti") or ""),
        )
