# SP Vault - API Security
# Bearer session tokens for every protected route.
#
# Clients send "Authorization: Bearer <jwt>" (token returned by
# register or login/verify). The dependency resolves the token to the
# identity key that scopes every vault operation.

from typing import Optional

from fastapi import Header

from ..core.config import get_settings
from ..core.exceptions import InvalidToken
from ..auth.tokens import SessionTokenService

# ── Singleton ────────────────────────────────────────────────────────

_token_service: Optional[SessionTokenService] = None


def get_token_service() -> SessionTokenService:
    """Get or create the SessionTokenService singleton."""
    global _token_service
    if _token_service is None:
        settings = get_settings()
        _token_service = SessionTokenService(
            secret_key=settings.secret_key,
            ttl_seconds=settings.token_ttl_seconds,
            issuer=settings.token_issuer,
        )
    return _token_service


def set_token_service(service: Optional[SessionTokenService]):
    """Allow DI for testing."""
    global _token_service
    _token_service = service


def _extract_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise InvalidToken("Access token required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidToken("Authorization header must be 'Bearer <token>'")
    return token.strip()


async def require_identity(authorization: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency: verify the bearer token and return its identity key.

    Raises:
        InvalidToken: Header missing, malformed, or token fails verification.
        ExpiredToken: Token signature is valid but it has expired.

    Both are turned into 401 responses by the app's VaultError handler.
    """
    token = _extract_bearer(authorization)
    claims = get_token_service().verify(token)
    return claims.identity_key
