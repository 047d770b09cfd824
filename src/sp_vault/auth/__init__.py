# SP Vault - Auth Module
# Password + PIN + one-time code login:
# - Credential hashing (PBKDF2-HMAC-SHA256)
# - One-time code ledger
# - Code delivery (SMTP or development log)
# - Session tokens (JWT)
# - Authentication state machine tying them together

from .authenticator import AuthState, Authenticator, LoginResult
from .hashing import CredentialHasher
from .identity_store import Identity, IdentityStore, normalize_identity_key
from .notifier import (
    EmailNotifier,
    LoggingNotifier,
    Notifier,
    UnconfiguredNotifier,
    build_notifier,
)
from .otp_ledger import OneTimeCodeLedger, VerificationResult, VerifyReason
from .tokens import IssuedToken, SessionTokenService, TokenClaims

__all__ = [
    "AuthState",
    "Authenticator",
    "LoginResult",
    "CredentialHasher",
    "Identity",
    "IdentityStore",
    "normalize_identity_key",
    "Notifier",
    "EmailNotifier",
    "LoggingNotifier",
    "UnconfiguredNotifier",
    "build_notifier",
    "OneTimeCodeLedger",
    "VerificationResult",
    "VerifyReason",
    "SessionTokenService",
    "TokenClaims",
    "IssuedToken",
]
