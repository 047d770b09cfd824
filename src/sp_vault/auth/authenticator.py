# SP Vault - Authentication State Machine
#
# Three factors: password, PIN, one-time code (email).
#
#   ANONYMOUS --(password+PIN ok)--> CREDENTIALS_VERIFIED
#   CREDENTIALS_VERIFIED --(code issued + delivered)--> CODE_ISSUED
#   CODE_ISSUED --(code verified)--> AUTHENTICATED (session token minted)
#
# Any failure drops the caller back to ANONYMOUS, except a failed code
# check, which leaves the caller in CODE_ISSUED: they may retry the code
# or ask for a resend (which re-checks password + PIN first).
#
# Wrong identity, wrong password and wrong PIN all produce the same
# InvalidCredentials. After the credential step, code failures are
# reported with distinct reasons.
#
# Registration skips the code step and returns a session token directly.

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..core.exceptions import (
    AttemptsExhausted,
    CodeExpired,
    CodeMismatch,
    CodeNotFound,
    InvalidCredentials,
    NotFound,
    NotificationFailed,
    ValidationError,
)
from .hashing import CredentialHasher
from .identity_store import Identity, IdentityStore, normalize_identity_key
from .notifier import Notifier
from .otp_ledger import OneTimeCodeLedger, VerifyReason
from .tokens import SessionTokenService

logger = logging.getLogger(__name__)

# ── Input rules ──────────────────────────────────────────────────────

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
PIN_PATTERN = re.compile(r"[0-9]{4}")
MIN_PASSWORD_LENGTH = 6
MAX_SECRET_LENGTH = 1024

_VERIFY_ERRORS = {
    VerifyReason.NOT_FOUND: CodeNotFound,
    VerifyReason.EXPIRED: CodeExpired,
    VerifyReason.ATTEMPTS_EXHAUSTED: AttemptsExhausted,
    VerifyReason.CODE_MISMATCH: CodeMismatch,
}


class AuthState(str, Enum):
    """Where a login attempt stands."""
    ANONYMOUS = "anonymous"
    CREDENTIALS_VERIFIED = "credentials_verified"
    CODE_ISSUED = "code_issued"
    AUTHENTICATED = "authenticated"


@dataclass
class LoginResult:
    """Outcome of a successful transition."""
    state: AuthState
    identity_key: str
    message: str
    token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "state": self.state.value,
            "email": self.identity_key,
            "message": self.message,
        }
        if self.token is not None:
            data["token"] = self.token
            data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Authenticator:
    """Registration and multi-factor login.

    Args:
        identities: Identity persistence.
        hasher: Hashes/compares password and PIN.
        ledger: Outstanding one-time codes.
        notifier: Delivers one-time codes.
        tokens: Mints session tokens.
        audit: Audit logger (defaults to the global one).
        clock: Current aware datetime (patched in tests).
    """

    def __init__(
        self,
        identities: IdentityStore,
        hasher: CredentialHasher,
        ledger: OneTimeCodeLedger,
        notifier: Notifier,
        tokens: SessionTokenService,
        audit: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.identities = identities
        self.hasher = hasher
        self.ledger = ledger
        self.notifier = notifier
        self.tokens = tokens
        self._audit = audit
        self._clock = clock or _utcnow
        self._dummy_hash: Optional[str] = None

    @property
    def audit(self) -> AuditLogger:
        return self._audit or get_audit_logger()

    # ── Validation ────────────────────────────────────────────────────

    @staticmethod
    def _validate_identity_key(identity_key: str) -> str:
        key = normalize_identity_key(identity_key)
        if not key or not EMAIL_PATTERN.fullmatch(key):
            raise ValidationError("Please provide a valid email address")
        return key

    @staticmethod
    def _validate_pin(pin: str) -> None:
        if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
            raise ValidationError("PIN must be exactly 4 digits")

    @staticmethod
    def _validate_login_password(password: str) -> None:
        if not isinstance(password, str) or not password:
            raise ValidationError("Password is required")
        if len(password) > MAX_SECRET_LENGTH:
            raise ValidationError("Password is too long")

    @staticmethod
    def _validate_new_password(password: str) -> None:
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if len(password) > MAX_SECRET_LENGTH:
            raise ValidationError("Password is too long")

    def _validate_code(self, code: str) -> None:
        length = self.ledger.code_length
        if not isinstance(code, str) or not re.fullmatch(rf"[0-9]{{{length}}}", code):
            raise ValidationError(f"Verification code must be {length} digits")

    # ── Registration ──────────────────────────────────────────────────

    def register(self, identity_key: str, password: str, pin: str) -> LoginResult:
        """Create an identity and return a session token straight away.

        Raises:
            ValidationError: Malformed email, short password, or PIN not 4 digits.
            DuplicateIdentity: The email is already registered.
        """
        key = self._validate_identity_key(identity_key)
        self._validate_new_password(password)
        self._validate_pin(pin)

        now = self._clock()
        identity = Identity(
            key=key,
            password_hash=self.hasher.hash(password),
            pin_hash=self.hasher.hash(pin),
            created_at=now,
            last_login_at=now,
        )
        self.identities.insert(identity)

        issued = self.tokens.issue(key)
        self.audit.log_auth_event(
            EventType.IDENTITY_REGISTERED, key, "identity registered"
        )
        return LoginResult(
            state=AuthState.AUTHENTICATED,
            identity_key=key,
            message="User registered successfully",
            token=issued.token,
            expires_at=issued.claims.expires_at,
        )

    # ── Login ─────────────────────────────────────────────────────────

    def _compare_or_burn(self, candidate: str, hashed: Optional[str]) -> bool:
        """Compare against hashed, or against a throwaway hash when there is none.

        Keeps the unknown-identity path as slow as the wrong-password path.
        """
        if hashed is None:
            if self._dummy_hash is None:
                self._dummy_hash = self.hasher.hash(secrets.token_urlsafe(16))
            self.hasher.compare(candidate, self._dummy_hash)
            return False
        return self.hasher.compare(candidate, hashed)

    def _verify_credentials(self, identity_key: str, password: str, pin: str) -> Identity:
        """ANONYMOUS -> CREDENTIALS_VERIFIED."""
        key = self._validate_identity_key(identity_key)
        self._validate_login_password(password)
        self._validate_pin(pin)

        identity = self.identities.find(key)
        password_ok = self._compare_or_burn(password, identity.password_hash if identity else None)
        pin_ok = self._compare_or_burn(pin, identity.pin_hash if identity else None)

        if identity is None or not (password_ok and pin_ok):
            self.audit.log_auth_event(
                EventType.LOGIN_CREDENTIALS_REJECTED,
                key,
                "password/PIN check failed",
                severity=EventSeverity.INVESTIGATE,
            )
            raise InvalidCredentials()

        logger.debug("%s: %s -> %s", key, AuthState.ANONYMOUS.value, AuthState.CREDENTIALS_VERIFIED.value)
        self.audit.log_auth_event(
            EventType.LOGIN_CREDENTIALS_VERIFIED, key, "password and PIN verified"
        )
        return identity

    def _issue_code(self, identity: Identity) -> None:
        """CREDENTIALS_VERIFIED -> CODE_ISSUED.

        A failed delivery leaves the issued code in the ledger; the caller
        retries via resend, which replaces it.
        """
        code = self.ledger.issue(identity.key)
        try:
            delivered = self.notifier.send(identity.key, code)
        except Exception:
            logger.exception("Notifier raised while delivering code to %s", identity.key)
            delivered = False

        if not delivered:
            self.audit.log_auth_event(
                EventType.LOGIN_NOTIFICATION_FAILED,
                identity.key,
                "verification code could not be delivered",
                severity=EventSeverity.ALERT,
            )
            raise NotificationFailed()

        logger.debug("%s: %s -> %s", identity.key, AuthState.CREDENTIALS_VERIFIED.value, AuthState.CODE_ISSUED.value)
        self.audit.log_auth_event(
            EventType.LOGIN_CODE_ISSUED, identity.key, "verification code issued"
        )

    def login_step1(self, identity_key: str, password: str, pin: str) -> LoginResult:
        """Check password and PIN, then issue and deliver a one-time code.

        Raises:
            ValidationError: Malformed input.
            InvalidCredentials: Unknown identity, wrong password or wrong PIN.
            NotificationFailed: Code issued but could not be delivered.
        """
        identity = self._verify_credentials(identity_key, password, pin)
        self._issue_code(identity)
        return LoginResult(
            state=AuthState.CODE_ISSUED,
            identity_key=identity.key,
            message="Verification code sent to your email",
        )

    def login_resend(self, identity_key: str, password: str, pin: str) -> LoginResult:
        """Re-check credentials and replace the outstanding code with a new one."""
        identity = self._verify_credentials(identity_key, password, pin)
        self._issue_code(identity)
        return LoginResult(
            state=AuthState.CODE_ISSUED,
            identity_key=identity.key,
            message="New verification code sent to your email",
        )

    def login_verify(self, identity_key: str, code: str) -> LoginResult:
        """CODE_ISSUED -> AUTHENTICATED.

        Raises:
            ValidationError: Code is not the right number of digits.
            CodeNotFound / CodeExpired / AttemptsExhausted / CodeMismatch:
                The ledger rejected the code; the caller stays in CODE_ISSUED.
            InvalidCredentials: The identity vanished after the code was issued.
        """
        key = self._validate_identity_key(identity_key)
        self._validate_code(code)

        result = self.ledger.verify(key, code)
        if not result.valid:
            severity = (
                EventSeverity.ALERT
                if result.reason == VerifyReason.ATTEMPTS_EXHAUSTED
                else EventSeverity.INVESTIGATE
            )
            self.audit.log_auth_event(
                EventType.LOGIN_CODE_REJECTED,
                key,
                f"verification code rejected ({result.reason.value})",
                severity=severity,
                details={"reason": result.reason.value, "attempts_remaining": result.attempts_remaining},
            )
            raise _VERIFY_ERRORS[result.reason]()

        now = self._clock()
        if not self.identities.update_last_login(key, now):
            raise InvalidCredentials()

        issued = self.tokens.issue(key)
        logger.debug("%s: %s -> %s", key, AuthState.CODE_ISSUED.value, AuthState.AUTHENTICATED.value)
        self.audit.log_auth_event(EventType.LOGIN_SUCCEEDED, key, "login completed")
        return LoginResult(
            state=AuthState.AUTHENTICATED,
            identity_key=key,
            message="Login successful",
            token=issued.token,
            expires_at=issued.claims.expires_at,
        )

    # ── Account ───────────────────────────────────────────────────────

    def get_identity(self, identity_key: str) -> Identity:
        """Look up the identity behind a verified session.

        Raises:
            NotFound: Identity does not exist.
        """
        identity = self.identities.find(identity_key)
        if identity is None:
            raise NotFound("User not found")
        return identity

    def change_password(
        self, identity_key: str, current_password: str, current_pin: str, new_password: str
    ) -> None:
        """Replace the password hash. The PIN hash is left untouched."""
        identity = self._verify_credentials(identity_key, current_password, current_pin)
        self._validate_new_password(new_password)
        self.identities.update_password_hash(identity.key, self.hasher.hash(new_password))
        self.audit.log_auth_event(
            EventType.IDENTITY_CREDENTIAL_CHANGED, identity.key, "password changed",
            details={"factor": "password"},
        )

    def change_pin(
        self, identity_key: str, current_password: str, current_pin: str, new_pin: str
    ) -> None:
        """Replace the PIN hash. The password hash is left untouched."""
        identity = self._verify_credentials(identity_key, current_password, current_pin)
        self._validate_pin(new_pin)
        self.identities.update_pin_hash(identity.key, self.hasher.hash(new_pin))
        self.audit.log_auth_event(
            EventType.IDENTITY_CREDENTIAL_CHANGED, identity.key, "PIN changed",
            details={"factor": "pin"},
        )
