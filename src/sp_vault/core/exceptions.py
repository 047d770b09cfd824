"""
SP Vault Exception Classes

Every error carries a stable ``code`` tag and a ``message`` that is safe to
show to the caller. Messages never contain secrets, hashes, envelopes, or
anything that reveals whether another identity exists.
"""

from typing import Optional


class VaultError(Exception):
    """Base exception for all core operations"""

    code = "vault_error"
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(VaultError):
    """Raised when input is malformed (caller must correct it before retrying)"""

    code = "validation_error"
    default_message = "Validation failed"


class InvalidCredentials(VaultError):
    """Raised when identity, password or PIN do not match.

    Deliberately identical for an unknown identity, a wrong password and a
    wrong PIN.
    """

    code = "invalid_credentials"
    default_message = "Invalid email, password or PIN"


class DuplicateIdentity(VaultError):
    """Raised when registering an identity key that already exists"""

    code = "duplicate_identity"
    default_message = "An account already exists with this email"


class InvalidToken(VaultError):
    """Raised when a session token is missing, malformed or badly signed"""

    code = "invalid_token"
    default_message = "Invalid session token"


class ExpiredToken(VaultError):
    """Raised when a session token is past its expiry claim"""

    code = "expired_token"
    default_message = "Session expired, please log in again"


class NotFound(VaultError):
    """Raised when a record does not exist or belongs to another identity"""

    code = "not_found"
    default_message = "Entry not found"


class OneTimeCodeError(VaultError):
    """Base for one-time code verification failures"""

    code = "one_time_code_error"


class CodeNotFound(OneTimeCodeError):
    """Raised when no code is outstanding (never issued, consumed or swept)"""

    code = "code_not_found"
    default_message = "Verification code not found or expired"


class CodeExpired(OneTimeCodeError):
    """Raised when the outstanding code is past its expiry"""

    code = "code_expired"
    default_message = "Verification code expired"


class AttemptsExhausted(OneTimeCodeError):
    """Raised when the outstanding code has used up its attempts"""

    code = "attempts_exhausted"
    default_message = "Too many failed attempts. Please request a new code"


class CodeMismatch(OneTimeCodeError):
    """Raised when the candidate code is wrong (attempts remain)"""

    code = "code_mismatch"
    default_message = "Invalid verification code"


class NotificationFailed(VaultError):
    """Raised when the one-time code could not be delivered (safe to retry)"""

    code = "notification_failed"
    default_message = "Failed to send verification code. Please try again."


class DecryptionError(VaultError):
    """Raised when a stored envelope is malformed or fails authentication"""

    code = "decryption_error"
    default_message = "Stored secret could not be decrypted"

    def __init__(self, message: Optional[str] = None, entry_id: Optional[str] = None):
        super().__init__(message)
        self.entry_id = entry_id
