# SP Vault - Audit Logging
#
# Structured (JSON) audit log for authentication and vault activity.
# Every login step, code issuance/verification and entry access is logged
# with a timestamp, the identity it concerns and an event ID.
#
# Never pass passwords, PINs, one-time codes, hashes or ciphertext
# envelopes into details. Identity keys and entry IDs only.

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of events written to the audit log."""
    # Identity
    IDENTITY_REGISTERED = "identity.registered"
    IDENTITY_CREDENTIAL_CHANGED = "identity.credential.changed"

    # Login flow
    LOGIN_CREDENTIALS_VERIFIED = "login.credentials.verified"
    LOGIN_CREDENTIALS_REJECTED = "login.credentials.rejected"
    LOGIN_CODE_ISSUED = "login.code.issued"
    LOGIN_CODE_REJECTED = "login.code.rejected"
    LOGIN_NOTIFICATION_FAILED = "login.notification.failed"
    LOGIN_SUCCEEDED = "login.succeeded"

    # Vault entries
    VAULT_ENTRY_CREATED = "vault.entry.created"
    VAULT_ENTRY_ACCESSED = "vault.entry.accessed"
    VAULT_ENTRY_UPDATED = "vault.entry.updated"
    VAULT_ENTRY_DELETED = "vault.entry.deleted"
    VAULT_DECRYPTION_FAILED = "vault.decryption.failed"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: Normal activity
    - INVESTIGATE: Unusual but expected (wrong code, wrong password)
    - ALERT: Repeated failure or lockout
    - CRITICAL: Data integrity problem
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only structured audit logger.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - Daily log file under log_dir
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()

        self.logger = structlog.get_logger("sp_vault.audit")

    def _setup_file_handler(self):
        """Attach a daily file handler to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger = logging.getLogger("sp_vault.audit")
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        self._file_handler = file_handler

    def close(self):
        """Detach and close the file handler."""
        logging.getLogger("sp_vault.audit").removeHandler(self._file_handler)
        self._file_handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        identity: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log an audit event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            identity: Identity key the event concerns, if any
            details: Additional non-secret details

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        self.logger.info(
            "audit_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            identity=identity,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=details or {},
        )

        return event_id

    def log_auth_event(
        self,
        event_type: EventType,
        identity: str,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Log a login/registration event for an identity."""
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Auth: {message}",
            identity=identity,
            details=details,
        )

    def log_vault_event(
        self,
        event_type: EventType,
        identity: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> str:
        """
        Log a vault entry event.

        Args:
            event_type: Type of Vault event
            identity: Owner identity key
            message: Event description
            details: Additional details (never log actual secrets!)
            severity: Defaults to INFO
        """
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Vault: {message}",
            identity=identity,
            details=details,
        )


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        from .config import get_settings
        _audit_logger = AuditLogger(log_dir=get_settings().audit_log_dir)
    return _audit_logger


def set_audit_logger(logger: Optional[AuditLogger]) -> None:
    """Replace the singleton (for testing)."""
    global _audit_logger
    _audit_logger = logger
