# SP Vault - Core Module
#
# Shared functionality for the auth and vault packages:
# - Configuration
# - Audit logging
# - Error taxonomy
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    set_audit_logger,
)
from .config import Settings, get_settings, set_settings

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "set_settings",
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "set_audit_logger",
]
