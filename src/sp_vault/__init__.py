# SP Vault - Main Package
#
# Personal credential vault:
# - three-factor login (password, 4-digit PIN, emailed one-time code)
# - entry secrets encrypted at rest (AES-256-GCM), decrypted only on read

__version__ = "1.0.0"
__author__ = "SP Vault Team"
__description__ = "Personal credential vault with multi-factor login"

from .core import (
    EventSeverity,
    EventType,
    Settings,
    get_audit_logger,
    get_settings,
)

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
