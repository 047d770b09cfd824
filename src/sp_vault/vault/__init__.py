# SP Vault - Vault Module
# Encrypted-at-rest credential entries:
# - AES-256-GCM secret codec under a master key derived from SECRET_KEY
# - Per-identity entry store (SQLite)
# - Random secret generator

from .encryption import SecretCodec, derive_master_key
from .entry_store import VaultEntry, VaultEntryStore
from .generator import SecretOptions, generate_secret

__all__ = [
    "SecretCodec",
    "derive_master_key",
    "VaultEntry",
    "VaultEntryStore",
    "SecretOptions",
    "generate_secret",
]
