# SP Vault - Identity Store
# SQLite persistence for registered identities (the vault owners).
#
# One row per identity, keyed by the normalized (lower-cased, trimmed)
# email. The key column is UNIQUE; a duplicate insert surfaces as
# DuplicateIdentity rather than a raw IntegrityError.
#
# Password and PIN are stored only as hashes produced by CredentialHasher.
# This store never hashes anything itself: callers pass hashes in.

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.db import transaction
from ..core.exceptions import DuplicateIdentity

logger = logging.getLogger(__name__)


def normalize_identity_key(identity_key: str) -> str:
    """Case-normalized comparison key for an identity."""
    return (identity_key or "").strip().lower()


@dataclass
class Identity:
    """A registered vault owner."""
    key: str
    password_hash: str
    pin_hash: str
    created_at: datetime
    last_login_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API response. Never exposes password_hash or pin_hash."""
        return {
            "email": self.key,
            "created_at": self.created_at.isoformat(),
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class IdentityStore:
    """SQLite store for identities.

    Args:
        db_path: Path to SQLite database file. Defaults to data/sp_vault.db.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else Path("data/sp_vault.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        """Create tables if they don't exist."""
        with transaction(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS identities (
                    identity_key   TEXT PRIMARY KEY,
                    password_hash  TEXT NOT NULL,
                    pin_hash       TEXT NOT NULL,
                    created_at     TEXT NOT NULL,
                    last_login_at  TEXT
                )
            """)

    @staticmethod
    def _row_to_identity(row: sqlite3.Row) -> Identity:
        return Identity(
            key=row["identity_key"],
            password_hash=row["password_hash"],
            pin_hash=row["pin_hash"],
            created_at=_parse_ts(row["created_at"]),
            last_login_at=_parse_ts(row["last_login_at"]),
        )

    # ── Lookup ────────────────────────────────────────────────────────

    def find(self, identity_key: str) -> Optional[Identity]:
        """Find an identity by key (normalized). Returns None if absent."""
        with transaction(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM identities WHERE identity_key = ?",
                (normalize_identity_key(identity_key),),
            ).fetchone()
        return self._row_to_identity(row) if row else None

    # ── Writes ────────────────────────────────────────────────────────

    def insert(self, identity: Identity) -> Identity:
        """Insert a new identity.

        Raises:
            DuplicateIdentity: If the key is already registered.
        """
        identity.key = normalize_identity_key(identity.key)
        try:
            with transaction(self.db_path) as conn:
                conn.execute(
                    """INSERT INTO identities
                       (identity_key, password_hash, pin_hash, created_at, last_login_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        identity.key,
                        identity.password_hash,
                        identity.pin_hash,
                        identity.created_at.isoformat(),
                        identity.last_login_at.isoformat() if identity.last_login_at else None,
                    ),
                )
        except sqlite3.IntegrityError:
            raise DuplicateIdentity()

        logger.info("Registered identity %s", identity.key)
        return identity

    def _update_column(self, identity_key: str, column: str, value: Optional[str]) -> bool:
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                f"UPDATE identities SET {column} = ? WHERE identity_key = ?",
                (value, normalize_identity_key(identity_key)),
            )
            return cursor.rowcount > 0

    def update_last_login(self, identity_key: str, when: datetime) -> bool:
        """Record a successful login. Returns True if the identity exists."""
        return self._update_column(identity_key, "last_login_at", when.isoformat())

    def update_password_hash(self, identity_key: str, password_hash: str) -> bool:
        return self._update_column(identity_key, "password_hash", password_hash)

    def update_pin_hash(self, identity_key: str, pin_hash: str) -> bool:
        return self._update_column(identity_key, "pin_hash", pin_hash)
