# SP Vault - Vault Entry Store
# Per-identity CRUD over encrypted credential entries.
#
# Every operation is scoped by the owning identity key. A lookup that
# misses because the entry does not exist and one that misses because
# another identity owns it raise the same NotFound.
#
# The secret is encrypted by SecretCodec before it reaches SQLite and is
# decrypted explicitly on every read. Envelopes never leave this module:
# callers only ever see VaultEntry, which carries the plaintext secret.
#
# No store-wide lock: each statement filters on (id, owner), which is
# enough to keep concurrent operations on different entries independent.

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..core.db import transaction
from ..core.exceptions import DecryptionError, NotFound, ValidationError
from .encryption import SecretCodec

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"
ENTRY_FIELDS = ("title", "username", "secret", "url", "notes", "category")
REQUIRED_FIELDS = ("title", "secret")
MAX_FIELD_LENGTH = {
    "title": 200,
    "username": 200,
    "url": 2048,
    "notes": 10_000,
    "category": 100,
    "secret": 10_000,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VaultEntry:
    """Decrypted view of a stored entry."""
    id: str
    owner: str
    title: str
    username: str
    secret: str
    url: str
    notes: str
    category: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "username": self.username,
            "secret": self.secret,
            "url": self.url,
            "notes": self.notes,
            "category": self.category,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def _clean_fields(fields: Mapping[str, Any], *, partial: bool) -> Dict[str, str]:
    """Validate and trim entry fields.

    For a partial update, keys set to None count as not supplied.
    """
    unknown = set(fields) - set(ENTRY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown entry field(s): {', '.join(sorted(unknown))}")

    cleaned: Dict[str, str] = {}
    for name in ENTRY_FIELDS:
        value = fields.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")
        # Secrets are stored exactly as given.
        value = value if name == "secret" else value.strip()
        if len(value) > MAX_FIELD_LENGTH[name]:
            raise ValidationError(f"{name} is too long")
        cleaned[name] = value

    for name in REQUIRED_FIELDS:
        if name in cleaned and not cleaned[name]:
            raise ValidationError(f"{name.capitalize()} is required")
        if not partial and name not in cleaned:
            raise ValidationError(f"{name.capitalize()} is required")

    if "category" in cleaned and not cleaned["category"]:
        cleaned["category"] = DEFAULT_CATEGORY

    return cleaned


class VaultEntryStore:
    """SQLite-backed store of encrypted entries.

    Args:
        codec: Encrypts/decrypts entry secrets.
        db_path: Path to SQLite database file. Defaults to data/sp_vault.db.
        audit: Audit logger (defaults to the global one).
        clock: Current aware datetime (patched in tests).
    """

    def __init__(
        self,
        codec: SecretCodec,
        db_path: Optional[Union[str, Path]] = None,
        audit: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.codec = codec
        self.db_path = Path(db_path) if db_path else Path("data/sp_vault.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._audit = audit
        self._clock = clock or _utcnow
        self._init_database()

    @property
    def audit(self) -> AuditLogger:
        return self._audit or get_audit_logger()

    def _init_database(self):
        with transaction(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS vault_entries (
                    id                TEXT PRIMARY KEY,
                    owner             TEXT NOT NULL,
                    title             TEXT NOT NULL,
                    username          TEXT NOT NULL DEFAULT '',
                    encrypted_secret  TEXT NOT NULL,
                    url               TEXT NOT NULL DEFAULT '',
                    notes             TEXT NOT NULL DEFAULT '',
                    category          TEXT NOT NULL DEFAULT 'General',
                    created_at        TEXT NOT NULL,
                    updated_at        TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_vault_entries_owner "
                "ON vault_entries(owner)"
            )

    # ── Row handling ─────────────────────────────────────────────────

    def _decrypt_row(self, row: sqlite3.Row) -> VaultEntry:
        """Materialize the decrypted view of a row.

        Raises:
            DecryptionError: The stored envelope is corrupt or was written
                under a different master key.
        """
        try:
            secret = self.codec.decrypt(row["encrypted_secret"])
        except DecryptionError as exc:
            self.audit.log_vault_event(
                EventType.VAULT_DECRYPTION_FAILED,
                row["owner"],
                "stored secret failed to decrypt",
                details={"entry_id": row["id"], "reason": exc.message},
                severity=EventSeverity.CRITICAL,
            )
            raise DecryptionError(exc.message, entry_id=row["id"]) from exc

        return VaultEntry(
            id=row["id"],
            owner=row["owner"],
            title=row["title"],
            username=row["username"],
            secret=secret,
            url=row["url"],
            notes=row["notes"],
            category=row["category"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _fetch_owned(self, conn: sqlite3.Connection, identity_key: str, entry_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM vault_entries WHERE id = ? AND owner = ?",
            (entry_id, identity_key),
        ).fetchone()
        if row is None:
            raise NotFound()
        return row

    # ── CRUD ─────────────────────────────────────────────────────────

    def create(self, identity_key: str, fields: Mapping[str, Any]) -> VaultEntry:
        """Encrypt and store a new entry.

        Returns the entry with its plaintext secret, once, for the caller.

        Raises:
            ValidationError: Title or secret missing, unknown field, or a
                value that is too long.
        """
        cleaned = _clean_fields(fields, partial=False)
        now = self._clock()
        entry = VaultEntry(
            id=str(uuid.uuid4()),
            owner=identity_key,
            title=cleaned["title"],
            username=cleaned.get("username", ""),
            secret=cleaned["secret"],
            url=cleaned.get("url", ""),
            notes=cleaned.get("notes", ""),
            category=cleaned.get("category", DEFAULT_CATEGORY),
            created_at=now,
            updated_at=now,
        )
        envelope = self.codec.encrypt(entry.secret)

        with transaction(self.db_path) as conn:
            conn.execute(
                """INSERT INTO vault_entries
                   (id, owner, title, username, encrypted_secret, url, notes,
                    category, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.id,
                    entry.owner,
                    entry.title,
                    entry.username,
                    envelope,
                    entry.url,
                    entry.notes,
                    entry.category,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )

        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_CREATED,
            identity_key,
            "entry created",
            details={"entry_id": entry.id, "category": entry.category},
        )
        return entry

    def list(self, identity_key: str) -> List[VaultEntry]:
        """All entries for an identity, newest first, secrets decrypted.

        Raises:
            DecryptionError: An entry could not be decrypted. Carries the
                offending entry_id; nothing is silently dropped.
        """
        with transaction(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM vault_entries WHERE owner = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (identity_key,),
            ).fetchall()

        entries = [self._decrypt_row(row) for row in rows]
        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_ACCESSED,
            identity_key,
            "entries listed",
            details={"count": len(entries)},
        )
        return entries

    def get(self, identity_key: str, entry_id: str) -> VaultEntry:
        """Fetch one owned entry.

        Raises:
            NotFound: No such entry, or it belongs to another identity.
            DecryptionError: The stored secret is corrupt.
        """
        with transaction(self.db_path) as conn:
            row = self._fetch_owned(conn, identity_key, entry_id)

        entry = self._decrypt_row(row)
        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_ACCESSED,
            identity_key,
            "entry accessed",
            details={"entry_id": entry_id},
        )
        return entry

    def update(self, identity_key: str, entry_id: str, fields: Mapping[str, Any]) -> VaultEntry:
        """Apply a partial update to an owned entry.

        Only supplied fields change. A new secret is re-encrypted under a
        fresh nonce. updated_at is refreshed on every call.

        Raises:
            ValidationError: Bad field values (checked before the lookup).
            NotFound: No such entry, or it belongs to another identity.
            DecryptionError: The stored secret is corrupt; nothing is written.
        """
        cleaned = _clean_fields(fields, partial=True)
        columns = {name: value for name, value in cleaned.items() if name != "secret"}
        if "secret" in cleaned:
            columns["encrypted_secret"] = self.codec.encrypt(cleaned["secret"])
        columns["updated_at"] = self._clock().isoformat()

        assignments = ", ".join(f"{name} = ?" for name in columns)
        with transaction(self.db_path) as conn:
            self._fetch_owned(conn, identity_key, entry_id)
            conn.execute(
                f"UPDATE vault_entries SET {assignments} WHERE id = ? AND owner = ?",
                (*columns.values(), entry_id, identity_key),
            )
            entry = self._decrypt_row(self._fetch_owned(conn, identity_key, entry_id))

        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_UPDATED,
            identity_key,
            "entry updated",
            details={"entry_id": entry_id, "fields": sorted(cleaned)},
        )
        return entry

    def delete(self, identity_key: str, entry_id: str) -> None:
        """Delete an owned entry.

        Raises:
            NotFound: No such entry, or it belongs to another identity.
        """
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM vault_entries WHERE id = ? AND owner = ?",
                (entry_id, identity_key),
            )
            if cursor.rowcount == 0:
                raise NotFound()

        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_DELETED,
            identity_key,
            "entry deleted",
            details={"entry_id": entry_id},
        )
