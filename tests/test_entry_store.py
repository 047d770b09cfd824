"""
Tests for VaultEntryStore.

Covers:
- Create: required fields, trimming, defaults, encrypted at rest
- List: newest first, decrypted, no envelope exposed
- Ownership scoping: identical NotFound, no mutation across owners
- Partial update: only supplied fields, re-encryption, updated_at refresh
- Delete
- Corrupt envelopes raise DecryptionError carrying the entry id
"""

import sqlite3
from unittest.mock import MagicMock

import pytest

from sp_vault.core.audit_log import EventType
from sp_vault.core.db import transaction
from sp_vault.core.exceptions import DecryptionError, NotFound, ValidationError
from sp_vault.vault.encryption import SecretCodec
from sp_vault.vault.entry_store import DEFAULT_CATEGORY, VaultEntryStore

ALICE = "alice@example.com"
BOB = "bob@example.com"


@pytest.fixture
def codec():
    return SecretCodec("entry-store-secret")


@pytest.fixture
def store(tmp_path, codec, clock):
    return VaultEntryStore(codec=codec, db_path=tmp_path / "vault.db", clock=clock)


def _raw_rows(store):
    conn = sqlite3.connect(store.db_path)
    conn.row_factory = sqlite3.Row
    try:
        return [dict(row) for row in conn.execute("SELECT * FROM vault_entries")]
    finally:
        conn.close()


# ── Create ───────────────────────────────────────────────────────────


class TestCreate:
    def test_create_returns_plaintext_once(self, store):
        entry = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        assert entry.secret == "p@ss"
        assert entry.owner == ALICE
        assert entry.category == DEFAULT_CATEGORY
        assert entry.username == ""
        assert entry.url == ""
        assert entry.notes == ""
        assert entry.created_at == entry.updated_at

    def test_secret_encrypted_at_rest(self, store, codec):
        store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        [row] = _raw_rows(store)
        assert row["encrypted_secret"] != "p@ss"
        assert "p@ss" not in str(row)
        assert codec.decrypt(row["encrypted_secret"]) == "p@ss"

    def test_fields_trimmed_but_secret_kept_verbatim(self, store):
        entry = store.create(ALICE, {
            "title": "  Bank  ",
            "username": " alice ",
            "secret": "  spaced  ",
            "url": " https://bank.example ",
            "notes": " note ",
            "category": " Finance ",
        })
        assert entry.title == "Bank"
        assert entry.username == "alice"
        assert entry.secret == "  spaced  "
        assert entry.url == "https://bank.example"
        assert entry.category == "Finance"

    @pytest.mark.parametrize("fields", [
        {"secret": "p@ss"},
        {"title": "Bank"},
        {"title": "   ", "secret": "p@ss"},
        {"title": "Bank", "secret": ""},
        {"title": "Bank", "secret": "p@ss", "encrypted_secret": "x:y"},
        {"title": 42, "secret": "p@ss"},
        {"title": "x" * 201, "secret": "p@ss"},
    ])
    def test_validation(self, store, fields):
        with pytest.raises(ValidationError):
            store.create(ALICE, fields)
        assert store.list(ALICE) == []

    def test_blank_category_falls_back_to_default(self, store):
        entry = store.create(ALICE, {"title": "Bank", "secret": "p@ss", "category": "  "})
        assert entry.category == DEFAULT_CATEGORY


# ── List / Get ───────────────────────────────────────────────────────


class TestRead:
    def test_list_single_entry_has_no_envelope(self, store):
        store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        entries = store.list(ALICE)
        assert len(entries) == 1
        data = entries[0].to_dict()
        assert data["secret"] == "p@ss"
        assert "encrypted_secret" not in data
        assert not hasattr(entries[0], "encrypted_secret")

    def test_list_newest_first(self, store, clock):
        store.create(ALICE, {"title": "First", "secret": "1"})
        clock.advance(seconds=1)
        store.create(ALICE, {"title": "Second", "secret": "2"})
        clock.advance(seconds=1)
        store.create(ALICE, {"title": "Third", "secret": "3"})
        assert [e.title for e in store.list(ALICE)] == ["Third", "Second", "First"]

    def test_list_same_timestamp_uses_insertion_order(self, store):
        store.create(ALICE, {"title": "First", "secret": "1"})
        store.create(ALICE, {"title": "Second", "secret": "2"})
        assert [e.title for e in store.list(ALICE)] == ["Second", "First"]

    def test_list_scoped_to_owner(self, store):
        store.create(ALICE, {"title": "Alice's", "secret": "a"})
        store.create(BOB, {"title": "Bob's", "secret": "b"})
        assert [e.title for e in store.list(ALICE)] == ["Alice's"]
        assert [e.title for e in store.list(BOB)] == ["Bob's"]

    def test_list_empty(self, store):
        assert store.list(ALICE) == []

    def test_get(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        fetched = store.get(ALICE, created.id)
        assert fetched.secret == "p@ss"
        assert fetched.title == "Bank"

    def test_get_missing_and_foreign_are_identical(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        with pytest.raises(NotFound) as missing:
            store.get(ALICE, "no-such-id")
        with pytest.raises(NotFound) as foreign:
            store.get(BOB, created.id)
        assert missing.value.message == foreign.value.message


# ── Update ───────────────────────────────────────────────────────────


class TestUpdate:
    def test_partial_update(self, store, clock):
        created = store.create(ALICE, {"title": "Bank", "username": "alice", "secret": "p@ss"})
        clock.advance(minutes=5)
        updated = store.update(ALICE, created.id, {"notes": "rotated quarterly"})
        assert updated.notes == "rotated quarterly"
        assert updated.title == "Bank"
        assert updated.username == "alice"
        assert updated.secret == "p@ss"
        assert updated.created_at == created.created_at
        assert updated.updated_at == clock.now

    def test_new_secret_is_reencrypted(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "old"})
        [before] = _raw_rows(store)
        updated = store.update(ALICE, created.id, {"secret": "new"})
        [after] = _raw_rows(store)
        assert updated.secret == "new"
        assert after["encrypted_secret"] != before["encrypted_secret"]
        assert store.get(ALICE, created.id).secret == "new"

    def test_untouched_secret_keeps_envelope(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        [before] = _raw_rows(store)
        store.update(ALICE, created.id, {"title": "Bank 2"})
        [after] = _raw_rows(store)
        assert after["encrypted_secret"] == before["encrypted_secret"]

    def test_empty_update_refreshes_timestamp(self, store, clock):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        clock.advance(seconds=30)
        assert store.update(ALICE, created.id, {}).updated_at == clock.now

    def test_foreign_update_is_not_found_and_does_not_mutate(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        with pytest.raises(NotFound):
            store.update(BOB, created.id, {"title": "Pwned", "secret": "x"})
        entry = store.get(ALICE, created.id)
        assert entry.title == "Bank"
        assert entry.secret == "p@ss"

    def test_update_rejects_blank_title(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        with pytest.raises(ValidationError):
            store.update(ALICE, created.id, {"title": "  "})

    def test_update_rejects_unknown_field(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        with pytest.raises(ValidationError):
            store.update(ALICE, created.id, {"owner": BOB})
        assert store.get(ALICE, created.id).owner == ALICE


# ── Delete ───────────────────────────────────────────────────────────


class TestDelete:
    def test_delete(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        store.delete(ALICE, created.id)
        assert store.list(ALICE) == []
        with pytest.raises(NotFound):
            store.delete(ALICE, created.id)

    def test_foreign_delete_is_not_found_and_keeps_entry(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        with pytest.raises(NotFound):
            store.delete(BOB, created.id)
        assert [e.id for e in store.list(ALICE)] == [created.id]


# ── Integrity ────────────────────────────────────────────────────────


class TestDecryptionFailures:
    def _corrupt(self, store, entry_id, envelope):
        with transaction(store.db_path) as conn:
            conn.execute(
                "UPDATE vault_entries SET encrypted_secret = ? WHERE id = ?",
                (envelope, entry_id),
            )

    def test_get_corrupt_entry(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        self._corrupt(store, created.id, "garbage")
        with pytest.raises(DecryptionError) as exc_info:
            store.get(ALICE, created.id)
        assert exc_info.value.entry_id == created.id

    def test_list_surfaces_corrupt_entry(self, store):
        store.create(ALICE, {"title": "Good", "secret": "ok"})
        bad = store.create(ALICE, {"title": "Bad", "secret": "p@ss"})
        self._corrupt(store, bad.id, "AAAAAAAAAAAAAAAA:AAAAAAAAAAAAAAAAAAAAAA==")
        with pytest.raises(DecryptionError) as exc_info:
            store.list(ALICE)
        assert exc_info.value.entry_id == bad.id

    def test_wrong_master_key(self, store, clock):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        rekeyed = VaultEntryStore(
            codec=SecretCodec("a-different-secret"), db_path=store.db_path, clock=clock
        )
        with pytest.raises(DecryptionError):
            rekeyed.get(ALICE, created.id)

    def test_update_over_corrupt_secret_writes_nothing(self, store, clock):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        self._corrupt(store, created.id, "AAAA:BBBB")
        clock.advance(minutes=5)
        audit = MagicMock()
        audited = VaultEntryStore(codec=store.codec, db_path=store.db_path, audit=audit, clock=clock)

        with pytest.raises(DecryptionError) as exc_info:
            audited.update(ALICE, created.id, {"title": "Changed"})

        assert exc_info.value.entry_id == created.id
        [row] = _raw_rows(store)
        assert row["title"] == "Bank"
        assert row["updated_at"] == created.updated_at.isoformat()
        logged = [c.args[0] for c in audit.log_vault_event.call_args_list]
        assert EventType.VAULT_ENTRY_UPDATED not in logged
        assert EventType.VAULT_DECRYPTION_FAILED in logged

    def test_new_secret_replaces_corrupt_one(self, store):
        created = store.create(ALICE, {"title": "Bank", "secret": "p@ss"})
        self._corrupt(store, created.id, "garbage")
        updated = store.update(ALICE, created.id, {"secret": "fresh"})
        assert updated.secret == "fresh"
        assert store.get(ALICE, created.id).secret == "fresh"
