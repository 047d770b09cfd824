# SP Vault - Vault API
#
# CRUD over the caller's encrypted entries plus the secret generator.
# Every route requires a bearer session token; the token's identity
# scopes every store call, so one owner can never see another's entries.
#
#   GET    /api/vault/entries           list (secrets decrypted)
#   POST   /api/vault/entries           create
#   GET    /api/vault/entries/{id}      read one
#   PUT    /api/vault/entries/{id}      partial update
#   DELETE /api/vault/entries/{id}      delete
#   POST   /api/vault/generate          random secret

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..core.config import get_settings
from ..vault.encryption import SecretCodec
from ..vault.entry_store import VaultEntryStore
from ..vault.generator import DEFAULT_LENGTH, SecretOptions, generate_secret
from .security import require_identity

router = APIRouter(prefix="/api/vault", tags=["vault"])

# ── Singleton ────────────────────────────────────────────────────────

_entry_store: Optional[VaultEntryStore] = None


def get_entry_store() -> VaultEntryStore:
    """Get or create the VaultEntryStore singleton."""
    global _entry_store
    if _entry_store is None:
        settings = get_settings()
        _entry_store = VaultEntryStore(
            codec=SecretCodec(settings.secret_key),
            db_path=settings.database_path,
        )
    return _entry_store


def set_entry_store(store: Optional[VaultEntryStore]):
    """Allow DI for testing."""
    global _entry_store
    _entry_store = store


# ── Request Models ────────────────────────────────────────────────────
# Field rules (required title/secret, trimming, length caps) are enforced
# by the store so that every caller gets the same ValidationError.


class EntryFieldsRequest(BaseModel):
    title: Optional[str] = None
    secret: Optional[str] = None
    username: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None


class GenerateSecretRequest(BaseModel):
    length: int = Field(DEFAULT_LENGTH)
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True


# ── Endpoints ─────────────────────────────────────────────────────────


@router.get("/entries")
async def list_entries(identity_key: str = Depends(require_identity)):
    entries = await asyncio.to_thread(get_entry_store().list, identity_key)
    return {"entries": [entry.to_dict() for entry in entries], "count": len(entries)}


@router.post("/entries", status_code=status.HTTP_201_CREATED)
async def create_entry(
    request: EntryFieldsRequest,
    identity_key: str = Depends(require_identity),
):
    """Encrypt and store a new entry. The response echoes the secret once."""
    entry = await asyncio.to_thread(
        get_entry_store().create, identity_key, request.model_dump(exclude_none=True)
    )
    return {"message": "Entry created successfully", "entry": entry.to_dict()}


@router.get("/entries/{entry_id}")
async def get_entry(entry_id: str, identity_key: str = Depends(require_identity)):
    entry = await asyncio.to_thread(get_entry_store().get, identity_key, entry_id)
    return {"entry": entry.to_dict()}


@router.put("/entries/{entry_id}")
async def update_entry(
    entry_id: str,
    request: EntryFieldsRequest,
    identity_key: str = Depends(require_identity),
):
    """Apply only the fields present in the body."""
    entry = await asyncio.to_thread(
        get_entry_store().update,
        identity_key,
        entry_id,
        request.model_dump(exclude_unset=True, exclude_none=True),
    )
    return {"message": "Entry updated successfully", "entry": entry.to_dict()}


@router.delete("/entries/{entry_id}")
async def delete_entry(entry_id: str, identity_key: str = Depends(require_identity)):
    await asyncio.to_thread(get_entry_store().delete, identity_key, entry_id)
    return {"success": True, "message": "Entry deleted successfully"}


@router.post("/generate")
async def generate(
    request: GenerateSecretRequest,
    identity_key: str = Depends(require_identity),
):
    secret = generate_secret(
        SecretOptions(
            length=request.length,
            uppercase=request.include_uppercase,
            lowercase=request.include_lowercase,
            numbers=request.include_numbers,
            symbols=request.include_symbols,
        )
    )
    return {"secret": secret}
