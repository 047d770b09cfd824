# SP Vault - Authentication API
#
# Registration and the three-factor login flow:
#   POST /api/auth/register        email + password + PIN -> session token
#   POST /api/auth/login           email + password + PIN -> code emailed
#   POST /api/auth/login/verify    email + code           -> session token
#   POST /api/auth/login/resend    email + password + PIN -> new code emailed
#   GET  /api/auth/me              current identity (bearer token)
#   PUT  /api/auth/password        change password (current password + PIN)
#   PUT  /api/auth/pin             change PIN (current password + PIN)
#
# Route handlers only translate between JSON and the Authenticator, and run
# it off the event loop (PBKDF2 and SMTP block).
# Input rules and error semantics live in the core.

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..auth.authenticator import Authenticator
from ..auth.hashing import CredentialHasher
from ..auth.identity_store import IdentityStore
from ..auth.notifier import build_notifier
from ..auth.otp_ledger import OneTimeCodeLedger
from ..core.config import get_settings
from .security import get_token_service, require_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# ── Singletons ────────────────────────────────────────────────────────

_ledger: Optional[OneTimeCodeLedger] = None
_authenticator: Optional[Authenticator] = None


def get_code_ledger() -> OneTimeCodeLedger:
    """Get or create the process-wide one-time code ledger."""
    global _ledger
    if _ledger is None:
        settings = get_settings()
        _ledger = OneTimeCodeLedger(
            ttl_seconds=settings.otp_ttl_seconds,
            max_attempts=settings.otp_max_attempts,
            code_length=settings.otp_length,
            sweep_interval_seconds=settings.otp_sweep_interval_seconds,
        )
    return _ledger


def set_code_ledger(ledger: Optional[OneTimeCodeLedger]):
    """Allow DI for testing."""
    global _ledger
    _ledger = ledger


def get_authenticator() -> Authenticator:
    """Get or create the Authenticator singleton."""
    global _authenticator
    if _authenticator is None:
        settings = get_settings()
        _authenticator = Authenticator(
            identities=IdentityStore(settings.database_path),
            hasher=CredentialHasher(settings.hash_iterations),
            ledger=get_code_ledger(),
            notifier=build_notifier(settings),
            tokens=get_token_service(),
        )
    return _authenticator


def set_authenticator(authenticator: Optional[Authenticator]):
    """Allow DI for testing."""
    global _authenticator
    _authenticator = authenticator


# ── Request Models ────────────────────────────────────────────────────


class CredentialsRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=1024)
    pin: str = Field(..., max_length=16)


class VerifyCodeRequest(BaseModel):
    email: str = Field(..., max_length=320)
    code: str = Field(..., max_length=16)


class ChangePasswordRequest(BaseModel):
    current_password: str
    current_pin: str
    new_password: str


class ChangePinRequest(BaseModel):
    current_password: str
    current_pin: str
    new_pin: str


# ── Endpoints ─────────────────────────────────────────────────────────


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: CredentialsRequest):
    """Create an account and sign in straight away (no code step)."""
    result = await asyncio.to_thread(
        get_authenticator().register, request.email, request.password, request.pin
    )
    return result.to_dict()


@router.post("/login")
async def login(request: CredentialsRequest):
    """Step 1: check password and PIN, email a one-time code."""
    result = await asyncio.to_thread(
        get_authenticator().login_step1, request.email, request.password, request.pin
    )
    return result.to_dict()


@router.post("/login/verify")
async def login_verify(request: VerifyCodeRequest):
    """Step 2: exchange the emailed code for a session token."""
    result = await asyncio.to_thread(
        get_authenticator().login_verify, request.email, request.code
    )
    return result.to_dict()


@router.post("/login/resend")
async def login_resend(request: CredentialsRequest):
    """Re-check password and PIN and email a replacement code."""
    result = await asyncio.to_thread(
        get_authenticator().login_resend, request.email, request.password, request.pin
    )
    return result.to_dict()


@router.get("/me")
async def me(identity_key: str = Depends(require_identity)):
    identity = await asyncio.to_thread(get_authenticator().get_identity, identity_key)
    return {"user": identity.to_dict()}


@router.put("/password")
async def change_password(
    request: ChangePasswordRequest,
    identity_key: str = Depends(require_identity),
):
    await asyncio.to_thread(
        get_authenticator().change_password,
        identity_key, request.current_password, request.current_pin, request.new_password
    )
    return {"success": True, "message": "Password updated"}


@router.put("/pin")
async def change_pin(
    request: ChangePinRequest,
    identity_key: str = Depends(require_identity),
):
    await asyncio.to_thread(
        get_authenticator().change_pin,
        identity_key, request.current_password, request.current_pin, request.new_pin
    )
    return {"success": True, "message": "PIN updated"}
