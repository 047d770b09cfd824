# SP Vault - FastAPI Backend
#
# Thin HTTP layer over the auth and vault cores:
# - routers for /api/auth and /api/vault
# - one handler translating VaultError tags into status codes
# - request log (method, path, status, latency; never bodies)
# - background sweeper for the one-time code ledger

import logging
import time
from typing import Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .. import __version__
from ..core.exceptions import VaultError
from .auth_routes import get_code_ledger, router as auth_router
from .vault_routes import router as vault_router

logger = logging.getLogger(__name__)

# Error tag -> HTTP status. Tags not listed fall back to 400.
STATUS_BY_CODE: Dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "invalid_credentials": status.HTTP_401_UNAUTHORIZED,
    "invalid_token": status.HTTP_401_UNAUTHORIZED,
    "expired_token": status.HTTP_401_UNAUTHORIZED,
    "code_not_found": status.HTTP_401_UNAUTHORIZED,
    "code_expired": status.HTTP_401_UNAUTHORIZED,
    "attempts_exhausted": status.HTTP_401_UNAUTHORIZED,
    "code_mismatch": status.HTTP_401_UNAUTHORIZED,
    "duplicate_identity": status.HTTP_409_CONFLICT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "notification_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
    "decryption_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_TOKEN_ERRORS = {"invalid_token", "expired_token"}

_allowed_origins = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:8000", "http://127.0.0.1:8000",
]


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log one line per request. Bodies are never read, so no credentials leak."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
        return response


async def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    headers = {"WWW-Authenticate": "Bearer"} if exc.code in _TOKEN_ERRORS else None
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON bodies get the same 400 shape as core ValidationErrors."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "validation_error",
            "message": "Invalid request body",
            "fields": fields,
        },
    )


def create_app(start_sweeper: bool = True) -> FastAPI:
    """
    Build the API application.

    Args:
        start_sweeper: Run the one-time code sweeper thread while the app
            is up. Tests usually pass False and sweep by hand.
    """
    app = FastAPI(
        title="SP Vault API",
        description="Personal credential vault with password + PIN + email code login",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogMiddleware)

    app.add_exception_handler(VaultError, vault_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(auth_router)
    app.include_router(vault_router)

    @app.get("/api/health")
    async def health_check():
        return {"status": "OK", "message": "SP Vault Server is running", "version": __version__}

    @app.on_event("startup")
    async def startup_event():
        if start_sweeper:
            get_code_ledger().start()
            logger.info("One-time code sweeper started")

    @app.on_event("shutdown")
    async def shutdown_event():
        if start_sweeper:
            get_code_ledger().stop()

    return app
