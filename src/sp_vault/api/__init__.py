# SP Vault - HTTP API
# FastAPI routers over the auth and vault cores.

from .main import create_app

__all__ = ["create_app"]
