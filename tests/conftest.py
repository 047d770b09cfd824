"""
Shared pytest fixtures for the SP Vault test suite.

Autouse fixtures below isolate tests from live application data:
  - Settings      -> temp data/audit directories, fast hashing
  - Audit logger  -> temp directory (no test events in ./audit_logs)
  - API singletons -> reset per test (fresh ledger, stores, token service)
"""

from datetime import datetime, timedelta, timezone

import pytest

TEST_SECRET_KEY = "test-secret-key-for-sp-vault"
TEST_HASH_ITERATIONS = 1_000


class FakeClock:
    """Settable clock for ledger/token/store tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    """Notifier double that remembers every delivered code."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def send(self, identity_key, code):
        self.sent.append((identity_key, code))
        return self.succeed

    @property
    def last_code(self):
        return self.sent[-1][1] if self.sent else None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path):
    """Point the settings singleton at tmp_path with a fixed secret key."""
    import sp_vault.core.config as config_mod
    from sp_vault.core.config import Settings

    old_settings = config_mod._settings
    config_mod._settings = Settings(
        secret_key=TEST_SECRET_KEY,
        data_dir=tmp_path / "data",
        audit_log_dir=tmp_path / "audit_logs",
        hash_iterations=TEST_HASH_ITERATIONS,
    )

    yield

    config_mod._settings = old_settings


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger()`` writes into the real ``./audit_logs/``.
    """
    import sp_vault.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    # Detach this test's file handler so handlers don't pile up.
    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_api_singletons():
    """Reset lazily-built API singletons so each test wires its own."""
    from sp_vault.api import auth_routes, security, vault_routes

    saved = (
        auth_routes._ledger,
        auth_routes._authenticator,
        security._token_service,
        vault_routes._entry_store,
    )
    auth_routes._ledger = None
    auth_routes._authenticator = None
    security._token_service = None
    vault_routes._entry_store = None

    yield

    if auth_routes._ledger is not None:
        auth_routes._ledger.stop()
    (
        auth_routes._ledger,
        auth_routes._authenticator,
        security._token_service,
        vault_routes._entry_store,
    ) = saved
