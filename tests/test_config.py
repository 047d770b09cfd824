"""Tests for Settings loading from SP_VAULT_* environment variables."""

import os
from pathlib import Path

import pytest

from sp_vault.core.config import DEV_SECRET_KEY, Settings, get_settings, set_settings


@pytest.fixture
def clean_env(monkeypatch):
    """Hide SP_VAULT_* variables; drop any that a test or .env file adds."""
    for name in [n for n in os.environ if n.startswith("SP_VAULT_")]:
        monkeypatch.delenv(name)
    yield monkeypatch
    for name in [n for n in os.environ if n.startswith("SP_VAULT_")]:
        del os.environ[name]


class TestFromEnv:
    def test_defaults(self, clean_env, tmp_path):
        settings = Settings.from_env(tmp_path / "missing.env")
        assert settings.secret_key == DEV_SECRET_KEY
        assert settings.token_ttl_seconds == 86400
        assert settings.otp_ttl_seconds == 600
        assert settings.otp_max_attempts == 5
        assert settings.otp_length == 6
        assert settings.database_path == Path("data") / "sp_vault.db"
        assert not settings.email_configured
        assert settings.dev_log_codes is False

    def test_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv("SP_VAULT_SECRET_KEY", "from-env")
        clean_env.setenv("SP_VAULT_DATA_DIR", str(tmp_path))
        clean_env.setenv("SP_VAULT_OTP_MAX_ATTEMPTS", "3")
        clean_env.setenv("SP_VAULT_SMTP_USER", "u@example.com")
        clean_env.setenv("SP_VAULT_SMTP_PASSWORD", "pw")
        settings = Settings.from_env(tmp_path / "missing.env")
        assert settings.secret_key == "from-env"
        assert settings.database_path == tmp_path / "sp_vault.db"
        assert settings.otp_max_attempts == 3
        assert settings.email_configured

    def test_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / "test.env"
        env_file.write_text("SP_VAULT_SECRET_KEY=from-dotenv\nSP_VAULT_HASH_ITERATIONS=1234\n")
        settings = Settings.from_env(str(env_file))
        assert settings.secret_key == "from-dotenv"
        assert settings.hash_iterations == 1234

    @pytest.mark.parametrize("raw,expected", [("1", True), ("true", True), ("0", False), ("", False)])
    def test_dev_log_codes_flag(self, clean_env, tmp_path, raw, expected):
        clean_env.setenv("SP_VAULT_DEV_LOG_CODES", raw)
        assert Settings.from_env(tmp_path / "missing.env").dev_log_codes is expected

    def test_bad_integer(self, clean_env, tmp_path):
        clean_env.setenv("SP_VAULT_TOKEN_TTL_SECONDS", "a day")
        with pytest.raises(ValueError, match="SP_VAULT_TOKEN_TTL_SECONDS"):
            Settings.from_env(tmp_path / "missing.env")


class TestSingleton:
    def test_set_and_get(self):
        custom = Settings(secret_key="custom")
        set_settings(custom)
        assert get_settings() is custom
