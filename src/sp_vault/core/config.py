# SP Vault - Runtime Configuration
#
# All tunables come from SP_VAULT_* environment variables. A local .env file
# is loaded first (python-dotenv) so development setups don't need exports.
#
# The SECRET_KEY is the root of both the vault master key (entry encryption)
# and the session token signing key. Changing it makes every stored entry
# undecryptable and every issued token invalid.

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "SP_VAULT_"
DEV_SECRET_KEY = "dev-secret-change-me"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Process-wide configuration.

    Defaults match the behaviour of the hosted service: 24h session tokens,
    10 minute one-time codes with 5 attempts, PBKDF2 at 600k iterations.
    """

    secret_key: str = DEV_SECRET_KEY
    data_dir: Path = field(default_factory=lambda: Path("data"))
    audit_log_dir: Path = field(default_factory=lambda: Path("audit_logs"))

    token_ttl_seconds: int = 86400
    token_issuer: str = "sp-vault"

    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 5
    otp_length: int = 6
    otp_sweep_interval_seconds: int = 60

    hash_iterations: int = 600_000

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_sender: str = ""

    # Write codes to the application log instead of emailing them.
    # Local development only.
    dev_log_codes: bool = False

    @property
    def database_path(self) -> Path:
        return self.data_dir / "sp_vault.db"

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from the environment (after loading .env)."""
        load_dotenv(env_file)

        settings = cls(
            secret_key=_env("SECRET_KEY", DEV_SECRET_KEY),
            data_dir=Path(_env("DATA_DIR", "data")),
            audit_log_dir=Path(_env("AUDIT_LOG_DIR", "audit_logs")),
            token_ttl_seconds=_env_int("TOKEN_TTL_SECONDS", 86400),
            token_issuer=_env("TOKEN_ISSUER", "sp-vault"),
            otp_ttl_seconds=_env_int("OTP_TTL_SECONDS", 600),
            otp_max_attempts=_env_int("OTP_MAX_ATTEMPTS", 5),
            otp_length=_env_int("OTP_LENGTH", 6),
            otp_sweep_interval_seconds=_env_int("OTP_SWEEP_INTERVAL_SECONDS", 60),
            hash_iterations=_env_int("HASH_ITERATIONS", 600_000),
            smtp_host=_env("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=_env_int("SMTP_PORT", 587),
            smtp_user=_env("SMTP_USER", ""),
            smtp_password=_env("SMTP_PASSWORD", ""),
            smtp_sender=_env("SMTP_SENDER", ""),
            dev_log_codes=_env_bool("DEV_LOG_CODES"),
        )

        if settings.secret_key == DEV_SECRET_KEY:
            logger.warning(
                "SP_VAULT_SECRET_KEY is not set; using the development key. "
                "Do not store real secrets with this configuration."
            )
        return settings


# ── Singleton ────────────────────────────────────────────────────────

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Replace the singleton (for testing)."""
    global _settings
    _settings = settings
