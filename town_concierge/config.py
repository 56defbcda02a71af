import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

APP_ENVS = {"development", "production", "test"}
WHATSAPP_PROVIDERS = {"console", "twilio", "meta"}
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"
    port: int = 8000
    database_url: str = "sqlite+aiosqlite:///./town.db"
    create_tables: bool = True
    allow_origin: str = "http://localhost:4321"
    log_level: str = "INFO"
    app_base_url: str = "https://town.tld"

    whatsapp_provider: str = "console"
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_from: Optional[str] = None
    meta_verify_token: Optional[str] = None
    meta_phone_number_id: Optional[str] = None
    meta_access_token: Optional[str] = None
    send_timeout_secs: float = 30.0

    def __post_init__(self):
        if self.app_env not in APP_ENVS:
            raise ConfigError(f"APP_ENV must be one of {sorted(APP_ENVS)}, got '{self.app_env}'")
        if self.whatsapp_provider not in WHATSAPP_PROVIDERS:
            raise ConfigError(
                f"WHATSAPP_PROVIDER must be one of {sorted(WHATSAPP_PROVIDERS)}, got '{self.whatsapp_provider}'"
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got '{self.log_level}'")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file if present)."""
        load_dotenv(find_dotenv(usecwd=True))
        try:
            port = int(os.getenv("PORT", "8000"))
            send_timeout = float(os.getenv("SEND_TIMEOUT_SECS", "30"))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        return cls(
            app_env=os.getenv("APP_ENV", "development").lower(),
            port=port,
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./town.db"),
            create_tables=_env_bool("CREATE_TABLES", True),
            allow_origin=os.getenv("ALLOW_ORIGIN", "http://localhost:4321"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            app_base_url=os.getenv("APP_BASE_URL", "https://town.tld").rstrip("/"),
            whatsapp_provider=os.getenv("WHATSAPP_PROVIDER", "console").lower(),
            twilio_account_sid=_env_optional("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=_env_optional("TWILIO_AUTH_TOKEN"),
            twilio_whatsapp_from=_env_optional("TWILIO_WHATSAPP_FROM"),
            meta_verify_token=_env_optional("META_VERIFY_TOKEN"),
            meta_phone_number_id=_env_optional("META_PHONE_NUMBER_ID"),
            meta_access_token=_env_optional("META_ACCESS_TOKEN"),
            send_timeout_secs=send_timeout,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
