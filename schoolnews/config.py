from dataclasses import dataclass
from typing import Optional
import os

from schoolnews.errors import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/schoolnews.db"
BACKENDS = ("sql", "rest")


@dataclass
class Config:
    backend: str = "sql"
    database_url: str = DEFAULT_DATABASE_URL
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_service_key: Optional[str] = None
    sanitizer: str = "regex"
    retry_max_attempts: int = 3
    retry_base_delay_ms: float = 1000
    retry_attempt_timeout: Optional[float] = None
    http_timeout: float = 30.0
    log_level: str = "INFO"
    base_path: str = ""

    def validate(self) -> "Config":
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"SCHOOLNEWS_BACKEND must be one of {', '.join(BACKENDS)}, got '{self.backend}'",
                config_key="SCHOOLNEWS_BACKEND",
            )
        if self.backend == "rest":
            if not self.supabase_url:
                raise ConfigurationError("Missing SUPABASE_URL for the rest backend", config_key="SUPABASE_URL")
            if not self.supabase_key:
                raise ConfigurationError("Missing SUPABASE_ANON_KEY for the rest backend", config_key="SUPABASE_ANON_KEY")
        if self.sanitizer not in ("regex", "bleach"):
            raise ConfigurationError(
                f"SCHOOLNEWS_SANITIZER must be regex or bleach, got '{self.sanitizer}'",
                config_key="SCHOOLNEWS_SANITIZER",
            )
        if self.retry_max_attempts < 1:
            raise ConfigurationError("RETRY_MAX_ATTEMPTS must be at least 1", config_key="RETRY_MAX_ATTEMPTS")
        return self


def _env_number(key: str, default, cast):
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got '{raw}'", config_key=key)


def load_config() -> Config:
    """Read configuration from the environment."""
    database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    if database_url.startswith("sqlite:///"):
        database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

    return Config(
        backend=os.getenv("SCHOOLNEWS_BACKEND", "sql").lower(),
        database_url=database_url,
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_ANON_KEY"),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        sanitizer=os.getenv("SCHOOLNEWS_SANITIZER", "regex").lower(),
        retry_max_attempts=_env_number("RETRY_MAX_ATTEMPTS", 3, int),
        retry_base_delay_ms=_env_number("RETRY_BASE_DELAY_MS", 1000, float),
        retry_attempt_timeout=_env_number("RETRY_ATTEMPT_TIMEOUT", None, float),
        http_timeout=_env_number("HTTP_TIMEOUT", 30.0, float),
        log_level=os.getenv("SCHOOLNEWS_LOG_LEVEL", "INFO").upper(),
        base_path=os.getenv("BASE_PATH", "").rstrip("/"),
    ).validate()
