from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import quote_plus

from dotenv import load_dotenv


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()

DEFAULT_VIDEO_TYPES = (
    "video/mp4",
    "video/mpeg",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-ms-wmv",
    "video/x-flv",
    "video/webm",
    "video/3gpp",
    "video/x-matroska",
)


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _require_env_int(name: str) -> int:
    raw = _require_env(name)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_int(name: str, default: int) -> int:
    if not os.getenv(name):
        return default
    return _require_env_int(name)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class UploadsConfig:
    provider_account_id: str
    provider_api_token: str
    provider_api_base_url: str
    provider_playback_base_url: str
    provider_timeout_seconds: float
    tus_version: str
    max_upload_bytes: int
    max_duration_seconds: int
    allowed_video_types: Tuple[str, ...]
    webhook_secret: Optional[str]
    webhook_signature_header: str
    webhook_allow_unsigned: bool
    webhook_max_attempts: int
    webhook_retry_base_delay_seconds: float
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    redis_host: str
    redis_port: int
    redis_db: int
    rate_limit_enabled: bool
    rate_limit_max_requests: int
    rate_limit_window_seconds: int
    asset_id_prefix: str
    asset_id_length: int
    log_level: str = "INFO"
    environment: str = "development"

    @property
    def database_dsn(self) -> str:
        return self._dsn("postgresql")

    @property
    def sqlalchemy_dsn(self) -> str:
        return self._dsn("postgresql+psycopg")

    def _dsn(self, scheme: str) -> str:
        credentials = f"{quote_plus(self.db_user)}:{quote_plus(self.db_password)}"
        return f"{scheme}://{credentials}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_config() -> UploadsConfig:
    environment = os.getenv("UPLOADS_ENVIRONMENT", "development").strip().lower()
    return UploadsConfig(
        provider_account_id=_require_env("UPLOADS_PROVIDER_ACCOUNT_ID"),
        provider_api_token=_require_env("UPLOADS_PROVIDER_API_TOKEN"),
        provider_api_base_url=os.getenv(
            "UPLOADS_PROVIDER_API_BASE_URL", "https://api.cloudflare.com/client/v4"
        ),
        provider_playback_base_url=os.getenv(
            "UPLOADS_PROVIDER_PLAYBACK_BASE_URL", "https://videodelivery.net"
        ),
        provider_timeout_seconds=_env_float("UPLOADS_PROVIDER_TIMEOUT_SECONDS", 30.0),
        tus_version=os.getenv("UPLOADS_TUS_VERSION", "1.0.0"),
        max_upload_bytes=_env_int("UPLOADS_MAX_UPLOAD_BYTES", 3 * 1024 * 1024 * 1024),
        max_duration_seconds=_env_int("UPLOADS_MAX_DURATION_SECONDS", 3600),
        allowed_video_types=_env_list(
            "UPLOADS_ALLOWED_VIDEO_TYPES", DEFAULT_VIDEO_TYPES
        ),
        webhook_secret=os.getenv("UPLOADS_WEBHOOK_SECRET") or None,
        webhook_signature_header=os.getenv(
            "UPLOADS_WEBHOOK_SIGNATURE_HEADER", "cf-webhook-signature"
        ),
        webhook_allow_unsigned=_env_bool(
            "UPLOADS_WEBHOOK_ALLOW_UNSIGNED", environment != "production"
        ),
        webhook_max_attempts=_env_int("UPLOADS_WEBHOOK_MAX_ATTEMPTS", 3),
        webhook_retry_base_delay_seconds=_env_float(
            "UPLOADS_WEBHOOK_RETRY_BASE_DELAY_SECONDS", 1.0
        ),
        db_host=_require_env("UPLOADS_DB_HOST"),
        db_port=_env_int("UPLOADS_DB_PORT", 5432),
        db_name=_require_env("UPLOADS_DB_NAME"),
        db_user=_require_env("UPLOADS_DB_USER"),
        db_password=_require_env("UPLOADS_DB_PASSWORD"),
        redis_host=os.getenv("UPLOADS_REDIS_HOST", "localhost"),
        redis_port=_env_int("UPLOADS_REDIS_PORT", 6379),
        redis_db=_env_int("UPLOADS_REDIS_DB", 0),
        rate_limit_enabled=_env_bool("UPLOADS_RATE_LIMIT_ENABLED", True),
        rate_limit_max_requests=_env_int("UPLOADS_RATE_LIMIT_MAX_REQUESTS", 60),
        rate_limit_window_seconds=_env_int("UPLOADS_RATE_LIMIT_WINDOW_SECONDS", 60),
        asset_id_prefix=os.getenv("UPLOADS_ASSET_ID_PREFIX", "vid"),
        asset_id_length=_env_int("UPLOADS_ASSET_ID_LENGTH", 24),
        log_level=os.getenv("UPLOADS_LOG_LEVEL", "INFO").upper(),
        environment=environment,
    )
