from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar


_WEBHOOK_SECRET_ENV = "WEBHOOK_SECRET"
_APP_URL_ENV = "APP_URL"
_GEMINI_API_KEY_ENV = "GEMINI_API_KEY"
_GEMINI_MODEL_ENV = "GEMINI_MODEL"
_GEMINI_TIMEOUT_ENV = "GEMINI_TIMEOUT"
_SENSOR_DATA_PATH_ENV = "SENSOR_DATA_PATH"
_IDENTITY_DATA_PATH_ENV = "IDENTITY_DATA_PATH"
_OTP_TTL_ENV = "OTP_TTL_SECONDS"
_WORKER_COUNT_ENV = "READINGS_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class Settings:
    webhook_secret: Optional[str]
    app_url: str
    gemini_api_key: Optional[str]
    gemini_model: str
    gemini_timeout: float
    sensor_data_path: Optional[str]
    identity_data_path: Optional[str]
    otp_ttl_seconds: int
    readings_workers: int
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    """Unset falls back to ``default``; set but blank means explicitly disabled."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or None


def _read_str_env(name: str, default: str) -> str:
    return _read_optional_env(name, default) or default


def _read_positive(name: str, default: N, parse: Callable[[str], N]) -> N:
    candidate = _read_optional_env(name, None)
    if candidate is None:
        return default
    try:
        parsed = parse(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        webhook_secret=_read_optional_env(_WEBHOOK_SECRET_ENV, None),
        app_url=_read_str_env(_APP_URL_ENV, "http://localhost:8000").rstrip("/"),
        gemini_api_key=_read_optional_env(_GEMINI_API_KEY_ENV, None),
        gemini_model=_read_str_env(_GEMINI_MODEL_ENV, "gemini-2.0-flash"),
        gemini_timeout=_read_positive(_GEMINI_TIMEOUT_ENV, 60.0, float),
        sensor_data_path=_read_optional_env(_SENSOR_DATA_PATH_ENV, "./tmp/sensor_data.json"),
        identity_data_path=_read_optional_env(_IDENTITY_DATA_PATH_ENV, "./tmp/identity.json"),
        otp_ttl_seconds=_read_positive(_OTP_TTL_ENV, 3600, int),
        readings_workers=_read_positive(_WORKER_COUNT_ENV, 6, int),
        log_level=_read_str_env(_LOG_LEVEL_ENV, "INFO").upper(),
    )
