"""
Runtime configuration for the surf conditions service.

Values come from environment variables, optionally loaded from a .env file.
Malformed numeric values fall back to their defaults rather than failing startup.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


DEFAULT_LAT = -41.327
DEFAULT_LON = 174.794


def _get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_optional_env(key: str) -> Optional[str]:
    """Credentials are either a non-blank string or absent."""
    value = os.environ.get(key, '').strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    lat: float = DEFAULT_LAT
    lon: float = DEFAULT_LON
    # None means auto-detect from coordinates
    timezone: Optional[str] = None
    provider_timeout_seconds: float = 10.0
    overlay_timeout_seconds: float = 10.0
    max_past_days: int = 7
    max_future_days: int = 7
    local_astronomy: bool = True
    worldtides_api_key: Optional[str] = None
    stormglass_api_key: Optional[str] = None


def load_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        lat=_get_float_env('SURFCAST_LAT', DEFAULT_LAT),
        lon=_get_float_env('SURFCAST_LON', DEFAULT_LON),
        timezone=_get_optional_env('SURFCAST_TIMEZONE'),
        provider_timeout_seconds=_get_float_env('SURFCAST_PROVIDER_TIMEOUT', 10.0),
        overlay_timeout_seconds=_get_float_env('SURFCAST_OVERLAY_TIMEOUT', 10.0),
        max_past_days=max(_get_int_env('SURFCAST_MAX_PAST_DAYS', 7), 0),
        max_future_days=max(_get_int_env('SURFCAST_MAX_FUTURE_DAYS', 7), 0),
        local_astronomy=_get_bool_env('SURFCAST_LOCAL_ASTRONOMY', True),
        worldtides_api_key=_get_optional_env('WORLDTIDES_API_KEY'),
        stormglass_api_key=_get_optional_env('STORMGLASS_API_KEY'),
    )
