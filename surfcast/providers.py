"""
Provider adapters.

Each adapter maps one external data source onto the internal hourly schema:
hour index (0-23 of the day window) -> metric name -> value, plus day-level
fields (sunrise/sunset, tide events) where the source has them.

Adapters raise ProviderError subclasses on failure. Catching those, and
turning them into a degraded result, is the Reconciler's job.

Sources:
- Open-Meteo forecast (weather, sunrise/sunset) - no key required
- Open-Meteo marine (waves, sea surface temperature) - no key required
- WorldTides heights (authoritative tide heights) - requires WORLDTIDES_API_KEY
- Storm Glass tide extremes (authoritative high/low events) - requires STORMGLASS_API_KEY
- sunrise-sunset.org (sun times) - no key required
- Local astronomical calculation (sun times) - no network
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from .astronomy_service import AstronomyService
from .dataset import DayWindow
from .tide_service import TideEvent, TideKind

logger = logging.getLogger(__name__)

# Security: Maximum response size from external APIs (1 MB)
MAX_RESPONSE_SIZE = 1 * 1024 * 1024

OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
OPEN_METEO_MARINE_URL = "https://marine-api.open-meteo.com/v1/marine"
WORLDTIDES_URL = "https://www.worldtides.info/api/v2?heights"
STORMGLASS_TIDE_URL = "https://api.stormglass.io/v2/tide/extremes/point"
SUNRISE_SUNSET_URL = "https://api.sunrise-sunset.org/json"

# Open-Meteo hourly field -> metric name
FORECAST_FIELDS = {
    'temperature_2m': 'temperature',
    'relative_humidity_2m': 'humidity',
    'pressure_msl': 'pressure',
    'wind_speed_10m': 'wind_speed',
    'wind_gusts_10m': 'wind_gusts',
    'wind_direction_10m': 'wind_direction',
}
# First non-null wins
RAIN_FIELDS = ('rain', 'showers', 'precipitation')

MARINE_FIELDS = {
    'wave_height': 'wave_height',
    'wave_period': 'wave_period',
    'wave_direction': 'wave_direction',
    'sea_surface_temperature': 'water_temperature',
}


class ProviderError(Exception):
    """Base class for provider failures."""


class ProviderNotConfigured(ProviderError):
    """Raised when a provider's credential is absent."""


class ProviderResponseError(ProviderError):
    """Raised for transport errors and non-success HTTP statuses."""


class ProviderTimeout(ProviderResponseError):
    """Raised when the provider did not answer within the client timeout."""


class MalformedResponseError(ProviderError):
    """Raised when a payload does not have the expected shape."""


class ProviderKind(str, Enum):
    FORECAST = "forecast"
    MARINE = "marine"
    TIDE_HEIGHTS = "tide_heights"
    TIDE_EVENTS = "tide_events"
    SUN_TIMES = "sun_times"


class ProviderStatus(str, Enum):
    OK = "ok"
    NOT_CONFIGURED = "not_configured"
    FAILED = "failed"
    TIMEOUT = "timeout"
    PENDING = "pending"


@dataclass(frozen=True)
class ProviderResult:
    provider: str
    kind: ProviderKind
    status: ProviderStatus = ProviderStatus.OK
    hourly: Mapping[int, Mapping[str, float]] = field(default_factory=dict)
    sunrise: Optional[datetime] = None
    sunset: Optional[datetime] = None
    events: Tuple[TideEvent, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ProviderStatus.OK

    def value(self, hour: int, metric: str) -> Optional[float]:
        return self.hourly.get(hour, {}).get(metric)

    @classmethod
    def unavailable(cls, adapter: "ProviderAdapter", status: ProviderStatus, error: Optional[str] = None) -> "ProviderResult":
        return cls(provider=adapter.name, kind=adapter.kind, status=status, error=error)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_iso(value: str, tz) -> datetime:
    """Parse an ISO 8601 string; naive values are taken as local to `tz`."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


class ProviderAdapter:
    """Base class for adapters that fetch JSON over HTTP."""

    name = "provider"
    kind = ProviderKind.FORECAST

    def is_configured(self) -> bool:
        return True

    def request(self, window: DayWindow, lat: float, lon: float) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        """Return (url, params, headers) for the day window."""
        raise NotImplementedError

    def parse(self, payload: Any, window: DayWindow) -> ProviderResult:
        raise NotImplementedError

    async def fetch(self, client: httpx.AsyncClient, window: DayWindow, lat: float, lon: float) -> ProviderResult:
        if not self.is_configured():
            raise ProviderNotConfigured(f"{self.name} has no credential configured")
        url, params, headers = self.request(window, lat, lon)
        payload = await fetch_json(client, url, params=params, headers=headers)
        return self.parse(payload, window)


class CredentialAdapter(ProviderAdapter):
    """Adapter gated on an optional credential."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key.strip() if api_key and api_key.strip() else None

    def is_configured(self) -> bool:
        return self.api_key is not None


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_size: int = MAX_RESPONSE_SIZE,
) -> Any:
    """
    GET a URL and decode its JSON body, enforcing a response size limit.

    Raises:
        ProviderTimeout: No answer within the client timeout
        ProviderResponseError: Transport failure, non-2xx status or oversized body
        MalformedResponseError: Body is not valid JSON
    """
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.TimeoutException as e:
        raise ProviderTimeout(f"Timed out waiting for {url}: {e}") from e
    except httpx.HTTPError as e:
        raise ProviderResponseError(f"Network error for {url}: {e}") from e

    if response.status_code >= 400:
        raise ProviderResponseError(f"HTTP {response.status_code} for {url}")

    # Check Content-Length header if available
    content_length = response.headers.get('Content-Length')
    if content_length and content_length.isdigit() and int(content_length) > max_size:
        raise ProviderResponseError(f"Response too large: {content_length} bytes (max: {max_size})")
    if len(response.content) > max_size:
        raise ProviderResponseError(f"Response exceeded size limit of {max_size} bytes")

    try:
        return json.loads(response.content)
    except ValueError as e:
        raise MalformedResponseError(f"Invalid JSON from {url}: {e}") from e


def _hourly_rows(payload: Any, window: DayWindow) -> Tuple[Mapping[str, Any], Dict[int, int]]:
    """
    Locate the `hourly` block of an Open-Meteo payload.

    Returns the block and a mapping of window hour -> row index, matching rows
    by local hour key.
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError("Expected JSON object")
    hourly = payload.get('hourly')
    if not isinstance(hourly, dict) or not isinstance(hourly.get('time'), list):
        raise MalformedResponseError("Missing hourly.time")

    row_by_key = {key: row for row, key in enumerate(hourly['time']) if isinstance(key, str)}
    rows = {}
    for hour in range(24):
        row = row_by_key.get(window.hour_key(hour))
        if row is not None:
            rows[hour] = row
    return hourly, rows


def _column_value(hourly: Mapping[str, Any], field_name: str, row: int) -> Optional[float]:
    column = hourly.get(field_name)
    if not isinstance(column, list) or row >= len(column):
        return None
    return _to_float(column[row])


class OpenMeteoForecastAdapter(ProviderAdapter):
    """Primary forecast provider: weather metrics and daily sun times."""

    name = "open-meteo-forecast"
    kind = ProviderKind.FORECAST

    def request(self, window, lat, lon):
        params = {
            'latitude': lat,
            'longitude': lon,
            'hourly': ','.join(list(FORECAST_FIELDS) + ['precipitation', 'rain', 'showers']),
            'daily': 'sunrise,sunset',
            'timezone': str(window.tz),
            'start_date': window.day.isoformat(),
            'end_date': (window.day + timedelta(days=1)).isoformat(),
            'windspeed_unit': 'kmh',
        }
        return OPEN_METEO_FORECAST_URL, params, {}

    def parse(self, payload, window):
        hourly, rows = _hourly_rows(payload, window)

        values: Dict[int, Dict[str, float]] = {}
        for hour, row in rows.items():
            metrics = {}
            for field_name, metric in FORECAST_FIELDS.items():
                value = _column_value(hourly, field_name, row)
                if value is not None:
                    metrics[metric] = value
            rain = 0.0
            for field_name in RAIN_FIELDS:
                value = _column_value(hourly, field_name, row)
                if value is not None:
                    rain = value
                    break
            metrics['precipitation'] = rain
            values[hour] = metrics

        sunrise, sunset = self._daily_sun_times(payload.get('daily'), window)
        return ProviderResult(
            provider=self.name, kind=self.kind, hourly=values, sunrise=sunrise, sunset=sunset,
        )

    @staticmethod
    def _daily_sun_times(daily: Any, window: DayWindow) -> Tuple[Optional[datetime], Optional[datetime]]:
        if not isinstance(daily, dict):
            return None, None

        def pick(name: str) -> Optional[datetime]:
            for value in daily.get(name) or []:
                if not isinstance(value, str):
                    continue
                try:
                    dt = _parse_iso(value, window.tz)
                except ValueError:
                    continue
                if dt.date() == window.day:
                    return dt
            return None

        return pick('sunrise'), pick('sunset')


class OpenMeteoMarineAdapter(ProviderAdapter):
    """Primary marine provider: waves and sea surface temperature."""

    name = "open-meteo-marine"
    kind = ProviderKind.MARINE

    def request(self, window, lat, lon):
        params = {
            'latitude': lat,
            'longitude': lon,
            'hourly': ','.join(MARINE_FIELDS),
            'timezone': str(window.tz),
            'start_date': window.day.isoformat(),
            'end_date': (window.day + timedelta(days=1)).isoformat(),
        }
        return OPEN_METEO_MARINE_URL, params, {}

    def parse(self, payload, window):
        hourly, rows = _hourly_rows(payload, window)

        values: Dict[int, Dict[str, float]] = {}
        for hour, row in rows.items():
            metrics = {}
            for field_name, metric in MARINE_FIELDS.items():
                value = _column_value(hourly, field_name, row)
                if value is not None:
                    metrics[metric] = value
            values[hour] = metrics

        return ProviderResult(provider=self.name, kind=self.kind, hourly=values)


class WorldTidesHeightsAdapter(CredentialAdapter):
    """Authoritative hourly tide heights."""

    name = "worldtides"
    kind = ProviderKind.TIDE_HEIGHTS

    def request(self, window, lat, lon):
        start = int(window.start.timestamp())
        params = {
            'lat': lat,
            'lon': lon,
            'start': start,
            'end': start + 24 * 3600,
            'step': 3600,
            'key': self.api_key,
        }
        return WORLDTIDES_URL, params, {}

    def parse(self, payload, window):
        if not isinstance(payload, dict):
            raise MalformedResponseError("Expected JSON object")
        status = payload.get('status')
        if status is not None and status != 200:
            raise ProviderResponseError(f"WorldTides error {status}: {payload.get('error', 'unknown')}")

        heights = payload.get('heights')
        if not isinstance(heights, list) or not heights:
            raise MalformedResponseError("No tide heights in response")

        values: Dict[int, Dict[str, float]] = {}
        for entry in heights:
            if not isinstance(entry, dict):
                continue
            timestamp = _to_float(entry.get('dt'))
            height = _to_float(entry.get('height'))
            if timestamp is None or height is None:
                continue
            hour = window.hour_index(datetime.fromtimestamp(timestamp, tz=timezone.utc))
            if hour is not None and hour not in values:
                values[hour] = {'tide_height': height}

        if not values:
            raise MalformedResponseError("No tide heights inside the day window")
        return ProviderResult(provider=self.name, kind=self.kind, hourly=values)


class StormglassTideEventsAdapter(CredentialAdapter):
    """Authoritative high/low tide events."""

    name = "stormglass"
    kind = ProviderKind.TIDE_EVENTS

    def request(self, window, lat, lon):
        params = {
            'lat': lat,
            'lng': lon,
            'start': window.start.astimezone(timezone.utc).isoformat(),
            'end': window.end.astimezone(timezone.utc).isoformat(),
        }
        return STORMGLASS_TIDE_URL, params, {'Authorization': self.api_key}

    def parse(self, payload, window):
        if not isinstance(payload, dict) or not isinstance(payload.get('data'), list):
            raise MalformedResponseError("Missing data list")

        events: List[TideEvent] = []
        for entry in payload['data']:
            if not isinstance(entry, dict):
                continue
            tide_type = str(entry.get('type', '')).lower()
            time_str = entry.get('time')
            if tide_type not in ('high', 'low') or not isinstance(time_str, str):
                continue
            try:
                dt = _parse_iso(time_str, window.tz)
            except ValueError:
                continue
            events.append(TideEvent(time=dt, kind=TideKind(tide_type), height=_to_float(entry.get('height'))))

        return ProviderResult(
            provider=self.name, kind=self.kind, events=tuple(sorted(events, key=lambda e: e.time)),
        )


class SunriseSunsetAdapter(ProviderAdapter):
    """Remote sun times (sunrise-sunset.org)."""

    name = "sunrise-sunset"
    kind = ProviderKind.SUN_TIMES

    def request(self, window, lat, lon):
        params = {
            'lat': lat,
            'lng': lon,
            'formatted': 0,
            'date': window.day.isoformat(),
            'tzid': str(window.tz),
        }
        return SUNRISE_SUNSET_URL, params, {}

    def parse(self, payload, window):
        if not isinstance(payload, dict):
            raise MalformedResponseError("Expected JSON object")
        if payload.get('status') != 'OK':
            raise ProviderResponseError(f"sunrise-sunset status {payload.get('status')}")
        results = payload.get('results')
        if not isinstance(results, dict):
            raise MalformedResponseError("Missing results")
        try:
            sunrise = _parse_iso(results['sunrise'], window.tz)
            sunset = _parse_iso(results['sunset'], window.tz)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Bad sun times: {e}") from e
        return ProviderResult(provider=self.name, kind=self.kind, sunrise=sunrise, sunset=sunset)


class AstronomySunAdapter(ProviderAdapter):
    """Sun times computed locally from the ephemeris, off the event loop."""

    name = "astronomy"
    kind = ProviderKind.SUN_TIMES

    def __init__(self, service: Optional[AstronomyService] = None):
        self.service = service or AstronomyService()

    async def fetch(self, client, window, lat, lon):
        sunrise, sunset = await asyncio.to_thread(self.service.get_sun_times, lat, lon, window.day, window.tz)
        if sunrise is None or sunset is None:
            raise ProviderResponseError("No sunrise/sunset on this day at this latitude")
        return ProviderResult(provider=self.name, kind=self.kind, sunrise=sunrise, sunset=sunset)
