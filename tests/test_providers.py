"""
Unit tests for provider adapters
"""
import asyncio
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from surfcast.providers import (
    MAX_RESPONSE_SIZE,
    AstronomySunAdapter,
    MalformedResponseError,
    OpenMeteoForecastAdapter,
    OpenMeteoMarineAdapter,
    ProviderNotConfigured,
    ProviderResponseError,
    ProviderTimeout,
    StormglassTideEventsAdapter,
    SunriseSunsetAdapter,
    WorldTidesHeightsAdapter,
    fetch_json,
)
from surfcast.tide_service import TideKind
from tests.fakes import AUCKLAND, WINDOW


def _hour_keys(day: date, days: int = 2):
    return [
        f"{(day + timedelta(days=d)).isoformat()}T{h:02d}:00"
        for d in range(days)
        for h in range(24)
    ]


def _run_fetch(adapter, handler):
    """Run adapter.fetch against a mock transport."""
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await adapter.fetch(client, WINDOW, -41.327, 174.794)
    return asyncio.run(go())


@pytest.fixture
def forecast_payload():
    keys = _hour_keys(WINDOW.day)
    n = len(keys)
    return {
        'hourly': {
            'time': keys,
            'temperature_2m': [18.0 + (i % 24) * 0.1 for i in range(n)],
            'relative_humidity_2m': [70] * n,
            'pressure_msl': [1012.5] * n,
            'wind_speed_10m': [12.0] * n,
            'wind_gusts_10m': [20.0] * n,
            'wind_direction_10m': [200] * n,
            'precipitation': [0.4] * n,
            'rain': [None] * n,
            'showers': [0.2] + [None] * (n - 1),
        },
        'daily': {
            'time': ['2025-03-10', '2025-03-11'],
            'sunrise': ['2025-03-10T07:12', '2025-03-11T07:13'],
            'sunset': ['2025-03-10T19:45', '2025-03-11T19:43'],
        },
    }


class TestFetchJson:
    """Tests for the shared HTTP helper."""

    def test_decodes_json(self):
        def handler(request):
            return httpx.Response(200, json={'ok': True})

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await fetch_json(client, "https://example.test/x")

        assert asyncio.run(go()) == {'ok': True}

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(ProviderResponseError):
            _run_fetch(OpenMeteoMarineAdapter(), handler)

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(MalformedResponseError):
            _run_fetch(OpenMeteoMarineAdapter(), handler)

    def test_oversized_response(self):
        def handler(request):
            return httpx.Response(200, content=b' ' * (MAX_RESPONSE_SIZE + 1))

        with pytest.raises(ProviderResponseError):
            _run_fetch(OpenMeteoMarineAdapter(), handler)

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderResponseError):
            _run_fetch(OpenMeteoMarineAdapter(), handler)

    def test_client_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderTimeout):
            _run_fetch(OpenMeteoMarineAdapter(), handler)


class TestOpenMeteoForecast:
    """Tests for the forecast adapter."""

    def test_request_parameters(self, forecast_payload):
        seen = {}

        def handler(request):
            seen['params'] = dict(request.url.params)
            return httpx.Response(200, json=forecast_payload)

        _run_fetch(OpenMeteoForecastAdapter(), handler)

        params = seen['params']
        assert params['start_date'] == '2025-03-10'
        assert params['end_date'] == '2025-03-11'
        assert params['timezone'] == 'Pacific/Auckland'
        assert params['windspeed_unit'] == 'kmh'
        assert 'wind_gusts_10m' in params['hourly']

    def test_rows_matched_by_local_hour(self, forecast_payload):
        result = OpenMeteoForecastAdapter().parse(forecast_payload, WINDOW)

        assert set(result.hourly) == set(range(24))
        assert result.value(5, 'temperature') == pytest.approx(18.5)
        assert result.value(5, 'wind_direction') == 200

    def test_rain_precedence(self, forecast_payload):
        """rain, then showers, then precipitation."""
        result = OpenMeteoForecastAdapter().parse(forecast_payload, WINDOW)
        assert result.value(0, 'precipitation') == 0.2
        assert result.value(1, 'precipitation') == 0.4

    def test_missing_values_left_out(self, forecast_payload):
        forecast_payload['hourly']['pressure_msl'][3] = None
        result = OpenMeteoForecastAdapter().parse(forecast_payload, WINDOW)
        assert result.value(3, 'pressure') is None
        assert result.value(4, 'pressure') == 1012.5

    def test_daily_sun_times(self, forecast_payload):
        result = OpenMeteoForecastAdapter().parse(forecast_payload, WINDOW)
        assert result.sunrise == datetime(2025, 3, 10, 7, 12, tzinfo=AUCKLAND)
        assert result.sunset == datetime(2025, 3, 10, 19, 45, tzinfo=AUCKLAND)

    def test_other_days_ignored(self, forecast_payload):
        forecast_payload['hourly']['time'] = _hour_keys(WINDOW.day + timedelta(days=1))
        result = OpenMeteoForecastAdapter().parse(forecast_payload, WINDOW)
        assert result.hourly == {}

    @pytest.mark.parametrize("payload", [[], {}, {'hourly': {}}, {'hourly': {'time': 'nope'}}])
    def test_malformed(self, payload):
        with pytest.raises(MalformedResponseError):
            OpenMeteoForecastAdapter().parse(payload, WINDOW)


class TestOpenMeteoMarine:
    """Tests for the marine adapter."""

    def test_parse(self):
        keys = _hour_keys(WINDOW.day, days=1)
        payload = {
            'hourly': {
                'time': keys,
                'wave_height': [1.2] * 24,
                'wave_period': [9.0] * 24,
                'wave_direction': [170] * 24,
                'sea_surface_temperature': [None] * 12 + [16.5] * 12,
            }
        }
        result = OpenMeteoMarineAdapter().parse(payload, WINDOW)
        assert result.value(0, 'wave_height') == 1.2
        assert result.value(0, 'water_temperature') is None
        assert result.value(20, 'water_temperature') == 16.5


class TestWorldTides:
    """Tests for the tide height adapter."""

    def test_not_configured_without_key(self):
        adapter = WorldTidesHeightsAdapter(None)
        assert not adapter.is_configured()
        with pytest.raises(ProviderNotConfigured):
            _run_fetch(adapter, lambda request: httpx.Response(500))

    def test_blank_key_is_not_a_key(self):
        assert not WorldTidesHeightsAdapter("   ").is_configured()

    def test_fetch_places_heights_on_hours(self):
        start = int(WINDOW.start.timestamp())
        payload = {
            'status': 200,
            'heights': [{'dt': start + h * 3600, 'height': 0.1 * h} for h in range(24)],
        }
        seen = {}

        def handler(request):
            seen['url'] = str(request.url)
            return httpx.Response(200, json=payload)

        result = _run_fetch(WorldTidesHeightsAdapter("secret"), handler)

        assert 'heights' in seen['url']
        assert 'key=secret' in seen['url']
        assert result.value(0, 'tide_height') == 0
        assert result.value(23, 'tide_height') == pytest.approx(2.3)

    def test_error_status(self):
        with pytest.raises(ProviderResponseError):
            WorldTidesHeightsAdapter("k").parse({'status': 400, 'error': 'bad key'}, WINDOW)

    def test_no_heights(self):
        with pytest.raises(MalformedResponseError):
            WorldTidesHeightsAdapter("k").parse({'status': 200, 'heights': []}, WINDOW)


class TestStormglass:
    """Tests for the tide event adapter."""

    def test_auth_header_and_events(self):
        payload = {
            'data': [
                {'height': 0.8, 'time': '2025-03-09T20:31:00+00:00', 'type': 'high'},
                {'height': -0.7, 'time': '2025-03-09T14:20:00+00:00', 'type': 'low'},
                {'height': 0.1, 'time': '2025-03-09T15:00:00+00:00', 'type': 'slack'},
            ]
        }
        seen = {}

        def handler(request):
            seen['auth'] = request.headers.get('Authorization')
            return httpx.Response(200, json=payload)

        result = _run_fetch(StormglassTideEventsAdapter("sg-key"), handler)

        assert seen['auth'] == 'sg-key'
        assert [e.kind for e in result.events] == [TideKind.LOW, TideKind.HIGH]
        assert result.events[0].time == datetime(2025, 3, 9, 14, 20, tzinfo=timezone.utc)
        assert result.events[0].height == -0.7

    def test_malformed(self):
        with pytest.raises(MalformedResponseError):
            StormglassTideEventsAdapter("k").parse({'errors': {}}, WINDOW)


class TestSunTimes:
    """Tests for sun-times adapters."""

    def test_sunrise_sunset_parse(self):
        payload = {
            'status': 'OK',
            'results': {
                'sunrise': '2025-03-09T18:12:00+00:00',
                'sunset': '2025-03-10T06:45:00+00:00',
            },
        }
        result = SunriseSunsetAdapter().parse(payload, WINDOW)
        assert result.sunrise == datetime(2025, 3, 10, 7, 12, tzinfo=AUCKLAND)
        assert result.sunset.hour == 19

    def test_sunrise_sunset_bad_status(self):
        with pytest.raises(ProviderResponseError):
            SunriseSunsetAdapter().parse({'status': 'INVALID_DATE'}, WINDOW)

    def test_astronomy_adapter_uses_service(self):
        class FakeService:
            def get_sun_times(self, lat, lon, day, tz):
                return (
                    datetime(day.year, day.month, day.day, 7, 10, tzinfo=tz),
                    datetime(day.year, day.month, day.day, 19, 40, tzinfo=tz),
                )

        result = _run_fetch(AstronomySunAdapter(FakeService()), lambda request: httpx.Response(500))
        assert result.sunrise.hour == 7
        assert result.sunset.minute == 40

    def test_astronomy_adapter_polar_night(self):
        class PolarService:
            def get_sun_times(self, lat, lon, day, tz):
                return None, None

        with pytest.raises(ProviderResponseError):
            _run_fetch(AstronomySunAdapter(PolarService()), lambda request: httpx.Response(500))
