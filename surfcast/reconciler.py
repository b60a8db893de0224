"""
Reconciler - fan out to providers, merge, fill and normalize one day.

Protocol per assembly:
1. All configured adapters are called concurrently, each under its own
   timeout. Every adapter settles (ok / failed / timeout / not configured)
   before merging starts; one slow or broken provider never discards the
   others' results.
2. Hour by hour, forecast metrics come from the forecast adapter and marine
   metrics from the marine adapter; whatever is still missing is filled by
   the synthetic estimator.
3. Tide heights come from the authoritative tide provider when it answered,
   otherwise from the harmonic model. Extrema are derived from whichever
   curve was used.
4. Every series is normalized with its metric bounds.
5. The dataset is offline only if both forecast and marine failed.
6. The tide event overlay is fetched in its own task alongside all of the
   above. It never delays the dataset: if it arrives after the barrier it is
   attached to a replacement dataset by whoever holds the Assembly.

start() and assemble() never raise because of a provider.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from .astronomy_service import AstronomyService
from .config import Settings
from .dataset import (
    HOURS_PER_DAY,
    SOURCE_FORECAST,
    SOURCE_HARMONIC,
    SOURCE_MARINE,
    SOURCE_SYNTHETIC,
    SOURCE_TIDE_PROVIDER,
    DayWindow,
    ReconciledDataset,
)
from .normalizer import METRICS, normalize_metric
from .providers import (
    AstronomySunAdapter,
    OpenMeteoForecastAdapter,
    OpenMeteoMarineAdapter,
    ProviderAdapter,
    ProviderError,
    ProviderNotConfigured,
    ProviderResult,
    ProviderStatus,
    ProviderTimeout,
    StormglassTideEventsAdapter,
    SunriseSunsetAdapter,
    WorldTidesHeightsAdapter,
)
from .synthetic import SyntheticEstimator
from .tide_service import TideEvent, build_event_overlay, find_tide_extrema, synthesize_tide_heights

logger = logging.getLogger(__name__)

FORECAST_METRICS = (
    'temperature', 'humidity', 'pressure', 'wind_speed',
    'wind_gusts', 'wind_direction', 'precipitation',
)
MARINE_METRICS = ('wave_height', 'wave_period', 'wave_direction', 'water_temperature')
TIDE_METRIC = 'tide_height'


@dataclass
class ProviderSet:
    """Adapters available to an assembly. Any slot may be empty."""
    forecast: Optional[ProviderAdapter] = None
    marine: Optional[ProviderAdapter] = None
    tide_heights: Optional[ProviderAdapter] = None
    tide_events: Optional[ProviderAdapter] = None
    # Consulted in order, ahead of the forecast's own daily sun times
    sun_times: Sequence[ProviderAdapter] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings: Settings, astronomy: Optional[AstronomyService] = None) -> "ProviderSet":
        sun_times: List[ProviderAdapter] = [SunriseSunsetAdapter()]
        if settings.local_astronomy:
            sun_times.append(AstronomySunAdapter(astronomy))
        return cls(
            forecast=OpenMeteoForecastAdapter(),
            marine=OpenMeteoMarineAdapter(),
            tide_heights=WorldTidesHeightsAdapter(settings.worldtides_api_key),
            tide_events=StormglassTideEventsAdapter(settings.stormglass_api_key),
            sun_times=tuple(sun_times),
        )

    def barrier_adapters(self) -> List[ProviderAdapter]:
        """Adapters awaited together before merging (everything but the overlay)."""
        adapters = [self.forecast, self.marine, self.tide_heights, *self.sun_times]
        return [a for a in adapters if a is not None]


class Assembly:
    """
    A dataset delivered at the provider barrier, plus the tide event overlay
    fetch when it was still in flight.
    """

    def __init__(self, dataset: ReconciledDataset, overlay_task: Optional[asyncio.Task] = None):
        self.dataset = dataset
        self._overlay_task = overlay_task

    @property
    def pending(self) -> bool:
        return self._overlay_task is not None

    async def complete(self) -> ReconciledDataset:
        """Wait for the overlay and return the dataset with it attached."""
        if self._overlay_task is None:
            return self.dataset
        overlay, result = await self._overlay_task
        self._overlay_task = None
        self.dataset = with_overlay(self.dataset, overlay, result)
        return self.dataset

    def cancel(self):
        if self._overlay_task is not None:
            self._overlay_task.cancel()
            self._overlay_task = None


def with_overlay(
    dataset: ReconciledDataset,
    overlay: Optional[Tuple[TideEvent, ...]],
    result: ProviderResult,
) -> ReconciledDataset:
    """New dataset with the tide event overlay and its provider status attached."""
    provider_status = dict(dataset.provider_status)
    provider_status[result.provider] = result.status.value
    return replace(dataset, tide_overlay=overlay, provider_status=provider_status)


class Reconciler:
    """Builds ReconciledDatasets for a fixed location."""

    def __init__(
        self,
        providers: ProviderSet,
        lat: float,
        lon: float,
        estimator: Optional[SyntheticEstimator] = None,
        timeout_seconds: float = 10.0,
        overlay_timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.providers = providers
        self.lat = lat
        self.lon = lon
        self.estimator = estimator or SyntheticEstimator()
        self.timeout_seconds = timeout_seconds
        self.overlay_timeout_seconds = overlay_timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "Reconciler":
        return cls(
            providers=ProviderSet.from_settings(settings),
            lat=settings.lat,
            lon=settings.lon,
            timeout_seconds=settings.provider_timeout_seconds,
            overlay_timeout_seconds=settings.overlay_timeout_seconds,
            **kwargs,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={'User-Agent': 'surfcast/1.0'},
        )

    async def _settle(
        self,
        adapter: ProviderAdapter,
        client: httpx.AsyncClient,
        window: DayWindow,
        timeout: float,
    ) -> ProviderResult:
        """Run one adapter to completion; every failure becomes a result."""
        try:
            return await asyncio.wait_for(adapter.fetch(client, window, self.lat, self.lon), timeout=timeout)
        except (asyncio.TimeoutError, ProviderTimeout):
            logger.warning(f"{adapter.name} timed out after {timeout}s")
            return ProviderResult.unavailable(adapter, ProviderStatus.TIMEOUT, "timeout")
        except ProviderNotConfigured as e:
            logger.debug(f"{adapter.name} not configured: {e}")
            return ProviderResult.unavailable(adapter, ProviderStatus.NOT_CONFIGURED, str(e))
        except ProviderError as e:
            logger.warning(f"{adapter.name} fetch failed: {e}")
            return ProviderResult.unavailable(adapter, ProviderStatus.FAILED, str(e))
        except Exception as e:
            # Unexpected payload shapes degrade exactly like unavailability
            logger.warning(f"{adapter.name} fetch failed: {e!r}")
            return ProviderResult.unavailable(adapter, ProviderStatus.FAILED, repr(e))

    async def _fetch_overlay(self, window: DayWindow) -> Tuple[Optional[Tuple[TideEvent, ...]], ProviderResult]:
        adapter = self.providers.tide_events
        async with self._client() as client:
            result = await self._settle(adapter, client, window, self.overlay_timeout_seconds)
        if not result.ok:
            return None, result
        return build_event_overlay(result.events, window.start, window.end), result

    async def start(self, window: DayWindow) -> Assembly:
        """
        Assemble the day up to the provider barrier.

        The tide event overlay is fetched alongside but never waited for. It is
        attached when it has already arrived by the time the barrier settles;
        otherwise it stays pending on the returned Assembly.

        Args:
            window: The local day to build

        Returns:
            An Assembly holding a new, fully populated ReconciledDataset
        """
        providers = self.providers
        adapters = providers.barrier_adapters()

        overlay_task = None
        if providers.tide_events is not None:
            overlay_task = asyncio.create_task(self._fetch_overlay(window))

        async with self._client() as client:
            settled = await asyncio.gather(
                *(self._settle(a, client, window, self.timeout_seconds) for a in adapters)
            )
        results: Dict[int, ProviderResult] = {id(a): r for a, r in zip(adapters, settled)}

        def result_for(adapter: Optional[ProviderAdapter]) -> Optional[ProviderResult]:
            return results.get(id(adapter)) if adapter is not None else None

        forecast = result_for(providers.forecast)
        marine = result_for(providers.marine)
        tides = result_for(providers.tide_heights)
        sun_results = [result_for(a) for a in providers.sun_times]

        series, provenance = self._merge(window, forecast, marine, tides)
        sunrise, sunset, sun_source = self._resolve_sun_times(window, forecast, sun_results)

        normalized = {metric: normalize_metric(metric, series[metric]) for metric in METRICS}
        extrema = find_tide_extrema(normalized[TIDE_METRIC], window.hours)

        offline = not _succeeded(forecast) and not _succeeded(marine)
        if offline:
            logger.warning(f"All primary providers failed for {window.day}; dataset is fully synthetic")

        provider_status = {r.provider: r.status.value for r in settled}
        if overlay_task is not None:
            provider_status[providers.tide_events.name] = ProviderStatus.PENDING.value

        dataset = ReconciledDataset(
            window=window,
            series=normalized,
            provenance=provenance,
            sunrise=sunrise,
            sunset=sunset,
            sun_source=sun_source,
            tide_extrema=extrema,
            offline=offline,
            provider_status=provider_status,
        )
        assembly = Assembly(dataset, overlay_task)
        if overlay_task is not None and overlay_task.done():
            await assembly.complete()
        return assembly

    async def assemble(self, window: DayWindow) -> ReconciledDataset:
        """
        Assemble the reconciled dataset for one day window.

        Returns as soon as the provider barrier settles. A tide event overlay
        that has not arrived by then is dropped and reported as pending.
        """
        assembly = await self.start(window)
        assembly.cancel()
        return assembly.dataset

    def _merge(
        self,
        window: DayWindow,
        forecast: Optional[ProviderResult],
        marine: Optional[ProviderResult],
        tides: Optional[ProviderResult],
    ) -> Tuple[Dict[str, List[Optional[float]]], Dict[str, List[str]]]:
        series: Dict[str, List[Optional[float]]] = {m: [None] * HOURS_PER_DAY for m in METRICS}
        provenance: Dict[str, List[str]] = {m: [SOURCE_SYNTHETIC] * HOURS_PER_DAY for m in METRICS}

        for hour in range(HOURS_PER_DAY):
            for result, metrics, source in (
                (forecast, FORECAST_METRICS, SOURCE_FORECAST),
                (marine, MARINE_METRICS, SOURCE_MARINE),
            ):
                if not _succeeded(result):
                    continue
                for metric in metrics:
                    value = result.value(hour, metric)
                    if value is not None:
                        series[metric][hour] = value
                        provenance[metric][hour] = source

            known = {m: series[m][hour] for m in METRICS}
            estimate = self.estimator.estimate(hour, known)
            for metric in METRICS:
                if metric != TIDE_METRIC and series[metric][hour] is None:
                    series[metric][hour] = estimate[metric]

        if _succeeded(tides):
            # Hours the provider skipped are gap-filled by the normalizer
            series[TIDE_METRIC] = [tides.value(hour, TIDE_METRIC) for hour in range(HOURS_PER_DAY)]
            provenance[TIDE_METRIC] = [SOURCE_TIDE_PROVIDER] * HOURS_PER_DAY
        else:
            series[TIDE_METRIC] = list(synthesize_tide_heights(window.hours))
            provenance[TIDE_METRIC] = [SOURCE_HARMONIC] * HOURS_PER_DAY

        return series, provenance

    @staticmethod
    def _resolve_sun_times(
        window: DayWindow,
        forecast: Optional[ProviderResult],
        sun_results: Sequence[Optional[ProviderResult]],
    ) -> Tuple[datetime, datetime, str]:
        candidates = [*sun_results, forecast]
        for result in candidates:
            if _succeeded(result) and result.sunrise is not None and result.sunset is not None:
                return result.sunrise, result.sunset, result.provider

        sunrise, sunset = window.default_sun_times()
        return sunrise, sunset, SOURCE_SYNTHETIC


def _succeeded(result: Optional[ProviderResult]) -> bool:
    return result is not None and result.ok
