"""
Day windows and the reconciled dataset handed to consumers.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from timezonefinder import TimezoneFinder

from .normalizer import METRICS
from .scoring import classify, score_hours
from .tide_service import TideEvent, TideExtrema


HOURS_PER_DAY = 24

# 24 samples, index 0 = local midnight
HourlySeries = Tuple[float, ...]

# Provenance labels
SOURCE_FORECAST = 'forecast'
SOURCE_MARINE = 'marine'
SOURCE_TIDE_PROVIDER = 'worldtides'
SOURCE_HARMONIC = 'harmonic'
SOURCE_SYNTHETIC = 'synthetic'

STATUS_OFFLINE = 'offline'
STATUS_SIMULATED_WAVES = 'live-simulated-waves'
STATUS_LIVE = 'live'

_tz_finder: Optional[TimezoneFinder] = None


def resolve_timezone(lat: float, lon: float, timezone_str: Optional[str] = None) -> ZoneInfo:
    """Get timezone for coordinates, auto-detecting if not provided."""
    global _tz_finder
    if timezone_str is None:
        if _tz_finder is None:
            _tz_finder = TimezoneFinder()
        timezone_str = _tz_finder.timezone_at(lat=lat, lng=lon)
        if timezone_str is None:
            timezone_str = 'UTC'

    try:
        return ZoneInfo(timezone_str)
    except (ValueError, KeyError):
        return ZoneInfo('UTC')


@dataclass(frozen=True)
class DayWindow:
    """One local calendar day, sampled hourly."""
    day: date
    tz: ZoneInfo

    @classmethod
    def for_offset(cls, day_offset: int, tz: ZoneInfo, now: Optional[datetime] = None) -> "DayWindow":
        """Window for `day_offset` days relative to today in `tz`."""
        if now is None:
            now = datetime.now(timezone.utc)
        today = now.astimezone(tz).date()
        return cls(day=today + timedelta(days=day_offset), tz=tz)

    @property
    def start(self) -> datetime:
        return datetime(self.day.year, self.day.month, self.day.day, tzinfo=self.tz)

    @property
    def end(self) -> datetime:
        following = self.day + timedelta(days=1)
        return datetime(following.year, following.month, following.day, tzinfo=self.tz)

    @property
    def hours(self) -> Tuple[datetime, ...]:
        """24 samples one real hour apart from local midnight (DST days included)."""
        start = self.start.astimezone(timezone.utc)
        return tuple(
            (start + timedelta(hours=hour)).astimezone(self.tz)
            for hour in range(HOURS_PER_DAY)
        )

    def hour_key(self, hour: int) -> str:
        """Local hour key as used by hourly provider APIs (YYYY-MM-DDTHH:00)."""
        return self.hours[hour].strftime('%Y-%m-%dT%H:00')

    def hour_index(self, moment: datetime) -> Optional[int]:
        """Index of the hour nearest to `moment`, or None outside the window."""
        start = self.start.astimezone(timezone.utc)
        moment = moment.astimezone(timezone.utc)
        if moment < start or moment >= self.end.astimezone(timezone.utc):
            return None
        half_hours = (moment - start) // timedelta(minutes=30)
        index = (half_hours + 1) // 2
        return index if index < HOURS_PER_DAY else None

    def default_sun_times(self) -> Tuple[datetime, datetime]:
        """Fixed 07:00 / 19:00 local, used when no sun-times source answered."""
        start = self.start
        return start.replace(hour=7), start.replace(hour=19)


@dataclass(frozen=True)
class ReconciledDataset:
    """
    Fully populated, normalized conditions for one day.

    Consumers treat this as read-only and replace their view with each new
    dataset. Series and provenance are exposed as read-only mappings.
    """
    window: DayWindow
    series: Mapping[str, HourlySeries]
    provenance: Mapping[str, Tuple[str, ...]]
    sunrise: datetime
    sunset: datetime
    tide_extrema: TideExtrema
    offline: bool
    tide_overlay: Optional[Tuple[TideEvent, ...]] = None
    sun_source: str = SOURCE_SYNTHETIC
    provider_status: Mapping[str, str] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        missing = [m for m in METRICS if m not in self.series]
        if missing:
            raise ValueError(f"Dataset is missing series: {', '.join(missing)}")
        for name, values in self.series.items():
            if len(values) != HOURS_PER_DAY:
                raise ValueError(f"Series {name} has {len(values)} samples, expected {HOURS_PER_DAY}")
        object.__setattr__(self, 'series', MappingProxyType({k: tuple(v) for k, v in self.series.items()}))
        object.__setattr__(self, 'provenance', MappingProxyType({k: tuple(v) for k, v in self.provenance.items()}))
        object.__setattr__(self, 'provider_status', MappingProxyType(dict(self.provider_status)))

    @property
    def hours(self) -> Tuple[datetime, ...]:
        return self.window.hours

    @property
    def status(self) -> str:
        """offline / live-simulated-waves / live."""
        if self.offline:
            return STATUS_OFFLINE
        if SOURCE_MARINE not in self.provenance.get('wave_height', ()):
            return STATUS_SIMULATED_WAVES
        return STATUS_LIVE

    @property
    def scores(self) -> Tuple[float, ...]:
        return tuple(score_hours(self.series))

    def score_now(self, now: Optional[datetime] = None) -> float:
        """Score for the hour containing `now` when it falls in the window, else hour 0."""
        if now is None:
            now = datetime.now(timezone.utc)
        elapsed = now.astimezone(timezone.utc) - self.window.start.astimezone(timezone.utc)
        index = elapsed // timedelta(hours=1)
        if not 0 <= index < HOURS_PER_DAY:
            index = 0
        return self.scores[index]

    def is_night(self, hour: int) -> bool:
        moment = self.window.hours[hour]
        return moment < self.sunrise or moment >= self.sunset

    def to_dict(self) -> Dict[str, Any]:
        scores = self.scores
        return {
            'date': self.window.day.isoformat(),
            'timezone': str(self.window.tz),
            'hours': [h.isoformat() for h in self.window.hours],
            'series': {name: [round(v, 3) for v in values] for name, values in self.series.items()},
            'provenance': {name: list(sources) for name, sources in self.provenance.items()},
            'sunrise': self.sunrise.replace(microsecond=0).isoformat(),
            'sunset': self.sunset.replace(microsecond=0).isoformat(),
            'sun_source': self.sun_source,
            'tides': self.tide_extrema.to_dict(),
            'tide_events': (
                [e.to_dict() for e in self.tide_overlay] if self.tide_overlay is not None else None
            ),
            'offline': self.offline,
            'status': self.status,
            'providers': dict(self.provider_status),
            'scores': [round(s, 2) for s in scores],
            'score_classes': [classify(s) for s in scores],
            'night': [self.is_night(i) for i in range(HOURS_PER_DAY)],
            'generated_at': self.generated_at.replace(microsecond=0).isoformat(),
        }
