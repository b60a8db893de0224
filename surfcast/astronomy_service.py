"""
Astronomy Service for calculating sunrise and sunset locally.

Used as the last real source of sun times before the fixed 07:00 / 19:00
fallback, so a day view still gets plausible night shading when the remote
sun-times API is unreachable.

The ephemeris is loaded on first use, not at import time.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from skyfield import almanac
from skyfield.api import load, wgs84


class AstronomyService:
    """Service for calculating sun events for a given location."""

    def __init__(self, ephemeris: str = "de421.bsp"):
        self.ephemeris_name = ephemeris
        self._eph = None
        self._ts = None

    def _load(self):
        if self._eph is None:
            # Load the ephemeris data
            self._eph = load(self.ephemeris_name)
            self._ts = load.timescale()
        return self._eph, self._ts

    @property
    def loaded(self) -> bool:
        return self._eph is not None

    def get_sun_times(
        self, lat: float, lon: float, day: date, tz: ZoneInfo
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        """
        Calculate sunrise and sunset for one local calendar day.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            day: Local calendar day
            tz: Local timezone

        Returns:
            (sunrise, sunset) as timezone-aware local datetimes. Either is None
            when the sun does not rise or set that day (polar day/night).
        """
        eph, ts = self._load()
        location = wgs84.latlon(lat, lon)

        start_local = datetime(day.year, day.month, day.day, tzinfo=tz)
        end_local = start_local + timedelta(days=1)

        t0 = ts.from_datetime(start_local)
        t1 = ts.from_datetime(end_local)

        f_sun = almanac.sunrise_sunset(eph, location)
        times, events = almanac.find_discrete(t0, t1, f_sun)

        sunrise = None
        sunset = None
        for t, event in zip(times, events):
            dt = t.utc_datetime().astimezone(tz).replace(microsecond=0)
            if event == 1 and sunrise is None:
                sunrise = dt
            elif event == 0 and sunset is None:
                sunset = dt

        return sunrise, sunset
