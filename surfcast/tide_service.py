"""
Tide curve synthesis and extrema detection.

The harmonic model here is a deliberately simple stand-in used whenever no
authoritative tide height provider is reachable. It superimposes:
- a principal lunar semidiurnal component (12.42h), whose amplitude is
  modulated by the synodic month to approximate spring/neap variation
- its first overtone (6.21h), which skews the curve the way shallow water does

It is not calibrated to any tide station. It only guarantees that a
plausible-looking, deterministic curve is always available.

Extrema are found with a fixed-window local comparison (two samples either
side) and a significance threshold, so sub-threshold ripples are ignored.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np


# Model constants
BASE_HEIGHT_M = 0.9
PRINCIPAL_AMPLITUDE_M = 0.60
OVERTONE_AMPLITUDE_M = 0.25
SPRING_NEAP_FACTOR = 0.25
PRINCIPAL_PERIOD_H = 12.42   # M2
OVERTONE_PERIOD_H = 6.21     # M4
PRINCIPAL_PHASE = math.pi / 4
OVERTONE_PHASE = math.pi / 6
SYNODIC_PERIOD_H = 29.5306 * 24

# t=0 for the model (NZDT midnight, new year 2025)
MODEL_EPOCH = datetime(2025, 1, 1, 0, 0, tzinfo=timezone(timedelta(hours=13)))

# Extremum detection
NEIGHBOR_WINDOW = 2
SIGNIFICANCE_THRESHOLD = 0.1
MAX_EXTREMA_PER_KIND = 2

# Overlay limits
MAX_OVERLAY_EVENTS = 4


class TideKind(str, Enum):
    """Type of tidal extremum."""
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class TideExtremum:
    time: datetime
    height: float
    kind: TideKind

    def to_dict(self) -> dict:
        return {
            'type': self.kind.value,
            'datetime': self.time.replace(microsecond=0).isoformat(),
            'height_m': round(self.height, 3),
        }


@dataclass(frozen=True)
class TideExtrema:
    """Highs and lows of one day, each ascending by time and at most two long."""
    highs: Tuple[TideExtremum, ...] = ()
    lows: Tuple[TideExtremum, ...] = ()

    def is_empty(self) -> bool:
        return not self.highs and not self.lows

    def to_dict(self) -> dict:
        return {
            'highs': [e.to_dict() for e in self.highs],
            'lows': [e.to_dict() for e in self.lows],
        }


@dataclass(frozen=True)
class TideEvent:
    """An authoritative high/low tide event (height is optional)."""
    time: datetime
    kind: TideKind
    height: Optional[float] = None

    def to_dict(self) -> dict:
        result = {
            'type': self.kind.value,
            'datetime': self.time.replace(microsecond=0).isoformat(),
        }
        if self.height is not None:
            result['height_m'] = round(self.height, 3)
        return result


def _hours_since_epoch(times: Sequence[datetime]) -> np.ndarray:
    return np.array([(t - MODEL_EPOCH).total_seconds() / 3600.0 for t in times], dtype=float)


def synthesize_tide_heights(times: Sequence[datetime]) -> List[float]:
    """
    Calculate synthetic tide heights for the given (timezone-aware) times.

    height(t) = B + A1 * (1 + k*cos(2πt/Tsyn)) * sin(2πt/T1 - φ1) + A2 * sin(2πt/T2 + φ2)

    with t in hours since MODEL_EPOCH. Pure function of its input.

    Args:
        times: Timezone-aware datetimes

    Returns:
        Heights in meters, one per input time
    """
    if not times:
        return []

    th = _hours_since_epoch(times)
    two_pi = 2.0 * np.pi

    spring = 1.0 + SPRING_NEAP_FACTOR * np.cos(two_pi * th / SYNODIC_PERIOD_H)
    principal = PRINCIPAL_AMPLITUDE_M * spring * np.sin(two_pi * th / PRINCIPAL_PERIOD_H - PRINCIPAL_PHASE)
    overtone = OVERTONE_AMPLITUDE_M * np.sin(two_pi * th / OVERTONE_PERIOD_H + OVERTONE_PHASE)

    heights = BASE_HEIGHT_M + principal + overtone
    return [float(h) for h in heights]


def find_tide_extrema(heights: Sequence[float], times: Sequence[datetime]) -> TideExtrema:
    """
    Find significant high and low tides in a sampled tide curve.

    A sample is a high tide if it is strictly greater than the two samples on
    each side and exceeds their mean by more than SIGNIFICANCE_THRESHOLD; lows
    are symmetric. The first and last two samples can never be extrema.

    Args:
        heights: Tide heights
        times: Sample times, same length as heights

    Returns:
        TideExtrema with at most two highs and two lows, ascending by time
    """
    if len(heights) != len(times):
        raise ValueError("heights and times must have the same length")

    values = np.asarray(heights, dtype=float)
    highs = []
    lows = []

    for i in range(NEIGHBOR_WINDOW, len(values) - NEIGHBOR_WINDOW):
        current = values[i]
        neighbors = np.concatenate((
            values[i - NEIGHBOR_WINDOW:i],
            values[i + 1:i + 1 + NEIGHBOR_WINDOW],
        ))
        avg = float(neighbors.mean())

        if np.all(current > neighbors) and current - avg > SIGNIFICANCE_THRESHOLD:
            highs.append(TideExtremum(time=times[i], height=float(current), kind=TideKind.HIGH))
        if np.all(current < neighbors) and avg - current > SIGNIFICANCE_THRESHOLD:
            lows.append(TideExtremum(time=times[i], height=float(current), kind=TideKind.LOW))

    highs.sort(key=lambda e: e.time)
    lows.sort(key=lambda e: e.time)

    return TideExtrema(
        highs=tuple(highs[:MAX_EXTREMA_PER_KIND]),
        lows=tuple(lows[:MAX_EXTREMA_PER_KIND]),
    )


def build_event_overlay(
    events: Sequence[TideEvent],
    window_start: datetime,
    window_end: datetime,
) -> Tuple[TideEvent, ...]:
    """
    Restrict authoritative tide events to a day window.

    Events outside [window_start, window_end) are dropped, the rest are
    sorted, reduced to one event per minute and capped at MAX_OVERLAY_EVENTS.
    """
    in_window = sorted(
        (e for e in events if window_start <= e.time < window_end),
        key=lambda e: e.time,
    )

    overlay = []
    seen_minutes = set()
    for event in in_window:
        minute = event.time.astimezone(timezone.utc).replace(second=0, microsecond=0)
        if minute in seen_minutes:
            continue
        seen_minutes.add(minute)
        overlay.append(event)
        if len(overlay) >= MAX_OVERLAY_EVENTS:
            break

    return tuple(overlay)
