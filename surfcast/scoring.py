"""
Surfability scoring.

Maps one hour of conditions to a 0-10 rating. The score is a sum of
independent factors, clamped at the end:

1. Size fitness: Gaussian around an ideal height that grows with period
2. Cleanliness: wind direction against wave direction (offshore vs onshore)
3. Wind: penalty above a period/size dependent threshold, small calm bonus
4. Period: long swell bonus, short wind-chop penalty
5. Size penalty: waves over 3m, softened by good period/cleanliness
6. Rain: stacking light/heavy rain penalties
7. Comfort: mild air and water temperature bonuses

Units: heights in meters, periods in seconds, wind in km/h, rain in mm/h,
directions in degrees, temperatures in °C.
"""
import math
from typing import List, Optional

from .normalizer import clamp


MIN_SCORE = 0.0
MAX_SCORE = 10.0

DEFAULT_PERIOD_S = 0.0
DEFAULT_WIND_KMH = 0.0
DEFAULT_AIR_TEMP_C = 15.0
DEFAULT_WATER_TEMP_C = 14.0

GOOD_SCORE = 8.0
FAIR_SCORE = 5.0


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def _or_default(value: Optional[float], default: float) -> float:
    return value if _finite(value) else default


def _size_fitness(wave: float, period: float) -> float:
    ideal = clamp(0.9 + 0.12 * max(period - 8, 0), 1.0, 2.6)
    sigma = 0.45 + 0.04 * max(period - 10, 0)
    return 7 * math.exp(-(((wave - ideal) / sigma) ** 2))


def _cleanliness(wind_direction: Optional[float], wave_direction: Optional[float], period: float) -> float:
    if not _finite(wind_direction) or not _finite(wave_direction):
        return 0.0
    diff = abs(wind_direction - wave_direction)
    diff = min(diff, 360 - diff)
    if diff >= 150:
        offshore = 1.0
    elif diff >= 120:
        offshore = 0.5
    elif diff <= 60:
        offshore = -1.0
    else:
        offshore = -0.3
    amplitude = min(1.5, 0.6 + period / 12)
    return offshore * 1.2 * amplitude


def _wind_adjustment(wind: float, wave: float, period: float, clean: float) -> float:
    threshold = 12 + 0.5 * max(period - 8, 0) + 3 * max(min(wave - 1, 2), 0)
    adjustment = 0.0
    if wind > threshold:
        adjustment -= (wind - threshold) / 6
        if wind > threshold + 15:
            adjustment -= (wind - (threshold + 15)) / 3
    elif wind <= 8 and clean > 0.5:
        adjustment += 0.4
    return adjustment


def _period_adjustment(period: float) -> float:
    if period >= 13:
        return 0.8
    if period >= 10:
        return 0.4
    if period <= 6:
        return -0.6
    return 0.0


def _size_penalty(wave: float, period: float, clean: float) -> float:
    if wave <= 3:
        return 0.0
    soften = min(0.7, (period - 11) * 0.07 + max(clean, 0) * 0.2)
    return -(wave - 3) * (1.5 * (1 - max(0, soften)))


def _rain_adjustment(rain: float) -> float:
    adjustment = 0.0
    if rain > 0.5:
        adjustment -= 1.0
    if rain > 2:
        adjustment -= 1.5
    return adjustment


def _comfort_bonus(air_temp: float, water_temp: float) -> float:
    bonus = 0.0
    if 18 <= air_temp <= 22:
        bonus += 0.3
    if 14 <= water_temp <= 18:
        bonus += 0.2
    return bonus


def score(
    wave_height: Optional[float],
    wind_speed: Optional[float] = None,
    rain_rate: Optional[float] = None,
    wind_direction: Optional[float] = None,
    wave_period: Optional[float] = None,
    wave_direction: Optional[float] = None,
    air_temp: Optional[float] = None,
    water_temp: Optional[float] = None,
) -> float:
    """
    Rate surfing conditions for one hour on a 0-10 scale.

    Total and deterministic: any argument may be None. Without a wave height
    the score is 0. Direction-based cleanliness is skipped unless both
    directions are known.
    """
    if not _finite(wave_height):
        return MIN_SCORE

    period = _or_default(wave_period, DEFAULT_PERIOD_S)
    wind = _or_default(wind_speed, DEFAULT_WIND_KMH)
    rain = _or_default(rain_rate, 0.0)
    air = _or_default(air_temp, DEFAULT_AIR_TEMP_C)
    water = _or_default(water_temp, DEFAULT_WATER_TEMP_C)

    clean = _cleanliness(wind_direction, wave_direction, period)

    total = (
        _size_fitness(wave_height, period)
        + clean
        + _wind_adjustment(wind, wave_height, period, clean)
        + _period_adjustment(period)
        + _size_penalty(wave_height, period, clean)
        + _rain_adjustment(rain)
        + _comfort_bonus(air, water)
    )
    return clamp(total, MIN_SCORE, MAX_SCORE)


def classify(value: float) -> str:
    """Bucket a score into good / fair / poor."""
    if value >= GOOD_SCORE:
        return 'good'
    if value >= FAIR_SCORE:
        return 'fair'
    return 'poor'


def score_hours(series: dict) -> List[float]:
    """Score every hour of a mapping of metric name -> 24 samples."""
    return [
        score(
            series['wave_height'][i],
            series['wind_speed'][i],
            series['precipitation'][i],
            series['wind_direction'][i],
            series['wave_period'][i],
            series['wave_direction'][i],
            series['temperature'][i],
            series['water_temperature'][i],
        )
        for i in range(len(series['wave_height']))
    ]
