"""
Synthetic estimates for hours a provider did not cover.

Each metric is a smooth diurnal curve plus bounded jitter. The jitter is drawn
from a generator seeded by hour of day, so the same hour always gets the same
estimate and fallback datasets are reproducible.
"""
import math
from typing import Dict, Mapping, Optional

import numpy as np


# Order in which jitter values are drawn; changing it changes every estimate
_DRAW_ORDER = (
    'temperature', 'feels_like', 'humidity', 'pressure', 'wind_speed',
    'wind_gusts', 'wind_direction', 'rain_chance', 'precipitation',
    'wave_height', 'wave_period', 'wave_direction', 'water_temperature',
)


class SyntheticEstimator:
    """Deterministic per-hour fallback values for every metric."""

    def __init__(self, seed: int = 0):
        self.seed = seed

    def _draws(self, hour: int) -> Dict[str, float]:
        rng = np.random.default_rng([self.seed, hour % 24])
        samples = rng.random(len(_DRAW_ORDER))
        return dict(zip(_DRAW_ORDER, (float(s) for s in samples)))

    @staticmethod
    def _jitter(u: float, half_width: float) -> float:
        return (u * 2 - 1) * half_width

    def estimate(self, hour: int, known: Optional[Mapping[str, Optional[float]]] = None) -> Dict[str, float]:
        """
        Estimate all metrics for an hour of the day.

        Args:
            hour: Hour of day (0-23)
            known: Values already resolved for this hour; feels-like and gusts
                are derived from temperature and wind speed when present

        Returns:
            Dictionary of metric name -> estimated value
        """
        known = known or {}
        u = self._draws(hour)
        h = hour % 24

        temperature = 15 + math.sin(h * 0.26) * 3 + self._jitter(u['temperature'], 1)
        wind_speed = 8 + math.sin(h * 0.4) * 10 + self._jitter(u['wind_speed'], 2)

        base_temp = known.get('temperature')
        if base_temp is None:
            base_temp = temperature
        base_wind = known.get('wind_speed')
        if base_wind is None:
            base_wind = wind_speed

        if u['rain_chance'] < 0.2:
            precipitation = round(u['precipitation'] * 1.5, 1)
        else:
            precipitation = 0.0

        return {
            'temperature': temperature,
            'feels_like': base_temp - 1 + self._jitter(u['feels_like'], 1),
            'humidity': 70 + math.sin(h * 0.3) * 15 + self._jitter(u['humidity'], 5),
            'pressure': 1013 + math.sin(h * 0.2) * 5 + self._jitter(u['pressure'], 1),
            'wind_speed': wind_speed,
            'wind_gusts': base_wind + 5 + self._jitter(u['wind_gusts'], 2),
            'wind_direction': float(math.floor(u['wind_direction'] * 360)),
            'precipitation': precipitation,
            'wave_height': 0.8 + math.sin(h * 0.26) * 0.4 + self._jitter(u['wave_height'], 0.15),
            'wave_period': 7 + math.sin(h * 0.2) * 2 + self._jitter(u['wave_period'], 0.5),
            'wave_direction': 180 + self._jitter(u['wave_direction'], 30),
            'water_temperature': 14 + math.sin(h * 0.1) * 0.5 + self._jitter(u['water_temperature'], 0.25),
        }
