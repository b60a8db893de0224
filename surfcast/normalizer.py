"""
Gap filling and range clamping for hourly metric series.

This is the last step before a series is handed to consumers, so it never
fails: whatever a provider delivered (or didn't), the output is fully
populated and inside the metric's physical range.
"""
import math
from typing import Dict, List, Optional, Sequence, Tuple


# Metric name -> (min, max) physical range
METRIC_BOUNDS: Dict[str, Tuple[float, float]] = {
    'temperature': (-5.0, 40.0),
    'feels_like': (-5.0, 40.0),
    'humidity': (0.0, 100.0),
    'pressure': (950.0, 1050.0),
    'wind_speed': (0.0, 150.0),
    'wind_gusts': (0.0, 200.0),
    'wind_direction': (0.0, 360.0),
    'precipitation': (0.0, 200.0),
    'wave_height': (0.0, 15.0),
    'wave_period': (0.0, 30.0),
    'wave_direction': (0.0, 360.0),
    'tide_height': (-5.0, 5.0),
    'water_temperature': (0.0, 30.0),
}

METRICS: Tuple[str, ...] = tuple(METRIC_BOUNDS)


def is_missing(value: Optional[float]) -> bool:
    """True for None and NaN."""
    if value is None:
        return True
    try:
        return math.isnan(value)
    except TypeError:
        return True


def clamp(value: float, min_value: float, max_value: float) -> float:
    return min(max_value, max(min_value, value))


def normalize(series: Sequence[Optional[float]], min_value: float, max_value: float) -> List[float]:
    """
    Gap-fill a series and clamp every sample into [min_value, max_value].

    Forward pass carries the last seen value into missing slots, backward
    pass fills leading gaps from the nearest following value (0 when the
    whole series is missing).

    Args:
        series: Samples, where None/NaN mark missing values
        min_value: Lower physical bound
        max_value: Upper physical bound

    Returns:
        List of floats with the same length as the input
    """
    filled: List[Optional[float]] = [None if is_missing(v) else float(v) for v in series]

    last = None
    for i, value in enumerate(filled):
        if value is None:
            filled[i] = last
        else:
            last = value

    following = None
    for i in range(len(filled) - 1, -1, -1):
        if filled[i] is None:
            filled[i] = following if following is not None else 0.0
        following = filled[i]

    return [clamp(v, min_value, max_value) for v in filled]


def normalize_metric(metric: str, series: Sequence[Optional[float]]) -> List[float]:
    """Normalize a series using the bounds registered for `metric`."""
    min_value, max_value = METRIC_BOUNDS[metric]
    return normalize(series, min_value, max_value)
