"""
Unit tests for surfability scoring
"""
import math

import pytest

from surfcast.scoring import classify, score


class TestRegressionAnchors:
    """Fixed inputs with known scores."""

    def test_clean_medium_swell(self):
        """Size fitness, offshore wind, calm bonus, period bonus and both comfort bonuses."""
        assert score(1.5, 5, 0, 180, 10, 0, 20, 16) == pytest.approx(6.71, abs=0.01)

    def test_strong_wind_floors_at_zero(self):
        assert score(1, 40, 0, None, 8, None, 15, 14) == 0


class TestMissingInputs:
    """Tests for defaults applied to missing inputs."""

    @pytest.mark.parametrize("args", [
        (),
        (5, 0, 180, 10, 0, 20, 16),
        (40, 3, None, 14, None, 25, 20),
    ])
    def test_no_wave_height_scores_zero(self, args):
        assert score(None, *args) == 0

    def test_nan_wave_height_scores_zero(self):
        assert score(math.nan, 5, 0, 180, 10, 0, 20, 16) == 0

    def test_only_wave_height(self):
        """Period 0, calm wind, dry, default air 15 and water 14."""
        # 7*exp(-((1.5-1.0)/0.45)^2) - 0.6 (short period) + 0.2 (water comfort)
        expected = 7 * math.exp(-((0.5 / 0.45) ** 2)) - 0.6 + 0.2
        assert score(1.5) == pytest.approx(expected)

    def test_direction_skipped_when_one_missing(self):
        with_wind_dir = score(1.5, 5, 0, 180, 10, None, 20, 16)
        without = score(1.5, 5, 0, None, 10, None, 20, 16)
        assert with_wind_dir == without


class TestFactors:
    """Tests for individual scoring factors."""

    def test_offshore_beats_onshore(self):
        offshore = score(1.5, 5, 0, 180, 10, 0)
        onshore = score(1.5, 5, 0, 0, 10, 0)
        assert offshore > onshore

    def test_direction_difference_uses_shortest_arc(self):
        """350° vs 10° is 20° apart, same as 0° vs 0°."""
        assert score(1.5, 5, 0, 10, 10, 350) == pytest.approx(score(1.5, 5, 0, 0, 10, 0))

    def test_rain_penalties_stack(self):
        dry = score(1.5, 5, 0, None, 10, None)
        light = score(1.5, 5, 1, None, 10, None)
        heavy = score(1.5, 5, 3, None, 10, None)
        assert dry - light == pytest.approx(1.0)
        assert dry - heavy == pytest.approx(2.5)

    def test_wind_above_threshold_penalised(self):
        calm = score(1.5, 10, 0, None, 10, None)
        windy = score(1.5, 25, 0, None, 10, None)
        assert windy < calm

    def test_oversized_waves_penalised(self):
        assert score(4.5, 5, 0, 180, 14, 0, 20, 16) < score(3.5, 5, 0, 180, 14, 0, 20, 16)

    def test_score_always_in_range(self):
        for wave in (0, 0.5, 1, 2, 3, 5, 8, 15):
            for wind in (0, 10, 30, 80):
                for period in (0, 6, 10, 16):
                    for rain in (0, 1, 5):
                        value = score(wave, wind, rain, 90, period, 270, 30, 25)
                        assert 0 <= value <= 10

    def test_deterministic(self):
        assert score(2.1, 14, 0.7, 45, 12, 210, 19, 15) == score(2.1, 14, 0.7, 45, 12, 210, 19, 15)


class TestClassify:
    """Tests for score buckets."""

    @pytest.mark.parametrize("value,expected", [
        (10, 'good'), (8, 'good'), (7.99, 'fair'), (5, 'fair'), (4.99, 'poor'), (0, 'poor'),
    ])
    def test_buckets(self, value, expected):
        assert classify(value) == expected
