"""Unit tests for distance-based fare computation."""

import pytest

from campus_rides.domain.pricing import DistanceFare, fare


class TestDistanceFare:
    @pytest.mark.parametrize(
        "distance_m, expected",
        [
            (0, 25),
            (1999, 25),
            (2000, 25),
            (5000, 25),
            (6000, 30),
            (20000, 100),
        ],
    )
    def test_campus_tariff(self, distance_m, expected):
        assert fare(distance_m) == expected

    def test_partial_rupee_rounds_up(self):
        # 6.1 km * 5 = 30.5
        assert fare(6100) == 31

    def test_missing_distance_charges_minimum(self):
        assert fare(None) == 25

    def test_custom_tariff(self):
        strategy = DistanceFare(minimum_fare=40, rate_per_km=12.0)
        assert strategy.calculate(1000) == 40
        assert strategy.calculate(10000) == 120

    def test_result_is_whole_units(self):
        assert isinstance(fare(12345), int)
