"""
Fare Computation  (Strategy Pattern)
====================================

Formula
-------
Price = max(Minimum_Fare, ceil(Distance_km x Rate_Per_KM))

Computed exactly once, when the driver completes the trip, from the trip
distance measured at trip start.  Whole currency units (INR).

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_m: Optional[float]) -> int: ...


class DistanceFare(PricingStrategy):
    """Per-kilometre rate with a flat minimum, rounded up."""

    def __init__(self, minimum_fare: int = 25, rate_per_km: float = 5.0):
        self.minimum_fare = minimum_fare
        self.rate_per_km = rate_per_km

    def calculate(self, distance_m: Optional[float]) -> int:
        # multiply before dividing so whole-km distances stay exact
        raw = (distance_m or 0) * self.rate_per_km / 1000
        return max(self.minimum_fare, math.ceil(raw))


def fare(distance_m: Optional[float]) -> int:
    """Fare under the default campus tariff."""
    return DistanceFare().calculate(distance_m)
