"""
Zone strength scoring

strength = min(touches, 5) + age step + formation-volume step
           + higher-timeframe confluence + retained merge bonus
"""

from datetime import datetime
from typing import Optional, Sequence

from ..config.engine_config import ZoneConfig
from ..utils.helpers import safe_divide
from .zone import Zone

MAX_TOUCH_POINTS = 5

# (max age in days, points)
AGE_STEPS = [(30, 2.0), (90, 1.5), (180, 1.0), (365, 0.5)]

# (volume ratio strictly above, points)
VOLUME_STEPS = [(2.0, 1.5), (1.5, 1.0), (1.0, 0.5)]

CONFLUENCE_POINTS = 1.5


def age_points(age_days: float) -> float:
    for max_age, points in AGE_STEPS:
        if age_days <= max_age:
            return points
    return 0.0


def volume_points(volume_ratio: Optional[float]) -> float:
    if volume_ratio is None:
        return 0.0
    for threshold, points in VOLUME_STEPS:
        if volume_ratio > threshold:
            return points
    return 0.0


class ZoneStrengthScorer:
    """Scores zones and decides their validity"""

    def __init__(self, config: Optional[ZoneConfig] = None):
        self.config = config or ZoneConfig()

    def has_confluence(self, zone: Zone, htf_prices: Sequence[float]) -> bool:
        tolerance = self.config.confluence_tolerance
        return any(zone.distance_to(price) <= tolerance for price in htf_prices)

    def score(
        self,
        zone: Zone,
        reference_time: datetime,
        average_volume: float = 0.0,
        htf_prices: Sequence[float] = ()
    ) -> float:
        """
        Strength of a zone at reference_time

        Args:
            zone: Zone to score
            reference_time: Timestamp of the latest bar (age is measured against it)
            average_volume: Mean volume of the history window
            htf_prices: Higher-timeframe swing extremes

        Returns:
            Strength, 0 and up (10+ for heavily tested confluent zones)
        """
        strength = float(min(zone.touch_count, MAX_TOUCH_POINTS))
        strength += age_points(zone.age_days(reference_time))
        strength += volume_points(safe_divide(zone.volume_at_formation, average_volume))

        if htf_prices and self.has_confluence(zone, htf_prices):
            strength += CONFLUENCE_POINTS

        return strength + zone.strength_bonus

    def is_valid(self, zone: Zone) -> bool:
        return (
            not zone.is_merged
            and zone.touch_count >= self.config.min_touches
            and zone.strength >= self.config.min_strength
        )
