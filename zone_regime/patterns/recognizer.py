"""
Pattern recognizer

Runs the bullish and bearish rule sets in priority order. The first rule
that fires in each set wins that set; reliability is the base value plus
the pattern bonus, boosted when the signal candle sits at a zone. The more
reliable of the two winners is returned, bullish on a tie.
"""

from typing import List, Optional, Sequence, Tuple

from ..config.engine_config import PatternConfig
from ..preprocessing.bars import Bar
from ..support_resistance.zone import Zone
from ..utils.logger import LoggerMixin
from .candles import BULLISH_RULES, BEARISH_RULES, Rule
from .models import PatternDetection, PatternName

MIN_BARS = 3


class PatternRecognizer(LoggerMixin):
    """Candlestick pattern recognition with zone-aware reliability"""

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    def recognize(self, bars: Sequence[Bar], zone: Optional[Zone] = None) -> PatternDetection:
        """
        Recognize the pattern completed by the latest bar

        Args:
            bars: Oldest-first bars, at least three
            zone: Nearest zone (read only) for the reliability boost

        Returns:
            PatternDetection, PatternDetection.none() when nothing fires
        """
        if len(bars) < MIN_BARS:
            return PatternDetection.none(bars[-1].timestamp if bars else None)

        current = bars[-1]
        bullish = self._first_match(bars, BULLISH_RULES)
        bearish = self._first_match(bars, BEARISH_RULES)

        candidates = []
        if bullish is not None:
            candidates.append((bullish[0], self.reliability(bullish[1], current, zone, 1), 1))
        if bearish is not None:
            candidates.append((bearish[0], self.reliability(bearish[1], current, zone, -1), -1))

        if not candidates:
            return PatternDetection.none(current.timestamp)

        # max() keeps the first of equal items, bullish is listed first
        name, reliability, direction = max(candidates, key=lambda c: c[1])

        self.logger.debug(
            "Pattern recognized",
            pattern=name.value,
            reliability=round(reliability, 2),
            direction=direction,
            zone_id=zone.zone_id if zone else None
        )
        return PatternDetection.found(name, reliability, current.timestamp, direction)

    def _first_match(
        self,
        bars: Sequence[Bar],
        rules: List[Tuple[PatternName, Rule, float]]
    ) -> Optional[Tuple[PatternName, float]]:
        for name, rule, bonus in rules:
            if rule(bars, self.config):
                return name, bonus
        return None

    def near_zone(self, bar: Bar, zone: Zone) -> bool:
        """Signal candle overlaps the zone widened by the proximity ratio"""
        margin = self.config.zone_proximity_ratio * zone.height
        return bar.low <= zone.upper_bound + margin and bar.high >= zone.lower_bound - margin

    def reliability(self, bonus: float, bar: Bar, zone: Optional[Zone], direction: int) -> float:
        value = self.config.base_reliability + bonus
        if zone is None or not self.near_zone(bar, zone):
            return value

        value += zone.strength / 2
        if (zone.is_support and direction > 0) or (not zone.is_support and direction < 0):
            value += self.config.zone_polarity_bonus
        return value
