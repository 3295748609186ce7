"""
Pivot detector

Extracts swing highs/lows from a bar history and clusters them into
candidate zones. A swing high at bar i is a high strictly above the highs of
the `pivot_window` bars on each side (swing low symmetric on lows). Each
extreme joins an existing candidate of the same polarity whose boundary lies
within `thickness`, otherwise it opens a new candidate of width `thickness`
centred on the extreme.

The last `pivot_window` bars of the window can never be pivots, and a pivot
just before them is confirmed by only `pivot_window` later bars.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.engine_config import ZoneConfig
from ..preprocessing.bars import Bar
from ..utils.logger import LoggerMixin, timed_operation
from .zone import Zone, ZoneCandidate, create_zone

# Relative slack for the inclusive thickness comparison
_FLOAT_SLACK = 1e-9


def _swing_mask(values: np.ndarray, window: int, upper: bool) -> np.ndarray:
    """Strict local extremum over `window` bars on each side"""
    n = len(values)
    mask = np.zeros(n, dtype=bool)
    if n < 2 * window + 1:
        return mask

    centre = values[window:n - window]
    mask[window:n - window] = True
    for offset in range(1, window + 1):
        left = values[window - offset:n - window - offset]
        right = values[window + offset:n - window + offset]
        if upper:
            mask[window:n - window] &= (centre > left) & (centre > right)
        else:
            mask[window:n - window] &= (centre < left) & (centre < right)
    return mask


class PivotDetector(LoggerMixin):
    """Swing-pivot extraction and candidate zone clustering"""

    def __init__(self, config: Optional[ZoneConfig] = None):
        self.config = config or ZoneConfig()
        self.window = self.config.pivot_window

    @property
    def min_bars(self) -> int:
        return 2 * self.window + 1

    def swing_points(self, bars: Sequence[Bar]) -> List[Tuple[int, float, bool]]:
        """
        Swing extremes in chronological order

        Returns:
            (bar index, price, is_support) tuples
        """
        if len(bars) < self.min_bars:
            return []

        highs = np.array([b.high for b in bars], dtype=float)
        lows = np.array([b.low for b in bars], dtype=float)

        high_mask = _swing_mask(highs, self.window, upper=True)
        low_mask = _swing_mask(lows, self.window, upper=False)

        points = []
        for i in range(len(bars)):
            if high_mask[i]:
                points.append((i, float(highs[i]), False))
            if low_mask[i]:
                points.append((i, float(lows[i]), True))
        return points

    def swing_prices(self, bars: Sequence[Bar]) -> List[float]:
        """Raw swing extremes (used as higher-timeframe confluence prices)"""
        return [price for _, price, _ in self.swing_points(bars)]

    @timed_operation("pivot_detection")
    def detect_pivots(
        self,
        bars: Sequence[Bar],
        thickness: Optional[float] = None
    ) -> List[ZoneCandidate]:
        """
        Detect candidate zones from a bar history

        Args:
            bars: Oldest-first bars
            thickness: Zone thickness in price units (config value by default)

        Returns:
            Candidate zones, at most `max_zones`
        """
        if thickness is None:
            thickness = self.config.zone_thickness

        if len(bars) < self.min_bars:
            self.logger.warning(
                "Not enough bars for pivot detection",
                bars=len(bars),
                required=self.min_bars
            )
            return []

        candidates: List[Zone] = []
        dropped = 0

        for index, price, is_support in self.swing_points(bars):
            bar = bars[index]
            match = self._find_match(candidates, price, is_support, thickness)

            if match is not None:
                match.touch_count += 1
                match.first_touch = min(match.first_touch, bar.timestamp)
                match.last_touch = max(match.last_touch, bar.timestamp)
                continue

            if len(candidates) >= self.config.max_zones:
                dropped += 1
                continue

            candidates.append(create_zone(
                upper_bound=price + thickness / 2,
                lower_bound=price - thickness / 2,
                is_support=is_support,
                first_touch=bar.timestamp,
                touch_count=1,
                volume_at_formation=bar.volume
            ))

        if dropped:
            self.logger.debug("Zone capacity reached, pivots dropped", dropped=dropped)

        self.logger.debug(
            "Pivot detection completed",
            bars=len(bars),
            candidates=len(candidates),
            supports=sum(1 for c in candidates if c.is_support),
            resistances=sum(1 for c in candidates if not c.is_support)
        )
        return candidates

    @staticmethod
    def _find_match(
        candidates: List[Zone],
        price: float,
        is_support: bool,
        thickness: float
    ) -> Optional[Zone]:
        """Closest same-polarity candidate whose boundary is within thickness"""
        limit = thickness * (1 + _FLOAT_SLACK)
        best = None
        best_distance = None
        for candidate in candidates:
            if candidate.is_support != is_support:
                continue
            distance = abs(candidate.boundary - price)
            if distance <= limit and (best_distance is None or distance < best_distance):
                best, best_distance = candidate, distance
        return best
