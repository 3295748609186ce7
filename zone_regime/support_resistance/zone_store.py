"""
Zone store

Owns the zone set of one session: ingestion of detector candidates,
strength/validity recomputation, the single-pass merger and the per-bar
touch/break/flip state machine. Zones are never physically removed by
merging or invalidation, only flagged; compact() is the explicit way to
drop merged-away entries.
"""

from collections import deque
from datetime import datetime
from typing import Deque, Dict, Iterator, List, Optional, Sequence, Any

import numpy as np

from ..config.engine_config import ZoneConfig
from ..preprocessing.bars import Bar
from ..utils.logger import LoggerMixin
from .scoring import ZoneStrengthScorer
from .zone import Zone, ZoneCandidate, ZoneEvent, ZoneEventType

_FLOAT_SLACK = 1e-9


class ZoneStore(LoggerMixin):
    """
    Zone lifecycle manager

    Handles candidate deduplication, strength scoring, merging of nearby
    zones and bar-by-bar state transitions (touch, break, role flip).
    """

    def __init__(
        self,
        config: Optional[ZoneConfig] = None,
        scorer: Optional[ZoneStrengthScorer] = None
    ):
        self.config = config or ZoneConfig()
        self.scorer = scorer or ZoneStrengthScorer(self.config)

        self._zones: Dict[str, Zone] = {}
        self.history: Deque[ZoneEvent] = deque(maxlen=self.config.event_history)

        # Scoring context, refreshed by the session
        self.reference_time: Optional[datetime] = None
        self.average_volume: float = 0.0
        self.htf_prices: List[float] = []

    # === Access ===

    def __len__(self) -> int:
        return len(self._zones)

    def __iter__(self) -> Iterator[Zone]:
        return iter(list(self._zones.values()))

    def get(self, zone_id: str) -> Optional[Zone]:
        return self._zones.get(zone_id)

    @property
    def zones(self) -> List[Zone]:
        """All stored zones in insertion order"""
        return list(self._zones.values())

    def valid_zones(self) -> List[Zone]:
        return [z for z in self._zones.values() if z.is_valid and not z.is_merged]

    def active_zones(self) -> List[Zone]:
        """Valid zones that are not broken"""
        return [z for z in self._zones.values() if z.is_active]

    def supports(self, valid_only: bool = True) -> List[Zone]:
        pool = self.valid_zones() if valid_only else self.zones
        return [z for z in pool if z.is_support]

    def resistances(self, valid_only: bool = True) -> List[Zone]:
        pool = self.valid_zones() if valid_only else self.zones
        return [z for z in pool if not z.is_support]

    def sorted_by_strength(self, valid_only: bool = False) -> List[Zone]:
        """Zones ordered by strength, strongest first"""
        pool = self.valid_zones() if valid_only else self.zones
        return sorted(pool, key=lambda z: z.strength, reverse=True)

    def nearest_zone(
        self,
        price: float,
        support: Optional[bool] = None,
        valid_only: bool = True,
        intact_only: bool = False
    ) -> Optional[Zone]:
        """
        Zone closest to price

        Args:
            price: Reference price
            support: True for supports only, False for resistances only, None for both
            valid_only: Skip invalid zones
            intact_only: Skip broken zones
        """
        pool = self._filtered(support, valid_only, intact_only)
        if not pool:
            return None
        return min(pool, key=lambda z: (z.distance_to(price), abs(z.mid_price - price)))

    def nearest_above(self, price: float, support: Optional[bool] = None) -> Optional[Zone]:
        """Closest intact valid zone lying entirely above price"""
        pool = [z for z in self._filtered(support, True, True) if z.lower_bound > price]
        return min(pool, key=lambda z: z.lower_bound) if pool else None

    def nearest_below(self, price: float, support: Optional[bool] = None) -> Optional[Zone]:
        """Closest intact valid zone lying entirely below price"""
        pool = [z for z in self._filtered(support, True, True) if z.upper_bound < price]
        return max(pool, key=lambda z: z.upper_bound) if pool else None

    def _filtered(self, support: Optional[bool], valid_only: bool, intact_only: bool) -> List[Zone]:
        pool = self.valid_zones() if valid_only else [z for z in self._zones.values() if not z.is_merged]
        if support is not None:
            pool = [z for z in pool if z.is_support == support]
        if intact_only:
            pool = [z for z in pool if not z.is_broken]
        return pool

    # === Scoring context ===

    def set_context(
        self,
        reference_time: Optional[datetime] = None,
        average_volume: Optional[float] = None,
        htf_prices: Optional[Sequence[float]] = None
    ):
        """Update the inputs used by strength scoring"""
        if reference_time is not None:
            self.reference_time = reference_time
        if average_volume is not None:
            self.average_volume = float(average_volume)
        if htf_prices is not None:
            self.htf_prices = list(htf_prices)

    # === Ingestion ===

    def ingest(self, candidates: Sequence[ZoneCandidate], thickness: Optional[float] = None) -> int:
        """
        Add detector candidates to the store

        A candidate whose boundary lies within `thickness` of a stored zone
        of the same polarity refreshes that zone instead of creating a new
        one. A match on a merged-away zone refreshes the zone it was folded
        into, so re-detecting the same history never re-inserts it. Inserts
        beyond max_zones are dropped.

        Returns:
            Number of zones inserted
        """
        if thickness is None:
            thickness = self.config.zone_thickness
        limit = thickness * (1 + _FLOAT_SLACK)

        inserted = 0
        dropped = 0
        for candidate in candidates:
            existing = self._find_same_polarity(candidate, limit)
            if existing is not None:
                existing.touch_count = max(existing.touch_count, candidate.touch_count)
                existing.first_touch = min(existing.first_touch, candidate.first_touch)
                existing.last_touch = max(existing.last_touch, candidate.last_touch)
                continue

            if len(self._zones) >= self.config.max_zones:
                dropped += 1
                continue

            self._zones[candidate.zone_id] = candidate
            self._record(candidate, ZoneEventType.CREATE, candidate.first_touch, candidate.boundary)
            inserted += 1

        if dropped:
            self.logger.debug("Zone store full, candidates dropped", dropped=dropped, capacity=self.config.max_zones)

        self.logger.debug("Candidates ingested", inserted=inserted, total=len(self._zones))
        return inserted

    def _find_same_polarity(self, candidate: Zone, limit: float) -> Optional[Zone]:
        best = None
        best_distance = None
        for zone in self._zones.values():
            if zone.is_support != candidate.is_support:
                continue
            distance = abs(zone.boundary - candidate.boundary)
            if distance <= limit and (best_distance is None or distance < best_distance):
                best, best_distance = zone, distance
        return self._survivor(best) if best is not None else None

    def _survivor(self, zone: Zone) -> Optional[Zone]:
        """Follow merged_into links to the zone that absorbed this one"""
        seen = set()
        while zone is not None and zone.is_merged and zone.zone_id not in seen:
            seen.add(zone.zone_id)
            zone = self._zones.get(zone.merged_into)
        return zone

    # === Strength ===

    def recompute_strength(self):
        """Rescore every zone and refresh validity flags"""
        if not self._zones:
            return

        reference_time = self.reference_time or max(z.last_touch for z in self._zones.values())

        for zone in self._zones.values():
            zone.strength = self.scorer.score(
                zone,
                reference_time=reference_time,
                average_volume=self.average_volume,
                htf_prices=self.htf_prices
            )
            was_valid = zone.is_valid
            zone.is_valid = self.scorer.is_valid(zone)
            if was_valid and not zone.is_valid and not zone.is_merged:
                self._record(zone, ZoneEventType.INVALIDATE, reference_time, zone.boundary)

    # === Merging ===

    def merge_zones(self) -> int:
        """
        Single left-to-right merge pass over valid zones

        Two same-polarity zones whose boundaries differ by less than
        merge_distance are folded together: the weaker one (the later one
        on equal strength) is flagged invalid with merged_into pointing at
        the survivor, which keeps its bounds, sums the touch counts and
        takes max strength plus the merge bonus. Not a fixed point: zones
        that become close only through a merge are left for the next pass.

        Returns:
            Number of merges performed
        """
        pool = self.valid_zones()
        merges = 0

        for i, first in enumerate(pool):
            if first.is_merged:
                continue
            for second in pool[i + 1:]:
                if second.is_merged or second.is_support != first.is_support:
                    continue
                if abs(first.boundary - second.boundary) >= self.config.merge_distance:
                    continue

                winner, loser = (first, second) if first.strength >= second.strength else (second, first)
                self._fold(winner, loser)
                merges += 1

                if first.is_merged:
                    break

        if merges:
            self.logger.info("Zones merged", merges=merges, valid=len(self.valid_zones()))
        return merges

    def _fold(self, winner: Zone, loser: Zone):
        winner.touch_count += loser.touch_count
        winner.first_touch = min(winner.first_touch, loser.first_touch)
        winner.last_touch = max(winner.last_touch, loser.last_touch)
        winner.strength_bonus += self.config.merge_bonus
        winner.strength = max(winner.strength, loser.strength) + self.config.merge_bonus

        loser.is_valid = False
        loser.merged_into = winner.zone_id

        self._record(
            loser,
            ZoneEventType.MERGE,
            winner.last_touch,
            loser.boundary,
            merged_into=winner.zone_id
        )

    # === Bar updates ===

    def update_on_bar(self, bar: Bar, timeframe: str) -> List[ZoneEvent]:
        """
        Apply one closed bar to every non-merged zone

        touch: bar range intersects the band
        flip: a zone broken earlier is rejected from the other side
            (support: high > upper and close < upper; resistance:
            low < lower and close > lower) and changes polarity
        break: intact support closes below lower, intact resistance
            closes above upper

        Strength and validity are recomputed for the whole set afterwards.

        Returns:
            Events produced by this bar
        """
        events: List[ZoneEvent] = []

        for zone in self._zones.values():
            if zone.is_merged:
                continue

            was_broken = zone.is_broken

            if zone.intersects(bar):
                zone.touch_count += 1
                zone.tested_count += 1
                zone.tested_by_timeframe[timeframe] = zone.tested_by_timeframe.get(timeframe, 0) + 1
                zone.last_touch = bar.timestamp
                events.append(self._record(zone, ZoneEventType.TOUCH, bar.timestamp, bar.close))

            if was_broken:
                if self._is_flip(zone, bar):
                    zone.is_support = not zone.is_support
                    zone.is_broken = False
                    zone.touch_count += 1
                    zone.last_touch = bar.timestamp
                    events.append(self._record(
                        zone, ZoneEventType.FLIP, bar.timestamp, bar.close,
                        new_role=zone.level_type.value
                    ))
            elif self._is_break(zone, bar):
                zone.is_broken = True
                events.append(self._record(zone, ZoneEventType.BREAK, bar.timestamp, bar.close))

        self.reference_time = bar.timestamp
        self.recompute_strength()

        for event in events:
            if event.event in (ZoneEventType.BREAK, ZoneEventType.FLIP):
                self.logger.info(
                    "Zone state changed",
                    zone_id=event.zone_id,
                    transition=event.event.value,
                    price=event.price
                )

        return events

    @staticmethod
    def _is_break(zone: Zone, bar: Bar) -> bool:
        if zone.is_support:
            return bar.close < zone.lower_bound
        return bar.close > zone.upper_bound

    @staticmethod
    def _is_flip(zone: Zone, bar: Bar) -> bool:
        if zone.is_support:
            return bar.high > zone.upper_bound and bar.close < zone.upper_bound
        return bar.low < zone.lower_bound and bar.close > zone.lower_bound

    # === Maintenance ===

    def compact(self) -> int:
        """Physically drop merged-away zones. Returns number removed"""
        merged = [zone_id for zone_id, zone in self._zones.items() if zone.is_merged]
        for zone_id in merged:
            del self._zones[zone_id]
        if merged:
            self.logger.debug("Merged zones compacted", removed=len(merged))
        return len(merged)

    def reset(self):
        self._zones.clear()
        self.history.clear()
        self.reference_time = None
        self.average_volume = 0.0
        self.htf_prices = []

    def _record(
        self,
        zone: Zone,
        event_type: ZoneEventType,
        timestamp: datetime,
        price: float,
        **metadata
    ) -> ZoneEvent:
        event = ZoneEvent(
            zone_id=zone.zone_id,
            event=event_type,
            timestamp=timestamp,
            price=float(price),
            metadata=metadata
        )
        self.history.append(event)
        return event

    # === Reporting ===

    def get_statistics(self) -> Dict[str, Any]:
        """Store statistics"""
        zones = list(self._zones.values())
        valid = self.valid_zones()
        return {
            'total_zones': len(zones),
            'valid_zones': len(valid),
            'supports': sum(1 for z in valid if z.is_support),
            'resistances': sum(1 for z in valid if not z.is_support),
            'broken_zones': sum(1 for z in zones if z.is_broken and not z.is_merged),
            'merged_zones': sum(1 for z in zones if z.is_merged),
            'total_touches': sum(z.touch_count for z in zones if not z.is_merged),
            'average_strength': float(np.mean([z.strength for z in valid])) if valid else 0.0,
            'strongest_zone': max(valid, key=lambda z: z.strength).zone_id if valid else None,
            'capacity': self.config.max_zones
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zones': [z.to_dict() for z in self.sorted_by_strength()],
            'statistics': self.get_statistics(),
            'recent_events': [e.to_dict() for e in list(self.history)[-20:]]
        }
