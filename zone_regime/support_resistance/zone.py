"""
Support/Resistance zone model

A zone is a price band [lower_bound, upper_bound] built from one or more
swing pivots. Zones are created only through create_zone() and mutated in
place only by the ZoneStore; everyone else reads them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Any

from ..preprocessing.bars import Bar


class LevelType(Enum):
    """Polarity of a zone"""
    SUPPORT = "support"
    RESISTANCE = "resistance"


class ZoneEventType(Enum):
    """Lifecycle events recorded by the zone store"""
    CREATE = "create"
    TOUCH = "touch"
    BREAK = "break"
    FLIP = "flip"
    MERGE = "merge"
    INVALIDATE = "invalidate"


@dataclass
class Zone:
    """Support/resistance price band"""
    zone_id: str
    upper_bound: float
    lower_bound: float
    first_touch: datetime
    last_touch: datetime
    touch_count: int
    strength: float
    is_support: bool
    is_broken: bool
    volume_at_formation: float
    tested_count: int
    tested_by_timeframe: Dict[str, int]
    is_valid: bool
    merged_into: Optional[str]
    strength_bonus: float

    @property
    def level_type(self) -> LevelType:
        return LevelType.SUPPORT if self.is_support else LevelType.RESISTANCE

    @property
    def height(self) -> float:
        return self.upper_bound - self.lower_bound

    @property
    def mid_price(self) -> float:
        return (self.upper_bound + self.lower_bound) / 2

    @property
    def boundary(self) -> float:
        """Edge used for matching and merging: lower for support, upper for resistance"""
        return self.lower_bound if self.is_support else self.upper_bound

    @property
    def is_merged(self) -> bool:
        return self.merged_into is not None

    @property
    def is_active(self) -> bool:
        """Valid and intact"""
        return self.is_valid and not self.is_broken and not self.is_merged

    def contains_price(self, price: float) -> bool:
        return self.lower_bound <= price <= self.upper_bound

    def intersects(self, bar: Bar) -> bool:
        """Bar range overlaps the zone band"""
        return bar.low <= self.upper_bound and bar.high >= self.lower_bound

    def distance_to(self, price: float) -> float:
        """Distance from price to the band (0 inside)"""
        if price > self.upper_bound:
            return price - self.upper_bound
        if price < self.lower_bound:
            return self.lower_bound - price
        return 0.0

    def age_days(self, reference_time: datetime) -> float:
        return (reference_time - self.first_touch).total_seconds() / 86400

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'zone_id': self.zone_id,
            'level_type': self.level_type.value,
            'upper_bound': self.upper_bound,
            'lower_bound': self.lower_bound,
            'first_touch': self.first_touch.isoformat(),
            'last_touch': self.last_touch.isoformat(),
            'touch_count': self.touch_count,
            'strength': self.strength,
            'is_broken': self.is_broken,
            'is_valid': self.is_valid,
            'volume_at_formation': self.volume_at_formation,
            'tested_count': self.tested_count,
            'tested_by_timeframe': dict(self.tested_by_timeframe),
            'merged_into': self.merged_into,
            'strength_bonus': self.strength_bonus
        }


# Records emitted by the pivot detector before they enter the store
ZoneCandidate = Zone


@dataclass
class ZoneEvent:
    """History entry for a zone lifecycle change"""
    zone_id: str
    event: ZoneEventType
    timestamp: datetime
    price: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zone_id': self.zone_id,
            'event': self.event.value,
            'timestamp': self.timestamp.isoformat(),
            'price': self.price,
            'metadata': self.metadata
        }


def create_zone(
    upper_bound: float,
    lower_bound: float,
    is_support: bool,
    first_touch: datetime,
    last_touch: Optional[datetime] = None,
    touch_count: int = 1,
    volume_at_formation: float = 0.0,
    zone_id: Optional[str] = None
) -> Zone:
    """
    Build a fully populated zone

    Inverted bounds are swapped so that upper_bound >= lower_bound always
    holds. Every mutable field gets its own fresh container.
    """
    if upper_bound < lower_bound:
        upper_bound, lower_bound = lower_bound, upper_bound

    return Zone(
        zone_id=zone_id or uuid.uuid4().hex,
        upper_bound=float(upper_bound),
        lower_bound=float(lower_bound),
        first_touch=first_touch,
        last_touch=last_touch or first_touch,
        touch_count=max(0, int(touch_count)),
        strength=0.0,
        is_support=is_support,
        is_broken=False,
        volume_at_formation=float(volume_at_formation),
        tested_count=0,
        tested_by_timeframe={},
        is_valid=False,
        merged_into=None,
        strength_bonus=0.0
    )
