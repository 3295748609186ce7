"""
Candlestick pattern data types
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Any


class PatternName(str, Enum):
    """Recognized candlestick patterns"""
    NONE = "None"

    # Bullish
    HAMMER = "Hammer"
    INVERTED_HAMMER = "Inverted Hammer"
    BULLISH_MARUBOZU = "Bullish Marubozu"
    DRAGONFLY_DOJI = "Dragonfly Doji"
    BULLISH_BELT_HOLD = "Bullish Belt Hold"
    BULLISH_ENGULFING = "Bullish Engulfing"
    PIERCING_LINE = "Piercing Line"
    BULLISH_HARAMI = "Bullish Harami"
    TWEEZER_BOTTOM = "Tweezer Bottom"
    BULLISH_KICKER = "Bullish Kicker"
    MORNING_DOJI_STAR = "Morning Doji Star"
    MORNING_STAR = "Morning Star"
    THREE_WHITE_SOLDIERS = "Three White Soldiers"

    # Bearish
    SHOOTING_STAR = "Shooting Star"
    HANGING_MAN = "Hanging Man"
    BEARISH_MARUBOZU = "Bearish Marubozu"
    GRAVESTONE_DOJI = "Gravestone Doji"
    BEARISH_BELT_HOLD = "Bearish Belt Hold"
    BEARISH_ENGULFING = "Bearish Engulfing"
    DARK_CLOUD_COVER = "Dark Cloud Cover"
    BEARISH_HARAMI = "Bearish Harami"
    TWEEZER_TOP = "Tweezer Top"
    BEARISH_KICKER = "Bearish Kicker"
    EVENING_DOJI_STAR = "Evening Doji Star"
    EVENING_STAR = "Evening Star"
    THREE_BLACK_CROWS = "Three Black Crows"


@dataclass(frozen=True)
class PatternDetection:
    """Outcome of pattern recognition on the latest bar"""
    detected: bool
    name: PatternName
    reliability: float
    timestamp: Optional[datetime]
    direction: int

    @classmethod
    def none(cls, timestamp: Optional[datetime] = None) -> "PatternDetection":
        return cls(detected=False, name=PatternName.NONE, reliability=0.0, timestamp=timestamp, direction=0)

    @classmethod
    def found(
        cls,
        name: PatternName,
        reliability: float,
        timestamp: Optional[datetime],
        direction: int
    ) -> "PatternDetection":
        return cls(detected=True, name=name, reliability=reliability, timestamp=timestamp, direction=direction)

    @property
    def is_bullish(self) -> bool:
        return self.detected and self.direction > 0

    @property
    def is_bearish(self) -> bool:
        return self.detected and self.direction < 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'detected': self.detected,
            'name': self.name.value,
            'reliability': round(self.reliability, 2),
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'direction': self.direction
        }
