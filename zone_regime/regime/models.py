"""
Market regime data types
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional


class MarketRegime(str, Enum):
    """Prevailing market regime"""
    TRENDING = "trending"
    RANGING = "ranging"
    VOLATILE = "volatile"
    BREAKOUT = "breakout"
    NEUTRAL = "neutral"


class ResolutionMethod(str, Enum):
    """How the regime was chosen"""
    DOMINANCE = "dominance"
    FALLBACK = "fallback"
    INSUFFICIENT_DATA = "insufficient_data"


NEUTRAL_SCORE = 50.0


@dataclass(frozen=True)
class RegimeState:
    """
    Result of one classification

    Scores are in [0, 100]. trend_direction is +1 (up), -1 (down) or 0.
    """
    regime: MarketRegime
    trend_score: float
    range_score: float
    volatility_score: float
    breakout_score: float
    trend_direction: int = 0
    resolved_by: ResolutionMethod = ResolutionMethod.DOMINANCE
    computed_at: Optional[datetime] = None
    components: Dict[str, Dict[str, float]] = field(default_factory=dict, compare=False)

    @classmethod
    def neutral(cls, computed_at: Optional[datetime] = None) -> "RegimeState":
        """State used when there is not enough data to classify"""
        return cls(
            regime=MarketRegime.NEUTRAL,
            trend_score=NEUTRAL_SCORE,
            range_score=NEUTRAL_SCORE,
            volatility_score=NEUTRAL_SCORE,
            breakout_score=NEUTRAL_SCORE,
            trend_direction=0,
            resolved_by=ResolutionMethod.INSUFFICIENT_DATA,
            computed_at=computed_at
        )

    @property
    def scores(self) -> Dict[MarketRegime, float]:
        return {
            MarketRegime.TRENDING: self.trend_score,
            MarketRegime.RANGING: self.range_score,
            MarketRegime.VOLATILE: self.volatility_score,
            MarketRegime.BREAKOUT: self.breakout_score
        }

    @property
    def is_neutral(self) -> bool:
        return self.regime == MarketRegime.NEUTRAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'regime': self.regime.value,
            'trend_score': round(self.trend_score, 2),
            'range_score': round(self.range_score, 2),
            'volatility_score': round(self.volatility_score, 2),
            'breakout_score': round(self.breakout_score, 2),
            'trend_direction': self.trend_direction,
            'resolved_by': self.resolved_by.value,
            'computed_at': self.computed_at.isoformat() if self.computed_at else None,
            'components': self.components
        }
