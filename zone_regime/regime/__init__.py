"""
Market regime classification
"""

from .models import MarketRegime, RegimeState, ResolutionMethod
from .classifier import RegimeClassifier

__all__ = [
    "MarketRegime",
    "RegimeState",
    "ResolutionMethod",
    "RegimeClassifier"
]
