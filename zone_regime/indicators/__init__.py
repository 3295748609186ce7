"""Indicator port and the default ta-backed implementation"""

from .technical import IndicatorPort, TechnicalIndicators

__all__ = ["IndicatorPort", "TechnicalIndicators"]
