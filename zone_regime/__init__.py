"""
Zone Regime Engine

Support/resistance zone detection, market regime classification,
candlestick pattern recognition and a rule-based signal layer for
OHLCV bar data.

Components:
- Pivot detection and a bounded zone store with merging and role flips
- Regime classifier (trending, ranging, volatile, breakout) with
  dominance resolution and a neutral fallback
- Candlestick pattern recognizer with zone-aware reliability
- Bounce/breakout signal generator with risk sizing and position management
- Ports for market data, execution, persistence and news
- Per-instrument trading sessions, backtests and an HTTP API
"""

from typing import Dict

# Версия пакета
__version__ = "1.0.0"
__license__ = "MIT"

from .config.engine_config import EngineConfig, get_config
from .support_resistance import Zone, ZoneStore, PivotDetector, ZoneStrengthScorer
from .regime import MarketRegime, RegimeState, RegimeClassifier
from .patterns import PatternName, PatternDetection, PatternRecognizer
from .signals import (
    SignalType,
    TradeDirection,
    TradeSignal,
    SignalDecision,
    TradeResult,
    SignalGenerator,
    RiskManager,
    PositionManager,
    PerformanceRecord
)
from .engine import TradingSession, Backtester, BacktestResult
from .utils.logger import get_logger, configure_logging

__all__ = [
    # Configuration
    "EngineConfig",
    "get_config",

    # Zones
    "Zone",
    "ZoneStore",
    "PivotDetector",
    "ZoneStrengthScorer",

    # Regime
    "MarketRegime",
    "RegimeState",
    "RegimeClassifier",

    # Patterns
    "PatternName",
    "PatternDetection",
    "PatternRecognizer",

    # Signals
    "SignalType",
    "TradeDirection",
    "TradeSignal",
    "SignalDecision",
    "TradeResult",
    "SignalGenerator",
    "RiskManager",
    "PositionManager",
    "PerformanceRecord",

    # Engine
    "TradingSession",
    "Backtester",
    "BacktestResult",

    # Utilities
    "get_logger",
    "configure_logging",

    "__version__",
    "__license__"
]


def get_package_info() -> Dict[str, str]:
    """
    Получить информацию о пакете

    Returns:
        Dict с информацией о версии и лицензии
    """
    return {
        "name": "zone-regime-engine",
        "version": __version__,
        "license": __license__,
        "description": "Support/resistance zones, market regimes and candlestick signals"
    }
