"""
Per-instrument orchestration and historical replay
"""

from .session import TradingSession
from .backtest import Backtester, BacktestResult

__all__ = [
    "TradingSession",
    "Backtester",
    "BacktestResult"
]
