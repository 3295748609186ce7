"""
Ports to external collaborators: market data, execution, persistence, news
"""

from .market_data import MarketDataPort, DataFrameMarketData
from .execution import (
    ExecutionPort,
    ExecutionResult,
    RetryPolicy,
    RetryingExecutionPort,
    PaperExecutionPort,
    ClosedTrade
)
from .persistence import PersistencePort, JsonPerformanceStore
from .news import NewsFilter

__all__ = [
    "MarketDataPort",
    "DataFrameMarketData",
    "ExecutionPort",
    "ExecutionResult",
    "RetryPolicy",
    "RetryingExecutionPort",
    "PaperExecutionPort",
    "ClosedTrade",
    "PersistencePort",
    "JsonPerformanceStore",
    "NewsFilter"
]
