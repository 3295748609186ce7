"""
Bar-by-bar replay of a TradingSession over historical data

The replay advances the market data clock one bar at a time, lets the paper
broker settle stops and targets on the new bar, then runs the session
pipeline on it. Trades still open at the end are reported but not closed.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any

import pandas as pd

from ..config.engine_config import EngineConfig
from ..indicators.technical import IndicatorPort
from ..ports.execution import ClosedTrade, PaperExecutionPort
from ..ports.market_data import DataFrameMarketData
from ..ports.persistence import PersistencePort
from ..preprocessing.bars import prepare_ohlcv_frame, bars_from_frame
from ..signals.models import TradeResult
from ..utils.exceptions import InsufficientDataException
from ..utils.logger import LoggerMixin, timed_operation
from ..utils.metrics import calculate_trade_metrics, metrics_summary, metrics_warnings
from .session import TradingSession


@dataclass
class BacktestResult:
    """Outcome of one replay"""
    symbol: str
    timeframe: str
    bars: int
    trades: List[ClosedTrade] = field(default_factory=list)
    results: List[TradeResult] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    by_regime: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    open_positions: int = 0

    @property
    def orders(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def rejections(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'bars': self.bars,
            'orders': self.orders,
            'rejections': self.rejections,
            'open_positions': self.open_positions,
            'metrics': self.metrics,
            'warnings': self.warnings,
            'by_regime': self.by_regime,
            'trades': [t.to_dict() for t in self.trades]
        }


class Backtester(LoggerMixin):
    """Runs a session against a paper broker over a historical frame"""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        persistence: Optional[PersistencePort] = None,
        indicators: Optional[IndicatorPort] = None
    ):
        self.config = config or EngineConfig()
        self.persistence = persistence
        self.indicators = indicators

    @timed_operation("backtest")
    def run(
        self,
        symbol: str,
        timeframe: str,
        data: pd.DataFrame,
        higher_timeframe_data: Optional[pd.DataFrame] = None
    ) -> BacktestResult:
        """
        Replay `data` bar by bar

        Args:
            symbol: Instrument symbol
            timeframe: Timeframe of `data`
            data: OHLCV frame (oldest-first after normalization)
            higher_timeframe_data: Optional frame for the configured higher timeframe

        Returns:
            BacktestResult with closed trades and metrics
        """
        frame = prepare_ohlcv_frame(data)
        if len(frame) < 2:
            raise InsufficientDataException(
                "Backtest needs at least two bars",
                required_samples=2,
                provided_samples=len(frame)
            )

        market = DataFrameMarketData()
        market.add_frame(symbol, timeframe, frame)
        htf = self.config.zones.higher_timeframe
        if higher_timeframe_data is not None and htf:
            market.add_frame(symbol, htf, higher_timeframe_data)

        broker = PaperExecutionPort(self.config.instrument)
        session = TradingSession(
            symbol,
            timeframe,
            market,
            broker,
            config=self.config,
            persistence=self.persistence,
            indicators=self.indicators
        )

        self.logger.info("Backtest started", symbol=symbol, timeframe=timeframe, bars=len(frame))

        result = BacktestResult(symbol=symbol, timeframe=timeframe, bars=len(frame))
        for index, bar in enumerate(bars_from_frame(frame)):
            market.replay_to(symbol, timeframe, index)

            for trade in broker.process_bar(bar):
                session.on_position_closed(trade.ticket, trade.profit)
                result.trades.append(trade)

            outcome = session.on_bar()
            if outcome is not None:
                result.results.append(outcome)

        profits = [t.profit for t in result.trades]
        metrics = calculate_trade_metrics(profits, self.config.risk.account_balance)
        result.metrics = metrics_summary(metrics)
        result.warnings = metrics_warnings(metrics)
        result.by_regime = {
            name: stats.to_dict() for name, stats in session.performance.by_regime.items()
        }
        result.open_positions = len(broker.positions)

        self.logger.info(
            "Backtest finished",
            orders=result.orders,
            rejections=result.rejections,
            open_positions=result.open_positions,
            **result.metrics
        )
        return result
