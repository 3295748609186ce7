"""
Trading session

One session per (symbol, timeframe). The session owns its zone store,
regime state, performance record and position state; two sessions never
share anything. on_bar() runs the per-bar pipeline:

1. fetch the lookback window (a short result just reduces the window)
2. every zone refresh interval: detect pivots, ingest, merge
3. apply the latest closed bar to the zone store
4. every regime update interval: classify the regime
5. manage the open position, or evaluate a new signal and execute it
"""

import math
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

import pandas as pd

from ..config.engine_config import EngineConfig
from ..indicators.technical import IndicatorPort, TechnicalIndicators
from ..patterns.models import PatternDetection
from ..patterns.recognizer import PatternRecognizer
from ..ports.execution import ExecutionPort
from ..ports.market_data import MarketDataPort
from ..ports.news import NewsFilter
from ..ports.persistence import PersistencePort
from ..preprocessing.bars import Bar, bars_from_frame, average_volume
from ..regime.classifier import RegimeClassifier
from ..regime.models import RegimeState
from ..signals.generator import SignalGenerator
from ..signals.models import (
    Position,
    PositionState,
    SignalContext,
    SignalDecision,
    TradeResult,
    TradeSignal
)
from ..signals.performance import PerformanceRecord
from ..signals.position_manager import PositionManager
from ..signals.risk import RiskManager
from ..support_resistance.detector import PivotDetector
from ..support_resistance.zone import ZoneEvent
from ..support_resistance.zone_store import ZoneStore
from ..utils.exceptions import ExecutionException, PersistenceException, log_exception
from ..utils.helpers import last_finite, normalize_timeframe
from ..utils.logger import get_session_logger


class TradingSession:
    """Per-instrument orchestration of zones, regime and signals"""

    def __init__(
        self,
        symbol: str,
        timeframe: str,
        market_data: MarketDataPort,
        execution: ExecutionPort,
        config: Optional[EngineConfig] = None,
        persistence: Optional[PersistencePort] = None,
        indicators: Optional[IndicatorPort] = None,
        news: Optional[NewsFilter] = None
    ):
        self.symbol = symbol
        self.timeframe = normalize_timeframe(timeframe)
        self.config = config or EngineConfig()
        self.market_data = market_data
        self.execution = execution
        self.persistence = persistence
        self.indicators = indicators or TechnicalIndicators()

        self.logger = get_session_logger(symbol, self.timeframe, "session")

        cfg = self.config
        self.detector = PivotDetector(cfg.zones)
        self.zones = ZoneStore(cfg.zones)
        self.classifier = RegimeClassifier(cfg.regime, self.indicators)
        self.recognizer = PatternRecognizer(cfg.patterns)
        self.risk = RiskManager(cfg.risk, cfg.instrument)
        self.generator = SignalGenerator(cfg.signals, self.risk, self.indicators, news)
        self.position_manager = PositionManager(cfg.risk, cfg.instrument)

        self.regime: RegimeState = RegimeState.neutral()
        self.pattern: PatternDetection = PatternDetection.none()
        self.last_decision: Optional[SignalDecision] = None
        self.position: Optional[Position] = None
        self.position_state = PositionState.FLAT
        self.balance = cfg.risk.account_balance

        self.bars_processed = 0
        self._last_bar_time: Optional[datetime] = None
        self._short_window_reported = False

        self.performance = self._load_performance()

    @property
    def window_size(self) -> int:
        return max(self.config.zones.history_bars, self.config.regime.lookback)

    # === Pipeline ===

    def on_bar(self) -> Optional[TradeResult]:
        """
        Process the latest closed bar

        Returns:
            TradeResult when an order was attempted or a signal rejected,
            None otherwise
        """
        frame, bars = self._next_window()
        if not bars:
            return None
        current = bars[-1]

        self._update_zones(frame, bars)

        if self.bars_processed % self.config.regime.update_interval == 0:
            self._update_regime(frame)

        self.bars_processed += 1

        nearest = self.zones.nearest_zone(current.close)
        self.pattern = self.recognizer.recognize(bars, nearest)

        if self.position is not None:
            self._manage_position(current)
            return None

        context = SignalContext(
            symbol=self.symbol,
            bars=bars,
            frame=frame,
            zones=self.zones,
            regime=self.regime,
            pattern=self.pattern,
            position_state=self.position_state,
            balance=self.balance
        )
        decision = self.generator.evaluate(context)
        self.last_decision = decision

        if decision.has_signal:
            return self.execute(decision.signal)
        if decision.rejected:
            return TradeResult.failed(decision.reason, decision.signal)
        return None

    def advance_zones(self) -> List[ZoneEvent]:
        """
        Zone steps of on_bar only: refresh on schedule and apply the latest
        closed bar. Regime, patterns and signals are left untouched.

        Returns:
            Events produced by the latest bar
        """
        frame, bars = self._next_window()
        if not bars:
            return []

        events = self._update_zones(frame, bars)
        self.bars_processed += 1
        return events

    def _next_window(self) -> Tuple[pd.DataFrame, List[Bar]]:
        """Window ending at a bar not seen before, or no bars"""
        frame = self._fetch_window()
        if frame.empty:
            return frame, []

        bars = bars_from_frame(frame)
        if self._last_bar_time is not None and bars[-1].timestamp <= self._last_bar_time:
            return frame, []
        self._last_bar_time = bars[-1].timestamp
        return frame, bars

    def _update_zones(self, frame: pd.DataFrame, bars: List[Bar]) -> List[ZoneEvent]:
        if self.bars_processed % self.config.zones.refresh_interval == 0:
            self.refresh_zones(frame, bars)
        return self.zones.update_on_bar(bars[-1], self.timeframe)

    def _fetch_window(self) -> pd.DataFrame:
        requested = self.window_size
        frame = self.market_data.get_bars(self.symbol, self.timeframe, requested)

        if len(frame) < requested:
            # Короткая история: работаем с тем, что есть
            log = self.logger.debug if self._short_window_reported else self.logger.warning
            log("Short bar history, using reduced window", requested=requested, received=len(frame))
            self._short_window_reported = True
        return frame

    def zone_thickness(self, frame: pd.DataFrame) -> float:
        """Configured thickness, or ATR multiple when requested"""
        multiple = self.config.zones.thickness_atr_multiple
        if multiple is None:
            return self.config.zones.zone_thickness

        atr = last_finite(self.indicators.atr(frame, self.config.regime.atr_period))
        if not math.isfinite(atr) or atr <= 0:
            return self.config.zones.zone_thickness
        return atr * multiple

    def higher_timeframe_prices(self) -> List[float]:
        htf = self.config.zones.higher_timeframe
        if not htf or normalize_timeframe(htf) == self.timeframe:
            return []

        frame = self.market_data.get_bars(self.symbol, htf, self.config.zones.higher_timeframe_bars)
        if frame.empty:
            return []
        return self.detector.swing_prices(bars_from_frame(frame))

    def refresh_zones(self, frame: pd.DataFrame, bars: List[Bar]):
        """Detect pivots on the history window and fold them into the store"""
        thickness = self.zone_thickness(frame)
        candidates = self.detector.detect_pivots(bars, thickness)

        volumes = self.market_data.get_volume(self.symbol, self.timeframe, len(bars))
        self.zones.set_context(
            reference_time=bars[-1].timestamp,
            average_volume=average_volume(volumes),
            htf_prices=self.higher_timeframe_prices()
        )
        self.zones.ingest(candidates, thickness)
        self.zones.recompute_strength()
        self.zones.merge_zones()

        self.logger.debug("Zones refreshed", **self.zones.get_statistics())

    def _update_regime(self, frame: pd.DataFrame):
        previous = self.regime.regime
        self.regime = self.classifier.classify(frame)
        if self.regime.regime != previous:
            self.logger.info(
                "Regime changed",
                previous=previous.value,
                regime=self.regime.regime.value,
                resolved_by=self.regime.resolved_by.value
            )

    # === Execution ===

    def execute(self, signal: TradeSignal) -> TradeResult:
        """Send a signal to the execution port and track the position"""
        try:
            result = self.execution.open(
                self.symbol,
                signal.direction,
                signal.size,
                signal.stop_loss,
                signal.take_profit,
                signal.tag
            )
        except ExecutionException as e:
            log_exception(self.logger, e, {'operation': 'open'})
            return TradeResult.failed(e.message, signal)

        if not result.accepted:
            self.logger.warning("Order rejected", broker_reason=result.reason, **signal.to_dict())
            return TradeResult.failed(result.reason or "rejected", signal)

        self.position = Position.from_signal(signal, result.ticket, self.symbol, result.fill_price)
        self.position_state = PositionState.for_signal(signal.signal_type)

        self.logger.info(
            "Position opened",
            ticket=result.ticket,
            fill_price=result.fill_price,
            signal_type=signal.signal_type.value,
            direction=signal.direction.value,
            size=signal.size
        )
        return TradeResult(
            success=True,
            reason=signal.reason,
            ticket=result.ticket,
            fill_price=result.fill_price,
            signal=signal
        )

    def _manage_position(self, bar: Bar):
        commands = self.position_manager.manage(self.position, bar)
        if commands:
            try:
                self.position_manager.apply(self.position, commands, self.execution)
            except ExecutionException as e:
                log_exception(self.logger, e, {'operation': 'manage', 'ticket': self.position.ticket})

    def on_position_closed(self, ticket: str, profit: float) -> PerformanceRecord:
        """
        Record a realized close and persist the performance record
        """
        if self.position is not None and self.position.ticket == ticket:
            regime = self.position.regime
            self.position = None
            self.position_state = PositionState.FLAT
        else:
            regime = self.regime.regime.value
            self.logger.warning("Close for unknown ticket", ticket=ticket)

        self.performance.record_trade(profit, regime)
        self.balance += profit

        self.logger.info(
            "Position closed",
            ticket=ticket,
            profit=round(profit, 2),
            regime=regime,
            win_rate=round(self.performance.win_rate, 2),
            trades=self.performance.trades
        )

        if self.persistence is not None:
            try:
                self.persistence.save(self.performance)
            except PersistenceException as e:
                log_exception(self.logger, e, {'operation': 'save_performance'})

        return self.performance

    def _load_performance(self) -> PerformanceRecord:
        record = self.persistence.load(self.symbol) if self.persistence else None
        return record or PerformanceRecord(symbol=self.symbol)

    def status(self) -> Dict[str, Any]:
        """Snapshot of the session state"""
        return {
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'bars_processed': self.bars_processed,
            'regime': self.regime.to_dict(),
            'pattern': self.pattern.to_dict(),
            'position_state': self.position_state.value,
            'position': self.position.to_dict() if self.position else None,
            'balance': round(self.balance, 2),
            'zones': self.zones.get_statistics(),
            'performance': self.performance.to_dict(),
            'last_decision': self.last_decision.to_dict() if self.last_decision else None
        }
