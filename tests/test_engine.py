"""
Tests for the trading session pipeline and the backtest replay.
"""

import pandas as pd
import pytest

from zone_regime.engine import Backtester, BacktestResult, TradingSession
from zone_regime.ports import (
    DataFrameMarketData,
    ExecutionPort,
    ExecutionResult,
    JsonPerformanceStore,
    PaperExecutionPort
)
from zone_regime.regime import ResolutionMethod
from zone_regime.signals import PositionState, SignalType, TradeDirection, TradeSignal
from zone_regime.support_resistance import ZoneEventType
from zone_regime.utils.exceptions import ExecutionException, InsufficientDataException
from zone_regime.utils.metrics import calculate_trade_metrics, max_drawdown

from conftest import START


class BrokenPort(ExecutionPort):
    """Адаптер брокера, падающий с исключением"""

    def open(self, symbol, direction, size, stop_loss, take_profit, tag=""):
        raise ExecutionException("terminal disconnected", attempts=1)

    def modify(self, ticket, stop_loss, take_profit):
        raise ExecutionException("terminal disconnected", ticket=ticket)

    def close_partial(self, ticket, volume):
        raise ExecutionException("terminal disconnected", ticket=ticket)


class RejectingPort(ExecutionPort):
    """Брокер, отклоняющий любые ордера"""

    def open(self, symbol, direction, size, stop_loss, take_profit, tag=""):
        return ExecutionResult.rejected("no_money")

    def modify(self, ticket, stop_loss, take_profit):
        return ExecutionResult.rejected("no_money", ticket)

    def close_partial(self, ticket, volume):
        return ExecutionResult.rejected("no_money", ticket)


def _signal(regime="ranging"):
    return TradeSignal(
        signal_type=SignalType.BOUNCE,
        direction=TradeDirection.LONG,
        entry_price=1.1000,
        stop_loss=1.0950,
        take_profit=1.1100,
        size=0.1,
        reward_risk=2.0,
        zone_id=None,
        pattern="None",
        regime=regime,
        timestamp=START,
        reason="long bounce at support (RSI 25.0)"
    )


@pytest.fixture
def market(sample_ohlcv_data):
    provider = DataFrameMarketData()
    provider.add_frame("EURUSD", "1h", sample_ohlcv_data)
    return provider


@pytest.fixture
def crash_market(sample_ohlcv_data):
    """100 баров истории и бар, закрывшийся далеко ниже всех минимумов"""
    history = sample_ohlcv_data.head(100)
    last = history.iloc[-1]
    close = history['low'].min() - 0.0100
    crash = pd.DataFrame([{
        'timestamp': last['timestamp'] + pd.Timedelta(hours=1),
        'open': last['close'],
        'high': last['close'],
        'low': close - 0.0002,
        'close': close,
        'volume': 4000.0
    }])

    provider = DataFrameMarketData()
    provider.add_frame("EURUSD", "1h", pd.concat([history, crash], ignore_index=True))
    return provider


@pytest.fixture
def broker(make_bar):
    paper = PaperExecutionPort()
    paper.update_market(make_bar(0, 1.0995, 1.1005, 1.0990, 1.1000))
    return paper


class TestTradingSession:
    """Тесты торговой сессии"""

    def test_first_bar_refreshes_zones_and_regime(self, market, broker, engine_config, sample_ohlcv_data):
        """Тест: первый бар запускает обновление зон и режима"""
        market.replay_to("EURUSD", "1h", 199)
        session = TradingSession("EURUSD", "1h", market, broker, config=engine_config)

        session.on_bar()

        assert session.bars_processed == 1
        assert len(session.zones) > 0
        assert session.regime.resolved_by != ResolutionMethod.INSUFFICIENT_DATA
        assert session.regime.computed_at == sample_ohlcv_data['timestamp'].iloc[199].to_pydatetime()

    def test_same_bar_is_processed_once(self, market, broker, engine_config):
        """Тест: повторный вызов на том же баре ничего не делает"""
        market.replay_to("EURUSD", "1h", 199)
        session = TradingSession("EURUSD", "1h", market, broker, config=engine_config)

        session.on_bar()
        assert session.on_bar() is None
        assert session.bars_processed == 1

        market.replay_to("EURUSD", "1h", 200)
        session.on_bar()
        assert session.bars_processed == 2

    def test_short_history_reduces_window(self, market, broker, engine_config):
        """Тест: короткая история не является ошибкой"""
        market.replay_to("EURUSD", "1h", 29)
        session = TradingSession("EURUSD", "1h", market, broker, config=engine_config)

        session.on_bar()

        assert session.bars_processed == 1
        assert session.regime.is_neutral

    def test_empty_market_does_nothing(self, broker, engine_config):
        """Тест: без данных бар не обрабатывается"""
        session = TradingSession("EURUSD", "1h", DataFrameMarketData(), broker, config=engine_config)

        assert session.on_bar() is None
        assert session.bars_processed == 0

    def test_sessions_are_isolated(self, market, broker, engine_config):
        """Тест: сессии не делят хранилище зон и статистику"""
        market.replay_to("EURUSD", "1h", 199)
        first = TradingSession("EURUSD", "1h", market, broker, config=engine_config)
        second = TradingSession("EURUSD", "1h", market, broker, config=engine_config)

        first.on_bar()

        assert first.zones is not second.zones
        assert first.performance is not second.performance
        assert len(first.zones) > 0
        assert len(second.zones) == 0

    def test_execute_tracks_position(self, market, broker, engine_config):
        """Тест открытия позиции через порт исполнения"""
        session = TradingSession("EURUSD", "1h", market, broker, config=engine_config)

        result = session.execute(_signal())

        assert result.success
        assert result.ticket == "1"
        assert result.fill_price == 1.1000
        assert session.position_state == PositionState.BOUNCE_OPEN
        assert session.position.initial_risk == pytest.approx(0.0050)

    def test_rejected_order(self, market, engine_config):
        """Тест: отказ брокера дает неуспешный результат"""
        session = TradingSession("EURUSD", "1h", market, PaperExecutionPort(), config=engine_config)

        result = session.execute(_signal())

        assert not result.success
        assert result.reason == "no_market"
        assert session.position is None
        assert session.position_state == PositionState.FLAT

    def test_broker_rejection_returns_failed_result(self, market, engine_config):
        """Тест: отказ брокера возвращается как неуспешный результат с причиной"""
        session = TradingSession("EURUSD", "1h", market, RejectingPort(), config=engine_config)

        result = session.execute(_signal())

        assert not result.success
        assert result.reason == "no_money"
        assert result.signal is not None
        assert session.position is None
        assert session.position_state == PositionState.FLAT

    def test_zone_breaks_during_on_bar(self, crash_market, broker, engine_config):
        """Тест: закрытие ниже поддержек ломает их на следующем баре"""
        session = TradingSession("EURUSD", "1h", crash_market, broker, config=engine_config)
        crash_market.replay_to("EURUSD", "1h", 99)
        session.on_bar()

        intact = [
            z for z in session.zones.supports(valid_only=False)
            if not z.is_merged and not z.is_broken
        ]
        assert intact

        crash_market.replay_to("EURUSD", "1h", 100)
        session.on_bar()

        assert session.bars_processed == 2
        assert all(z.is_broken for z in intact)
        assert all(z.is_support for z in intact)
        assert ZoneEventType.BREAK in [e.event for e in session.zones.history]

    def test_advance_zones_replays_only_zone_steps(self, crash_market, broker, engine_config):
        """Тест: шаг зон без режима и сигналов"""
        session = TradingSession("EURUSD", "1h", crash_market, broker, config=engine_config)

        events = []
        for index in range(101):
            crash_market.replay_to("EURUSD", "1h", index)
            events = session.advance_zones()

        assert session.bars_processed == 101
        assert session.regime.is_neutral
        assert session.last_decision is None
        assert ZoneEventType.BREAK in [e.event for e in events]

    def test_execution_exception_is_contained(self, market, engine_config):
        """Тест: исключение адаптера не выходит за пределы сессии"""
        session = TradingSession("EURUSD", "1h", market, BrokenPort(), config=engine_config)

        result = session.execute(_signal())

        assert not result.success
        assert result.reason == "terminal disconnected"
        assert result.signal is not None

    def test_close_records_and_persists(self, market, broker, engine_config, tmp_path):
        """Тест: закрытие учитывается по режиму открытия и сохраняется"""
        store = JsonPerformanceStore(tmp_path)
        session = TradingSession("EURUSD", "1h", market, broker, config=engine_config, persistence=store)
        ticket = session.execute(_signal(regime="trending")).ticket

        record = session.on_position_closed(ticket, 50.0)

        assert record.regime_stats("trending").wins == 1
        assert session.balance == pytest.approx(engine_config.risk.account_balance + 50.0)
        assert session.position_state == PositionState.FLAT

        restored = TradingSession("EURUSD", "1h", market, broker, config=engine_config, persistence=store)
        assert restored.performance.trades == 1

    def test_close_of_unknown_ticket_uses_current_regime(self, market, broker, engine_config):
        """Тест: закрытие неизвестного тикета учитывается в текущем режиме"""
        session = TradingSession("EURUSD", "1h", market, broker, config=engine_config)

        session.on_position_closed("99", -10.0)

        assert session.performance.regime_stats("neutral").losses == 1

    def test_status(self, market, broker, engine_config):
        """Тест снимка состояния"""
        market.replay_to("EURUSD", "1h", 199)
        session = TradingSession("eur/usd", "1H", market, broker, config=engine_config)
        session.on_bar()

        status = session.status()

        assert status['timeframe'] == '1h'
        assert status['bars_processed'] == 1
        assert status['position_state'] == 'flat' or status['position'] is not None
        assert 'total_zones' in status['zones']


class TestBacktester:
    """Тесты бэктеста"""

    def test_replay_accounts_for_every_order(self, engine_config, sample_ohlcv_data):
        """Тест: каждый ордер либо закрыт, либо остался открытым"""
        result = Backtester(engine_config).run("EURUSD", "1h", sample_ohlcv_data)

        assert isinstance(result, BacktestResult)
        assert result.bars == len(sample_ohlcv_data)
        assert result.orders == len(result.trades) + result.open_positions
        assert result.open_positions in (0, 1)
        assert result.metrics['trades'] == len(result.trades)
        assert sum(s['trades'] for s in result.by_regime.values()) == len(result.trades)
        assert all(t.exit_reason in ('stop_loss', 'take_profit') for t in result.trades)

    def test_replay_is_deterministic(self, engine_config, trending_data):
        """Тест воспроизводимости"""
        first = Backtester(engine_config).run("EURUSD", "1h", trending_data)
        second = Backtester(engine_config).run("EURUSD", "1h", trending_data)

        assert first.metrics == second.metrics
        assert [t.profit for t in first.trades] == [t.profit for t in second.trades]

    def test_needs_two_bars(self, engine_config, sample_ohlcv_data):
        """Тест: слишком короткая история"""
        with pytest.raises(InsufficientDataException):
            Backtester(engine_config).run("EURUSD", "1h", sample_ohlcv_data.head(1))

    def test_result_serialization(self, engine_config, ranging_data):
        """Тест сериализации результата"""
        data = Backtester(engine_config).run("EURUSD", "1h", ranging_data).to_dict()

        assert set(data) >= {'orders', 'rejections', 'metrics', 'warnings', 'by_regime', 'trades'}


class TestTradeMetrics:
    """Тесты торговых метрик"""

    def test_metrics_from_profits(self):
        """Тест расчета метрик по списку сделок"""
        metrics = calculate_trade_metrics([100.0, -50.0, 30.0, -20.0], starting_balance=1000.0)

        assert metrics['trades'].value == 4
        assert metrics['win_rate'].value == pytest.approx(50.0)
        assert metrics['profit_factor'].value == pytest.approx(130.0 / 70.0)
        assert metrics['net_profit'].value == pytest.approx(60.0)
        assert metrics['max_drawdown_pct'].value == pytest.approx(5.0)

    def test_max_drawdown(self):
        """Тест максимальной просадки"""
        assert max_drawdown([]) == 0.0
        assert max_drawdown([10.0, -30.0, 5.0, -10.0]) == pytest.approx(35.0)
