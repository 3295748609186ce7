"""
Общие фикстуры тестов: синтетические OHLCV данные и конфигурация.
"""

from datetime import datetime, timedelta

import numpy as np
import pandas as pd
import pytest

from zone_regime.config.engine_config import EngineConfig, ZoneConfig
from zone_regime.indicators.technical import TechnicalIndicators
from zone_regime.preprocessing.bars import Bar

START = datetime(2024, 1, 1)


def _frame_from_closes(closes: np.ndarray, rng: np.random.RandomState, spread: float = 0.0004) -> pd.DataFrame:
    """OHLCV рамка вокруг заданной траектории закрытий"""
    n = len(closes)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    highs = np.maximum(opens, closes) + rng.uniform(0.0, spread, n)
    lows = np.minimum(opens, closes) - rng.uniform(0.0, spread, n)
    return pd.DataFrame({
        'timestamp': pd.date_range(START, periods=n, freq='h'),
        'open': opens,
        'high': highs,
        'low': lows,
        'close': closes,
        'volume': rng.uniform(1000, 5000, n)
    })


@pytest.fixture
def sample_ohlcv_data():
    """Случайное блуждание, 300 часовых баров"""
    rng = np.random.RandomState(42)
    closes = 1.1000 + np.cumsum(rng.randn(300) * 0.0008)
    return _frame_from_closes(closes, rng)


@pytest.fixture
def trending_data():
    """Устойчивый восходящий тренд"""
    rng = np.random.RandomState(7)
    steps = 0.0012 + rng.randn(200) * 0.0002
    closes = 1.1000 + np.cumsum(steps)
    return _frame_from_closes(closes, rng, spread=0.0002)


@pytest.fixture
def ranging_data():
    """Боковик: синусоида с шумом"""
    rng = np.random.RandomState(11)
    t = np.arange(200)
    closes = 1.1000 + 0.0030 * np.sin(t / 4.0) + rng.randn(200) * 0.0002
    return _frame_from_closes(closes, rng, spread=0.0003)


@pytest.fixture
def make_bar():
    """Фабрика баров: make_bar(i, open, high, low, close, volume)"""
    def factory(index: int, open_: float, high: float, low: float, close: float, volume: float = 1000.0) -> Bar:
        return Bar(
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
            timestamp=START + timedelta(hours=index)
        )
    return factory


@pytest.fixture
def flat_bars(make_bar):
    """Фабрика ровных баров вокруг цены"""
    def factory(count: int, price: float = 1.1000, start: int = 0):
        return [
            make_bar(start + i, price, price + 0.0002, price - 0.0002, price)
            for i in range(count)
        ]
    return factory


@pytest.fixture
def zone_config():
    """Конфигурация зон без старшего таймфрейма"""
    return ZoneConfig(higher_timeframe=None)


@pytest.fixture
def engine_config():
    """Тестовая конфигурация движка"""
    config = EngineConfig()
    zones = config.zones.model_copy(update={'higher_timeframe': None, 'history_bars': 150})
    return config.model_copy(update={'zones': zones})


class FixedIndicators(TechnicalIndicators):
    """Индикаторы с фиксированными RSI/ADX/ATR для тестов сигналов"""

    def __init__(self, rsi: float = 50.0, adx: float = 20.0, atr: float = 0.0010):
        self.values = {'rsi': rsi, 'adx': adx, 'atr': atr}

    def rsi(self, close, period=14):
        return pd.Series(self.values['rsi'], index=close.index)

    def atr(self, df, period=14):
        return pd.Series(self.values['atr'], index=df.index)

    def adx(self, df, period=14):
        adx = pd.Series(self.values['adx'], index=df.index)
        return pd.DataFrame({'adx': adx, 'plus_di': adx, 'minus_di': adx, 'dx': adx})


@pytest.fixture
def fixed_indicators():
    """Фабрика индикаторов с фиксированными значениями"""
    return FixedIndicators
