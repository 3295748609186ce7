"""
Tests for the ta-backed indicator port.
"""

import numpy as np
import pandas as pd
import pytest

from zone_regime.indicators.technical import IndicatorPort, TechnicalIndicators


@pytest.fixture
def indicators():
    return TechnicalIndicators()


class TestTechnicalIndicators:
    """Тесты индикаторов"""

    def test_is_indicator_port(self, indicators):
        """Тест соответствия контракту порта"""
        assert isinstance(indicators, IndicatorPort)

    def test_outputs_aligned_to_input(self, indicators, sample_ohlcv_data):
        """Тест выравнивания индексов"""
        df = sample_ohlcv_data
        assert indicators.rsi(df['close']).index.equals(df.index)
        assert indicators.atr(df).index.equals(df.index)
        assert indicators.adx(df).index.equals(df.index)
        assert indicators.macd(df['close']).index.equals(df.index)
        assert indicators.bollinger(df['close']).index.equals(df.index)

    def test_rsi_bounds(self, indicators, sample_ohlcv_data):
        """Тест диапазона RSI"""
        rsi = indicators.rsi(sample_ohlcv_data['close']).dropna()

        assert len(rsi) > 0
        assert (rsi >= 0).all()
        assert (rsi <= 100).all()

    def test_rsi_only_gains(self, indicators):
        """Тест RSI при одних только ростах"""
        close = pd.Series(np.linspace(1.0, 2.0, 40))
        assert indicators.rsi(close, 14).iloc[-1] == pytest.approx(100.0)

    def test_rsi_flat_series(self, indicators):
        """Тест RSI без движения"""
        close = pd.Series([1.1] * 40)
        assert indicators.rsi(close, 14).iloc[-1] == pytest.approx(50.0)

    def test_atr_warmup_and_positive(self, indicators, sample_ohlcv_data):
        """Тест прогрева и положительности ATR"""
        atr = indicators.atr(sample_ohlcv_data, 14)

        assert atr.iloc[:13].isna().all()
        assert (atr.dropna() > 0).all()

    def test_adx_columns(self, indicators, trending_data):
        """Тест колонок ADX и доминирования +DI в росте"""
        adx = indicators.adx(trending_data, 14)

        assert list(adx.columns) == ['adx', 'plus_di', 'minus_di', 'dx']
        assert adx['plus_di'].iloc[-1] > adx['minus_di'].iloc[-1]
        assert 0 <= adx['adx'].iloc[-1] <= 100

    def test_macd_warmup(self, indicators, sample_ohlcv_data):
        """Тест прогрева MACD"""
        macd = indicators.macd(sample_ohlcv_data['close'], 12, 26, 9)

        assert macd.iloc[:25].isna().all().all()
        assert macd['macd'].iloc[25:].notna().all()
        # Сигнальная линия прогревается по уже готовому MACD
        assert macd.iloc[33:].notna().all().all()
        np.testing.assert_allclose(
            macd['histogram'].iloc[30:],
            (macd['macd'] - macd['signal']).iloc[30:]
        )

    def test_bollinger_ordering(self, indicators, sample_ohlcv_data):
        """Тест порядка полос Боллинджера"""
        bands = indicators.bollinger(sample_ohlcv_data['close'], 20, 2.0).dropna()

        assert (bands['upper'] >= bands['middle']).all()
        assert (bands['middle'] >= bands['lower']).all()
        np.testing.assert_allclose(bands['width'], bands['upper'] - bands['lower'])

    def test_ema_tracks_constant(self, indicators):
        """Тест EMA на константе"""
        close = pd.Series([1.25] * 30)
        assert indicators.ema(close, 10).iloc[-1] == pytest.approx(1.25)

    def test_short_window_is_nan(self, indicators, sample_ohlcv_data):
        """Тест: окно короче периода дает NaN, а не исключение"""
        short = sample_ohlcv_data.head(20)

        assert indicators.atr(short.head(10), 14).isna().all()
        assert indicators.adx(short, 14).isna().all().all()
        assert list(indicators.adx(short, 14).columns) == ['adx', 'plus_di', 'minus_di', 'dx']

    def test_adx_warmup_and_flat_prices(self, indicators, sample_ohlcv_data):
        """Тест прогрева ADX и отсутствия бесконечностей на плоских ценах"""
        adx = indicators.adx(sample_ohlcv_data, 14)
        assert adx['adx'].iloc[:27].isna().all()
        assert adx['adx'].iloc[27:].notna().all()

        flat = sample_ohlcv_data.assign(open=1.1, high=1.1, low=1.1, close=1.1)
        values = indicators.adx(flat, 14).to_numpy()
        assert not np.isinf(values).any()
