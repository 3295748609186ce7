"""
Technical indicators consumed by the regime classifier and signal layer.

IndicatorPort is the contract: every method takes an oldest-first OHLCV frame
(or a close series) and returns series aligned to the input index, NaN during
the warm-up period. TechnicalIndicators is the default implementation on top
of the `ta` library.
"""

from abc import ABC, abstractmethod

import numpy as np
import pandas as pd
from ta.momentum import RSIIndicator
from ta.trend import ADXIndicator, EMAIndicator, MACD
from ta.volatility import AverageTrueRange, BollingerBands


class IndicatorPort(ABC):
    """Contract for numerical indicator providers"""

    @abstractmethod
    def ema(self, close: pd.Series, period: int) -> pd.Series:
        """Exponential moving average"""

    @abstractmethod
    def rsi(self, close: pd.Series, period: int = 14) -> pd.Series:
        """Relative strength index in [0, 100]"""

    @abstractmethod
    def atr(self, df: pd.DataFrame, period: int = 14) -> pd.Series:
        """Average true range"""

    @abstractmethod
    def adx(self, df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
        """Columns adx, plus_di, minus_di, dx"""

    @abstractmethod
    def macd(self, close: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.DataFrame:
        """Columns macd, signal, histogram"""

    @abstractmethod
    def bollinger(self, close: pd.Series, period: int = 20, num_std: float = 2.0) -> pd.DataFrame:
        """Columns upper, middle, lower, width"""


class TechnicalIndicators(IndicatorPort):
    """
    Indicator port backed by `ta`

    ta fills the warm-up of ATR and ADX with zeros and raises on windows
    shorter than the period; both are mapped to NaN here so callers only
    ever see finite values or NaN.
    ATR and ADX index their inputs by position, so they get a fresh
    RangeIndex and the result is realigned to the caller's index.
    """

    @staticmethod
    def _finite(series: pd.Series, warmup: int = 0) -> pd.Series:
        result = series.replace([np.inf, -np.inf], np.nan).astype(float)
        if warmup > 0:
            result.iloc[:warmup] = np.nan
        return result

    @staticmethod
    def _empty(index: pd.Index, columns=None):
        if columns is None:
            return pd.Series(np.nan, index=index, dtype=float)
        return pd.DataFrame(np.nan, index=index, columns=columns, dtype=float)

    def ema(self, close: pd.Series, period: int) -> pd.Series:
        return EMAIndicator(close, window=period).ema_indicator()

    def rsi(self, close: pd.Series, period: int = 14) -> pd.Series:
        rsi = RSIIndicator(close, window=period).rsi()

        # Нет движения с начала ряда: 50, а не 100
        still = close.diff().abs().fillna(0.0).cumsum() == 0
        return rsi.mask(still & rsi.notna(), 50.0)

    def atr(self, df: pd.DataFrame, period: int = 14) -> pd.Series:
        if len(df) < period:
            return self._empty(df.index)

        prices = df[['high', 'low', 'close']].reset_index(drop=True)
        atr = AverageTrueRange(prices['high'], prices['low'], prices['close'], window=period).average_true_range()
        return pd.Series(self._finite(atr, warmup=period - 1).values, index=df.index)

    def adx(self, df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
        columns = ['adx', 'plus_di', 'minus_di', 'dx']
        if len(df) < 2 * period:
            return self._empty(df.index, columns)

        with np.errstate(divide='ignore', invalid='ignore'):
            prices = df[['high', 'low', 'close']].reset_index(drop=True)
            indicator = ADXIndicator(prices['high'], prices['low'], prices['close'], window=period)
            adx = self._finite(indicator.adx(), warmup=2 * period - 1)
            plus_di = self._finite(indicator.adx_pos(), warmup=period + 1)
            minus_di = self._finite(indicator.adx_neg(), warmup=period + 1)

        di_sum = (plus_di + minus_di).replace(0, np.nan)
        dx = 100 * (plus_di - minus_di).abs() / di_sum

        return pd.DataFrame({
            'adx': adx.values,
            'plus_di': plus_di.values,
            'minus_di': minus_di.values,
            'dx': dx.values
        }, index=df.index)

    def macd(self, close: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.DataFrame:
        indicator = MACD(close, window_slow=slow, window_fast=fast, window_sign=signal)

        return pd.DataFrame({
            'macd': indicator.macd().values,
            'signal': indicator.macd_signal().values,
            'histogram': indicator.macd_diff().values
        }, index=close.index)

    def bollinger(self, close: pd.Series, period: int = 20, num_std: float = 2.0) -> pd.DataFrame:
        bands = BollingerBands(close, window=period, window_dev=num_std)
        upper = bands.bollinger_hband()
        lower = bands.bollinger_lband()

        return pd.DataFrame({
            'upper': upper.values,
            'middle': bands.bollinger_mavg().values,
            'lower': lower.values,
            'width': (upper - lower).values
        }, index=close.index)
