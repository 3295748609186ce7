"""
Market data port

MarketDataPort is the bar provider contract. Results are oldest-first and
may hold fewer bars than requested; callers treat a short result as a
reduced window, not an error. DataFrameMarketData serves in-memory frames
and supports replay through a clock, so higher timeframes only expose bars
that have closed by the current replay time.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..preprocessing.bars import prepare_ohlcv_frame
from ..utils.helpers import normalize_symbol, normalize_timeframe, parse_timeframe_to_timedelta
from ..utils.logger import LoggerMixin


class MarketDataPort(ABC):
    """Bar provider contract"""

    @abstractmethod
    def get_bars(self, symbol: str, timeframe: str, count: int) -> pd.DataFrame:
        """Up to `count` most recent closed bars, oldest-first"""

    @abstractmethod
    def get_volume(self, symbol: str, timeframe: str, count: int) -> List[int]:
        """Volumes of the same bars get_bars would return"""

    @abstractmethod
    def available(self, symbol: str, timeframe: str) -> int:
        """Number of closed bars that could be served"""


class DataFrameMarketData(MarketDataPort, LoggerMixin):
    """In-memory bar provider with a replay clock"""

    def __init__(self):
        self._frames: Dict[Tuple[str, str], pd.DataFrame] = {}
        self._clock: Optional[datetime] = None

    @staticmethod
    def _key(symbol: str, timeframe: str) -> Tuple[str, str]:
        return normalize_symbol(symbol), normalize_timeframe(timeframe)

    def add_frame(self, symbol: str, timeframe: str, frame: pd.DataFrame):
        """Register OHLCV data for a symbol/timeframe (normalized on entry)"""
        prepared = prepare_ohlcv_frame(frame)
        duration = parse_timeframe_to_timedelta(timeframe)
        prepared['close_time'] = prepared['timestamp'] + duration
        self._frames[self._key(symbol, timeframe)] = prepared

    def set_clock(self, at: Optional[datetime]):
        """Only bars closed at or before `at` are served (None serves all)"""
        self._clock = at

    def replay_to(self, symbol: str, timeframe: str, index: int) -> datetime:
        """Move the clock to the close of bar `index` of the given series"""
        frame = self._frames[self._key(symbol, timeframe)]
        close_time = pd.Timestamp(frame['close_time'].iloc[index]).to_pydatetime()
        self._clock = close_time
        return close_time

    def _visible(self, symbol: str, timeframe: str) -> pd.DataFrame:
        frame = self._frames.get(self._key(symbol, timeframe))
        if frame is None:
            self.logger.debug("No data registered", symbol=symbol, timeframe=timeframe)
            return pd.DataFrame(columns=['timestamp', 'open', 'high', 'low', 'close', 'volume'])
        if self._clock is not None:
            frame = frame[frame['close_time'] <= pd.Timestamp(self._clock)]
        return frame

    def get_bars(self, symbol: str, timeframe: str, count: int) -> pd.DataFrame:
        frame = self._visible(symbol, timeframe)
        bars = frame.tail(count).drop(columns=['close_time'], errors='ignore')
        return bars.reset_index(drop=True)

    def get_volume(self, symbol: str, timeframe: str, count: int) -> List[int]:
        bars = self.get_bars(symbol, timeframe, count)
        return [int(v) for v in bars['volume']]

    def available(self, symbol: str, timeframe: str) -> int:
        return len(self._visible(symbol, timeframe))

    def length(self, symbol: str, timeframe: str) -> int:
        """Total registered bars, ignoring the clock"""
        frame = self._frames.get(self._key(symbol, timeframe))
        return 0 if frame is None else len(frame)
