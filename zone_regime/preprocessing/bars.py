"""
Bar model and OHLCV frame preparation.

Every series in the engine is ordered oldest-first. Frames coming from the
market-data port or the API are normalized here (column names, timestamp
column, sort order, duplicates) before they reach the analytical cores.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence, Union, Any

import numpy as np
import pandas as pd

from ..utils.logger import get_logger
from ..utils.exceptions import InvalidDataException
from ..utils.helpers import validate_ohlcv_data, ensure_datetime, OHLCV_COLUMNS

logger = get_logger(__name__)

_TIME_COLUMNS = ['timestamp', 'time', 'datetime', 'date']


@dataclass(frozen=True)
class Bar:
    """Single observed OHLCV bar"""
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: datetime

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume
        }


def prepare_ohlcv_frame(data: Union[pd.DataFrame, List[Dict]], validate: bool = True) -> pd.DataFrame:
    """
    Normalize raw OHLCV data into the engine's frame layout.

    Accepts capitalized column names, any of the usual timestamp column
    names or a DatetimeIndex, sorts oldest-first and drops duplicate
    timestamps (last one wins).

    Args:
        data: DataFrame or list of row dicts
        validate: Run OHLC consistency checks

    Returns:
        DataFrame with columns timestamp, open, high, low, close, volume
        and a RangeIndex

    Raises:
        InvalidDataException: missing columns or inconsistent prices
    """
    if isinstance(data, pd.DataFrame):
        df = data.copy()
    elif isinstance(data, list):
        df = pd.DataFrame(data)
    else:
        raise InvalidDataException(f"Unsupported data type: {type(data)}")

    df = df.rename(columns={col: col.lower() for col in df.columns if isinstance(col, str)})

    if 'volume' not in df.columns and 'tick_volume' in df.columns:
        df = df.rename(columns={'tick_volume': 'volume'})
    if 'volume' not in df.columns and {'open', 'high', 'low', 'close'} <= set(df.columns):
        # Объем не обязателен: без него фильтр объема работает как информативный
        df['volume'] = 0.0

    time_col = next((col for col in _TIME_COLUMNS if col in df.columns), None)
    if time_col is None:
        if isinstance(df.index, pd.DatetimeIndex):
            df['timestamp'] = df.index
        else:
            raise InvalidDataException(
                "No timestamp column found. Expected one of: " + ", ".join(_TIME_COLUMNS)
            )
    elif time_col != 'timestamp':
        df = df.rename(columns={time_col: 'timestamp'})

    missing = [col for col in OHLCV_COLUMNS if col not in df.columns]
    if missing:
        raise InvalidDataException(f"Missing required columns: {missing}")

    try:
        df['timestamp'] = pd.to_datetime(df['timestamp'])
    except (ValueError, TypeError) as e:
        raise InvalidDataException("Timestamp column cannot be parsed", original_exception=e)

    for col in OHLCV_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    initial_count = len(df)
    df = df.dropna(subset=OHLCV_COLUMNS + ['timestamp'])
    if len(df) < initial_count:
        logger.warning("Dropped rows with missing prices", dropped=initial_count - len(df))

    df = df.sort_values('timestamp')
    if df['timestamp'].duplicated().any():
        logger.warning("Duplicate timestamps found, keeping the last bar per timestamp")
        df = df.drop_duplicates(subset='timestamp', keep='last')

    df = df[['timestamp'] + OHLCV_COLUMNS].reset_index(drop=True)

    if validate and not df.empty:
        validate_ohlcv_data(df)

    return df


def bars_from_frame(df: pd.DataFrame) -> List[Bar]:
    """Convert a prepared frame into Bar records (oldest-first)"""
    if df.empty:
        return []

    timestamps = pd.to_datetime(df['timestamp']).dt.to_pydatetime()
    columns = [df[col].to_numpy(dtype=float) for col in OHLCV_COLUMNS]

    return [
        Bar(
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
            timestamp=ts
        )
        for o, h, l, c, v, ts in zip(*columns, timestamps)
    ]


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Convert Bar records into a frame with the engine's column layout"""
    if not bars:
        return pd.DataFrame(columns=['timestamp'] + OHLCV_COLUMNS)

    return pd.DataFrame({
        'timestamp': pd.to_datetime([ensure_datetime(b.timestamp) for b in bars]),
        'open': np.array([b.open for b in bars], dtype=float),
        'high': np.array([b.high for b in bars], dtype=float),
        'low': np.array([b.low for b in bars], dtype=float),
        'close': np.array([b.close for b in bars], dtype=float),
        'volume': np.array([b.volume for b in bars], dtype=float),
    })


def average_volume(volumes: Sequence[float]) -> float:
    """Mean of a volume series (0.0 when empty)"""
    if not len(volumes):
        return 0.0
    return float(np.mean(volumes))
