"""
Helper utilities for the zone/regime engine.

Numeric guards, timeframe parsing, OHLCV validation and lot-step rounding
shared by the analytical cores and the signal layer.
"""

import math
import re
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Union, Optional, List

import numpy as np
import pandas as pd

from .logger import get_logger
from .exceptions import InvalidDataException

logger = get_logger(__name__)

# Поддерживаемые таймфреймы (в минутах)
SUPPORTED_TIMEFRAMES = {
    "1m": 1, "5m": 5, "15m": 15, "30m": 30,
    "1h": 60, "4h": 240, "1d": 1440, "1w": 10080, "1M": 43200
}

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


def validate_timeframe(timeframe: str, raise_error: bool = True) -> bool:
    """
    Валидация таймфрейма

    Args:
        timeframe: Таймфрейм для проверки (например, "1h")
        raise_error: Вызывать исключение при ошибке

    Returns:
        True если таймфрейм валиден

    Raises:
        InvalidDataException: Если таймфрейм не поддерживается
    """
    if not isinstance(timeframe, str):
        if raise_error:
            raise InvalidDataException(f"Timeframe must be string, got {type(timeframe)}")
        return False

    if normalize_timeframe(timeframe) not in SUPPORTED_TIMEFRAMES:
        if raise_error:
            raise InvalidDataException(
                f"Unsupported timeframe: {timeframe}. "
                f"Supported: {', '.join(SUPPORTED_TIMEFRAMES.keys())}"
            )
        return False

    return True


def normalize_timeframe(timeframe: str) -> str:
    """Нормализация записи таймфрейма ("1H" -> "1h", месячный "1M" сохраняется)"""
    timeframe = timeframe.strip()
    if timeframe == "1M":
        return timeframe
    return timeframe.lower()


def normalize_symbol(symbol: str) -> str:
    """Нормализация символа инструмента ("eur/usd" -> "EURUSD")"""
    return re.sub(r'[^A-Za-z0-9]', '', symbol).upper()


def parse_timeframe_to_timedelta(timeframe: str) -> timedelta:
    """
    Конвертация таймфрейма в timedelta

    Raises:
        InvalidDataException: При некорректном таймфрейме
    """
    validate_timeframe(timeframe)
    return timedelta(minutes=SUPPORTED_TIMEFRAMES[normalize_timeframe(timeframe)])


def ensure_datetime(value: Union[datetime, pd.Timestamp, np.datetime64, str, int, float]) -> datetime:
    """
    Конвертация различных типов в datetime

    Raises:
        InvalidDataException: При ошибке конвертации
    """
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # Unix timestamp
            return datetime.fromtimestamp(value)
        return pd.Timestamp(value).to_pydatetime()
    except (ValueError, TypeError, OverflowError) as e:
        raise InvalidDataException(f"Cannot convert {value!r} to datetime", original_exception=e)


def safe_divide(
    numerator: Union[int, float],
    denominator: Union[int, float],
    default: Optional[float] = None
) -> Optional[float]:
    """
    Безопасное деление с обработкой деления на ноль и NaN

    Args:
        numerator: Числитель
        denominator: Знаменатель
        default: Значение по умолчанию при вырожденном знаменателе

    Returns:
        Результат деления или default значение
    """
    try:
        denominator = float(denominator)
        numerator = float(numerator)
    except (TypeError, ValueError):
        return default

    if denominator == 0 or not math.isfinite(denominator) or not math.isfinite(numerator):
        return default

    result = numerator / denominator
    return result if math.isfinite(result) else default


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    """Ограничение значения диапазоном [lower, upper]"""
    return max(lower, min(upper, value))


def floor_to_step(value: float, step: float) -> float:
    """
    Округление вниз до кратного шага (размер лота, шаг цены)

    Decimal используется, чтобы 0.3 / 0.1 не превращалось в 2.9999.
    """
    if step <= 0:
        return value
    step_dec = Decimal(str(step))
    steps = (Decimal(str(value)) / step_dec).to_integral_value(rounding=ROUND_FLOOR)
    return float(steps * step_dec)


def validate_ohlcv_data(df: pd.DataFrame, required_cols: Optional[List[str]] = None) -> bool:
    """
    Валидация OHLCV данных

    Args:
        df: DataFrame с данными
        required_cols: Обязательные колонки (по умолчанию OHLCV)

    Returns:
        True если данные валидны

    Raises:
        InvalidDataException: При невалидных данных
    """
    if required_cols is None:
        required_cols = OHLCV_COLUMNS

    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise InvalidDataException(f"Missing required columns: {missing_cols}")

    if df.empty:
        raise InvalidDataException("DataFrame is empty")

    for col in required_cols:
        if not pd.api.types.is_numeric_dtype(df[col]):
            raise InvalidDataException(f"Column {col} must be numeric")

    if all(col in df.columns for col in ['open', 'high', 'low', 'close']):
        if (df['high'] < df[['open', 'close']].max(axis=1)).any():
            raise InvalidDataException("High price must be >= max(open, close)")

        if (df['low'] > df[['open', 'close']].min(axis=1)).any():
            raise InvalidDataException("Low price must be <= min(open, close)")

    for col in required_cols:
        if (df[col] < 0).any():
            raise InvalidDataException(f"Column {col} contains negative values")

    return True


def last_finite(series: pd.Series, default: float = float('nan')) -> float:
    """Последнее конечное значение серии (индикаторы на прогреве дают NaN)"""
    values = series.replace([np.inf, -np.inf], np.nan).dropna()
    if values.empty:
        return default
    return float(values.iloc[-1])
