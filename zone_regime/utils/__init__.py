"""
Utility modules for the zone/regime engine

Logging, exception hierarchy, numeric helpers and trade metrics.
"""

from .logger import get_logger, get_session_logger, configure_logging, LoggerMixin
from .exceptions import (
    ZoneRegimeException,
    InsufficientDataException,
    InvalidDataException,
    ConfigurationException,
    ExecutionException,
    PersistenceException,
    APIException,
    create_error_response,
    log_exception
)
from .metrics import MetricResult, calculate_trade_metrics
from .helpers import (
    validate_timeframe,
    normalize_symbol,
    safe_divide,
    clamp,
    floor_to_step,
    ensure_datetime,
    validate_ohlcv_data
)

__all__ = [
    # Logging
    "get_logger",
    "get_session_logger",
    "configure_logging",
    "LoggerMixin",

    # Exceptions
    "ZoneRegimeException",
    "InsufficientDataException",
    "InvalidDataException",
    "ConfigurationException",
    "ExecutionException",
    "PersistenceException",
    "APIException",
    "create_error_response",
    "log_exception",

    # Metrics
    "MetricResult",
    "calculate_trade_metrics",

    # Helpers
    "validate_timeframe",
    "normalize_symbol",
    "safe_divide",
    "clamp",
    "floor_to_step",
    "ensure_datetime",
    "validate_ohlcv_data"
]
