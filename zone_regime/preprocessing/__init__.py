"""
Bar model and OHLCV frame preparation.
"""

from .bars import Bar, prepare_ohlcv_frame, bars_from_frame, bars_to_frame, average_volume

__all__ = [
    "Bar",
    "prepare_ohlcv_frame",
    "bars_from_frame",
    "bars_to_frame",
    "average_volume"
]
