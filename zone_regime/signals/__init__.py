"""
Signal and decision layer
"""

from .models import (
    SignalType,
    TradeDirection,
    PositionState,
    TradeSignal,
    SignalDecision,
    TradeResult,
    Position,
    SignalContext
)
from .performance import RegimeStats, PerformanceRecord
from .risk import RiskManager
from .position_manager import PositionManager, PositionCommand, PositionAction
from .generator import SignalGenerator

__all__ = [
    "SignalType",
    "TradeDirection",
    "PositionState",
    "TradeSignal",
    "SignalDecision",
    "TradeResult",
    "Position",
    "SignalContext",
    "RegimeStats",
    "PerformanceRecord",
    "RiskManager",
    "PositionManager",
    "PositionCommand",
    "PositionAction",
    "SignalGenerator"
]
