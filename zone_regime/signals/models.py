"""
Signal layer data types
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any

import pandas as pd

from ..patterns.models import PatternDetection
from ..preprocessing.bars import Bar
from ..regime.models import RegimeState
from ..support_resistance.zone_store import ZoneStore


class SignalType(str, Enum):
    """Entry setup"""
    BOUNCE = "bounce"
    BREAKOUT = "breakout"


class TradeDirection(str, Enum):
    """Side of a position"""
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self == TradeDirection.LONG else -1


class PositionState(str, Enum):
    """Per-symbol position state"""
    FLAT = "flat"
    BOUNCE_OPEN = "bounce_open"
    BREAKOUT_OPEN = "breakout_open"

    @classmethod
    def for_signal(cls, signal_type: SignalType) -> "PositionState":
        return cls.BOUNCE_OPEN if signal_type == SignalType.BOUNCE else cls.BREAKOUT_OPEN


@dataclass(frozen=True)
class TradeSignal:
    """Fully specified entry order"""
    signal_type: SignalType
    direction: TradeDirection
    entry_price: float
    stop_loss: float
    take_profit: float
    size: float
    reward_risk: float
    zone_id: Optional[str]
    pattern: str
    regime: str
    timestamp: Optional[datetime]
    reason: str = ""

    @property
    def risk_distance(self) -> float:
        return abs(self.entry_price - self.stop_loss)

    @property
    def tag(self) -> str:
        """Order comment passed to the execution port"""
        return f"{self.signal_type.value}:{self.direction.value}:{self.regime}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'signal_type': self.signal_type.value,
            'direction': self.direction.value,
            'entry_price': self.entry_price,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'size': self.size,
            'reward_risk': round(self.reward_risk, 3),
            'zone_id': self.zone_id,
            'pattern': self.pattern,
            'regime': self.regime,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'reason': self.reason
        }


@dataclass(frozen=True)
class SignalDecision:
    """Outcome of one evaluation: a signal, a rejection or nothing"""
    signal: Optional[TradeSignal] = None
    rejected: bool = False
    reason: str = ""

    @classmethod
    def no_signal(cls, reason: str) -> "SignalDecision":
        return cls(signal=None, rejected=False, reason=reason)

    @classmethod
    def reject(cls, reason: str, signal: Optional[TradeSignal] = None) -> "SignalDecision":
        return cls(signal=signal, rejected=True, reason=reason)

    @classmethod
    def accept(cls, signal: TradeSignal) -> "SignalDecision":
        return cls(signal=signal, rejected=False, reason=signal.reason)

    @property
    def has_signal(self) -> bool:
        return self.signal is not None and not self.rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            'has_signal': self.has_signal,
            'rejected': self.rejected,
            'reason': self.reason,
            'signal': self.signal.to_dict() if self.signal else None
        }


@dataclass(frozen=True)
class TradeResult:
    """Outcome of sending a signal to the execution port"""
    success: bool
    reason: str = ""
    ticket: Optional[str] = None
    fill_price: Optional[float] = None
    signal: Optional[TradeSignal] = None

    @classmethod
    def failed(cls, reason: str, signal: Optional[TradeSignal] = None) -> "TradeResult":
        return cls(success=False, reason=reason, signal=signal)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'reason': self.reason,
            'ticket': self.ticket,
            'fill_price': self.fill_price,
            'signal': self.signal.to_dict() if self.signal else None
        }


@dataclass
class Position:
    """Open position tracked by the session"""
    ticket: str
    symbol: str
    signal_type: SignalType
    direction: TradeDirection
    entry_price: float
    stop_loss: float
    take_profit: float
    size: float
    regime: str
    opened_at: Optional[datetime]
    initial_risk: float
    remaining_size: float
    breakeven_done: bool = False
    partial_done: bool = False

    @classmethod
    def from_signal(
        cls,
        signal: TradeSignal,
        ticket: str,
        symbol: str,
        fill_price: Optional[float] = None
    ) -> "Position":
        entry = fill_price if fill_price is not None else signal.entry_price
        return cls(
            ticket=ticket,
            symbol=symbol,
            signal_type=signal.signal_type,
            direction=signal.direction,
            entry_price=entry,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            size=signal.size,
            regime=signal.regime,
            opened_at=signal.timestamp,
            initial_risk=abs(entry - signal.stop_loss),
            remaining_size=signal.size
        )

    def favourable_move(self, price: float) -> float:
        return (price - self.entry_price) * self.direction.sign

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticket': self.ticket,
            'symbol': self.symbol,
            'signal_type': self.signal_type.value,
            'direction': self.direction.value,
            'entry_price': self.entry_price,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'size': self.size,
            'remaining_size': self.remaining_size,
            'regime': self.regime,
            'opened_at': self.opened_at.isoformat() if self.opened_at else None,
            'breakeven_done': self.breakeven_done,
            'partial_done': self.partial_done
        }


@dataclass
class SignalContext:
    """Everything the generator reads for one evaluation (read only)"""
    symbol: str
    bars: List[Bar]
    frame: pd.DataFrame
    zones: ZoneStore
    regime: RegimeState
    pattern: PatternDetection
    position_state: PositionState = PositionState.FLAT
    balance: Optional[float] = None

    @property
    def current(self) -> Bar:
        return self.bars[-1]
