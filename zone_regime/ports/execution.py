"""
Execution port

ExecutionPort is the broker contract. RetryingExecutionPort wraps any port
with a bounded retry policy for transient rejections (requotes, timeouts);
PaperExecutionPort simulates fills on bar extremes for tests and backtests.
"""

import itertools
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Any

from ..config.engine_config import ExecutionConfig, InstrumentConfig
from ..preprocessing.bars import Bar
from ..signals.models import TradeDirection
from ..utils.logger import LoggerMixin


@dataclass(frozen=True)
class ExecutionResult:
    """Broker answer to an order request"""
    accepted: bool
    fill_price: Optional[float] = None
    ticket: Optional[str] = None
    reason: str = ""

    @classmethod
    def rejected(cls, reason: str, ticket: Optional[str] = None) -> "ExecutionResult":
        return cls(accepted=False, ticket=ticket, reason=reason)


class ExecutionPort(ABC):
    """Order placement contract"""

    @abstractmethod
    def open(
        self,
        symbol: str,
        direction: TradeDirection,
        size: float,
        stop_loss: float,
        take_profit: float,
        tag: str = ""
    ) -> ExecutionResult:
        """Open a market position"""

    @abstractmethod
    def modify(self, ticket: str, stop_loss: float, take_profit: float) -> ExecutionResult:
        """Move stop loss / take profit of an open position"""

    @abstractmethod
    def close_partial(self, ticket: str, volume: float) -> ExecutionResult:
        """Close part of an open position"""


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff"""
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    retryable_reasons: Sequence[str] = ("requote", "timeout", "busy", "off_quotes", "price_changed")

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            backoff_seconds=config.backoff_seconds,
            retryable_reasons=tuple(config.retryable_reasons)
        )

    def is_retryable(self, reason: str) -> bool:
        return reason.lower() in self.retryable_reasons

    def delay(self, attempt: int) -> float:
        """Pause after the given (1-based) failed attempt"""
        return self.backoff_seconds * (2 ** (attempt - 1))


class RetryingExecutionPort(ExecutionPort, LoggerMixin):
    """
    Retries transient rejections of the wrapped port

    Only rejections whose reason is listed in the policy are retried; any
    other rejection is returned immediately.
    """

    def __init__(
        self,
        inner: ExecutionPort,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.inner = inner
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def _call(self, operation: str, func: Callable[[], ExecutionResult]) -> ExecutionResult:
        result = ExecutionResult.rejected("not_attempted")
        for attempt in range(1, self.policy.max_attempts + 1):
            result = func()
            if result.accepted or not self.policy.is_retryable(result.reason):
                return result

            if attempt < self.policy.max_attempts:
                delay = self.policy.delay(attempt)
                self.logger.warning(
                    "Transient execution rejection, retrying",
                    operation=operation,
                    reason=result.reason,
                    attempt=attempt,
                    delay_seconds=delay
                )
                self.sleep(delay)

        self.logger.error(
            "Execution retries exhausted",
            operation=operation,
            reason=result.reason,
            attempts=self.policy.max_attempts
        )
        return result

    def open(self, symbol, direction, size, stop_loss, take_profit, tag=""):
        return self._call(
            "open",
            lambda: self.inner.open(symbol, direction, size, stop_loss, take_profit, tag)
        )

    def modify(self, ticket, stop_loss, take_profit):
        return self._call("modify", lambda: self.inner.modify(ticket, stop_loss, take_profit))

    def close_partial(self, ticket, volume):
        return self._call("close_partial", lambda: self.inner.close_partial(ticket, volume))


@dataclass
class PaperPosition:
    """Position held by the paper broker"""
    ticket: str
    symbol: str
    direction: TradeDirection
    size: float
    entry_price: float
    stop_loss: float
    take_profit: float
    tag: str
    opened_at: Optional[datetime]
    realized: float = 0.0


@dataclass(frozen=True)
class ClosedTrade:
    """Paper position closed on a stop or target"""
    ticket: str
    symbol: str
    direction: TradeDirection
    entry_price: float
    exit_price: float
    profit: float
    exit_reason: str
    closed_at: Optional[datetime]
    tag: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticket': self.ticket,
            'symbol': self.symbol,
            'direction': self.direction.value,
            'entry_price': self.entry_price,
            'exit_price': self.exit_price,
            'profit': round(self.profit, 2),
            'exit_reason': self.exit_reason,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'tag': self.tag
        }


class PaperExecutionPort(ExecutionPort, LoggerMixin):
    """
    Simulated broker

    Orders fill at the close of the last bar passed to update_market().
    process_bar() closes positions whose stop or target lies inside the
    bar range; when both do, the stop is assumed to fill first.
    """

    def __init__(self, instrument: Optional[InstrumentConfig] = None):
        self.instrument = instrument or InstrumentConfig()
        self.positions: Dict[str, PaperPosition] = {}
        self.closed: List[ClosedTrade] = []
        self._last_bar: Optional[Bar] = None
        self._tickets = itertools.count(1)

    def update_market(self, bar: Bar):
        self._last_bar = bar

    def _money(self, direction: TradeDirection, entry: float, exit_price: float, volume: float) -> float:
        ticks = (exit_price - entry) * direction.sign / self.instrument.tick_size
        return ticks * self.instrument.tick_value * volume

    def open(self, symbol, direction, size, stop_loss, take_profit, tag=""):
        if self._last_bar is None:
            return ExecutionResult.rejected("no_market")
        if size <= 0:
            return ExecutionResult.rejected("invalid_volume")

        ticket = str(next(self._tickets))
        price = self._last_bar.close
        self.positions[ticket] = PaperPosition(
            ticket=ticket,
            symbol=symbol,
            direction=direction,
            size=size,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            tag=tag,
            opened_at=self._last_bar.timestamp
        )
        return ExecutionResult(accepted=True, fill_price=price, ticket=ticket)

    def modify(self, ticket, stop_loss, take_profit):
        position = self.positions.get(ticket)
        if position is None:
            return ExecutionResult.rejected("invalid_ticket", ticket)
        position.stop_loss = stop_loss
        position.take_profit = take_profit
        return ExecutionResult(accepted=True, ticket=ticket)

    def close_partial(self, ticket, volume):
        position = self.positions.get(ticket)
        if position is None:
            return ExecutionResult.rejected("invalid_ticket", ticket)
        if self._last_bar is None:
            return ExecutionResult.rejected("no_market", ticket)
        if volume <= 0 or volume >= position.size:
            return ExecutionResult.rejected("invalid_volume", ticket)

        price = self._last_bar.close
        position.realized += self._money(position.direction, position.entry_price, price, volume)
        position.size -= volume
        return ExecutionResult(accepted=True, fill_price=price, ticket=ticket)

    def process_bar(self, bar: Bar) -> List[ClosedTrade]:
        """Close positions hit by this bar and return them"""
        self._last_bar = bar
        closed = []

        for ticket, position in list(self.positions.items()):
            exit_price, reason = self._exit_for(position, bar)
            if exit_price is None:
                continue

            profit = position.realized + self._money(
                position.direction, position.entry_price, exit_price, position.size
            )
            trade = ClosedTrade(
                ticket=ticket,
                symbol=position.symbol,
                direction=position.direction,
                entry_price=position.entry_price,
                exit_price=exit_price,
                profit=profit,
                exit_reason=reason,
                closed_at=bar.timestamp,
                tag=position.tag
            )
            del self.positions[ticket]
            self.closed.append(trade)
            closed.append(trade)
            self.logger.debug(
                "Paper position closed",
                ticket=ticket,
                exit_reason=reason,
                exit_price=exit_price,
                profit=round(profit, 2)
            )

        return closed

    @staticmethod
    def _exit_for(position: PaperPosition, bar: Bar):
        if position.direction == TradeDirection.LONG:
            if bar.low <= position.stop_loss:
                return position.stop_loss, "stop_loss"
            if bar.high >= position.take_profit:
                return position.take_profit, "take_profit"
        else:
            if bar.high >= position.stop_loss:
                return position.stop_loss, "stop_loss"
            if bar.low <= position.take_profit:
                return position.take_profit, "take_profit"
        return None, ""
