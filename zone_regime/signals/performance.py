"""
Per-symbol performance record

Aggregates realized trade results overall and per market regime. The
session updates it on every close and persists it through the
persistence port.
"""

from dataclasses import dataclass, field
from typing import Dict, Any

from ..utils.metrics import profit_factor


@dataclass
class RegimeStats:
    """Trade statistics for one bucket (a regime or the whole record)"""
    trades: int = 0
    wins: int = 0
    losses: int = 0
    gross_profit: float = 0.0
    gross_loss: float = 0.0

    def record(self, profit: float):
        self.trades += 1
        if profit > 0:
            self.wins += 1
            self.gross_profit += profit
        elif profit < 0:
            self.losses += 1
            self.gross_loss += -profit

    @property
    def net_profit(self) -> float:
        return self.gross_profit - self.gross_loss

    @property
    def win_rate(self) -> float:
        """Процент прибыльных сделок"""
        return self.wins / self.trades * 100 if self.trades else 0.0

    @property
    def profit_factor(self) -> float:
        return profit_factor(self.gross_profit, self.gross_loss)

    @property
    def expectancy(self) -> float:
        """Средний результат сделки"""
        return self.net_profit / self.trades if self.trades else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trades': self.trades,
            'wins': self.wins,
            'losses': self.losses,
            'gross_profit': self.gross_profit,
            'gross_loss': self.gross_loss,
            'win_rate': round(self.win_rate, 2),
            'profit_factor': round(self.profit_factor, 4),
            'expectancy': round(self.expectancy, 4)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegimeStats":
        return cls(
            trades=int(data.get('trades', 0)),
            wins=int(data.get('wins', 0)),
            losses=int(data.get('losses', 0)),
            gross_profit=float(data.get('gross_profit', 0.0)),
            gross_loss=float(data.get('gross_loss', 0.0))
        )


@dataclass
class PerformanceRecord:
    """Realized performance of one symbol"""
    symbol: str
    totals: RegimeStats = field(default_factory=RegimeStats)
    by_regime: Dict[str, RegimeStats] = field(default_factory=dict)

    @property
    def trades(self) -> int:
        return self.totals.trades

    @property
    def wins(self) -> int:
        return self.totals.wins

    @property
    def losses(self) -> int:
        return self.totals.losses

    @property
    def gross_profit(self) -> float:
        return self.totals.gross_profit

    @property
    def gross_loss(self) -> float:
        return self.totals.gross_loss

    @property
    def win_rate(self) -> float:
        return self.totals.win_rate

    @property
    def profit_factor(self) -> float:
        return self.totals.profit_factor

    @property
    def expectancy(self) -> float:
        return self.totals.expectancy

    def record_trade(self, profit: float, regime: str):
        """Учесть закрытую сделку в общей и режимной статистике"""
        self.totals.record(profit)
        self.by_regime.setdefault(regime, RegimeStats()).record(profit)

    def regime_stats(self, regime: str) -> RegimeStats:
        return self.by_regime.get(regime, RegimeStats())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            **self.totals.to_dict(),
            'by_regime': {name: stats.to_dict() for name, stats in self.by_regime.items()}
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PerformanceRecord":
        """
        Restore from to_dict() output

        Raises:
            KeyError, TypeError, ValueError: malformed payload
        """
        return cls(
            symbol=str(data['symbol']),
            totals=RegimeStats.from_dict(data),
            by_regime={
                str(name): RegimeStats.from_dict(stats)
                for name, stats in data.get('by_regime', {}).items()
            }
        )
