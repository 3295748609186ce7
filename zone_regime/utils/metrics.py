"""
Trade metrics for performance tracking and backtests.

Win rate, profit factor, expectancy and drawdown computed from a sequence of
realized trade results, reported as MetricResult records with thresholds.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Any, Sequence

import numpy as np

from .logger import get_logger
from .helpers import safe_divide

logger = get_logger(__name__)


class MetricType(str, Enum):
    """Типы торговых метрик"""
    RETURN = "return"
    QUALITY = "quality"
    RISK = "risk"


@dataclass
class MetricResult:
    """
    Результат вычисления метрики
    """
    name: str
    value: float
    metric_type: MetricType
    description: str
    is_percentage: bool = False
    higher_is_better: bool = True
    threshold_warning: Optional[float] = None
    threshold_critical: Optional[float] = None

    @property
    def status(self) -> str:
        """Статус метрики на основе порогов"""
        if self.threshold_critical is not None:
            if (self.higher_is_better and self.value < self.threshold_critical) or \
               (not self.higher_is_better and self.value > self.threshold_critical):
                return "critical"

        if self.threshold_warning is not None:
            if (self.higher_is_better and self.value < self.threshold_warning) or \
               (not self.higher_is_better and self.value > self.threshold_warning):
                return "warning"

        return "good"

    def to_dict(self) -> Dict[str, Any]:
        """Конвертация в словарь для сериализации"""
        return {
            "name": self.name,
            "value": self.value,
            "metric_type": self.metric_type.value,
            "description": self.description,
            "is_percentage": self.is_percentage,
            "higher_is_better": self.higher_is_better,
            "status": self.status,
        }


def win_rate(profits: Sequence[float]) -> float:
    """Доля прибыльных сделок в процентах"""
    if not profits:
        return 0.0
    wins = sum(1 for p in profits if p > 0)
    return wins / len(profits) * 100


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """
    Отношение валовой прибыли к валовому убытку

    gross_loss передается положительным числом. Без убыточных сделок
    возвращается gross_profit (0 при отсутствии сделок), чтобы значение
    оставалось конечным для JSON.
    """
    if gross_loss <= 0:
        return float(gross_profit) if gross_profit > 0 else 0.0
    return gross_profit / gross_loss


def expectancy(profits: Sequence[float]) -> float:
    """Средний результат сделки"""
    if not profits:
        return 0.0
    return float(np.mean(profits))


def max_drawdown(profits: Sequence[float], starting_balance: float = 0.0) -> float:
    """Максимальная просадка кривой капитала в денежном выражении"""
    if not profits:
        return 0.0
    equity = starting_balance + np.cumsum(np.asarray(profits, dtype=float))
    equity = np.concatenate([[starting_balance], equity])
    running_max = np.maximum.accumulate(equity)
    return float(np.max(running_max - equity))


def calculate_trade_metrics(
    profits: Sequence[float],
    starting_balance: float = 0.0
) -> Dict[str, MetricResult]:
    """
    Вычисление всех торговых метрик по списку результатов сделок

    Args:
        profits: Результаты закрытых сделок (прибыль > 0, убыток < 0)
        starting_balance: Начальный баланс для относительной просадки

    Returns:
        Словарь с метриками
    """
    profits = [float(p) for p in profits]
    gross_profit = sum(p for p in profits if p > 0)
    gross_loss = -sum(p for p in profits if p < 0)
    drawdown = max_drawdown(profits, starting_balance)

    metrics = {
        "trades": MetricResult(
            name="Trades",
            value=float(len(profits)),
            metric_type=MetricType.QUALITY,
            description="Number of closed trades"
        ),
        "win_rate": MetricResult(
            name="Win Rate",
            value=win_rate(profits),
            metric_type=MetricType.QUALITY,
            description="Share of profitable trades",
            is_percentage=True,
            threshold_warning=45.0,
            threshold_critical=35.0
        ),
        "profit_factor": MetricResult(
            name="Profit Factor",
            value=profit_factor(gross_profit, gross_loss),
            metric_type=MetricType.QUALITY,
            description="Gross profit divided by gross loss",
            threshold_warning=1.2,
            threshold_critical=1.0
        ),
        "expectancy": MetricResult(
            name="Expectancy",
            value=expectancy(profits),
            metric_type=MetricType.RETURN,
            description="Average result per trade"
        ),
        "net_profit": MetricResult(
            name="Net Profit",
            value=gross_profit - gross_loss,
            metric_type=MetricType.RETURN,
            description="Sum of all trade results"
        ),
        "max_drawdown": MetricResult(
            name="Maximum Drawdown",
            value=drawdown,
            metric_type=MetricType.RISK,
            description="Largest peak-to-trough decline of the equity curve",
            higher_is_better=False
        ),
    }

    if starting_balance > 0:
        metrics["max_drawdown_pct"] = MetricResult(
            name="Maximum Drawdown %",
            value=(safe_divide(drawdown, starting_balance, 0.0) or 0.0) * 100,
            metric_type=MetricType.RISK,
            description="Largest drawdown relative to the starting balance",
            is_percentage=True,
            higher_is_better=False,
            threshold_warning=10.0,
            threshold_critical=20.0
        )

    return metrics


def metrics_summary(metrics: Dict[str, MetricResult]) -> Dict[str, float]:
    """Плоский словарь значений для логов и API"""
    return {key: round(result.value, 6) for key, result in metrics.items()}


def metrics_warnings(metrics: Dict[str, MetricResult]) -> List[str]:
    """Метрики со статусом warning/critical"""
    return [
        f"{result.name}: {result.status}"
        for result in metrics.values()
        if result.status != "good"
    ]
