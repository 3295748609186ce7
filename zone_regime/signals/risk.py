"""
Stop, target and position size calculation
"""

import math
from typing import Optional

from ..config.engine_config import RiskConfig, InstrumentConfig
from ..support_resistance.zone import Zone
from ..support_resistance.zone_store import ZoneStore
from ..utils.helpers import clamp, floor_to_step, safe_divide
from ..utils.logger import LoggerMixin
from .models import TradeDirection


class RiskManager(LoggerMixin):
    """
    Risk rules for new positions

    Stops sit beyond the entry zone by an ATR buffer, targets at the
    nearest opposing zone (or a fixed multiple of the risk), and size is
    derived from the account risk fraction and the instrument tick value.
    """

    def __init__(
        self,
        risk_config: Optional[RiskConfig] = None,
        instrument: Optional[InstrumentConfig] = None
    ):
        self.config = risk_config or RiskConfig()
        self.instrument = instrument or InstrumentConfig()

    @property
    def min_distance(self) -> float:
        """Smallest stop/target distance the broker accepts"""
        return self.instrument.min_stop_distance + self.instrument.spread

    def stop_loss(self, direction: TradeDirection, entry: float, zone: Zone, atr: float) -> float:
        """
        Zone boundary minus (long) or plus (short) the ATR buffer, pushed
        out to at least the minimum distance from entry
        """
        buffer = atr * self.config.atr_buffer_multiple if math.isfinite(atr) else 0.0
        if direction == TradeDirection.LONG:
            stop = zone.lower_bound - buffer
            return min(stop, entry - self.min_distance)
        stop = zone.upper_bound + buffer
        return max(stop, entry + self.min_distance)

    def take_profit(
        self,
        direction: TradeDirection,
        entry: float,
        stop: float,
        zones: Optional[ZoneStore] = None
    ) -> float:
        """
        Edge of the nearest opposing valid zone, otherwise entry plus
        default_reward_ratio times the risk
        """
        risk = abs(entry - stop)
        target = None

        if zones is not None:
            if direction == TradeDirection.LONG:
                opposing = zones.nearest_above(entry, support=False)
                target = opposing.lower_bound if opposing else None
            else:
                opposing = zones.nearest_below(entry, support=True)
                target = opposing.upper_bound if opposing else None

        if target is None:
            target = entry + direction.sign * risk * self.config.default_reward_ratio

        distance = max(abs(target - entry), self.min_distance)
        return entry + direction.sign * distance

    def reward_risk(self, entry: float, stop: float, target: float) -> float:
        ratio = safe_divide(abs(target - entry), abs(entry - stop))
        return ratio if ratio is not None else 0.0

    def position_size(self, entry: float, stop: float, balance: Optional[float] = None) -> float:
        """
        Lots risking risk_percent of the balance between entry and stop

        Result is floored to lot_step and clamped to [min_lot, max_lot];
        a non-finite intermediate falls back to min_lot.
        """
        instrument = self.instrument
        balance = self.config.account_balance if balance is None else balance

        risk_amount = balance * self.config.risk_percent / 100
        loss_per_lot = abs(entry - stop) / instrument.tick_size * instrument.tick_value
        size = safe_divide(risk_amount, loss_per_lot)

        if size is None:
            self.logger.warning(
                "Position size not computable, using minimum lot",
                entry=entry,
                stop=stop,
                balance=balance
            )
            return instrument.min_lot

        size = floor_to_step(size, instrument.lot_step)
        return clamp(size, instrument.min_lot, instrument.max_lot)
