"""
Open position management

Moves the stop to break-even and takes partial profit once price has
travelled a configured multiple of the initial risk. Each action happens at
most once per position.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..config.engine_config import RiskConfig, InstrumentConfig
from ..preprocessing.bars import Bar
from ..utils.helpers import floor_to_step
from ..utils.logger import LoggerMixin
from .models import Position, TradeDirection


class PositionAction(str, Enum):
    MODIFY = "modify"
    CLOSE_PARTIAL = "close_partial"


@dataclass(frozen=True)
class PositionCommand:
    """Instruction for the execution port"""
    action: PositionAction
    ticket: str
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    volume: Optional[float] = None


class PositionManager(LoggerMixin):
    """Break-even and partial-close rules"""

    def __init__(
        self,
        risk_config: Optional[RiskConfig] = None,
        instrument: Optional[InstrumentConfig] = None
    ):
        self.config = risk_config or RiskConfig()
        self.instrument = instrument or InstrumentConfig()

    def manage(self, position: Position, bar: Bar) -> List[PositionCommand]:
        """
        Commands due for a position after a closed bar

        Progress is measured on the bar close in units of the initial risk.
        """
        commands: List[PositionCommand] = []
        if position.initial_risk <= 0:
            return commands

        progress = position.favourable_move(bar.close) / position.initial_risk

        breakeven_at = self.config.breakeven_at_r
        if breakeven_at is not None and not position.breakeven_done and progress >= breakeven_at:
            if self._stop_behind_entry(position):
                commands.append(PositionCommand(
                    action=PositionAction.MODIFY,
                    ticket=position.ticket,
                    stop_loss=position.entry_price,
                    take_profit=position.take_profit
                ))
            else:
                position.breakeven_done = True

        partial_at = self.config.partial_close_at_r
        if partial_at is not None and not position.partial_done and progress >= partial_at:
            volume = floor_to_step(position.remaining_size * self.config.partial_close_fraction,
                                   self.instrument.lot_step)
            if volume >= self.instrument.min_lot and position.remaining_size - volume >= self.instrument.min_lot:
                commands.append(PositionCommand(
                    action=PositionAction.CLOSE_PARTIAL,
                    ticket=position.ticket,
                    volume=volume
                ))
            else:
                self.logger.debug(
                    "Partial close skipped, position too small",
                    ticket=position.ticket,
                    remaining=position.remaining_size
                )
                position.partial_done = True

        return commands

    def apply(self, position: Position, commands: List[PositionCommand], execution) -> int:
        """
        Send commands through the execution port and record accepted ones

        Returns:
            Number of accepted commands
        """
        accepted = 0
        for command in commands:
            if command.action == PositionAction.MODIFY:
                result = execution.modify(command.ticket, command.stop_loss, command.take_profit)
                if result.accepted:
                    position.stop_loss = command.stop_loss
                    position.breakeven_done = True
            else:
                result = execution.close_partial(command.ticket, command.volume)
                if result.accepted:
                    position.remaining_size -= command.volume
                    position.partial_done = True

            if result.accepted:
                accepted += 1
                self.logger.info(
                    "Position adjusted",
                    ticket=command.ticket,
                    action=command.action.value,
                    stop_loss=command.stop_loss,
                    volume=command.volume
                )
            else:
                self.logger.warning(
                    "Position adjustment rejected",
                    ticket=command.ticket,
                    action=command.action.value,
                    reason=result.reason
                )
        return accepted

    @staticmethod
    def _stop_behind_entry(position: Position) -> bool:
        if position.direction == TradeDirection.LONG:
            return position.stop_loss < position.entry_price
        return position.stop_loss > position.entry_price
