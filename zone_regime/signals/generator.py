"""
Signal generator

Turns the zone set, the current regime and the latest pattern into an
entry decision. Two setups are evaluated, bounce first:

* bounce: the latest bar reaches an intact valid zone (support for longs,
  resistance for shorts) and is confirmed by a matching pattern or an RSI
  extreme while ADX shows no strong trend;
* breakout: a close beyond a zone, with the previous close on the original
  side, found within the retest window; ADX must show momentum and the
  entry is taken while the break is fresh or after a pullback retest that
  held.

Every candidate goes through the risk manager (stop, target, size) and
the reward/risk gate before it becomes a signal.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..config.engine_config import SignalConfig
from ..indicators.technical import IndicatorPort, TechnicalIndicators
from ..ports.news import NewsFilter
from ..preprocessing.bars import Bar
from ..support_resistance.zone import Zone
from ..utils.helpers import last_finite
from ..utils.logger import LoggerMixin
from .models import (
    PositionState,
    SignalContext,
    SignalDecision,
    SignalType,
    TradeDirection,
    TradeSignal
)
from .risk import RiskManager

MIN_BARS = 3


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest indicator values used by the entry rules"""
    rsi: float
    adx: float
    atr: float


@dataclass(frozen=True)
class BreakoutSetup:
    zone: Zone
    direction: TradeDirection
    age: int
    retested: bool
    volume_confirmed: bool


class SignalGenerator(LoggerMixin):
    """Rule-based bounce/breakout entry logic"""

    def __init__(
        self,
        config: Optional[SignalConfig] = None,
        risk: Optional[RiskManager] = None,
        indicators: Optional[IndicatorPort] = None,
        news: Optional[NewsFilter] = None
    ):
        self.config = config or SignalConfig()
        self.risk = risk or RiskManager()
        self.indicators = indicators or TechnicalIndicators()
        self.news = news or NewsFilter()

    def snapshot(self, ctx: SignalContext) -> IndicatorSnapshot:
        frame = ctx.frame
        return IndicatorSnapshot(
            rsi=last_finite(self.indicators.rsi(frame['close'], self.config.rsi_period)),
            adx=last_finite(self.indicators.adx(frame, self.config.adx_period)['adx']),
            atr=last_finite(self.indicators.atr(frame, self.config.atr_period))
        )

    def evaluate(self, ctx: SignalContext) -> SignalDecision:
        """
        Evaluate entry rules for the latest bar

        Returns:
            SignalDecision with a signal, a rejection (reward/risk gate) or
            the reason nothing was signalled
        """
        if ctx.position_state != PositionState.FLAT:
            return SignalDecision.no_signal(f"position open ({ctx.position_state.value})")

        if len(ctx.bars) < MIN_BARS:
            return SignalDecision.no_signal("not enough bars")

        current = ctx.current
        if self.news.is_news_window(ctx.symbol, current.timestamp):
            return SignalDecision.no_signal("news window")

        snap = self.snapshot(ctx)
        regime = ctx.regime.regime.value

        reasons = []
        decision = self._bounce(ctx, snap, regime, reasons)
        if decision is None:
            decision = self._breakout(ctx, snap, regime, reasons)
        if decision is None:
            return SignalDecision.no_signal("; ".join(reasons) or "no setup")

        if decision.has_signal:
            self.logger.info("Signal generated", symbol=ctx.symbol, **decision.signal.to_dict())
        elif decision.rejected:
            self.logger.info("Signal rejected", symbol=ctx.symbol, reason=decision.reason)
        return decision

    # === Bounce ===

    def _bounce(
        self,
        ctx: SignalContext,
        snap: IndicatorSnapshot,
        regime: str,
        reasons: List[str]
    ) -> Optional[SignalDecision]:
        if regime in self.config.bounce_blocked_regimes:
            reasons.append(f"bounce blocked in {regime} regime")
            return None

        if not math.isfinite(snap.adx) or snap.adx >= self.config.adx_strong_trend:
            reasons.append("bounce needs ADX below strong trend")
            return None

        current = ctx.current
        for direction in (TradeDirection.LONG, TradeDirection.SHORT):
            zone = self._bounce_zone(ctx, direction)
            if zone is None:
                continue

            confirmation = self._bounce_confirmation(ctx, snap, direction)
            if confirmation is None:
                reasons.append(f"{direction.value} bounce at zone not confirmed")
                continue

            return self._build(
                ctx, snap, SignalType.BOUNCE, direction, zone, regime,
                reason=f"{direction.value} bounce at {zone.level_type.value} ({confirmation})"
            )

        if not reasons:
            reasons.append(f"no zone within bounce tolerance of {current.close}")
        return None

    def _bounce_zone(self, ctx: SignalContext, direction: TradeDirection) -> Optional[Zone]:
        """Intact valid zone reached by the latest bar without closing through it"""
        bar = ctx.current
        tolerance = self.config.bounce_tolerance

        if direction == TradeDirection.LONG:
            zone = ctx.zones.nearest_zone(bar.low, support=True, intact_only=True)
            if zone and zone.distance_to(bar.low) <= tolerance and bar.close >= zone.lower_bound:
                return zone
        else:
            zone = ctx.zones.nearest_zone(bar.high, support=False, intact_only=True)
            if zone and zone.distance_to(bar.high) <= tolerance and bar.close <= zone.upper_bound:
                return zone
        return None

    def _bounce_confirmation(
        self,
        ctx: SignalContext,
        snap: IndicatorSnapshot,
        direction: TradeDirection
    ) -> Optional[str]:
        pattern = ctx.pattern
        if (pattern.detected
                and pattern.direction == direction.sign
                and pattern.reliability >= self.config.min_pattern_reliability):
            return pattern.name.value

        if math.isfinite(snap.rsi):
            if direction == TradeDirection.LONG and snap.rsi <= self.config.rsi_oversold:
                return f"RSI {snap.rsi:.1f}"
            if direction == TradeDirection.SHORT and snap.rsi >= self.config.rsi_overbought:
                return f"RSI {snap.rsi:.1f}"
        return None

    # === Breakout ===

    def _breakout(
        self,
        ctx: SignalContext,
        snap: IndicatorSnapshot,
        regime: str,
        reasons: List[str]
    ) -> Optional[SignalDecision]:
        if regime in self.config.breakout_blocked_regimes:
            reasons.append(f"breakout blocked in {regime} regime")
            return None

        setup = self.find_breakout(ctx.bars, ctx.zones.valid_zones())
        if setup is None:
            reasons.append("no breakout")
            return None

        if not math.isfinite(snap.adx) or snap.adx <= self.config.adx_momentum:
            reasons.append("breakout without ADX momentum")
            return None

        trend = ctx.regime.trend_direction
        if trend != 0 and trend != setup.direction.sign:
            reasons.append("breakout against regime trend direction")
            return None

        if not setup.volume_confirmed and self.config.require_volume_confirmation:
            reasons.append("breakout volume not confirmed")
            return None

        if setup.age > self.config.breakout_max_age and not setup.retested:
            reasons.append(f"breakout missed ({setup.age} bars ago, no retest)")
            return None

        entry_kind = "retest" if setup.age > self.config.breakout_max_age else "fresh"
        volume_note = "volume confirmed" if setup.volume_confirmed else "volume unconfirmed"
        return self._build(
            ctx, snap, SignalType.BREAKOUT, setup.direction, setup.zone, regime,
            reason=f"{setup.direction.value} {entry_kind} breakout of {setup.zone.level_type.value} ({volume_note})"
        )

    def find_breakout(self, bars: List[Bar], zones: List[Zone]) -> Optional[BreakoutSetup]:
        """
        Most recent zone break within the retest window that still holds

        A long break is a close above a resistance with the previous close
        at or below its upper bound; every close since must stay above it.
        Shorts mirror on supports.
        """
        window = min(self.config.breakout_retest_window, len(bars) - 1)
        best: Optional[BreakoutSetup] = None

        for zone in zones:
            direction = TradeDirection.SHORT if zone.is_support else TradeDirection.LONG
            index = self._break_index(bars, zone, direction, window)
            if index is None:
                continue

            age = len(bars) - 1 - index
            retested = self._retested(bars[index + 1:], zone, direction)
            setup = BreakoutSetup(
                zone=zone,
                direction=direction,
                age=age,
                retested=retested,
                volume_confirmed=self._volume_confirmed(bars, index)
            )
            if best is None or setup.age < best.age:
                best = setup

        return best

    @staticmethod
    def _beyond(bar: Bar, zone: Zone, direction: TradeDirection) -> bool:
        if direction == TradeDirection.LONG:
            return bar.close > zone.upper_bound
        return bar.close < zone.lower_bound

    def _break_index(
        self,
        bars: List[Bar],
        zone: Zone,
        direction: TradeDirection,
        window: int
    ) -> Optional[int]:
        last = len(bars) - 1
        for index in range(last, last - window, -1):
            if not self._beyond(bars[index], zone, direction):
                return None
            if not self._beyond(bars[index - 1], zone, direction):
                return index
        return None

    @staticmethod
    def _retested(after_break: List[Bar], zone: Zone, direction: TradeDirection) -> bool:
        """A bar after the break came back to the zone"""
        if direction == TradeDirection.LONG:
            return any(bar.low <= zone.upper_bound for bar in after_break)
        return any(bar.high >= zone.lower_bound for bar in after_break)

    def _volume_confirmed(self, bars: List[Bar], index: int) -> bool:
        start = max(0, index - self.config.volume_average_period)
        previous = [b.volume for b in bars[start:index]]
        if not previous:
            return False
        average = float(np.mean(previous))
        return average > 0 and bars[index].volume >= self.config.volume_factor * average

    # === Order construction ===

    def _build(
        self,
        ctx: SignalContext,
        snap: IndicatorSnapshot,
        signal_type: SignalType,
        direction: TradeDirection,
        zone: Zone,
        regime: str,
        reason: str
    ) -> SignalDecision:
        entry = ctx.current.close
        stop = self.risk.stop_loss(direction, entry, zone, snap.atr)
        target = self.risk.take_profit(direction, entry, stop, ctx.zones)
        reward_risk = self.risk.reward_risk(entry, stop, target)
        size = self.risk.position_size(entry, stop, ctx.balance)

        signal = TradeSignal(
            signal_type=signal_type,
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            size=size,
            reward_risk=reward_risk,
            zone_id=zone.zone_id,
            pattern=ctx.pattern.name.value,
            regime=regime,
            timestamp=ctx.current.timestamp,
            reason=reason
        )

        if reward_risk < self.risk.config.min_reward_risk:
            return SignalDecision.reject(
                f"reward/risk {reward_risk:.2f} below {self.risk.config.min_reward_risk}",
                signal
            )
        return SignalDecision.accept(signal)
