"""
Market regime classifier

Scores the last `lookback` bars for four regimes and resolves the winner:
the top score must clear its floor and beat the runner-up by
`dominance_margin`, otherwise a fallback ladder applies (volatile if the
volatility score is high, else trending vs ranging by score).
"""

import math
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..config.engine_config import RegimeConfig
from ..indicators.technical import IndicatorPort, TechnicalIndicators
from ..utils.helpers import last_finite
from ..utils.logger import LoggerMixin, timed_operation
from .models import MarketRegime, RegimeState, ResolutionMethod, NEUTRAL_SCORE
from . import scores

# Order also breaks ties between equal top scores
REGIME_ORDER: List[MarketRegime] = [
    MarketRegime.TRENDING,
    MarketRegime.RANGING,
    MarketRegime.VOLATILE,
    MarketRegime.BREAKOUT
]


class RegimeClassifier(LoggerMixin):
    """
    Multi-factor regime classifier

    Indicators come from the injected indicator port; the classifier itself
    holds no state between calls, so identical windows give identical
    results.
    """

    def __init__(
        self,
        config: Optional[RegimeConfig] = None,
        indicators: Optional[IndicatorPort] = None
    ):
        self.config = config or RegimeConfig()
        self.indicators = indicators or TechnicalIndicators()

    @property
    def floors(self) -> Dict[MarketRegime, float]:
        return {
            MarketRegime.TRENDING: self.config.trending_floor,
            MarketRegime.RANGING: self.config.ranging_floor,
            MarketRegime.VOLATILE: self.config.volatile_floor,
            MarketRegime.BREAKOUT: self.config.breakout_floor
        }

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        """All indicator series needed by the sub-scores, aligned to df"""
        cfg = self.config
        close = df['close']

        adx = self.indicators.adx(df, cfg.adx_period)
        macd = self.indicators.macd(close, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
        bands = self.indicators.bollinger(close, cfg.bb_period, cfg.bb_std)

        return pd.DataFrame({
            'atr': self.indicators.atr(df, cfg.atr_period),
            'atr_long': self.indicators.atr(df, cfg.atr_long_period),
            'adx': adx['adx'],
            'plus_di': adx['plus_di'],
            'minus_di': adx['minus_di'],
            'macd_histogram': macd['histogram'],
            'rsi': self.indicators.rsi(close, cfg.rsi_period),
            'bb_upper': bands['upper'],
            'bb_middle': bands['middle'],
            'bb_lower': bands['lower'],
            'bb_width': bands['width'],
            'ema_fast': self.indicators.ema(close, cfg.ema_fast),
            'ema_mid': self.indicators.ema(close, cfg.ema_mid),
            'ema_slow': self.indicators.ema(close, cfg.ema_slow)
        }, index=df.index)

    @timed_operation("regime_classification")
    def classify(self, window: pd.DataFrame) -> RegimeState:
        """
        Classify the regime of an oldest-first bar window

        Args:
            window: Frame with open, high, low, close, volume (timestamp optional)

        Returns:
            RegimeState; Neutral when fewer than min_bars bars are available
        """
        df = window.tail(self.config.lookback).reset_index(drop=True)
        computed_at = self._last_timestamp(df)

        if len(df) < self.config.min_bars:
            self.logger.warning(
                "Insufficient bars for regime classification",
                bars=len(df),
                required=self.config.min_bars
            )
            return RegimeState.neutral(computed_at)

        ind = self.compute_indicators(df)

        trend = scores.trend_score(df, ind, self.config)
        ranging = scores.range_score(df, ind, self.config)
        volatility = scores.volatility_score(df, ind, self.config)
        breakout = scores.breakout_score(df, ind, self.config)

        score_map = {
            MarketRegime.TRENDING: self._neutralize(trend.score, 'trend'),
            MarketRegime.RANGING: self._neutralize(ranging.score, 'range'),
            MarketRegime.VOLATILE: self._neutralize(volatility.score, 'volatility'),
            MarketRegime.BREAKOUT: breakout.score
        }

        regime, method = self.resolve(score_map)

        slope_pct, _ = scores.regression(df['close'], self.config.regression_period)
        direction = scores.trend_direction(
            slope_pct,
            last_finite(ind['plus_di']),
            last_finite(ind['minus_di'])
        )

        state = RegimeState(
            regime=regime,
            trend_score=score_map[MarketRegime.TRENDING],
            range_score=score_map[MarketRegime.RANGING],
            volatility_score=score_map[MarketRegime.VOLATILE],
            breakout_score=score_map[MarketRegime.BREAKOUT],
            trend_direction=direction,
            resolved_by=method,
            computed_at=computed_at,
            components={
                'trend': trend.rounded_components(),
                'range': ranging.rounded_components(),
                'volatility': volatility.rounded_components(),
                'breakout': breakout.rounded_components()
            }
        )

        self.logger.debug(
            "Regime classified",
            regime=regime.value,
            resolved_by=method.value,
            trend=round(state.trend_score, 1),
            range=round(state.range_score, 1),
            volatility=round(state.volatility_score, 1),
            breakout=round(state.breakout_score, 1)
        )
        return state

    def resolve(self, score_map: Dict[MarketRegime, float]) -> Tuple[MarketRegime, ResolutionMethod]:
        """
        Pick the regime from sub-scores

        The top score wins only if it exceeds its floor and leads the
        runner-up by at least dominance_margin. Ties at the top go to the
        earlier regime in REGIME_ORDER.
        """
        ranked = sorted(REGIME_ORDER, key=lambda r: -score_map[r])
        top, runner_up = ranked[0], ranked[1]
        top_score = score_map[top]

        if (top_score > self.floors[top]
                and top_score - score_map[runner_up] >= self.config.dominance_margin):
            return top, ResolutionMethod.DOMINANCE

        if score_map[MarketRegime.VOLATILE] > self.config.fallback_volatility:
            return MarketRegime.VOLATILE, ResolutionMethod.FALLBACK
        if score_map[MarketRegime.TRENDING] > score_map[MarketRegime.RANGING]:
            return MarketRegime.TRENDING, ResolutionMethod.FALLBACK
        return MarketRegime.RANGING, ResolutionMethod.FALLBACK

    def _neutralize(self, value: float, name: str) -> float:
        if math.isfinite(value):
            return value
        self.logger.warning("Regime sub-score not computable, using neutral value", score=name)
        return NEUTRAL_SCORE

    @staticmethod
    def _last_timestamp(df: pd.DataFrame) -> Optional[datetime]:
        if df.empty or 'timestamp' not in df.columns:
            return None
        return pd.Timestamp(df['timestamp'].iloc[-1]).to_pydatetime()
