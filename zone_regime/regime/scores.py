"""
Regime sub-scores

Each regime (trending, ranging, volatile, breakout) gets a score in
[0, 100] built as a weighted sum of components that are themselves clamped
to [0, 100]. Components that cannot be computed (indicator warm-up, zero
denominators) come out NaN and are dropped; the remaining weights are
renormalized. A score with no usable component is NaN and the classifier
replaces it with the neutral 50.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ..config.engine_config import RegimeConfig
from ..utils.helpers import safe_divide, last_finite

NAN = float('nan')

TREND_COMPONENTS = ['dmi', 'slope', 'r_squared', 'macd_consistency', 'momentum', 'ema_alignment']
RANGE_COMPONENTS = ['inverse_volatility', 'containment', 'alternation', 'midline_proximity', 'midline_crossings']
VOLATILITY_COMPONENTS = ['atr_percent', 'atr_ratio', 'gap_frequency', 'candle_dispersion', 'bandwidth_percent']
BREAKOUT_COMPONENTS = ['edge_proximity', 'volume_acceleration', 'squeeze', 'rsi_signal', 'compactness']


@dataclass
class ScoreBreakdown:
    """Sub-score with its components"""
    score: float
    components: Dict[str, float] = field(default_factory=dict)

    def rounded_components(self) -> Dict[str, float]:
        return {k: (round(v, 2) if math.isfinite(v) else None) for k, v in self.components.items()}


def _component(value) -> float:
    """Clamp a raw component to [0, 100]; NaN/Inf become NaN"""
    if value is None:
        return NAN
    value = float(value)
    if not math.isfinite(value):
        return NAN
    return float(np.clip(value, 0.0, 100.0))


def weighted_score(components: Sequence[float], weights: Sequence[float]) -> float:
    """
    Weighted sum over finite components with renormalized weights

    Returns:
        Score in [0, 100] or NaN when no component is finite
    """
    pairs = [(c, w) for c, w in zip(components, weights) if math.isfinite(c) and w > 0]
    total_weight = sum(w for _, w in pairs)
    if not pairs or total_weight <= 0:
        return NAN
    return float(np.clip(sum(c * w for c, w in pairs) / total_weight, 0.0, 100.0))


def _tail(series: pd.Series, n: int) -> pd.Series:
    return series.iloc[-n:] if n < len(series) else series


def _sign_changes(values: np.ndarray) -> int:
    signs = np.sign(values)
    signs = signs[signs != 0]
    if len(signs) < 2:
        return 0
    return int(np.sum(signs[1:] != signs[:-1]))


# === Trend ===

def dmi_component(adx: float, plus_di: float, minus_di: float) -> float:
    """0.6 * ADX strength + 0.4 * directional imbalance"""
    imbalance = safe_divide(abs(plus_di - minus_di), plus_di + minus_di)
    if imbalance is None or not math.isfinite(adx):
        return NAN
    return _component(0.6 * min(adx / 50.0 * 100.0, 100.0) + 0.4 * imbalance * 100.0)


def regression(close: pd.Series, period: int):
    """Linear regression of the last `period` closes against bar index"""
    y = _tail(close, period).to_numpy(dtype=float)
    if len(y) < 3 or not np.all(np.isfinite(y)):
        return NAN, NAN
    if np.ptp(y) == 0:
        return 0.0, 0.0
    result = stats.linregress(np.arange(len(y), dtype=float), y)
    slope_pct = safe_divide(result.slope, float(np.mean(y)), NAN) * 100.0
    return slope_pct, float(result.rvalue ** 2)


def macd_consistency(histogram: pd.Series, lookback: int) -> float:
    values = _tail(histogram.dropna(), lookback).to_numpy(dtype=float)
    if len(values) == 0:
        return NAN
    positive = np.mean(values > 0)
    negative = np.mean(values < 0)
    return _component(max(positive, negative) * 100.0)


def momentum_component(close: pd.Series, period: int, scale: float) -> float:
    if len(close) <= period:
        return NAN
    roc = safe_divide(close.iloc[-1] - close.iloc[-1 - period], close.iloc[-1 - period])
    if roc is None:
        return NAN
    return _component(abs(roc) * 100.0 * scale)


def ema_alignment(close: float, fast: float, mid: float, slow: float) -> float:
    """Full stack 100, partial (close and fast EMA ordered over mid) 50, else 0"""
    if not all(math.isfinite(v) for v in (close, fast, mid, slow)):
        return NAN
    if close > fast > mid > slow or close < fast < mid < slow:
        return 100.0
    if close > fast > mid or close < fast < mid:
        return 50.0
    return 0.0


def trend_direction(slope_pct: float, plus_di: float, minus_di: float) -> int:
    """+1/-1 when the regression slope and DI balance agree (or DI unavailable), else 0"""
    if not math.isfinite(slope_pct) or slope_pct == 0:
        return 0
    direction = 1 if slope_pct > 0 else -1
    if math.isfinite(plus_di) and math.isfinite(minus_di):
        di_direction = int(np.sign(plus_di - minus_di))
        if di_direction != direction:
            return 0
    return direction


def trend_score(df: pd.DataFrame, ind: pd.DataFrame, config: RegimeConfig) -> ScoreBreakdown:
    close = df['close']
    adx = last_finite(ind['adx'])
    plus_di = last_finite(ind['plus_di'])
    minus_di = last_finite(ind['minus_di'])
    slope_pct, r_squared = regression(close, config.regression_period)

    components = {
        'dmi': dmi_component(adx, plus_di, minus_di),
        'slope': _component(abs(slope_pct) * config.slope_scale),
        'r_squared': _component(r_squared * 100.0),
        'macd_consistency': macd_consistency(ind['macd_histogram'], config.consistency_lookback),
        'momentum': momentum_component(close, config.momentum_period, config.momentum_scale),
        'ema_alignment': ema_alignment(
            float(close.iloc[-1]),
            last_finite(ind['ema_fast']),
            last_finite(ind['ema_mid']),
            last_finite(ind['ema_slow'])
        )
    }
    score = weighted_score([components[k] for k in TREND_COMPONENTS], config.trend_weights)
    return ScoreBreakdown(score, components)


# === Range ===

def containment(close: pd.Series, upper: pd.Series, lower: pd.Series, lookback: int) -> float:
    frame = pd.DataFrame({'close': close, 'upper': upper, 'lower': lower}).dropna()
    frame = _tail(frame, lookback)
    if frame.empty:
        return NAN
    inside = (frame['close'] >= frame['lower']) & (frame['close'] <= frame['upper'])
    return _component(inside.mean() * 100.0)


def alternation(close: pd.Series, lookback: int) -> float:
    """Share of consecutive moves that reverse direction"""
    diffs = _tail(close, lookback + 1).diff().dropna().to_numpy(dtype=float)
    diffs = diffs[diffs != 0]
    if len(diffs) < 2:
        return NAN
    return _component(_sign_changes(diffs) / (len(diffs) - 1) * 100.0)


def midline_proximity(close: float, middle: float, width: float) -> float:
    distance = safe_divide(abs(close - middle), width / 2.0)
    if distance is None:
        return NAN
    return _component((1.0 - min(distance, 1.0)) * 100.0)


def midline_crossings(close: pd.Series, middle: pd.Series, lookback: int) -> float:
    offset = _tail((close - middle).dropna(), lookback).to_numpy(dtype=float)
    if len(offset) < 4:
        return NAN
    expected = len(offset) / 4.0
    return _component(min(_sign_changes(offset) / expected, 1.0) * 100.0)


def range_score(df: pd.DataFrame, ind: pd.DataFrame, config: RegimeConfig) -> ScoreBreakdown:
    close = df['close']
    atr = last_finite(ind['atr'])
    width = last_finite(ind['bb_width'])
    middle = last_finite(ind['bb_middle'])

    ratio = safe_divide(atr, width)
    components = {
        'inverse_volatility': _component(100.0 * math.exp(-config.range_decay * ratio)) if ratio is not None else NAN,
        'containment': containment(close, ind['bb_upper'], ind['bb_lower'], config.containment_lookback),
        'alternation': alternation(close, config.containment_lookback),
        'midline_proximity': midline_proximity(float(close.iloc[-1]), middle, width),
        'midline_crossings': midline_crossings(close, ind['bb_middle'], config.containment_lookback)
    }
    score = weighted_score([components[k] for k in RANGE_COMPONENTS], config.range_weights)
    return ScoreBreakdown(score, components)


# === Volatility ===

def gap_frequency(df: pd.DataFrame, threshold: float) -> float:
    prev_close = df['close'].shift(1)
    gaps = ((df['open'] - prev_close).abs() / prev_close).iloc[1:]
    gaps = gaps.replace([np.inf, -np.inf], np.nan).dropna()
    if gaps.empty:
        return NAN
    return _component((gaps > threshold).mean() * 200.0)


def candle_dispersion(df: pd.DataFrame, lookback: int) -> float:
    ranges = _tail(df['high'] - df['low'], lookback).to_numpy(dtype=float)
    if len(ranges) < 2:
        return NAN
    cv = safe_divide(float(np.std(ranges)), float(np.mean(ranges)))
    if cv is None:
        return NAN
    return _component(cv * 100.0)


def volatility_score(df: pd.DataFrame, ind: pd.DataFrame, config: RegimeConfig) -> ScoreBreakdown:
    close = float(df['close'].iloc[-1])
    atr = last_finite(ind['atr'])
    atr_long = last_finite(ind['atr_long'])

    atr_pct = safe_divide(atr, close)
    atr_ratio = safe_divide(atr, atr_long)
    bandwidth_pct = safe_divide(last_finite(ind['bb_width']), last_finite(ind['bb_middle']))

    components = {
        'atr_percent': _component(atr_pct * 100.0 / config.atr_pct_ceiling * 100.0) if atr_pct is not None else NAN,
        'atr_ratio': _component((atr_ratio - 0.5) / 1.5 * 100.0) if atr_ratio is not None else NAN,
        'gap_frequency': gap_frequency(df, config.gap_threshold),
        'candle_dispersion': candle_dispersion(df, config.containment_lookback),
        'bandwidth_percent': (
            _component(bandwidth_pct * 100.0 / config.bandwidth_pct_ceiling * 100.0)
            if bandwidth_pct is not None else NAN
        )
    }
    score = weighted_score([components[k] for k in VOLATILITY_COMPONENTS], config.volatility_weights)
    return ScoreBreakdown(score, components)


# === Breakout ===

def edge_proximity(close: float, upper: float, lower: float) -> float:
    """100 at (or beyond) a band edge, 0 at the midline"""
    position = safe_divide(close - lower, upper - lower)
    if position is None:
        return NAN
    distance = float(np.clip(min(position, 1.0 - position), 0.0, 0.5))
    return _component((1.0 - 2.0 * distance) * 100.0)


def volume_acceleration(volume: pd.Series, window: int) -> float:
    if len(volume) <= window:
        return NAN
    recent = float(volume.iloc[-window:].mean())
    baseline = float(volume.iloc[:-window].mean())
    ratio = safe_divide(recent, baseline)
    if ratio is None:
        return NAN
    return _component((ratio - 1.0) * 100.0)


def squeeze_component(width: pd.Series, lookback: int) -> float:
    widths = _tail(width.dropna(), lookback)
    if widths.empty:
        return NAN
    ratio = safe_divide(float(widths.iloc[-1]), float(widths.mean()))
    if ratio is None:
        return NAN
    return _component((1.0 - ratio) * 200.0)


def rsi_signal(close: pd.Series, rsi: pd.Series, config: RegimeConfig) -> float:
    """100 when RSI is at an extreme or diverges from price, else 0"""
    frame = pd.DataFrame({'close': close, 'rsi': rsi}).dropna()
    if frame.empty:
        return NAN
    current = float(frame['rsi'].iloc[-1])
    if current >= config.rsi_overbought or current <= config.rsi_oversold:
        return 100.0

    window = _tail(frame, config.divergence_lookback)
    if len(window) < 3:
        return 0.0
    previous = window.iloc[:-1]
    last_close = float(window['close'].iloc[-1])

    bearish = last_close >= previous['close'].max() and current < previous['rsi'].max()
    bullish = last_close <= previous['close'].min() and current > previous['rsi'].min()
    return 100.0 if (bearish or bullish) else 0.0


def compactness(df: pd.DataFrame, atr: float, bars: int, multiple: float) -> float:
    recent = _tail(df, bars)
    spread = float(recent['high'].max() - recent['low'].min())
    ratio = safe_divide(spread, atr * multiple)
    if ratio is None:
        return NAN
    return _component((1.0 - ratio) * 100.0)


def breakout_score(df: pd.DataFrame, ind: pd.DataFrame, config: RegimeConfig) -> ScoreBreakdown:
    close = float(df['close'].iloc[-1])
    atr = last_finite(ind['atr'])

    components = {
        'edge_proximity': edge_proximity(close, last_finite(ind['bb_upper']), last_finite(ind['bb_lower'])),
        'volume_acceleration': volume_acceleration(df['volume'], config.volume_window),
        'squeeze': squeeze_component(ind['bb_width'], config.squeeze_lookback),
        'rsi_signal': rsi_signal(df['close'], ind['rsi'], config),
        'compactness': compactness(df, atr, config.consolidation_bars, config.compactness_atr_multiple)
    }
    raw = weighted_score([components[k] for k in BREAKOUT_COMPONENTS], config.breakout_weights)
    return ScoreBreakdown(shape_breakout(raw, config.breakout_power), components)


def shape_breakout(raw: float, power: float) -> float:
    """(score/100)^power * 100 clamped to [0, 100]; NaN becomes 50"""
    if not math.isfinite(raw):
        return 50.0
    shaped = (max(raw, 0.0) / 100.0) ** power * 100.0
    if not math.isfinite(shaped):
        return 50.0
    return float(np.clip(shaped, 0.0, 100.0))
