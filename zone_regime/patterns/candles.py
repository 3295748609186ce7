"""
Candlestick pattern rules

Each rule looks at the last bar of an oldest-first sequence (plus up to two
bars before it) and answers whether the pattern completes on that bar.
BULLISH_RULES and BEARISH_RULES list the rules in evaluation priority,
single-candle patterns first, with the reliability bonus of each pattern.
"""

from typing import Callable, List, Sequence, Tuple

from ..config.engine_config import PatternConfig
from ..preprocessing.bars import Bar
from .models import PatternName

Rule = Callable[[Sequence[Bar], PatternConfig], bool]


# === Geometry ===

def upper_wick(bar: Bar) -> float:
    return bar.high - max(bar.open, bar.close)


def lower_wick(bar: Bar) -> float:
    return min(bar.open, bar.close) - bar.low


def body_ratio(bar: Bar) -> float:
    return bar.body / bar.range if bar.range > 0 else 0.0


def body_mid(bar: Bar) -> float:
    return (bar.open + bar.close) / 2


def prior_decline(bars: Sequence[Bar], lookback: int) -> bool:
    """Closes fell into the bar before the signal candle"""
    if len(bars) < 3:
        return False
    start = max(0, len(bars) - 2 - lookback)
    return bars[-2].close < bars[start].close


def prior_rise(bars: Sequence[Bar], lookback: int) -> bool:
    if len(bars) < 3:
        return False
    start = max(0, len(bars) - 2 - lookback)
    return bars[-2].close > bars[start].close


def _is_long(bar: Bar, cfg: PatternConfig) -> bool:
    return body_ratio(bar) >= cfg.long_body_ratio


def _is_doji(bar: Bar, cfg: PatternConfig) -> bool:
    return bar.range > 0 and body_ratio(bar) <= cfg.doji_body_ratio


def _lower_shadow_candle(bar: Bar, cfg: PatternConfig) -> bool:
    """Small body on top, long lower wick"""
    return (
        bar.range > 0
        and body_ratio(bar) > cfg.doji_body_ratio
        and lower_wick(bar) >= cfg.wick_body_multiple * bar.body
        and upper_wick(bar) <= cfg.small_wick_ratio * bar.range
    )


def _upper_shadow_candle(bar: Bar, cfg: PatternConfig) -> bool:
    """Small body at the bottom, long upper wick"""
    return (
        bar.range > 0
        and body_ratio(bar) > cfg.doji_body_ratio
        and upper_wick(bar) >= cfg.wick_body_multiple * bar.body
        and lower_wick(bar) <= cfg.small_wick_ratio * bar.range
    )


# === Bullish ===

def hammer(bars, cfg):
    return _lower_shadow_candle(bars[-1], cfg) and prior_decline(bars, cfg.trend_lookback)


def inverted_hammer(bars, cfg):
    return _upper_shadow_candle(bars[-1], cfg) and prior_decline(bars, cfg.trend_lookback)


def bullish_marubozu(bars, cfg):
    bar = bars[-1]
    return bar.is_bullish and body_ratio(bar) >= cfg.marubozu_body_ratio


def dragonfly_doji(bars, cfg):
    bar = bars[-1]
    return (
        _is_doji(bar, cfg)
        and upper_wick(bar) <= cfg.small_wick_ratio * bar.range
        and lower_wick(bar) >= cfg.long_body_ratio * bar.range
    )


def bullish_belt_hold(bars, cfg):
    bar = bars[-1]
    return (
        bar.is_bullish
        and _is_long(bar, cfg)
        and bar.open - bar.low <= cfg.small_wick_ratio * bar.range
        and prior_decline(bars, cfg.trend_lookback)
    )


def bullish_engulfing(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bearish and cur.is_bullish
        and cur.open <= prev.close
        and cur.close >= prev.open
        and cur.body > prev.body
    )


def piercing_line(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bearish and _is_long(prev, cfg)
        and cur.is_bullish
        and cur.open < prev.close
        and body_mid(prev) < cur.close < prev.open
    )


def bullish_harami(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bearish and _is_long(prev, cfg)
        and cur.is_bullish
        and cur.open > prev.close
        and cur.close < prev.open
    )


def _tweezer_tolerance(prev: Bar, cur: Bar, cfg: PatternConfig) -> float:
    return cfg.tweezer_tolerance_ratio * (prev.range + cur.range) / 2


def tweezer_bottom(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bearish and cur.is_bullish
        and abs(cur.low - prev.low) <= _tweezer_tolerance(prev, cur, cfg)
    )


def bullish_kicker(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bearish and cur.is_bullish
        and cur.open > prev.open
        and _is_long(cur, cfg)
    )


def _morning_base(bars, cfg) -> bool:
    first, star, last = bars[-3], bars[-2], bars[-1]
    return (
        first.is_bearish and _is_long(first, cfg)
        and max(star.open, star.close) <= first.close
        and last.is_bullish
        and last.close > body_mid(first)
    )


def morning_doji_star(bars, cfg):
    return _morning_base(bars, cfg) and _is_doji(bars[-2], cfg)


def morning_star(bars, cfg):
    return _morning_base(bars, cfg) and bars[-2].body < cfg.star_body_ratio * bars[-3].body


def three_white_soldiers(bars, cfg):
    first, second, third = bars[-3], bars[-2], bars[-1]
    for prev, cur in ((first, second), (second, third)):
        if not (cur.close > prev.close and prev.open < cur.open <= prev.close):
            return False
    return all(b.is_bullish and _is_long(b, cfg) for b in (first, second, third))


# === Bearish ===

def shooting_star(bars, cfg):
    return _upper_shadow_candle(bars[-1], cfg) and prior_rise(bars, cfg.trend_lookback)


def hanging_man(bars, cfg):
    return _lower_shadow_candle(bars[-1], cfg) and prior_rise(bars, cfg.trend_lookback)


def bearish_marubozu(bars, cfg):
    bar = bars[-1]
    return bar.is_bearish and body_ratio(bar) >= cfg.marubozu_body_ratio


def gravestone_doji(bars, cfg):
    bar = bars[-1]
    return (
        _is_doji(bar, cfg)
        and lower_wick(bar) <= cfg.small_wick_ratio * bar.range
        and upper_wick(bar) >= cfg.long_body_ratio * bar.range
    )


def bearish_belt_hold(bars, cfg):
    bar = bars[-1]
    return (
        bar.is_bearish
        and _is_long(bar, cfg)
        and bar.high - bar.open <= cfg.small_wick_ratio * bar.range
        and prior_rise(bars, cfg.trend_lookback)
    )


def bearish_engulfing(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bullish and cur.is_bearish
        and cur.open >= prev.close
        and cur.close <= prev.open
        and cur.body > prev.body
    )


def dark_cloud_cover(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bullish and _is_long(prev, cfg)
        and cur.is_bearish
        and cur.open > prev.close
        and prev.open < cur.close < body_mid(prev)
    )


def bearish_harami(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bullish and _is_long(prev, cfg)
        and cur.is_bearish
        and cur.open < prev.close
        and cur.close > prev.open
    )


def tweezer_top(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bullish and cur.is_bearish
        and abs(cur.high - prev.high) <= _tweezer_tolerance(prev, cur, cfg)
    )


def bearish_kicker(bars, cfg):
    prev, cur = bars[-2], bars[-1]
    return (
        prev.is_bullish and cur.is_bearish
        and cur.open < prev.open
        and _is_long(cur, cfg)
    )


def _evening_base(bars, cfg) -> bool:
    first, star, last = bars[-3], bars[-2], bars[-1]
    return (
        first.is_bullish and _is_long(first, cfg)
        and min(star.open, star.close) >= first.close
        and last.is_bearish
        and last.close < body_mid(first)
    )


def evening_doji_star(bars, cfg):
    return _evening_base(bars, cfg) and _is_doji(bars[-2], cfg)


def evening_star(bars, cfg):
    return _evening_base(bars, cfg) and bars[-2].body < cfg.star_body_ratio * bars[-3].body


def three_black_crows(bars, cfg):
    first, second, third = bars[-3], bars[-2], bars[-1]
    for prev, cur in ((first, second), (second, third)):
        if not (cur.close < prev.close and prev.close <= cur.open < prev.open):
            return False
    return all(b.is_bearish and _is_long(b, cfg) for b in (first, second, third))


# (pattern, rule, reliability bonus) in evaluation priority
BULLISH_RULES: List[Tuple[PatternName, Rule, float]] = [
    (PatternName.HAMMER, hammer, 1.0),
    (PatternName.INVERTED_HAMMER, inverted_hammer, 0.5),
    (PatternName.BULLISH_MARUBOZU, bullish_marubozu, 1.0),
    (PatternName.DRAGONFLY_DOJI, dragonfly_doji, 0.5),
    (PatternName.BULLISH_BELT_HOLD, bullish_belt_hold, 0.5),
    (PatternName.BULLISH_ENGULFING, bullish_engulfing, 2.0),
    (PatternName.PIERCING_LINE, piercing_line, 1.5),
    (PatternName.BULLISH_HARAMI, bullish_harami, 0.5),
    (PatternName.TWEEZER_BOTTOM, tweezer_bottom, 1.0),
    (PatternName.BULLISH_KICKER, bullish_kicker, 2.5),
    (PatternName.MORNING_DOJI_STAR, morning_doji_star, 2.5),
    (PatternName.MORNING_STAR, morning_star, 2.0),
    (PatternName.THREE_WHITE_SOLDIERS, three_white_soldiers, 2.5),
]

BEARISH_RULES: List[Tuple[PatternName, Rule, float]] = [
    (PatternName.SHOOTING_STAR, shooting_star, 1.0),
    (PatternName.HANGING_MAN, hanging_man, 0.5),
    (PatternName.BEARISH_MARUBOZU, bearish_marubozu, 1.0),
    (PatternName.GRAVESTONE_DOJI, gravestone_doji, 0.5),
    (PatternName.BEARISH_BELT_HOLD, bearish_belt_hold, 0.5),
    (PatternName.BEARISH_ENGULFING, bearish_engulfing, 2.0),
    (PatternName.DARK_CLOUD_COVER, dark_cloud_cover, 1.5),
    (PatternName.BEARISH_HARAMI, bearish_harami, 0.5),
    (PatternName.TWEEZER_TOP, tweezer_top, 1.0),
    (PatternName.BEARISH_KICKER, bearish_kicker, 2.5),
    (PatternName.EVENING_DOJI_STAR, evening_doji_star, 2.5),
    (PatternName.EVENING_STAR, evening_star, 2.0),
    (PatternName.THREE_BLACK_CROWS, three_black_crows, 2.5),
]
