"""
Basic usage example for the zone/regime engine.

This example demonstrates the fundamental workflow:
1. Data preparation
2. Zone detection
3. Regime classification and pattern recognition
4. Bar-by-bar backtest
"""

import pandas as pd
import numpy as np
from datetime import datetime

from zone_regime.config import EngineConfig
from zone_regime.engine import Backtester
from zone_regime.patterns import PatternRecognizer
from zone_regime.preprocessing import prepare_ohlcv_frame, bars_from_frame
from zone_regime.regime import RegimeClassifier
from zone_regime.support_resistance import PivotDetector, ZoneStore
from zone_regime.utils.logger import LogFormat, LogLevel, configure_logging


def generate_sample_data(n_bars: int = 1000):
    """Generate sample hourly EURUSD-like OHLCV data"""
    print("📊 Generating sample OHLCV data...")

    timestamps = pd.date_range(start='2024-01-01', periods=n_bars, freq='h')

    np.random.seed(42)
    # Random walk with a slow oscillation so that swings repeat near the same prices
    drift = 0.004 * np.sin(np.arange(n_bars) / 60.0)
    closes = 1.1000 + drift + np.cumsum(np.random.randn(n_bars) * 0.0006)

    opens = np.concatenate([[closes[0]], closes[:-1]])
    spread = np.abs(np.random.randn(n_bars)) * 0.0004
    df = pd.DataFrame({
        'timestamp': timestamps,
        'open': opens,
        'high': np.maximum(opens, closes) + spread,
        'low': np.minimum(opens, closes) - spread,
        'close': closes,
        'volume': np.random.uniform(500, 5000, n_bars)
    })

    print(f"✅ Generated {len(df)} bars from {df['timestamp'].min()} to {df['timestamp'].max()}")
    return df


def zone_detection_example(data: pd.DataFrame, config: EngineConfig):
    """Detect and score support/resistance zones"""
    print("\n🧱 Zone Detection Example")
    print("=" * 50)

    frame = prepare_ohlcv_frame(data)
    bars = bars_from_frame(frame.tail(config.zones.history_bars))

    detector = PivotDetector(config.zones)
    store = ZoneStore(config.zones)

    candidates = detector.detect_pivots(bars)
    store.set_context(reference_time=bars[-1].timestamp, average_volume=float(frame['volume'].mean()))
    store.ingest(candidates)
    store.recompute_strength()
    merged = store.merge_zones()

    print(f"Candidates: {len(candidates)}, merged pairs: {merged}")
    for zone in store.sorted_by_strength(valid_only=True)[:5]:
        print(
            f"  {zone.level_type.value:<10} {zone.lower_bound:.5f}-{zone.upper_bound:.5f} "
            f"touches={zone.touch_count} strength={zone.strength:.2f}"
        )

    return store, bars


def regime_and_pattern_example(data: pd.DataFrame, store: ZoneStore, bars, config: EngineConfig):
    """Classify the regime and recognize the latest pattern"""
    print("\n🧭 Regime & Pattern Example")
    print("=" * 50)

    state = RegimeClassifier(config.regime).classify(prepare_ohlcv_frame(data))
    print(f"Regime: {state.regime.value} ({state.resolved_by.value})")
    print(f"  trend={state.trend_score:.1f} range={state.range_score:.1f} "
          f"volatility={state.volatility_score:.1f} breakout={state.breakout_score:.1f}")

    nearest = store.nearest_zone(bars[-1].close)
    pattern = PatternRecognizer(config.patterns).recognize(bars, nearest)
    print(f"Pattern: {pattern.name.value} (reliability {pattern.reliability:.1f})")

    return state


def backtest_example(data: pd.DataFrame, config: EngineConfig):
    """Replay the data against the paper broker"""
    print("\n📈 Backtest Example")
    print("=" * 50)

    result = Backtester(config).run("EURUSD", "1h", data)

    print(f"Orders: {result.orders}, closed trades: {len(result.trades)}, open: {result.open_positions}")
    for key, value in result.metrics.items():
        print(f"  {key}: {value}")
    for warning in result.warnings:
        print(f"  ⚠️ {warning}")
    for regime, stats in result.by_regime.items():
        print(f"  {regime}: {stats['trades']} trades, win rate {stats['win_rate']}%")

    return result


def error_handling_example():
    """Example of error handling"""
    print("\n⚠️ Error Handling Example")
    print("=" * 30)

    from zone_regime.utils.exceptions import InvalidDataException, InsufficientDataException

    print("1. Testing data without price columns...")
    try:
        prepare_ohlcv_frame(pd.DataFrame({'timestamp': [datetime.now()], 'wrong_column': [1]}))
    except InvalidDataException as e:
        print(f"✅ Caught expected error: {e}")

    print("\n2. Testing a backtest on a single bar...")
    try:
        Backtester().run("EURUSD", "1h", generate_sample_data(1))
    except InsufficientDataException as e:
        print(f"✅ Caught expected error: {e}")

    print("\n✅ Error handling examples completed")


if __name__ == "__main__":
    """Main execution"""
    configure_logging(level=LogLevel.WARNING, format_type=LogFormat.TEXT)

    print("🧱 Zone Regime Engine - Basic Usage Examples")
    print("=" * 60)
    print(f"Execution started at: {datetime.now()}")

    config = EngineConfig()
    config = config.model_copy(update={
        'zones': config.zones.model_copy(update={'higher_timeframe': None, 'history_bars': 300})
    })

    try:
        sample_data = generate_sample_data()
        zone_store, recent_bars = zone_detection_example(sample_data, config)
        regime_and_pattern_example(sample_data, zone_store, recent_bars, config)
        backtest_example(sample_data, config)
        error_handling_example()

        print("\n" + "=" * 60)
        print("🎉 All examples completed successfully!")
        print(f"Execution finished at: {datetime.now()}")

    except Exception as e:
        print(f"\n❌ Example failed with error: {e}")
        import traceback
        traceback.print_exc()
