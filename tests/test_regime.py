"""
Tests for the market regime classifier.
"""

import math

import numpy as np
import pandas as pd
import pytest

from zone_regime.config.engine_config import RegimeConfig
from zone_regime.regime import MarketRegime, RegimeClassifier, RegimeState, ResolutionMethod
from zone_regime.regime import scores


@pytest.fixture
def classifier():
    return RegimeClassifier(RegimeConfig())


def _flat_frame(n=120, price=1.1, volume=0.0):
    return pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=n, freq='h'),
        'open': [price] * n,
        'high': [price] * n,
        'low': [price] * n,
        'close': [price] * n,
        'volume': [volume] * n
    })


class TestRegimeClassifier:
    """Тесты классификатора режима"""

    def test_insufficient_bars_gives_neutral(self, classifier, sample_ohlcv_data):
        """Тест: мало баров - нейтральный режим"""
        state = classifier.classify(sample_ohlcv_data.head(30))

        assert state.regime == MarketRegime.NEUTRAL
        assert state.resolved_by == ResolutionMethod.INSUFFICIENT_DATA
        assert state.trend_score == state.range_score == 50.0
        assert state.computed_at == sample_ohlcv_data['timestamp'].iloc[29].to_pydatetime()

    def test_classify_is_idempotent(self, classifier, sample_ohlcv_data):
        """Тест идемпотентности на одинаковых данных"""
        first = classifier.classify(sample_ohlcv_data)
        second = classifier.classify(sample_ohlcv_data.copy())

        assert first == second
        assert first.components == second.components

    def test_scores_within_bounds(self, classifier, sample_ohlcv_data, trending_data, ranging_data):
        """Тест диапазона всех оценок"""
        for data in (sample_ohlcv_data, trending_data, ranging_data):
            state = classifier.classify(data)
            for value in state.scores.values():
                assert 0.0 <= value <= 100.0
            assert state.trend_direction in (-1, 0, 1)

    def test_uses_only_lookback_window(self, classifier, sample_ohlcv_data):
        """Тест: классифицируются только последние lookback баров"""
        full = classifier.classify(sample_ohlcv_data)
        tail = classifier.classify(sample_ohlcv_data.tail(classifier.config.lookback))

        assert full == tail
        assert full.computed_at == sample_ohlcv_data['timestamp'].iloc[-1].to_pydatetime()

    def test_trending_market(self, classifier, trending_data):
        """Тест распознавания восходящего тренда"""
        state = classifier.classify(trending_data)

        assert state.regime == MarketRegime.TRENDING
        assert state.trend_direction == 1
        assert state.trend_score > state.range_score
        assert set(state.components['trend']) == set(scores.TREND_COMPONENTS)

    def test_dominance_requires_floor_and_margin(self, classifier, sample_ohlcv_data, trending_data, ranging_data):
        """Тест: режим по доминированию только при превышении порога и отрыва"""
        for data in (sample_ohlcv_data, trending_data, ranging_data):
            state = classifier.classify(data)
            if state.resolved_by != ResolutionMethod.DOMINANCE:
                continue
            ranked = sorted(state.scores.values(), reverse=True)
            assert state.scores[state.regime] > classifier.floors[state.regime]
            assert ranked[0] - ranked[1] >= classifier.config.dominance_margin

    def test_degenerate_flat_prices(self, classifier):
        """Тест вырожденных данных: нулевой диапазон и объем"""
        state = classifier.classify(_flat_frame())

        for value in state.scores.values():
            assert math.isfinite(value)
            assert 0.0 <= value <= 100.0
        assert state.trend_direction == 0


class TestRegimeResolution:
    """Тесты разрешения режима по оценкам"""

    def _scores(self, trend, ranging, volatile, breakout):
        return {
            MarketRegime.TRENDING: trend,
            MarketRegime.RANGING: ranging,
            MarketRegime.VOLATILE: volatile,
            MarketRegime.BREAKOUT: breakout
        }

    def test_dominant_regime(self, classifier):
        """Тест доминирующего режима"""
        assert classifier.resolve(self._scores(80, 40, 30, 20)) == (MarketRegime.TRENDING, ResolutionMethod.DOMINANCE)
        assert classifier.resolve(self._scores(30, 40, 30, 75)) == (MarketRegime.BREAKOUT, ResolutionMethod.DOMINANCE)

    def test_below_floor_falls_back(self, classifier):
        """Тест: ниже порога - запасная лестница"""
        regime, method = classifier.resolve(self._scores(50, 40, 30, 20))

        assert method == ResolutionMethod.FALLBACK
        assert regime == MarketRegime.TRENDING

    def test_insufficient_margin_falls_back(self, classifier):
        """Тест: недостаточный отрыв - запасная лестница"""
        regime, method = classifier.resolve(self._scores(66, 68, 40, 20))

        assert method == ResolutionMethod.FALLBACK
        assert regime == MarketRegime.RANGING

    def test_fallback_prefers_high_volatility(self, classifier):
        """Тест: высокая волатильность в запасной лестнице"""
        regime, method = classifier.resolve(self._scores(74, 40, 72, 20))

        assert (regime, method) == (MarketRegime.VOLATILE, ResolutionMethod.FALLBACK)

    def test_tie_at_top_follows_order(self, classifier):
        """Тест: ничья наверху не дает доминирования"""
        regime, method = classifier.resolve(self._scores(70, 70, 10, 10))

        assert method == ResolutionMethod.FALLBACK
        assert regime == MarketRegime.RANGING


class TestScores:
    """Тесты компонентов оценок"""

    def test_weighted_score_renormalizes(self):
        """Тест перенормировки весов при NaN компонентах"""
        assert scores.weighted_score([80.0, float('nan')], [0.5, 0.5]) == pytest.approx(80.0)
        assert math.isnan(scores.weighted_score([float('nan')], [1.0]))

    def test_shape_breakout_bounds(self):
        """Тест степенной кривой breakout"""
        assert scores.shape_breakout(float('nan'), 1.2) == 50.0
        assert scores.shape_breakout(100.0, 1.2) == pytest.approx(100.0)
        assert scores.shape_breakout(250.0, 1.2) == 100.0
        assert scores.shape_breakout(-10.0, 1.2) == 0.0
        assert scores.shape_breakout(50.0, 1.2) < 50.0

    @pytest.mark.parametrize("frame_builder", [
        lambda: _flat_frame(),
        lambda: _flat_frame(volume=1000.0),
        lambda: _flat_frame(n=60),
    ])
    def test_breakout_score_degenerate_inputs(self, frame_builder):
        """Тест: breakout в [0, 100] на вырожденных данных"""
        df = frame_builder()
        classifier = RegimeClassifier()
        ind = classifier.compute_indicators(df)

        result = scores.breakout_score(df, ind, classifier.config)

        assert 0.0 <= result.score <= 100.0

    def test_regression_on_line(self):
        """Тест регрессии на прямой"""
        close = pd.Series(np.linspace(1.0, 1.2, 30))
        slope_pct, r_squared = scores.regression(close, 20)

        assert slope_pct > 0
        assert r_squared == pytest.approx(1.0)

    def test_trend_direction(self):
        """Тест направления тренда"""
        assert scores.trend_direction(0.05, 30.0, 10.0) == 1
        assert scores.trend_direction(-0.05, 10.0, 30.0) == -1

    def test_neutral_state_serialization(self):
        """Тест сериализации нейтрального состояния"""
        data = RegimeState.neutral().to_dict()

        assert data['regime'] == 'neutral'
        assert data['resolved_by'] == 'insufficient_data'
