"""
Tests for candlestick pattern recognition.
"""

import pytest

from zone_regime.config.engine_config import PatternConfig
from zone_regime.patterns import PatternDetection, PatternName, PatternRecognizer
from zone_regime.support_resistance import create_zone

from conftest import START


@pytest.fixture
def recognizer():
    return PatternRecognizer(PatternConfig())


@pytest.fixture
def engulfing_bars(flat_bars, make_bar):
    """Медвежья свеча и поглощающая ее бычья"""
    bars = flat_bars(5, price=1.1020)
    bars.append(make_bar(5, 1.1020, 1.1025, 1.0995, 1.1000))
    bars.append(make_bar(6, 1.0990, 1.1035, 1.0980, 1.1030))
    return bars


def _declining(make_bar, closes):
    return [make_bar(i, c + 0.0010, c + 0.0012, c - 0.0002, c) for i, c in enumerate(closes)]


def _rising(make_bar, closes):
    return [make_bar(i, c - 0.0010, c + 0.0002, c - 0.0012, c) for i, c in enumerate(closes)]


def _zone(upper, lower, is_support, strength=8.0):
    zone = create_zone(upper, lower, is_support, START, touch_count=3)
    zone.strength = strength
    zone.is_valid = True
    return zone


class TestPatternRecognizer:
    """Тесты распознавания паттернов"""

    def test_too_few_bars(self, recognizer, flat_bars):
        """Тест: меньше трех баров - паттерна нет"""
        result = recognizer.recognize(flat_bars(2))

        assert result == PatternDetection.none(result.timestamp)
        assert not result.detected
        assert recognizer.recognize([]).timestamp is None

    def test_flat_bars_have_no_pattern(self, recognizer, flat_bars):
        """Тест: ровные доджи без теней нужной длины"""
        result = recognizer.recognize(flat_bars(10))

        assert not result.detected
        assert result.name == PatternName.NONE
        assert result.reliability == 0.0

    def test_bullish_engulfing_without_zone(self, recognizer, engulfing_bars):
        """Тест поглощения без зоны"""
        result = recognizer.recognize(engulfing_bars)

        assert result.name == PatternName.BULLISH_ENGULFING
        assert result.is_bullish
        assert result.reliability == pytest.approx(7.0)
        assert result.timestamp == engulfing_bars[-1].timestamp

    def test_engulfing_at_strong_support(self, recognizer, engulfing_bars):
        """Тест: поглощение у сильной поддержки получает бонусы зоны"""
        support = _zone(1.0990, 1.0980, True)

        result = recognizer.recognize(engulfing_bars, support)

        assert result.reliability == pytest.approx(5 + 2 + 4 + 1)
        assert result.reliability >= 8

    def test_engulfing_at_resistance_no_polarity_bonus(self, recognizer, engulfing_bars):
        """Тест: у сопротивления бычий паттерн без бонуса полярности"""
        resistance = _zone(1.1040, 1.1030, False)

        result = recognizer.recognize(engulfing_bars, resistance)

        assert result.reliability == pytest.approx(5 + 2 + 4)

    def test_distant_zone_gives_no_boost(self, recognizer, engulfing_bars):
        """Тест: далекая зона не влияет на надежность"""
        far = _zone(1.0900, 1.0890, True)

        assert recognizer.recognize(engulfing_bars, far).reliability == pytest.approx(7.0)

    def test_hammer_after_decline(self, recognizer, make_bar):
        """Тест молота после снижения"""
        bars = _declining(make_bar, [1.1030, 1.1020, 1.1010, 1.1000])
        bars.append(make_bar(4, 1.0990, 1.0996, 1.0970, 1.0995))

        result = recognizer.recognize(bars)

        assert result.name == PatternName.HAMMER
        assert result.direction == 1
        assert result.reliability == pytest.approx(6.0)

    def test_shooting_star_after_rise(self, recognizer, make_bar):
        """Тест падающей звезды после роста"""
        bars = _rising(make_bar, [1.0970, 1.0980, 1.0990, 1.1000])
        bars.append(make_bar(4, 1.1010, 1.1030, 1.1004, 1.1005))

        result = recognizer.recognize(bars)

        assert result.name == PatternName.SHOOTING_STAR
        assert result.is_bearish
        assert result.reliability == pytest.approx(6.0)

    def test_three_white_soldiers(self, recognizer, make_bar):
        """Тест трех белых солдат"""
        bars = [
            make_bar(0, 1.1000, 1.1011, 1.0999, 1.1010),
            make_bar(1, 1.1005, 1.1019, 1.1004, 1.1018),
            make_bar(2, 1.1012, 1.1027, 1.1011, 1.1026),
        ]

        result = recognizer.recognize(bars)

        assert result.name == PatternName.THREE_WHITE_SOLDIERS
        assert result.reliability == pytest.approx(7.5)

    def test_detection_serialization(self, recognizer, engulfing_bars):
        """Тест сериализации результата"""
        data = recognizer.recognize(engulfing_bars).to_dict()

        assert data['name'] == 'Bullish Engulfing'
        assert data['detected'] is True
        assert data['direction'] == 1
