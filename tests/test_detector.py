"""
Tests for swing pivot detection and candidate clustering.
"""

import pytest

from zone_regime.config.engine_config import ZoneConfig
from zone_regime.support_resistance.detector import PivotDetector


def _with_spikes(flat_bars, make_bar, count, highs=None, lows=None):
    """Ровные бары с пиками вверх/вниз на заданных индексах"""
    bars = flat_bars(count)
    for index, price in (highs or {}).items():
        bars[index] = make_bar(index, 1.1000, price, 1.0998, 1.1000)
    for index, price in (lows or {}).items():
        bars[index] = make_bar(index, 1.1000, 1.1002, price, 1.1000)
    return bars


class TestPivotDetector:
    """Тесты детектора пивотов"""

    def test_repeated_swing_high_forms_one_zone(self, flat_bars, make_bar, zone_config):
        """Тест: два максимума на одной цене дают одну зону с двумя касаниями"""
        bars = _with_spikes(flat_bars, make_bar, 20, highs={5: 1.1050, 12: 1.1054})
        detector = PivotDetector(zone_config)

        candidates = detector.detect_pivots(bars, thickness=0.0010)

        assert len(candidates) == 1
        zone = candidates[0]
        assert zone.touch_count == 2
        assert not zone.is_support
        assert zone.upper_bound == pytest.approx(1.1055)
        assert zone.lower_bound == pytest.approx(1.1045)
        assert zone.first_touch == bars[5].timestamp
        assert zone.last_touch == bars[12].timestamp

    def test_swing_low_forms_support(self, flat_bars, make_bar, zone_config):
        """Тест: минимум дает зону поддержки"""
        bars = _with_spikes(flat_bars, make_bar, 15, lows={6: 1.0950})

        candidates = PivotDetector(zone_config).detect_pivots(bars, thickness=0.0010)

        assert len(candidates) == 1
        assert candidates[0].is_support
        assert candidates[0].contains_price(1.0950)

    def test_distant_pivots_form_separate_zones(self, flat_bars, make_bar, zone_config):
        """Тест: далекие максимумы дают разные зоны"""
        bars = _with_spikes(flat_bars, make_bar, 20, highs={5: 1.1050, 12: 1.1100})

        candidates = PivotDetector(zone_config).detect_pivots(bars, thickness=0.0010)

        assert len(candidates) == 2
        assert all(c.touch_count == 1 for c in candidates)

    def test_flat_history_has_no_pivots(self, flat_bars, zone_config):
        """Тест: равные экстремумы не являются пивотами"""
        assert PivotDetector(zone_config).detect_pivots(flat_bars(30)) == []

    def test_trailing_bars_cannot_be_pivots(self, flat_bars, make_bar, zone_config):
        """Тест: последние pivot_window баров не подтверждены"""
        bars = _with_spikes(flat_bars, make_bar, 12, highs={11: 1.1050, 10: 1.1040})

        assert PivotDetector(zone_config).detect_pivots(bars) == []

    def test_insufficient_bars(self, flat_bars, zone_config):
        """Тест недостаточной истории"""
        detector = PivotDetector(zone_config)

        assert detector.min_bars == 5
        assert detector.detect_pivots(flat_bars(4)) == []

    def test_capacity_limits_candidates(self, flat_bars, make_bar):
        """Тест лимита количества зон"""
        config = ZoneConfig(higher_timeframe=None, max_zones=2)
        bars = _with_spikes(flat_bars, make_bar, 30, highs={5: 1.1050, 12: 1.1100, 20: 1.1150})

        candidates = PivotDetector(config).detect_pivots(bars, thickness=0.0010)

        assert len(candidates) == 2
        assert [round(c.upper_bound, 4) for c in candidates] == [1.1055, 1.1105]

    def test_swing_prices(self, flat_bars, make_bar, zone_config):
        """Тест списка цен свингов"""
        bars = _with_spikes(flat_bars, make_bar, 20, highs={5: 1.1050}, lows={12: 1.0950})

        prices = PivotDetector(zone_config).swing_prices(bars)

        assert prices == [pytest.approx(1.1050), pytest.approx(1.0950)]

    def test_new_candidates_are_not_yet_valid(self, flat_bars, make_bar, zone_config):
        """Тест: кандидаты создаются невалидными с нулевой силой"""
        bars = _with_spikes(flat_bars, make_bar, 15, highs={6: 1.1050})

        zone = PivotDetector(zone_config).detect_pivots(bars)[0]

        assert zone.strength == 0.0
        assert not zone.is_valid
        assert zone.merged_into is None
        assert zone.tested_by_timeframe == {}
