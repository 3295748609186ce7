"""
Tests for zone scoring, the zone store and its bar-by-bar state machine.
"""

from datetime import timedelta

import pytest

from zone_regime.support_resistance import (
    ZoneEventType,
    ZoneStore,
    ZoneStrengthScorer,
    create_zone
)

from conftest import START


@pytest.fixture
def store(zone_config):
    return ZoneStore(zone_config)


def _resistance(upper, touches=2, first_touch=START, volume=0.0):
    return create_zone(upper, upper - 0.0010, False, first_touch, touch_count=touches, volume_at_formation=volume)


def _support(lower, touches=2, first_touch=START, volume=0.0):
    return create_zone(lower + 0.0010, lower, True, first_touch, touch_count=touches, volume_at_formation=volume)


class TestZoneModel:
    """Тесты модели зоны"""

    def test_inverted_bounds_are_swapped(self):
        """Тест: перевернутые границы меняются местами"""
        zone = create_zone(1.0990, 1.1000, True, START)

        assert zone.upper_bound == 1.1000
        assert zone.lower_bound == 1.0990
        assert zone.height == pytest.approx(0.0010)

    def test_boundary_by_polarity(self):
        """Тест граничной цены по полярности"""
        assert _support(1.0990).boundary == 1.0990
        assert _resistance(1.1010).boundary == 1.1010

    def test_distance_to(self):
        """Тест расстояния до зоны"""
        zone = _support(1.0990)

        assert zone.distance_to(1.0995) == 0.0
        assert zone.distance_to(1.1010) == pytest.approx(0.0010)
        assert zone.distance_to(1.0980) == pytest.approx(0.0010)

    def test_fresh_containers(self):
        """Тест: у каждой зоны собственный словарь тестов"""
        a, b = _support(1.0990), _support(1.0990)
        a.tested_by_timeframe['1h'] = 1

        assert b.tested_by_timeframe == {}
        assert a.zone_id != b.zone_id


class TestZoneStrengthScorer:
    """Тесты оценки силы зоны"""

    def test_score_components(self, zone_config):
        """Тест формулы силы: касания + возраст + объем + конфлюенция"""
        scorer = ZoneStrengthScorer(zone_config)
        zone = _support(1.0990, touches=3, volume=3000.0)
        reference = START + timedelta(days=10)

        assert scorer.score(zone, reference, average_volume=1000.0) == pytest.approx(3 + 2.0 + 1.5)
        assert scorer.score(zone, reference, 1000.0, htf_prices=[1.0995]) == pytest.approx(8.0)
        assert scorer.score(zone, reference, 1000.0, htf_prices=[1.2000]) == pytest.approx(6.5)

    def test_touch_points_are_capped(self, zone_config):
        """Тест ограничения очков за касания"""
        scorer = ZoneStrengthScorer(zone_config)
        reference = START + timedelta(days=400)

        assert scorer.score(_support(1.0990, touches=12), reference) == pytest.approx(5.0)

    def test_strength_non_decreasing_in_touches(self, zone_config):
        """Тест: сила не убывает с ростом числа касаний"""
        scorer = ZoneStrengthScorer(zone_config)
        reference = START + timedelta(days=45)

        strengths = [scorer.score(_support(1.0990, touches=t), reference) for t in range(0, 12)]

        assert all(b >= a for a, b in zip(strengths, strengths[1:]))

    def test_strength_non_increasing_in_age(self, zone_config):
        """Тест: сила не растет с возрастом, после 365 дней постоянна"""
        scorer = ZoneStrengthScorer(zone_config)
        zone = _support(1.0990, touches=3)
        ages = [0, 10, 30, 31, 90, 120, 180, 200, 365, 366, 500, 1000, 5000]

        strengths = [scorer.score(zone, START + timedelta(days=age)) for age in ages]

        assert all(b <= a for a, b in zip(strengths, strengths[1:]))
        assert strengths[-1] == strengths[-4] == pytest.approx(3.0)

    def test_validity_thresholds(self, zone_config):
        """Тест порогов валидности"""
        scorer = ZoneStrengthScorer(zone_config)
        zone = _support(1.0990, touches=2)

        zone.strength = 3.0
        assert scorer.is_valid(zone)

        zone.touch_count = 1
        assert not scorer.is_valid(zone)


class TestZoneStore:
    """Тесты хранилища зон"""

    def test_ingest_deduplicates_within_thickness(self, store):
        """Тест: кандидат в пределах толщины обновляет существующую зону"""
        first = _resistance(1.1050, touches=2)
        second = _resistance(1.1054, touches=3, first_touch=START + timedelta(hours=5))

        assert store.ingest([first]) == 1
        assert store.ingest([second]) == 0

        assert len(store) == 1
        assert first.touch_count == 3
        assert first.last_touch == START + timedelta(hours=5)

    def test_capacity_drops_new_zones(self, zone_config):
        """Тест: при переполнении новые зоны отбрасываются"""
        store = ZoneStore(zone_config.model_copy(update={'max_zones': 1}))
        kept, dropped = _resistance(1.1050), _resistance(1.1200)

        assert store.ingest([kept, dropped]) == 1
        assert store.get(kept.zone_id) is kept
        assert store.get(dropped.zone_id) is None

    def test_recompute_sets_validity(self, store):
        """Тест пересчета силы и валидности"""
        weak, strong = _support(1.0900, touches=1), _support(1.0990, touches=3)
        store.ingest([weak, strong])
        store.set_context(reference_time=START + timedelta(days=1))

        store.recompute_strength()

        assert not weak.is_valid
        assert strong.is_valid
        assert strong.strength == pytest.approx(5.0)
        assert store.valid_zones() == [strong]

    def test_merge_same_polarity_pair(self, store):
        """Тест: пара зон в пределах merge_distance сливается в одну"""
        a = _resistance(1.1005, touches=2)
        b = _resistance(1.1017, touches=3, first_touch=START + timedelta(hours=3))
        store.ingest([a, b])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()
        assert a.is_valid and b.is_valid

        assert store.merge_zones() == 1

        valid = store.valid_zones()
        assert valid == [b]
        assert b.touch_count == 5
        assert b.strength == pytest.approx(5.0 + 0.5)
        assert b.upper_bound == 1.1017
        assert not a.is_valid
        assert a.merged_into == b.zone_id
        assert store.history[-1].event == ZoneEventType.MERGE

    def test_merge_tie_keeps_earlier_zone(self, store):
        """Тест: при равной силе сливается более поздняя зона"""
        a = _support(1.0990, touches=3)
        b = _support(1.0978, touches=3)
        store.ingest([a, b])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()

        store.merge_zones()

        assert b.merged_into == a.zone_id
        assert a.touch_count == 6

    def test_merge_ignores_opposite_polarity(self, store):
        """Тест: зоны разной полярности не сливаются"""
        store.ingest([_support(1.0995, touches=3), _resistance(1.1000, touches=3)])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()

        assert store.merge_zones() == 0
        assert len(store.valid_zones()) == 2

    def test_merge_bonus_survives_rescoring(self, store):
        """Тест: бонус слияния сохраняется при пересчете"""
        a, b = _resistance(1.1005, touches=2), _resistance(1.1017, touches=3)
        store.ingest([a, b])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()
        store.merge_zones()

        store.recompute_strength()

        assert b.strength_bonus == pytest.approx(0.5)
        assert b.strength == pytest.approx(5 + 2.0 + 0.5)
        assert not a.is_valid

    def test_repeated_refresh_does_not_inflate_merged_zone(self, store):
        """Тест: повторное обнаружение той же истории не наращивает касания"""
        for _ in range(3):
            # Детектор каждый раз возвращает новые объекты-кандидаты
            store.ingest([_resistance(1.1010, touches=2), _resistance(1.0998, touches=2)])
            store.set_context(reference_time=START + timedelta(days=1))
            store.recompute_strength()
            store.merge_zones()

        survivors = store.valid_zones()
        assert len(survivors) == 1
        assert survivors[0].touch_count == 4
        assert survivors[0].strength_bonus == pytest.approx(0.5)
        assert len(store) == 2

    def test_candidate_matching_merged_zone_refreshes_survivor(self, store):
        """Тест: кандидат на месте слитой зоны обновляет победителя"""
        a, b = _resistance(1.1017, touches=3), _resistance(1.1005, touches=2)
        store.ingest([a, b])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()
        store.merge_zones()
        assert b.merged_into == a.zone_id

        later = START + timedelta(hours=30)
        assert store.ingest([_resistance(1.1005, touches=2, first_touch=later)]) == 0

        assert a.touch_count == 5
        assert a.last_touch == later

    def test_compact_removes_merged(self, store):
        """Тест физического удаления слитых зон"""
        a, b = _resistance(1.1005, touches=2), _resistance(1.1017, touches=3)
        store.ingest([a, b])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()
        store.merge_zones()

        assert store.compact() == 1
        assert len(store) == 1

    def test_touch_updates_counters(self, store, make_bar):
        """Тест касания зоны баром"""
        zone = _support(1.0990, touches=2)
        store.ingest([zone])

        events = store.update_on_bar(make_bar(10, 1.1010, 1.1012, 1.0995, 1.1008), "1h")

        assert [e.event for e in events] == [ZoneEventType.TOUCH]
        assert zone.touch_count == 3
        assert zone.tested_count == 1
        assert zone.tested_by_timeframe == {"1h": 1}
        assert zone.last_touch == START + timedelta(hours=10)

    def test_close_beyond_breaks_and_stays_broken(self, store, make_bar):
        """Тест: закрытие за границей ломает зону, без флипа она остается сломанной"""
        zone = _support(1.0990, touches=3)
        store.ingest([zone])

        events = store.update_on_bar(make_bar(10, 1.0992, 1.0995, 1.0975, 1.0980), "1h")
        assert zone.is_broken
        assert ZoneEventType.BREAK in [e.event for e in events]

        store.update_on_bar(make_bar(11, 1.0985, 1.0995, 1.0982, 1.0992), "1h")
        store.update_on_bar(make_bar(12, 1.0970, 1.0975, 1.0960, 1.0965), "1h")
        assert zone.is_broken
        assert zone.is_support

    def test_role_flip_after_break(self, store, make_bar):
        """Тест смены роли: сломанная поддержка становится сопротивлением"""
        zone = _support(1.0990, touches=3)
        store.ingest([zone])
        store.update_on_bar(make_bar(10, 1.0992, 1.0995, 1.0975, 1.0980), "1h")
        touches_before = zone.touch_count

        events = store.update_on_bar(make_bar(11, 1.0990, 1.1010, 1.0985, 1.0995), "1h")

        assert ZoneEventType.FLIP in [e.event for e in events]
        assert not zone.is_support
        assert not zone.is_broken
        assert zone.touch_count == touches_before + 2

    def test_break_and_flip_not_on_same_bar(self, store, make_bar):
        """Тест: флип возможен только для зоны, сломанной ранее"""
        zone = _resistance(1.1010, touches=3)
        store.ingest([zone])

        store.update_on_bar(make_bar(10, 1.1005, 1.1025, 1.0990, 1.1020), "1h")

        assert zone.is_broken
        assert not zone.is_support

    def test_nearest_zone_queries(self, store):
        """Тест поиска ближайших зон"""
        support, resistance = _support(1.0950, touches=3), _resistance(1.1050, touches=3)
        store.ingest([support, resistance])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()

        assert store.nearest_zone(1.0960) is support
        assert store.nearest_zone(1.0960, support=False) is resistance
        assert store.nearest_above(1.1000, support=False) is resistance
        assert store.nearest_below(1.1000, support=True) is support
        assert store.nearest_above(1.1100) is None

    def test_statistics(self, store):
        """Тест статистики хранилища"""
        store.ingest([_support(1.0950, touches=3), _resistance(1.1050, touches=1)])
        store.set_context(reference_time=START + timedelta(days=1))
        store.recompute_strength()

        stats = store.get_statistics()

        assert stats['total_zones'] == 2
        assert stats['valid_zones'] == 1
        assert stats['supports'] == 1
        assert stats['capacity'] == store.config.max_zones
