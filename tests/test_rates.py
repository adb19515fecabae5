import pytest

from ageforge.rates import (
    compose_rates,
    compose_storage,
    merge_bonuses,
    multiply_positive,
    tick_interval,
)


def test_compose_rates_applies_passes_in_order():
    rates, breakdowns = compose_rates(
        ['food', 'wood', 'knowledge'],
        building_rates={'food': 1.0, 'knowledge': 0.5},
        villager_rates={'wood': 2.0, 'food': 1.0},
        bonuses={'production_all': 0.5, 'wood_rate': 1.0, 'gather_rate': 0.1},
        research_effects=[('food', 0.2)],
        event_effects=[('food', -3.0)],
        food_drain=1.5,
    )
    assert rates['food'] == pytest.approx(-1.2)
    assert rates['wood'] == pytest.approx(6.2)
    assert rates['knowledge'] == pytest.approx(0.75)

    food = breakdowns['food']
    assert food.building == 1.0
    assert food.villager == 1.0
    assert food.research == pytest.approx(0.2)
    assert food.event == pytest.approx(-3.0)
    assert food.food_drain == 1.5
    assert food.bonus == pytest.approx(1.1)
    assert breakdowns['wood'].food_drain == 0.0


def test_multipliers_never_touch_negative_rates():
    rates, _ = compose_rates(['food', 'wood'], {'food': -1.0, 'wood': 2.0}, {},
                             {'production_all': 1.0, 'food_rate': 1.0})
    assert rates == {'food': -1.0, 'wood': 4.0}
    assert multiply_positive({'a': -2.0, 'b': 0.0, 'c': 3.0}, 2) == {'a': -2.0, 'b': 0.0, 'c': 6.0}


def test_gather_bonus_adds_base_villager_output_without_compounding():
    # 2 * (1 + 1.0) multiplied, then + 2 * 0.5 added on top
    rates, _ = compose_rates(['wood'], {}, {'wood': 2.0}, {'production_all': 1.0, 'gather_rate': 0.5})
    assert rates['wood'] == pytest.approx(5.0)


def test_trade_bonus_runs_after_events_and_before_food_drain():
    rates, breakdowns = compose_rates(
        ['food', 'gold'],
        building_rates={'gold': 1.0, 'food': 2.0},
        villager_rates={},
        bonuses={},
        event_effects=[('gold', 1.0)],
        trade_bonuses={'gold': 0.2, 'food': 0.5},
        food_drain=3.0,
    )
    assert rates['gold'] == pytest.approx(2.4)
    assert breakdowns['gold'].trade == pytest.approx(0.4)
    assert breakdowns['gold'].bonus == pytest.approx(0.0)
    # food was positive before upkeep, so it is boosted first
    assert rates['food'] == pytest.approx(0.0)
    assert breakdowns['food'].trade == pytest.approx(1.0)


def test_every_key_gets_a_rate():
    rates, breakdowns = compose_rates(['food', 'gold'], {}, {}, {})
    assert rates == {'food': 0.0, 'gold': 0.0}
    assert set(breakdowns) == {'food', 'gold'}


def test_merge_bonuses_sums_sources():
    merged = merge_bonuses({'all': 10, 'gather_rate': 0.1}, None, {'all': 5}, {'gather_rate': 0.2})
    assert merged['all'] == 15
    assert merged['gather_rate'] == pytest.approx(0.3)


def test_compose_storage_sums_shared_and_specific():
    storage = compose_storage({'food': 50, 'gold': 50}, {'all': 100, 'gold': 20}, {'all': 25, 'gold': 100})
    assert storage == {'food': 175, 'gold': 295}


@pytest.mark.parametrize('bonus, speed, expected', [
    (0.0, 1.0, 2.0),
    (1.0, 2.0, 0.5),
    (10.0, 10.0, 0.2),
    (0.0, 0.5, 2.0),
])
def test_tick_interval(bonus, speed, expected):
    assert tick_interval(2.0, 0.2, bonus, speed) == pytest.approx(expected)
