import pytest

from ageforge.errors import InsufficientResourceError, NotFoundError, PreconditionError
from ageforge.prestige import PrestigeLedger, calculate_points

UPGRADES = [
    {'key': 'gather_boost', 'name': 'Gather Boost', 'effect_key': 'gather_rate', 'effect_type': 'rate_bonus',
     'per_tier': 0.05, 'max_tier': 2, 'costs': [2, 4]},
    {'key': 'storage_bonus', 'name': 'Storage Bonus', 'effect_key': 'all', 'effect_type': 'flat_bonus',
     'per_tier': 20, 'max_tier': 3, 'costs': [1, 1, 1]},
    {'key': 'starting_food', 'name': 'Starting Food', 'effect_key': 'food', 'effect_type': 'starting_resource',
     'per_tier': 25, 'max_tier': 5, 'costs': [1, 2, 4, 8, 15]},
]

MEDIEVAL = 5


def test_points_formula():
    # (6 + 10/10 + 15/15 + 100/50) / sqrt(1) = 10
    assert calculate_points(6, 10, 15, 100, 0, MEDIEVAL) == 10
    # same run at level 3: 10 / 2 = 5
    assert calculate_points(6, 10, 15, 100, 3, MEDIEVAL) == 5


def test_points_diminish_with_level():
    points = [calculate_points(7, 12, 20, 150, level, MEDIEVAL) for level in range(10)]
    assert all(later <= earlier for earlier, later in zip(points, points[1:]))
    assert points[-1] < points[0]


def test_points_floor_of_one_only_past_threshold():
    assert calculate_points(5, 0, 0, 0, 400, MEDIEVAL) == 1
    assert calculate_points(0, 0, 0, 0, 0, MEDIEVAL) == 0


def test_can_prestige_requires_threshold_age():
    ledger = PrestigeLedger(UPGRADES)
    assert not ledger.can_prestige(4, MEDIEVAL)
    assert ledger.can_prestige(5, MEDIEVAL)


def test_prestige_banks_points_and_grants_production():
    ledger = PrestigeLedger(UPGRADES)
    ledger.prestige(6)
    ledger.prestige(3)
    assert ledger.level == 2
    assert ledger.available == 9
    assert ledger.total_earned == 9
    assert ledger.bonuses() == {'production_all': pytest.approx(0.04)}


def test_buy_upgrade_errors():
    ledger = PrestigeLedger(UPGRADES)
    with pytest.raises(NotFoundError):
        ledger.buy_upgrade('nope')
    with pytest.raises(InsufficientResourceError, match='need 2 prestige points'):
        ledger.buy_upgrade('gather_boost')
    ledger.prestige(10)
    ledger.buy_upgrade('gather_boost')
    ledger.buy_upgrade('gather_boost')
    assert ledger.available == 4
    with pytest.raises(PreconditionError, match='max tier'):
        ledger.buy_upgrade('gather_boost')
    assert ledger.available == 4


def test_upgrade_effects():
    ledger = PrestigeLedger(UPGRADES)
    ledger.prestige(10)
    ledger.buy_upgrade('gather_boost')
    ledger.buy_upgrade('storage_bonus')
    ledger.buy_upgrade('storage_bonus')
    ledger.buy_upgrade('starting_food')
    bonuses = ledger.bonuses()
    assert bonuses['gather_rate'] == pytest.approx(0.05)
    assert bonuses['all'] == 40
    assert 'food' not in bonuses
    assert ledger.starting_resources() == {'food': 25}


def test_save_state_round_trip():
    ledger = PrestigeLedger(UPGRADES)
    ledger.prestige(5)
    ledger.buy_upgrade('storage_bonus')
    restored = PrestigeLedger(UPGRADES)
    restored.load(ledger.save_state())
    assert restored.level == 1
    assert restored.available == 4
    assert restored.upgrades == {'storage_bonus': 1}
