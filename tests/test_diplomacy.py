import pytest

from ageforge.diplomacy import DiplomacyOffice
from ageforge.errors import InsufficientResourceError, InvalidArgumentError, NotFoundError, PreconditionError

AGES = ['medieval_age', 'colonial_age', 'industrial_age']
FACTIONS = [
    {'key': 'merchant_guild', 'name': 'Merchant Guild', 'min_age': 'colonial_age', 'specialty': 'gold',
     'trade_bonus': 0.20},
    {'key': 'artisan_league', 'name': 'Artisan League', 'min_age': 'industrial_age', 'specialty': 'culture',
     'trade_bonus': 0.15},
]


@pytest.fixture
def diplomacy():
    office = DiplomacyOffice(FACTIONS)
    office.tick(1, 1, AGES)
    return office


def test_factions_are_discovered_by_era():
    office = DiplomacyOffice(FACTIONS)
    assert office.tick(1, 0, AGES) == []
    assert [d['key'] for d in office.tick(2, 1, AGES)] == ['merchant_guild']
    assert office.tick(3, 1, AGES) == []
    assert [d['key'] for d in office.tick(4, 2, AGES)] == ['artisan_league']
    assert office.factions['merchant_guild'].status == 'neutral'


def test_unknown_and_undiscovered_factions(diplomacy):
    with pytest.raises(NotFoundError):
        diplomacy.send_gift('pirates', 1000)
    with pytest.raises(PreconditionError, match='Artisan League has not been discovered yet'):
        diplomacy.set_status('artisan_league', 'rival', 1000)


def test_invalid_status_name(diplomacy):
    with pytest.raises(InvalidArgumentError, match='invalid diplomatic status'):
        diplomacy.set_status('merchant_guild', 'friendly', 1000)
    assert diplomacy.factions['merchant_guild'].status == 'neutral'


def test_gifts_raise_opinion_and_befriend(diplomacy):
    with pytest.raises(InsufficientResourceError, match='have: 150, need: 200'):
        diplomacy.send_gift('merchant_guild', 150)
    assert diplomacy.send_gift('merchant_guild', 200) == 200
    state = diplomacy.factions['merchant_guild']
    assert (state.opinion, state.status) == (15, 'neutral')
    diplomacy.send_gift('merchant_guild', 200)
    assert (state.opinion, state.status) == (30, 'friendly')
    for _ in range(10):
        diplomacy.send_gift('merchant_guild', 200)
    assert state.opinion == 100


def test_alliance_needs_opinion_and_gold(diplomacy):
    with pytest.raises(PreconditionError, match=r'need opinion >= 50 .* \(current: 0\)'):
        diplomacy.set_status('merchant_guild', 'allied', 1000)
    diplomacy.factions['merchant_guild'].opinion = 50
    with pytest.raises(InsufficientResourceError):
        diplomacy.set_status('merchant_guild', 'allied', 499)
    assert diplomacy.trade_bonuses() == {}

    assert diplomacy.set_status('merchant_guild', 'allied', 500) == 500
    assert diplomacy.trade_bonuses() == {'gold': 0.20}
    assert diplomacy.trade_bonus('gold') == 0.20
    assert diplomacy.trade_bonus('culture') == 0.0


def test_hostile_statuses_are_free_and_sour_opinion(diplomacy):
    assert diplomacy.set_status('merchant_guild', 'embargo', 0) == 0
    diplomacy.tick(50, 1, AGES)
    assert diplomacy.factions['merchant_guild'].opinion == -5
    diplomacy.tick(100, 1, AGES)
    # -5 for hostility, then one step of drift back toward zero
    assert diplomacy.factions['merchant_guild'].opinion == -9


def test_opinion_drifts_toward_zero(diplomacy):
    state = diplomacy.factions['merchant_guild']
    state.opinion = 3
    diplomacy.tick(99, 1, AGES)
    assert state.opinion == 3
    diplomacy.tick(100, 1, AGES)
    assert state.opinion == 2


def test_record_trade(diplomacy):
    diplomacy.record_trade()
    state = diplomacy.factions['merchant_guild']
    assert (state.opinion, state.trade_count) == (1, 1)


def test_snapshot_and_save_round_trip(diplomacy):
    diplomacy.send_gift('merchant_guild', 200)
    snapshot = diplomacy.snapshot()['factions']
    assert snapshot['merchant_guild']['discovered'] is True
    assert snapshot['merchant_guild']['opinion'] == 15
    assert snapshot['artisan_league'] == {
        'name': 'Artisan League', 'specialty': 'culture', 'trade_bonus': 0.15,
        'min_age': 'industrial_age', 'discovered': False,
    }

    restored = DiplomacyOffice(FACTIONS)
    restored.load(diplomacy.save_state())
    assert restored.snapshot() == diplomacy.snapshot()
    with pytest.raises(ValueError):
        restored.load({'merchant_guild': {'status': 'at_war'}})
