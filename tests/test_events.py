from conftest import ScriptedRandom

from ageforge.events import EventScheduler

AGES = ['primitive_age', 'stone_age']
DEFS = [
    {'key': 'harvest', 'name': 'Harvest', 'min_age': 'primitive_age', 'weight': 10, 'min_tick': 5,
     'cooldown': 20, 'duration': 0, 'sentiment': 'good',
     'effects': [{'type': 'instant_resource', 'target': 'food', 'value': 25}]},
    {'key': 'drought', 'name': 'Drought', 'min_age': 'primitive_age', 'weight': 30, 'min_tick': 0,
     'cooldown': 10, 'duration': 3, 'sentiment': 'bad',
     'effects': [{'type': 'production', 'target': 'food', 'value': -0.5}]},
    {'key': 'plague', 'name': 'Plague', 'min_age': 'stone_age', 'weight': 5, 'min_tick': 0,
     'cooldown': 0, 'duration': 2, 'sentiment': 'bad',
     'effects': [{'type': 'production', 'target': 'food', 'value': -1.0}]},
]


def keys(definitions):
    return [d['key'] for d in definitions]


def test_eligibility_checks_tick_age_cooldown_and_activity():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom())
    assert keys(scheduler.eligible(1, 0, AGES)) == ['drought']
    assert keys(scheduler.eligible(5, 1, AGES)) == ['harvest', 'drought', 'plague']

    scheduler.fire(DEFS[1], 5)
    assert keys(scheduler.eligible(6, 1, AGES)) == ['harvest', 'plague']
    scheduler.active = []
    assert 'drought' not in keys(scheduler.eligible(14, 1, AGES))
    assert 'drought' in keys(scheduler.eligible(15, 1, AGES))


def test_weighted_pick_walks_cumulative_weights():
    candidates = DEFS[:2]
    assert EventScheduler(DEFS, rng=ScriptedRandom(ints=[10])).pick(candidates)['key'] == 'harvest'
    assert EventScheduler(DEFS, rng=ScriptedRandom(ints=[11])).pick(candidates)['key'] == 'drought'


def test_gate_blocks_picked_event():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom(randoms=[0.08], ints=[1]), fire_chance=0.08)
    expired, fired = scheduler.tick(10, 0, AGES)
    assert fired is None
    assert scheduler.total_fired == 0


def test_gate_passes_and_durable_effects_become_active():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom(randoms=[0.01], ints=[40]), fire_chance=0.08)
    _, fired = scheduler.tick(10, 0, AGES)
    assert fired['key'] == 'drought'
    assert scheduler.is_active('drought')
    assert scheduler.active_effects('production') == [{'type': 'production', 'target': 'food', 'value': -0.5}]
    assert scheduler.bad_streak == 1


def test_instant_only_events_are_not_added_to_active_pool():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom())
    scheduler.fire(DEFS[0], 7)
    assert scheduler.active == []
    assert scheduler.last_fired == {'harvest': 7}
    assert scheduler.good_streak == 1


def test_active_events_expire_after_duration():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom(), fire_chance=0.0)
    scheduler.fire(DEFS[1], 0)
    assert scheduler.expire() == []
    assert scheduler.expire() == []
    expired = scheduler.expire()
    assert [event.key for event in expired] == ['drought']
    assert scheduler.active == []


def test_inject_replaces_existing_modifier_with_same_key():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom())
    effect = {'type': 'tick_speed', 'target': 'tick', 'value': 0.1}
    scheduler.inject('chain_boost', 'Boost', 5, [effect])
    scheduler.inject('chain_boost', 'Boost', 8, [effect])
    assert len(scheduler.active) == 1
    assert scheduler.active[0].ticks_left == 8
    assert scheduler.active_effects('tick_speed') == [effect]


def test_save_state_round_trip():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom())
    scheduler.fire(DEFS[1], 12)
    restored = EventScheduler(DEFS, rng=ScriptedRandom())
    restored.load(scheduler.save_state())
    assert restored.last_fired == {'drought': 12}
    assert restored.is_active('drought')
    assert restored.total_fired == 1


def test_two_bad_events_in_a_row_force_a_good_one():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom(randoms=[0.0], ints=[40]), fire_chance=0.08)
    scheduler.bad_streak = 2
    assert scheduler.required_sentiment() == 'good'
    assert keys(scheduler.eligible(10, 1, AGES, 'good')) == ['harvest']

    _, fired = scheduler.tick(10, 0, AGES)
    assert fired['key'] == 'harvest'
    assert (scheduler.good_streak, scheduler.bad_streak) == (1, 0)


def test_three_good_events_force_a_bad_one():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom(ints=[50]))
    for tick in (5, 30, 60):
        scheduler.fire(DEFS[0], tick)
    assert scheduler.good_streak == 3
    assert scheduler.required_sentiment() == 'bad'
    assert keys(scheduler.eligible(100, 1, AGES, 'bad')) == ['drought', 'plague']
    # asking again does not roll for a reset
    assert scheduler.required_sentiment() == 'bad'


def test_lucky_roll_clears_the_good_streak():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom(ints=[2]))
    for tick in (5, 30, 60):
        scheduler.fire(DEFS[0], tick)
    assert scheduler.good_streak == 0
    assert scheduler.required_sentiment() is None


def test_mixed_events_reset_both_streaks():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom())
    scheduler.bad_streak = 1
    scheduler.fire({'key': 'earthquake', 'sentiment': 'mixed', 'effects': []}, 3)
    assert (scheduler.good_streak, scheduler.bad_streak) == (0, 0)


def test_streaks_survive_a_save():
    scheduler = EventScheduler(DEFS, rng=ScriptedRandom())
    scheduler.fire(DEFS[1], 1)
    scheduler.active = []
    scheduler.fire(DEFS[1], 20)
    restored = EventScheduler(DEFS, rng=ScriptedRandom())
    restored.load(scheduler.save_state())
    assert restored.bad_streak == 2
    assert restored.required_sentiment() == 'good'
