import pytest

from ageforge.errors import InsufficientResourceError, NotFoundError, PreconditionError
from ageforge.research import ResearchTree

AGES = ['primitive_age', 'stone_age']
DEFS = [
    {'key': 'tools', 'name': 'Tools', 'age': 'primitive_age', 'cost': 10, 'research_ticks': 5,
     'prerequisites': [], 'effects': [{'type': 'bonus', 'target': 'gather_rate', 'value': 0.15}]},
    {'key': 'fire', 'name': 'Fire', 'age': 'primitive_age', 'cost': 15, 'research_ticks': 8,
     'prerequisites': ['tools'], 'effects': [{'type': 'production', 'target': 'food', 'value': 0.1}]},
    {'key': 'sharp_tools', 'name': 'Sharp Tools', 'age': 'primitive_age', 'cost': 20, 'research_ticks': 4,
     'prerequisites': ['tools'], 'effects': [{'type': 'bonus', 'target': 'gather_rate', 'value': 0.1},
                                            {'type': 'storage', 'target': 'all', 'value': 25}]},
    {'key': 'masonry', 'name': 'Masonry', 'age': 'stone_age', 'cost': 25, 'research_ticks': 10,
     'prerequisites': [], 'effects': []},
]


@pytest.fixture
def tree():
    return ResearchTree(DEFS)


def test_check_start_failure_reasons(tree):
    with pytest.raises(NotFoundError):
        tree.check_start('nope', 0, AGES, 100)
    with pytest.raises(PreconditionError, match='requires stone_age'):
        tree.check_start('masonry', 0, AGES, 100)
    with pytest.raises(PreconditionError, match="requires 'Tools' first"):
        tree.check_start('fire', 0, AGES, 100)
    with pytest.raises(InsufficientResourceError, match='have: 4, need: 10'):
        tree.check_start('tools', 0, AGES, 4)
    assert tree.check_start('tools', 0, AGES, 10) == 10


def test_cannot_start_while_another_is_in_progress(tree):
    tree.start('tools', 5)
    with pytest.raises(PreconditionError, match='already researching'):
        tree.check_start('masonry', 1, AGES, 100)


def test_tick_completes_and_merges_bonuses(tree):
    tree.start('tools', 2)
    assert tree.tick() is None
    assert tree.current.progress == pytest.approx(0.5)
    assert tree.tick() == 'tools'
    assert tree.current is None
    assert tree.is_researched('tools')
    tree.complete('sharp_tools')
    assert tree.get_bonus('gather_rate') == pytest.approx(0.25)
    assert tree.get_bonus('all') == 25


def test_completed_tech_cannot_be_started_or_completed_again(tree):
    tree.complete('tools')
    tree.complete('tools')
    assert tree.get_bonus('gather_rate') == pytest.approx(0.15)
    with pytest.raises(PreconditionError, match='already researched'):
        tree.check_start('tools', 0, AGES, 100)


def test_production_effects_stay_out_of_bonus_map(tree):
    tree.complete('tools')
    tree.complete('fire')
    assert tree.production_effects() == [('food', 0.1)]
    assert 'food' not in tree.bonuses


def test_cancel_clears_progress(tree):
    with pytest.raises(PreconditionError, match='no research in progress'):
        tree.cancel()
    tree.start('tools', 5)
    tree.tick()
    assert tree.cancel().key == 'tools'
    assert tree.current is None
    assert not tree.is_researched('tools')


def test_research_speed_shortens_but_never_below_one_tick(tree):
    assert tree.research_ticks('masonry') == 10
    assert tree.research_ticks('masonry', 0.25) == 7
    assert tree.research_ticks('masonry', 0.99) == 1


def test_available_respects_age_and_prerequisites(tree):
    assert tree.available(0, AGES) == ['tools']
    tree.complete('tools')
    assert tree.available(1, AGES) == ['fire', 'sharp_tools', 'masonry']


def test_load_rederives_bonuses_and_restores_active_slot(tree):
    tree.complete('tools')
    tree.start('sharp_tools', 4)
    tree.tick()
    restored = ResearchTree(DEFS)
    restored.load(tree.save_state())
    assert restored.get_bonus('gather_rate') == pytest.approx(0.15)
    assert restored.current.key == 'sharp_tools'
    assert restored.current.ticks_left == 3
    assert restored.current.total_ticks == 4
