import random
from pathlib import Path

import pytest

from ageforge.app import create_app
from ageforge.game_data_loader import GameDataLoader
from ageforge.game_engine import SimulationCoordinator
from ageforge.models import db

GAME_DATA_DIR = Path(__file__).resolve().parent.parent / 'game_data'

# Random events never fire unless a test turns them on
QUIET_CONFIG = {'event_fire_chance': 0.0, 'offline_progress': False}


class ScriptedRandom(random.Random):
    """Random source that replays queued values for random() and randint()."""

    def __init__(self, randoms=(), ints=()):
        super().__init__(0)
        self.randoms = list(randoms)
        self.ints = list(ints)

    def random(self):
        if self.randoms:
            return self.randoms.pop(0)
        return super().random()

    def randint(self, a, b):
        if self.ints:
            return min(max(self.ints.pop(0), a), b)
        return super().randint(a, b)


@pytest.fixture(scope='session')
def loader():
    return GameDataLoader(GAME_DATA_DIR)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def engine(loader, rng):
    """Fresh coordinator on the shipped catalog with random events disabled."""
    return SimulationCoordinator('test', dict(QUIET_CONFIG), data_loader=loader, rng=rng)


def unlock_age(engine, age):
    """Move the engine straight into an era, applying every unlock up to it."""
    for key in engine.progression.order[:engine.progression.index(age) + 1]:
        engine._apply_age_unlocks(engine.progression.get(key))
    engine.age = age
    engine._recalculate_rates()


def expand_storage(engine, amount=1e6):
    engine.permanent_bonuses['all'] = engine.permanent_bonuses.get('all', 0.0) + amount
    engine._recalculate_rates()


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
