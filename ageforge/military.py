"""Military office: one expedition at a time and cumulative loot."""
import random
from dataclasses import dataclass, field

from ageforge.errors import InsufficientResourceError, NotFoundError, PreconditionError


@dataclass
class ActiveExpedition:
    key: str
    name: str
    soldiers: int
    ticks_left: int

    def to_dict(self):
        return {'key': self.key, 'name': self.name, 'soldiers': self.soldiers, 'ticks_left': self.ticks_left}


@dataclass
class ExpeditionResult:
    key: str
    name: str
    success: bool
    rewards: dict = field(default_factory=dict)
    soldiers_lost: int = 0


class MilitaryOffice:
    """Launches and resolves expeditions."""

    def __init__(self, expedition_defs, rng=None, min_difficulty=0.05, military_factor=0.3,
                 failure_reward=0.3, success_loss_factor=0.3):
        self.defs = {definition['key']: definition for definition in expedition_defs}
        self.order = [definition['key'] for definition in expedition_defs]
        self.rng = rng or random.Random()
        self.min_difficulty = min_difficulty
        self.military_factor = military_factor
        self.failure_reward = failure_reward
        self.success_loss_factor = success_loss_factor
        self.active = None
        self.completed_count = 0
        self.total_loot = {}

    def launch(self, key, age_index, age_order, soldiers_available):
        if self.active is not None:
            raise PreconditionError(
                f"expedition '{self.active.name}' already in progress ({self.active.ticks_left} ticks left)"
            )
        definition = self.defs.get(key)
        if definition is None:
            raise NotFoundError(f"unknown expedition '{key}'")
        name = definition.get('name', key)
        min_age = definition.get('min_age')
        if min_age and age_order.index(min_age) > age_index:
            raise PreconditionError(f"'{name}' requires {min_age}")
        needed = definition.get('soldiers_needed', 0)
        if soldiers_available < needed:
            raise InsufficientResourceError(f"needs {needed} soldiers (have: {soldiers_available})")
        self.active = ActiveExpedition(key=key, name=name, soldiers=needed,
                                       ticks_left=definition.get('duration', 1))
        return self.active

    def effective_difficulty(self, key, military_bonus):
        base = self.defs[key].get('difficulty', 0.0)
        return max(self.min_difficulty, base - military_bonus * self.military_factor)

    def tick(self, military_bonus=0.0, reward_bonus=0.0):
        """Advance the active expedition. Returns an ExpeditionResult when it resolves."""
        if self.active is None:
            return None
        self.active.ticks_left -= 1
        if self.active.ticks_left > 0:
            return None

        expedition = self.active
        definition = self.defs[expedition.key]
        difficulty = self.effective_difficulty(expedition.key, military_bonus)
        success = self.rng.random() > difficulty

        if success:
            rewards = {res: amount * (1 + reward_bonus) for res, amount in definition.get('rewards', {}).items()}
            lost = 1 if self.rng.random() < difficulty * self.success_loss_factor else 0
        else:
            rewards = {res: amount * self.failure_reward for res, amount in definition.get('rewards', {}).items()}
            lost = min(1 + self.rng.randint(0, 1), expedition.soldiers)

        for res, amount in rewards.items():
            self.total_loot[res] = self.total_loot.get(res, 0.0) + amount
        self.completed_count += 1
        self.active = None
        return ExpeditionResult(key=expedition.key, name=expedition.name, success=success,
                                rewards=rewards, soldiers_lost=lost)

    def available(self, age_index, age_order):
        result = []
        for key in self.order:
            min_age = self.defs[key].get('min_age')
            if not min_age or age_order.index(min_age) <= age_index:
                result.append(key)
        return result

    def snapshot(self, age_index, age_order, soldiers, defense):
        return {
            'active': self.active.to_dict() if self.active else None,
            'completed_count': self.completed_count,
            'total_loot': dict(self.total_loot),
            'soldiers': soldiers,
            'defense_rating': defense,
            'available': [
                {
                    'key': key,
                    'name': self.defs[key].get('name', key),
                    'soldiers_needed': self.defs[key].get('soldiers_needed', 0),
                    'duration': self.defs[key].get('duration', 0),
                    'difficulty': self.defs[key].get('difficulty', 0.0),
                    'rewards': dict(self.defs[key].get('rewards', {})),
                }
                for key in self.available(age_index, age_order)
            ],
        }

    def save_state(self):
        return {
            'active_expedition': self.active.to_dict() if self.active else None,
            'completed_count': self.completed_count,
            'total_loot': dict(self.total_loot),
        }

    def load(self, state):
        active = state.get('active_expedition')
        if active and active.get('key') in self.defs:
            self.active = ActiveExpedition(
                key=active['key'],
                name=active.get('name', active['key']),
                soldiers=int(active.get('soldiers', 0)),
                ticks_left=max(int(active.get('ticks_left', 1)), 1),
            )
        else:
            self.active = None
        self.completed_count = int(state.get('completed_count', 0))
        self.total_loot = {res: float(v) for res, v in state.get('total_loot', {}).items()}


def defense_rating(soldiers, military_bonus, per_soldier=2):
    return soldiers * per_soldier * (1 + military_bonus)
