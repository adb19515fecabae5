"""Prestige ledger: level, banked points and permanent upgrades."""
import math

from ageforge.errors import InsufficientResourceError, NotFoundError, PreconditionError


def calculate_points(age_index, milestones_completed, techs_researched, buildings_built, level,
                     min_age_index):
    """Points earned by prestiging now, with diminishing returns per level."""
    raw = age_index + milestones_completed / 10 + techs_researched / 15 + buildings_built / 50
    points = int(math.floor(raw / math.sqrt(level + 1)))
    if points < 1 and age_index >= min_age_index:
        points = 1
    return points


class PrestigeLedger:
    """The only subsystem that survives a prestige reset."""

    def __init__(self, upgrade_defs, production_per_level=0.02):
        self.defs = {definition['key']: definition for definition in upgrade_defs}
        self.order = [definition['key'] for definition in upgrade_defs]
        self.production_per_level = production_per_level
        self.level = 0
        self.total_earned = 0
        self.available = 0
        self.upgrades = {}

    def can_prestige(self, age_index, min_age_index):
        return age_index >= min_age_index

    def prestige(self, points):
        self.level += 1
        self.total_earned += points
        self.available += points

    def upgrade_cost(self, key):
        """Cost of the next tier, or None at max tier."""
        definition = self.defs[key]
        tier = self.upgrades.get(key, 0)
        if tier >= definition.get('max_tier', 0):
            return None
        return definition['costs'][tier]

    def buy_upgrade(self, key):
        definition = self.defs.get(key)
        if definition is None:
            raise NotFoundError(f"unknown prestige upgrade '{key}'")
        name = definition.get('name', key)
        cost = self.upgrade_cost(key)
        if cost is None:
            raise PreconditionError(f"'{name}' is already at max tier ({definition.get('max_tier', 0)})")
        if self.available < cost:
            raise InsufficientResourceError(f"need {cost} prestige points (have: {self.available})")
        self.available -= cost
        self.upgrades[key] = self.upgrades.get(key, 0) + 1
        return self.upgrades[key]

    def bonuses(self):
        """Bonus map contributed by prestige level and rate/flat upgrades."""
        result = {}
        if self.level > 0:
            result['production_all'] = self.level * self.production_per_level
        for key, tier in self.upgrades.items():
            definition = self.defs.get(key)
            if definition is None or tier <= 0:
                continue
            if definition.get('effect_type') in ('rate_bonus', 'flat_bonus'):
                target = definition['effect_key']
                result[target] = result.get(target, 0.0) + definition.get('per_tier', 0) * tier
        return result

    def get_bonus(self, key):
        return self.bonuses().get(key, 0.0)

    def starting_resources(self):
        result = {}
        for key, tier in self.upgrades.items():
            definition = self.defs.get(key)
            if definition and definition.get('effect_type') == 'starting_resource' and tier > 0:
                target = definition['effect_key']
                result[target] = result.get(target, 0.0) + definition.get('per_tier', 0) * tier
        return result

    def snapshot(self, age_index, min_age_index, pending_points):
        return {
            'level': self.level,
            'total_earned': self.total_earned,
            'available': self.available,
            'can_prestige': self.can_prestige(age_index, min_age_index),
            'pending_points': pending_points,
            'bonuses': self.bonuses(),
            'upgrades': [
                {
                    'key': key,
                    'name': self.defs[key].get('name', key),
                    'description': self.defs[key].get('description', ''),
                    'tier': self.upgrades.get(key, 0),
                    'max_tier': self.defs[key].get('max_tier', 0),
                    'next_cost': self.upgrade_cost(key),
                }
                for key in self.order
            ],
        }

    def save_state(self):
        return {
            'level': self.level,
            'total_earned': self.total_earned,
            'available': self.available,
            'upgrades': dict(self.upgrades),
        }

    def load(self, state):
        self.level = int(state.get('level', 0))
        self.total_earned = int(state.get('total_earned', 0))
        self.available = int(state.get('available', 0))
        self.upgrades = {
            key: min(int(tier), self.defs[key].get('max_tier', 0))
            for key, tier in state.get('upgrades', {}).items()
            if key in self.defs
        }
