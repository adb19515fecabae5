"""Research tree: completed technologies and the single in-progress slot."""
from dataclasses import dataclass

from ageforge.errors import (
    InsufficientResourceError,
    NotFoundError,
    PreconditionError,
)


@dataclass
class ActiveResearch:
    key: str
    name: str
    ticks_left: int
    total_ticks: int

    @property
    def progress(self):
        if self.total_ticks <= 0:
            return 1.0
        return (self.total_ticks - self.ticks_left) / self.total_ticks


class ResearchTree:
    """States: idle (current is None) or researching(current)."""

    def __init__(self, tech_defs):
        self.defs = {definition['key']: definition for definition in tech_defs}
        self.order = [definition['key'] for definition in tech_defs]
        self.researched = set()
        self.current = None
        self.bonuses = {}

    def get_def(self, key):
        definition = self.defs.get(key)
        if definition is None:
            raise NotFoundError(f"unknown technology '{key}'")
        return definition

    def is_researched(self, key):
        return key in self.researched

    def count(self):
        return len(self.researched)

    def get_bonus(self, target):
        return self.bonuses.get(target, 0.0)

    def research_ticks(self, key, speed_bonus=0.0):
        ticks = self.get_def(key).get('research_ticks', 1)
        if speed_bonus > 0:
            ticks = int(ticks * (1 - speed_bonus))
        return max(ticks, 1)

    def check_start(self, key, age_index, age_order, knowledge):
        """Raise the first reason the technology cannot be started."""
        tech = self.get_def(key)
        name = tech.get('name', key)
        if key in self.researched:
            raise PreconditionError(f"'{name}' is already researched")
        if self.current is not None:
            raise PreconditionError(
                f"already researching '{self.current.name}' ({self.current.ticks_left} ticks left)"
            )
        required_age = tech.get('age')
        if required_age and age_order.index(required_age) > age_index:
            raise PreconditionError(f"'{name}' requires {required_age}")
        for prereq in tech.get('prerequisites', []):
            if prereq not in self.researched:
                prereq_name = self.defs.get(prereq, {}).get('name', prereq)
                raise PreconditionError(f"'{name}' requires '{prereq_name}' first")
        cost = float(tech.get('cost', 0))
        if knowledge < cost:
            raise InsufficientResourceError(
                f"not enough knowledge (have: {knowledge:.0f}, need: {cost:.0f})"
            )
        return cost

    def start(self, key, ticks):
        tech = self.get_def(key)
        self.current = ActiveResearch(key=key, name=tech.get('name', key), ticks_left=ticks, total_ticks=ticks)
        return self.current

    def cancel(self):
        """Abandon the active research. Nothing is refunded."""
        if self.current is None:
            raise PreconditionError("no research in progress")
        cancelled = self.current
        self.current = None
        return cancelled

    def tick(self):
        """Advance the active research. Returns the completed key, if any."""
        if self.current is None:
            return None
        self.current.ticks_left -= 1
        if self.current.ticks_left > 0:
            return None
        key = self.current.key
        self.current = None
        self.complete(key)
        return key

    def complete(self, key):
        if key in self.researched:
            return
        self.researched.add(key)
        self._merge_effects(key)

    def _merge_effects(self, key):
        # production effects are read per tick from production_effects()
        for effect in self.defs[key].get('effects', []):
            if effect['type'] == 'production':
                continue
            target = effect['target']
            self.bonuses[target] = self.bonuses.get(target, 0.0) + effect['value']

    def production_effects(self):
        """(target, value) pairs from researched technologies' production effects."""
        effects = []
        for key in self.order:
            if key not in self.researched:
                continue
            for effect in self.defs[key].get('effects', []):
                if effect['type'] == 'production':
                    effects.append((effect['target'], effect['value']))
        return effects

    def available(self, age_index, age_order):
        """Technologies that could be started now, ignoring knowledge."""
        result = []
        for key in self.order:
            tech = self.defs[key]
            if key in self.researched:
                continue
            required_age = tech.get('age')
            if required_age and age_order.index(required_age) > age_index:
                continue
            if all(prereq in self.researched for prereq in tech.get('prerequisites', [])):
                result.append(key)
        return result

    def snapshot(self, age_index, age_order, knowledge):
        current = None
        if self.current is not None:
            current = {
                'key': self.current.key,
                'name': self.current.name,
                'ticks_left': self.current.ticks_left,
                'total_ticks': self.current.total_ticks,
                'progress': self.current.progress,
            }
        return {
            'researched': [key for key in self.order if key in self.researched],
            'current': current,
            'bonuses': dict(self.bonuses),
            'available': [
                {
                    'key': key,
                    'name': self.defs[key].get('name', key),
                    'cost': self.defs[key].get('cost', 0),
                    'research_ticks': self.defs[key].get('research_ticks', 1),
                    'affordable': knowledge >= self.defs[key].get('cost', 0),
                }
                for key in self.available(age_index, age_order)
            ],
            'total': len(self.order),
        }

    def save_state(self):
        return {
            'researched': [key for key in self.order if key in self.researched],
            'current_tech': self.current.key if self.current else '',
            'ticks_left': self.current.ticks_left if self.current else 0,
            'total_ticks': self.current.total_ticks if self.current else 0,
        }

    def load(self, state):
        """Restore researched set and active slot; bonuses are re-derived."""
        self.researched = set()
        self.bonuses = {}
        for key in state.get('researched', []):
            if key in self.defs:
                self.complete(key)
        current = state.get('current_tech')
        if current and current in self.defs:
            total = int(state.get('total_ticks') or 0)
            left = int(state.get('ticks_left') or 0)
            self.current = ActiveResearch(
                key=current,
                name=self.defs[current].get('name', current),
                ticks_left=max(left, 1),
                total_ticks=max(total, left, 1),
            )
        else:
            self.current = None
