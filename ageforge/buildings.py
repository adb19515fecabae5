"""Building registry: owned counts, unlocks and scaling costs."""
import difflib
import math

from ageforge.errors import NotFoundError


class BuildingRegistry:
    """Tracks how many of each building type exist and which are unlocked."""

    def __init__(self, building_defs, upgrade_defs=()):
        self.defs = {definition['key']: definition for definition in building_defs}
        self.order = [definition['key'] for definition in building_defs]
        self.counts = {key: 0 for key in self.order}
        self.unlocked = set()
        # source building -> upgrade path
        self.upgrades = {upgrade['from']: upgrade for upgrade in upgrade_defs}

    def get_def(self, key):
        definition = self.defs.get(key)
        if definition is None:
            raise NotFoundError(self.unknown_message(key))
        return definition

    def unknown_message(self, key):
        suggestion = self.suggest_key(key)
        if suggestion:
            return f"unknown building '{key}' (did you mean '{suggestion}'?)"
        return f"unknown building '{key}'"

    def suggest_key(self, key):
        """Closest known building key, or None."""
        matches = difflib.get_close_matches(str(key), self.order, n=1, cutoff=0.6)
        return matches[0] if matches else None

    def unlock(self, key):
        self.get_def(key)
        self.unlocked.add(key)

    def is_unlocked(self, key):
        return key in self.unlocked

    def get_count(self, key):
        return self.counts.get(key, 0)

    def add(self, key, count=1):
        self.get_def(key)
        self.counts[key] = self.counts.get(key, 0) + count
        return self.counts[key]

    def total_count(self):
        return sum(self.counts.values())

    def cost_at(self, key, owned):
        """Cost of the unit bought when `owned` already exist: floor(base * scale^owned)."""
        definition = self.get_def(key)
        scale = definition.get('cost_scale', 1.0)
        return {
            res: float(math.floor(base * scale ** owned))
            for res, base in definition.get('base_cost', {}).items()
        }

    def get_cost(self, key):
        return self.cost_at(key, self.get_count(key))

    def at_max(self, key, pending=0):
        max_count = self.get_def(key).get('max_count', 0)
        return max_count > 0 and self.get_count(key) + pending >= max_count

    def get_upgrade(self, from_key):
        upgrade = self.upgrades.get(from_key)
        if upgrade is None:
            self.get_def(from_key)
            raise NotFoundError(f"no upgrade path for '{from_key}'")
        return upgrade

    def upgrade_cost(self, from_key):
        """Price of converting one unit: a fraction of the target's base cost."""
        upgrade = self.get_upgrade(from_key)
        target = self.get_def(upgrade['to'])
        scale = upgrade.get('cost_scale', 0.25)
        return {res: base * scale for res, base in target.get('base_cost', {}).items()}

    def upgrade(self, from_key, ledger, pending=0):
        """Convert owned units to the next tier one at a time.

        Each unit is paid for all-or-nothing; conversion stops when the ledger
        runs dry or the target reaches its max_count. Returns how many converted.
        """
        to_key = self.get_upgrade(from_key)['to']
        cost = self.upgrade_cost(from_key)
        self.unlocked.add(to_key)
        converted = 0
        while self.get_count(from_key) > 0 and not self.at_max(to_key, pending):
            if not ledger.pay(cost):
                break
            self.counts[from_key] -= 1
            self.counts[to_key] = self.get_count(to_key) + 1
            converted += 1
        return converted

    def _effect_totals(self, effect_type, target=None):
        totals = {}
        for key, count in self.counts.items():
            if count <= 0:
                continue
            for effect in self.defs[key].get('effects', []):
                if effect['type'] != effect_type:
                    continue
                if target is not None and effect['target'] != target:
                    continue
                totals[effect['target']] = totals.get(effect['target'], 0.0) + effect['value'] * count
        return totals

    def production_rates(self):
        """Per-resource production from 'production' effects scaled by count."""
        return self._effect_totals('production')

    def storage_bonuses(self):
        """Storage bonuses keyed by target ('all' or a resource key)."""
        return self._effect_totals('storage')

    def population_capacity(self):
        capacity = 0
        for key, count in self.counts.items():
            if count <= 0:
                continue
            for effect in self.defs[key].get('effects', []):
                if effect['type'] == 'capacity' and effect['target'] == 'population':
                    capacity += int(effect['value']) * count
        return capacity

    def wonder_count(self):
        """Number of distinct wonder types built."""
        return sum(
            1 for key, count in self.counts.items()
            if count > 0 and self.defs[key].get('category') == 'wonder'
        )

    def snapshot(self):
        return {
            key: {
                'name': self.defs[key].get('name', key),
                'category': self.defs[key].get('category'),
                'count': self.counts[key],
                'unlocked': key in self.unlocked,
                'max_count': self.defs[key].get('max_count', 0),
                'build_ticks': self.defs[key].get('build_ticks', 0),
                'next_cost': self.get_cost(key),
            }
            for key in self.order
        }

    def load(self, counts, unlocked):
        for key, count in (counts or {}).items():
            if key in self.defs:
                self.counts[key] = int(count)
        for key in unlocked or []:
            if key in self.defs:
                self.unlocked.add(key)
