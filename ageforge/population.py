"""Population roster: workforce counts and per-resource assignments."""
from ageforge.errors import (
    InsufficientResourceError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionError,
)


class VillagerGroup:
    """All villagers of one type."""

    def __init__(self, definition):
        self.key = definition['key']
        self.name = definition.get('name', self.key)
        self.food_cost = float(definition.get('food_cost', 0))
        self.gather_rate = float(definition.get('gather_rate', 0))
        self.can_gather = list(definition.get('can_gather', []))
        self.count = 0
        self.assignments = {}

    @property
    def assigned(self):
        return sum(self.assignments.values())

    @property
    def idle(self):
        return self.count - self.assigned

    def to_dict(self):
        return {
            'key': self.key,
            'name': self.name,
            'count': self.count,
            'idle': self.idle,
            'food_cost': self.food_cost,
            'gather_rate': self.gather_rate,
            'can_gather': list(self.can_gather),
            'assignments': dict(self.assignments),
        }


def _require_positive(count):
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidArgumentError(f"count must be a positive integer, got {count!r}")


class PopulationRoster:
    """Owned villagers by type. Idle count is always count minus assigned."""

    def __init__(self, villager_defs):
        self.order = [definition['key'] for definition in villager_defs]
        self.groups = {definition['key']: VillagerGroup(definition) for definition in villager_defs}
        self.unlocked = set()

    def _group(self, key):
        group = self.groups.get(key)
        if group is None:
            raise NotFoundError(f"unknown villager type '{key}'")
        return group

    def unlock(self, key):
        self._group(key)
        self.unlocked.add(key)

    def is_unlocked(self, key):
        return key in self.unlocked

    def count(self, key):
        group = self.groups.get(key)
        return group.count if group else 0

    def idle(self, key):
        return self._group(key).idle

    def assigned_to(self, key, resource):
        return self._group(key).assignments.get(resource, 0)

    def total_population(self):
        return sum(group.count for group in self.groups.values())

    def recruit(self, key, count, capacity):
        """Add villagers if the type is unlocked and capacity allows."""
        _require_positive(count)
        group = self._group(key)
        if key not in self.unlocked:
            raise PreconditionError(f"villager type '{group.name}' is not yet unlocked")
        population = self.total_population()
        if population + count > capacity:
            raise InsufficientResourceError(
                f"not enough housing: population {population} + {count} exceeds capacity {capacity}"
            )
        group.count += count
        return group.count

    def room_for(self, capacity):
        return max(capacity - self.total_population(), 0)

    def assign(self, key, resource, count):
        _require_positive(count)
        group = self._group(key)
        if resource not in group.can_gather:
            raise PreconditionError(f"{group.name} cannot gather {resource}")
        if group.idle < count:
            raise InsufficientResourceError(
                f"not enough idle {group.name} (have: {group.idle}, need: {count})"
            )
        group.assignments[resource] = group.assignments.get(resource, 0) + count

    def unassign(self, key, resource, count):
        _require_positive(count)
        group = self._group(key)
        current = group.assignments.get(resource, 0)
        if current < count:
            raise InsufficientResourceError(
                f"only {current} {group.name} assigned to {resource} (need: {count})"
            )
        if current == count:
            del group.assignments[resource]
        else:
            group.assignments[resource] = current - count

    def assign_all(self, key, resource):
        """Assign every idle villager of the type. Returns how many moved."""
        idle = self._group(key).idle
        if idle <= 0:
            raise InsufficientResourceError(f"no idle {self._group(key).name} to assign")
        self.assign(key, resource, idle)
        return idle

    def unassign_all(self, key, resource):
        """Return every villager of the type working a resource to idle. Returns how many moved."""
        group = self._group(key)
        moved = group.assignments.get(resource, 0)
        if moved <= 0:
            raise InsufficientResourceError(f"no {group.name} assigned to {resource}")
        del group.assignments[resource]
        return moved

    def remove(self, key, count):
        """Remove up to count villagers, idle ones first. Returns how many were removed."""
        group = self._group(key)
        removed = min(count, group.count)
        group.count -= removed
        excess = group.assigned - group.count
        for resource in list(group.assignments):
            if excess <= 0:
                break
            take = min(excess, group.assignments[resource])
            group.assignments[resource] -= take
            excess -= take
            if group.assignments[resource] == 0:
                del group.assignments[resource]
        return removed

    def production_rates(self):
        """Base gather output: gather_rate x assigned, per resource."""
        rates = {}
        for group in self.groups.values():
            for resource, assigned in group.assignments.items():
                rates[resource] = rates.get(resource, 0.0) + group.gather_rate * assigned
        return rates

    def food_drain(self):
        return sum(group.food_cost * group.count for group in self.groups.values())

    def counts(self):
        return {key: self.groups[key].count for key in self.order}

    def snapshot(self):
        return {
            key: dict(self.groups[key].to_dict(), unlocked=key in self.unlocked)
            for key in self.order
        }

    def save_state(self):
        return {
            key: {
                'count': group.count,
                'food_cost': group.food_cost,
                'assignment': dict(group.assignments),
            }
            for key, group in self.groups.items()
            if group.count > 0 or group.assignments
        }

    def load(self, villagers, unlocked):
        for key in unlocked or []:
            if key in self.groups:
                self.unlocked.add(key)
        for key, info in (villagers or {}).items():
            group = self.groups.get(key)
            if group is None:
                continue
            group.count = int(info.get('count', 0))
            group.assignments = {
                res: int(n) for res, n in info.get('assignment', {}).items()
                if res in group.can_gather and n > 0
            }
