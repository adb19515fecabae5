"""Resource ledger: amount, rate and storage cap per resource key."""
from dataclasses import dataclass, field

from ageforge.errors import NotFoundError


@dataclass
class RateBreakdown:
    """Where a resource's per-tick rate comes from."""
    building: float = 0.0
    villager: float = 0.0
    research: float = 0.0
    event: float = 0.0
    trade: float = 0.0
    food_drain: float = 0.0
    bonus: float = 0.0

    def to_dict(self):
        return {
            'building': self.building,
            'villager': self.villager,
            'research': self.research,
            'event': self.event,
            'trade': self.trade,
            'food_drain': self.food_drain,
            'bonus': self.bonus,
        }


@dataclass
class Resource:
    key: str
    name: str
    base_storage: float
    amount: float = 0.0
    rate: float = 0.0
    storage: float = 0.0
    unlocked: bool = False
    breakdown: RateBreakdown = field(default_factory=RateBreakdown)

    def to_dict(self):
        return {
            'key': self.key,
            'name': self.name,
            'amount': self.amount,
            'rate': self.rate,
            'storage': self.storage,
            'unlocked': self.unlocked,
            'breakdown': self.breakdown.to_dict(),
        }


class ResourceLedger:
    """Every catalog resource exists from world creation; unlocking gates use."""

    def __init__(self, resource_defs):
        self.order = []
        self.resources = {}
        for definition in resource_defs:
            key = definition['key']
            base = float(definition.get('base_storage', 0))
            self.order.append(key)
            self.resources[key] = Resource(
                key=key,
                name=definition.get('name', key),
                base_storage=base,
                storage=base,
            )

    def _get(self, key):
        resource = self.resources.get(key)
        if resource is None:
            raise NotFoundError(f"unknown resource '{key}'")
        return resource

    def __contains__(self, key):
        return key in self.resources

    def keys(self):
        return list(self.order)

    def unlock(self, key):
        self._get(key).unlocked = True

    def is_unlocked(self, key):
        resource = self.resources.get(key)
        return resource is not None and resource.unlocked

    def unlocked_keys(self):
        return [key for key in self.order if self.resources[key].unlocked]

    def get(self, key):
        """Current amount, 0 for unknown keys."""
        resource = self.resources.get(key)
        return resource.amount if resource else 0.0

    def get_rate(self, key):
        resource = self.resources.get(key)
        return resource.rate if resource else 0.0

    def get_storage(self, key):
        return self._get(key).storage

    def add(self, key, amount):
        """Add (or subtract, for negative amounts) clamped to [0, storage]. Returns the new amount."""
        resource = self._get(key)
        resource.amount = min(max(resource.amount + amount, 0.0), resource.storage)
        return resource.amount

    def remove(self, key, amount):
        """Take amount if fully available. Returns False and changes nothing otherwise."""
        resource = self._get(key)
        if resource.amount < amount:
            return False
        resource.amount -= amount
        return True

    def can_afford(self, costs):
        return all(self.get(key) >= amount for key, amount in costs.items())

    def shortfall(self, costs):
        """Map of resource -> (have, need) for every cost not covered."""
        return {
            key: (self.get(key), amount)
            for key, amount in costs.items()
            if self.get(key) < amount
        }

    def pay(self, costs):
        """All-or-nothing payment of a cost vector."""
        if not self.can_afford(costs):
            return False
        for key, amount in costs.items():
            self.resources[key].amount -= amount
        return True

    def reset_rates(self):
        for resource in self.resources.values():
            resource.rate = 0.0
            resource.breakdown = RateBreakdown()

    def set_rate(self, key, rate, breakdown=None):
        resource = self._get(key)
        resource.rate = rate
        if breakdown is not None:
            resource.breakdown = breakdown

    def set_storage(self, key, storage):
        """Replace the storage cap; the amount is clamped to the new cap."""
        resource = self._get(key)
        resource.storage = max(storage, 0.0)
        if resource.amount > resource.storage:
            resource.amount = resource.storage

    def apply_rates(self, multiplier=1.0):
        """Apply one tick of production to unlocked resources.

        Returns the keys of resources that hit zero this tick while draining.
        """
        depleted = []
        for key in self.order:
            resource = self.resources[key]
            if not resource.unlocked or resource.rate == 0:
                continue
            before = resource.amount
            resource.amount = min(max(before + resource.rate * multiplier, 0.0), resource.storage)
            if before > 0 and resource.amount == 0:
                depleted.append(key)
        return depleted

    def snapshot(self):
        return {key: self.resources[key].to_dict() for key in self.order}

    def amounts(self):
        return {key: self.resources[key].amount for key in self.order}

    def storages(self):
        return {key: self.resources[key].storage for key in self.order}

    def base_storages(self):
        return {key: self.resources[key].base_storage for key in self.order}

    def load(self, amounts, storages, unlocked):
        """Restore saved amounts and unlock flags. Unknown keys are ignored."""
        for key, storage in (storages or {}).items():
            if key in self.resources:
                self.resources[key].storage = float(storage)
        for key in unlocked or []:
            if key in self.resources:
                self.resources[key].unlocked = True
        for key, amount in (amounts or {}).items():
            if key in self.resources:
                resource = self.resources[key]
                resource.amount = min(max(float(amount), 0.0), resource.storage)
