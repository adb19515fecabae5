"""NPC factions: discovery by era, diplomatic status, opinion and allied trade bonuses."""
from dataclasses import dataclass

from ageforge.errors import InsufficientResourceError, InvalidArgumentError, NotFoundError, PreconditionError

NEUTRAL = 'neutral'
FRIENDLY = 'friendly'
ALLIED = 'allied'
RIVAL = 'rival'
EMBARGO = 'embargo'

# Statuses a player may choose; friendly is only reached through gifts
SETTABLE_STATUSES = (ALLIED, RIVAL, EMBARGO, NEUTRAL)
HOSTILE_STATUSES = (RIVAL, EMBARGO)

MIN_OPINION = -100
MAX_OPINION = 100


@dataclass
class FactionState:
    opinion: int = 0
    status: str = NEUTRAL
    trade_count: int = 0

    def to_dict(self):
        return {'opinion': self.opinion, 'status': self.status, 'trade_count': self.trade_count}


def _clamp_opinion(value):
    return max(MIN_OPINION, min(MAX_OPINION, value))


class DiplomacyOffice:
    """Relations with every discovered faction."""

    def __init__(self, faction_defs, ally_cost=500, ally_min_opinion=50, gift_cost=200, gift_opinion=15,
                 friendly_opinion=25, hostility_interval=50, hostility_penalty=5, drift_interval=100):
        self.defs = {definition['key']: definition for definition in faction_defs}
        self.order = [definition['key'] for definition in faction_defs]
        self.ally_cost = ally_cost
        self.ally_min_opinion = ally_min_opinion
        self.gift_cost = gift_cost
        self.gift_opinion = gift_opinion
        self.friendly_opinion = friendly_opinion
        self.hostility_interval = hostility_interval
        self.hostility_penalty = hostility_penalty
        self.drift_interval = drift_interval
        self.factions = {}

    def _discovered(self, key):
        definition = self.defs.get(key)
        if definition is None:
            raise NotFoundError(f"unknown faction '{key}'")
        state = self.factions.get(key)
        if state is None:
            raise PreconditionError(f"{definition.get('name', key)} has not been discovered yet")
        return definition, state

    def discover(self, age_index, age_order):
        """Meet every faction whose era has been reached. Returns the new definitions."""
        found = []
        for key in self.order:
            definition = self.defs[key]
            if key in self.factions or age_order.index(definition['min_age']) > age_index:
                continue
            self.factions[key] = FactionState()
            found.append(definition)
        return found

    def set_status(self, key, status, gold):
        """Change relations with a faction. Returns the gold cost to charge."""
        definition, state = self._discovered(key)
        name = definition.get('name', key)
        if status not in SETTABLE_STATUSES:
            raise InvalidArgumentError(
                f"invalid diplomatic status '{status}' (valid: {', '.join(SETTABLE_STATUSES)})"
            )
        cost = 0
        if status == ALLIED:
            if state.opinion < self.ally_min_opinion:
                raise PreconditionError(
                    f"need opinion >= {self.ally_min_opinion} to ally with {name} (current: {state.opinion})"
                )
            cost = self.ally_cost
        if gold < cost:
            raise InsufficientResourceError(f"not enough gold (have: {gold:.0f}, need: {cost})")
        state.status = status
        return cost

    def send_gift(self, key, gold):
        """Raise a faction's opinion of us. Returns the gold cost to charge."""
        _, state = self._discovered(key)
        if gold < self.gift_cost:
            raise InsufficientResourceError(
                f"not enough gold to send gift (have: {gold:.0f}, need: {self.gift_cost})"
            )
        state.opinion = _clamp_opinion(state.opinion + self.gift_opinion)
        if state.status == NEUTRAL and state.opinion >= self.friendly_opinion:
            state.status = FRIENDLY
        return self.gift_cost

    def trade_bonus(self, resource):
        return sum(
            self.defs[key].get('trade_bonus', 0.0)
            for key, state in self.factions.items()
            if state.status == ALLIED and self.defs[key].get('specialty') == resource
        )

    def trade_bonuses(self):
        """Specialty resource -> summed bonus over allied factions."""
        bonuses = {}
        for key, state in self.factions.items():
            if state.status != ALLIED:
                continue
            definition = self.defs[key]
            specialty = definition.get('specialty')
            bonuses[specialty] = bonuses.get(specialty, 0.0) + definition.get('trade_bonus', 0.0)
        return bonuses

    def record_trade(self):
        """A completed trade cycle pleases every known faction a little."""
        for state in self.factions.values():
            state.trade_count += 1
            state.opinion = _clamp_opinion(state.opinion + 1)

    def tick(self, tick, age_index, age_order):
        """Discover factions and drift opinions. Returns newly discovered definitions."""
        found = self.discover(age_index, age_order)
        for state in self.factions.values():
            if tick % self.hostility_interval == 0 and state.status in HOSTILE_STATUSES:
                state.opinion = _clamp_opinion(state.opinion - self.hostility_penalty)
            if tick % self.drift_interval == 0:
                if state.opinion > 0:
                    state.opinion -= 1
                elif state.opinion < 0:
                    state.opinion += 1
        return found

    def snapshot(self):
        factions = {}
        for key in self.order:
            definition = self.defs[key]
            state = self.factions.get(key)
            info = {
                'name': definition.get('name', key),
                'specialty': definition.get('specialty'),
                'trade_bonus': definition.get('trade_bonus', 0.0),
                'min_age': definition.get('min_age'),
                'discovered': state is not None,
            }
            if state is not None:
                info.update(state.to_dict())
            factions[key] = info
        return {'factions': factions}

    def save_state(self):
        return {key: state.to_dict() for key, state in self.factions.items()}

    def load(self, state):
        self.factions = {}
        for key, entry in state.items():
            if key not in self.defs:
                continue
            status = entry.get('status', NEUTRAL)
            if status not in SETTABLE_STATUSES and status != FRIENDLY:
                raise ValueError(f"unknown diplomatic status '{status}' for faction '{key}'")
            self.factions[key] = FactionState(
                opinion=_clamp_opinion(int(entry.get('opinion', 0))),
                status=status,
                trade_count=int(entry.get('trade_count', 0)),
            )
