"""Random event scheduler: cooldowns, weighted picks and timed modifiers."""
import logging
import random
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

INSTANT_EFFECTS = ('instant_resource', 'steal_resource')

# Streak limits that force the next event's mood
MAX_BAD_STREAK = 2
MAX_GOOD_STREAK = 3
STREAK_RESET_PERCENT = 3


@dataclass
class ActiveEvent:
    key: str
    name: str
    ticks_left: int
    effects: list = field(default_factory=list)

    def to_dict(self):
        return {
            'key': self.key,
            'name': self.name,
            'ticks_left': self.ticks_left,
            'effects': [dict(effect) for effect in self.effects],
        }


class EventScheduler:
    """Rolls random events once per tick and tracks timed ones until they expire."""

    def __init__(self, event_defs, rng=None, fire_chance=0.08):
        self.defs = {definition['key']: definition for definition in event_defs}
        self.order = [definition['key'] for definition in event_defs]
        self.rng = rng or random.Random()
        self.fire_chance = fire_chance
        self.last_fired = {}
        self.active = []
        self.total_fired = 0
        self.good_streak = 0
        self.bad_streak = 0

    def is_active(self, key):
        return any(event.key == key for event in self.active)

    def expire(self):
        """Decrement active events and drop the ones that ran out."""
        expired = []
        remaining = []
        for event in self.active:
            event.ticks_left -= 1
            if event.ticks_left <= 0:
                expired.append(event)
            else:
                remaining.append(event)
        self.active = remaining
        return expired

    def required_sentiment(self):
        """Mood the next event must not contradict, or None when any will do.

        Two bad events in a row force a good one; three good ones force a bad one.
        """
        if self.bad_streak >= MAX_BAD_STREAK:
            return 'good'
        if self.good_streak >= MAX_GOOD_STREAK:
            return 'bad'
        return None

    def eligible(self, tick, age_index, age_order, sentiment=None):
        """Events that may fire now. A sentiment of 'good' drops bad events and vice versa."""
        result = []
        for key in self.order:
            definition = self.defs[key]
            if sentiment == 'good' and definition.get('sentiment') == 'bad':
                continue
            if sentiment == 'bad' and definition.get('sentiment') == 'good':
                continue
            if tick < definition.get('min_tick', 0):
                continue
            min_age = definition.get('min_age')
            if min_age and age_order.index(min_age) > age_index:
                continue
            last = self.last_fired.get(key)
            if last is not None and tick - last < definition.get('cooldown', 0):
                continue
            if self.is_active(key):
                continue
            result.append(definition)
        return result

    def pick(self, candidates):
        """Weighted random choice among candidates."""
        total = sum(max(c.get('weight', 0), 0) for c in candidates)
        if total <= 0:
            return None
        roll = self.rng.randint(1, total)
        for candidate in candidates:
            roll -= max(candidate.get('weight', 0), 0)
            if roll <= 0:
                return candidate
        return candidates[-1]

    def tick(self, tick, age_index, age_order):
        """Expire timed events, then maybe fire one.

        Returns (expired ActiveEvents, fired definition or None). Instant
        effects of the fired event are left to the caller.
        """
        expired = self.expire()
        candidates = self.eligible(tick, age_index, age_order, self.required_sentiment())
        if not candidates:
            return expired, None
        chosen = self.pick(candidates)
        if chosen is None or self.rng.random() >= self.fire_chance:
            return expired, None
        self.fire(chosen, tick)
        return expired, chosen

    def fire(self, definition, tick):
        key = definition['key']
        self.last_fired[key] = tick
        self.total_fired += 1
        sentiment = definition.get('sentiment')
        if sentiment == 'good':
            self.good_streak += 1
            self.bad_streak = 0
            # Rolled once per streak that reaches the limit, not once per tick
            if self.good_streak >= MAX_GOOD_STREAK and self.rng.randint(0, 99) < STREAK_RESET_PERCENT:
                self.good_streak = 0
        elif sentiment == 'bad':
            self.bad_streak += 1
            self.good_streak = 0
        else:
            self.good_streak = 0
            self.bad_streak = 0
        durable = [e for e in definition.get('effects', []) if e['type'] not in INSTANT_EFFECTS]
        if definition.get('duration', 0) > 0 and durable:
            self.active.append(ActiveEvent(
                key=key,
                name=definition.get('name', key),
                ticks_left=definition['duration'],
                effects=[dict(effect) for effect in durable],
            ))
        logger.debug("Event %s fired at tick %d", key, tick)

    def inject(self, key, name, duration, effects):
        """Add a timed modifier that did not come from the random roll."""
        self.active = [event for event in self.active if event.key != key]
        self.active.append(ActiveEvent(key=key, name=name, ticks_left=duration,
                                       effects=[dict(effect) for effect in effects]))

    def active_effects(self, effect_type=None):
        effects = []
        for event in self.active:
            for effect in event.effects:
                if effect_type is None or effect['type'] == effect_type:
                    effects.append(effect)
        return effects

    def snapshot(self):
        return {
            'active': [event.to_dict() for event in self.active],
            'last_fired': dict(self.last_fired),
            'total_fired': self.total_fired,
        }

    def save_state(self):
        return {
            'last_fired': dict(self.last_fired),
            'active': [event.to_dict() for event in self.active],
            'total_fired': self.total_fired,
            'good_streak': self.good_streak,
            'bad_streak': self.bad_streak,
        }

    def load(self, state):
        self.last_fired = {key: int(tick) for key, tick in state.get('last_fired', {}).items()}
        self.active = [
            ActiveEvent(
                key=item['key'],
                name=item.get('name', item['key']),
                ticks_left=int(item['ticks_left']),
                effects=list(item.get('effects', [])),
            )
            for item in state.get('active', [])
            if int(item.get('ticks_left', 0)) > 0
        ]
        self.total_fired = int(state.get('total_fired', 0))
        self.good_streak = int(state.get('good_streak', 0))
        self.bad_streak = int(state.get('bad_streak', 0))
