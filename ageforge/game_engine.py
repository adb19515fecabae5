"""Simulation coordinator: owns every subsystem and runs the tick."""
import copy
import logging
import random
import threading
import time

from ageforge import persistence
from ageforge.buildings import BuildingRegistry
from ageforge.config import Config
from ageforge.diplomacy import DiplomacyOffice
from ageforge.errors import (
    GameError,
    InsufficientResourceError,
    InvalidArgumentError,
    NotFoundError,
    PersistenceError,
    PreconditionError,
    format_amounts,
)
from ageforge.event_bus import (
    AGE_ADVANCED,
    BUILDING_BUILT,
    BUILDING_UPGRADED,
    CHAIN_COMPLETED,
    EXPEDITION_DONE,
    GAME_LOADED,
    GAME_SAVED,
    MILESTONE_COMPLETED,
    PRESTIGE,
    RANDOM_EVENT,
    RESEARCH_DONE,
    RESOURCE_DEPLETED,
    VILLAGER_ADDED,
    EventBus,
    GameEvent,
)
from ageforge.events import EventScheduler
from ageforge.game_data_loader import get_game_data_loader
from ageforge.milestones import MilestoneContext, MilestoneTracker
from ageforge.military import MilitaryOffice, defense_rating
from ageforge.population import PopulationRoster
from ageforge.prestige import PrestigeLedger, calculate_points
from ageforge.progression import AgeProgression
from ageforge.rates import compose_rates, compose_storage, merge_bonuses, tick_interval
from ageforge.research import ResearchTree
from ageforge.resources import ResourceLedger
from ageforge.stats import GameStats
from ageforge.trade import TradeOffice

logger = logging.getLogger(__name__)

SOLDIER = 'soldier'

# Everything replaced wholesale when a save is loaded
WORLD_ATTRS = (
    'tick_count', 'age', 'resources', 'buildings', 'population', 'research', 'events',
    'military', 'trade', 'diplomacy', 'milestones', 'prestige', 'stats', 'permanent_bonuses',
    'build_queue', 'speed_multiplier', 'log', 'tick_interval',
)


def _require_count(count):
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidArgumentError(f"count must be a positive integer, got {count!r}")


def _require(action_data, name):
    value = action_data.get(name)
    if value is None:
        raise InvalidArgumentError(f"missing '{name}'")
    return value


class SimulationCoordinator:
    """Core game simulation engine.

    Every public operation takes the coordinator lock for its whole duration,
    so commands and ticks never observe a half-updated world.
    """

    def __init__(self, session_id=None, config=None, data_loader=None, rng=None, bus=None):
        """Initialize a fresh world in the starting era."""
        self.session_id = session_id
        self.config = config or {}
        self.data_loader = data_loader or get_game_data_loader(self._cfg('GAME_DATA_DIR'))
        self.rng = rng or random.Random()
        self.bus = bus or EventBus()

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread = None

        self.progression = AgeProgression(self.data_loader.load_ages())
        self.prestige = PrestigeLedger(
            self.data_loader.load_prestige_upgrades(),
            production_per_level=self._cfg('PRESTIGE_PRODUCTION_PER_LEVEL'),
        )
        self.log = []
        self._start_new_world()

    def _cfg(self, name):
        return self.config.get(name.lower(), getattr(Config, name))

    # ------------------------------------------------------------------
    # World construction

    def _reset_world(self):
        """Recreate every leaf subsystem except the prestige ledger."""
        loader = self.data_loader
        self.resources = ResourceLedger(loader.load_resources())
        self.buildings = BuildingRegistry(loader.load_buildings(), loader.load_building_upgrades())
        self.population = PopulationRoster(loader.load_villagers())
        self.research = ResearchTree(loader.load_technologies())
        self.events = EventScheduler(
            loader.load_events(),
            rng=self.rng,
            fire_chance=self._cfg('EVENT_FIRE_CHANCE'),
        )
        self.military = MilitaryOffice(
            loader.load_expeditions(),
            rng=self.rng,
            min_difficulty=self._cfg('MIN_EXPEDITION_DIFFICULTY'),
            military_factor=self._cfg('MILITARY_DIFFICULTY_FACTOR'),
            failure_reward=self._cfg('FAILED_EXPEDITION_REWARD'),
            success_loss_factor=self._cfg('SUCCESS_LOSS_FACTOR'),
        )
        self.trade = TradeOffice(
            loader.load_exchange_rates(),
            loader.load_trade_routes(),
            pressure_step=self._cfg('EXCHANGE_PRESSURE_STEP'),
            pressure_decay=self._cfg('EXCHANGE_PRESSURE_DECAY'),
        )
        self.diplomacy = DiplomacyOffice(
            loader.load_factions(),
            ally_cost=self._cfg('ALLIANCE_GOLD_COST'),
            gift_cost=self._cfg('GIFT_GOLD_COST'),
        )
        self.milestones = MilestoneTracker(
            loader.load_milestones(),
            loader.load_milestone_chains(),
            loader.load_milestone_titles(),
        )
        self.stats = GameStats()
        self.tick_count = 0
        self.permanent_bonuses = {}
        self.build_queue = []
        self.speed_multiplier = 1.0
        self.age = self._cfg('STARTING_AGE')
        self._apply_age_unlocks(self.progression.get(self.age))
        self.stats.record_age(self.age, 0)

    def _start_new_world(self):
        self._reset_world()
        self._recalculate_rates()
        starting = dict(self._cfg('STARTING_RESOURCES'))
        for key, amount in self.prestige.starting_resources().items():
            starting[key] = starting.get(key, 0.0) + amount
        for key, amount in starting.items():
            self.resources.add(key, amount)
        self._recalculate_tick_speed()

    def _apply_age_unlocks(self, age_def):
        for key in age_def.get('unlock_resources', []):
            self.resources.unlock(key)
        for key in age_def.get('unlock_buildings', []):
            self.buildings.unlock(key)
        for key in age_def.get('unlock_villagers', []):
            self.population.unlock(key)

    # ------------------------------------------------------------------
    # Helpers

    def _log(self, message, category='info'):
        self.log.append({'tick': self.tick_count, 'category': category, 'message': message})
        overflow = len(self.log) - self._cfg('MAX_LOG_SIZE')
        if overflow > 0:
            del self.log[:overflow]

    def _publish(self, event_type, **data):
        self.bus.publish(GameEvent(type=event_type, data=data, tick=self.tick_count))

    @property
    def age_index(self):
        return self.progression.index(self.age)

    def _prestige_min_index(self):
        return self.progression.index(self._cfg('PRESTIGE_MIN_AGE'))

    def _bonuses(self):
        """Research, permanent milestone and prestige bonuses merged into one map."""
        return merge_bonuses(self.research.bonuses, self.permanent_bonuses, self.prestige.bonuses())

    def _bonus(self, target):
        return self._bonuses().get(target, 0.0)

    def _population_capacity(self):
        return self.buildings.population_capacity() + int(self._bonus('population'))

    def _max_speed_multiplier(self):
        return 1.0 + self._cfg('WONDER_SPEED_BONUS') * self.buildings.wonder_count()

    def _recalculate_rates(self):
        bonuses = self._bonuses()
        event_effects = [(e['target'], e['value']) for e in self.events.active_effects('production')]
        rates, breakdowns = compose_rates(
            self.resources.keys(),
            self.buildings.production_rates(),
            self.population.production_rates(),
            bonuses,
            research_effects=self.research.production_effects(),
            event_effects=event_effects,
            trade_bonuses=self.diplomacy.trade_bonuses(),
            food_drain=self.population.food_drain(),
        )
        self.resources.reset_rates()
        for key in self.resources.keys():
            self.resources.set_rate(key, rates[key], breakdowns[key])
        storage = compose_storage(self.resources.base_storages(), self.buildings.storage_bonuses(), bonuses)
        for key, cap in storage.items():
            self.resources.set_storage(key, cap)

    def _recalculate_tick_speed(self):
        bonus = self._bonus('tick_speed')
        bonus += sum(e['value'] for e in self.events.active_effects('tick_speed'))
        self.tick_interval = tick_interval(
            self._cfg('BASE_TICK_INTERVAL'),
            self._cfg('MIN_TICK_INTERVAL'),
            bonus,
            self.speed_multiplier,
        )

    def _milestone_context(self):
        return MilestoneContext(
            tick=self.tick_count,
            age_index=self.age_index,
            age_order=self.progression.order,
            resources=self.resources.amounts(),
            buildings=dict(self.buildings.counts),
            villagers=self.population.counts(),
            population=self.population.total_population(),
            researched=set(self.research.researched),
            total_built=self.stats.total_built,
            wonder_count=self.buildings.wonder_count(),
        )

    # ------------------------------------------------------------------
    # Tick

    def tick(self):
        """Run exactly one simulation tick. Returns the new tick number."""
        with self._lock:
            self.tick_count += 1
            self._advance_build_queue()
            self._advance_research()
            self._roll_events()
            self._advance_expedition()
            self._advance_trade()
            self._advance_diplomacy()
            self._recalculate_rates()
            for key in self.resources.apply_rates():
                self._publish(RESOURCE_DEPLETED, resource=key)
            for key in self.resources.unlocked_keys():
                self.stats.record_gather(key, self.resources.get_rate(key))
            if self.resources.get('food') <= 0 and self.resources.get_rate('food') < 0:
                self._log("Your people are starving! Food has run out.", 'warning')
            self._check_milestones()
            self._check_age_advance()
            self._recalculate_tick_speed()
            return self.tick_count

    def _advance_build_queue(self):
        remaining = []
        for entry in self.build_queue:
            entry['ticks_left'] -= 1
            if entry['ticks_left'] <= 0:
                self._complete_building(entry['key'])
            else:
                remaining.append(entry)
        self.build_queue = remaining

    def _complete_building(self, key):
        count = self.buildings.add(key)
        self.stats.record_build()
        name = self.buildings.get_def(key).get('name', key)
        self._log(f"{name} completed (now {count}).", 'success')
        self._publish(BUILDING_BUILT, building=key, count=count)
        return count

    def _advance_research(self):
        key = self.research.tick()
        if key is None:
            return
        name = self.research.get_def(key).get('name', key)
        self._log(f"Research complete: {name}.", 'success')
        self._publish(RESEARCH_DONE, tech=key)

    def _roll_events(self):
        expired, fired = self.events.tick(self.tick_count, self.age_index, self.progression.order)
        for event in expired:
            self._log(f"{event.name} has ended.", 'info')
        if fired is None:
            return
        for effect in fired.get('effects', []):
            target = effect['target']
            if target not in self.resources:
                continue
            if effect['type'] == 'instant_resource':
                self.resources.add(target, effect['value'])
            elif effect['type'] == 'steal_resource':
                self.resources.add(target, -min(effect['value'], self.resources.get(target)))
        self.stats.events_seen += 1
        self._log(fired.get('log_message') or f"{fired.get('name', fired['key'])}!", 'event')
        self._publish(RANDOM_EVENT, event=fired['key'], sentiment=fired.get('sentiment'))

    def _advance_expedition(self):
        result = self.military.tick(self._bonus('military_power'), self._bonus('expedition_reward'))
        if result is None:
            return
        for key, amount in result.rewards.items():
            if key in self.resources:
                self.resources.add(key, amount)
        lost = self.population.remove(SOLDIER, result.soldiers_lost) if result.soldiers_lost else 0
        if result.success:
            self.stats.expeditions_won += 1
            self._log(f"Expedition '{result.name}' succeeded! Loot: {format_amounts(result.rewards)}.", 'success')
        else:
            self.stats.expeditions_lost += 1
            self._log(f"Expedition '{result.name}' failed. Salvaged: {format_amounts(result.rewards)}.", 'warning')
        if lost:
            self._log(f"{lost} soldier(s) lost on the expedition.", 'warning')
        self._publish(EXPEDITION_DONE, expedition=result.key, success=result.success,
                      rewards=dict(result.rewards), soldiers_lost=lost)

    def _market_count(self):
        return sum(self.buildings.get_count(key) for key in self._cfg('TRADE_BUILDINGS'))

    def _advance_trade(self):
        completed, stopped = self.trade.tick(self.resources, self.buildings.counts, self.diplomacy.trade_bonus)
        for name in stopped:
            self._log(f"Trade route {name} stopped: not enough buildings.", 'warning')
        for cycle in completed:
            self.diplomacy.record_trade()
            self._log(f"{cycle.name} delivered {format_amounts(cycle.imported)}.", 'info')

    def _advance_diplomacy(self):
        for definition in self.diplomacy.tick(self.tick_count, self.age_index, self.progression.order):
            name = definition.get('name', definition['key'])
            self._log(f"Discovered faction: {name}. {definition.get('description', '')}", 'event')

    def _apply_rewards(self, rewards):
        for reward in rewards:
            target = reward['target']
            if reward['type'] == 'instant_resource':
                if target in self.resources:
                    self.resources.add(target, reward['value'])
            elif reward['type'] == 'permanent_bonus':
                self.permanent_bonuses[target] = self.permanent_bonuses.get(target, 0.0) + reward['value']

    def _check_milestones(self):
        for definition in self.milestones.check(self._milestone_context()):
            self._apply_rewards(definition.get('rewards', []))
            self._log(f"Milestone reached: {definition.get('name', definition['key'])}!", 'success')
            self._publish(MILESTONE_COMPLETED, milestone=definition['key'])
        for chain in self.milestones.check_chains():
            duration = chain.get('boost_duration', 0)
            if duration > 0:
                self.events.inject(
                    f"{chain['key']}_boost",
                    f"{chain.get('name', chain['key'])} Boost",
                    duration,
                    [{'type': 'tick_speed', 'target': 'tick', 'value': chain.get('boost_value', 0.0)}],
                )
            self._log(
                f"Chain complete: {chain.get('name', chain['key'])}! You are now known as {chain.get('title', '')}.",
                'success',
            )
            self._publish(CHAIN_COMPLETED, chain=chain['key'], title=chain.get('title', ''))

    def _check_age_advance(self):
        next_def = self.progression.next_age(self.age)
        if next_def is None:
            return
        if not self.progression.requirements_met(next_def, self.resources.amounts(), self.buildings.counts):
            return
        previous = self.age
        self.age = next_def['key']
        self._apply_age_unlocks(next_def)
        self.stats.record_age(self.age, self.tick_count)
        self._recalculate_rates()
        self._log(f"Your civilization has entered the {next_def.get('name', self.age)}!", 'success')
        self._publish(AGE_ADVANCED, previous=previous, age=self.age)
        logger.info("Session %s advanced to %s at tick %d", self.session_id, self.age, self.tick_count)

    # ------------------------------------------------------------------
    # Public operations

    def gather_resource(self, resource, amount=1):
        """Manually gather a resource. Returns the amount actually added."""
        with self._lock:
            if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
                raise InvalidArgumentError(f"amount must be positive, got {amount!r}")
            self._check_gatherable(resource)
            before = self.resources.get(resource)
            added = self.resources.add(resource, amount) - before
            self.stats.record_gather(resource, added)
            return added

    def _build_one(self, key):
        definition = self.buildings.get_def(key)
        name = definition.get('name', key)
        if not self.buildings.is_unlocked(key):
            raise PreconditionError(f"'{name}' is not yet unlocked")
        queued = sum(1 for entry in self.build_queue if entry['key'] == key)
        if self.buildings.at_max(key, queued):
            if queued and definition.get('max_count') == 1:
                raise PreconditionError(f"'{name}' is already under construction")
            raise PreconditionError(f"'{name}' is at max count ({definition['max_count']})")
        cost = self.buildings.get_cost(key)
        if not self.resources.pay(cost):
            shortfall = self.resources.shortfall(cost)
            have = {res: pair[0] for res, pair in shortfall.items()}
            need = {res: pair[1] for res, pair in shortfall.items()}
            raise InsufficientResourceError(
                f"cannot afford '{name}' (have: {format_amounts(have)}, need: {format_amounts(need)})"
            )
        ticks = definition.get('build_ticks', 0)
        if ticks > 0:
            self.build_queue.append({'key': key, 'name': name, 'ticks_left': ticks, 'total_ticks': ticks})
            self._log(f"Started building {name} ({ticks} ticks).")
            return {'success': True, 'building': key, 'queued': True, 'ticks': ticks, 'cost': cost}
        count = self._complete_building(key)
        self._recalculate_rates()
        return {'success': True, 'building': key, 'queued': False, 'count': count, 'cost': cost}

    def build_building(self, key):
        with self._lock:
            return self._build_one(key)

    def build_multiple(self, key, count):
        """Buy up to `count` units. Returns how many were bought."""
        _require_count(count)
        with self._lock:
            built = 0
            for _ in range(count):
                try:
                    self._build_one(key)
                except (PreconditionError, InsufficientResourceError):
                    if built == 0:
                        raise
                    break
                built += 1
            return built

    def _upgrade_available(self, upgrade):
        return self.progression.index(upgrade['min_age']) <= self.age_index

    def _convert(self, from_key):
        to_key = self.buildings.get_upgrade(from_key)['to']
        queued = sum(1 for entry in self.build_queue if entry['key'] == to_key)
        return self.buildings.upgrade(from_key, self.resources, queued)

    def _log_upgrade(self, from_key, upgraded):
        to_key = self.buildings.get_upgrade(from_key)['to']
        from_name = self.buildings.get_def(from_key).get('name', from_key)
        to_name = self.buildings.get_def(to_key).get('name', to_key)
        self._log(f"Upgraded {upgraded} {from_name} to {to_name}.", 'success')
        self._publish(BUILDING_UPGRADED, building=from_key, upgraded_to=to_key, count=upgraded)

    def upgrade_building(self, from_key):
        """Upgrade as many owned units of a building as can be paid for. Returns how many."""
        with self._lock:
            upgrade = self.buildings.get_upgrade(from_key)
            to_key = upgrade['to']
            from_name = self.buildings.get_def(from_key).get('name', from_key)
            to_def = self.buildings.get_def(to_key)
            to_name = to_def.get('name', to_key)
            if not self._upgrade_available(upgrade):
                age_name = self.progression.get(upgrade['min_age']).get('name', upgrade['min_age'])
                raise PreconditionError(f"upgrading {from_name} requires the {age_name}")
            if self.buildings.get_count(from_key) <= 0:
                raise PreconditionError(f"no {from_name} to upgrade")
            upgraded = self._convert(from_key)
            if upgraded == 0:
                queued = sum(1 for entry in self.build_queue if entry['key'] == to_key)
                if self.buildings.at_max(to_key, queued):
                    raise PreconditionError(f"'{to_name}' is at max count ({to_def['max_count']})")
                cost = self.buildings.upgrade_cost(from_key)
                raise InsufficientResourceError(f"cannot afford upgrade to {to_name} (need: {format_amounts(cost)})")
            self._recalculate_rates()
            self._log_upgrade(from_key, upgraded)
            return upgraded

    def upgrade_all(self):
        """Run every available upgrade path in catalog order. Returns {source building: count}."""
        with self._lock:
            result = {}
            for from_key, upgrade in self.buildings.upgrades.items():
                if not self._upgrade_available(upgrade) or self.buildings.get_count(from_key) <= 0:
                    continue
                upgraded = self._convert(from_key)
                if upgraded:
                    result[from_key] = upgraded
            if not result:
                raise PreconditionError("nothing to upgrade (no affordable upgrades available)")
            self._recalculate_rates()
            for from_key, upgraded in result.items():
                self._log_upgrade(from_key, upgraded)
            return result

    def _available_upgrades(self):
        listing = []
        for from_key, upgrade in self.buildings.upgrades.items():
            count = self.buildings.get_count(from_key)
            if count <= 0 or not self._upgrade_available(upgrade):
                continue
            to_key = upgrade['to']
            cost = self.buildings.upgrade_cost(from_key)
            listing.append({
                'from': from_key,
                'to': to_key,
                'from_name': self.buildings.get_def(from_key).get('name', from_key),
                'to_name': self.buildings.get_def(to_key).get('name', to_key),
                'count': count,
                'cost': cost,
                'affordable': self.resources.can_afford(cost),
            })
        return listing

    def recruit_villager(self, villager_type, count=1):
        with self._lock:
            total = self.population.recruit(villager_type, count, self._population_capacity())
            self.stats.record_recruit(count)
            self._recalculate_rates()
            name = self.population.groups[villager_type].name
            self._log(f"Recruited {count} {name} (now {total}).", 'success')
            self._publish(VILLAGER_ADDED, villager=villager_type, count=count)
            return {'success': True, 'villager': villager_type, 'count': count, 'total': total}

    def recruit_max(self, villager_type):
        """Recruit as many villagers of one type as housing allows. Returns how many."""
        with self._lock:
            capacity = self._population_capacity()
            room = self.population.room_for(capacity)
            if room <= 0:
                raise InsufficientResourceError(
                    f"no housing available (population {self.population.total_population()}, capacity {capacity})"
                )
            self.recruit_villager(villager_type, room)
            return room

    def _check_gatherable(self, resource):
        if resource not in self.resources:
            raise NotFoundError(f"unknown resource '{resource}'")
        if not self.resources.is_unlocked(resource):
            raise PreconditionError(f"{resource} has not been discovered yet")

    def assign_villager(self, villager_type, resource, count=1):
        with self._lock:
            self._check_gatherable(resource)
            self.population.assign(villager_type, resource, count)
            self._recalculate_rates()
            return {'success': True, 'villager': villager_type, 'resource': resource, 'count': count}

    def unassign_villager(self, villager_type, resource, count=1):
        with self._lock:
            self.population.unassign(villager_type, resource, count)
            self._recalculate_rates()
            return {'success': True, 'villager': villager_type, 'resource': resource, 'count': count}

    def assign_all(self, villager_type, resource):
        with self._lock:
            self._check_gatherable(resource)
            moved = self.population.assign_all(villager_type, resource)
            self._recalculate_rates()
            return moved

    def unassign_all(self, villager_type, resource):
        with self._lock:
            moved = self.population.unassign_all(villager_type, resource)
            self._recalculate_rates()
            return moved

    def start_research(self, key):
        with self._lock:
            cost = self.research.check_start(key, self.age_index, self.progression.order,
                                             self.resources.get('knowledge'))
            self.resources.remove('knowledge', cost)
            ticks = self.research.research_ticks(key, self._bonus('research_speed'))
            active = self.research.start(key, ticks)
            self._log(f"Started researching {active.name} ({ticks} ticks).")
            return {'success': True, 'tech': key, 'ticks': ticks, 'cost': cost}

    def cancel_research(self):
        with self._lock:
            cancelled = self.research.cancel()
            self._log(f"Research on {cancelled.name} abandoned.", 'warning')
            return {'success': True, 'tech': cancelled.key}

    def launch_expedition(self, key):
        with self._lock:
            expedition = self.military.launch(key, self.age_index, self.progression.order,
                                              self.population.count(SOLDIER))
            self._log(f"Expedition '{expedition.name}' departs with {expedition.soldiers} soldiers.")
            return {'success': True, 'expedition': key, 'ticks': expedition.ticks_left}

    def exchange_resources(self, from_res, to_res, amount):
        with self._lock:
            for key in (from_res, to_res):
                if not self.resources.is_unlocked(key):
                    if key not in self.resources:
                        raise NotFoundError(f"unknown resource '{key}'")
                    raise PreconditionError(f"{key} is not unlocked yet")
            received = self.trade.exchange(
                from_res, to_res, amount, self.age_index, self.progression.order,
                self.resources.get(from_res), self._market_count(),
            )
            self.resources.remove(from_res, amount)
            before = self.resources.get(to_res)
            credited = self.resources.add(to_res, received) - before
            self._log(f"Traded {amount:.0f} {from_res} for {credited:.1f} {to_res}.")
            return {'success': True, 'paid': amount, 'received': credited,
                    'rate': self.trade.exchange_rate(from_res, to_res)}

    def start_trade_route(self, key):
        with self._lock:
            route = self.trade.start_route(key, self.age_index, self.progression.order, self.buildings.counts)
            self._log(f"Trade route started: {route.name}.")
            return {'success': True, 'route': key, 'ticks': route.ticks_left}

    def stop_trade_route(self, key):
        with self._lock:
            route = self.trade.stop_route(key)
            self._log(f"Trade route stopped: {route.name}.")
            return {'success': True, 'route': key, 'cycles_done': route.cycles_done}

    def set_diplomatic_status(self, faction, status):
        with self._lock:
            cost = self.diplomacy.set_status(faction, status, self.resources.get('gold'))
            if cost > 0:
                self.resources.remove('gold', cost)
            self._recalculate_rates()
            name = self.diplomacy.defs[faction].get('name', faction)
            self._log(f"Diplomatic status with {name} set to {status}.")
            return {'success': True, 'faction': faction, 'status': status, 'cost': cost}

    def send_gift(self, faction):
        with self._lock:
            cost = self.diplomacy.send_gift(faction, self.resources.get('gold'))
            self.resources.remove('gold', cost)
            state = self.diplomacy.factions[faction]
            name = self.diplomacy.defs[faction].get('name', faction)
            self._log(f"Sent a gift to {name} (opinion {state.opinion}).")
            return {'success': True, 'faction': faction, 'opinion': state.opinion, 'status': state.status,
                    'cost': cost}

    def prestige_points(self):
        with self._lock:
            return calculate_points(
                self.age_index,
                self.milestones.completed_count(),
                self.research.count(),
                self.stats.total_built,
                self.prestige.level,
                self._prestige_min_index(),
            )

    def do_prestige(self):
        with self._lock:
            min_index = self._prestige_min_index()
            if not self.prestige.can_prestige(self.age_index, min_index):
                required = self.progression.get(self._cfg('PRESTIGE_MIN_AGE')).get('name')
                raise PreconditionError(f"prestige requires reaching the {required}")
            points = self.prestige_points()
            self.prestige.prestige(points)
            self._start_new_world()
            self._log(f"Prestige! Level {self.prestige.level}, earned {points} points.", 'success')
            self._publish(PRESTIGE, level=self.prestige.level, points=points)
            logger.info("Session %s prestiged to level %d (+%d points)",
                        self.session_id, self.prestige.level, points)
            return {'success': True, 'level': self.prestige.level, 'points': points}

    def buy_prestige_upgrade(self, key):
        with self._lock:
            tier = self.prestige.buy_upgrade(key)
            self._recalculate_rates()
            self._recalculate_tick_speed()
            name = self.prestige.defs[key].get('name', key)
            self._log(f"Purchased {name} tier {tier}.", 'success')
            return {'success': True, 'upgrade': key, 'tier': tier, 'available': self.prestige.available}

    def set_speed_multiplier(self, multiplier):
        with self._lock:
            if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
                raise InvalidArgumentError(f"speed multiplier must be a number, got {multiplier!r}")
            step = self._cfg('SPEED_STEP')
            if multiplier < 1.0 or abs(multiplier / step - round(multiplier / step)) > 1e-9:
                raise InvalidArgumentError(f"speed multiplier must be 1.0 or more in steps of {step}")
            maximum = self._max_speed_multiplier()
            if multiplier > maximum:
                raise PreconditionError(f"speed {multiplier}x needs more wonders (max: {maximum}x)")
            self.speed_multiplier = float(multiplier)
            self._recalculate_tick_speed()
            return {'success': True, 'speed_multiplier': self.speed_multiplier,
                    'tick_interval': self.tick_interval}

    def get_tick_interval(self):
        with self._lock:
            return self.tick_interval

    def perform_action(self, action_type, action_data):
        """Perform a game action by name."""
        action_data = action_data or {}
        if action_type == 'gather':
            amount = action_data.get('amount', 1)
            return {'success': True, 'added': self.gather_resource(_require(action_data, 'resource'), amount)}
        elif action_type == 'build':
            return self.build_building(_require(action_data, 'building'))
        elif action_type == 'build_multiple':
            built = self.build_multiple(_require(action_data, 'building'), _require(action_data, 'count'))
            return {'success': True, 'built': built}
        elif action_type == 'upgrade':
            return {'success': True, 'upgraded': self.upgrade_building(_require(action_data, 'building'))}
        elif action_type == 'upgrade_all':
            return {'success': True, 'upgraded': self.upgrade_all()}
        elif action_type == 'recruit':
            return self.recruit_villager(_require(action_data, 'villager'), action_data.get('count', 1))
        elif action_type == 'recruit_max':
            return {'success': True, 'recruited': self.recruit_max(_require(action_data, 'villager'))}
        elif action_type == 'assign':
            return self.assign_villager(_require(action_data, 'villager'), _require(action_data, 'resource'),
                                        action_data.get('count', 1))
        elif action_type == 'unassign':
            return self.unassign_villager(_require(action_data, 'villager'), _require(action_data, 'resource'),
                                          action_data.get('count', 1))
        elif action_type == 'assign_all':
            moved = self.assign_all(_require(action_data, 'villager'), _require(action_data, 'resource'))
            return {'success': True, 'assigned': moved}
        elif action_type == 'unassign_all':
            moved = self.unassign_all(_require(action_data, 'villager'), _require(action_data, 'resource'))
            return {'success': True, 'unassigned': moved}
        elif action_type == 'start_research':
            return self.start_research(_require(action_data, 'tech'))
        elif action_type == 'cancel_research':
            return self.cancel_research()
        elif action_type == 'launch_expedition':
            return self.launch_expedition(_require(action_data, 'expedition'))
        elif action_type == 'exchange':
            return self.exchange_resources(_require(action_data, 'from'), _require(action_data, 'to'),
                                           _require(action_data, 'amount'))
        elif action_type == 'start_trade_route':
            return self.start_trade_route(_require(action_data, 'route'))
        elif action_type == 'stop_trade_route':
            return self.stop_trade_route(_require(action_data, 'route'))
        elif action_type == 'set_diplomatic_status':
            return self.set_diplomatic_status(_require(action_data, 'faction'), _require(action_data, 'status'))
        elif action_type == 'send_gift':
            return self.send_gift(_require(action_data, 'faction'))
        elif action_type == 'prestige':
            return self.do_prestige()
        elif action_type == 'buy_prestige_upgrade':
            return self.buy_prestige_upgrade(_require(action_data, 'upgrade'))
        elif action_type == 'set_speed':
            return self.set_speed_multiplier(_require(action_data, 'multiplier'))
        else:
            raise InvalidArgumentError(f"Unknown action type: {action_type}")

    # ------------------------------------------------------------------
    # Snapshot

    def get_state(self):
        """Deep-copied snapshot of the whole world."""
        with self._lock:
            age_def = self.progression.get(self.age)
            age_index = self.age_index
            order = self.progression.order
            knowledge = self.resources.get('knowledge')
            soldiers = self.population.count(SOLDIER)
            military_bonus = self._bonus('military_power')
            ctx = self._milestone_context()
            buildings = self.buildings.snapshot()
            for key, info in buildings.items():
                info['affordable'] = self.resources.can_afford(info['next_cost'])
                info['queued'] = sum(1 for entry in self.build_queue if entry['key'] == key)
            state = {
                'session_id': self.session_id,
                'tick': self.tick_count,
                'age': {'key': self.age, 'name': age_def.get('name', self.age), 'index': age_index},
                'age_progress': self.progression.progress(self.age, self.resources.amounts(), self.buildings.counts),
                'resources': self.resources.snapshot(),
                'buildings': buildings,
                'build_queue': self.build_queue,
                'upgrades': self._available_upgrades(),
                'population': {
                    'villagers': self.population.snapshot(),
                    'total': self.population.total_population(),
                    'capacity': self._population_capacity(),
                    'food_drain': self.population.food_drain(),
                },
                'research': self.research.snapshot(age_index, order, knowledge),
                'events': self.events.snapshot(),
                'military': self.military.snapshot(
                    age_index, order, soldiers,
                    defense_rating(soldiers, military_bonus, self._cfg('DEFENSE_PER_SOLDIER')),
                ),
                'trade': self.trade.snapshot(age_index, order, self.buildings.counts),
                'diplomacy': self.diplomacy.snapshot(),
                'milestones': self.milestones.snapshot(ctx),
                'title': self.milestones.current_title,
                'prestige': self.prestige.snapshot(age_index, self._prestige_min_index(), self.prestige_points()),
                'permanent_bonuses': self.permanent_bonuses,
                'bonuses': self._bonuses(),
                'stats': self.stats.to_dict(),
                'speed_multiplier': self.speed_multiplier,
                'max_speed_multiplier': self._max_speed_multiplier(),
                'tick_interval': self.tick_interval,
                'running': self.is_running,
                'log': self.log,
            }
            return copy.deepcopy(state)

    # ------------------------------------------------------------------
    # Clock

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self):
        """Start the background tick loop. No-op if already running."""
        with self._lock:
            if self.is_running:
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=f"ageforge-clock-{self.session_id}",
                daemon=True,
            )
            self._thread.start()
            logger.info("Clock started for session %s (interval %.2fs)", self.session_id, self.tick_interval)
            return True

    def stop(self, timeout=None):
        """Stop the tick loop. Idempotent, and only sets an event so it is safe from signal handlers."""
        self._stop_event.set()
        thread = self._thread
        if timeout is not None and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self, stop_event):
        # The interval is re-read every tick so speed changes apply immediately
        while not stop_event.wait(self.get_tick_interval()):
            try:
                self.tick()
            except Exception:
                logger.exception("Tick failed for session %s; stopping clock", self.session_id)
                stop_event.set()
                break

    # ------------------------------------------------------------------
    # Persistence

    def to_save_dict(self):
        with self._lock:
            return persistence.build_save_dict(self, self._cfg('SAVE_VERSION'))

    def load_save_dict(self, data, offline_progress=False, now=None):
        """Replace the whole world with a saved one.

        The save is restored into a scratch coordinator first, so a bad
        document leaves this one untouched.
        """
        with self._lock:
            fresh = SimulationCoordinator(self.session_id, self.config, data_loader=self.data_loader, rng=self.rng)
            try:
                persistence.restore_save_dict(fresh, data, self._cfg('SAVE_VERSION'))
            except PersistenceError:
                raise
            except (GameError, KeyError, TypeError, ValueError, AttributeError) as err:
                raise PersistenceError(f"invalid save data: {err}") from err
            for name in WORLD_ATTRS:
                setattr(self, name, getattr(fresh, name))
            self._recalculate_rates()
            self._recalculate_tick_speed()
            offline = 0
            if offline_progress and data.get('timestamp'):
                offline = self._apply_offline_progress(float(data['timestamp']), now)
            self._publish(GAME_LOADED, tick=self.tick_count, offline_ticks=offline)
            return offline

    def _apply_offline_progress(self, saved_at, now=None):
        elapsed = (now if now is not None else time.time()) - saved_at
        ticks = persistence.offline_ticks(
            elapsed,
            self.tick_interval,
            self._cfg('MIN_OFFLINE_SECONDS'),
            self._cfg('MAX_OFFLINE_SECONDS'),
        )
        if ticks <= 0:
            return 0
        gained = persistence.credit_offline_progress(self.resources, ticks, self._cfg('OFFLINE_EFFICIENCY'))
        self.tick_count += ticks
        summary = format_amounts(gained) if gained else 'nothing'
        self._log(f"While you were away ({ticks} ticks): gained {summary}.", 'info')
        return ticks

    def save_game(self, path=None):
        with self._lock:
            path = path or self._cfg('SAVE_PATH')
            persistence.write_save(path, self.to_save_dict())
            self._log("Game saved.")
            self._publish(GAME_SAVED, path=path)
            return path

    def load_game(self, path=None):
        """Load a save file. Returns the number of offline ticks credited."""
        with self._lock:
            path = path or self._cfg('SAVE_PATH')
            data = persistence.read_save(path)
            offline = self.load_save_dict(data, offline_progress=self._cfg('OFFLINE_PROGRESS'))
            self._log("Game loaded.")
            return offline

    @classmethod
    def load_from_session(cls, session, **kwargs):
        """Load a coordinator from a database save slot."""
        engine = cls(session.id, session.game_config, **kwargs)
        if session.game_state:
            engine.load_save_dict(session.game_state)
        return engine
