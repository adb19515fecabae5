"""Trade office: instant resource exchange with supply pressure, and passive trade routes."""
from dataclasses import dataclass, field

from ageforge.errors import InsufficientResourceError, InvalidArgumentError, NotFoundError, PreconditionError


@dataclass
class ActiveRoute:
    key: str
    name: str
    ticks_left: int
    cycles_done: int = 0

    def to_dict(self):
        return {'key': self.key, 'name': self.name, 'ticks_left': self.ticks_left, 'cycles_done': self.cycles_done}


@dataclass
class RouteCycle:
    """One completed route run: what left the stockpile and what arrived."""
    key: str
    name: str
    exported: dict = field(default_factory=dict)
    imported: dict = field(default_factory=dict)


def pair_key(from_res, to_res):
    return f"{from_res}_to_{to_res}"


class TradeOffice:
    """Exchange desk and trade route scheduler.

    Every exchange pushes the pair's supply pressure up, which lowers the rate
    for the next one. Pressure decays back toward zero each tick.
    """

    def __init__(self, exchange_defs, route_defs, pressure_step=0.1, pressure_impact=0.3,
                 rate_floor=0.5, market_damping=0.2, pressure_decay=0.98):
        self.exchange_defs = {pair_key(d['from'], d['to']): d for d in exchange_defs}
        self.exchange_order = [pair_key(d['from'], d['to']) for d in exchange_defs]
        self.route_defs = {d['key']: d for d in route_defs}
        self.route_order = [d['key'] for d in route_defs]
        self.pressure_step = pressure_step
        self.pressure_impact = pressure_impact
        self.rate_floor = rate_floor
        self.market_damping = market_damping
        self.pressure_decay = pressure_decay

        self.supply_pressure = {}
        self.active = {}
        self.total_exchanged = {}
        self.total_imported = {}
        self.total_exported = {}

    @staticmethod
    def _available(definition, age_index, age_order):
        min_age = definition.get('min_age')
        return not min_age or age_order.index(min_age) <= age_index

    def exchange_rate(self, from_res, to_res):
        """Units of to_res received per unit of from_res right now."""
        key = pair_key(from_res, to_res)
        definition = self.exchange_defs.get(key)
        if definition is None:
            raise NotFoundError(f"no exchange rate for {from_res} -> {to_res}")
        base = definition['base_rate']
        rate = base * (1 - self.supply_pressure.get(key, 0.0) * self.pressure_impact)
        return max(rate, base * self.rate_floor)

    def exchange(self, from_res, to_res, amount, age_index, age_order, available, market_count):
        """Validate an exchange and record its pressure. Returns the amount of to_res received.

        The caller moves the resources; this only prices the trade.
        """
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
            raise InvalidArgumentError(f"exchange amount must be a positive number, got {amount!r}")
        rate = self.exchange_rate(from_res, to_res)
        key = pair_key(from_res, to_res)
        definition = self.exchange_defs[key]
        if not self._available(definition, age_index, age_order):
            raise PreconditionError(f"exchanging {from_res} for {to_res} requires {definition['min_age']}")
        if market_count < 1:
            raise PreconditionError("need a market or port to trade")
        if available < amount:
            raise InsufficientResourceError(f"not enough {from_res} (have: {available:.0f}, need: {amount:.0f})")

        received = amount * rate
        increase = self.pressure_step / (1 + market_count * self.market_damping)
        self.supply_pressure[key] = min(1.0, self.supply_pressure.get(key, 0.0) + increase)
        self.total_exchanged[from_res] = self.total_exchanged.get(from_res, 0.0) + amount
        self.total_exchanged[to_res] = self.total_exchanged.get(to_res, 0.0) + received
        return received

    def start_route(self, key, age_index, age_order, building_counts):
        definition = self.route_defs.get(key)
        if definition is None:
            raise NotFoundError(f"unknown trade route '{key}'")
        name = definition.get('name', key)
        if not self._available(definition, age_index, age_order):
            raise PreconditionError(f"{name} requires {definition['min_age']}")
        required = definition['required_building']
        have = building_counts.get(required, 0)
        if have < definition.get('min_count', 1):
            raise PreconditionError(f"{name} requires {definition.get('min_count', 1)} {required}(s) (have: {have})")
        if key in self.active:
            raise PreconditionError(f"{name} is already active")
        self.active[key] = ActiveRoute(key=key, name=name, ticks_left=definition['ticks_per_run'])
        return self.active[key]

    def stop_route(self, key):
        if key not in self.route_defs:
            raise NotFoundError(f"unknown trade route '{key}'")
        route = self.active.pop(key, None)
        if route is None:
            raise PreconditionError(f"trade route '{key}' is not active")
        return route

    def tick(self, ledger, building_counts, import_bonus=None):
        """Advance every active route and decay supply pressure.

        Returns (completed cycles, names of routes stopped for lack of buildings).
        A cycle whose exports cannot be paid is skipped and the timer restarts.
        """
        completed = []
        stopped = []
        for key in list(self.active):
            route = self.active[key]
            definition = self.route_defs[key]
            if building_counts.get(definition['required_building'], 0) < definition.get('min_count', 1):
                del self.active[key]
                stopped.append(route.name)
                continue

            route.ticks_left -= 1
            if route.ticks_left > 0:
                continue
            route.ticks_left = definition['ticks_per_run']
            exports = definition.get('export', {})
            if not ledger.pay(exports):
                continue

            imported = {}
            for res, amount in definition.get('import', {}).items():
                actual = amount * (1 + (import_bonus(res) if import_bonus else 0.0))
                ledger.add(res, actual)
                imported[res] = actual
                self.total_imported[res] = self.total_imported.get(res, 0.0) + actual
            for res, amount in exports.items():
                self.total_exported[res] = self.total_exported.get(res, 0.0) + amount
            route.cycles_done += 1
            completed.append(RouteCycle(key=key, name=route.name, exported=dict(exports), imported=imported))

        for key, pressure in list(self.supply_pressure.items()):
            pressure *= self.pressure_decay
            if abs(pressure) < 0.001:
                del self.supply_pressure[key]
            else:
                self.supply_pressure[key] = pressure
        return completed, stopped

    def _active_info(self, route):
        definition = self.route_defs[route.key]
        info = route.to_dict()
        info['export'] = dict(definition.get('export', {}))
        info['import'] = dict(definition.get('import', {}))
        return info

    def snapshot(self, age_index, age_order, building_counts):
        exchange_rates = {}
        for key in self.exchange_order:
            definition = self.exchange_defs[key]
            if not self._available(definition, age_index, age_order):
                continue
            exchange_rates[key] = {
                'from': definition['from'],
                'to': definition['to'],
                'rate': self.exchange_rate(definition['from'], definition['to']),
                'base_rate': definition['base_rate'],
                'pressure': self.supply_pressure.get(key, 0.0),
            }

        available_routes = []
        for key in self.route_order:
            definition = self.route_defs[key]
            if key in self.active or not self._available(definition, age_index, age_order):
                continue
            required = definition['required_building']
            available_routes.append({
                'key': key,
                'name': definition.get('name', key),
                'export': dict(definition.get('export', {})),
                'import': dict(definition.get('import', {})),
                'required_building': required,
                'min_count': definition.get('min_count', 1),
                'can_start': building_counts.get(required, 0) >= definition.get('min_count', 1),
                'description': definition.get('description', ''),
            })

        return {
            'exchange_rates': exchange_rates,
            'active_routes': [self._active_info(route) for route in self.active.values()],
            'available_routes': available_routes,
            'total_exchanged': dict(self.total_exchanged),
            'total_imported': dict(self.total_imported),
            'total_exported': dict(self.total_exported),
        }

    def save_state(self):
        return {
            'active_routes': [route.to_dict() for route in self.active.values()],
            'supply_pressure': dict(self.supply_pressure),
            'total_exchanged': dict(self.total_exchanged),
            'total_imported': dict(self.total_imported),
            'total_exported': dict(self.total_exported),
        }

    def load(self, state):
        self.active = {}
        for entry in state.get('active_routes', []):
            definition = self.route_defs.get(entry.get('key'))
            if definition is None:
                continue
            self.active[entry['key']] = ActiveRoute(
                key=entry['key'],
                name=definition.get('name', entry['key']),
                ticks_left=max(int(entry.get('ticks_left', definition['ticks_per_run'])), 1),
                cycles_done=int(entry.get('cycles_done', 0)),
            )
        self.supply_pressure = {
            key: float(value) for key, value in state.get('supply_pressure', {}).items()
            if key in self.exchange_defs
        }
        self.total_exchanged = {k: float(v) for k, v in state.get('total_exchanged', {}).items()}
        self.total_imported = {k: float(v) for k, v in state.get('total_imported', {}).items()}
        self.total_exported = {k: float(v) for k, v in state.get('total_exported', {}).items()}
