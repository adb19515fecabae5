"""Rate composition: ordered, pure passes from base production to final per-tick rates.

Each pass takes plain dicts and returns a new dict. The order of the passes in
compose_rates() is significant: multipliers only touch positive rates, so they
must run before event and upkeep contributions are added.
"""
from ageforge.resources import RateBreakdown


def merge_bonuses(*bonus_maps):
    """Sum several target -> magnitude maps into one."""
    merged = {}
    for bonus_map in bonus_maps:
        for target, value in (bonus_map or {}).items():
            merged[target] = merged.get(target, 0.0) + value
    return merged


def add_rates(rates, contributions):
    result = dict(rates)
    for key, value in contributions.items():
        result[key] = result.get(key, 0.0) + value
    return result


def multiply_positive(rates, factor):
    """Scale only rates that are currently positive."""
    return {key: rate * factor if rate > 0 else rate for key, rate in rates.items()}


def apply_production_all(rates, bonuses):
    bonus = bonuses.get('production_all', 0.0)
    if bonus <= 0:
        return dict(rates)
    return multiply_positive(rates, 1 + bonus)


def apply_resource_bonuses(rates, bonuses):
    """Per-resource '<key>_rate' bonuses, positive rates only."""
    result = {}
    for key, rate in rates.items():
        bonus = bonuses.get(f"{key}_rate", 0.0)
        result[key] = rate * (1 + bonus) if bonus > 0 and rate > 0 else rate
    return result


def apply_gather_bonus(rates, villager_rates, bonuses):
    """Additive gather bonus on top of the multiplied villager output.

    Villager output has already been scaled by the production passes; this adds
    base villager rate x gather_rate bonus again rather than compounding.
    """
    bonus = bonuses.get('gather_rate', 0.0)
    if bonus <= 0:
        return dict(rates)
    return add_rates(rates, {key: rate * bonus for key, rate in villager_rates.items()})


def apply_effects(rates, effects):
    """Add (target, value) production effects."""
    result = dict(rates)
    for target, value in effects:
        result[target] = result.get(target, 0.0) + value
    return result


def apply_trade_bonuses(rates, trade_bonuses):
    """Allied faction bonuses on their specialty resource, positive rates only."""
    result = dict(rates)
    for key, bonus in (trade_bonuses or {}).items():
        if bonus > 0 and result.get(key, 0.0) > 0:
            result[key] = result[key] * (1 + bonus)
    return result


def apply_food_drain(rates, food_drain):
    if food_drain <= 0:
        return dict(rates)
    return add_rates(rates, {'food': -food_drain})


def compose_rates(keys, building_rates, villager_rates, bonuses, research_effects=(),
                  event_effects=(), trade_bonuses=None, food_drain=0.0):
    """Build every resource's rate from zero.

    Returns (rates, breakdowns) keyed by resource for every key in `keys`.
    """
    rates = {key: 0.0 for key in keys}
    rates = add_rates(rates, building_rates)
    rates = add_rates(rates, villager_rates)
    rates = apply_production_all(rates, bonuses)
    rates = apply_resource_bonuses(rates, bonuses)
    rates = apply_gather_bonus(rates, villager_rates, bonuses)
    rates = apply_effects(rates, research_effects)
    rates = apply_effects(rates, event_effects)
    before_trade = rates
    rates = apply_trade_bonuses(rates, trade_bonuses)
    trade_totals = {key: rates[key] - before_trade[key] for key in rates}
    rates = apply_food_drain(rates, food_drain)

    research_totals = apply_effects({}, research_effects)
    event_totals = apply_effects({}, event_effects)
    breakdowns = {}
    for key in keys:
        breakdown = RateBreakdown(
            building=building_rates.get(key, 0.0),
            villager=villager_rates.get(key, 0.0),
            research=research_totals.get(key, 0.0),
            event=event_totals.get(key, 0.0),
            trade=trade_totals.get(key, 0.0),
            food_drain=food_drain if key == 'food' else 0.0,
        )
        explained = (breakdown.building + breakdown.villager + breakdown.research
                     + breakdown.event + breakdown.trade - breakdown.food_drain)
        breakdown.bonus = rates[key] - explained
        breakdowns[key] = breakdown
    return rates, breakdowns


def compose_storage(base_storage, building_storage, bonuses):
    """Storage cap per resource: base + 'all' bonuses + resource-specific bonuses."""
    shared = building_storage.get('all', 0.0) + bonuses.get('all', 0.0)
    return {
        key: base + shared + building_storage.get(key, 0.0) + bonuses.get(key, 0.0)
        for key, base in base_storage.items()
    }


def tick_interval(base_interval, min_interval, tick_speed_bonus, speed_multiplier):
    """Seconds between ticks for the given speed bonus and player multiplier."""
    divisor = (1 + tick_speed_bonus) * max(1.0, speed_multiplier)
    if divisor <= 0:
        return base_interval
    return max(min_interval, base_interval / divisor)
