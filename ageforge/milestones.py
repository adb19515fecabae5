"""Milestone tracker: one-shot achievements, chains and civilization titles."""
from dataclasses import dataclass, field


@dataclass
class MilestoneContext:
    """Read-only view of world state that milestone predicates are evaluated against."""
    tick: int = 0
    age_index: int = 0
    age_order: list = field(default_factory=list)
    resources: dict = field(default_factory=dict)
    buildings: dict = field(default_factory=dict)
    villagers: dict = field(default_factory=dict)
    population: int = 0
    researched: set = field(default_factory=set)
    total_built: int = 0
    wonder_count: int = 0

    @property
    def tech_count(self):
        return len(self.researched)


def _checks(definition, ctx):
    """Yield (label, current, required) for every condition the milestone sets."""
    if definition.get('min_tick'):
        yield 'tick', ctx.tick, definition['min_tick']
    if definition.get('min_age'):
        yield definition['min_age'], ctx.age_index, ctx.age_order.index(definition['min_age'])
    for res, required in definition.get('min_resources', {}).items():
        yield res, ctx.resources.get(res, 0.0), required
    for bld, required in definition.get('min_buildings', {}).items():
        yield bld, ctx.buildings.get(bld, 0), required
    for vil, required in definition.get('min_villagers', {}).items():
        yield vil, ctx.villagers.get(vil, 0), required
    if definition.get('min_population'):
        yield 'population', ctx.population, definition['min_population']
    if definition.get('min_tech_count'):
        yield 'technologies', ctx.tech_count, definition['min_tech_count']
    for tech in definition.get('required_techs', []):
        yield tech, 1 if tech in ctx.researched else 0, 1
    if definition.get('min_total_built'):
        yield 'buildings built', ctx.total_built, definition['min_total_built']
    if definition.get('min_wonders'):
        yield 'wonders', ctx.wonder_count, definition['min_wonders']


def milestone_met(definition, ctx):
    """Pure predicate: every condition the definition sets holds in ctx."""
    return all(current >= required for _, current, required in _checks(definition, ctx))


def milestone_progress(definition, ctx):
    """Per-condition progress ratios in [0, 1]."""
    progress = []
    for label, current, required in _checks(definition, ctx):
        ratio = 1.0 if required <= 0 else min(current / required, 1.0)
        progress.append({'label': label, 'current': current, 'required': required, 'ratio': ratio})
    return progress


class MilestoneTracker:
    """Completed milestone and chain sets only ever grow."""

    def __init__(self, milestone_defs, chain_defs=None, title_defs=None):
        self.defs = list(milestone_defs)
        self.by_key = {definition['key']: definition for definition in self.defs}
        self.chains = list(chain_defs or [])
        self.titles = sorted(title_defs or [], key=lambda t: t['min_milestones'])
        self.completed = set()
        self.chains_completed = []
        self.current_title = ''

    def is_completed(self, key):
        return key in self.completed

    def completed_count(self):
        return len(self.completed)

    def check(self, ctx):
        """Mark and return the definitions whose predicate became true."""
        newly = []
        for definition in self.defs:
            if definition['key'] in self.completed:
                continue
            if milestone_met(definition, ctx):
                self.completed.add(definition['key'])
                newly.append(definition)
        if newly:
            self._recalculate_title()
        return newly

    def check_chains(self):
        newly = []
        for chain in self.chains:
            if chain['key'] in self.chains_completed:
                continue
            if all(member in self.completed for member in chain.get('milestone_keys', [])):
                self.chains_completed.append(chain['key'])
                newly.append(chain)
        if newly:
            self._recalculate_title()
        return newly

    def _recalculate_title(self):
        # Latest completed chain wins, otherwise the highest count-based title
        chain_titles = {chain['key']: chain.get('title', '') for chain in self.chains}
        for key in reversed(self.chains_completed):
            if chain_titles.get(key):
                self.current_title = chain_titles[key]
                return
        self.current_title = ''
        for title in self.titles:
            if len(self.completed) >= title['min_milestones']:
                self.current_title = title['title']

    def snapshot(self, ctx):
        milestones = []
        for definition in self.defs:
            done = definition['key'] in self.completed
            if definition.get('hidden') and not done:
                continue
            milestones.append({
                'key': definition['key'],
                'name': definition.get('name', definition['key']),
                'description': definition.get('description', ''),
                'completed': done,
                'progress': [] if done else milestone_progress(definition, ctx),
            })
        return {
            'milestones': milestones,
            'completed_count': len(self.completed),
            'total': len(self.defs),
            'chains': [
                {
                    'key': chain['key'],
                    'name': chain.get('name', chain['key']),
                    'title': chain.get('title', ''),
                    'completed': chain['key'] in self.chains_completed,
                    'members_done': sum(1 for m in chain.get('milestone_keys', []) if m in self.completed),
                    'members_total': len(chain.get('milestone_keys', [])),
                }
                for chain in self.chains
            ],
            'title': self.current_title,
        }

    def load(self, completed, chains_completed):
        self.completed = {key for key in completed or [] if key in self.by_key}
        known = {chain['key'] for chain in self.chains}
        self.chains_completed = [key for key in chains_completed or [] if key in known]
        self._recalculate_title()
