"""Game data loader for the static content catalog (JSON files)."""
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# file name -> top-level key holding the entry list
CATALOG_FILES = {
    'resources': ('resources.json', 'resources'),
    'ages': ('ages.json', 'ages'),
    'buildings': ('buildings.json', 'buildings'),
    'building_upgrades': ('buildings.json', 'upgrades'),
    'villagers': ('villagers.json', 'villagers'),
    'technologies': ('technologies.json', 'technologies'),
    'events': ('events.json', 'events'),
    'milestones': ('milestones.json', 'milestones'),
    'milestone_chains': ('milestones.json', 'chains'),
    'milestone_titles': ('milestones.json', 'titles'),
    'expeditions': ('expeditions.json', 'expeditions'),
    'prestige_upgrades': ('prestige_upgrades.json', 'upgrades'),
    'exchange_rates': ('trade.json', 'exchange_rates'),
    'trade_routes': ('trade.json', 'routes'),
    'factions': ('trade.json', 'factions'),
}


class GameDataLoader:
    """Loads and caches the era, building, resource and other content tables."""

    def __init__(self, data_dir=None):
        """Initialize the data loader."""
        if data_dir is None:
            # Assume game_data/ sits at the project root
            self.data_dir = Path(__file__).parent.parent / 'game_data'
        else:
            self.data_dir = Path(data_dir)

        self._files = {}
        self._tables = {}
        self._by_key = {}

    def _load_file(self, file_name):
        if file_name not in self._files:
            file_path = self.data_dir / file_name
            with open(file_path, 'r') as f:
                self._files[file_name] = json.load(f)
            logger.debug("Loaded %s", file_path)
        return self._files[file_name]

    def _load_table(self, name):
        if name not in self._tables:
            file_name, root_key = CATALOG_FILES[name]
            data = self._load_file(file_name)
            self._tables[name] = list(data.get(root_key, []))
        return self._tables[name]

    def _index(self, name):
        if name not in self._by_key:
            self._by_key[name] = {entry['key']: entry for entry in self._load_table(name)}
        return self._by_key[name]

    def load_resources(self):
        """Load resource definitions."""
        return self._load_table('resources')

    def load_ages(self):
        """Load era definitions, sorted by their order field."""
        return sorted(self._load_table('ages'), key=lambda age: age.get('order', 0))

    def load_buildings(self):
        """Load building definitions."""
        return self._load_table('buildings')

    def load_building_upgrades(self):
        """Load building upgrade paths (one per source building)."""
        return self._load_table('building_upgrades')

    def load_villagers(self):
        """Load workforce type definitions."""
        return self._load_table('villagers')

    def load_technologies(self):
        """Load technology tree definitions."""
        return self._load_table('technologies')

    def load_events(self):
        """Load random event definitions."""
        return self._load_table('events')

    def load_milestones(self):
        """Load milestone definitions."""
        return self._load_table('milestones')

    def load_milestone_chains(self):
        """Load milestone chain definitions."""
        return self._load_table('milestone_chains')

    def load_milestone_titles(self):
        """Load count-based civilization titles, lowest threshold first."""
        return sorted(self._load_table('milestone_titles'), key=lambda t: t['min_milestones'])

    def load_expeditions(self):
        """Load military expedition definitions."""
        return self._load_table('expeditions')

    def load_prestige_upgrades(self):
        """Load prestige shop upgrade definitions."""
        return self._load_table('prestige_upgrades')

    def load_exchange_rates(self):
        """Load resource exchange pairs."""
        return self._load_table('exchange_rates')

    def load_trade_routes(self):
        """Load passive trade route definitions."""
        return self._load_table('trade_routes')

    def load_factions(self):
        """Load NPC faction definitions."""
        return self._load_table('factions')

    def get_resource(self, key):
        return self._index('resources').get(key)

    def get_age(self, key):
        return self._index('ages').get(key)

    def get_building(self, key):
        return self._index('buildings').get(key)

    def get_villager(self, key):
        return self._index('villagers').get(key)

    def get_technology(self, key):
        return self._index('technologies').get(key)

    def get_event(self, key):
        return self._index('events').get(key)

    def get_expedition(self, key):
        return self._index('expeditions').get(key)

    def get_prestige_upgrade(self, key):
        return self._index('prestige_upgrades').get(key)

    def get_trade_route(self, key):
        return self._index('trade_routes').get(key)

    def get_faction(self, key):
        return self._index('factions').get(key)

    def get_age_order(self):
        """Get era keys in progression order."""
        return [age['key'] for age in self.load_ages()]

    def validate_data(self):
        """Validate referential integrity between the catalog tables."""
        errors = []

        for name in CATALOG_FILES:
            if name == 'milestone_titles':
                continue
            keys = [entry.get('key') for entry in self._load_table(name)]
            if not keys and name in ('resources', 'ages', 'buildings'):
                errors.append(f"No {name} loaded")
            if len(keys) != len(set(keys)):
                errors.append(f"Duplicate {name} keys found")

        resources = self._index('resources')
        ages = self._index('ages')
        buildings = self._index('buildings')
        villagers = self._index('villagers')
        techs = self._index('technologies')
        milestones = self._index('milestones')

        def check(kind, owner, ref, table):
            if ref not in table:
                errors.append(f"{kind} '{owner}' references unknown key '{ref}'")

        for age in self.load_ages():
            for res in age.get('resource_reqs', {}):
                check('Age', age['key'], res, resources)
            for bld in age.get('building_reqs', {}):
                check('Age', age['key'], bld, buildings)
            for bld in age.get('unlock_buildings', []):
                check('Age', age['key'], bld, buildings)
            for res in age.get('unlock_resources', []):
                check('Age', age['key'], res, resources)
            for vil in age.get('unlock_villagers', []):
                check('Age', age['key'], vil, villagers)

        unlocked_buildings = {b for age in ages.values() for b in age.get('unlock_buildings', [])}
        for building in self.load_buildings():
            check('Building', building['key'], building.get('required_age'), ages)
            for res in building.get('base_cost', {}):
                check('Building', building['key'], res, resources)
            if building['key'] not in unlocked_buildings:
                errors.append(f"Building '{building['key']}' is never unlocked by any age")

        sources = [upgrade.get('from') for upgrade in self.load_building_upgrades()]
        if len(sources) != len(set(sources)):
            errors.append("Duplicate building upgrade sources found")
        for upgrade in self.load_building_upgrades():
            check('Upgrade', upgrade['key'], upgrade.get('from'), buildings)
            check('Upgrade', upgrade['key'], upgrade.get('to'), buildings)
            check('Upgrade', upgrade['key'], upgrade.get('min_age'), ages)

        for villager in self.load_villagers():
            for res in villager.get('can_gather', []):
                check('Villager', villager['key'], res, resources)

        for tech in self.load_technologies():
            check('Technology', tech['key'], tech.get('age'), ages)
            for prereq in tech.get('prerequisites', []):
                check('Technology', tech['key'], prereq, techs)

        for event in self.load_events():
            check('Event', event['key'], event.get('min_age'), ages)
            for effect in event.get('effects', []):
                check('Event', event['key'], effect['target'], resources)

        for milestone in self.load_milestones():
            if milestone.get('min_age'):
                check('Milestone', milestone['key'], milestone['min_age'], ages)
            for bld in milestone.get('min_buildings', {}):
                check('Milestone', milestone['key'], bld, buildings)
            for vil in milestone.get('min_villagers', {}):
                check('Milestone', milestone['key'], vil, villagers)
            for tech in milestone.get('required_techs', []):
                check('Milestone', milestone['key'], tech, techs)

        for chain in self.load_milestone_chains():
            for member in chain.get('milestone_keys', []):
                check('Chain', chain['key'], member, milestones)

        for expedition in self.load_expeditions():
            check('Expedition', expedition['key'], expedition.get('min_age'), ages)
            for res in expedition.get('rewards', {}):
                check('Expedition', expedition['key'], res, resources)

        for rate in self.load_exchange_rates():
            check('Exchange', rate['key'], rate.get('from'), resources)
            check('Exchange', rate['key'], rate.get('to'), resources)
            check('Exchange', rate['key'], rate.get('min_age'), ages)

        for route in self.load_trade_routes():
            check('Trade route', route['key'], route.get('min_age'), ages)
            check('Trade route', route['key'], route.get('required_building'), buildings)
            for res in list(route.get('export', {})) + list(route.get('import', {})):
                check('Trade route', route['key'], res, resources)

        for faction in self.load_factions():
            check('Faction', faction['key'], faction.get('min_age'), ages)
            check('Faction', faction['key'], faction.get('specialty'), resources)

        for upgrade in self.load_prestige_upgrades():
            if len(upgrade.get('costs', [])) != upgrade.get('max_tier', 0):
                errors.append(f"Prestige upgrade '{upgrade['key']}' has {len(upgrade.get('costs', []))} "
                              f"costs for {upgrade.get('max_tier', 0)} tiers")

        return errors


# Global instance
_game_data_loader = None


def get_game_data_loader(data_dir=None):
    """Get or create the global game data loader instance."""
    global _game_data_loader
    if _game_data_loader is None:
        _game_data_loader = GameDataLoader(data_dir)
    return _game_data_loader
