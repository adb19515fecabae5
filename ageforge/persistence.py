"""Versioned save format, atomic save files and offline progress."""
import copy
import json
import logging
import os
import tempfile
import time

from ageforge.errors import PersistenceError
from ageforge.stats import GameStats

logger = logging.getLogger(__name__)


def build_save_dict(engine, version):
    """Complete mutable state of a coordinator as a JSON-compatible dict."""
    return {
        'version': version,
        'timestamp': time.time(),
        'tick': engine.tick_count,
        'age': engine.age,
        'resources': engine.resources.amounts(),
        'storage': engine.resources.storages(),
        'buildings': dict(engine.buildings.counts),
        'villagers': engine.population.save_state(),
        'unlocked': {
            'resources': engine.resources.unlocked_keys(),
            'buildings': [key for key in engine.buildings.order if key in engine.buildings.unlocked],
            'villagers': [key for key in engine.population.order if key in engine.population.unlocked],
        },
        'stats': engine.stats.to_dict(),
        'research': engine.research.save_state(),
        'military': engine.military.save_state(),
        'trade': engine.trade.save_state(),
        'diplomacy': engine.diplomacy.save_state(),
        'events': engine.events.save_state(),
        'milestones': [d['key'] for d in engine.milestones.defs if d['key'] in engine.milestones.completed],
        'chains_completed': list(engine.milestones.chains_completed),
        'permanent_bonuses': dict(engine.permanent_bonuses),
        'build_queue': copy.deepcopy(engine.build_queue),
        'prestige': engine.prestige.save_state(),
        'speed_multiplier': engine.speed_multiplier,
        'log': copy.deepcopy(engine.log),
    }


def restore_save_dict(engine, data, version):
    """Populate a freshly created coordinator from a save dict.

    Raises PersistenceError for documents that are not saves or come from a
    newer format; malformed fields surface as KeyError/TypeError/ValueError.
    """
    if not isinstance(data, dict):
        raise PersistenceError("save data must be a JSON object")
    saved_version = data.get('version')
    if not isinstance(saved_version, int):
        raise PersistenceError("save data has no version")
    if saved_version > version:
        raise PersistenceError(f"save version {saved_version} is newer than supported version {version}")

    age = data['age']
    engine.progression.index(age)
    engine.age = age
    engine.tick_count = int(data.get('tick', 0))

    unlocked = data.get('unlocked', {})
    engine.resources.load(data.get('resources', {}), data.get('storage', {}), unlocked.get('resources', []))
    engine.buildings.load(data.get('buildings', {}), unlocked.get('buildings', []))
    engine.population.load(data.get('villagers', {}), unlocked.get('villagers', []))
    engine.research.load(data.get('research', {}))
    engine.military.load(data.get('military', {}))
    engine.trade.load(data.get('trade', {}))
    engine.diplomacy.load(data.get('diplomacy', {}))
    engine.events.load(data.get('events', {}))
    engine.milestones.load(data.get('milestones', []), data.get('chains_completed', []))
    engine.prestige.load(data.get('prestige', {}))
    engine.stats = GameStats.from_dict(data.get('stats', {}))
    engine.permanent_bonuses = {k: float(v) for k, v in data.get('permanent_bonuses', {}).items()}
    engine.build_queue = [
        {
            'key': entry['key'],
            'name': engine.buildings.get_def(entry['key']).get('name', entry['key']),
            'ticks_left': max(int(entry['ticks_left']), 1),
            'total_ticks': int(entry.get('total_ticks', entry['ticks_left'])),
        }
        for entry in data.get('build_queue', [])
    ]
    engine.speed_multiplier = float(data.get('speed_multiplier', 1.0))
    engine.log = list(data.get('log', []))


def write_save(path, data):
    """Write a save document atomically: temp file in the same directory, then rename."""
    directory = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.save-', suffix='.tmp', dir=directory)
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
    except (OSError, TypeError, ValueError) as err:
        raise PersistenceError(f"failed to write save file {path}: {err}") from err
    logger.info("Saved game to %s", path)
    return path


def read_save(path):
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as err:
        raise PersistenceError(f"failed to read save file {path}: {err}") from err
    logger.info("Read save file %s", path)
    return data


def offline_ticks(elapsed, interval, min_seconds, max_seconds):
    """Whole ticks that would have run in `elapsed` seconds, capped at max_seconds."""
    if elapsed < min_seconds or interval <= 0:
        return 0
    return int(min(elapsed, max_seconds) / interval)


def credit_offline_progress(ledger, ticks, efficiency):
    """Credit positive rates of unlocked resources for `ticks` ticks at reduced efficiency."""
    gained = {}
    if ticks <= 0:
        return gained
    for key in ledger.unlocked_keys():
        rate = ledger.get_rate(key)
        if rate <= 0:
            continue
        before = ledger.get(key)
        after = ledger.add(key, rate * ticks * efficiency)
        if after > before:
            gained[key] = after - before
    return gained
