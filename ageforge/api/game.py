"""Game API endpoints."""
import threading

from flask import Blueprint, current_app, jsonify, request

from ageforge.errors import GameError, InvalidArgumentError
from ageforge.game_engine import SimulationCoordinator
from ageforge.models import CommandLog, GameSession, db

game_bp = Blueprint('game', __name__)

MAX_TICKS_PER_REQUEST = 1000

# Coordinators whose clock is running, by session id
_running = {}
_running_lock = threading.Lock()


def get_running_engine(session_id):
    with _running_lock:
        return _running.get(session_id)


def discard_engine(session_id):
    """Stop and forget a running coordinator, if any."""
    with _running_lock:
        engine = _running.pop(session_id, None)
    if engine is not None:
        engine.stop(timeout=1.0)
    return engine


def stop_all_clocks():
    """Signal every running clock to stop without blocking."""
    for engine in list(_running.values()):
        engine.stop()


def _load_engine(session):
    engine = get_running_engine(session.id)
    if engine is None:
        engine = SimulationCoordinator.load_from_session(session)
    return engine


def _get_session(data):
    if not data or not data.get('session_id'):
        raise InvalidArgumentError("Missing session_id")
    return db.get_or_404(GameSession, data['session_id'])


def _persist(session, engine, action_type, action_data, success=True, message=None):
    """Refresh the save slot from the engine and record the command."""
    state = engine.to_save_dict()
    session.game_state = state
    session.tick = state['tick']
    session.age = state['age']
    session.prestige_level = state['prestige']['level']
    db.session.add(CommandLog(
        session_id=session.id,
        action_type=action_type,
        action_data=action_data or {},
        tick_number=state['tick'],
        success=success,
        message=message[:255] if message else None,
    ))
    db.session.commit()


@game_bp.route('/start', methods=['POST'])
def start_game():
    """Start a new game session in a fresh save slot."""
    data = request.get_json() or {}
    config = data.get('config', {})

    session = GameSession(label=data.get('label'), game_config=config)
    db.session.add(session)
    db.session.commit()

    engine = SimulationCoordinator(session.id, config)
    _persist(session, engine, 'start', {'label': session.label})

    if current_app.config.get('AUTO_START_CLOCK'):
        with _running_lock:
            _running[session.id] = engine
        engine.start()

    return jsonify({
        'session_id': session.id,
        'game_state': engine.get_state()
    }), 201


@game_bp.route('/state/<int:session_id>', methods=['GET'])
def get_game_state(session_id):
    """Get current game state."""
    session = db.get_or_404(GameSession, session_id)
    engine = _load_engine(session)
    return jsonify({'game_state': engine.get_state()})


@game_bp.route('/action', methods=['POST'])
def game_action():
    """Perform a game action."""
    data = request.get_json()
    session = _get_session(data)
    action_type = data.get('action_type')
    action_data = data.get('action_data') or {}
    if not action_type:
        raise InvalidArgumentError("Missing action_type")

    engine = _load_engine(session)
    try:
        result = engine.perform_action(action_type, action_data)
    except GameError as e:
        db.session.rollback()
        _persist(session, engine, action_type, action_data, success=False, message=str(e))
        raise

    _persist(session, engine, action_type, action_data)
    return jsonify({
        'success': True,
        'result': result,
        'game_state': engine.get_state()
    })


@game_bp.route('/tick', methods=['POST'])
def tick_game():
    """Advance the simulation by one or more ticks synchronously."""
    data = request.get_json()
    session = _get_session(data)
    count = data.get('count', 1)
    if not isinstance(count, int) or isinstance(count, bool) or not 1 <= count <= MAX_TICKS_PER_REQUEST:
        raise InvalidArgumentError(f"count must be an integer between 1 and {MAX_TICKS_PER_REQUEST}")

    engine = _load_engine(session)
    for _ in range(count):
        engine.tick()
    _persist(session, engine, 'tick', {'count': count})
    return jsonify({'success': True, 'tick': engine.tick_count, 'game_state': engine.get_state()})


@game_bp.route('/clock', methods=['POST'])
def set_clock():
    """Start or stop the background tick loop for a session."""
    data = request.get_json()
    session = _get_session(data)
    running = data.get('running')
    if not isinstance(running, bool):
        raise InvalidArgumentError("'running' must be true or false")

    if running:
        engine = _load_engine(session)
        with _running_lock:
            _running[session.id] = engine
        engine.start()
    else:
        engine = discard_engine(session.id) or _load_engine(session)

    _persist(session, engine, 'clock', {'running': running})
    return jsonify({'success': True, 'running': engine.is_running, 'tick_interval': engine.get_tick_interval()})


@game_bp.route('/save', methods=['POST'])
def save_game():
    """Persist the session to its save slot, and optionally to the save file."""
    data = request.get_json()
    session = _get_session(data)
    engine = _load_engine(session)

    path = None
    if data.get('to_file'):
        path = engine.save_game()
    _persist(session, engine, 'save', {'to_file': bool(path)})
    return jsonify({'success': True, 'message': 'Game state saved', 'path': path})


@game_bp.route('/load', methods=['POST'])
def load_game():
    """Replace the session's world with a save document or the save file."""
    data = request.get_json()
    session = _get_session(data)
    engine = _load_engine(session)

    if data.get('from_file'):
        offline_ticks = engine.load_game()
    elif data.get('game_state'):
        offline_ticks = engine.load_save_dict(data['game_state'])
    else:
        raise InvalidArgumentError("Missing game_state")

    _persist(session, engine, 'load', {'from_file': bool(data.get('from_file'))})
    return jsonify({
        'success': True,
        'offline_ticks': offline_ticks,
        'game_state': engine.get_state()
    })
