"""Save slot API endpoints."""
from flask import Blueprint, jsonify, request

from ageforge.api.game import discard_engine
from ageforge.models import CommandLog, GameSession, db

saves_bp = Blueprint('saves', __name__)


@saves_bp.route('/', methods=['GET'])
def list_saves():
    """List save slots, most recently updated first."""
    limit = request.args.get('limit', 20, type=int)
    offset = request.args.get('offset', 0, type=int)

    sessions = GameSession.query.order_by(GameSession.updated_at.desc()).offset(offset).limit(limit).all()

    return jsonify({
        'saves': [session.to_dict() for session in sessions],
        'total': GameSession.query.count()
    })


@saves_bp.route('/<int:session_id>', methods=['GET'])
def get_save(session_id):
    """Get one save slot including its saved state."""
    session = db.get_or_404(GameSession, session_id)
    return jsonify({'save': session.to_dict(include_state=True)})


@saves_bp.route('/<int:session_id>/commands', methods=['GET'])
def get_commands(session_id):
    """Get the command history for a save slot."""
    session = db.get_or_404(GameSession, session_id)
    limit = request.args.get('limit', 100, type=int)
    offset = request.args.get('offset', 0, type=int)

    commands = CommandLog.query.filter_by(session_id=session.id).order_by(CommandLog.id).offset(offset).limit(limit).all()

    return jsonify({
        'session_id': session.id,
        'commands': [command.to_dict() for command in commands],
        'total': CommandLog.query.filter_by(session_id=session.id).count()
    })


@saves_bp.route('/<int:session_id>', methods=['DELETE'])
def delete_save(session_id):
    """Delete a save slot and its history."""
    session = db.get_or_404(GameSession, session_id)
    discard_engine(session.id)
    db.session.delete(session)
    db.session.commit()
    return jsonify({'success': True, 'deleted': session_id})
