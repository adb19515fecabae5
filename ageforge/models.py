"""Database models for save slots and command history."""
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)


class GameSession(db.Model):
    """Save slot: one civilization and its full saved state."""
    __tablename__ = 'game_sessions'

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
    tick = db.Column(db.Integer, default=0, nullable=False)
    age = db.Column(db.String(50), nullable=True)
    prestige_level = db.Column(db.Integer, default=0, nullable=False)
    game_config = db.Column(db.JSON, default=dict)  # Per-session overrides of Config constants
    game_state = db.Column(db.JSON, default=dict)  # Versioned save document

    # Relationships
    commands = db.relationship('CommandLog', backref='session', lazy=True, cascade='all, delete-orphan',
                               order_by='CommandLog.id')

    def to_dict(self, include_state=False):
        """Convert to dictionary."""
        data = {
            'id': self.id,
            'label': self.label,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'tick': self.tick,
            'age': self.age,
            'prestige_level': self.prestige_level,
            'game_config': self.game_config,
        }
        if include_state:
            data['game_state'] = self.game_state
        return data


class CommandLog(db.Model):
    """One command issued against a session."""
    __tablename__ = 'command_logs'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False, index=True)
    action_type = db.Column(db.String(50), nullable=False)  # build, recruit, start_research, tick, load, ...
    action_data = db.Column(db.JSON, nullable=False, default=dict)
    tick_number = db.Column(db.Integer, nullable=False, index=True)
    success = db.Column(db.Boolean, default=True, nullable=False)
    message = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    def to_dict(self):
        """Convert to dictionary."""
        return {
            'id': self.id,
            'session_id': self.session_id,
            'action_type': self.action_type,
            'action_data': self.action_data,
            'tick_number': self.tick_number,
            'success': self.success,
            'message': self.message,
            'created_at': self.created_at.isoformat(),
        }
