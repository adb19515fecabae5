"""API blueprints for AgeForge."""
from ageforge.api.game import game_bp
from ageforge.api.saves import saves_bp

__all__ = ['game_bp', 'saves_bp']
