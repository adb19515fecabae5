"""Flask application factory."""
from flask import Flask, jsonify
from flask_cors import CORS
from flask_migrate import Migrate
import os

from ageforge.config import config
from ageforge.errors import GameError, NotFoundError, PersistenceError
from ageforge.models import db
from ageforge.game_data_loader import get_game_data_loader


def create_app(config_name=None):
    """Create and configure Flask application."""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)
    CORS(app)
    Migrate(app, db)

    # Validate the content catalog once at startup
    with app.app_context():
        data_loader = get_game_data_loader(app.config.get('GAME_DATA_DIR'))
        errors = data_loader.validate_data()
        if errors:
            app.logger.warning(f"Game data validation warnings: {errors}")

    # Register blueprints
    from ageforge.api import game_bp, saves_bp
    app.register_blueprint(game_bp, url_prefix='/api/game')
    app.register_blueprint(saves_bp, url_prefix='/api/saves')

    # Error handlers
    @app.errorhandler(GameError)
    def game_error(error):
        db.session.rollback()
        status = 404 if isinstance(error, NotFoundError) else 400
        return jsonify({'error': str(error), 'category': error.category}), status

    @app.errorhandler(PersistenceError)
    def persistence_error(error):
        db.session.rollback()
        app.logger.error(f"Persistence failure: {error}")
        return jsonify({'error': str(error), 'category': error.category}), 500

    @app.errorhandler(404)
    def not_found(error):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return {'error': 'Internal server error'}, 500

    return app
