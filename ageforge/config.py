"""Configuration settings for the simulation and the Flask application."""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        os.environ.get('SQLALCHEMY_DATABASE_URI') or \
        'sqlite:///ageforge.db'

    # Catalog location (None = game_data/ next to the package)
    GAME_DATA_DIR = os.environ.get('AGEFORGE_GAME_DATA_DIR')

    # Tick timing (seconds)
    BASE_TICK_INTERVAL = float(os.environ.get('AGEFORGE_TICK_INTERVAL', 2.0))
    MIN_TICK_INTERVAL = 0.2

    # Speed multiplier: steps of 0.5x, +0.5x allowed per wonder type built
    SPEED_STEP = 0.5
    WONDER_SPEED_BONUS = 0.5

    # In-game message log
    MAX_LOG_SIZE = 500

    # Fresh world
    STARTING_AGE = 'primitive_age'
    STARTING_RESOURCES = {'food': 15, 'wood': 12}

    # Random events: chance that a picked eligible event actually fires
    EVENT_FIRE_CHANCE = 0.08

    # Military
    MIN_EXPEDITION_DIFFICULTY = 0.05
    MILITARY_DIFFICULTY_FACTOR = 0.3
    FAILED_EXPEDITION_REWARD = 0.3
    SUCCESS_LOSS_FACTOR = 0.3
    DEFENSE_PER_SOLDIER = 2

    # Prestige
    PRESTIGE_MIN_AGE = 'medieval_age'
    PRESTIGE_PRODUCTION_PER_LEVEL = 0.02

    # Trade and diplomacy
    TRADE_BUILDINGS = ('market', 'port')
    EXCHANGE_PRESSURE_STEP = 0.1
    EXCHANGE_PRESSURE_DECAY = 0.98
    ALLIANCE_GOLD_COST = 500
    GIFT_GOLD_COST = 200

    # Persistence
    SAVE_VERSION = 1
    SAVE_PATH = os.environ.get('AGEFORGE_SAVE_PATH') or \
        os.path.join(os.path.expanduser('~'), '.ageforge', 'save.json')
    OFFLINE_PROGRESS = _env_bool('AGEFORGE_OFFLINE_PROGRESS', True)
    OFFLINE_EFFICIENCY = 0.5
    MIN_OFFLINE_SECONDS = 5
    MAX_OFFLINE_SECONDS = 24 * 60 * 60

    # Start the tick scheduler for sessions created through the API
    AUTO_START_CLOCK = _env_bool('AGEFORGE_AUTO_START_CLOCK', False)


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    OFFLINE_PROGRESS = False
    AUTO_START_CLOCK = False


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
