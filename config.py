"""
Application configuration.

Values come from environment variables (optionally from a .env file loaded by
the app factory). Select a config class with FLASK_ENV / create_app(name).
"""

import os


def _database_url(default=None):
    url = os.environ.get('DATABASE_URL', default)
    # Some hosts still hand out postgres:// URLs, which SQLAlchemy rejects
    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _bool_env(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _int_env(name, default=None):
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET', 'dev-secret-change-me')
    SQLALCHEMY_DATABASE_URI = _database_url('sqlite:///stageboard.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Create tables on startup; production relies on migrations instead
    AUTO_CREATE_TABLES = True

    # Ordering engine
    ORDERING_LOCK_TIMEOUT_MS = _int_env('ORDERING_LOCK_TIMEOUT_MS', 5000)
    ORDERING_VERIFY_INVARIANTS = _bool_env('ORDERING_VERIFY_INVARIANTS', False)

    # Listing
    TASKS_DEFAULT_PER_PAGE = _int_env('TASKS_DEFAULT_PER_PAGE', 10)
    TASKS_MAX_PER_PAGE = _int_env('TASKS_MAX_PER_PAGE', 100)

    VALIDATE_ON_STARTUP = False


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    ORDERING_VERIFY_INVARIANTS = _bool_env('ORDERING_VERIFY_INVARIANTS', True)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key-for-testing-only'
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_LEVEL = 'WARNING'
    ORDERING_VERIFY_INVARIANTS = True


class ProductionConfig(Config):
    AUTO_CREATE_TABLES = False
    VALIDATE_ON_STARTUP = True


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(name=None):
    name = name or os.environ.get('FLASK_ENV', 'development')
    return config_by_name.get(name, DevelopmentConfig)
