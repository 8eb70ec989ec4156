"""
Application factory.

    from app import create_app
    app = create_app('production')
"""

import logging
import os

from dotenv import load_dotenv
from flask import Flask
from flask_login import LoginManager
from sqlalchemy import event
from sqlalchemy.engine import make_url

from config import get_config
from models import db
from services.task_service import init_task_service
from utils.api_response import error_response
from utils.auth import load_user, load_user_from_request, unauthorized_response
from utils.startup_validation import BlueprintRegistry, run_startup_validation

load_dotenv()

logger = logging.getLogger(__name__)

login_manager = LoginManager()


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    logging.getLogger().setLevel(level)


def _is_file_sqlite(url) -> bool:
    parsed = make_url(url)
    if parsed.get_backend_name() != 'sqlite':
        return False
    return bool(parsed.database) and parsed.database != ':memory:' and not parsed.database.startswith('file::memory:')


def _install_sqlite_write_lock(engine):
    """
    Open every SQLite transaction with BEGIN IMMEDIATE so concurrent writers
    serialize on the database lock instead of failing on upgrade.
    """
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _register_login(app):
    login_manager.init_app(app)
    login_manager.user_loader(load_user)
    login_manager.request_loader(load_user_from_request)
    login_manager.unauthorized_handler(unauthorized_response)


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(error):
        return error_response('Resource not found', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method not allowed', 405)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        logger.error(f"Unhandled server error: {error}", exc_info=True)
        return error_response('Internal server error', 500)


def create_app(config_name=None, overrides=None):
    """
    Build a configured Flask app.

    Args:
        config_name: 'development', 'testing' or 'production'; defaults to FLASK_ENV
        overrides: mapping applied on top of the config class (tests use this
            to point at a file-backed database)
    """
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    # Grouped listings are keyed by stage in workflow order
    app.json.sort_keys = False

    _configure_logging(app)

    db.init_app(app)
    with app.app_context():
        if _is_file_sqlite(app.config['SQLALCHEMY_DATABASE_URI']):
            _install_sqlite_write_lock(db.engine)

    _register_login(app)

    registry = BlueprintRegistry(app)
    registry.register('routes.auth', 'auth_bp')
    registry.register('routes.api_tasks', 'api_tasks_bp')
    app.extensions['blueprint_registry'] = registry

    _register_error_handlers(app)
    init_task_service(app)

    if app.config.get('VALIDATE_ON_STARTUP'):
        run_startup_validation(app, db)

    if app.config.get('AUTO_CREATE_TABLES'):
        with app.app_context():
            db.create_all()

    logger.info(
        f"App created (env={os.environ.get('FLASK_ENV', config_name or 'development')}, "
        f"blueprints={registry.get_status()['loaded_count']})"
    )
    return app
