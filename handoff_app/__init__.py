# /handoff_app/__init__.py
import os
import logging
from logging.config import dictConfig
from flask import Flask
import redis
from .config.config import Config
from .utils.logging_utils import JsonFormatter

# --- Logging Configuration ---
log_level_env = os.environ.get('LOG_LEVEL', 'INFO').upper()
log_dir_path = Config.LOG_DIR
os.makedirs(log_dir_path, exist_ok=True)

logging_config = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'json': {
            '()': JsonFormatter,
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
    },
    'handlers': {
        'console': {
            'level': log_level_env,
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
            'stream': 'ext://sys.stdout',
        },
        'app_file': {
            'level': log_level_env,
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'standard',
            'filename': Config.LOG_FILE,
            'maxBytes': 10485760,
            'backupCount': 5,
            'encoding': 'utf8',
        },
        'json_file': {
            'level': log_level_env,
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'json',
            'filename': Config.LOG_JSON_FILE,
            'maxBytes': 10485760,
            'backupCount': 5,
            'encoding': 'utf8',
        }
    },
    'loggers': {
        '': {
            'handlers': ['console', 'app_file', 'json_file'],
            'level': log_level_env,
            'propagate': True
        },
        'werkzeug': {'handlers': ['console', 'app_file', 'json_file'], 'level': 'INFO', 'propagate': False},
        'sqlalchemy.engine': {'handlers': ['console', 'app_file', 'json_file'], 'level': 'WARNING', 'propagate': False},
        'celery': {'handlers': ['console', 'app_file', 'json_file'], 'level': log_level_env, 'propagate': False},
        'handoff_app': {'handlers': ['console', 'app_file', 'json_file'], 'level': log_level_env, 'propagate': False}
    }
}
dictConfig(logging_config)
logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    logger.info("--- Creating Flask Application Instance ---")
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Shared Redis client; only the 'redis' state store backend needs it.
    try:
        app.redis_client = redis.Redis.from_url(app.config["REDIS_URL"])
        logger.info(f"Redis client initialized using URL: {app.config['REDIS_URL']}")
    except Exception as e:
        logger.exception(f"Failed to initialize Redis client: {e}")
        app.redis_client = None

    logger.info(f"Flask Environment: {app.config.get('FLASK_ENV', 'not_set')}")
    logger.info(f"Debug Mode: {app.config.get('DEBUG', False)}")
    logger.info(f"Conversation state store backend: {app.config.get('STATE_STORE_BACKEND')}")

    from .utils import db_utils
    db_utils.init_db(app)

    from .api import api_bp as api_module_blueprint
    app.register_blueprint(api_module_blueprint)
    logger.info(f"Main API Blueprint '{api_module_blueprint.name}' registered under url_prefix: {api_module_blueprint.url_prefix}")

    # --- CELERY CONFIGURATION LINKING ---
    from .celery_app import celery_app as celery_application_instance
    celery_config_keys_to_pass = [
        'broker_url',
        'result_backend',
        'task_serializer',
        'result_serializer',
        'task_always_eager',
    ]
    # Celery 5 setting names are lowercase, which Flask's from_object skips.
    celery_flask_config = {
        key: getattr(config_class, key) for key in celery_config_keys_to_pass if hasattr(config_class, key)
    }
    if celery_flask_config:
        celery_application_instance.conf.update(celery_flask_config)
        logger.info(f"Celery instance config updated from Flask app config for keys: {list(celery_flask_config.keys())}")

    register_cli_commands(app)

    logger.info("--- Handoff Application Initialization Complete ---")
    return app


def register_cli_commands(app):

    @app.cli.command("create-db")
    def create_db_command():
        logger.info("Database table creation triggered via CLI.")
        print("--- Creating Database Tables ---")
        with app.app_context():
            from .utils import db_utils
            if db_utils.create_all_tables():
                print("Database tables (from models) created successfully.")
                logger.info("Database tables (from models) created successfully via CLI.")
            else:
                print("Error: Database engine not initialized or table creation failed. See logs.")

    @app.cli.command("clear-mappings")
    def clear_mappings_command():
        with app.app_context():
            from .services.routing_service import get_router
            cleared = get_router().store.clear_all()
            print(f"Cleared {cleared} conversation mappings.")

    logger.info("Custom CLI commands registered.")

# Ensure Celery Tasks Are Imported so the worker can find them
import handoff_app.celery_tasks  # noqa: E402,F401
