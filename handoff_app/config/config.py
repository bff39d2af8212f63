# handoff_app/config/config.py
# -*- coding: utf-8 -*-
import os
from dotenv import load_dotenv

# Project root is two levels up from this file (handoff_app/config/).
project_root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))

# The test suite sets FLASK_ENV=testing; .env.test then overrides the main .env.
if os.environ.get('FLASK_ENV') == 'testing':
    test_dotenv_path = os.path.join(project_root_dir, '.env.test')
    if os.path.exists(test_dotenv_path):
        load_dotenv(dotenv_path=test_dotenv_path, override=True)
        print(f"DEBUG [config.py]: LOADED TEST CONFIG from: {test_dotenv_path}")

basedir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
dotenv_path = os.path.join(project_root_dir, '.env')

if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path, override=False)
    print(f"DEBUG [config.py]: Loaded .env from: {dotenv_path}")
else:
    print(f"WARNING: .env file not found at {dotenv_path}")


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    # --- Flask App ---
    SECRET_KEY = os.environ.get('SECRET_KEY', 'default-insecure-secret-key')
    FLASK_ENV = os.environ.get('FLASK_ENV', 'production')
    DEBUG = FLASK_ENV == 'development'

    # --- Logging ---
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(project_root_dir, 'logs'))
    LOG_FILE = os.path.join(LOG_DIR, 'app.log')
    LOG_JSON_FILE = os.path.join(LOG_DIR, 'app.json')

    # --- Database (conversation mappings, identity links) ---
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')
    if SQLALCHEMY_DATABASE_URI and SQLALCHEMY_DATABASE_URI.startswith("postgres://"):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace("postgres://", "postgresql://", 1)
    DATABASE_URL = SQLALCHEMY_DATABASE_URI
    SQLALCHEMY_ECHO = DEBUG

    # --- Celery 5+ Configuration ---
    broker_url = os.environ.get('broker_url', 'redis://localhost:6379/0')
    result_backend = os.environ.get('result_backend', 'redis://localhost:6379/0')
    task_serializer = os.environ.get('task_serializer', 'json')
    result_serializer = os.environ.get('result_serializer', 'json')
    accept_content = [os.environ.get('accept_content', 'json')]
    timezone = os.environ.get('timezone', 'UTC')
    enable_utc = _env_bool('enable_utc', 'true')
    REDIS_URL = os.environ.get('REDIS_URL', broker_url)

    # --- Conversation state store ---
    # 'sql' keeps one row per session with unique secondary indices (atomic writes).
    # 'redis' and 'memory' keep the flat three-key layout.
    STATE_STORE_BACKEND = os.environ.get('STATE_STORE_BACKEND', 'sql').lower()
    if STATE_STORE_BACKEND not in ('sql', 'redis', 'memory'):
        print(f"WARNING [Config]: Invalid STATE_STORE_BACKEND '{STATE_STORE_BACKEND}'. Defaulting to 'sql'.")
        STATE_STORE_BACKEND = 'sql'
    STATE_STORE_KEY_PREFIX = os.environ.get('STATE_STORE_KEY_PREFIX', 'handoff:')

    # --- Assistant backend ---
    ASSISTANT_API_URL = os.environ.get('ASSISTANT_API_URL', 'http://localhost:8000')
    # Substituted when a chat request arrives without auth_token. Development convenience only.
    ASSISTANT_DEV_AUTH_TOKEN = os.environ.get('ASSISTANT_DEV_AUTH_TOKEN', 'demo_token')
    ASSISTANT_TIMEOUT_SECONDS = float(os.environ.get('ASSISTANT_TIMEOUT_SECONDS', 30))

    # --- Human-agent platform (Freshchat-style v2 API) ---
    HUMAN_AGENT_API_URL = os.environ.get('HUMAN_AGENT_API_URL', 'https://api.freshchat.com/v2')
    HUMAN_AGENT_API_TOKEN = os.environ.get('HUMAN_AGENT_API_TOKEN', '')
    HUMAN_AGENT_TIMEOUT_SECONDS = float(os.environ.get('HUMAN_AGENT_TIMEOUT_SECONDS', 30))
    HUMAN_AGENT_ASSUME_IDENTITY = _env_bool('HUMAN_AGENT_ASSUME_IDENTITY', 'false')
    HUMAN_AGENT_FALLBACK_RESPONSE = os.environ.get('HUMAN_AGENT_FALLBACK_RESPONSE', 'Message sent to human agent')

    # Key inside the assistant response metadata that carries the platform conversation id.
    EXTERNAL_CONVERSATION_ID_FIELD = os.environ.get('EXTERNAL_CONVERSATION_ID_FIELD', 'freshchat_conversation_id')


# --- Config Sanity Check ---
if __name__ != "__main__":
    print(f"--- Config Initialized ---")
    print(f"ENV: {Config.FLASK_ENV}, DEBUG={Config.DEBUG}")
    print(f"DB URI: {'SET' if Config.SQLALCHEMY_DATABASE_URI else 'MISSING'}")
    print(f"State store backend: {Config.STATE_STORE_BACKEND}")
    print(f"Celery broker_url: {Config.broker_url}")
    print(f"Assistant API URL: {Config.ASSISTANT_API_URL}")
    print(f"Human-agent API URL: {Config.HUMAN_AGENT_API_URL}")
    print(f"Human-agent token loaded: {'Yes' if Config.HUMAN_AGENT_API_TOKEN else 'No'}")
    print(f"--------------------")
