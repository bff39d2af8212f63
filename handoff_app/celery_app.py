# handoff_app/celery_app.py
# -*- coding: utf-8 -*-
import logging

from celery import Celery, Task

from .config import Config

logger = logging.getLogger(__name__)

celery_app = Celery(
    'handoff_app',
    broker=Config.broker_url,
    backend=Config.result_backend,
    include=['handoff_app.celery_tasks'],
)
celery_app.conf.update(
    task_serializer=Config.task_serializer,
    result_serializer=Config.result_serializer,
    accept_content=Config.accept_content,
    timezone=Config.timezone,
    enable_utc=Config.enable_utc,
    broker_connection_retry_on_startup=True,
)

_flask_app = None


def _get_flask_app():
    global _flask_app
    if _flask_app is None:
        from . import create_app
        _flask_app = create_app()
        logger.info("Flask application created for Celery worker.")
    return _flask_app


class FlaskTask(Task):
    """Runs the task body inside a Flask application context."""
    abstract = True

    def __call__(self, *args, **kwargs):
        from flask import has_app_context

        if has_app_context():
            return super().__call__(*args, **kwargs)
        with _get_flask_app().app_context():
            return super().__call__(*args, **kwargs)
