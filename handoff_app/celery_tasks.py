# handoff_app/celery_tasks.py

import logging
from typing import Any, Dict

from .celery_app import celery_app, FlaskTask
from .models.chat_schemas import ChatRequest
from .services.router import result_to_dict
from .services.routing_service import get_router

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    base=FlaskTask,
    name='handoff_app.celery_tasks.route_chat_message_task',
    max_retries=0,
)
def route_chat_message_task(self, chat_payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Routes one chat message in the background. Human-agent sends are not
    idempotent, so the task is never retried; failures come back as a
    ``success: false`` result rather than an exception.
    """
    task_id = self.request.id
    chat_request = ChatRequest.model_validate(chat_payload)
    logger.info(
        f"Task {task_id}: routing message for session '{chat_request.session_id}'.",
        extra={"task_id": task_id, "session_id": chat_request.session_id},
    )

    outcome = result_to_dict(get_router().send_message(chat_request))
    if outcome["success"]:
        logger.info(f"Task {task_id}: routed message for session '{chat_request.session_id}'.", extra={"task_id": task_id})
    else:
        logger.warning(
            f"Task {task_id}: routing failed for session '{chat_request.session_id}': {outcome.get('message')}",
            extra={"task_id": task_id, "session_id": chat_request.session_id},
        )
    return outcome
