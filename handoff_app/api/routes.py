# handoff_app/api/routes.py
# -*- coding: utf-8 -*-

import logging

from flask import request, jsonify
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text

from ..utils import db_utils
from ..models.chat_schemas import ChatRequest, FailureResponse
from ..services.router import result_to_dict
from ..services.routing_service import get_router

from . import api_bp

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "validation_error": 400,
    "missing_identity": 404,
    "upstream_error": 502,
    "network_error": 502,
    "partial_success": 502,
    "internal_error": 500,
}


def _failure(message, error_type, status_code, **details):
    body = FailureResponse(message=message, error_type=error_type, error_details=details)
    return jsonify(body.model_dump()), status_code


def _parse_chat_request():
    """Returns (ChatRequest, None) or (None, error response)."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        logger.warning("Chat request rejected: body is not a JSON object.")
        return None, _failure("Request body must be a JSON object", "validation_error", 400)
    try:
        return ChatRequest.model_validate(body), None
    except PydanticValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        logger.warning(f"Chat request rejected: invalid fields {fields}")
        return None, _failure("Invalid chat request", "validation_error", 400, invalid_fields=fields)


@api_bp.route('/v1/chat', methods=['POST'])
def chat():
    """Routes one chat message synchronously and returns the unified response."""
    chat_request, error_response = _parse_chat_request()
    if error_response:
        return error_response

    result = get_router().send_message(chat_request)
    body = result_to_dict(result)
    if body["success"]:
        return jsonify(body), 200
    return jsonify(body), ERROR_STATUS_CODES.get(body.get("error_type"), 500)


@api_bp.route('/v1/chat/async', methods=['POST'])
def chat_async():
    """Validates the message and enqueues it for background routing. Returns HTTP 202 Accepted."""
    chat_request, error_response = _parse_chat_request()
    if error_response:
        return error_response

    missing = chat_request.missing_fields()
    if missing:
        return _failure(f"Missing required field: {missing[0]}", "validation_error", 400, missing_fields=missing)

    from ..celery_tasks import route_chat_message_task
    try:
        task = route_chat_message_task.delay(chat_request.model_dump())
    except Exception as e:
        logger.exception(f"Failed to enqueue chat message for session '{chat_request.session_id}': {e}")
        return _failure("Failed to enqueue chat message", "internal_error", 500, error=str(e))

    logger.info(
        f"Enqueued chat message for session '{chat_request.session_id}' as task {task.id}.",
        extra={"session_id": chat_request.session_id, "task_id": task.id},
    )
    return jsonify({"status": "accepted", "task_id": task.id, "session_id": chat_request.session_id}), 202


# --- Conversation mappings ---

def _mapping_or_404(mapping, lookup):
    if mapping is None:
        return _failure(f"No conversation mapping found for {lookup}", "not_found", 404)
    return jsonify(mapping.model_dump()), 200


@api_bp.route('/v1/mappings', methods=['GET'])
def list_mappings():
    mappings = get_router().store.all()
    return jsonify({"count": len(mappings), "mappings": [m.model_dump() for m in mappings]}), 200


@api_bp.route('/v1/mappings', methods=['DELETE'])
def clear_all_mappings():
    cleared = get_router().store.clear_all()
    logger.warning(f"All conversation mappings cleared via API ({cleared} sessions).")
    return jsonify({"status": "ok", "cleared": cleared}), 200


@api_bp.route('/v1/mappings/session/<session_id>', methods=['GET'])
def get_mapping_by_session(session_id):
    return _mapping_or_404(get_router().store.get_by_session(session_id), f"session '{session_id}'")


@api_bp.route('/v1/mappings/conversation/<conversation_id>', methods=['GET'])
def get_mapping_by_conversation(conversation_id):
    mapping = get_router().store.get_by_internal_conversation(conversation_id)
    return _mapping_or_404(mapping, f"conversation '{conversation_id}'")


@api_bp.route('/v1/mappings/external/<external_conversation_id>', methods=['GET'])
def get_mapping_by_external(external_conversation_id):
    mapping = get_router().store.get_by_external(external_conversation_id)
    return _mapping_or_404(mapping, f"external conversation '{external_conversation_id}'")


@api_bp.route('/v1/mappings/session/<session_id>/handoff', methods=['GET'])
def get_handoff_status(session_id):
    handed_off = get_router().store.is_handed_off(session_id)
    return jsonify({"session_id": session_id, "handoff_to_human": handed_off}), 200


@api_bp.route('/v1/mappings/session/<session_id>', methods=['DELETE'])
def clear_mapping(session_id):
    if not get_router().store.clear(session_id):
        return _failure(f"No conversation mapping found for session '{session_id}'", "not_found", 404)
    return jsonify({"status": "ok", "session_id": session_id}), 200


@api_bp.route('/health', methods=['GET'])
def health_check():
    """Performs a health check on the application and its database connection."""
    logger.debug("Health check endpoint hit.")
    db_ok = False
    try:
        with db_utils.get_db_session() as session:
            if session is not None:
                session.execute(text("SELECT 1"))
                db_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        db_ok = False
    return jsonify({"status": "ok", "database_connected": db_ok}), 200
