# handoff_app/api/identity_routes.py

import logging
from flask import request, jsonify

from ..services.routing_service import get_router

from . import api_bp

logger = logging.getLogger(__name__)


@api_bp.route('/v1/identities', methods=['POST'])
def link_identities():
    """
    Links a chat session to an internal user and/or an internal user to a
    human-agent platform user. Accepts any of ``session_id``, ``user_id`` and
    ``platform_user_id``; ``user_id`` is required for either link.
    """
    if not request.is_json:
        return jsonify({"status": "error", "message": "Content-Type must be application/json."}), 415

    body = request.get_json(silent=True) or {}
    session_id = body.get('session_id')
    user_id = body.get('user_id')
    platform_user_id = body.get('platform_user_id')

    if not user_id or not (session_id or platform_user_id):
        return jsonify({
            "status": "error",
            "message": "user_id and at least one of session_id or platform_user_id are required.",
        }), 400

    resolver = get_router().identity_resolver
    linked = {}
    if session_id:
        linked["session"] = resolver.link_session_user(str(session_id), str(user_id))
    if platform_user_id:
        linked["platform_user"] = resolver.link_platform_user(str(user_id), str(platform_user_id))

    if not all(linked.values()):
        logger.error(f"Identity link failed for user '{user_id}': {linked}")
        return jsonify({"status": "error", "message": "Failed to store identity link.", "linked": linked}), 500

    logger.info(f"Identity links stored for user '{user_id}': {list(linked)}", extra={"user_id": user_id})
    return jsonify({"status": "ok", "linked": linked}), 201
