# handoff_app/services/assistant_gateway.py
# -*- coding: utf-8 -*-
import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from ..models.chat_schemas import ChatRequest, UnifiedChatResponse
from .errors import GatewayResult, NetworkError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/v1/chat"


class AssistantGateway:
    """Client for the automated-assistant chat endpoint."""

    def __init__(
        self,
        base_url: str,
        dev_auth_token: Optional[str] = "demo_token",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required for AssistantGateway.")
        self.base_url = base_url.rstrip("/")
        self.dev_auth_token = dev_auth_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def _headers(auth_token: Optional[str]) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "Content-Type": "application/json",
        }
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        return headers

    def send_message(self, chat_request: ChatRequest) -> GatewayResult[UnifiedChatResponse]:
        missing = chat_request.missing_fields()
        if missing:
            return GatewayResult.fail(ValidationError(
                f"Missing required field: {missing[0]}",
                {"missing_fields": missing},
            ))

        auth_token = chat_request.auth_token
        if not auth_token:
            logger.warning(
                f"No auth_token on chat request for session '{chat_request.session_id}'; using development placeholder.",
                extra={"session_id": chat_request.session_id},
            )
            auth_token = self.dev_auth_token or None

        body: Dict[str, Any] = {
            "message": chat_request.message,
            "user_id": chat_request.user_id,
            "session_id": chat_request.session_id,
            "stream": chat_request.stream,
            "auth_token": auth_token,
            "metadata": chat_request.metadata or {},
        }
        url = f"{self.base_url}{CHAT_PATH}"

        try:
            logger.debug(f"POST {url} for session '{chat_request.session_id}'", extra={"session_id": chat_request.session_id})
            response = self.session.post(url, json=body, headers=self._headers(auth_token), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Assistant API request failed for session '{chat_request.session_id}': {e}")
            return GatewayResult.fail(NetworkError(
                "Internal error while sending chat message",
                {"error": str(e)},
            ))

        if not response.ok:
            logger.error(f"Assistant API error {response.status_code} for session '{chat_request.session_id}': {response.text[:500]}")
            return GatewayResult.fail(UpstreamError(
                "Failed to send chat message",
                status=response.status_code,
                body=response.text,
                error_details={"status_text": response.reason},
            ))

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Assistant API returned non-JSON body for session '{chat_request.session_id}'.")
            return GatewayResult.fail(UpstreamError(
                "Assistant returned an invalid response body",
                status=response.status_code,
                body=response.text,
            ))

        try:
            chat_response = UnifiedChatResponse.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Assistant response for session '{chat_request.session_id}' failed validation: {e.errors()}")
            return GatewayResult.fail(UpstreamError(
                "Assistant response is missing required fields",
                status=response.status_code,
                body=response.text,
                error_details={"invalid_fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
            ))

        logger.info(
            f"Assistant replied for session '{chat_request.session_id}' "
            f"(conversation '{chat_response.conversation_id}', handoff={chat_response.handoff_to_human}).",
            extra={"session_id": chat_request.session_id, "conversation_id": chat_response.conversation_id},
        )
        return GatewayResult.ok(chat_response)
