# handoff_app/services/human_agent_gateway.py
# -*- coding: utf-8 -*-
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import ValidationError as PydanticValidationError

from ..models.platform_schemas import (
    ActorType,
    MessagePayload,
    MessageType,
    PlatformConversation,
    PlatformUser,
    PlatformUserRequest,
    QuickReplyButton,
    SentMessage,
    UrlButton,
)
from .errors import GatewayResult, NetworkError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class HumanAgentGateway:
    """
    Client for the human-agent platform's v2 REST API: sending messages into an
    existing conversation, reading transcripts, and managing platform users.
    Every call returns a :class:`GatewayResult`; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 30.0,
        assume_identity: bool = False,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required for HumanAgentGateway.")
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.assume_identity = assume_identity
        self.session = session or requests.Session()

    def _headers(self, assume_identity: Optional[bool] = None) -> Dict[str, str]:
        if assume_identity is None:
            assume_identity = self.assume_identity
        return {
            "accept": "application/json",
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "ASSUME-IDENTITY": str(bool(assume_identity)).lower(),
        }

    def _request(
        self,
        method: str,
        path: str,
        failure_message: str,
        assume_identity: Optional[bool] = None,
        **kwargs: Any,
    ) -> GatewayResult[Any]:
        """Performs the HTTP call and returns the decoded JSON body on 2xx."""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers(assume_identity), timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Human-agent platform {method} {path} failed: {e}")
            return GatewayResult.fail(NetworkError(
                f"Internal error while calling human-agent platform: {failure_message}",
                {"error": str(e)},
            ))

        if not response.ok:
            logger.error(f"Human-agent platform {method} {path} returned {response.status_code}: {response.text[:500]}")
            return GatewayResult.fail(UpstreamError(
                failure_message,
                status=response.status_code,
                body=response.text,
                error_details={"status_text": response.reason},
            ))

        if not response.content:
            return GatewayResult.ok({})

        try:
            return GatewayResult.ok(response.json())
        except ValueError:
            logger.error(f"Human-agent platform {method} {path} returned a non-JSON body.")
            return GatewayResult.fail(UpstreamError(
                f"{failure_message}: invalid response body",
                status=response.status_code,
                body=response.text,
            ))

    @staticmethod
    def _parse(result: GatewayResult[Any], model, failure_message: str) -> GatewayResult[Any]:
        if not result.success:
            return result
        try:
            return GatewayResult.ok(model.model_validate(result.data))
        except PydanticValidationError as e:
            logger.error(f"{failure_message}: unexpected response shape: {e.errors()}")
            return GatewayResult.fail(UpstreamError(
                f"{failure_message}: unexpected response shape",
                status=None,
                body=str(result.data),
                error_details={"invalid_fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
            ))

    # --- Messages ---

    def send_message(
        self,
        external_conversation_id: str,
        payload: MessagePayload,
        user_id: str,
        actor_id: str,
        actor_type: ActorType = "user",
        message_type: MessageType = "normal",
        assume_identity: Optional[bool] = None,
    ) -> GatewayResult[SentMessage]:
        """Posts ``payload`` (text plus optional reply buttons) into an existing conversation."""
        if not external_conversation_id:
            return GatewayResult.fail(ValidationError("conversationId is required"))
        if not payload.text:
            return GatewayResult.fail(ValidationError("message_parts is required and cannot be empty"))
        if not user_id or not actor_id:
            return GatewayResult.fail(ValidationError(
                "user_id and actor_id are required",
                {"user_id": user_id, "actor_id": actor_id},
            ))

        body: Dict[str, Any] = {
            "message_parts": payload.to_message_parts(),
            "message_type": message_type,
            "actor_type": actor_type,
            "user_id": user_id,
            "actor_id": actor_id,
        }
        reply_parts = payload.to_reply_parts()
        if reply_parts:
            body["reply_parts"] = reply_parts

        result = self._request(
            "POST",
            f"/conversations/{external_conversation_id}/messages",
            "Failed to send message to human-agent conversation",
            assume_identity=assume_identity,
            json=body,
        )
        if not result.success:
            return result

        data = result.data if isinstance(result.data, dict) else {}
        message_id = data.get("id") or data.get("message_id")
        logger.info(
            f"Sent {actor_type} message {message_id} to platform conversation '{external_conversation_id}'.",
            extra={"external_conversation_id": external_conversation_id},
        )
        return GatewayResult.ok(SentMessage(message_id=str(message_id) if message_id else None, message_data=data))

    def send_text_message(self, external_conversation_id: str, content: str, user_id: str, actor_id: str,
                          actor_type: ActorType = "agent", assume_identity: Optional[bool] = None):
        return self.send_message(external_conversation_id, MessagePayload(text=content), user_id, actor_id,
                                 actor_type=actor_type, assume_identity=assume_identity)

    def send_message_with_quick_replies(self, external_conversation_id: str, content: str, quick_replies: Sequence[str],
                                        user_id: str, actor_id: str, actor_type: ActorType = "agent",
                                        assume_identity: Optional[bool] = None):
        payload = MessagePayload(text=content, replies=[QuickReplyButton(label=label) for label in quick_replies])
        return self.send_message(external_conversation_id, payload, user_id, actor_id,
                                 actor_type=actor_type, assume_identity=assume_identity)

    def send_message_with_url_buttons(self, external_conversation_id: str, content: str,
                                      url_buttons: Sequence[Dict[str, str]], user_id: str, actor_id: str,
                                      actor_type: ActorType = "agent", assume_identity: Optional[bool] = None):
        payload = MessagePayload(text=content, replies=[UrlButton(**button) for button in url_buttons])
        return self.send_message(external_conversation_id, payload, user_id, actor_id,
                                 actor_type=actor_type, assume_identity=assume_identity)

    def send_message_with_mixed_buttons(self, external_conversation_id: str, content: str,
                                        quick_replies: Sequence[str], url_buttons: Sequence[Dict[str, str]],
                                        user_id: str, actor_id: str, actor_type: ActorType = "agent",
                                        assume_identity: Optional[bool] = None):
        # Quick replies first, then URL buttons.
        replies: List[Any] = [QuickReplyButton(label=label) for label in quick_replies]
        replies.extend(UrlButton(**button) for button in url_buttons)
        payload = MessagePayload(text=content, replies=replies)
        return self.send_message(external_conversation_id, payload, user_id, actor_id,
                                 actor_type=actor_type, assume_identity=assume_identity)

    # --- Conversations ---

    def get_conversation(self, external_conversation_id: str) -> GatewayResult[PlatformConversation]:
        """Fetches the conversation with its full, ordered transcript."""
        if not external_conversation_id:
            return GatewayResult.fail(ValidationError("conversationId is required"))

        failure_message = "Failed to retrieve conversation from human-agent platform"
        result = self._request("GET", f"/conversations/{external_conversation_id}", failure_message)
        return self._parse(result, PlatformConversation, failure_message)

    # --- Users ---

    def create_user(self, user_request: PlatformUserRequest) -> GatewayResult[PlatformUser]:
        missing = user_request.missing_fields()
        if missing:
            return GatewayResult.fail(ValidationError(
                f"Missing required field: {missing[0]}",
                {"missing_fields": missing},
            ))

        failure_message = "Failed to create user in human-agent platform"
        result = self._request("POST", "/users", failure_message, json=user_request.to_api_payload())
        parsed = self._parse(result, PlatformUser, failure_message)
        if parsed.success:
            logger.info(f"Created platform user '{parsed.data.id}' for reference '{user_request.reference_id}'.")
        return parsed

    def get_user(self, platform_user_id: str) -> GatewayResult[PlatformUser]:
        if not platform_user_id:
            return GatewayResult.fail(ValidationError("userId is required"))
        failure_message = "Failed to retrieve user from human-agent platform"
        result = self._request("GET", f"/users/{platform_user_id}", failure_message)
        return self._parse(result, PlatformUser, failure_message)

    def get_user_by_reference_id(self, reference_id: str) -> GatewayResult[List[PlatformUser]]:
        if not reference_id:
            return GatewayResult.fail(ValidationError("reference_id is required"))
        failure_message = "Failed to retrieve user from human-agent platform"
        result = self._request("GET", "/users", failure_message, params={"reference_id": reference_id})
        if not result.success:
            return result
        raw_users = result.data.get("users", []) if isinstance(result.data, dict) else []
        try:
            return GatewayResult.ok([PlatformUser.model_validate(u) for u in raw_users])
        except PydanticValidationError as e:
            return GatewayResult.fail(UpstreamError(
                f"{failure_message}: unexpected response shape",
                status=None,
                body=str(result.data),
                error_details={"invalid_fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
            ))

    def update_user_properties(self, platform_user_id: str, properties: Dict[str, str]) -> GatewayResult[PlatformUser]:
        if not platform_user_id:
            return GatewayResult.fail(ValidationError("userId is required"))
        failure_message = "Failed to update user properties in human-agent platform"
        body = {"properties": [{"name": k, "value": v} for k, v in properties.items()]}
        result = self._request("PUT", f"/users/{platform_user_id}", failure_message, json=body)
        return self._parse(result, PlatformUser, failure_message)
