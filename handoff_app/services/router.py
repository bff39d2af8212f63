# handoff_app/services/router.py
# -*- coding: utf-8 -*-
"""
Routes each chat message either to the automated assistant or to the human-agent
platform, depending on whether the session has been handed off.

A session starts in AssistantHandling. The only transition is to
HumanHandling(external_conversation_id), taken when an assistant response carries
the handoff flag together with the platform's conversation id. There is no way
back short of clearing the mapping.
"""
import logging
from typing import Any, Callable, Dict, Optional, Union

from ..models.chat_schemas import (
    ChatRequest,
    ConversationMapping,
    FailureResponse,
    HumanHandling,
    UnifiedChatResponse,
)
from ..models.platform_schemas import MessagePayload
from .assistant_gateway import AssistantGateway
from .errors import MissingIdentityError, PartialSuccessError, RoutingError, ValidationError
from .handoff_detection import apply_mapping_update, extract_mapping_update
from .human_agent_gateway import HumanAgentGateway
from .identity_service import IdentityResolver
from .state_store import ConversationStateStore
from ..utils.time_utils import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_ID_FIELD = "freshchat_conversation_id"
DEFAULT_FALLBACK_RESPONSE = "Message sent to human agent"
HUMAN_AGENT_MODEL = "human_agent"

RouteResult = Union[UnifiedChatResponse, FailureResponse]


class ConversationRouter:

    def __init__(
        self,
        store: ConversationStateStore,
        assistant_gateway: AssistantGateway,
        human_agent_gateway: HumanAgentGateway,
        identity_resolver: IdentityResolver,
        external_id_field: str = DEFAULT_EXTERNAL_ID_FIELD,
        fallback_response: str = DEFAULT_FALLBACK_RESPONSE,
        clock: Callable[[], str] = utc_now_iso,
    ):
        self.store = store
        self.assistant_gateway = assistant_gateway
        self.human_agent_gateway = human_agent_gateway
        self.identity_resolver = identity_resolver
        self.external_id_field = external_id_field
        self.fallback_response = fallback_response
        self.clock = clock

    def send_message(self, chat_request: ChatRequest) -> RouteResult:
        """
        Sends one user message to whichever backend currently owns the session.

        Never raises: routing errors and unexpected exceptions alike come back as
        a ``FailureResponse``. Sends to the human-agent platform are not
        deduplicated, so repeating a request repeats the send.
        """
        log_extra = {"session_id": chat_request.session_id, "user_id": chat_request.user_id}
        try:
            missing = chat_request.missing_fields()
            if missing:
                raise ValidationError(f"Missing required field: {missing[0]}", {"missing_fields": missing})

            mapping = self.store.get_by_session(chat_request.session_id)
            state = mapping.state if mapping else None

            if isinstance(state, HumanHandling):
                logger.info(
                    f"Session '{chat_request.session_id}' is human-handled; routing to platform conversation "
                    f"'{state.external_conversation_id}'.",
                    extra={**log_extra, "external_conversation_id": state.external_conversation_id},
                )
                return self._route_to_human(chat_request, mapping, state)

            return self._route_to_assistant(chat_request, mapping)

        except RoutingError as e:
            logger.warning(
                f"Routing failed for session '{chat_request.session_id}' ({e.error_type}): {e.message}",
                extra=log_extra,
            )
            return e.to_failure()
        except Exception as e:
            logger.exception(f"Unexpected error routing message for session '{chat_request.session_id}': {e}", extra=log_extra)
            return FailureResponse(
                message="Internal error while sending chat message",
                error_type="internal_error",
                error_details={"error": str(e)},
            )

    def _route_to_assistant(self, chat_request: ChatRequest,
                            existing: Optional[ConversationMapping]) -> UnifiedChatResponse:
        result = self.assistant_gateway.send_message(chat_request)
        if not result.success:
            raise result.error

        response = result.data
        update = extract_mapping_update(response, self.external_id_field)
        if update is not None:
            mapping = apply_mapping_update(existing, update, now=self.clock())
            self.store.put(mapping)
            logger.info(
                f"Session '{mapping.session_id}' handed off to human agent "
                f"(conversation '{mapping.internal_conversation_id}' -> external '{mapping.external_conversation_id}').",
                extra={
                    "session_id": mapping.session_id,
                    "conversation_id": mapping.internal_conversation_id,
                    "external_conversation_id": mapping.external_conversation_id,
                },
            )
        elif response.handoff_to_human:
            logger.warning(
                f"Assistant flagged handoff for session '{chat_request.session_id}' without "
                f"'{self.external_id_field}' in metadata; session stays with the assistant.",
                extra={"session_id": chat_request.session_id},
            )
        return response

    def _route_to_human(self, chat_request: ChatRequest, mapping: ConversationMapping,
                        state: HumanHandling) -> UnifiedChatResponse:
        external_id = state.external_conversation_id
        platform_user_id = self.identity_resolver.resolve_platform_user_id(
            chat_request.session_id, chat_request.user_id
        )
        if not platform_user_id:
            raise MissingIdentityError(
                "No human-agent platform user is linked to this session",
                {"session_id": chat_request.session_id, "user_id": chat_request.user_id},
            )

        sent = self.human_agent_gateway.send_message(
            external_id,
            MessagePayload(text=chat_request.message),
            user_id=platform_user_id,
            actor_id=platform_user_id,
            actor_type="user",
        )
        if not sent.success:
            raise sent.error

        try:
            conversation = self.human_agent_gateway.get_conversation(external_id)
        except Exception as e:
            raise PartialSuccessError(
                "Message was sent to the human agent but the conversation could not be retrieved",
                {"external_conversation_id": external_id, "error": str(e)},
            ) from e
        if not conversation.success:
            raise PartialSuccessError(
                "Message was sent to the human agent but the conversation could not be retrieved",
                {"external_conversation_id": external_id, "cause": conversation.error.to_failure().model_dump()},
            )

        last_message = conversation.data.last_message
        response_text = (last_message.content if last_message else None) or self.fallback_response

        now = self.clock()
        self._touch(mapping, now)

        return UnifiedChatResponse(
            response=response_text,
            display_items={},
            handoff_to_human=True,
            session_id=chat_request.session_id,
            conversation_id=mapping.internal_conversation_id,
            user_id=chat_request.user_id,
            billing_session_count=1,
            is_new_session=False,
            timestamp=now,
            metadata={
                self.external_id_field: external_id,
                "agent_state": self._agent_state(chat_request, mapping),
            },
        )

    def _touch(self, mapping: ConversationMapping, now: str) -> None:
        try:
            self.store.put(mapping.with_activity(now))
        except Exception as e:
            # The send already succeeded; only timestamps are lost.
            logger.error(
                f"Could not update activity timestamps for session '{mapping.session_id}': {e}",
                extra={"session_id": mapping.session_id},
            )

    @staticmethod
    def _agent_state(chat_request: ChatRequest, mapping: ConversationMapping) -> Dict[str, Any]:
        return {
            "messages": [],
            "user_id": chat_request.user_id,
            "session_id": chat_request.session_id,
            "conversation_id": mapping.internal_conversation_id,
            "conversation_context": {"model_used": HUMAN_AGENT_MODEL},
            "display_items": {},
            "handoff_to_human": True,
        }


def result_to_dict(result: RouteResult) -> Dict[str, Any]:
    """Serializes a router result, marking unified responses with ``success: true``."""
    body = result.model_dump()
    body.setdefault("success", True)
    return body
