# handoff_app/models/chat_schemas.py
# -*- coding: utf-8 -*-
"""
Pydantic shapes for the chat routing core: the inbound request, the unified
response returned to callers, the persisted conversation mapping and the
failure value every error is converted to.
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..utils.time_utils import utc_now_iso

REQUIRED_CHAT_FIELDS = ("message", "user_id", "session_id")


class ChatRequest(BaseModel):
    """
    A single user message addressed to the router. Required fields are checked by
    :meth:`missing_fields` rather than by pydantic, so a bad request becomes a
    routing ValidationError value instead of an exception.
    """
    model_config = ConfigDict(extra='ignore')

    message: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    stream: bool = False
    auth_token: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def missing_fields(self) -> List[str]:
        return [name for name in REQUIRED_CHAT_FIELDS if not getattr(self, name)]


class UnifiedChatResponse(BaseModel):
    """
    The response shape callers always receive, whichever backend answered.
    Unknown keys sent by the assistant are preserved so its response passes through unchanged.
    """
    model_config = ConfigDict(extra='allow')

    response: str
    display_items: Dict[str, Any] = Field(default_factory=dict)
    handoff_to_human: bool
    session_id: str
    conversation_id: str
    user_id: str
    billing_session_count: int
    is_new_session: bool
    timestamp: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return True


class FailureResponse(BaseModel):
    success: Literal[False] = False
    message: str
    error_type: str = "internal_error"
    error_details: Dict[str, Any] = Field(default_factory=dict)


# --- Handling state ---

class AssistantHandling(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assistant"] = "assistant"


class HumanHandling(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["human"] = "human"
    external_conversation_id: str


HandlingState = Union[AssistantHandling, HumanHandling]


class ConversationMapping(BaseModel):
    """
    Persisted link between a chat session, the assistant's conversation id and the
    human-agent platform's conversation id.

    Mappings are only created by :meth:`handed_off`, and :meth:`with_activity` keeps
    the flag, so once a session is human-handled it stays that way until cleared.
    """
    model_config = ConfigDict(frozen=True)

    session_id: str
    internal_conversation_id: str
    external_conversation_id: str
    user_id: str
    handoff_to_human: bool = False
    created_at: str
    updated_at: str
    last_message_timestamp: Optional[str] = None

    @property
    def state(self) -> HandlingState:
        if self.handoff_to_human:
            return HumanHandling(external_conversation_id=self.external_conversation_id)
        return AssistantHandling()

    @classmethod
    def handed_off(
        cls,
        session_id: str,
        internal_conversation_id: str,
        external_conversation_id: str,
        user_id: str,
        now: Optional[str] = None,
        created_at: Optional[str] = None,
        last_message_timestamp: Optional[str] = None,
    ) -> "ConversationMapping":
        now = now or utc_now_iso()
        return cls(
            session_id=session_id,
            internal_conversation_id=internal_conversation_id,
            external_conversation_id=external_conversation_id,
            user_id=user_id,
            handoff_to_human=True,
            created_at=created_at or now,
            updated_at=now,
            last_message_timestamp=last_message_timestamp or now,
        )

    def with_activity(self, now: Optional[str] = None) -> "ConversationMapping":
        now = now or utc_now_iso()
        return self.model_copy(update={"updated_at": now, "last_message_timestamp": now})
