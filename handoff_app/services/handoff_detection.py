# handoff_app/services/handoff_detection.py
# -*- coding: utf-8 -*-
"""Pure functions deciding whether an assistant reply hands the session to a human."""
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..models.chat_schemas import ConversationMapping, UnifiedChatResponse
from ..utils.time_utils import utc_now_iso


class MappingUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    internal_conversation_id: str
    external_conversation_id: str
    user_id: str
    last_message_timestamp: Optional[str] = None


def extract_mapping_update(response: UnifiedChatResponse, external_id_field: str) -> Optional[MappingUpdate]:
    """
    Returns the mapping to persist when ``response`` signals a handoff and names
    the platform conversation; otherwise None.
    """
    if not response.handoff_to_human:
        return None

    external_id = (response.metadata or {}).get(external_id_field)
    if not external_id:
        return None

    return MappingUpdate(
        session_id=response.session_id,
        internal_conversation_id=response.conversation_id,
        external_conversation_id=str(external_id),
        user_id=response.user_id,
        last_message_timestamp=response.timestamp,
    )


def apply_mapping_update(
    existing: Optional[ConversationMapping],
    update: MappingUpdate,
    now: Optional[str] = None,
) -> ConversationMapping:
    """Builds the handed-off mapping, keeping ``created_at`` of a record being overwritten."""
    now = now or utc_now_iso()
    return ConversationMapping.handed_off(
        session_id=update.session_id,
        internal_conversation_id=update.internal_conversation_id,
        external_conversation_id=update.external_conversation_id,
        user_id=update.user_id,
        now=now,
        created_at=existing.created_at if existing else None,
        last_message_timestamp=update.last_message_timestamp,
    )
