# handoff_app/models/platform_schemas.py
# -*- coding: utf-8 -*-
"""Shapes exchanged with the human-agent platform (Freshchat-style v2 API)."""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ActorType = Literal["user", "agent", "system"]
MessageType = Literal["normal", "private_note"]


class TextContent(BaseModel):
    content: str


class MessagePart(BaseModel):
    model_config = ConfigDict(extra='allow')

    text: Optional[TextContent] = None


# --- Reply affordances (buttons shown under an outgoing message) ---

class QuickReplyButton(BaseModel):
    kind: Literal["quick_reply"] = "quick_reply"
    label: str

    def to_sub_part(self) -> Dict[str, Any]:
        return {"quick_reply_button": {"label": self.label}}


class UrlButton(BaseModel):
    kind: Literal["url"] = "url"
    url: str
    label: str
    target: Literal["_blank", "_self"] = "_blank"

    def to_sub_part(self) -> Dict[str, Any]:
        return {"url_button": {"url": self.url, "label": self.label, "target": self.target}}


ReplyAffordance = Annotated[Union[QuickReplyButton, UrlButton], Field(discriminator="kind")]


class MessagePayload(BaseModel):
    """Text plus optional reply buttons, serialized in the order given."""
    text: str
    replies: List[ReplyAffordance] = Field(default_factory=list)

    def to_message_parts(self) -> List[Dict[str, Any]]:
        return [{"text": {"content": self.text}}]

    def to_reply_parts(self) -> Optional[List[Dict[str, Any]]]:
        if not self.replies:
            return None
        return [{"collection": {"sub_parts": [reply.to_sub_part() for reply in self.replies]}}]


# --- Transcript ---

class TranscriptMessage(BaseModel):
    model_config = ConfigDict(extra='allow')

    actor_type: str
    created_time: Optional[str] = None
    user_id: Optional[str] = None
    actor_id: Optional[str] = None
    message_parts: List[MessagePart] = Field(default_factory=list)

    @property
    def content(self) -> Optional[str]:
        for part in self.message_parts:
            if part.text is not None:
                return part.text.content
        return None


class Participant(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: str


class PlatformConversation(BaseModel):
    model_config = ConfigDict(extra='allow')

    conversation_id: str
    status: Optional[str] = None
    messages: List[TranscriptMessage] = Field(default_factory=list)
    properties: Dict[str, Any] = Field(default_factory=dict)
    users: List[Participant] = Field(default_factory=list)

    @property
    def participant_ids(self) -> List[str]:
        return [user.id for user in self.users]

    @property
    def last_message(self) -> Optional[TranscriptMessage]:
        return self.messages[-1] if self.messages else None


class SentMessage(BaseModel):
    message_id: Optional[str] = None
    message_data: Dict[str, Any] = Field(default_factory=dict)


# --- Platform users ---

class PlatformProperty(BaseModel):
    name: str
    value: str


class PlatformUserRequest(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    reference_id: Optional[str] = None
    phone: Optional[str] = None
    properties: Dict[str, str] = Field(default_factory=dict)

    def missing_fields(self) -> List[str]:
        required = ("email", "first_name", "last_name", "reference_id")
        return [name for name in required if not getattr(self, name)]

    def to_api_payload(self) -> Dict[str, Any]:
        payload = {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "reference_id": self.reference_id,
            "properties": [{"name": k, "value": v} for k, v in self.properties.items()],
        }
        if self.phone:
            payload["phone"] = self.phone
        return payload


class PlatformUser(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    reference_id: Optional[str] = None
    properties: List[PlatformProperty] = Field(default_factory=list)
