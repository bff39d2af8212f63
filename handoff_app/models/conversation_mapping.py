# handoff_app/models/conversation_mapping.py
# -*- coding: utf-8 -*-

from sqlalchemy import Column, String, Boolean

from . import Base
from .chat_schemas import ConversationMapping


class ConversationMappingRecord(Base):
    """
    One row per chat session linking the assistant's conversation id to the
    human-agent platform's conversation id. The session id is the primary key;
    the two conversation ids carry unique indices, so a single INSERT/UPDATE keeps
    all three lookups consistent.
    """
    __tablename__ = 'conversation_mappings'

    session_id = Column(String(255), primary_key=True, nullable=False)
    internal_conversation_id = Column(String(255), nullable=False, unique=True, index=True)
    external_conversation_id = Column(String(255), nullable=False, unique=True, index=True)
    user_id = Column(String(255), nullable=False)
    handoff_to_human = Column(Boolean, nullable=False, default=False)

    # ISO-8601 strings, stored exactly as produced so records round-trip unchanged.
    created_at = Column(String(64), nullable=False)
    updated_at = Column(String(64), nullable=False)
    last_message_timestamp = Column(String(64), nullable=True)

    def to_schema(self) -> ConversationMapping:
        return ConversationMapping(
            session_id=self.session_id,
            internal_conversation_id=self.internal_conversation_id,
            external_conversation_id=self.external_conversation_id,
            user_id=self.user_id,
            handoff_to_human=bool(self.handoff_to_human),
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_message_timestamp=self.last_message_timestamp,
        )

    def apply(self, mapping: ConversationMapping) -> None:
        """Copy every field of ``mapping`` onto this row. The handoff flag never drops back to False."""
        self.internal_conversation_id = mapping.internal_conversation_id
        self.external_conversation_id = mapping.external_conversation_id
        self.user_id = mapping.user_id
        self.handoff_to_human = bool(self.handoff_to_human) or mapping.handoff_to_human
        self.created_at = mapping.created_at
        self.updated_at = mapping.updated_at
        self.last_message_timestamp = mapping.last_message_timestamp

    @classmethod
    def from_schema(cls, mapping: ConversationMapping) -> "ConversationMappingRecord":
        record = cls(session_id=mapping.session_id, handoff_to_human=False)
        record.apply(mapping)
        return record

    def __repr__(self):
        return (f"<ConversationMappingRecord(session_id='{self.session_id}', "
                f"internal='{self.internal_conversation_id}', external='{self.external_conversation_id}', "
                f"handoff={self.handoff_to_human})>")
