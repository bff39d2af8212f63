# handoff_app/services/conversation_mapping_service.py
import logging
from typing import List, Optional

from ..utils import db_utils
from ..models.conversation_mapping import ConversationMappingRecord
from ..models.chat_schemas import ConversationMapping
from .state_store import ConversationStateStore

logger = logging.getLogger(__name__)


class StateStoreUnavailableError(RuntimeError):
    pass


class SqlConversationStateStore(ConversationStateStore):
    """
    Conversation mappings in the ``conversation_mappings`` table. The session id is
    the primary key and both conversation ids are unique-indexed, so every ``put``
    is one transaction: either all three lookups see the new record or none do.
    """

    def put(self, mapping: ConversationMapping) -> None:
        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for put of session {mapping.session_id}")
                raise StateStoreUnavailableError("Database session not available.")

            record = session.get(ConversationMappingRecord, mapping.session_id)
            if record:
                record.apply(mapping)
                action = "Updated"
            else:
                session.add(ConversationMappingRecord.from_schema(mapping))
                action = "Stored new"
            session.commit()
            logger.info(
                f"{action} mapping for session '{mapping.session_id}': conversation "
                f"'{mapping.internal_conversation_id}', external '{mapping.external_conversation_id}'.",
                extra={"session_id": mapping.session_id},
            )

    def _get_one(self, column, value: str) -> Optional[ConversationMapping]:
        if not value:
            return None

        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for mapping lookup by {column.key}='{value}'")
                return None
            record = session.query(ConversationMappingRecord).filter(column == value).first()
            if record:
                logger.debug(f"Found mapping for {column.key}='{value}' (session '{record.session_id}').")
                return record.to_schema()
        return None

    def get_by_session(self, session_id: str) -> Optional[ConversationMapping]:
        return self._get_one(ConversationMappingRecord.session_id, session_id)

    def get_by_internal_conversation(self, conversation_id: str) -> Optional[ConversationMapping]:
        return self._get_one(ConversationMappingRecord.internal_conversation_id, conversation_id)

    def get_by_external(self, external_conversation_id: str) -> Optional[ConversationMapping]:
        return self._get_one(ConversationMappingRecord.external_conversation_id, external_conversation_id)

    def clear(self, session_id: str) -> bool:
        if not session_id:
            return False

        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for clear of session {session_id}")
                return False
            record = session.get(ConversationMappingRecord, session_id)
            if not record:
                logger.info(f"No conversation mapping to clear for session '{session_id}'.")
                return False
            session.delete(record)
            session.commit()
            logger.info(f"Cleared conversation mapping for session '{session_id}'.", extra={"session_id": session_id})
            return True

    def all(self) -> List[ConversationMapping]:
        with db_utils.get_db_session() as session:
            if not session:
                logger.error("DB session not available for listing conversation mappings.")
                return []
            records = session.query(ConversationMappingRecord).order_by(ConversationMappingRecord.created_at).all()
            return [record.to_schema() for record in records]

    def clear_all(self) -> int:
        with db_utils.get_db_session() as session:
            if not session:
                logger.error("DB session not available for clearing conversation mappings.")
                return 0
            cleared = session.query(ConversationMappingRecord).delete()
            session.commit()
            logger.info(f"Cleared {cleared} conversation mappings.")
            return cleared
