# handoff_app/services/state_store.py
# -*- coding: utf-8 -*-
"""
Repository for :class:`ConversationMapping` records, readable by session id,
by the assistant's conversation id and by the platform's conversation id.

Key-value backends store one copy of the record under each of the three keys::

    mapping/by-session/{session_id}
    mapping/by-conversation/{internal_conversation_id}
    mapping/by-external/{external_conversation_id}

``put`` therefore performs three separate writes. If the process dies (or the
backend errors) between them, the indices disagree until the next successful
``put`` or ``clear``. The failure is raised to the caller. The SQL store in
``conversation_mapping_service`` keeps a single row instead and has no such window.

Both backends refuse a mapping whose conversation ids are indexed under another
session, and never clear the handoff flag of a stored mapping.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional

from ..models.chat_schemas import ConversationMapping

logger = logging.getLogger(__name__)

SESSION_KEY = "mapping/by-session/{}"
CONVERSATION_KEY = "mapping/by-conversation/{}"
EXTERNAL_KEY = "mapping/by-external/{}"
SESSION_PREFIX = "mapping/by-session/"
MAPPING_PREFIX = "mapping/"


class MappingConflictError(ValueError):
    """A conversation id is already mapped to a different session."""

    def __init__(self, message: str, key: str, owner_session_id: str):
        super().__init__(message)
        self.key = key
        self.owner_session_id = owner_session_id


class ConversationStateStore(ABC):

    @abstractmethod
    def put(self, mapping: ConversationMapping) -> None:
        """Insert or overwrite the mapping for ``mapping.session_id``."""

    @abstractmethod
    def get_by_session(self, session_id: str) -> Optional[ConversationMapping]:
        ...

    @abstractmethod
    def get_by_internal_conversation(self, conversation_id: str) -> Optional[ConversationMapping]:
        ...

    @abstractmethod
    def get_by_external(self, external_conversation_id: str) -> Optional[ConversationMapping]:
        ...

    @abstractmethod
    def clear(self, session_id: str) -> bool:
        """Remove the mapping and all of its keys. Returns False if the session had none."""

    @abstractmethod
    def all(self) -> List[ConversationMapping]:
        ...

    @abstractmethod
    def clear_all(self) -> int:
        """Remove every mapping. Returns how many sessions were cleared."""

    def is_handed_off(self, session_id: str) -> bool:
        mapping = self.get_by_session(session_id)
        return bool(mapping and mapping.handoff_to_human)


class KeyValueConversationStateStore(ConversationStateStore):
    """Three-key layout over any flat string key-value backend."""

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    @abstractmethod
    def _iter_keys(self, prefix: str) -> Iterator[str]:
        ...

    @staticmethod
    def keys_for(mapping: ConversationMapping) -> List[str]:
        return [
            SESSION_KEY.format(mapping.session_id),
            CONVERSATION_KEY.format(mapping.internal_conversation_id),
            EXTERNAL_KEY.format(mapping.external_conversation_id),
        ]

    def _load(self, key: str) -> Optional[ConversationMapping]:
        raw = self._read(key)
        if raw is None:
            return None
        return ConversationMapping.model_validate_json(raw)

    def _check_unique(self, mapping: ConversationMapping) -> None:
        for key in (CONVERSATION_KEY.format(mapping.internal_conversation_id),
                    EXTERNAL_KEY.format(mapping.external_conversation_id)):
            owner = self._load(key)
            if owner is not None and owner.session_id != mapping.session_id:
                logger.error(
                    f"Refusing mapping for session '{mapping.session_id}': key '{key}' belongs to "
                    f"session '{owner.session_id}'.",
                    extra={"session_id": mapping.session_id},
                )
                raise MappingConflictError(
                    f"'{key}' already belongs to session '{owner.session_id}'",
                    key=key,
                    owner_session_id=owner.session_id,
                )

    def put(self, mapping: ConversationMapping) -> None:
        """
        Writes the three keys. Raises MappingConflictError, before any write, if
        either conversation id is indexed under another session.
        """
        self._check_unique(mapping)
        previous = self._load(SESSION_KEY.format(mapping.session_id))
        if previous is not None and previous.handoff_to_human and not mapping.handoff_to_human:
            mapping = mapping.model_copy(update={"handoff_to_human": True})
        payload = mapping.model_dump_json()

        for key in self.keys_for(mapping):
            self._write(key, payload)

        # Secondary keys of an overwritten record would otherwise keep pointing at stale ids.
        if previous is not None:
            for stale_key in set(self.keys_for(previous)) - set(self.keys_for(mapping)):
                self._delete(stale_key)

        logger.info(
            f"Stored conversation mapping for session '{mapping.session_id}' "
            f"(conversation '{mapping.internal_conversation_id}', external '{mapping.external_conversation_id}', "
            f"handoff={mapping.handoff_to_human}).",
            extra={"session_id": mapping.session_id},
        )

    def get_by_session(self, session_id: str) -> Optional[ConversationMapping]:
        if not session_id:
            return None
        return self._load(SESSION_KEY.format(session_id))

    def get_by_internal_conversation(self, conversation_id: str) -> Optional[ConversationMapping]:
        if not conversation_id:
            return None
        return self._load(CONVERSATION_KEY.format(conversation_id))

    def get_by_external(self, external_conversation_id: str) -> Optional[ConversationMapping]:
        if not external_conversation_id:
            return None
        return self._load(EXTERNAL_KEY.format(external_conversation_id))

    def clear(self, session_id: str) -> bool:
        mapping = self.get_by_session(session_id)
        if mapping is None:
            logger.info(f"No conversation mapping to clear for session '{session_id}'.")
            return False
        for key in self.keys_for(mapping):
            self._delete(key)
        logger.info(f"Cleared conversation mapping for session '{session_id}'.", extra={"session_id": session_id})
        return True

    def all(self) -> List[ConversationMapping]:
        mappings = []
        for key in list(self._iter_keys(SESSION_PREFIX)):
            mapping = self._load(key)
            if mapping is not None:
                mappings.append(mapping)
        return mappings

    def clear_all(self) -> int:
        keys = list(self._iter_keys(MAPPING_PREFIX))
        cleared = sum(1 for key in keys if key.startswith(SESSION_PREFIX))
        for key in keys:
            self._delete(key)
        logger.info(f"Cleared {cleared} conversation mappings ({len(keys)} keys).")
        return cleared


class InMemoryConversationStateStore(KeyValueConversationStateStore):
    """Dict-backed store. Each single write is locked; ``put`` as a whole is not."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def _delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def _iter_keys(self, prefix: str) -> Iterator[str]:
        with self._lock:
            keys = [key for key in self._data if key.startswith(prefix)]
        return iter(keys)


class RedisConversationStateStore(KeyValueConversationStateStore):
    """Redis-backed store. Keys live under ``key_prefix`` and never expire."""

    def __init__(self, redis_client, key_prefix: str = "handoff:"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _read(self, key: str) -> Optional[str]:
        raw = self.redis.get(self._full_key(key))
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def _write(self, key: str, value: str) -> None:
        self.redis.set(self._full_key(key), value)

    def _delete(self, key: str) -> None:
        self.redis.delete(self._full_key(key))

    def _iter_keys(self, prefix: str) -> Iterator[str]:
        for raw_key in self.redis.scan_iter(match=f"{self._full_key(prefix)}*"):
            key = raw_key.decode("utf-8") if isinstance(raw_key, bytes) else raw_key
            yield key[len(self.key_prefix):]
