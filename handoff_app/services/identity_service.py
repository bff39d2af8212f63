# handoff_app/services/identity_service.py
# -*- coding: utf-8 -*-
"""
Resolves which human-agent platform user a chat session speaks for.

Resolution goes session -> internal user -> platform user. When no session link
exists, the user id from the chat request is used for the second hop.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..utils import db_utils
from ..models.identity_map import SessionUserLink, PlatformUserLink

logger = logging.getLogger(__name__)


class IdentityResolver(ABC):

    @abstractmethod
    def user_for_session(self, session_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def platform_user_for_user(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def link_session_user(self, session_id: str, user_id: str) -> bool:
        ...

    @abstractmethod
    def link_platform_user(self, user_id: str, platform_user_id: str) -> bool:
        ...

    def resolve_platform_user_id(self, session_id: str, user_id: Optional[str] = None) -> Optional[str]:
        internal_user_id = self.user_for_session(session_id) or user_id
        if not internal_user_id:
            logger.warning(f"No internal user known for session '{session_id}'.", extra={"session_id": session_id})
            return None

        platform_user_id = self.platform_user_for_user(internal_user_id)
        if not platform_user_id:
            logger.warning(
                f"No platform user linked to user '{internal_user_id}' (session '{session_id}').",
                extra={"session_id": session_id, "user_id": internal_user_id},
            )
        return platform_user_id


class InMemoryIdentityResolver(IdentityResolver):

    def __init__(self, session_users: Optional[Dict[str, str]] = None, platform_users: Optional[Dict[str, str]] = None):
        self.session_users = dict(session_users or {})
        self.platform_users = dict(platform_users or {})

    def user_for_session(self, session_id: str) -> Optional[str]:
        return self.session_users.get(session_id)

    def platform_user_for_user(self, user_id: str) -> Optional[str]:
        return self.platform_users.get(user_id)

    def link_session_user(self, session_id: str, user_id: str) -> bool:
        if not session_id or not user_id:
            return False
        self.session_users[session_id] = user_id
        return True

    def link_platform_user(self, user_id: str, platform_user_id: str) -> bool:
        if not user_id or not platform_user_id:
            return False
        self.platform_users[user_id] = platform_user_id
        return True


class SqlIdentityResolver(IdentityResolver):

    def user_for_session(self, session_id: str) -> Optional[str]:
        if not session_id:
            return None
        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for user lookup of session {session_id}")
                return None
            link = session.get(SessionUserLink, session_id)
            return link.user_id if link else None

    def platform_user_for_user(self, user_id: str) -> Optional[str]:
        if not user_id:
            return None
        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for platform user lookup of user {user_id}")
                return None
            link = session.get(PlatformUserLink, user_id)
            return link.platform_user_id if link else None

    def link_session_user(self, session_id: str, user_id: str) -> bool:
        if not session_id or not user_id:
            logger.warning("link_session_user called with empty session_id or user_id.")
            return False

        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for link_session_user of session {session_id}")
                return False
            link = session.get(SessionUserLink, session_id)
            if link:
                link.user_id = user_id
            else:
                session.add(SessionUserLink(session_id=session_id, user_id=user_id))
            session.commit()
            logger.info(f"Linked session '{session_id}' to user '{user_id}'.", extra={"session_id": session_id})
            return True

    def link_platform_user(self, user_id: str, platform_user_id: str) -> bool:
        if not user_id or not platform_user_id:
            logger.warning("link_platform_user called with empty user_id or platform_user_id.")
            return False

        with db_utils.get_db_session() as session:
            if not session:
                logger.error(f"DB session not available for link_platform_user of user {user_id}")
                return False
            link = session.get(PlatformUserLink, user_id)
            if link:
                link.platform_user_id = platform_user_id
            else:
                session.add(PlatformUserLink(user_id=user_id, platform_user_id=platform_user_id))
            session.commit()
            logger.info(f"Linked user '{user_id}' to platform user '{platform_user_id}'.", extra={"user_id": user_id})
            return True
