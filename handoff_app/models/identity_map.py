# handoff_app/models/identity_map.py
# -*- coding: utf-8 -*-

from sqlalchemy import Column, String, DateTime, func

from . import Base


class SessionUserLink(Base):
    """Which internal user a chat session belongs to."""
    __tablename__ = 'session_user_links'

    session_id = Column(String(255), primary_key=True, nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<SessionUserLink(session_id='{self.session_id}', user_id='{self.user_id}')>"


class PlatformUserLink(Base):
    """
    Maps an internal user id to the user id assigned by the human-agent platform.
    Messages forwarded during a handoff are sent on behalf of this platform user.
    """
    __tablename__ = 'platform_user_links'

    user_id = Column(String(255), primary_key=True, nullable=False)
    platform_user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<PlatformUserLink(user_id='{self.user_id}', platform_user_id='{self.platform_user_id}')>"
