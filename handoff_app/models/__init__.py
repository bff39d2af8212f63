# handoff_app/models/__init__.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()

from .conversation_mapping import ConversationMappingRecord  # noqa: E402
from .identity_map import SessionUserLink, PlatformUserLink  # noqa: E402

__all__ = ["Base", "ConversationMappingRecord", "SessionUserLink", "PlatformUserLink"]
