"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from chatgenius.models import IndexRecordModel, AvatarDocument, ChatMessage, Profile

Owned by this service:
- IndexRecordModel (index_records)

Mirrors of the chat application's tables:
- AvatarDocument (avatar_documents)
- ChatMessage (messages)
- Profile (profiles)
"""

from chatgenius.models.chat import ChatMessage, Profile
from chatgenius.models.documents import AvatarDocument, EmbeddingStatus
from chatgenius.models.index_record import IndexRecordModel, Namespace

__all__ = [
    "IndexRecordModel",
    "Namespace",
    "AvatarDocument",
    "EmbeddingStatus",
    "ChatMessage",
    "Profile",
]
