"""
Chat Models

Read-only mirrors of the chat application's ``messages`` and ``profiles``
tables. Messages are read by the backfill task; profiles supply the
persona (username and bio) for avatar answers.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, String, Text, Uuid
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from chatgenius.db.base import EXTERNAL_TABLE_INFO, Base, String100, String500


class ChatMessage(Base):
    __tablename__ = "messages"
    __table_args__ = {"info": EXTERNAL_TABLE_INFO}

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    channel_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="message")
    file_attachment: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"ChatMessage(id={self.id}, channel_id={self.channel_id})"


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = {"info": EXTERNAL_TABLE_INFO}

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    username: Mapped[str] = mapped_column(String100, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String100, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(String500, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"Profile(id={self.id}, username={self.username!r})"
