"""
Pydantic schemas for change events

The chat application's database webhook posts one payload per row change:

    {
        "type": "INSERT" | "UPDATE" | "DELETE",
        "table": "messages",
        "record": {...},        # new row (null on DELETE)
        "old_record": {...}     # previous row (null on INSERT)
    }

``WebhookPayload`` parses that envelope and converts it into a typed
``ChangeEvent`` for the indexing pipeline.
"""

import enum
from datetime import datetime
from typing import Any, Dict, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chatgenius.models.documents import EmbeddingStatus


class EventType(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value


WEBHOOK_EVENT_TYPES: Dict[str, EventType] = {
    "INSERT": EventType.CREATE,
    "UPDATE": EventType.UPDATE,
    "DELETE": EventType.DELETE,
}


# ========================================
# Content Records
# ========================================

class MessageRecord(BaseModel):
    """A chat message row. Only ``id`` is guaranteed on DELETE payloads."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: str = Field(description="Message ID")
    channel_id: Optional[str] = Field(default=None, description="Channel the message was posted in")
    user_id: Optional[str] = Field(default=None, description="Author")
    content: Optional[str] = Field(default=None, description="Message text")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(default=None, description="Last edit timestamp")
    is_edited: bool = Field(default=False, description="Whether the message was edited")
    type: str = Field(default="message", description="Message type")
    file_attachment: Optional[Dict[str, Any]] = Field(default=None, description="Attached file info")

    @property
    def has_attachment(self) -> bool:
        return bool(self.file_attachment)


class DocumentRecord(BaseModel):
    """An avatar document row. Only ``id`` is guaranteed on DELETE payloads."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: str = Field(description="Document ID")
    user_id: Optional[str] = Field(default=None, description="Owner of the persona knowledge base")
    name: Optional[str] = Field(default=None, description="Original file name")
    mime_type: Optional[str] = Field(default=None, description="MIME type of the stored file")
    size: int = Field(default=0, description="File size in bytes")
    storage_path: Optional[str] = Field(default=None, description="Path in blob storage")
    description: Optional[str] = Field(default=None, description="Uploader's description")
    created_at: Optional[datetime] = Field(default=None, description="Upload timestamp")
    created_by: Optional[str] = Field(default=None, description="Uploader")
    embedding_status: Optional[EmbeddingStatus] = Field(default=None, description="Indexing status")


RecordT = TypeVar("RecordT", bound=BaseModel)


# ========================================
# Change Events
# ========================================

class ChangeEvent(BaseModel, Generic[RecordT]):
    """
    A single create/update/delete notification.

    Create and Update carry ``record``; Delete carries ``previous_record``
    (falling back to ``record`` when the sender put the row there).
    """

    event_type: EventType
    record: Optional[RecordT] = None
    previous_record: Optional[RecordT] = None

    @model_validator(mode="after")
    def check_records(self) -> "ChangeEvent[RecordT]":
        if self.event_type in (EventType.CREATE, EventType.UPDATE) and self.record is None:
            raise ValueError(f"{self.event_type.value} events require a record")
        if self.event_type is EventType.DELETE and self.previous_record is None and self.record is None:
            raise ValueError("delete events require the previous record")
        return self

    @property
    def item_id(self) -> str:
        if self.event_type is EventType.DELETE:
            return (self.previous_record or self.record).id
        return self.record.id


MessageChangeEvent = ChangeEvent[MessageRecord]
DocumentChangeEvent = ChangeEvent[DocumentRecord]


# ========================================
# Webhook Envelope
# ========================================

class WebhookPayload(BaseModel):
    """Database webhook envelope."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["INSERT", "UPDATE", "DELETE"] = Field(description="Row operation")
    table: Optional[str] = Field(default=None, description="Source table")
    record: Optional[Dict[str, Any]] = Field(default=None, description="New row")
    old_record: Optional[Dict[str, Any]] = Field(default=None, description="Previous row")

    @property
    def event_type(self) -> EventType:
        return WEBHOOK_EVENT_TYPES[self.type]

    def to_message_event(self) -> MessageChangeEvent:
        return MessageChangeEvent(
            event_type=self.event_type,
            record=self.record,
            previous_record=self.old_record,
        )

    def to_document_event(self) -> DocumentChangeEvent:
        return DocumentChangeEvent(
            event_type=self.event_type,
            record=self.record,
            previous_record=self.old_record,
        )


class WebhookResponse(BaseModel):
    success: bool = True
    item_id: str
    namespace: str
    action: str
    index_consistent: bool = Field(
        default=True,
        description="Whether the index reflected the change before the response was sent",
    )
