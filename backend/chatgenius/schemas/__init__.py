"""Pydantic schemas for webhooks and the AI API."""

from chatgenius.schemas.ai import (
    AskRequest,
    PersonaAnswer,
    PersonaAskRequest,
    RelevantDocument,
    SourceItem,
    SynthesizedAnswer,
)
from chatgenius.schemas.events import (
    ChangeEvent,
    DocumentChangeEvent,
    DocumentRecord,
    EventType,
    MessageChangeEvent,
    MessageRecord,
    WebhookPayload,
    WebhookResponse,
)

__all__ = [
    "AskRequest",
    "PersonaAnswer",
    "PersonaAskRequest",
    "RelevantDocument",
    "SourceItem",
    "SynthesizedAnswer",
    "ChangeEvent",
    "DocumentChangeEvent",
    "DocumentRecord",
    "EventType",
    "MessageChangeEvent",
    "MessageRecord",
    "WebhookPayload",
    "WebhookResponse",
]
