"""
Pydantic schemas for the AI question-answering API

Two answer policies share this module:
- open Q&A over chat messages (``/ai/ask``)
- persona Q&A over one user's avatar documents (``/ai/avatar/ask``)
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ========================================
# Open Q&A (chat messages)
# ========================================

class AskRequest(BaseModel):
    """Request schema for a question over chat history."""

    query: str = Field(description="Natural-language question", min_length=1, max_length=2000)
    channel_id: Optional[str] = Field(
        default=None,
        description="Restrict retrieval to one channel",
    )

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be blank")
        return v.strip()


class SourceItem(BaseModel):
    """A retrieved message returned as supporting evidence."""

    content: str = Field(description="Message text")
    created_at: Optional[str] = Field(default=None, description="Message creation timestamp (ISO 8601)")
    owner_id: Optional[str] = Field(default=None, description="Author of the message")
    scope_id: Optional[str] = Field(default=None, description="Channel of the message")
    score: float = Field(description="Cosine similarity to the question")
    is_edited: Optional[bool] = Field(default=None, description="Whether the message was edited")


class SynthesizedAnswer(BaseModel):
    """Response schema for open Q&A."""

    answer: str = Field(description="Generated answer with bracketed citations")
    sources: List[SourceItem] = Field(
        default_factory=list,
        description="Up to three highest-scoring messages above the relevance threshold",
    )


# ========================================
# Persona Q&A (avatar documents)
# ========================================

class PersonaAskRequest(BaseModel):
    """Request schema for asking a user's AI persona."""

    query: str = Field(description="Natural-language question", min_length=1, max_length=2000)
    persona_id: str = Field(description="User whose persona answers")

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be blank")
        return v.strip()


class RelevantDocument(BaseModel):
    """A document the persona answer was grounded in."""

    document_name: str = Field(description="Document file name")
    document_type: str = Field(description="Friendly document type, e.g. PDF")
    relevance_score: float = Field(description="Cosine similarity to the question")


class PersonaAnswer(BaseModel):
    """Response schema for persona Q&A."""

    answer: str = Field(description="First-person answer from the persona")
    relevant_documents: List[RelevantDocument] = Field(
        default_factory=list,
        description="Documents placed in the model context, in retrieval order",
    )
    formatted_answer: str = Field(description="Answer followed by a numbered Sources list")
