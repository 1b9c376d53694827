"""
AI API Routes

Question answering for the chat application:
- POST /ai/ask: open Q&A over chat messages, optionally within one channel
- POST /ai/avatar/ask: ask a user's AI persona, answered from their documents
"""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status

from chatgenius.api.deps import Services
from chatgenius.core.exceptions import ChatGeniusError, GenerationError
from chatgenius.db.deps import DBSession
from chatgenius.schemas.ai import AskRequest, PersonaAnswer, PersonaAskRequest, SynthesizedAnswer
from chatgenius.services.rag.persona_synthesizer import Persona
from chatgenius.services.repositories import get_profile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

GENERATION_FALLBACK_MESSAGE = (
    "I'm sorry, I couldn't generate an answer right now. Please try again in a moment."
)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


@router.post("/ask", response_model=SynthesizedAnswer)
async def ask(request: AskRequest, services: Services):
    """
    Answer a question from chat history.

    Args:
        request: Question and optional channel to search in
        services: Application services

    Returns:
        Answer with bracketed citations and up to three supporting messages
    """
    try:
        return await services.chat_synthesizer.answer(request.query, channel_id=request.channel_id)

    except GenerationError as e:
        logger.error(f"Answer generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=GENERATION_FALLBACK_MESSAGE,
        )
    except ChatGeniusError as e:
        logger.error(f"Error answering question: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to answer question",
        )


@router.post("/avatar/ask", response_model=PersonaAnswer)
async def ask_avatar(request: PersonaAskRequest, services: Services, db: DBSession):
    """
    Answer a question as the persona of ``persona_id``.

    Only that user's documents are searched.

    Raises:
        HTTPException 404: No profile for ``persona_id``
    """
    profile = await get_profile(db, request.persona_id) if _is_uuid(request.persona_id) else None
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Persona not found",
        )

    persona = Persona(user_id=str(profile.id), username=profile.username, bio=profile.bio)

    try:
        return await services.persona_synthesizer.answer(request.query, persona)

    except GenerationError as e:
        logger.error(f"Persona answer generation failed for {persona.username}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=GENERATION_FALLBACK_MESSAGE,
        )
    except ChatGeniusError as e:
        logger.error(f"Error answering as persona {persona.username}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to answer question",
        )
