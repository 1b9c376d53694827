"""
Chat Answer Synthesizer (open Q&A)

Answers a question from chat history:

1. Retrieve the top RAG_CHAT_TOP_K messages (optionally channel-scoped),
   with no relevance floor
2. Order them chronologically and number them [1], [2], ... so citations
   follow conversation order
3. Ask the model to use every relevant fragment, cite by number, and say
   when the context is not enough
4. Return the answer plus up to RAG_MAX_SOURCES messages scoring at least
   RAG_MIN_RELEVANCE_SCORE, highest score first
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from chatgenius.core.config import settings
from chatgenius.schemas.ai import SourceItem, SynthesizedAnswer
from chatgenius.services.rag.generator import AnswerGenerator
from chatgenius.services.rag.retriever import Retriever
from chatgenius.services.vector_index import RetrievalResult

logger = logging.getLogger(__name__)

NO_MESSAGES_CONTEXT = "No relevant messages found."


def format_timestamp(value: Optional[str]) -> str:
    """Render an ISO timestamp as 'YYYY-MM-DD HH:MM' plus its zone name for prompts."""
    if not value:
        return "unknown time"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    if parsed.tzinfo is None:
        return parsed.strftime("%Y-%m-%d %H:%M")
    return parsed.strftime("%Y-%m-%d %H:%M %Z").strip()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sort_key(result: RetrievalResult) -> tuple[bool, datetime]:
    # Missing or unparseable timestamps go last
    parsed = _parse_timestamp(result.metadata.get("created_at"))
    return parsed is None, parsed or datetime.max.replace(tzinfo=timezone.utc)


def build_message_context(results: list[RetrievalResult]) -> str:
    """
    Number retrieved messages in chronological order.

    Each line: [n] [timestamp] "content" (relevance: 0.00)
    """
    if not results:
        return NO_MESSAGES_CONTEXT

    lines = []
    for number, result in enumerate(sorted(results, key=_sort_key), start=1):
        timestamp = format_timestamp(result.metadata.get("created_at"))
        content = result.metadata.get("content", "")
        edited = " (edited)" if result.metadata.get("is_edited") else ""
        lines.append(f'[{number}] [{timestamp}] "{content}"{edited} (relevance: {result.score:.2f})')
    return "\n".join(lines)


def build_chat_prompt(query: str, context: str) -> str:
    return f"""You are a helpful AI assistant in a chat application. Using the following message history as context, answer the user's question.

Important guidelines:
1. Use ALL relevant messages in the context, not just the first one, and combine what they say into one answer
2. Cite messages with their bracketed numbers, e.g. [1] or [2][3]; the numbers follow chronological order
3. Include exact timestamps when mentioning messages, and be specific about the day and time for time-based questions
4. Pay attention to relevance scores: higher scores (closer to 1.0) indicate more relevant messages
5. If a message is about someone but was not sent by them, make that clear
6. If messages contradict each other, point out the contradiction and say which message is more recent
7. If the context does not fully answer the question, explain what you found and what is missing

Context:
{context}

User's Question: {query}

Response:"""


def select_sources(
    results: list[RetrievalResult],
    min_score: float,
    max_sources: int,
) -> list[SourceItem]:
    """Keep results at or above ``min_score``, highest first, at most ``max_sources``."""
    relevant = sorted(
        (r for r in results if r.score >= min_score),
        key=lambda r: r.score,
        reverse=True,
    )
    return [
        SourceItem(
            content=r.metadata.get("content", ""),
            created_at=r.metadata.get("created_at"),
            owner_id=r.metadata.get("owner_id"),
            scope_id=r.metadata.get("scope_id"),
            score=r.score,
            is_edited=r.metadata.get("is_edited"),
        )
        for r in relevant[:max_sources]
    ]


class ChatAnswerSynthesizer:
    """
    Open-corpus question answering over chat messages.

    Usage:
    ------
    synthesizer = ChatAnswerSynthesizer(retriever, generator)
    result = await synthesizer.answer("when is standup?", channel_id="c1")
    result.answer, result.sources
    """

    def __init__(
        self,
        retriever: Retriever,
        generator: AnswerGenerator,
        top_k: Optional[int] = None,
        min_relevance_score: Optional[float] = None,
        max_sources: Optional[int] = None,
    ):
        self.retriever = retriever
        self.generator = generator
        self.top_k = top_k or settings.RAG_CHAT_TOP_K
        self.min_relevance_score = (
            settings.RAG_MIN_RELEVANCE_SCORE if min_relevance_score is None else min_relevance_score
        )
        self.max_sources = max_sources or settings.RAG_MAX_SOURCES

    async def answer(self, query: str, channel_id: Optional[str] = None) -> SynthesizedAnswer:
        """
        Answer ``query`` from chat history.

        Raises:
            GenerationError: The model call failed
        """
        results = await self.retriever.similarity_search(query, channel_id=channel_id, limit=self.top_k)

        context = build_message_context(results)
        prompt = build_chat_prompt(query, context)

        logger.info(f"Generating chat answer for '{query[:50]}' with {len(results)} messages")
        answer_text = await self.generator.complete(prompt)

        sources = select_sources(results, self.min_relevance_score, self.max_sources)
        return SynthesizedAnswer(answer=answer_text, sources=sources)
