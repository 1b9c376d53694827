"""
Persona Answer Synthesizer

Answers a question as a user's AI persona, grounded only in the documents
that user uploaded.

The synthesizer keeps the list of documents it places into the prompt and
returns that list as ``relevant_documents``, so the citations always match
what the model actually saw.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from chatgenius.core.config import settings
from chatgenius.schemas.ai import PersonaAnswer, RelevantDocument
from chatgenius.services.rag.generator import AnswerGenerator
from chatgenius.services.rag.retriever import Retriever
from chatgenius.services.vector_index import RetrievalResult

logger = logging.getLogger(__name__)

NO_DOCUMENTS_CONTEXT = "No relevant documents found."
DEFAULT_BIO = "No bio provided"

FRIENDLY_DOCUMENT_TYPES = {
    "application/pdf": "PDF",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "DOCX",
    "application/msword": "DOC",
    "text/plain": "TEXT",
    "text/markdown": "MARKDOWN",
    "text/csv": "CSV",
    "application/rtf": "RTF",
    "text/rtf": "RTF",
}

_SENTENCE = re.compile(r"[^.!?]+[.!?]+")


@dataclass
class Persona:
    """The user a persona answer speaks for."""

    user_id: str
    username: str
    bio: Optional[str] = None


@dataclass
class ContextDocument:
    """One document as placed into the persona prompt."""

    name: str
    document_type: str
    date: str
    score: float
    excerpt: str

    def to_relevant_document(self) -> RelevantDocument:
        return RelevantDocument(
            document_name=self.name,
            document_type=self.document_type,
            relevance_score=self.score,
        )


def document_type_for(mime_type: Optional[str]) -> str:
    """Friendly type label for a MIME type, e.g. ``application/pdf`` -> ``PDF``."""
    if not mime_type:
        return "UNKNOWN"
    mime_type = mime_type.lower()
    if mime_type in FRIENDLY_DOCUMENT_TYPES:
        return FRIENDLY_DOCUMENT_TYPES[mime_type]
    subtype = mime_type.split("/", 1)[-1]
    return subtype.upper()


def format_document_date(value: Optional[str]) -> str:
    if not value:
        return "unknown date"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return value


def truncate_excerpt(text: str, max_chars: Optional[int] = None) -> str:
    """
    Shorten ``text`` to at most ``max_chars`` without cutting a sentence.

    Whole sentences are kept from the start while they fit. When even the
    first sentence is too long, the text is cut at the last word boundary
    and marked with an ellipsis.
    """
    max_chars = max_chars or settings.RAG_EXCERPT_MAX_CHARS
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text

    excerpt = ""
    for match in _SENTENCE.finditer(text):
        sentence = match.group(0)
        if len(excerpt) + len(sentence) > max_chars:
            break
        excerpt += sentence
    excerpt = excerpt.strip()
    if excerpt:
        return excerpt

    cut = text[: max_chars - 3]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip() + "..."


def build_context_documents(results: list[RetrievalResult], max_chars: Optional[int] = None) -> list[ContextDocument]:
    return [
        ContextDocument(
            name=result.metadata.get("document_name") or result.id,
            document_type=document_type_for(result.metadata.get("mime_type")),
            date=format_document_date(result.metadata.get("created_at")),
            score=round(result.score, 2),
            excerpt=truncate_excerpt(result.metadata.get("content", ""), max_chars),
        )
        for result in results
    ]


def build_document_context(documents: list[ContextDocument]) -> str:
    if not documents:
        return NO_DOCUMENTS_CONTEXT

    blocks = [
        f"[Document {number}] {doc.name} ({doc.document_type} - {doc.date})\n"
        f"Relevance Score: {doc.score:.2f}\n"
        f'Content: "{doc.excerpt}"'
        for number, doc in enumerate(documents, start=1)
    ]
    return "\n\n".join(blocks)


def build_persona_prompt(query: str, persona: Persona, context: str) -> str:
    bio = persona.bio or DEFAULT_BIO
    return f"""You are an AI Avatar representing {persona.username}. Answer questions about their knowledge, experiences, and documents as if you were them.

Important guidelines:
1. Always speak in the first person ("I", "my", "me") as {persona.username}
2. Answer only from the documents in the context below; never invent facts about yourself
3. Refer to your documents naturally, e.g. "In my notes on..." or "As I wrote in..."
4. If the documents only partly answer the question, say what you know and acknowledge what you are unsure about
5. If the documents do not cover the question, say honestly that you have not written about it instead of guessing
6. Match the tone and personality suggested by your bio

Bio: {bio}

Relevant Context:
{context}

Question: {query}

Response:"""


def format_with_sources(answer: str, documents: list[ContextDocument]) -> str:
    if not documents:
        return answer
    lines = [f"{number}. {doc.name}" for number, doc in enumerate(documents, start=1)]
    return answer + "\n\nSources:\n" + "\n".join(lines)


class PersonaAnswerSynthesizer:
    """
    Persona question answering over one user's avatar documents.

    Usage:
    ------
    synthesizer = PersonaAnswerSynthesizer(retriever, generator)
    result = await synthesizer.answer("how do I make pasta?", Persona("u1", "maria", "Chef"))
    result.answer, result.relevant_documents, result.formatted_answer
    """

    def __init__(
        self,
        retriever: Retriever,
        generator: AnswerGenerator,
        top_k: Optional[int] = None,
        excerpt_max_chars: Optional[int] = None,
    ):
        self.retriever = retriever
        self.generator = generator
        self.top_k = top_k or settings.RAG_PERSONA_TOP_K
        self.excerpt_max_chars = excerpt_max_chars or settings.RAG_EXCERPT_MAX_CHARS

    async def answer(self, query: str, persona: Persona) -> PersonaAnswer:
        """
        Answer ``query`` in the voice of ``persona``.

        Raises:
            GenerationError: The model call failed
        """
        results = await self.retriever.persona_search(query, owner_id=persona.user_id, limit=self.top_k)
        documents = build_context_documents(results, self.excerpt_max_chars)

        prompt = build_persona_prompt(query, persona, build_document_context(documents))

        logger.info(
            f"Generating persona answer for {persona.username} "
            f"with {len(documents)} documents"
        )
        answer_text = await self.generator.complete(prompt)

        return PersonaAnswer(
            answer=answer_text,
            relevant_documents=[doc.to_relevant_document() for doc in documents],
            formatted_answer=format_with_sources(answer_text, documents),
        )
