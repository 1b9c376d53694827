"""
Document Processing Service

Turns an uploaded avatar document into one normalized text ready for
embedding.

Pipeline:
---------
1. Load the document row (name, MIME type, storage path, owner)
2. Reject unsupported MIME types
3. Download the file bytes from blob storage
4. Extract text with a format-specific extractor
5. Normalize (control characters removed, whitespace collapsed)
6. Documents over DOCUMENT_CHUNK_THRESHOLD characters are split into
   overlapping windows and rejoined with blank lines, so a large document
   still produces exactly one text

Supported formats:
------------------
- text/plain, text/markdown, text/csv: decoded as UTF-8 (latin-1 fallback)
- application/pdf: PyMuPDF
- application/vnd.openxmlformats-officedocument.wordprocessingml.document: python-docx
- application/msword: python-docx (only succeeds for OOXML files with a .doc type)
- application/rtf, text/rtf: striprtf
"""

import asyncio
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import docx
import fitz
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from striprtf.striprtf import rtf_to_text

from chatgenius.core.config import settings
from chatgenius.core.exceptions import (
    DocumentNotFoundError,
    DocumentProcessingError,
    ExtractionError,
    UnsupportedFormatError,
)
from chatgenius.services.processors.chunker import TextChunker, estimate_window_count
from chatgenius.services.repositories import get_document
from chatgenius.services.storage import BlobStore

logger = logging.getLogger(__name__)


DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MIME_TYPES = frozenset({
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/pdf",
    DOCX_MIME_TYPE,
    "application/msword",
    "application/rtf",
    "text/rtf",
})

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F-\x9F]")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class ProcessedDocument:
    """Normalized document text plus the metadata used for indexing."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


def is_supported_mime_type(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.lower() in SUPPORTED_MIME_TYPES


def clean_text(text: str) -> str:
    """
    Normalize extracted text.

    Whitespace runs (including newlines) collapse to one space, null and
    other control characters are removed, and the result is trimmed.
    """
    text = _WHITESPACE.sub(" ", text.strip())
    text = text.replace("\0", "")
    text = _CONTROL_CHARS.sub("", text)
    return text.strip()


# ========================================
# Extractors (sync, run in a worker thread)
# ========================================

def extract_plain_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def extract_pdf_text(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as pdf:
        return "\n".join(page.get_text() for page in pdf)


def extract_docx_text(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    parts = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.append(" ".join(cell.text for cell in row.cells))
    return "\n".join(parts)


def extract_rtf_text(data: bytes) -> str:
    return rtf_to_text(extract_plain_text(data))


EXTRACTORS: dict[str, Callable[[bytes], str]] = {
    "text/plain": extract_plain_text,
    "text/markdown": extract_plain_text,
    "text/csv": extract_plain_text,
    "application/pdf": extract_pdf_text,
    DOCX_MIME_TYPE: extract_docx_text,
    "application/msword": extract_docx_text,
    "application/rtf": extract_rtf_text,
    "text/rtf": extract_rtf_text,
}


class DocumentProcessor:
    """
    Loads, extracts and normalizes avatar documents.

    Usage:
    ------
    processor = DocumentProcessor(AsyncSessionLocal, BlobStore())
    processed = await processor.process(document_id)
    processed.text       # normalized text to embed
    processed.metadata   # file_name, mime_type, size, user_id, ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        chunker: Optional[TextChunker] = None,
        chunk_threshold: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.chunker = chunker or TextChunker()
        self.chunk_threshold = chunk_threshold or settings.DOCUMENT_CHUNK_THRESHOLD

    async def process(self, document_id: str) -> ProcessedDocument:
        """
        Produce the normalized text for one document.

        Raises:
            DocumentNotFoundError: No row for ``document_id``
            UnsupportedFormatError: MIME type has no extractor
            BlobStoreError: File could not be downloaded
            ExtractionError: Extraction failed or produced no text
        """
        async with self.session_factory() as db:
            document = await get_document(db, document_id)

        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found", document_id)

        mime_type = (document.mime_type or "").lower()
        if not is_supported_mime_type(mime_type):
            raise UnsupportedFormatError(document.mime_type, document_id)

        data = await self.blob_store.fetch(document.storage_path)

        raw_text = await self.extract_text(data, mime_type, document_id)
        text = clean_text(raw_text)
        if not text:
            raise ExtractionError(f"No text could be extracted from document {document_id}", document_id)

        chunk_count = 1
        if len(text) > self.chunk_threshold:
            logger.info(
                f"Splitting large document {document_id} ({len(text)} chars, "
                f"~{estimate_window_count(len(text), self.chunker.chunk_size, self.chunker.chunk_overlap)} windows)"
            )
            windows = self.chunker.split(text)
            chunk_count = len(windows)
            text = "\n\n".join(windows)

        logger.info(f"Processed document {document_id}: {len(text)} chars, mime={mime_type}")

        return ProcessedDocument(
            text=text,
            metadata={
                "file_name": document.name,
                "mime_type": document.mime_type,
                "size": document.size,
                "user_id": str(document.user_id),
                "created_at": document.created_at.isoformat() if document.created_at else None,
                "created_by": str(document.created_by) if document.created_by else None,
                "storage_path": document.storage_path,
                "description": document.description,
                "chunk_count": chunk_count,
            },
        )

    async def extract_text(self, data: bytes, mime_type: str, document_id: Optional[str] = None) -> str:
        """Run the extractor for ``mime_type`` in a worker thread."""
        extractor = EXTRACTORS.get(mime_type)
        if extractor is None:
            raise UnsupportedFormatError(mime_type, document_id)

        try:
            return await asyncio.to_thread(extractor, data)
        except DocumentProcessingError:
            raise
        except Exception as e:
            logger.error(f"Text extraction failed for {document_id} ({mime_type}): {e}")
            raise ExtractionError(
                f"Failed to extract text from {mime_type} document: {e}", document_id
            ) from e
