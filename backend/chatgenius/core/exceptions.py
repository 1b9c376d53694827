"""
Exception hierarchy for the indexing and answer-synthesis services.

Every service raises a subclass of ChatGeniusError so routes, tasks and the
global exception handler can tell domain failures apart from programming
errors.

    ChatGeniusError
    ├── DocumentProcessingError
    │   ├── DocumentNotFoundError
    │   ├── UnsupportedFormatError
    │   ├── BlobStoreError
    │   └── ExtractionError
    ├── EmbeddingProviderError
    ├── VectorIndexError
    │   └── ScopeFilterRequiredError
    ├── InvalidStatusTransitionError
    └── GenerationError
"""

from typing import Optional


class ChatGeniusError(Exception):
    """Base class for all domain errors."""

    code = "chatgenius_error"


# ================================
# Document Processing
# ================================

class DocumentProcessingError(ChatGeniusError):
    """A document could not be turned into indexable text."""

    code = "document_processing_error"

    def __init__(self, message: str, document_id: Optional[str] = None):
        super().__init__(message)
        self.document_id = document_id


class DocumentNotFoundError(DocumentProcessingError):
    code = "document_not_found"


class UnsupportedFormatError(DocumentProcessingError):
    """The document's MIME type has no extractor."""

    code = "unsupported_format"

    def __init__(self, mime_type: str, document_id: Optional[str] = None):
        super().__init__(f"Unsupported file type: {mime_type}", document_id)
        self.mime_type = mime_type


class BlobStoreError(DocumentProcessingError):
    code = "blob_store_error"


class ExtractionError(DocumentProcessingError):
    code = "extraction_error"


# ================================
# Embedding / Index
# ================================

class EmbeddingProviderError(ChatGeniusError):
    """Embedding generation failed; no partial results are returned."""

    code = "embedding_provider_error"


class VectorIndexError(ChatGeniusError):
    code = "vector_index_error"


class ScopeFilterRequiredError(VectorIndexError):
    """A namespace that requires an owner filter was queried without one."""

    code = "scope_filter_required"

    def __init__(self, namespace: str, field: str):
        super().__init__(f"Queries on '{namespace}' must filter by '{field}'")
        self.namespace = namespace
        self.field = field


class InvalidStatusTransitionError(ChatGeniusError):
    code = "invalid_status_transition"

    def __init__(self, document_id: str, target: str):
        super().__init__(
            f"Document {document_id} cannot move to '{target}' from its current status"
        )
        self.document_id = document_id
        self.target = target


# ================================
# Generation
# ================================

class GenerationError(ChatGeniusError):
    """The generative model call failed or returned no text."""

    code = "generation_error"
