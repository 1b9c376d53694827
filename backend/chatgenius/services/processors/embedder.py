"""
Embedding Service

This module provides embedding generation using sentence-transformers.
The same model (and so the same dimensionality) embeds chat messages,
avatar documents and user queries, so all three are comparable.

Model: sentence-transformers/all-MiniLM-L6-v2 (default)
- 384 dimensions
- Normalized embeddings, so cosine similarity equals the dot product

Features:
---------
- Sub-batching with a pause between sub-batches (EMBEDDING_BATCH_SIZE,
  EMBEDDING_BATCH_DELAY_SECONDS) to keep the provider within its rate limits
- All-or-nothing batches: a failing sub-batch aborts the whole call with
  EmbeddingProviderError, no partial results are returned
- CPU/CUDA/MPS device support
- Model loading and encoding run in a worker thread
"""

import asyncio
import logging
import re
from typing import Optional

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from chatgenius.core.config import settings
from chatgenius.core.exceptions import EmbeddingProviderError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse newlines and whitespace runs, drop null characters, trim."""
    return _WHITESPACE.sub(" ", text.replace("\0", "")).strip()


class EmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Usage:
    ------
    embedder = EmbeddingService()
    await embedder.initialize()

    # Query
    vector = await embedder.embed_query("when is standup?")

    # Batch (order preserved)
    vectors = await embedder.embed_batch(["Text 1", "Text 2", "Text 3"])
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        device: Optional[str] = None,
        normalize: bool = True,
    ):
        """
        Initialize the embedding service.

        Args:
            model_name: Model name/path (default from settings)
            batch_size: Texts per provider call (default from settings)
            batch_delay: Seconds to wait between provider calls (default from settings)
            device: Device to use: cpu, cuda, mps (default from settings)
            normalize: Whether to normalize embeddings (default True)
        """
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self.batch_delay = settings.EMBEDDING_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self.device = device or settings.EMBEDDING_DEVICE
        self.normalize = normalize

        self.model: Optional[SentenceTransformer] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

        self._validate_device()

    def _validate_device(self) -> None:
        """Validate and adjust device setting based on availability."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    async def initialize(self) -> None:
        """
        Load the embedding model (downloads it if not cached).

        Raises:
            EmbeddingProviderError: If model loading fails
        """
        async with self._init_lock:
            if self._initialized:
                return

            try:
                logger.info(f"Loading embedding model: {self.model_name} on {self.device}")

                self.model = await asyncio.to_thread(
                    SentenceTransformer,
                    self.model_name,
                    device=self.device,
                )
                self._initialized = True

                logger.info(
                    f"Embedding model loaded successfully. "
                    f"Dimension: {self.get_embedding_dimension()}, "
                    f"Device: {self.device}"
                )
            except Exception as e:
                logger.error(f"Failed to load embedding model: {e}")
                raise EmbeddingProviderError(f"Failed to load embedding model {self.model_name}: {e}") from e

    def get_embedding_dimension(self) -> int:
        if not self._initialized or self.model is None:
            return settings.EMBEDDING_DIMENSION
        return self.model.get_sentence_embedding_dimension()

    async def embed_query(self, text: str) -> list[float]:
        """
        Embed a single text (a search query or one message).

        Raises:
            ValueError: If the text is blank after normalization
            EmbeddingProviderError: If the model call fails
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts in sub-batches, preserving input order.

        Sub-batches of ``batch_size`` are sent one after another with
        ``batch_delay`` seconds between them.

        Args:
            texts: Texts to embed (each must be non-blank)

        Returns:
            One vector per input text, same order

        Raises:
            ValueError: If any text is blank after normalization
            EmbeddingProviderError: If any sub-batch fails (no partial results)
        """
        if not texts:
            return []

        cleaned = [normalize_text(text or "") for text in texts]
        blank = [i for i, text in enumerate(cleaned) if not text]
        if blank:
            raise ValueError(f"Cannot embed blank text (positions {blank})")

        if not self._initialized:
            await self.initialize()

        vectors: list[list[float]] = []
        total_batches = (len(cleaned) + self.batch_size - 1) // self.batch_size

        for batch_number, start in enumerate(range(0, len(cleaned), self.batch_size), start=1):
            if start > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            batch = cleaned[start:start + self.batch_size]
            try:
                embeddings = await asyncio.to_thread(self._encode, batch)
            except Exception as e:
                logger.error(
                    f"Embedding sub-batch {batch_number}/{total_batches} failed: {e}"
                )
                raise EmbeddingProviderError(
                    f"Embedding failed on batch {batch_number}/{total_batches}: {e}"
                ) from e

            vectors.extend(np.asarray(row, dtype=np.float32).tolist() for row in embeddings)

            if total_batches > 1:
                logger.debug(f"Embedded sub-batch {batch_number}/{total_batches} ({len(batch)} texts)")

        return vectors

    def _encode(self, texts: list[str]) -> np.ndarray:
        """Encode texts (sync, runs in thread pool)."""
        return self.model.encode(
            texts,
            batch_size=len(texts),
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True,
        )

    async def shutdown(self) -> None:
        """Free the model. Should be called at application shutdown."""
        if self.model is not None:
            if self.device == "cuda":
                torch.cuda.empty_cache()
            del self.model
            self.model = None

        self._initialized = False
        logger.info("Embedding service shut down")
