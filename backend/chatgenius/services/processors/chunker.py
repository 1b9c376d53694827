"""
Text Chunking Service

Splits long extracted document text into overlapping character windows.

Strategy:
---------
Recursive character splitting: try the coarsest separator first
(paragraph, line, sentence, word), and only fall back to a finer one for
pieces that are still larger than the window. Adjacent pieces are then
merged greedily into windows of at most ``chunk_size`` characters, with the
tail of each window (up to ``chunk_overlap`` characters) repeated at the
start of the next one for continuity.

Configuration from settings:
- DOCUMENT_CHUNK_SIZE: 1000 (default)
- DOCUMENT_CHUNK_OVERLAP: 100 (default)
"""

from typing import Optional

from chatgenius.core.config import settings

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


class TextChunker:
    """
    Recursive character splitter with overlap.

    Usage:
    ------
    chunker = TextChunker(chunk_size=1000, chunk_overlap=100)
    windows = chunker.split(long_text)
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        separators: Optional[list[str]] = None,
    ):
        self.chunk_size = chunk_size or settings.DOCUMENT_CHUNK_SIZE
        self.chunk_overlap = settings.DOCUMENT_CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.separators = separators or DEFAULT_SEPARATORS

        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )

    def split(self, text: str) -> list[str]:
        """
        Split text into windows of at most ``chunk_size`` characters.

        Args:
            text: Text to split

        Returns:
            Ordered list of non-empty windows (empty list for blank text)
        """
        if not text or not text.strip():
            return []
        return self._split(text, self.separators)

    def _split(self, text: str, separators: list[str]) -> list[str]:
        separator = separators[-1]
        remaining: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "" or candidate in text:
                separator = candidate
                remaining = separators[i + 1:]
                break

        pieces = text.split(separator) if separator else list(text)

        chunks: list[str] = []
        fitting: list[str] = []
        for piece in pieces:
            if not piece:
                continue
            if len(piece) <= self.chunk_size:
                fitting.append(piece)
                continue

            if fitting:
                chunks.extend(self._merge(fitting, separator))
                fitting = []
            if remaining:
                chunks.extend(self._split(piece, remaining))
            else:
                chunks.append(piece)

        if fitting:
            chunks.extend(self._merge(fitting, separator))
        return chunks

    def _merge(self, pieces: list[str], separator: str) -> list[str]:
        """Greedily join pieces into windows, carrying overlap between windows."""
        sep_len = len(separator)
        windows: list[str] = []
        current: list[str] = []
        total = 0

        for piece in pieces:
            added = len(piece) + (sep_len if current else 0)
            if current and total + added > self.chunk_size:
                window = separator.join(current).strip()
                if window:
                    windows.append(window)

                # Drop pieces from the front until only the overlap remains
                # and the next piece fits
                while current and (
                    total > self.chunk_overlap
                    or total + len(piece) + (sep_len if current else 0) > self.chunk_size
                ):
                    total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                    current.pop(0)

            current.append(piece)
            total += len(piece) + (sep_len if len(current) > 1 else 0)

        window = separator.join(current).strip()
        if window:
            windows.append(window)
        return windows


def estimate_window_count(text_length: int, chunk_size: int = 1000, chunk_overlap: int = 100) -> int:
    """
    Estimate how many windows a text of ``text_length`` characters produces.

    Useful for logging before splitting very large documents.
    """
    if text_length <= 0:
        return 0
    if text_length <= chunk_size:
        return 1
    stride = chunk_size - chunk_overlap
    return 1 + -(-(text_length - chunk_size) // stride)
