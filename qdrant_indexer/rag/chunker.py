"""Text Chunker Module"""

import logging
from typing import List

logger = logging.getLogger(__name__)


class TextChunker:
    """Splits text into length-bounded chunks that prefer to end on a sentence"""

    def __init__(self, chunk_size=3000):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        logger.debug(f"✂️ Chunker initialized: size={chunk_size}")

    def chunk_text(self, text: str) -> List[str]:
        """
        Split text into chunks of at most chunk_size characters.

        A window that does not reach the end of the text is cut after its last
        '.' when that period lies past the middle of the window. The next
        window starts right after the emitted piece, so nothing is skipped or
        repeated. Pieces are whitespace-trimmed; empty pieces are dropped.

        Whitespace-only input gives [] rather than one empty chunk, since an
        empty chunk has nothing to embed.
        """
        if not text:
            return []

        if len(text) <= self.chunk_size:
            stripped = text.strip()
            return [stripped] if stripped else []

        chunks = []
        start = 0
        while start < len(text):
            piece = text[start:start + self.chunk_size]

            if start + self.chunk_size < len(text):
                last_period = piece.rfind('.')
                if last_period != -1 and last_period > self.chunk_size / 2:
                    piece = piece[:last_period + 1]

            stripped = piece.strip()
            if stripped:
                chunks.append(stripped)

            start += len(piece)

        return chunks


def chunk(text: str, max_size: int) -> List[str]:
    """Functional shortcut for TextChunker(max_size).chunk_text(text)."""
    return TextChunker(chunk_size=max_size).chunk_text(text)
