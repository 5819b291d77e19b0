"""Character-bounded chunking with sentence/paragraph boundary preference."""
import logging
import re
from typing import List, Tuple

from models.chunk import DocumentChunk
from config import CHUNK_MAX_CHARS, CHUNK_OVERLAP

logger = logging.getLogger(__name__)

_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


class ChunkingEngine:
    """Segments document text into overlapping chunks for embedding."""

    # Never shrink a chunk below this fraction of max_chars to honour a boundary
    MIN_BREAK_RATIO = 0.5
    BREAK_CHARS = (".", "\n")

    def __init__(self, max_chars: int = CHUNK_MAX_CHARS, overlap: int = CHUNK_OVERLAP):
        """
        Initialize ChunkingEngine.

        Args:
            max_chars: Maximum chunk size in characters
            overlap: Characters shared between consecutive chunks

        Raises:
            ValueError: If sizes are out of range
        """
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        if overlap < 0:
            raise ValueError("overlap cannot be negative")

        self.max_chars = max_chars
        self.overlap = overlap

    @staticmethod
    def clean_text(text: str) -> str:
        """Collapse runs of spaces/tabs and excess blank lines, keeping paragraph breaks."""
        text = text.replace("\r\n", "\n")
        lines = [_INLINE_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
        return _EXCESS_NEWLINES.sub("\n\n", "\n".join(lines)).strip()

    def chunk_text(self, text: str) -> List[DocumentChunk]:
        """
        Split text into ordered chunks covering the whole input.

        Args:
            text: Full document text

        Returns:
            List of DocumentChunk objects with sequential ids; empty for
            empty or whitespace-only input
        """
        chunks: List[DocumentChunk] = []

        for start, end in self.windows(text):
            content = text[start:end].strip()
            if content:
                chunks.append(DocumentChunk(id=len(chunks), content=content))

        logger.debug(f"Split {len(text)} characters into {len(chunks)} chunks")
        return chunks

    def windows(self, text: str) -> List[Tuple[int, int]]:
        """
        Compute the raw [start, end) spans that chunk_text trims into chunks.

        Consecutive spans overlap by `overlap` characters (or touch, when the
        overlap would stall the cursor), so together they cover the text with
        no gaps.
        """
        spans: List[Tuple[int, int]] = []
        length = len(text)
        position = 0

        while position < length:
            end = min(position + self.max_chars, length)

            if end < length:
                break_point = max(text.rfind(char, position, end) for char in self.BREAK_CHARS)
                if break_point > position + self.max_chars * self.MIN_BREAK_RATIO:
                    end = break_point + 1

            spans.append((position, end))

            if end >= length:
                break

            next_position = end - self.overlap
            # Guard against a cursor that would not advance
            position = next_position if next_position > position else end

        return spans
