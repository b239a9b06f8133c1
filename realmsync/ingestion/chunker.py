"""Boundary-aware document chunking.

Documents longer than ``max_chars`` are split into overlapping windows. Each window
ends on the best boundary found in a lookback region before the size limit:

- a blank line (paragraph break)
- any newline
- a sentence terminator (``.``, ``!``, ``?``)
- the raw size limit, as a last resort (may split a word)

The next window starts ``overlap_chars`` before the previous end, nudged forward to
the next paragraph or sentence start so the LLM rarely sees a half sentence.

Chunks carry absolute offsets: ``content[chunk.start_offset:chunk.end_offset] == chunk.text``
always holds, and consecutive chunks leave no gaps.
"""

from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict

from realmsync.utils.config import ChunkingConfig

MAX_CHUNK_CHARS = 12000
OVERLAP_CHARS = 800
MIN_CHUNK_CHARS = 1000
LOOKBACK_CHARS = 2000

_SENTENCE_TERMINATORS = frozenset(".!?")


class Chunk(BaseModel):
    """A contiguous, offset-tracked slice of a document."""

    model_config = ConfigDict(frozen=True)

    text: str
    start_offset: int
    end_offset: int
    index: int

    @classmethod
    def whole(cls, content: str) -> "Chunk":
        """A single chunk spanning the entire document."""
        return cls(text=content, start_offset=0, end_offset=len(content), index=0)


def needs_chunking(content: str, max_chars: int = MAX_CHUNK_CHARS) -> bool:
    """Return True when ``content`` is too long for a single extraction call."""
    return len(content) > max_chars


def chunk_document(
    content: str,
    max_chars: int = MAX_CHUNK_CHARS,
    overlap_chars: int = OVERLAP_CHARS,
    *,
    min_chunk_chars: int = MIN_CHUNK_CHARS,
    lookback_chars: int = LOOKBACK_CHARS,
) -> List[Chunk]:
    """Split ``content`` into overlapping, boundary-aligned chunks.

    Args:
        content: Full document text
        max_chars: Maximum characters per chunk
        overlap_chars: Characters shared between consecutive chunks
        min_chunk_chars: Boundary snapping never shrinks a chunk below this size
        lookback_chars: How far before the size limit to look for a boundary

    Returns:
        Chunks in increasing ``index`` order covering the whole document
    """
    if len(content) <= max_chars:
        return [Chunk.whole(content)]

    chunks: List[Chunk] = []
    length = len(content)
    current = 0

    while current < length:
        end = min(current + max_chars, length)
        if end < length:
            end = _find_chunk_end(content, current, end, min_chunk_chars, lookback_chars)

        chunks.append(
            Chunk(
                text=content[current:end],
                start_offset=current,
                end_offset=end,
                index=len(chunks),
            )
        )

        if end >= length:
            break

        next_start = max(end - overlap_chars, current + 1)
        current = _find_chunk_start(content, next_start, end)

    return chunks


def _find_chunk_end(
    content: str, start: int, max_end: int, min_chunk_chars: int, lookback_chars: int
) -> int:
    """Snap ``max_end`` back to the best boundary in the lookback window."""
    search_start = max(start + min_chunk_chars, max_end - lookback_chars)

    # Boundaries are positions *after* the marker; scanning from max_end - 1 keeps
    # every candidate <= max_end so chunks never exceed max_chars.
    for i in range(max_end - 1, search_start - 1, -1):
        if i > 0 and content[i] == "\n" and content[i - 1] == "\n":
            return i + 1

    for i in range(max_end - 1, search_start - 1, -1):
        if content[i] == "\n":
            return i + 1

    for i in range(max_end - 1, search_start - 1, -1):
        if content[i] in _SENTENCE_TERMINATORS:
            if i + 2 <= max_end and content[i + 1] == " ":
                return i + 2
            return i + 1

    return max_end


def _find_chunk_start(content: str, target: int, max_pos: int) -> int:
    """Advance ``target`` to the next paragraph or sentence start before ``max_pos``."""
    for i in range(target, max_pos):
        if content[i] == "\n" and i + 1 < max_pos and content[i + 1] != "\n":
            return i + 1

    for i in range(target, max_pos):
        if content[i] in _SENTENCE_TERMINATORS:
            if i + 2 < max_pos and content[i + 1] == " ":
                return i + 2

    return target


class DocumentChunker:
    """Chunk documents using configured sizes.

    Example:
        >>> chunker = DocumentChunker(ChunkingConfig(max_chars=4000, overlap_chars=400))
        >>> chunks = chunker.chunk(text)
        >>> print(f"Created {len(chunks)} chunks")
    """

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

        logger.info(
            f"Initialized DocumentChunker: max_chars={self.config.max_chars}, "
            f"overlap={self.config.overlap_chars}, min_chunk={self.config.min_chunk_chars}"
        )

    def needs_chunking(self, content: str, max_chars: Optional[int] = None) -> bool:
        return needs_chunking(content, self.config.max_chars if max_chars is None else max_chars)

    def chunk(
        self,
        content: str,
        *,
        max_chars: Optional[int] = None,
        overlap_chars: Optional[int] = None,
    ) -> List[Chunk]:
        """Chunk ``content``; per-call overrides win over the configured sizes."""
        effective_max = self.config.max_chars if max_chars is None else max_chars
        effective_overlap = self.config.overlap_chars if overlap_chars is None else overlap_chars
        if effective_max <= 0:
            raise ValueError("max_chars must be positive")
        if effective_overlap < 0:
            raise ValueError("overlap_chars must not be negative")
        if effective_overlap >= effective_max:
            raise ValueError("overlap_chars must be smaller than max_chars")

        chunks = chunk_document(
            content,
            effective_max,
            effective_overlap,
            min_chunk_chars=self.config.min_chunk_chars,
            lookback_chars=self.config.lookback_chars,
        )
        if len(chunks) > 1:
            logger.debug(
                "Chunked {} chars into {} chunks (max={}, overlap={})",
                len(content),
                len(chunks),
                effective_max,
                effective_overlap,
            )
        return chunks

    def get_chunk_statistics(self, chunks: List[Chunk]) -> Dict[str, Any]:
        """Get statistics about the chunks.

        Args:
            chunks: List of chunks

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {}

        sizes = [len(c.text) for c in chunks]
        overlaps = [
            prev.end_offset - nxt.start_offset for prev, nxt in zip(chunks, chunks[1:])
        ]
        return {
            "total_chunks": len(chunks),
            "avg_chars": sum(sizes) / len(sizes),
            "max_chars": max(sizes),
            "min_chars": min(sizes),
            "total_chars": chunks[-1].end_offset,
            "avg_overlap": sum(overlaps) / len(overlaps) if overlaps else 0.0,
        }
