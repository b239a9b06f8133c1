"""Map LLM evidence quotes back to absolute document offsets.

The LLM sees one chunk, so the quote it returns is chunk-relative at best. The
common case is a verbatim quote: an exact search inside the chunk, shifted by the
chunk's start offset, gives the precise span. When the model paraphrased or trimmed
the quote, a fuzzy strategy searches the whole document instead.

A ``None`` position is a normal outcome ("evidence unverified"), never an error.
"""

from __future__ import annotations

import re
from typing import Optional, Protocol

from loguru import logger
from rapidfuzz import fuzz

from realmsync.extraction.models import EvidencePosition
from realmsync.ingestion.chunker import Chunk

MAX_ANCHOR_WORDS = 5
MIN_ANCHOR_WORD_LENGTH = 4


class FuzzyStrategy(Protocol):
    """Fallback used when the quote is not found verbatim in its chunk."""

    def find(self, document: str, evidence: str) -> Optional[EvidencePosition]: ...


class RegexAnchorStrategy:
    """Anchor on the first few content words and match them in order.

    Words shorter than ``min_word_length`` (articles, connectors) are ignored since
    those are what models tend to swap. The anchor words are joined with a lazy
    wildcard and matched case-insensitively; the first hit in the document wins.
    """

    def __init__(
        self,
        max_words: int = MAX_ANCHOR_WORDS,
        min_word_length: int = MIN_ANCHOR_WORD_LENGTH,
    ) -> None:
        self.max_words = max_words
        self.min_word_length = min_word_length

    def anchor_words(self, evidence: str) -> list[str]:
        words = " ".join(evidence.split()).split(" ")
        return [w for w in words if len(w) >= self.min_word_length][: self.max_words]

    def find(self, document: str, evidence: str) -> Optional[EvidencePosition]:
        words = self.anchor_words(evidence)
        if not words:
            return None

        pattern = ".*?".join(re.escape(word) for word in words)
        match = re.search(pattern, document, flags=re.IGNORECASE)
        if match is None:
            return None
        return EvidencePosition(start=match.start(), end=match.end())


class RapidFuzzAlignmentStrategy:
    """Best partial alignment of the quote against the document (edit distance).

    More tolerant of reworded quotes than :class:`RegexAnchorStrategy`, at the cost
    of scanning the document with RapidFuzz. Alignments scoring below ``min_score``
    (0-100) are rejected.
    """

    def __init__(self, min_score: float = 85.0) -> None:
        self.min_score = min_score

    def find(self, document: str, evidence: str) -> Optional[EvidencePosition]:
        needle = " ".join(evidence.split())
        if not needle or len(needle) > len(document):
            return None

        alignment = fuzz.partial_ratio_alignment(
            _fold_case(needle), _fold_case(document), score_cutoff=self.min_score
        )
        if alignment is None or alignment.dest_end <= alignment.dest_start:
            return None
        return EvidencePosition(start=alignment.dest_start, end=alignment.dest_end)


class EvidenceLocator:
    """Exact in-chunk search with a swappable fuzzy fallback."""

    def __init__(self, strategy: Optional[FuzzyStrategy] = None) -> None:
        self.strategy: FuzzyStrategy = strategy or RegexAnchorStrategy()

    def locate(
        self, evidence: str, chunk: Chunk, document_content: str
    ) -> Optional[EvidencePosition]:
        """Return the document-absolute span of ``evidence`` or None when unverified."""
        if not evidence or not evidence.strip():
            return None

        index = chunk.text.find(evidence)
        if index != -1:
            start = chunk.start_offset + index
            return EvidencePosition(start=start, end=start + len(evidence))

        position = self.strategy.find(document_content, evidence)
        if position is None:
            logger.debug(
                "Evidence not located (chunk {}): {!r}", chunk.index, _preview(evidence)
            )
        return position


_default_locator = EvidenceLocator()


def map_evidence_to_document(
    evidence: str, chunk: Chunk, document_content: str
) -> Optional[EvidencePosition]:
    """Locate ``evidence`` (quoted from ``chunk``) in ``document_content``.

    Exact substring search inside the chunk first; otherwise a case-insensitive
    anchor-word regex over the whole document. Returns None when neither matches.
    """
    return _default_locator.locate(evidence, chunk, document_content)


def build_locator(strategy: str = "regex", **options: float) -> EvidenceLocator:
    """Create a locator from a config strategy name (``regex`` or ``rapidfuzz``)."""
    if strategy == "regex":
        return EvidenceLocator(
            RegexAnchorStrategy(
                max_words=int(options.get("max_words", MAX_ANCHOR_WORDS)),
                min_word_length=int(options.get("min_word_length", MIN_ANCHOR_WORD_LENGTH)),
            )
        )
    if strategy == "rapidfuzz":
        return EvidenceLocator(RapidFuzzAlignmentStrategy(float(options.get("min_score", 85.0))))
    raise ValueError(f"Unknown evidence strategy: {strategy}")


def _fold_case(text: str) -> str:
    # Per-character lowering that keeps offsets stable (skips chars that expand).
    return "".join(ch if len(ch.lower()) != 1 else ch.lower() for ch in text)


def _preview(text: str, limit: int = 60) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
