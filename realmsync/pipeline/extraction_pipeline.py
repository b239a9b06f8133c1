"""Document extraction pipeline.

This module orchestrates canon extraction for one document:
1. Whole-document cache lookup (repeat requests skip everything)
2. Chunking of oversized documents into overlapping windows
3. Per-chunk cache check -> LLM call -> cache write (chunk-relative result)
4. Evidence remapping to document-absolute offsets
5. Ordered merge of per-chunk results, cached under the document hash

Chunks run sequentially in index order. A failing chunk aborts the document, but
every chunk finished before it stays cached, so a retry only pays for the rest.
"""

from __future__ import annotations

import time
from typing import List, Optional, Protocol

from loguru import logger

from realmsync.errors import NotFoundError
from realmsync.extraction.evidence_locator import EvidenceLocator, build_locator
from realmsync.extraction.models import ExtractionResult
from realmsync.extraction.result_merger import merge_extraction_results
from realmsync.extraction.type_normalizer import normalize_extraction_result
from realmsync.ingestion.chunker import Chunk, DocumentChunker
from realmsync.storage.canon_store import ExtractionSink, PersistSummary
from realmsync.storage.documents import DocumentStore, ProcessingStatus
from realmsync.storage.extraction_cache import ExtractionCache, compute_hash
from realmsync.utils.config import Config


class CanonExtractor(Protocol):
    """The LLM call, as seen by the pipeline."""

    @property
    def model_id(self) -> str: ...

    def ensure_configured(self) -> None: ...

    async def extract(self, text: str) -> ExtractionResult: ...


def adjust_evidence_positions(
    result: ExtractionResult,
    chunk: Chunk,
    document_content: str,
    locator: Optional[EvidenceLocator] = None,
) -> ExtractionResult:
    """Attach document-absolute ``evidence_position`` to every fact and relationship.

    Evidence that can't be located gets ``None`` and is kept (unverified), never dropped.
    """
    locator = locator or EvidenceLocator()
    facts = [
        fact.model_copy(
            update={"evidence_position": locator.locate(fact.evidence, chunk, document_content)}
        )
        for fact in result.facts
    ]
    relationships = [
        rel.model_copy(
            update={"evidence_position": locator.locate(rel.evidence, chunk, document_content)}
        )
        for rel in result.relationships
    ]
    return ExtractionResult(entities=list(result.entities), facts=facts, relationships=relationships)


class ExtractionPipeline:
    """Chunk, extract, remap and merge canon for a document.

    Example:
        >>> pipeline = ExtractionPipeline(documents, cache, LLMExtractor(config.llm), config=config)
        >>> result = await pipeline.extract_from_document(document_id)
        >>> print(f"{len(result.entities)} entities, {len(result.facts)} facts")
    """

    def __init__(
        self,
        documents: DocumentStore,
        cache: ExtractionCache,
        extractor: CanonExtractor,
        *,
        config: Optional[Config] = None,
        sink: Optional[ExtractionSink] = None,
        locator: Optional[EvidenceLocator] = None,
    ) -> None:
        self.config = config or Config()
        self.documents = documents
        self.cache = cache
        self.extractor = extractor
        self.sink = sink
        self.chunker = DocumentChunker(self.config.chunking)
        self.prompt_version = self.config.extraction.prompt_version

        extraction = self.config.extraction
        self.locator = locator or build_locator(
            extraction.evidence_strategy,
            max_words=extraction.max_anchor_words,
            min_word_length=extraction.min_anchor_word_length,
            min_score=extraction.fuzzy_min_score,
        )

    async def extract_from_document(
        self,
        document_id: str,
        *,
        max_chars: Optional[int] = None,
        overlap_chars: Optional[int] = None,
    ) -> ExtractionResult:
        """Extract canon from a stored document.

        Args:
            document_id: Document to process
            max_chars: Per-request override of the chunk size
            overlap_chars: Per-request override of the chunk overlap

        Returns:
            Merged result with document-absolute evidence positions

        Raises:
            NotFoundError: Document missing or empty
            ConfigurationError: LLM key/model not configured
            ApiError: LLM request failed
            ValidationError: LLM returned unparseable JSON
        """
        document = await self.documents.get_document(document_id)
        if document is None or not document.content:
            raise NotFoundError("document", document_id, "Document not found or empty")

        content = document.content
        content_hash = compute_hash(content)

        cached = await self.cache.check_cache(content_hash, self.prompt_version)
        if cached is not None:
            logger.info("Document {} served from cache", document_id)
            return normalize_extraction_result(cached)

        self.extractor.ensure_configured()
        start_time = time.time()

        if self.chunker.needs_chunking(content, max_chars):
            chunks = self.chunker.chunk(content, max_chars=max_chars, overlap_chars=overlap_chars)
            logger.info("Extracting document {} in {} chunks", document_id, len(chunks))
            chunk_results: List[ExtractionResult] = []
            for chunk in chunks:
                chunk_result = await self._extract_chunk(chunk, len(chunks))
                chunk_results.append(
                    adjust_evidence_positions(chunk_result, chunk, content, self.locator)
                )
            result = merge_extraction_results(chunk_results)
        else:
            logger.info("Extracting document {} in a single call", document_id)
            raw_result = await self.extractor.extract(content)
            result = adjust_evidence_positions(raw_result, Chunk.whole(content), content, self.locator)

        await self.cache.save_to_cache(
            content_hash, self.prompt_version, self.extractor.model_id, result.to_wire()
        )

        unverified = result.evidence_count - result.located_evidence_count
        if unverified:
            logger.warning(
                "Document {}: {} of {} evidence quotes could not be located",
                document_id,
                unverified,
                result.evidence_count,
            )
        logger.success(
            "Extracted document {}: {} entities, {} facts, {} relationships in {:.1f}s",
            document_id,
            len(result.entities),
            len(result.facts),
            len(result.relationships),
            time.time() - start_time,
        )
        return result

    async def _extract_chunk(self, chunk: Chunk, total: int) -> ExtractionResult:
        """Chunk-relative result, from cache or a fresh LLM call (then cached)."""
        chunk_hash = compute_hash(chunk.text)
        cached = await self.cache.check_cache(chunk_hash, self.prompt_version)
        if cached is not None:
            logger.debug("Chunk {}/{} served from cache", chunk.index + 1, total)
            return normalize_extraction_result(cached)

        logger.info(
            "Chunk {}/{}: extracting [{}, {})",
            chunk.index + 1,
            total,
            chunk.start_offset,
            chunk.end_offset,
        )
        chunk_result = await self.extractor.extract(chunk.text)
        await self.cache.save_to_cache(
            chunk_hash, self.prompt_version, self.extractor.model_id, chunk_result.to_wire()
        )
        return chunk_result

    async def chunk_and_extract(self, document_id: str) -> PersistSummary:
        """Extract and persist a document, tracking its processing status.

        The document is marked ``processing`` up front and ``failed`` if anything
        raises; the error is re-raised for the caller.
        """
        if self.sink is None:
            raise RuntimeError("ExtractionPipeline has no persistence sink configured")

        await self.documents.update_processing_status(document_id, ProcessingStatus.PROCESSING)
        try:
            result = await self.extract_from_document(document_id)
            return await self.sink.process_extraction_result(document_id, result)
        except Exception as exc:
            logger.error("Extraction failed for document {}: {}", document_id, exc)
            await self.documents.update_processing_status(document_id, ProcessingStatus.FAILED)
            raise
