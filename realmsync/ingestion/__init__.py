"""Ingestion module: boundary-aware document chunking."""

from realmsync.ingestion.chunker import Chunk, DocumentChunker, chunk_document, needs_chunking

__all__ = ["Chunk", "DocumentChunker", "chunk_document", "needs_chunking"]
