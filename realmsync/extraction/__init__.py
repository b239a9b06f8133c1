"""Extraction package exports."""

from realmsync.extraction.evidence_locator import EvidenceLocator, map_evidence_to_document
from realmsync.extraction.llm_extractor import LLMExtractor
from realmsync.extraction.models import (
    EntityType,
    EvidencePosition,
    ExtractedEntity,
    ExtractedFact,
    ExtractedRelationship,
    ExtractionResult,
)
from realmsync.extraction.result_merger import merge_extraction_results
from realmsync.extraction.type_normalizer import normalize_extraction_result

__all__ = [
    "EntityType",
    "EvidencePosition",
    "ExtractedEntity",
    "ExtractedFact",
    "ExtractedRelationship",
    "ExtractionResult",
    "EvidenceLocator",
    "map_evidence_to_document",
    "LLMExtractor",
    "merge_extraction_results",
    "normalize_extraction_result",
]
