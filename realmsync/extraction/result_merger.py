"""Fold per-chunk extraction results into one document-level result.

Entities are matched on case-insensitive name only:
- the first occurrence keeps its name, type and description (a later chunk can only
  fill a description that is still missing)
- aliases from every chunk are unioned, de-duplicated, in first-seen order

Facts and relationships are concatenated in chunk order without de-duplication;
overlapping chunks may repeat a claim, and review handles redundancy rather than
risking the loss of a conflicting claim.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from loguru import logger

from realmsync.extraction.models import (
    ExtractedEntity,
    ExtractedFact,
    ExtractedRelationship,
    ExtractionResult,
)


class _EntityAccumulator:
    """Internal accumulator used during merging."""

    def __init__(self, entity: ExtractedEntity) -> None:
        self.entity = entity
        self.description = entity.description
        self.aliases: Dict[str, None] = dict.fromkeys(entity.aliases or [])

    def add(self, entity: ExtractedEntity) -> None:
        if self.description is None and entity.description is not None:
            self.description = entity.description
        for alias in entity.aliases or []:
            self.aliases.setdefault(alias)

    def to_entity(self) -> ExtractedEntity:
        return self.entity.model_copy(
            update={
                "description": self.description,
                "aliases": list(self.aliases) or None,
            }
        )


def merge_extraction_results(results: Iterable[ExtractionResult]) -> ExtractionResult:
    """Merge results in order; see module docstring for the rules."""
    accumulators: Dict[str, _EntityAccumulator] = {}
    facts: List[ExtractedFact] = []
    relationships: List[ExtractedRelationship] = []
    total_entities = 0

    for result in results:
        for entity in result.entities:
            total_entities += 1
            key = entity.name.lower()
            acc = accumulators.get(key)
            if acc is None:
                accumulators[key] = _EntityAccumulator(entity)
            else:
                acc.add(entity)

        facts.extend(result.facts)
        relationships.extend(result.relationships)

    merged = ExtractionResult(
        entities=[acc.to_entity() for acc in accumulators.values()],
        facts=facts,
        relationships=relationships,
    )
    logger.debug(
        "Merged entities: {} -> {} ({} facts, {} relationships)",
        total_entities,
        len(merged.entities),
        len(facts),
        len(relationships),
    )
    return merged
