"""Persistence sink for extraction results and source of confirmed canon.

Extraction output lands as *pending* records: entities are upserted by exact name
within the project, facts and relationships are inserted for review. Relationships
are stored as facts on their source entity (predicate = relationship type).
"""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from enum import Enum
from typing import Dict, List, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from realmsync.errors import NotFoundError
from realmsync.extraction.models import EntityType, EvidencePosition, ExtractionResult, TemporalBound
from realmsync.storage.documents import InMemoryDocumentStore, ProcessingStatus


class RecordStatus(str, Enum):
    """Review status of canon records."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class EntityRecord(BaseModel):
    """Stored canon entity."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    name: str
    type: EntityType
    description: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    first_mentioned_in: Optional[str] = None
    status: RecordStatus = RecordStatus.PENDING
    created_at: int = 0
    updated_at: int = 0


class FactRecord(BaseModel):
    """Stored canon fact (relationships included)."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    entity_id: str
    document_id: str
    subject: str
    predicate: str
    object: str
    confidence: float
    evidence_snippet: str
    evidence_position: Optional[EvidencePosition] = None
    temporal_bound: Optional[TemporalBound] = None
    status: RecordStatus = RecordStatus.PENDING
    created_at: int = 0


class ProjectStats(BaseModel):
    document_count: int = 0
    entity_count: int = 0
    fact_count: int = 0
    alert_count: int = 0


class PersistSummary(BaseModel):
    """What a persistence pass created."""

    entities_created: int = 0
    facts_created: int = 0
    had_existing_canon: bool = False


class CanonFact(BaseModel):
    id: str
    predicate: str
    object: str
    evidence: str
    document_title: str


class CanonEntity(BaseModel):
    """Confirmed entity with its confirmed facts (continuity-check input)."""

    id: str
    name: str
    type: str
    facts: List[CanonFact] = Field(default_factory=list)


class ExtractionSink(Protocol):
    async def process_extraction_result(
        self, document_id: str, result: ExtractionResult
    ) -> PersistSummary: ...


class CanonSource(Protocol):
    async def confirmed_canon(self, project_id: str) -> List[CanonEntity]: ...


class InMemoryCanonStore:
    """Dict-backed canon store implementing both :class:`ExtractionSink` and :class:`CanonSource`."""

    def __init__(self, documents: InMemoryDocumentStore) -> None:
        self.documents = documents
        self.entities: Dict[str, EntityRecord] = {}
        self.facts: Dict[str, FactRecord] = {}
        self.stats: Dict[str, ProjectStats] = defaultdict(ProjectStats)

    def find_entity(self, project_id: str, name: str) -> Optional[EntityRecord]:
        for entity in self.entities.values():
            if entity.project_id == project_id and entity.name == name:
                return entity
        return None

    def facts_for_entity(self, entity_id: str) -> List[FactRecord]:
        return [fact for fact in self.facts.values() if fact.entity_id == entity_id]

    async def process_extraction_result(
        self, document_id: str, result: ExtractionResult
    ) -> PersistSummary:
        """Persist ``result`` as pending canon and mark the document completed."""
        document = await self.documents.get_document(document_id)
        if document is None:
            raise NotFoundError("document", document_id)

        project_id = document.project_id
        now = int(time.time() * 1000)
        name_to_id: Dict[str, str] = {}
        summary = PersistSummary()

        for extracted in result.entities:
            existing = self.find_entity(project_id, extracted.name)
            if existing is not None:
                name_to_id[extracted.name] = existing.id
                continue
            record = EntityRecord(
                project_id=project_id,
                name=extracted.name,
                type=extracted.type,
                description=extracted.description,
                aliases=list(extracted.aliases or []),
                first_mentioned_in=document_id,
                created_at=now,
                updated_at=now,
            )
            self.entities[record.id] = record
            name_to_id[extracted.name] = record.id
            summary.entities_created += 1

        for fact in result.facts:
            entity_id = name_to_id.get(fact.entity_name)
            if entity_id is None:
                continue
            self._insert_fact(
                FactRecord(
                    project_id=project_id,
                    entity_id=entity_id,
                    document_id=document_id,
                    subject=fact.subject,
                    predicate=fact.predicate,
                    object=fact.object,
                    confidence=fact.confidence,
                    evidence_snippet=fact.evidence,
                    evidence_position=fact.evidence_position,
                    temporal_bound=fact.temporal_bound,
                    created_at=now,
                )
            )
            summary.facts_created += 1

        for relationship in result.relationships:
            entity_id = name_to_id.get(relationship.source_entity)
            if entity_id is None:
                continue
            self._insert_fact(
                FactRecord(
                    project_id=project_id,
                    entity_id=entity_id,
                    document_id=document_id,
                    subject=relationship.source_entity,
                    predicate=relationship.relationship_type,
                    object=relationship.target_entity,
                    confidence=1.0,
                    evidence_snippet=relationship.evidence,
                    evidence_position=relationship.evidence_position,
                    created_at=now,
                )
            )
            summary.facts_created += 1

        await self.documents.update_processing_status(document_id, ProcessingStatus.COMPLETED)

        stats = self.stats[project_id]
        summary.had_existing_canon = stats.entity_count > 0 or stats.fact_count > 0
        stats.entity_count += summary.entities_created
        stats.fact_count += summary.facts_created

        logger.info(
            "Persisted extraction for document {}: {} new entities, {} facts",
            document_id,
            summary.entities_created,
            summary.facts_created,
        )
        return summary

    def confirm_entity(self, entity_id: str) -> EntityRecord:
        return self._set_entity_status(entity_id, RecordStatus.CONFIRMED)

    def confirm_fact(self, fact_id: str) -> FactRecord:
        fact = self.facts.get(fact_id)
        if fact is None:
            raise NotFoundError("fact", fact_id)
        updated = fact.model_copy(update={"status": RecordStatus.CONFIRMED})
        self.facts[fact_id] = updated
        return updated

    async def confirmed_canon(self, project_id: str) -> List[CanonEntity]:
        canon: List[CanonEntity] = []
        for entity in self.entities.values():
            if entity.project_id != project_id or entity.status != RecordStatus.CONFIRMED:
                continue
            facts = []
            for fact in self.facts_for_entity(entity.id):
                if fact.status != RecordStatus.CONFIRMED:
                    continue
                source = await self.documents.get_document(fact.document_id)
                facts.append(
                    CanonFact(
                        id=fact.id,
                        predicate=fact.predicate,
                        object=fact.object,
                        evidence=fact.evidence_snippet,
                        document_title=source.title if source else "Unknown",
                    )
                )
            if facts:
                canon.append(
                    CanonEntity(id=entity.id, name=entity.name, type=entity.type.value, facts=facts)
                )
        return canon

    def _insert_fact(self, fact: FactRecord) -> None:
        self.facts[fact.id] = fact

    def _set_entity_status(self, entity_id: str, status: RecordStatus) -> EntityRecord:
        entity = self.entities.get(entity_id)
        if entity is None:
            raise NotFoundError("entity", entity_id)
        updated = entity.model_copy(update={"status": status})
        self.entities[entity_id] = updated
        return updated
