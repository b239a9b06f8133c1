"""Shared data models for extraction modules.

Field names are snake_case in Python; the camelCase aliases are the wire shape the
LLM emits and the cache stores (``entityName``, ``evidencePosition`` ...).
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EntityType(str, Enum):
    """Closed vocabulary of canon entity types."""

    CHARACTER = "character"
    LOCATION = "location"
    ITEM = "item"
    CONCEPT = "concept"
    EVENT = "event"


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, alias_generator=to_camel)


class EvidencePosition(_WireModel):
    """Document-absolute ``[start, end)`` span of an evidence quote."""

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    def slice(self, document: str) -> str:
        return document[self.start : self.end]


class TemporalBound(_WireModel):
    """When a fact holds, as stated in the text."""

    type: Literal["point", "range", "relative"]
    value: str


class ExtractedEntity(_WireModel):
    """Structured representation of an extracted entity."""

    name: str
    type: EntityType
    description: Optional[str] = None
    aliases: Optional[List[str]] = None


class ExtractedFact(_WireModel):
    """Subject/predicate/object claim about an entity, with its supporting quote."""

    entity_name: str
    subject: str
    predicate: str
    object: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    evidence: str = ""
    temporal_bound: Optional[TemporalBound] = None
    evidence_position: Optional[EvidencePosition] = None


class ExtractedRelationship(_WireModel):
    """Directed relationship between two named entities."""

    source_entity: str
    target_entity: str
    relationship_type: str
    evidence: str = ""
    evidence_position: Optional[EvidencePosition] = None


class ExtractionResult(_WireModel):
    """Normalized (and, once adjusted, document-positioned) extraction output."""

    entities: List[ExtractedEntity] = Field(default_factory=list)
    facts: List[ExtractedFact] = Field(default_factory=list)
    relationships: List[ExtractedRelationship] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape (used for caching and output)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def located_evidence_count(self) -> int:
        return sum(1 for item in [*self.facts, *self.relationships] if item.evidence_position)

    @property
    def evidence_count(self) -> int:
        return len(self.facts) + len(self.relationships)
