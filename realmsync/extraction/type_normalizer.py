"""Defensive reshaping of raw LLM output into :class:`ExtractionResult`.

The model is asked for a strict JSON schema but does not always honour it: entities
and facts sometimes arrive as ``{name: {...}}`` maps instead of arrays, evidence as a
list of quotes, entity types outside the vocabulary. Everything here degrades
gracefully. Fields that can't be interpreted are dropped or defaulted; nothing raises.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from loguru import logger

from realmsync.extraction.models import (
    EntityType,
    EvidencePosition,
    ExtractedEntity,
    ExtractedFact,
    ExtractedRelationship,
    ExtractionResult,
    TemporalBound,
)

DEFAULT_FACT_CONFIDENCE = 0.8

VALID_ENTITY_TYPES = frozenset(t.value for t in EntityType)

# Labels models commonly emit instead of the closed vocabulary.
ENTITY_TYPE_ALIASES: Dict[str, EntityType] = {
    "group": EntityType.CONCEPT,
    "organization": EntityType.CONCEPT,
    "faction": EntityType.CONCEPT,
    "creature": EntityType.CHARACTER,
    "animal": EntityType.CHARACTER,
    "person": EntityType.CHARACTER,
    "place": EntityType.LOCATION,
    "area": EntityType.LOCATION,
    "region": EntityType.LOCATION,
    "object": EntityType.ITEM,
    "artifact": EntityType.ITEM,
    "weapon": EntityType.ITEM,
    "tool": EntityType.ITEM,
    "idea": EntityType.CONCEPT,
    "theme": EntityType.CONCEPT,
    "occurrence": EntityType.EVENT,
    "incident": EntityType.EVENT,
}

_TEMPORAL_TYPES = {"point", "range", "relative"}


def normalize_entity_type(raw_type: Any) -> EntityType:
    """Map any type label onto the closed vocabulary (unknown labels become ``concept``)."""
    label = str(raw_type if raw_type is not None else "").strip().lower()
    if label in VALID_ENTITY_TYPES:
        return EntityType(label)
    return ENTITY_TYPE_ALIASES.get(label, EntityType.CONCEPT)


def normalize_extraction_result(raw: Any) -> ExtractionResult:
    """Tolerantly convert an untrusted payload into an :class:`ExtractionResult`."""
    if not isinstance(raw, Mapping):
        logger.debug("Extraction payload is not an object; returning empty result")
        return ExtractionResult()

    entities = _normalize_entities(raw.get("entities"))
    facts = _normalize_facts(raw.get("facts"))
    relationships = _normalize_relationships(raw.get("relationships"))

    return ExtractionResult(entities=entities, facts=facts, relationships=relationships)


def _normalize_entities(value: Any) -> List[ExtractedEntity]:
    if isinstance(value, list):
        items = [(None, item) for item in value]
    elif isinstance(value, Mapping):
        # Object-keyed form: {"Aldric": {"type": "character", ...}}
        items = list(value.items())
    else:
        return []

    entities: List[ExtractedEntity] = []
    for key, item in items:
        if not isinstance(item, Mapping):
            continue
        name = _as_text(item.get("name")) if key is None else _as_text(key)
        if not name:
            continue
        entities.append(
            ExtractedEntity(
                name=name,
                type=normalize_entity_type(item.get("type")),
                description=_as_text(item.get("description")),
                aliases=_as_aliases(item.get("aliases")),
            )
        )
    return entities


def _normalize_facts(value: Any) -> List[ExtractedFact]:
    if isinstance(value, list):
        raw_facts: Iterable[Any] = value
    elif isinstance(value, Mapping):
        raw_facts = []
        for key, item in value.items():
            if not isinstance(item, Mapping):
                continue
            entry = dict(item)
            if entry.get("entityName") is None:
                entry["entityName"] = key
            if entry.get("subject") is None:
                entry["subject"] = key
            raw_facts.append(entry)
    else:
        return []

    facts: List[ExtractedFact] = []
    for item in raw_facts:
        if not isinstance(item, Mapping):
            continue
        facts.append(
            ExtractedFact(
                entity_name=_as_text(item.get("entityName")) or "",
                subject=_as_text(item.get("subject")) or "",
                predicate=_as_text(item.get("predicate")) or "",
                object=_as_text(item.get("object")) or "",
                confidence=_as_confidence(item.get("confidence")),
                evidence=_as_evidence(item.get("evidence")),
                temporal_bound=_as_temporal_bound(item.get("temporalBound")),
                evidence_position=_as_position(item.get("evidencePosition")),
            )
        )
    return facts


def _normalize_relationships(value: Any) -> List[ExtractedRelationship]:
    if not isinstance(value, list):
        return []

    relationships: List[ExtractedRelationship] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        relationships.append(
            ExtractedRelationship(
                source_entity=_as_text(item.get("sourceEntity")) or "",
                target_entity=_as_text(item.get("targetEntity")) or "",
                relationship_type=_as_text(item.get("relationshipType")) or "",
                evidence=_as_evidence(item.get("evidence")),
                evidence_position=_as_position(item.get("evidencePosition")),
            )
        )
    return relationships


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_aliases(value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        return [value] if value.strip() else None
    if not isinstance(value, list):
        return None
    aliases = [alias for alias in value if isinstance(alias, str) and alias.strip()]
    return aliases or None


def _as_evidence(value: Any) -> str:
    if isinstance(value, list):
        # Multi-quote evidence: join into one passage.
        return " ".join(str(part) for part in value if isinstance(part, (str, int, float)))
    return _as_text(value) or ""


def _as_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_FACT_CONFIDENCE
    if value != value:  # NaN
        return DEFAULT_FACT_CONFIDENCE
    try:
        return max(0.0, min(float(value), 1.0))
    except OverflowError:
        return DEFAULT_FACT_CONFIDENCE


def _as_temporal_bound(value: Any) -> Optional[TemporalBound]:
    if not isinstance(value, Mapping):
        return None
    bound_type = value.get("type")
    bound_value = _as_text(value.get("value"))
    if not isinstance(bound_type, str) or bound_type not in _TEMPORAL_TYPES or not bound_value:
        return None
    return TemporalBound(type=bound_type, value=bound_value)


def _as_position(value: Any) -> Optional[EvidencePosition]:
    if not isinstance(value, Mapping):
        return None
    start, end = value.get("start"), value.get("end")
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (start, end)):
        return None
    if start < 0 or end < start:
        return None
    return EvidencePosition(start=start, end=end)
