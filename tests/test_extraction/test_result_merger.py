from __future__ import annotations

from realmsync.extraction.models import (
    EntityType,
    ExtractedEntity,
    ExtractedFact,
    ExtractedRelationship,
    ExtractionResult,
)
from realmsync.extraction.result_merger import merge_extraction_results


def _fact(entity: str, predicate: str, obj: str) -> ExtractedFact:
    return ExtractedFact(entity_name=entity, subject=entity, predicate=predicate, object=obj)


def test_aliases_are_unioned_and_first_description_wins() -> None:
    first = ExtractionResult(
        entities=[
            ExtractedEntity(
                name="Aldric", type=EntityType.CHARACTER, description="A knight", aliases=["Commander"]
            )
        ]
    )
    second = ExtractionResult(
        entities=[
            ExtractedEntity(
                name="aldric",
                type=EntityType.CONCEPT,
                description="A traitor",
                aliases=["The Knight", "Commander"],
            )
        ]
    )

    merged = merge_extraction_results([first, second])

    assert len(merged.entities) == 1
    entity = merged.entities[0]
    assert entity.name == "Aldric"
    assert entity.type is EntityType.CHARACTER
    assert entity.description == "A knight"
    assert entity.aliases == ["Commander", "The Knight"]


def test_missing_description_is_filled_by_later_chunk() -> None:
    merged = merge_extraction_results(
        [
            ExtractionResult(entities=[ExtractedEntity(name="Vael", type=EntityType.LOCATION)]),
            ExtractionResult(
                entities=[ExtractedEntity(name="VAEL", type=EntityType.LOCATION, description="A tower")]
            ),
        ]
    )

    assert merged.entities[0].description == "A tower"
    assert merged.entities[0].aliases is None


def test_facts_and_relationships_are_concatenated_in_order() -> None:
    rel = ExtractedRelationship(source_entity="Aldric", target_entity="Mirel", relationship_type="serves")
    first = ExtractionResult(facts=[_fact("Aldric", "is", "a knight")], relationships=[rel])
    second = ExtractionResult(
        facts=[_fact("Aldric", "is", "a knight"), _fact("Mirel", "rules", "Greyharbor")],
        relationships=[rel],
    )

    merged = merge_extraction_results([first, second])

    assert [(f.entity_name, f.object) for f in merged.facts] == [
        ("Aldric", "a knight"),
        ("Aldric", "a knight"),
        ("Mirel", "Greyharbor"),
    ]
    assert len(merged.relationships) == 2


def test_entity_order_follows_first_appearance() -> None:
    merged = merge_extraction_results(
        [
            ExtractionResult(entities=[ExtractedEntity(name="B", type=EntityType.ITEM)]),
            ExtractionResult(
                entities=[
                    ExtractedEntity(name="A", type=EntityType.ITEM),
                    ExtractedEntity(name="b", type=EntityType.ITEM),
                ]
            ),
        ]
    )

    assert [e.name for e in merged.entities] == ["B", "A"]


def test_merge_of_nothing_is_empty() -> None:
    assert merge_extraction_results([]) == ExtractionResult()
