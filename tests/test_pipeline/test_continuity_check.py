from __future__ import annotations

import json
from typing import Any, List, Tuple

import pytest

from realmsync.errors import ConfigurationError, NotFoundError
from realmsync.extraction.models import (
    EntityType,
    ExtractedEntity,
    ExtractedFact,
    ExtractionResult,
)
from realmsync.pipeline.continuity_check import (
    ContinuityChecker,
    format_canon_context,
    normalize_check_result,
)
from realmsync.storage.canon_store import CanonEntity, CanonFact, InMemoryCanonStore
from realmsync.storage.documents import Document, InMemoryDocumentStore
from realmsync.storage.extraction_cache import InMemoryExtractionCache, compute_hash

_ALERT_PAYLOAD = {
    "alerts": [
        {
            "type": "contradiction",
            "severity": "error",
            "title": "Birthplace conflict",
            "description": "Aldric's birthplace differs",
            "evidence": [
                {"source": "canon", "quote": "born in Greyharbor", "entityName": "Aldric"},
                {"source": "new_document", "quote": "born in Vael"},
            ],
            "suggestedFix": "Pick one birthplace",
            "affectedEntities": ["Aldric"],
        }
    ],
    "summary": {"totalIssues": 1, "errors": 1, "warnings": 0, "checkedEntities": ["Aldric"]},
}


class _FakeChecker:
    model_id = "test/model"

    def __init__(self, payload: Any = None, configured: bool = True) -> None:
        self.payload = payload if payload is not None else _ALERT_PAYLOAD
        self.configured = configured
        self.calls: List[Tuple[str, str]] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("MODEL")

    async def check(self, canon_context: str, document_content: str) -> Any:
        self.calls.append((canon_context, document_content))
        return self.payload


async def _setup(confirm: bool = True):
    documents = InMemoryDocumentStore()
    canon = InMemoryCanonStore(documents)
    source = documents.add(Document(project_id="p1", title="Chapter 1", content="Aldric, born in Greyharbor."))
    await canon.process_extraction_result(
        source.id,
        ExtractionResult(
            entities=[ExtractedEntity(name="Aldric", type=EntityType.CHARACTER)],
            facts=[
                ExtractedFact(
                    entity_name="Aldric",
                    subject="Aldric",
                    predicate="was born in",
                    object="Greyharbor",
                    evidence="born in Greyharbor",
                )
            ],
        ),
    )
    if confirm:
        aldric = canon.find_entity("p1", "Aldric")
        canon.confirm_entity(aldric.id)
        canon.confirm_fact(canon.facts_for_entity(aldric.id)[0].id)
    new_doc = documents.add(Document(project_id="p1", title="Chapter 2", content="Aldric, born in Vael."))
    return documents, canon, new_doc


def test_format_canon_context() -> None:
    entities = [
        CanonEntity(
            id="e1",
            name="Aldric",
            type="character",
            facts=[
                CanonFact(id="f1", predicate="was born in", object="Greyharbor", evidence="", document_title="Ch 1"),
                CanonFact(id="f2", predicate="serves", object="Mirel", evidence="", document_title="Ch 3"),
            ],
        ),
        CanonEntity(id="e2", name="Empty", type="item", facts=[]),
    ]

    assert format_canon_context(entities) == (
        "\n## Entity: Aldric\nType: character\nFacts:\n"
        "- was born in Greyharbor [Ch 1]\n"
        "- serves Mirel [Ch 3]\n"
    )
    assert format_canon_context([]) == ""


def test_normalize_check_result_applies_defaults() -> None:
    result = normalize_check_result(
        {"alerts": [{"type": "plot-hole", "severity": "fatal", "evidence": [{"quote": "x"}]}, "junk"]}
    )

    alert = result.alerts[0]
    assert len(result.alerts) == 1
    assert alert.type == "ambiguity"
    assert alert.severity == "warning"
    assert alert.title == "Unknown Issue"
    assert alert.evidence[0].source == "new_document"
    assert result.summary.total_issues == 1
    assert result.summary.warnings == 1
    assert result.summary.errors == 0


@pytest.mark.parametrize("raw", [None, [], "text", {"alerts": "nope"}])
def test_normalize_check_result_never_raises(raw: Any) -> None:
    result = normalize_check_result(raw)

    assert result.alerts == []
    assert result.summary.total_issues == 0


def test_non_finite_summary_counts_fall_back_to_derived() -> None:
    raw = json.loads(
        '{"alerts": [{"severity": "error"}], '
        '"summary": {"totalIssues": NaN, "errors": Infinity, "warnings": -Infinity}}'
    )

    result = normalize_check_result(raw)

    assert result.summary.total_issues == 1
    assert result.summary.errors == 1
    assert result.summary.warnings == 0


@pytest.mark.asyncio
async def test_run_check_reports_alerts_and_caches() -> None:
    documents, canon, new_doc = await _setup()
    cache = InMemoryExtractionCache()
    checker_model = _FakeChecker()
    checker = ContinuityChecker(documents, canon, cache, checker_model)

    result = await checker.run_check(new_doc.id)

    assert checker_model.calls[0][0] == (
        "\n## Entity: Aldric\nType: character\nFacts:\n- was born in Greyharbor [Chapter 1]\n"
    )
    assert checker_model.calls[0][1] == "Aldric, born in Vael."
    assert result.alerts[0].type == "contradiction"
    assert result.alerts[0].evidence[0].entity_name == "Aldric"
    assert result.alerts[0].suggested_fix == "Pick one birthplace"
    assert result.summary.errors == 1

    key = compute_hash(f"check-v1:{checker_model.calls[0][0]}:{new_doc.content}")
    assert await cache.check_cache(key, "check-v1") is not None

    again = await checker.run_check(new_doc.id)
    assert len(checker_model.calls) == 1
    assert again == result


@pytest.mark.asyncio
async def test_empty_canon_skips_llm() -> None:
    documents, canon, new_doc = await _setup(confirm=False)
    checker_model = _FakeChecker()
    checker = ContinuityChecker(documents, canon, InMemoryExtractionCache(), checker_model)

    result = await checker.run_check(new_doc.id)

    assert result.alerts == []
    assert checker_model.calls == []


@pytest.mark.asyncio
async def test_missing_document_and_configuration_errors() -> None:
    documents, canon, new_doc = await _setup()
    cache = InMemoryExtractionCache()

    with pytest.raises(NotFoundError):
        await ContinuityChecker(documents, canon, cache, _FakeChecker()).run_check("missing")

    with pytest.raises(ConfigurationError):
        await ContinuityChecker(documents, canon, cache, _FakeChecker(configured=False)).run_check(new_doc.id)
