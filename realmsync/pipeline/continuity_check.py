"""Continuity check of a new document against confirmed canon.

The confirmed canon of the document's project is rendered into a text context and
sent, together with the document, to the LLM, which reports contradictions,
timeline problems and ambiguities. Responses are cached under a hash of the exact
prompt input (prompt version, canon context and document), so an unchanged canon
plus an unchanged document never costs a second call.
"""

from __future__ import annotations

import math
from typing import Any, List, Literal, Mapping, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from realmsync.errors import NotFoundError
from realmsync.storage.canon_store import CanonEntity, CanonSource
from realmsync.storage.documents import DocumentStore
from realmsync.storage.extraction_cache import ExtractionCache, compute_hash
from realmsync.utils.config import Config

AlertType = Literal["contradiction", "timeline", "ambiguity"]
Severity = Literal["error", "warning"]


class AlertEvidence(BaseModel):
    source: Literal["canon", "new_document"] = "new_document"
    quote: str = ""
    entity_name: Optional[str] = None


class CheckAlert(BaseModel):
    type: AlertType = "ambiguity"
    severity: Severity = "warning"
    title: str = "Unknown Issue"
    description: str = ""
    evidence: List[AlertEvidence] = Field(default_factory=list)
    suggested_fix: Optional[str] = None
    affected_entities: Optional[List[str]] = None


class CheckSummary(BaseModel):
    total_issues: int = 0
    errors: int = 0
    warnings: int = 0
    checked_entities: List[str] = Field(default_factory=list)


class CheckResult(BaseModel):
    alerts: List[CheckAlert] = Field(default_factory=list)
    summary: CheckSummary = Field(default_factory=CheckSummary)


class ContinuityModel(Protocol):
    @property
    def model_id(self) -> str: ...

    def ensure_configured(self) -> None: ...

    async def check(self, canon_context: str, document_content: str) -> Any: ...


def format_canon_context(entities: List[CanonEntity]) -> str:
    """Render confirmed canon as the markdown-ish block the check prompt expects."""
    context = ""
    for entity in entities:
        if not entity.facts:
            continue
        context += f"\n## Entity: {entity.name}\n"
        context += f"Type: {entity.type}\n"
        context += "Facts:\n"
        for fact in entity.facts:
            context += f"- {fact.predicate} {fact.object} [{fact.document_title}]\n"
    return context


def normalize_check_result(raw: Any) -> CheckResult:
    """Tolerant conversion of a check payload; never raises."""
    if not isinstance(raw, Mapping):
        return CheckResult()

    raw_alerts = raw.get("alerts")
    alerts: List[CheckAlert] = []
    for item in raw_alerts if isinstance(raw_alerts, list) else []:
        if not isinstance(item, Mapping):
            continue
        evidence = [
            AlertEvidence(
                source=ev.get("source") if ev.get("source") in ("canon", "new_document") else "new_document",
                quote=ev.get("quote") if isinstance(ev.get("quote"), str) else "",
                entity_name=ev.get("entityName") if isinstance(ev.get("entityName"), str) else None,
            )
            for ev in (item.get("evidence") if isinstance(item.get("evidence"), list) else [])
            if isinstance(ev, Mapping)
        ]
        affected = item.get("affectedEntities")
        alerts.append(
            CheckAlert(
                type=item.get("type")
                if item.get("type") in ("contradiction", "timeline", "ambiguity")
                else "ambiguity",
                severity=item.get("severity") if item.get("severity") in ("error", "warning") else "warning",
                title=item.get("title") if isinstance(item.get("title"), str) else "Unknown Issue",
                description=item.get("description") if isinstance(item.get("description"), str) else "",
                evidence=evidence,
                suggested_fix=item.get("suggestedFix") if isinstance(item.get("suggestedFix"), str) else None,
                affected_entities=[a for a in affected if isinstance(a, str)]
                if isinstance(affected, list)
                else None,
            )
        )

    summary = raw.get("summary") if isinstance(raw.get("summary"), Mapping) else {}
    checked = summary.get("checkedEntities")
    return CheckResult(
        alerts=alerts,
        summary=CheckSummary(
            total_issues=_count(summary.get("totalIssues"), len(alerts)),
            errors=_count(summary.get("errors"), sum(1 for a in alerts if a.severity == "error")),
            warnings=_count(
                summary.get("warnings"), sum(1 for a in alerts if a.severity == "warning")
            ),
            checked_entities=[c for c in checked if isinstance(c, str)] if isinstance(checked, list) else [],
        ),
    )


def _count(value: Any, fallback: int) -> int:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return int(value)
    return fallback


def _check_wire(result: CheckResult) -> dict[str, Any]:
    return {
        "alerts": [
            {
                "type": alert.type,
                "severity": alert.severity,
                "title": alert.title,
                "description": alert.description,
                "evidence": [
                    {"source": ev.source, "quote": ev.quote, "entityName": ev.entity_name}
                    for ev in alert.evidence
                ],
                "suggestedFix": alert.suggested_fix,
                "affectedEntities": alert.affected_entities,
            }
            for alert in result.alerts
        ],
        "summary": {
            "totalIssues": result.summary.total_issues,
            "errors": result.summary.errors,
            "warnings": result.summary.warnings,
            "checkedEntities": result.summary.checked_entities,
        },
    }


class ContinuityChecker:
    """Compare a document against its project's confirmed canon."""

    def __init__(
        self,
        documents: DocumentStore,
        canon: CanonSource,
        cache: ExtractionCache,
        extractor: ContinuityModel,
        *,
        config: Optional[Config] = None,
    ) -> None:
        self.config = config or Config()
        self.documents = documents
        self.canon = canon
        self.cache = cache
        self.extractor = extractor
        self.prompt_version = self.config.extraction.check_prompt_version

    def input_hash(self, canon_context: str, document_content: str) -> str:
        """Cache key for one check: hash of version, canon context and document."""
        return compute_hash(f"{self.prompt_version}:{canon_context}:{document_content}")

    async def run_check(self, document_id: str) -> CheckResult:
        document = await self.documents.get_document(document_id)
        if document is None or not document.content:
            raise NotFoundError("document", document_id, "Document not found or empty")

        self.extractor.ensure_configured()

        canon_context = format_canon_context(await self.canon.confirmed_canon(document.project_id))
        if not canon_context.strip():
            logger.info("No confirmed canon for project {}; skipping check", document.project_id)
            return CheckResult()

        input_hash = self.input_hash(canon_context, document.content)
        cached = await self.cache.check_cache(input_hash, self.prompt_version)
        if cached is not None:
            logger.debug("Continuity check for {} served from cache", document_id)
            return normalize_check_result(cached)

        result = normalize_check_result(await self.extractor.check(canon_context, document.content))
        await self.cache.save_to_cache(
            input_hash, self.prompt_version, self.extractor.model_id, _check_wire(result)
        )

        logger.info(
            "Continuity check for {}: {} issues ({} errors, {} warnings)",
            document_id,
            result.summary.total_issues,
            result.summary.errors,
            result.summary.warnings,
        )
        return result
