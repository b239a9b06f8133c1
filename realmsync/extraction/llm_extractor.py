"""LLM-powered canon extraction over OpenRouter.

Prompts are rendered from YAML templates, requests use a strict JSON-schema response
format, and responses are fence-stripped, parsed, and handed to the type normalizer.
Failures map onto the pipeline error taxonomy and are never retried here:

- missing key/model -> :class:`ConfigurationError`
- non-2xx, transport failure, or empty content -> :class:`ApiError`
- unparseable JSON -> :class:`ValidationError`
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import openai
import yaml
from loguru import logger
from openai import AsyncOpenAI

from realmsync.errors import ApiError, ConfigurationError, ValidationError
from realmsync.extraction.models import ExtractionResult
from realmsync.extraction.type_normalizer import normalize_extraction_result
from realmsync.utils.config import LLMConfig
from realmsync.utils.llm_client import create_openrouter_client

_ENTITY_TYPES = ["character", "location", "item", "concept", "event"]

EXTRACTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "entities": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "type": {"enum": _ENTITY_TYPES},
                    "description": {"type": "string"},
                    "aliases": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["name", "type"],
                "additionalProperties": False,
            },
        },
        "facts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "entityName": {"type": "string"},
                    "subject": {"type": "string"},
                    "predicate": {"type": "string"},
                    "object": {"type": "string"},
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                    "evidence": {"type": "string"},
                    "temporalBound": {
                        "type": "object",
                        "properties": {
                            "type": {"enum": ["point", "range", "relative"]},
                            "value": {"type": "string"},
                        },
                    },
                },
                "required": ["entityName", "subject", "predicate", "object", "confidence", "evidence"],
                "additionalProperties": False,
            },
        },
        "relationships": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "sourceEntity": {"type": "string"},
                    "targetEntity": {"type": "string"},
                    "relationshipType": {"type": "string"},
                    "evidence": {"type": "string"},
                },
                "required": ["sourceEntity", "targetEntity", "relationshipType", "evidence"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["entities", "facts", "relationships"],
    "additionalProperties": False,
}

CHECK_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "alerts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"enum": ["contradiction", "timeline", "ambiguity"]},
                    "severity": {"enum": ["error", "warning"]},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "evidence": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "source": {"enum": ["canon", "new_document"]},
                                "quote": {"type": "string"},
                                "entityName": {"type": "string"},
                            },
                            "required": ["source", "quote"],
                            "additionalProperties": False,
                        },
                    },
                    "suggestedFix": {"type": "string"},
                    "affectedEntities": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["type", "severity", "title", "description", "evidence"],
                "additionalProperties": False,
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "totalIssues": {"type": "number"},
                "errors": {"type": "number"},
                "warnings": {"type": "number"},
                "checkedEntities": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
    },
    "required": ["alerts", "summary"],
    "additionalProperties": False,
}

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```/```json fence and the closing fence, if present."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))
    return text


def parse_llm_json(content: str) -> Any:
    """Parse model output as JSON after fence-stripping."""
    try:
        return json.loads(strip_code_fences(content))
    except json.JSONDecodeError as exc:
        raise ValidationError("json", f"Parse error: {exc}") from exc


class LLMExtractor:
    """Canon extractor with strict-schema requests and structured parsing."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        prompts_path: str | Path = "config/extraction_prompts.yaml",
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.config = config or LLMConfig()
        self.prompts_path = Path(prompts_path)
        self.prompts = self._load_prompts(self.prompts_path)
        self._client = client

        logger.info(
            "Initialized LLMExtractor",
            provider=self.config.provider,
            model=self.config.model or "<unset>",
            prompts=str(self.prompts_path),
        )

    @property
    def model_id(self) -> str:
        return self.config.model

    # -----------------------
    # Public API
    # -----------------------
    def ensure_configured(self) -> None:
        """Raise :class:`ConfigurationError` unless an API key and model are set."""
        if not self.config.api_key:
            raise ConfigurationError("OPENROUTER_API_KEY")
        if not self.config.model:
            raise ConfigurationError("MODEL")

    async def extract(self, text: str) -> ExtractionResult:
        """Extract entities, facts and relationships from ``text`` (one LLM call)."""
        system, user = self._render_prompt("canon_extraction", {"document_text": text})
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        content = await self._complete(messages, "canon_extraction", EXTRACTION_SCHEMA)
        return normalize_extraction_result(parse_llm_json(content))

    async def check(self, canon_context: str, document_content: str) -> Any:
        """Run the continuity-check prompt; returns the parsed (untrusted) payload."""
        _, user = self._render_prompt(
            "continuity_check",
            {"canon_context": canon_context, "document_content": document_content},
        )
        content = await self._complete(
            [{"role": "user", "content": user}], "continuity_check", CHECK_SCHEMA
        )
        return parse_llm_json(content)

    # -----------------------
    # Prompt handling
    # -----------------------
    def _load_prompts(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Extraction prompt template not found: {path}")
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Prompt template root must be a mapping/dict: {path}")
        return data

    def _render_prompt(self, key: str, context: Dict[str, Any]) -> Tuple[str, str]:
        if key not in self.prompts:
            raise KeyError(f"Prompt key not found in template: {key}")

        prompt = self.prompts.get(key) or {}
        system = str(prompt.get("system", "") or "").strip()
        user_template = str(prompt.get("user_template", "{document_text}"))

        try:
            user = user_template.format(**context)
        except KeyError as exc:
            missing = exc.args[0]
            raise KeyError(f"Missing placeholder '{missing}' in prompt context for '{key}'")
        return system, user

    # -----------------------
    # LLM invocation
    # -----------------------
    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = create_openrouter_client(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=self.config.max_retries,
                app_url=self.config.app_url,
                app_title=self.config.app_title,
            )
        return self._client

    async def _complete(
        self, messages: List[Dict[str, str]], schema_name: str, schema: Dict[str, Any]
    ) -> str:
        self.ensure_configured()
        client = self._get_client()

        completion_kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "strict": True, "schema": schema},
            },
        }
        if self.config.temperature is not None:
            completion_kwargs["temperature"] = self.config.temperature

        logger.debug(f"Calling LLM ({schema_name}) using {self.config.provider}: {self.config.model}")

        try:
            response = await client.chat.completions.create(**completion_kwargs)
        except openai.APIStatusError as exc:
            raise ApiError(
                exc.status_code, f"OpenRouter API error: {exc.message}"
            ) from exc
        except openai.APIError as exc:
            raise ApiError(503, f"OpenRouter request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if isinstance(content, list):
            parts = []
            for item in content:
                if isinstance(item, dict):
                    parts.append(str(item.get("text", "")))
                else:
                    parts.append(str(item))
            content = "\n".join(parts)
        if not content or not str(content).strip():
            raise ApiError(500, "Invalid response from OpenRouter API")
        return str(content)
