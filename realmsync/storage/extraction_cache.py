"""Content-addressed cache for LLM extraction responses.

Entries are keyed by ``(input_hash, prompt_version)`` where ``input_hash`` is the
SHA-256 of the exact text sent to the model. Writes are whole-entry upserts (last
writer wins) and entries expire after a TTL; ``purge_expired`` is the sweep that
deletes them. The cache only saves LLM spend; it is never the source of truth.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict

DEFAULT_TTL_DAYS = 7.0
_MS_PER_DAY = 24 * 60 * 60 * 1000


def compute_hash(content: str) -> str:
    """SHA-256 hex digest of ``content`` (UTF-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _now_ms() -> int:
    return int(time.time() * 1000)


class CacheEntry(BaseModel):
    """One cached LLM response; replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    input_hash: str
    prompt_version: str
    model_id: str
    response: str
    created_at: int
    expires_at: int

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at < now_ms

    def decoded(self) -> Any:
        return json.loads(self.response)


class ExtractionCache(Protocol):
    """Cache collaborator used by the extraction pipeline and continuity checks."""

    async def check_cache(self, input_hash: str, prompt_version: str) -> Optional[Any]: ...

    async def save_to_cache(
        self, input_hash: str, prompt_version: str, model_id: str, response: Any
    ) -> CacheEntry: ...

    async def invalidate_cache(
        self, prompt_version: str, input_hash: Optional[str] = None
    ) -> int: ...

    async def purge_expired(self) -> int: ...


class InMemoryExtractionCache:
    """Process-local cache backed by a dict.

    Args:
        ttl_days: Lifetime of new entries
        clock: Returns the current time in epoch milliseconds (injectable for tests)
    """

    def __init__(
        self, ttl_days: float = DEFAULT_TTL_DAYS, clock: Callable[[], int] | None = None
    ) -> None:
        self.ttl_ms = int(ttl_days * _MS_PER_DAY)
        self._clock = clock or _now_ms
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get_entry(self, input_hash: str, prompt_version: str) -> Optional[CacheEntry]:
        """Raw entry lookup (expired entries included)."""
        return self._entries.get((input_hash, prompt_version))

    async def check_cache(self, input_hash: str, prompt_version: str) -> Optional[Any]:
        entry = self._entries.get((input_hash, prompt_version))
        if entry is None or entry.is_expired(self._clock()):
            return None
        logger.debug("Cache hit: {}... ({})", input_hash[:12], prompt_version)
        return entry.decoded()

    async def save_to_cache(
        self, input_hash: str, prompt_version: str, model_id: str, response: Any
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            input_hash=input_hash,
            prompt_version=prompt_version,
            model_id=model_id,
            response=json.dumps(response),
            created_at=now,
            expires_at=now + self.ttl_ms,
        )
        self._entries[(input_hash, prompt_version)] = entry
        await self._persist()
        return entry

    async def invalidate_cache(self, prompt_version: str, input_hash: Optional[str] = None) -> int:
        """Drop one entry, or every entry of ``prompt_version`` when no hash is given."""
        keys = [
            key
            for key in self._entries
            if key[1] == prompt_version and (input_hash is None or key[0] == input_hash)
        ]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info("Invalidated {} cache entries for {}", len(keys), prompt_version)
            await self._persist()
        return len(keys)

    async def purge_expired(self) -> int:
        """Delete every entry past its expiry; returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Purged {} expired cache entries", len(expired))
            await self._persist()
        return len(expired)

    async def _persist(self) -> None:
        return None


class JsonFileExtractionCache(InMemoryExtractionCache):
    """Dict cache mirrored to a JSON file so cached chunks survive restarts."""

    def __init__(
        self,
        path: str | Path,
        ttl_days: float = DEFAULT_TTL_DAYS,
        clock: Callable[[], int] | None = None,
    ) -> None:
        super().__init__(ttl_days=ttl_days, clock=clock)
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        if not isinstance(data, list):
            raise ValueError(f"Cache file root must be a list: {self.path}")
        for item in data:
            entry = CacheEntry.model_validate(item)
            self._entries[(entry.input_hash, entry.prompt_version)] = entry
        logger.info("Loaded {} cache entries from {}", len(self._entries), self.path)

    async def _persist(self) -> None:
        payload = [entry.model_dump() for entry in self._entries.values()]
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        tmp_path.replace(self.path)
