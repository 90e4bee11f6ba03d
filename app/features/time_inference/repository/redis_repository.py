"""
Redis-backed repositories.

Layout under ``<prefix>``:
    checkpoint:<source_kind>   ISO timestamp string
    pending                    JSON list of pending entries
    entries                    hash source_id -> committed entry JSON
    profile                    JSON object key -> multiplier
    ledger                     hash source_id -> disposition
"""

import json
from datetime import datetime

from pydantic import TypeAdapter, ValidationError

from app.features.time_inference.domain.models import CommittedEntry, PendingEntry, SourceKind
from app.features.time_inference.errors import PersistenceError
from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.redis_client import RedisClient, RedisClientError

logger = get_logger(__name__)

_PENDING_LIST = TypeAdapter(list[PendingEntry])


class _RedisRepository:
    def __init__(self, client: RedisClient, prefix: str = "timebeacon"):
        self.client = client
        self.prefix = prefix.rstrip(":")

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix, *parts))


class RedisCheckpointRepository(_RedisRepository):
    async def load_checkpoint(self, kind: SourceKind) -> datetime | None:
        try:
            raw = await self.client.get(self._key("checkpoint", kind.value))
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="load_checkpoint") from e
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring unreadable checkpoint", source_kind=kind.value, raw=raw[:40])
            return None

    async def save_checkpoint(self, kind: SourceKind, checkpoint: datetime) -> None:
        try:
            await self.client.set(self._key("checkpoint", kind.value), checkpoint.isoformat())
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="save_checkpoint") from e


class RedisPendingEntryRepository(_RedisRepository):
    async def load_pending_entries(self) -> list[PendingEntry]:
        try:
            raw = await self.client.get(self._key("pending"))
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="load_pending_entries") from e
        if not raw:
            return []
        try:
            return _PENDING_LIST.validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(
                f"Stored pending entries are unreadable: {e}", operation="load_pending_entries"
            ) from e

    async def save_pending_entries(self, entries: list[PendingEntry]) -> None:
        payload = _PENDING_LIST.dump_json(entries).decode("utf-8")
        try:
            await self.client.set(self._key("pending"), payload)
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="save_pending_entries") from e


class RedisCommittedEntryRepository(_RedisRepository):
    async def persist_entry(self, entry: CommittedEntry) -> None:
        try:
            await self.client.hset(self._key("entries"), entry.source_id, entry.model_dump_json())
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="persist_entry") from e

    async def has_entry(self, source_id: str) -> bool:
        try:
            return await self.client.hexists(self._key("entries"), source_id)
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="has_entry") from e

    async def list_entries(self) -> list[CommittedEntry]:
        try:
            values = await self.client.hvals(self._key("entries"))
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="list_entries") from e
        entries = [CommittedEntry.model_validate_json(value) for value in values]
        return sorted(entries, key=lambda entry: entry.start_time)


class RedisCorrectionProfileRepository(_RedisRepository):
    async def load_correction_profile(self) -> dict[str, float]:
        try:
            raw = await self.client.get(self._key("profile"))
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="load_correction_profile") from e
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                "Stored correction profile is not valid JSON", operation="load_correction_profile"
            ) from e
        return {str(key): float(value) for key, value in data.items()}

    async def save_correction_profile(self, profile: dict[str, float]) -> None:
        try:
            await self.client.set(self._key("profile"), json.dumps(profile, sort_keys=True))
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="save_correction_profile") from e


class RedisActivityLedgerRepository(_RedisRepository):
    async def get_disposition(self, source_id: str) -> str | None:
        try:
            return await self.client.hget(self._key("ledger"), source_id)
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="get_disposition") from e

    async def mark(self, source_id: str, disposition: str) -> None:
        try:
            await self.client.hset(self._key("ledger"), source_id, disposition)
        except RedisClientError as e:
            raise PersistenceError(str(e), operation="mark_disposition") from e
