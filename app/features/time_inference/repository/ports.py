"""
Persistence ports for the time inference engine.

Every store is key-value shaped and holds JSON-serializable records, so any
backend (Redis, in-memory, a SQL table) can sit behind these protocols.
Implementations raise PersistenceError when a read or write fails.
"""

from datetime import datetime
from typing import Protocol

from app.features.time_inference.domain.models import CommittedEntry, PendingEntry, SourceKind


class CheckpointRepository(Protocol):
    async def load_checkpoint(self, kind: SourceKind) -> datetime | None: ...

    async def save_checkpoint(self, kind: SourceKind, checkpoint: datetime) -> None: ...


class PendingEntryRepository(Protocol):
    async def load_pending_entries(self) -> list[PendingEntry]: ...

    async def save_pending_entries(self, entries: list[PendingEntry]) -> None: ...


class CommittedEntryRepository(Protocol):
    async def persist_entry(self, entry: CommittedEntry) -> None: ...

    async def has_entry(self, source_id: str) -> bool: ...

    async def list_entries(self) -> list[CommittedEntry]: ...


class CorrectionProfileRepository(Protocol):
    async def load_correction_profile(self) -> dict[str, float]: ...

    async def save_correction_profile(self, profile: dict[str, float]) -> None: ...


class ActivityLedgerRepository(Protocol):
    """Terminal dispositions for activities that hold no entry (discarded, invalid)."""

    async def get_disposition(self, source_id: str) -> str | None: ...

    async def mark(self, source_id: str, disposition: str) -> None: ...


DISPOSITION_DISCARDED = "discarded"
DISPOSITION_INVALID = "invalid"
