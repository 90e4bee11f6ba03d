"""
In-process repositories.

Used when no Redis URL is configured and as deterministic fakes in tests.
Values are copied on the way in and out so callers never share mutable state
with the store.
"""

from datetime import datetime

from app.features.time_inference.domain.models import CommittedEntry, PendingEntry, SourceKind


class InMemoryCheckpointRepository:
    def __init__(self):
        self.checkpoints: dict[SourceKind, datetime] = {}

    async def load_checkpoint(self, kind: SourceKind) -> datetime | None:
        return self.checkpoints.get(kind)

    async def save_checkpoint(self, kind: SourceKind, checkpoint: datetime) -> None:
        self.checkpoints[kind] = checkpoint


class InMemoryPendingEntryRepository:
    def __init__(self):
        self.entries: list[PendingEntry] = []

    async def load_pending_entries(self) -> list[PendingEntry]:
        return list(self.entries)

    async def save_pending_entries(self, entries: list[PendingEntry]) -> None:
        self.entries = list(entries)


class InMemoryCommittedEntryRepository:
    def __init__(self):
        self.entries: dict[str, CommittedEntry] = {}

    async def persist_entry(self, entry: CommittedEntry) -> None:
        self.entries[entry.source_id] = entry

    async def has_entry(self, source_id: str) -> bool:
        return source_id in self.entries

    async def list_entries(self) -> list[CommittedEntry]:
        return sorted(self.entries.values(), key=lambda entry: entry.start_time)


class InMemoryCorrectionProfileRepository:
    def __init__(self, profile: dict[str, float] | None = None):
        self.profile: dict[str, float] = dict(profile or {})
        self.save_count = 0

    async def load_correction_profile(self) -> dict[str, float]:
        return dict(self.profile)

    async def save_correction_profile(self, profile: dict[str, float]) -> None:
        self.profile = dict(profile)
        self.save_count += 1


class InMemoryActivityLedgerRepository:
    def __init__(self):
        self.dispositions: dict[str, str] = {}

    async def get_disposition(self, source_id: str) -> str | None:
        return self.dispositions.get(source_id)

    async def mark(self, source_id: str, disposition: str) -> None:
        self.dispositions[source_id] = disposition
