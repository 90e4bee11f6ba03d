"""
Time inference API request/response models.
Used by the feature router for input validation and serialization.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.features.time_inference.domain.models import CommittedEntry, PendingEntry, SyncResult


class ApproveRequest(BaseModel):
    """Approve a pending entry, optionally with the duration the user confirmed."""

    confirmed_minutes: int | None = Field(
        default=None, description="Duration the user confirmed; omit to accept the estimate"
    )


class PolicyUpdateRequest(BaseModel):
    """Partial review policy update. Range checks happen in the engine."""

    auto_approve: bool | None = None
    confidence_threshold: float | None = None
    require_approval: bool | None = None


class SyncSettingsUpdateRequest(BaseModel):
    """Partial inclusion-filter update."""

    min_duration_minutes: int | None = None
    exclude_patterns: list[str] | None = None
    disabled_sources: list[str] | None = None


class EntryResponse(BaseModel):
    source_id: str
    source_kind: str
    title: str
    project: str
    client: str
    category: str
    minutes: int
    confidence: float
    estimate_source: str
    billable: bool
    description: str
    tags: list[str]
    start_time: datetime
    end_time: datetime


class PendingEntryResponse(EntryResponse):
    pending_id: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: PendingEntry) -> "PendingEntryResponse":
        return cls(
            pending_id=entry.pending_id,
            created_at=entry.created_at,
            source_id=entry.source_id,
            source_kind=entry.source_kind.value,
            title=entry.activity.title,
            project=entry.classification.project,
            client=entry.classification.client,
            category=entry.classification.category.value,
            minutes=entry.estimate.minutes,
            confidence=entry.estimate.confidence,
            estimate_source=entry.estimate.source.value,
            billable=entry.billable,
            description=entry.description,
            tags=list(entry.tags),
            start_time=entry.start_time,
            end_time=entry.end_time,
        )


class CommittedEntryResponse(EntryResponse):
    entry_id: str
    origin: str
    committed_at: datetime

    @classmethod
    def from_entry(cls, entry: CommittedEntry) -> "CommittedEntryResponse":
        return cls(
            entry_id=entry.entry_id,
            origin=entry.origin.value,
            committed_at=entry.committed_at,
            source_id=entry.source_id,
            source_kind=entry.source_kind.value,
            title=entry.title,
            project=entry.classification.project,
            client=entry.classification.client,
            category=entry.classification.category.value,
            minutes=entry.estimate.minutes,
            confidence=entry.estimate.confidence,
            estimate_source=entry.estimate.source.value,
            billable=entry.billable,
            description=entry.description,
            tags=list(entry.tags),
            start_time=entry.start_time,
            end_time=entry.end_time,
        )


class PendingListResponse(BaseModel):
    entries: list[PendingEntryResponse]
    total_count: int


class CommittedListResponse(BaseModel):
    entries: list[CommittedEntryResponse]
    total_count: int
    total_minutes: int
    billable_minutes: int


class SyncResultResponse(BaseModel):
    committed_count: int
    pending_count: int
    error_count: int
    skipped_count: int
    duplicate_count: int
    skipped: bool
    skip_reason: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(**result.model_dump())


class AutoSyncResponse(BaseModel):
    active: bool
    changed: bool
