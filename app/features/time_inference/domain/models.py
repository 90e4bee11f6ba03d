"""
Domain models for the time inference engine.

Activities are a closed tagged union discriminated on ``kind``; every record
here is immutable and JSON-serializable so repositories can persist them as
plain key-value payloads. Corrections never edit a TimeEstimate, they
produce a new one.
"""

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class SourceKind(StrEnum):
    MESSAGE = "message"
    CALENDAR_EVENT = "calendar_event"
    DOCUMENT_EDIT = "document_edit"


class EstimateSource(StrEnum):
    HEURISTIC = "heuristic_estimated"
    MEASURED = "externally_measured"
    CONFIRMED = "user_confirmed"


class Category(StrEnum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class EntryState(StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    DISCARDED = "discarded"


class EntryOrigin(StrEnum):
    AUTO_APPROVED = "auto_approved"
    USER_APPROVED = "user_approved"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


def extract_domain(address: str | None) -> str | None:
    if not address or "@" not in address:
        return None
    domain = address.rsplit("@", 1)[1].strip().strip(">").lower()
    return domain or None


class _ActivityBase(_FrozenModel):
    source_id: str = Field(min_length=1)
    title: str = ""
    description: str = ""
    originator: str | None = None
    participants: tuple[str, ...] = ()
    timestamp: datetime
    content_length: int | None = Field(default=None, ge=0)
    thread_depth: int | None = Field(default=None, ge=0)
    has_attachments: bool = False

    @property
    def source_kind(self) -> SourceKind:
        return SourceKind(self.kind)

    @property
    def originator_domain(self) -> str | None:
        return extract_domain(self.originator)

    def parties(self) -> list[str]:
        """Originator plus participants, lower-cased, first occurrence wins."""
        seen: dict[str, None] = {}
        for address in (self.originator, *self.participants):
            if address:
                seen.setdefault(address.strip().lower(), None)
        return list(seen)

    def party_domains(self) -> list[str]:
        domains: dict[str, None] = {}
        for address in self.parties():
            domain = extract_domain(address)
            if domain:
                domains.setdefault(domain, None)
        return list(domains)


class MessageActivity(_ActivityBase):
    """An email (or chat message) the user read or answered."""

    kind: Literal["message"] = "message"
    is_reply: bool = False
    tracked_seconds: int | None = Field(default=None, ge=0)


class CalendarActivity(_ActivityBase):
    """A meeting; ``end_time`` makes the duration wall-clock exact."""

    kind: Literal["calendar_event"] = "calendar_event"
    end_time: datetime | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> "CalendarActivity":
        if self.end_time is not None and self.end_time < self.timestamp:
            raise ValueError("end_time must not precede the event start")
        return self

    def elapsed_minutes(self) -> int | None:
        if self.end_time is None:
            return None
        return int((self.end_time - self.timestamp).total_seconds() // 60)


class DocumentActivity(_ActivityBase):
    """An edit session on a document, spreadsheet or slide deck."""

    kind: Literal["document_edit"] = "document_edit"
    document_type: Literal["doc", "sheet", "slide"] = "doc"


Activity = Annotated[
    MessageActivity | CalendarActivity | DocumentActivity,
    Field(discriminator="kind"),
]

_ACTIVITY_ADAPTER: TypeAdapter = TypeAdapter(Activity)


def activity_from_dict(data: dict[str, Any]) -> Activity:
    return _ACTIVITY_ADAPTER.validate_python(data)


class TimeEstimate(_FrozenModel):
    minutes: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    source: EstimateSource

    @classmethod
    def user_confirmed(cls, minutes: int) -> "TimeEstimate":
        return cls(minutes=minutes, confidence=1.0, source=EstimateSource.CONFIRMED)


class Classification(_FrozenModel):
    project: str
    client: str
    category: Category


class TimeEntryCandidate(_FrozenModel):
    activity: Activity
    classification: Classification
    estimate: TimeEstimate
    billable: bool
    description: str
    tags: tuple[str, ...]
    start_time: datetime
    end_time: datetime
    correction_keys: tuple[str, ...] = ()

    @property
    def source_id(self) -> str:
        return self.activity.source_id

    @property
    def source_kind(self) -> SourceKind:
        return self.activity.source_kind

    @property
    def confidence(self) -> float:
        return self.estimate.confidence


class PendingEntry(TimeEntryCandidate):
    pending_id: str
    approved: bool = False
    created_at: datetime

    @classmethod
    def from_candidate(
        cls, candidate: TimeEntryCandidate, pending_id: str, created_at: datetime
    ) -> "PendingEntry":
        return cls(
            **{name: getattr(candidate, name) for name in TimeEntryCandidate.model_fields},
            pending_id=pending_id,
            created_at=created_at,
        )


class CommittedEntry(_FrozenModel):
    entry_id: str
    source_id: str
    source_kind: SourceKind
    title: str
    classification: Classification
    estimate: TimeEstimate
    billable: bool
    description: str
    tags: tuple[str, ...]
    start_time: datetime
    end_time: datetime
    origin: EntryOrigin
    committed_at: datetime

    @classmethod
    def from_candidate(
        cls,
        candidate: TimeEntryCandidate,
        entry_id: str,
        committed_at: datetime,
        origin: EntryOrigin,
        estimate: TimeEstimate | None = None,
    ) -> "CommittedEntry":
        final = estimate or candidate.estimate
        end_time = candidate.end_time
        if final.minutes != candidate.estimate.minutes:
            end_time = candidate.start_time + timedelta(minutes=final.minutes)
        return cls(
            entry_id=entry_id,
            source_id=candidate.source_id,
            source_kind=candidate.source_kind,
            title=candidate.activity.title,
            classification=candidate.classification,
            estimate=final,
            billable=candidate.billable,
            description=candidate.description,
            tags=candidate.tags,
            start_time=candidate.start_time,
            end_time=end_time,
            origin=origin,
            committed_at=committed_at,
        )

    @property
    def duration_minutes(self) -> int:
        return self.estimate.minutes


class SyncResult(_FrozenModel):
    committed_count: int = 0
    pending_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    duplicate_count: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    skipped: bool = False
    skip_reason: str | None = None
