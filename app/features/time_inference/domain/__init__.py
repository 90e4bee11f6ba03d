"""
Domain models for the time inference engine.
"""

from .models import (
    Activity,
    CalendarActivity,
    Category,
    Classification,
    CommittedEntry,
    DocumentActivity,
    EntryOrigin,
    EntryState,
    EstimateSource,
    MessageActivity,
    PendingEntry,
    SourceKind,
    SyncResult,
    TimeEntryCandidate,
    TimeEstimate,
    activity_from_dict,
    extract_domain,
)
from .policy import ReviewPolicy, SyncSettings

__all__ = [
    "Activity",
    "CalendarActivity",
    "Category",
    "Classification",
    "CommittedEntry",
    "DocumentActivity",
    "EntryOrigin",
    "EntryState",
    "EstimateSource",
    "MessageActivity",
    "PendingEntry",
    "ReviewPolicy",
    "SourceKind",
    "SyncResult",
    "SyncSettings",
    "TimeEntryCandidate",
    "TimeEstimate",
    "activity_from_dict",
    "extract_domain",
]
