from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from app.features.time_inference.domain.models import Activity, SourceKind


class ActivitySource(Protocol):
    """Supplies activities of one kind newer than ``since``.

    Implementations raise SourceFetchError on transport or auth failures.
    """

    async def fetch_activities(self, kind: SourceKind, since: datetime) -> list[Activity]: ...


class StaticActivitySource:
    """In-memory activity feed, used by tests and local runs."""

    def __init__(self, activities: Iterable[Activity] = ()):
        self._activities: list[Activity] = list(activities)
        self.fetch_calls: list[tuple[SourceKind, datetime]] = []

    def add(self, *activities: Activity) -> None:
        self._activities.extend(activities)

    async def fetch_activities(self, kind: SourceKind, since: datetime) -> list[Activity]:
        self.fetch_calls.append((kind, since))
        return sorted(
            (
                activity
                for activity in self._activities
                if activity.source_kind == kind and activity.timestamp > since
            ),
            key=lambda activity: activity.timestamp,
        )
