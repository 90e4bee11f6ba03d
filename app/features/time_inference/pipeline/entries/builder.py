from datetime import timedelta

from app.features.time_inference.domain.models import (
    Activity,
    CalendarActivity,
    Category,
    Classification,
    SourceKind,
    TimeEntryCandidate,
    TimeEstimate,
)


class EntryBuilder:
    """Assembles a TimeEntryCandidate: billable flag, description and tags."""

    MIN_BILLABLE_MINUTES = {
        SourceKind.CALENDAR_EVENT: 15,
        SourceKind.DOCUMENT_EDIT: 15,
        SourceKind.MESSAGE: 5,
    }
    LABELS = {
        SourceKind.MESSAGE: "Email",
        SourceKind.CALENDAR_EVENT: "Meeting",
        SourceKind.DOCUMENT_EDIT: "Document work",
    }
    # Prefixes some sources already put on titles
    TITLE_PREFIXES = ("email:", "meeting:", "document work:", "re:", "fwd:", "fw:")

    LONG_DURATION_MINUTES = 60
    MULTI_PARTICIPANT_COUNT = 3

    def __init__(self, billable_threshold: float = 0.7):
        self.billable_threshold = billable_threshold

    def build(
        self,
        activity: Activity,
        estimate: TimeEstimate,
        classification: Classification,
        correction_keys: tuple[str, ...] | list[str] = (),
    ) -> TimeEntryCandidate:
        start_time = activity.timestamp
        if isinstance(activity, CalendarActivity) and activity.end_time is not None:
            end_time = activity.end_time
        else:
            end_time = start_time + timedelta(minutes=estimate.minutes)

        return TimeEntryCandidate(
            activity=activity,
            classification=classification,
            estimate=estimate,
            billable=self.is_billable(activity.source_kind, estimate, classification),
            description=self.describe(activity, estimate),
            tags=self.tags_for(activity, estimate),
            start_time=start_time,
            end_time=end_time,
            correction_keys=tuple(correction_keys),
        )

    def is_billable(
        self, kind: SourceKind, estimate: TimeEstimate, classification: Classification
    ) -> bool:
        return (
            estimate.confidence > self.billable_threshold
            and classification.category != Category.INTERNAL
            and estimate.minutes >= self.MIN_BILLABLE_MINUTES[kind]
        )

    def describe(self, activity: Activity, estimate: TimeEstimate) -> str:
        label = self.LABELS[activity.source_kind]
        title = self._clean_title(activity.title) or "(untitled)"
        percent = round(estimate.confidence * 100)
        return f"{label}: {title} ({estimate.minutes} min, {percent}% confidence)"

    def tags_for(self, activity: Activity, estimate: TimeEstimate) -> tuple[str, ...]:
        tags = [activity.source_kind.value, estimate.source.value]
        if estimate.minutes > self.LONG_DURATION_MINUTES:
            tags.append("long-duration")
        if len(activity.participants) >= self.MULTI_PARTICIPANT_COUNT:
            tags.append("multi-participant")
        return tuple(tags)

    def _clean_title(self, title: str) -> str:
        cleaned = title.strip()
        stripped = True
        while stripped:
            stripped = False
            for prefix in self.TITLE_PREFIXES:
                if cleaned.lower().startswith(prefix):
                    cleaned = cleaned[len(prefix) :].strip()
                    stripped = True
        return cleaned
