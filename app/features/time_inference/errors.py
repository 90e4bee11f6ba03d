"""
Error taxonomy for the time inference engine.

Source-fetch failures and activity-processing failures are recoverable and
retried on the next sync cycle. Persistence failures keep the activity
eligible for reprocessing. Policy validation failures are raised at the
update boundary and never clamped.
"""


class TimeInferenceError(Exception):
    """Base exception for time inference operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class SourceFetchError(TimeInferenceError):
    """Transport or auth failure while reaching an activity source."""

    def __init__(self, message: str, source_kind: str | None = None):
        super().__init__(message, operation="fetch_activities", recoverable=True)
        self.source_kind = source_kind


class ActivityProcessingError(TimeInferenceError):
    """A single activity could not be classified, estimated or built."""

    def __init__(self, message: str, activity_id: str | None = None, recoverable: bool = True):
        super().__init__(message, operation="process_activity", recoverable=recoverable)
        self.activity_id = activity_id


class InvalidActivityError(ActivityProcessingError):
    """Activity payload is permanently malformed; it will not be retried."""

    def __init__(self, message: str, activity_id: str | None = None):
        super().__init__(message, activity_id=activity_id, recoverable=False)


class PersistenceError(TimeInferenceError):
    """Write or read against a backing store failed."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, operation=operation, recoverable=True)


class PolicyValidationError(TimeInferenceError, ValueError):
    """Rejected policy or settings update."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, operation="update_policy", recoverable=False)
        self.field = field


class PendingEntryNotFoundError(TimeInferenceError):
    """No pending entry exists for the given identifier."""

    def __init__(self, pending_id: str):
        super().__init__(
            f"Pending entry not found: {pending_id}", operation="review", recoverable=False
        )
        self.pending_id = pending_id


class CorrectionError(TimeInferenceError, ValueError):
    """Invalid correction input (e.g. negative confirmed minutes)."""

    def __init__(self, message: str):
        super().__init__(message, operation="record_correction", recoverable=False)
