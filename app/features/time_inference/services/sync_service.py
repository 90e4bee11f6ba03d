"""
Sync orchestrator: pulls activities since the last checkpoint and drives each
one through classify -> estimate -> build -> review gate.

One cycle at a time: a call while a cycle is in flight returns a skipped
result instead of running concurrently. Per-activity failures are isolated,
counted and logged; they never abort the batch.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from app.features.time_inference.domain.models import (
    Activity,
    EntryState,
    SourceKind,
    SyncResult,
)
from app.features.time_inference.domain.policy import ReviewPolicy, SyncSettings
from app.features.time_inference.errors import (
    InvalidActivityError,
    PersistenceError,
    SourceFetchError,
)
from app.features.time_inference.pipeline.classification.service import ActivityClassifier
from app.features.time_inference.pipeline.entries.builder import EntryBuilder
from app.features.time_inference.pipeline.estimation.service import EstimatorService
from app.features.time_inference.pipeline.learning.service import CorrectionLearner
from app.features.time_inference.pipeline.review.gate import ReviewGate
from app.features.time_inference.repository.ports import (
    DISPOSITION_INVALID,
    ActivityLedgerRepository,
    CheckpointRepository,
    CommittedEntryRepository,
)
from app.features.time_inference.sources.ports import ActivitySource
from app.infrastructure.observability.logging import get_logger, log_sync_result

logger = get_logger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=24)
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
CHECKPOINT_EPSILON = timedelta(microseconds=1)

# Per-activity outcomes
OUTCOME_COMMITTED = "committed"
OUTCOME_PENDING = "pending"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_SKIPPED = "skipped"
OUTCOME_INVALID = "invalid"
OUTCOME_FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncMetrics:
    """Counters for one sync cycle."""

    def __init__(self):
        self.reset(_utcnow())

    def reset(self, started_at: datetime):
        """Reset all counters for a new cycle."""
        self.started_at = started_at
        self.finished_at: datetime | None = None
        self.activities_seen = 0
        self.committed = 0
        self.pending = 0
        self.duplicates = 0
        self.skipped = 0
        self.fetch_failures = 0
        self.processing_errors = 0
        self.errors: list[dict] = []

    def record_outcome(self, outcome: str):
        self.activities_seen += 1
        if outcome == OUTCOME_COMMITTED:
            self.committed += 1
        elif outcome == OUTCOME_PENDING:
            self.pending += 1
        elif outcome == OUTCOME_DUPLICATE:
            self.duplicates += 1
        elif outcome == OUTCOME_SKIPPED:
            self.skipped += 1

    def record_fetch_failure(self, kind: SourceKind, error: str):
        self.fetch_failures += 1
        self.errors.append(
            {"source_kind": kind.value, "error": error, "error_type": "fetch"}
        )
        logger.warning("Activity fetch failed", source_kind=kind.value, error=error)

    def record_processing_error(self, activity_id: str, error: str, error_type: str):
        self.activities_seen += 1
        self.processing_errors += 1
        self.errors.append({"activity_id": activity_id, "error": error, "error_type": error_type})
        logger.error(
            "Activity processing failed",
            activity_id=activity_id,
            error=error,
            error_type=error_type,
        )

    def record_checkpoint_failure(self, kind: SourceKind, error: str):
        self.errors.append({"source_kind": kind.value, "error": error, "error_type": "checkpoint"})
        self.processing_errors += 1
        logger.error("Checkpoint write failed", source_kind=kind.value, error=error)

    @property
    def error_count(self) -> int:
        return self.fetch_failures + self.processing_errors

    def finalize(self, finished_at: datetime):
        self.finished_at = finished_at

    def to_result(self) -> SyncResult:
        return SyncResult(
            committed_count=self.committed,
            pending_count=self.pending,
            error_count=self.error_count,
            skipped_count=self.skipped,
            duplicate_count=self.duplicates,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        duration = 0.0
        if self.finished_at is not None:
            duration = (self.finished_at - self.started_at).total_seconds()
        return {
            "job_run": "time_inference_sync",
            "start_time": self.started_at.isoformat(),
            "total_duration_seconds": round(duration, 2),
            "activities_seen": self.activities_seen,
            "committed_count": self.committed,
            "pending_count": self.pending,
            "duplicate_count": self.duplicates,
            "skipped_count": self.skipped,
            "fetch_failures": self.fetch_failures,
            "processing_errors": self.processing_errors,
            "error_count": self.error_count,
        }


class SyncOrchestrator:
    def __init__(
        self,
        source: ActivitySource,
        classifier: ActivityClassifier,
        estimator: EstimatorService,
        learner: CorrectionLearner,
        builder: EntryBuilder,
        gate: ReviewGate,
        checkpoints: CheckpointRepository,
        committed_repository: CommittedEntryRepository,
        ledger: ActivityLedgerRepository,
        review_policy: ReviewPolicy | None = None,
        sync_settings: SyncSettings | None = None,
        lookback: timedelta = DEFAULT_LOOKBACK,
        fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.classifier = classifier
        self.estimator = estimator
        self.learner = learner
        self.builder = builder
        self.gate = gate
        self.checkpoints = checkpoints
        self.committed_repository = committed_repository
        self.ledger = ledger
        self.review_policy = review_policy or ReviewPolicy()
        self.sync_settings = sync_settings or SyncSettings()
        self.lookback = lookback
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.clock = clock

        self.is_running = False
        self.last_sync_at: datetime | None = None
        self.last_result: SyncResult | None = None
        self.metrics = SyncMetrics()

    async def sync(self) -> SyncResult:
        """
        Run one sync cycle.

        Each enabled source kind is fetched concurrently from its own window.
        A kind whose fetch fails keeps its checkpoint; otherwise the checkpoint
        moves to the cycle start, or to just before the earliest activity that
        failed with a retryable error so that activity is fetched again.
        """
        if self.is_running:
            now = self.clock()
            logger.warning("Sync already running, skipping this trigger")
            return SyncResult(
                started_at=now, finished_at=now, skipped=True, skip_reason="already_running"
            )

        self.is_running = True
        try:
            started_at = self.clock()
            self.metrics.reset(started_at)
            policy = self.review_policy
            settings = self.sync_settings

            kinds = [kind for kind in SourceKind if settings.is_source_enabled(kind)]
            logger.info(
                "Starting sync cycle",
                source_kinds=[kind.value for kind in kinds],
                auto_approve=policy.auto_approve,
                require_approval=policy.require_approval,
            )

            outcomes = await asyncio.gather(
                *(self._fetch_kind(kind, started_at) for kind in kinds),
                return_exceptions=True,
            )

            for kind, outcome in zip(kinds, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    self.metrics.record_fetch_failure(kind, str(outcome))
                    continue
                await self._process_kind(kind, outcome, started_at, policy, settings)

            self.metrics.finalize(self.clock())
            result = self.metrics.to_result()
            self.last_result = result
            self.last_sync_at = result.finished_at
            log_sync_result(self.metrics.to_dict())
            return result

        finally:
            self.is_running = False

    async def _fetch_kind(self, kind: SourceKind, started_at: datetime) -> list[Activity]:
        checkpoint = await self.checkpoints.load_checkpoint(kind)
        since = checkpoint or (started_at - self.lookback)
        try:
            activities = await asyncio.wait_for(
                self.source.fetch_activities(kind, since), timeout=self.fetch_timeout_seconds
            )
        except TimeoutError as e:
            raise SourceFetchError(
                f"Fetch timed out after {self.fetch_timeout_seconds}s", source_kind=kind.value
            ) from e
        logger.debug(
            "Fetched activities", source_kind=kind.value, since=since.isoformat(), count=len(activities)
        )
        return activities

    async def _process_kind(
        self,
        kind: SourceKind,
        activities: list[Activity],
        started_at: datetime,
        policy: ReviewPolicy,
        settings: SyncSettings,
    ) -> None:
        patterns = settings.compiled_patterns()
        earliest_failure: datetime | None = None

        for activity in sorted(activities, key=lambda item: item.timestamp):
            outcome = await self._process_activity(activity, policy, settings, patterns)
            if outcome == OUTCOME_FAILED:
                if earliest_failure is None or activity.timestamp < earliest_failure:
                    earliest_failure = activity.timestamp
            elif outcome != OUTCOME_INVALID:
                self.metrics.record_outcome(outcome)

        checkpoint = started_at
        if earliest_failure is not None:
            checkpoint = min(started_at, earliest_failure - CHECKPOINT_EPSILON)
            logger.info(
                "Holding checkpoint back for retry",
                source_kind=kind.value,
                checkpoint=checkpoint.isoformat(),
            )

        try:
            await self.checkpoints.save_checkpoint(kind, checkpoint)
        except PersistenceError as e:
            self.metrics.record_checkpoint_failure(kind, str(e))

    async def _process_activity(self, activity, policy, settings, patterns) -> str:
        activity_id = activity.source_id
        try:
            if not settings.is_source_enabled(activity.source_kind):
                return OUTCOME_SKIPPED
            if self._is_excluded(activity, patterns):
                logger.debug("Activity excluded by pattern", activity_id=activity_id)
                return OUTCOME_SKIPPED
            if await self._already_seen(activity_id):
                return OUTCOME_DUPLICATE

            classification = self.classifier.classify(activity)
            estimate = self.estimator.estimate(activity)
            if estimate.minutes < settings.min_duration_minutes:
                logger.debug(
                    "Activity below minimum duration",
                    activity_id=activity_id,
                    minutes=estimate.minutes,
                    min_duration_minutes=settings.min_duration_minutes,
                )
                return OUTCOME_SKIPPED

            candidate = self.builder.build(
                activity,
                estimate,
                classification,
                correction_keys=self.learner.keys_for(activity),
            )
            state = await self.gate.submit(candidate, policy)
            return OUTCOME_COMMITTED if state == EntryState.COMMITTED else OUTCOME_PENDING

        except InvalidActivityError as e:
            self.metrics.record_processing_error(activity_id, str(e), "invalid")
            try:
                await self.ledger.mark(activity_id, DISPOSITION_INVALID)
            except PersistenceError as mark_error:
                logger.error(
                    "Failed to record invalid activity",
                    activity_id=activity_id,
                    error=str(mark_error),
                )
                return OUTCOME_FAILED
            return OUTCOME_INVALID
        except PersistenceError as e:
            self.metrics.record_processing_error(activity_id, str(e), "persistence")
            return OUTCOME_FAILED
        except Exception as e:
            error_msg = f"Unexpected error: {type(e).__name__}: {e}"
            self.metrics.record_processing_error(activity_id, error_msg, "processing")
            return OUTCOME_FAILED

    @staticmethod
    def _is_excluded(activity: Activity, patterns) -> bool:
        text = f"{activity.title}\n{activity.description}"
        return any(pattern.search(text) for pattern in patterns)

    async def _already_seen(self, source_id: str) -> bool:
        if await self.committed_repository.has_entry(source_id):
            return True
        if await self.gate.has_pending(source_id):
            return True
        return await self.ledger.get_disposition(source_id) is not None
