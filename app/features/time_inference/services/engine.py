"""
Engine facade exposed to collaborators (HTTP API, worker).

build_engine() wires the pipeline from settings: Redis-backed repositories
when a Redis client is supplied, in-memory ones otherwise.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from app.config import Settings
from app.features.time_inference.domain.models import (
    CommittedEntry,
    EntryState,
    PendingEntry,
    SyncResult,
)
from app.features.time_inference.domain.policy import ReviewPolicy, SyncSettings
from app.features.time_inference.jobs.auto_sync_job import AutoSyncJob
from app.features.time_inference.pipeline.classification.service import ActivityClassifier
from app.features.time_inference.pipeline.entries.builder import EntryBuilder
from app.features.time_inference.pipeline.estimation.service import EstimatorService
from app.features.time_inference.pipeline.learning.service import CorrectionLearner
from app.features.time_inference.pipeline.review.gate import ReviewGate
from app.features.time_inference.repository.memory import (
    InMemoryActivityLedgerRepository,
    InMemoryCheckpointRepository,
    InMemoryCommittedEntryRepository,
    InMemoryCorrectionProfileRepository,
    InMemoryPendingEntryRepository,
)
from app.features.time_inference.repository.redis_repository import (
    RedisActivityLedgerRepository,
    RedisCheckpointRepository,
    RedisCommittedEntryRepository,
    RedisCorrectionProfileRepository,
    RedisPendingEntryRepository,
)
from app.features.time_inference.services.sync_service import SyncOrchestrator
from app.features.time_inference.sources.ports import ActivitySource
from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.redis_client import RedisClient

logger = get_logger(__name__)


class TimeInferenceEngine:
    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        gate: ReviewGate,
        learner: CorrectionLearner,
        committed_repository,
        auto_sync: AutoSyncJob,
    ):
        self.orchestrator = orchestrator
        self.gate = gate
        self.learner = learner
        self.committed_repository = committed_repository
        self.auto_sync = auto_sync

    @property
    def review_policy(self) -> ReviewPolicy:
        return self.orchestrator.review_policy

    @property
    def sync_settings(self) -> SyncSettings:
        return self.orchestrator.sync_settings

    async def initialize(self) -> None:
        await self.learner.load()

    async def get_pending_entries(self) -> list[PendingEntry]:
        return await self.gate.pending_entries()

    async def get_committed_entries(self) -> list[CommittedEntry]:
        return await self.committed_repository.list_entries()

    async def approve_pending(
        self, pending_id: str, confirmed_minutes: int | None = None
    ) -> CommittedEntry:
        return await self.gate.approve(pending_id, confirmed_minutes)

    async def reject_pending(self, pending_id: str) -> EntryState:
        return await self.gate.reject(pending_id)

    def update_policy(self, partial: dict[str, Any]) -> ReviewPolicy:
        """Apply a partial policy update; invalid values raise PolicyValidationError."""
        policy = self.orchestrator.review_policy.merged(partial)
        self.orchestrator.review_policy = policy
        logger.info("Review policy updated", **policy.model_dump())
        return policy

    def update_sync_settings(self, partial: dict[str, Any]) -> SyncSettings:
        sync_settings = self.orchestrator.sync_settings.merged(partial)
        self.orchestrator.sync_settings = sync_settings
        logger.info("Sync settings updated", **sync_settings.model_dump(mode="json"))
        return sync_settings

    async def run_sync_once(self) -> SyncResult:
        return await self.orchestrator.sync()

    def start_auto_sync(self) -> bool:
        return self.auto_sync.start()

    async def stop_auto_sync(self) -> bool:
        return await self.auto_sync.stop()

    async def status(self) -> dict[str, Any]:
        pending = await self.gate.pending_entries()
        last_result = self.orchestrator.last_result
        return {
            "auto_sync_active": self.auto_sync.is_active,
            "sync_in_progress": self.orchestrator.is_running,
            "last_sync_at": self.orchestrator.last_sync_at,
            "last_result": last_result.model_dump(mode="json") if last_result else None,
            "pending_count": len(pending),
            "review_policy": self.review_policy.model_dump(),
            "sync_settings": self.sync_settings.model_dump(mode="json"),
        }


def build_engine(
    settings: Settings,
    source: ActivitySource,
    redis_client: RedisClient | None = None,
    clock: Callable[[], datetime] | None = None,
    id_factory: Callable[[], str] | None = None,
) -> TimeInferenceEngine:
    if redis_client is not None:
        prefix = settings.REDIS_KEY_PREFIX
        checkpoints = RedisCheckpointRepository(redis_client, prefix)
        pending_repository = RedisPendingEntryRepository(redis_client, prefix)
        committed_repository = RedisCommittedEntryRepository(redis_client, prefix)
        profile_repository = RedisCorrectionProfileRepository(redis_client, prefix)
        ledger = RedisActivityLedgerRepository(redis_client, prefix)
    else:
        checkpoints = InMemoryCheckpointRepository()
        pending_repository = InMemoryPendingEntryRepository()
        committed_repository = InMemoryCommittedEntryRepository()
        profile_repository = InMemoryCorrectionProfileRepository()
        ledger = InMemoryActivityLedgerRepository()

    learner = CorrectionLearner(profile_repository)
    estimator = EstimatorService(internal_domain=settings.TENANT_DOMAIN, learner=learner)
    classifier = ActivityClassifier(
        tenant_domain=settings.TENANT_DOMAIN,
        default_project=settings.DEFAULT_PROJECT,
        default_client=settings.DEFAULT_CLIENT,
        internal_client=settings.INTERNAL_CLIENT,
    )
    builder = EntryBuilder(billable_threshold=settings.BILLABLE_CONFIDENCE_THRESHOLD)

    gate_kwargs = {}
    if clock is not None:
        gate_kwargs["clock"] = clock
    if id_factory is not None:
        gate_kwargs["id_factory"] = id_factory
    gate = ReviewGate(committed_repository, pending_repository, ledger, learner, **gate_kwargs)

    orchestrator = SyncOrchestrator(
        source=source,
        classifier=classifier,
        estimator=estimator,
        learner=learner,
        builder=builder,
        gate=gate,
        checkpoints=checkpoints,
        committed_repository=committed_repository,
        ledger=ledger,
        review_policy=ReviewPolicy.create(**settings.get_review_policy_config()),
        sync_settings=SyncSettings.create(**settings.get_sync_settings_config()),
        lookback=timedelta(hours=settings.SYNC_LOOKBACK_HOURS),
        fetch_timeout_seconds=settings.SOURCE_FETCH_TIMEOUT_SECONDS,
        **({"clock": clock} if clock is not None else {}),
    )
    auto_sync = AutoSyncJob(orchestrator, interval_seconds=settings.SYNC_INTERVAL_SECONDS)

    logger.info(
        "Time inference engine built",
        backend="redis" if redis_client is not None else "memory",
        tenant_domain=settings.TENANT_DOMAIN,
    )
    return TimeInferenceEngine(orchestrator, gate, learner, committed_repository, auto_sync)
