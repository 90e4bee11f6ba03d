"""
Review gate - auto-commits a candidate or parks it for human approval.

Lifecycle per candidate:
    Created -> Committed | Pending
    Pending -> Committed (approve) | Discarded (reject)

Committed and Discarded are terminal. Pending read-modify-writes go through a
single asyncio.Lock so sync cycles and API approvals never interleave.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from app.features.time_inference.domain.models import (
    CommittedEntry,
    EntryOrigin,
    EntryState,
    PendingEntry,
    TimeEntryCandidate,
    TimeEstimate,
)
from app.features.time_inference.domain.policy import ReviewPolicy
from app.features.time_inference.errors import (
    CorrectionError,
    PendingEntryNotFoundError,
    PersistenceError,
)
from app.features.time_inference.pipeline.learning.service import CorrectionLearner
from app.features.time_inference.repository.ports import (
    DISPOSITION_DISCARDED,
    ActivityLedgerRepository,
    CommittedEntryRepository,
    PendingEntryRepository,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class ReviewGate:
    def __init__(
        self,
        committed_repository: CommittedEntryRepository,
        pending_repository: PendingEntryRepository,
        ledger: ActivityLedgerRepository,
        learner: CorrectionLearner,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.committed_repository = committed_repository
        self.pending_repository = pending_repository
        self.ledger = ledger
        self.learner = learner
        self.clock = clock
        self.id_factory = id_factory
        self._lock = asyncio.Lock()

    @staticmethod
    def decide(candidate: TimeEntryCandidate, policy: ReviewPolicy) -> EntryState:
        if (
            not policy.require_approval
            and policy.auto_approve
            and candidate.confidence >= policy.confidence_threshold
        ):
            return EntryState.COMMITTED
        return EntryState.PENDING

    async def submit(self, candidate: TimeEntryCandidate, policy: ReviewPolicy) -> EntryState:
        """Persist the candidate into the store chosen by ``decide``."""
        state = self.decide(candidate, policy)

        if state == EntryState.COMMITTED:
            entry = CommittedEntry.from_candidate(
                candidate,
                entry_id=self.id_factory(),
                committed_at=self.clock(),
                origin=EntryOrigin.AUTO_APPROVED,
            )
            await self.committed_repository.persist_entry(entry)
            logger.info(
                "Entry auto-committed",
                activity_id=candidate.source_id,
                entry_id=entry.entry_id,
                minutes=entry.duration_minutes,
                confidence=candidate.confidence,
            )
            return state

        async with self._lock:
            entries = await self.pending_repository.load_pending_entries()
            if any(entry.source_id == candidate.source_id for entry in entries):
                logger.info("Activity already pending", activity_id=candidate.source_id)
                return state
            pending = PendingEntry.from_candidate(
                candidate, pending_id=self.id_factory(), created_at=self.clock()
            )
            await self.pending_repository.save_pending_entries([*entries, pending])

        logger.info(
            "Entry queued for review",
            activity_id=candidate.source_id,
            pending_id=pending.pending_id,
            confidence=candidate.confidence,
        )
        return state

    async def pending_entries(self) -> list[PendingEntry]:
        return await self.pending_repository.load_pending_entries()

    async def has_pending(self, source_id: str) -> bool:
        entries = await self.pending_repository.load_pending_entries()
        return any(entry.source_id == source_id for entry in entries)

    async def approve(
        self, pending_id: str, confirmed_minutes: int | None = None
    ) -> CommittedEntry:
        """
        Promote a pending entry to committed.

        When the user supplies a duration that differs from the estimate, the
        committed entry carries a user-confirmed estimate and the correction
        feeds the learner. The pending record is removed last so a failed commit
        leaves it in place for another attempt. A failed profile write is logged
        and does not block the approval.
        """
        if confirmed_minutes is not None and confirmed_minutes < 0:
            raise CorrectionError(f"Confirmed minutes must be >= 0, got {confirmed_minutes}")

        async with self._lock:
            entries = await self.pending_repository.load_pending_entries()
            pending = self._find(entries, pending_id)

            estimated = pending.estimate.minutes
            corrected = confirmed_minutes is not None and confirmed_minutes != estimated
            final_estimate = TimeEstimate.user_confirmed(confirmed_minutes) if corrected else None

            entry = CommittedEntry.from_candidate(
                pending,
                entry_id=self.id_factory(),
                committed_at=self.clock(),
                origin=EntryOrigin.USER_APPROVED,
                estimate=final_estimate,
            )
            await self.committed_repository.persist_entry(entry)

            if corrected:
                keys = pending.correction_keys or tuple(self.learner.keys_for(pending.activity))
                try:
                    await self.learner.record_corrections(keys, estimated, confirmed_minutes)
                except PersistenceError as e:
                    # The entry is already committed; the pending record must still go
                    logger.error(
                        "Failed to persist correction profile",
                        pending_id=pending_id,
                        activity_id=pending.source_id,
                        error=str(e),
                    )

            remaining = [item for item in entries if item.pending_id != pending_id]
            await self.pending_repository.save_pending_entries(remaining)

        logger.info(
            "Pending entry approved",
            pending_id=pending_id,
            activity_id=pending.source_id,
            entry_id=entry.entry_id,
            corrected=corrected,
            minutes=entry.duration_minutes,
        )
        return entry

    async def reject(self, pending_id: str) -> EntryState:
        """Discard a pending entry. No correction is recorded."""
        async with self._lock:
            entries = await self.pending_repository.load_pending_entries()
            pending = self._find(entries, pending_id)

            await self.ledger.mark(pending.source_id, DISPOSITION_DISCARDED)
            remaining = [item for item in entries if item.pending_id != pending_id]
            await self.pending_repository.save_pending_entries(remaining)

        logger.info("Pending entry rejected", pending_id=pending_id, activity_id=pending.source_id)
        return EntryState.DISCARDED

    @staticmethod
    def _find(entries: list[PendingEntry], pending_id: str) -> PendingEntry:
        for entry in entries:
            if entry.pending_id == pending_id:
                return entry
        raise PendingEntryNotFoundError(pending_id)
