"""
Tests for the review gate state machine.
"""

import pytest
from conftest import FixedClock, make_message, sequential_ids

from app.features.time_inference.domain.models import EntryOrigin, EntryState, EstimateSource
from app.features.time_inference.domain.policy import ReviewPolicy
from app.features.time_inference.errors import (
    CorrectionError,
    PendingEntryNotFoundError,
    PersistenceError,
)
from app.features.time_inference.pipeline.learning.service import CorrectionLearner
from app.features.time_inference.pipeline.review.gate import ReviewGate
from app.features.time_inference.repository.memory import (
    InMemoryActivityLedgerRepository,
    InMemoryCommittedEntryRepository,
    InMemoryCorrectionProfileRepository,
    InMemoryPendingEntryRepository,
)

GATED = ReviewPolicy(auto_approve=False)
AUTO = ReviewPolicy(auto_approve=True, confidence_threshold=0.8, require_approval=False)


class FailingCommittedRepository(InMemoryCommittedEntryRepository):
    async def persist_entry(self, entry):
        raise PersistenceError("disk full", operation="persist_entry")


@pytest.fixture
def profile_repo():
    return InMemoryCorrectionProfileRepository()


@pytest.fixture
def gate(profile_repo):
    return ReviewGate(
        InMemoryCommittedEntryRepository(),
        InMemoryPendingEntryRepository(),
        InMemoryActivityLedgerRepository(),
        CorrectionLearner(profile_repo),
        clock=FixedClock(),
        id_factory=sequential_ids("entry"),
    )


@pytest.mark.parametrize("confidence", [0.3, 0.9, 1.0])
def test_gated_policy_always_defers(make_candidate, confidence):
    candidate = make_candidate(confidence=confidence)

    assert ReviewGate.decide(candidate, GATED) == EntryState.PENDING


def test_auto_approve_respects_threshold(make_candidate):
    assert ReviewGate.decide(make_candidate(confidence=0.9), AUTO) == EntryState.COMMITTED
    assert ReviewGate.decide(make_candidate(confidence=0.8), AUTO) == EntryState.COMMITTED
    assert ReviewGate.decide(make_candidate(confidence=0.5), AUTO) == EntryState.PENDING


def test_require_approval_overrides_auto_approve(make_candidate):
    policy = ReviewPolicy(auto_approve=True, confidence_threshold=0.1, require_approval=True)

    assert ReviewGate.decide(make_candidate(confidence=1.0), policy) == EntryState.PENDING


@pytest.mark.asyncio
async def test_submit_auto_commits(gate, make_candidate):
    state = await gate.submit(make_candidate(confidence=0.95), AUTO)

    entries = await gate.committed_repository.list_entries()
    assert state == EntryState.COMMITTED
    assert [entry.origin for entry in entries] == [EntryOrigin.AUTO_APPROVED]
    assert await gate.pending_entries() == []


@pytest.mark.asyncio
async def test_submit_same_activity_twice_keeps_one_pending(gate, make_candidate):
    await gate.submit(make_candidate(), GATED)
    await gate.submit(make_candidate(), GATED)

    pending = await gate.pending_entries()
    assert len(pending) == 1
    assert pending[0].approved is False


@pytest.mark.asyncio
async def test_approve_without_adjustment_records_no_correction(gate, make_candidate, profile_repo):
    await gate.submit(make_candidate(minutes=12), GATED)
    pending = (await gate.pending_entries())[0]

    entry = await gate.approve(pending.pending_id)

    assert entry.origin == EntryOrigin.USER_APPROVED
    assert entry.estimate.minutes == 12
    assert await gate.pending_entries() == []
    assert await gate.committed_repository.has_entry(pending.source_id)
    assert profile_repo.save_count == 0


@pytest.mark.asyncio
async def test_approve_with_adjusted_minutes_feeds_learner(gate, make_candidate, profile_repo):
    await gate.submit(make_candidate(minutes=5), GATED)
    pending = (await gate.pending_entries())[0]

    entry = await gate.approve(pending.pending_id, confirmed_minutes=10)

    assert entry.estimate.minutes == 10
    assert entry.estimate.source == EstimateSource.CONFIRMED
    assert entry.estimate.confidence == 1.0
    assert (entry.end_time - entry.start_time).total_seconds() == 600
    assert profile_repo.profile == {"domain:example.org": pytest.approx(1.5)}


@pytest.mark.asyncio
async def test_approve_with_same_minutes_is_not_a_correction(gate, make_candidate, profile_repo):
    await gate.submit(make_candidate(minutes=5), GATED)
    pending = (await gate.pending_entries())[0]

    entry = await gate.approve(pending.pending_id, confirmed_minutes=5)

    assert entry.estimate.source == EstimateSource.HEURISTIC
    assert profile_repo.save_count == 0


@pytest.mark.asyncio
async def test_reject_discards_without_correction(gate, make_candidate, profile_repo):
    await gate.submit(make_candidate(activity=make_message("gmail-9")), GATED)
    pending = (await gate.pending_entries())[0]

    assert await gate.reject(pending.pending_id) == EntryState.DISCARDED

    assert await gate.pending_entries() == []
    assert await gate.ledger.get_disposition("gmail-9") == "discarded"
    assert profile_repo.save_count == 0
    assert profile_repo.profile == {}


@pytest.mark.asyncio
async def test_unknown_pending_id(gate):
    with pytest.raises(PendingEntryNotFoundError):
        await gate.approve("missing")
    with pytest.raises(PendingEntryNotFoundError):
        await gate.reject("missing")


@pytest.mark.asyncio
async def test_negative_confirmation_leaves_entry_pending(gate, make_candidate):
    await gate.submit(make_candidate(), GATED)
    pending = (await gate.pending_entries())[0]

    with pytest.raises(CorrectionError):
        await gate.approve(pending.pending_id, confirmed_minutes=-3)

    assert len(await gate.pending_entries()) == 1


@pytest.mark.asyncio
async def test_commit_failure_keeps_pending_record(make_candidate, profile_repo):
    gate = ReviewGate(
        FailingCommittedRepository(),
        InMemoryPendingEntryRepository(),
        InMemoryActivityLedgerRepository(),
        CorrectionLearner(profile_repo),
    )
    await gate.submit(make_candidate(), GATED)
    pending = (await gate.pending_entries())[0]

    with pytest.raises(PersistenceError):
        await gate.approve(pending.pending_id, confirmed_minutes=45)

    assert [entry.pending_id for entry in await gate.pending_entries()] == [pending.pending_id]
    assert profile_repo.save_count == 0


class FailingProfileRepository(InMemoryCorrectionProfileRepository):
    async def save_correction_profile(self, profile):
        raise PersistenceError("redis down", operation="save_correction_profile")


@pytest.mark.asyncio
async def test_profile_write_failure_still_completes_approval(make_candidate):
    committed = InMemoryCommittedEntryRepository()
    learner = CorrectionLearner(FailingProfileRepository())
    gate = ReviewGate(
        committed,
        InMemoryPendingEntryRepository(),
        InMemoryActivityLedgerRepository(),
        learner,
        clock=FixedClock(),
        id_factory=sequential_ids("entry"),
    )
    await gate.submit(make_candidate(minutes=10), GATED)
    pending = (await gate.pending_entries())[0]

    entry = await gate.approve(pending.pending_id, confirmed_minutes=20)

    assert entry.estimate.minutes == 20
    assert [item.source_id for item in await committed.list_entries()] == [pending.source_id]
    assert await gate.pending_entries() == []
    assert learner.profile == {}

    with pytest.raises(PendingEntryNotFoundError):
        await gate.approve(pending.pending_id, confirmed_minutes=20)
    assert learner.profile == {}
