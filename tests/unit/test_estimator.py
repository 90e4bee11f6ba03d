"""
Tests for the rule-based duration estimator.
"""

from datetime import timedelta

import pytest
from conftest import NOW, TENANT, make_document, make_meeting, make_message

from app.features.time_inference.domain.models import EstimateSource
from app.features.time_inference.pipeline.estimation.service import EstimatorService
from app.features.time_inference.pipeline.learning.service import CorrectionLearner
from app.features.time_inference.repository.memory import InMemoryCorrectionProfileRepository


@pytest.fixture
def estimator():
    return EstimatorService(internal_domain=TENANT)


def test_medium_message_from_unknown_domain_uses_length_signal_only(estimator):
    activity = make_message(content_length=300, thread_depth=1, originator="someone@unknown.org")

    estimate = estimator.estimate(activity)

    assert 2 <= estimate.minutes <= 5
    assert estimate.confidence == pytest.approx(0.8)
    assert estimate.source == EstimateSource.HEURISTIC


def test_calendar_with_explicit_end_is_wall_clock_exact(estimator):
    start = NOW.replace(hour=9, minute=0)
    activity = make_meeting(
        timestamp=start,
        end_time=start + timedelta(minutes=30),
        participants=(f"me@{TENANT}", "client@acmecorp.com"),
    )

    estimate = estimator.estimate(activity)

    assert estimate.minutes == 30
    assert estimate.confidence == 1.0
    assert estimate.source == EstimateSource.MEASURED


def test_calendar_without_end_falls_back_to_heuristics(estimator):
    activity = make_meeting(
        end_time=None, originator="a@x.com", participants=("a@x.com", "b@y.com")
    )

    estimate = estimator.estimate(activity)

    # 30 minute default plus a two-person depth bonus
    assert estimate.minutes == 34
    assert estimate.confidence == pytest.approx(0.7)
    assert estimate.source == EstimateSource.HEURISTIC


def test_tracked_focus_time_is_used_as_measurement(estimator):
    activity = make_message(tracked_seconds=240)

    estimate = estimator.estimate(activity)

    assert estimate.minutes == 4
    assert estimate.confidence == pytest.approx(0.95)
    assert estimate.source == EstimateSource.MEASURED


def test_confidence_never_decreases_as_signals_are_added(estimator):
    bare = make_message(content_length=None, originator="x@unknown.org")
    with_length = make_message(content_length=300, originator="x@unknown.org")
    with_attachments = make_message(
        content_length=300, has_attachments=True, originator="x@unknown.org"
    )
    with_depth = make_message(
        content_length=300, has_attachments=True, thread_depth=4, originator="x@unknown.org"
    )
    with_domain = make_message(
        content_length=300, has_attachments=True, thread_depth=4, originator="x@acmecorp.com"
    )

    confidences = [
        estimator.estimate(activity).confidence
        for activity in (bare, with_length, with_attachments, with_depth, with_domain)
    ]

    assert confidences == sorted(confidences)
    assert all(confidence <= 0.95 for confidence in confidences)
    assert confidences[-1] == pytest.approx(0.95)


def test_depth_bonus_is_capped(estimator):
    shallow = estimator.estimate(make_message(content_length=None, thread_depth=3))
    deep = estimator.estimate(make_message(content_length=None, thread_depth=40))

    assert shallow.minutes == 2 + 6
    assert deep.minutes == 2 + 10


def test_message_duration_is_clamped(estimator):
    estimate = estimator.estimate(make_message(content_length=10_000))

    assert estimate.minutes == 60


def test_internal_domain_scales_down(estimator):
    estimate = estimator.estimate(make_message(originator=f"colleague@{TENANT}"))

    assert estimate.minutes == 4
    assert estimate.confidence == pytest.approx(0.9)


def test_client_domain_scales_up(estimator):
    estimate = estimator.estimate(make_message(content_length=None, originator="pm@acmecorp.com"))

    assert estimate.minutes == 3
    assert estimate.confidence == pytest.approx(0.8)


def test_document_base_and_participant_depth(estimator):
    sheet = estimator.estimate(
        make_document(document_type="sheet", originator="writer@example.org")
    )
    shared = estimator.estimate(
        make_document(
            document_type="sheet",
            originator="writer@example.org",
            participants=("a@x.com", "b@x.com", "c@x.com"),
        )
    )

    assert sheet.minutes == 10
    assert sheet.confidence == pytest.approx(0.6)
    assert shared.minutes == 16
    assert shared.confidence == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_learned_domain_correction_scales_later_estimates():
    learner = CorrectionLearner(InMemoryCorrectionProfileRepository())
    await learner.load()
    estimator = EstimatorService(internal_domain=TENANT, learner=learner)
    activity = make_message(content_length=None, originator="lead@acme.com")

    before = estimator.estimate(activity)
    await learner.record_correction("domain:acme.com", estimated_minutes=5, confirmed_minutes=10)
    after = estimator.estimate(activity)

    assert before.minutes == 2
    assert after.minutes == 3
    assert after.minutes / before.minutes == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_measured_calendar_ignores_learned_corrections():
    repo = InMemoryCorrectionProfileRepository({"domain:timebeacon.io": 3.0})
    learner = CorrectionLearner(repo)
    await learner.load()
    estimator = EstimatorService(internal_domain=TENANT, learner=learner)

    estimate = estimator.estimate(make_meeting())

    assert estimate.minutes == 30
