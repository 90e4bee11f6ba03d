"""
Rule-based duration estimator - turns an activity into a TimeEstimate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.features.time_inference.domain.models import (
    Activity,
    CalendarActivity,
    DocumentActivity,
    EstimateSource,
    MessageActivity,
    TimeEstimate,
)
from app.features.time_inference.errors import InvalidActivityError
from app.infrastructure.observability.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - avoids circular import at runtime
    from app.features.time_inference.pipeline.learning.service import CorrectionLearner

logger = get_logger(__name__)


@dataclass(slots=True)
class DomainAdjustment:
    multiplier: float
    confidence_boost: float


@dataclass(slots=True)
class _Draft:
    minutes: float
    confidence: float
    signals: list[str]


class EstimatorService:
    READING_WORDS_PER_MINUTE = 200
    COMPOSING_WORDS_PER_MINUTE = 100
    BASELINE_CONFIDENCE = 0.6
    MAX_HEURISTIC_CONFIDENCE = 0.95
    MIN_HEURISTIC_CONFIDENCE = 0.3
    MEASURED_CONFIDENCE = 0.95

    LENGTH_CONFIDENCE_GAIN = 0.2
    DEPTH_CONFIDENCE_GAIN = 0.1
    ATTACHMENT_CONFIDENCE_GAIN = 0.1

    MINUTES_PER_DEPTH_STEP = 2
    MAX_DEPTH_MINUTES = 10
    ATTACHMENT_MINUTES = 3

    MESSAGE_BASE_MINUTES = 2
    CALENDAR_DEFAULT_MINUTES = 30
    DOCUMENT_BASE_MINUTES = {"doc": 15, "sheet": 10, "slide": 15}

    MESSAGE_BOUNDS = (1, 60)
    CALENDAR_BOUNDS = (5, 480)
    DOCUMENT_BOUNDS = (5, 240)

    CLIENT_DOMAINS = {
        "acmecorp.com": DomainAdjustment(1.3, 0.2),
        "techstart.io": DomainAdjustment(1.2, 0.2),
        "zendesk.com": DomainAdjustment(1.4, 0.2),
    }
    INTERNAL_ADJUSTMENT = DomainAdjustment(0.8, 0.1)

    def __init__(
        self,
        internal_domain: str | None = None,
        client_domains: dict[str, DomainAdjustment] | None = None,
        learner: CorrectionLearner | None = None,
    ):
        self.internal_domain = (internal_domain or "").lower() or None
        if client_domains is None:
            client_domains = self.CLIENT_DOMAINS
        self.client_domains = dict(client_domains)
        self.learner = learner

    def estimate(self, activity: Activity) -> TimeEstimate:
        """
        Estimate how long an activity took.

        Calendar events with an explicit end are measured from wall-clock time
        and bypass every heuristic. Messages with tracked focus time use the
        measurement. Everything else goes through the signal heuristics, the
        domain multiplier and any learned corrections.
        """
        if isinstance(activity, CalendarActivity):
            elapsed = activity.elapsed_minutes()
            if elapsed is not None:
                return TimeEstimate(
                    minutes=elapsed, confidence=1.0, source=EstimateSource.MEASURED
                )
            draft = _Draft(float(self.CALENDAR_DEFAULT_MINUTES), self.BASELINE_CONFIDENCE, [])
            bounds = self.CALENDAR_BOUNDS
        elif isinstance(activity, MessageActivity):
            if activity.tracked_seconds:
                return TimeEstimate(
                    minutes=max(1, round(activity.tracked_seconds / 60)),
                    confidence=self.MEASURED_CONFIDENCE,
                    source=EstimateSource.MEASURED,
                )
            draft = _Draft(float(self.MESSAGE_BASE_MINUTES), self.BASELINE_CONFIDENCE, [])
            bounds = self.MESSAGE_BOUNDS
        elif isinstance(activity, DocumentActivity):
            base = self.DOCUMENT_BASE_MINUTES[activity.document_type]
            draft = _Draft(float(base), self.BASELINE_CONFIDENCE, [])
            bounds = self.DOCUMENT_BOUNDS
        else:
            raise InvalidActivityError(
                f"Unsupported activity type: {type(activity).__name__}",
                activity_id=getattr(activity, "source_id", None),
            )

        self._apply_length(activity, draft)
        self._apply_depth(activity, draft)
        self._apply_attachments(activity, draft)
        self._apply_domain(activity, draft)

        minutes = draft.minutes * self._learned_adjustment(activity)
        low, high = bounds
        minutes = max(low, min(round(minutes), high))
        confidence = max(
            self.MIN_HEURISTIC_CONFIDENCE, min(draft.confidence, self.MAX_HEURISTIC_CONFIDENCE)
        )

        logger.debug(
            "Activity estimated",
            activity_id=activity.source_id,
            source_kind=activity.kind,
            minutes=minutes,
            confidence=round(confidence, 3),
            signals=draft.signals,
        )
        return TimeEstimate(
            minutes=minutes, confidence=round(confidence, 4), source=EstimateSource.HEURISTIC
        )

    def _apply_length(self, activity: Activity, draft: _Draft) -> None:
        words = activity.content_length
        if not words:
            return
        reading = math.ceil(words / self.READING_WORDS_PER_MINUTE)
        composing = 0
        if isinstance(activity, MessageActivity):
            composing = math.ceil(words / self.COMPOSING_WORDS_PER_MINUTE)
        draft.minutes = max(draft.minutes, float(reading + composing))
        draft.confidence += self.LENGTH_CONFIDENCE_GAIN
        draft.signals.append("length")

    def _apply_depth(self, activity: Activity, draft: _Draft) -> None:
        if isinstance(activity, MessageActivity):
            depth = activity.thread_depth or 0
        else:
            depth = max(activity.thread_depth or 0, len(activity.participants))
        if depth <= 1:
            return
        draft.minutes += min(depth * self.MINUTES_PER_DEPTH_STEP, self.MAX_DEPTH_MINUTES)
        draft.confidence += self.DEPTH_CONFIDENCE_GAIN
        draft.signals.append("depth")

    def _apply_attachments(self, activity: Activity, draft: _Draft) -> None:
        if not activity.has_attachments:
            return
        draft.minutes += self.ATTACHMENT_MINUTES
        draft.confidence += self.ATTACHMENT_CONFIDENCE_GAIN
        draft.signals.append("attachments")

    def _apply_domain(self, activity: Activity, draft: _Draft) -> None:
        adjustment = self.domain_adjustment(activity.originator_domain)
        if adjustment is None:
            return
        draft.minutes *= adjustment.multiplier
        draft.confidence += adjustment.confidence_boost
        draft.signals.append("domain")

    def domain_adjustment(self, domain: str | None) -> DomainAdjustment | None:
        if not domain:
            return None
        if self.internal_domain and domain == self.internal_domain:
            return self.INTERNAL_ADJUSTMENT
        return self.client_domains.get(domain)

    def _learned_adjustment(self, activity: Activity) -> float:
        if self.learner is None:
            return 1.0
        return self.learner.adjustment_for_keys(self.learner.keys_for(activity))
