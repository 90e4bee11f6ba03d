"""
Correction learner - turns user-confirmed durations into per-key multipliers.

The profile maps a bucketing key (originator domain, content-length bucket)
to a multiplier. Each correction blends the observed ratio into the stored
value with a simple average, so repeated corrections converge on the ratio
without overshooting it.
"""

from collections.abc import Iterable

from app.features.time_inference.domain.models import Activity
from app.features.time_inference.errors import CorrectionError
from app.features.time_inference.repository.ports import CorrectionProfileRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DOMAIN_KEY_PREFIX = "domain:"
LENGTH_KEY_PREFIX = "length:"
LENGTH_BUCKET_WORDS = 100


class CorrectionLearner:
    DEFAULT_MULTIPLIER = 1.0

    def __init__(self, repository: CorrectionProfileRepository):
        self.repository = repository
        self._profile: dict[str, float] = {}
        self._loaded = False

    async def load(self) -> None:
        """Load the persisted profile once; later calls are no-ops."""
        if self._loaded:
            return
        self._profile = dict(await self.repository.load_correction_profile())
        self._loaded = True
        logger.info("Correction profile loaded", keys=len(self._profile))

    @property
    def profile(self) -> dict[str, float]:
        return dict(self._profile)

    def adjustment_for(self, key: str) -> float:
        return self._profile.get(key, self.DEFAULT_MULTIPLIER)

    def adjustment_for_keys(self, keys: Iterable[str]) -> float:
        multiplier = 1.0
        for key in keys:
            multiplier *= self.adjustment_for(key)
        return multiplier

    @staticmethod
    def keys_for(activity: Activity) -> list[str]:
        keys = []
        domain = activity.originator_domain
        if domain:
            keys.append(f"{DOMAIN_KEY_PREFIX}{domain}")
        if activity.content_length:
            bucket = (activity.content_length // LENGTH_BUCKET_WORDS) * LENGTH_BUCKET_WORDS
            keys.append(f"{LENGTH_KEY_PREFIX}{bucket}")
        return keys

    async def record_correction(
        self, key: str, estimated_minutes: float, confirmed_minutes: float
    ) -> float | None:
        """
        Blend ``confirmed / estimated`` into the multiplier for ``key``.

        Returns the new multiplier, or None when the correction was ignored
        because the original estimate carries no usable ratio.
        """
        if confirmed_minutes < 0:
            raise CorrectionError(f"Confirmed minutes must be >= 0, got {confirmed_minutes}")
        if estimated_minutes <= 0:
            logger.warning(
                "Ignoring correction against non-positive estimate",
                key=key,
                estimated_minutes=estimated_minutes,
            )
            return None

        ratio = confirmed_minutes / estimated_minutes
        old = self._profile.get(key, self.DEFAULT_MULTIPLIER)
        new = (old + ratio) / 2

        updated = {**self._profile, key: new}
        await self.repository.save_correction_profile(updated)
        self._profile = updated

        logger.info(
            "Correction recorded",
            key=key,
            ratio=round(ratio, 4),
            old_multiplier=round(old, 4),
            new_multiplier=round(new, 4),
        )
        return new

    async def record_corrections(
        self, keys: Iterable[str], estimated_minutes: float, confirmed_minutes: float
    ) -> dict[str, float]:
        updated = {}
        for key in keys:
            new = await self.record_correction(key, estimated_minutes, confirmed_minutes)
            if new is not None:
                updated[key] = new
        return updated
