"""
Runtime-updatable review policy and sync inclusion settings.

Updates are validated at the boundary: out-of-range values raise
PolicyValidationError instead of being clamped.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.features.time_inference.domain.models import SourceKind
from app.features.time_inference.errors import PolicyValidationError


class _PolicyModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def merged(self, partial: dict[str, Any]):
        """Return a copy with ``partial`` applied, validating the result."""
        return _validate(type(self), {**self.model_dump(), **(partial or {})})


def _validate(model: type[BaseModel], data: dict[str, Any]):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise PolicyValidationError(
            f"Invalid {model.__name__}: {first.get('msg', str(exc))}", field=field
        ) from exc


class ReviewPolicy(_PolicyModel):
    auto_approve: bool = False
    confidence_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    require_approval: bool = True

    @classmethod
    def create(cls, **values: Any) -> "ReviewPolicy":
        return _validate(cls, values)


class SyncSettings(_PolicyModel):
    min_duration_minutes: int = Field(default=5, ge=0)
    exclude_patterns: tuple[str, ...] = ()
    disabled_sources: tuple[SourceKind, ...] = ()

    @field_validator("exclude_patterns")
    @classmethod
    def _patterns_compile(cls, patterns: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid exclude pattern {pattern!r}: {exc}") from exc
        return patterns

    @classmethod
    def create(cls, **values: Any) -> "SyncSettings":
        return _validate(cls, values)

    def compiled_patterns(self) -> list[re.Pattern]:
        return [re.compile(pattern, re.IGNORECASE) for pattern in self.exclude_patterns]

    def is_source_enabled(self, kind: SourceKind) -> bool:
        return kind not in self.disabled_sources
