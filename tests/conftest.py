from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from app.config import Settings
from app.features.time_inference.domain.models import (
    CalendarActivity,
    Category,
    Classification,
    DocumentActivity,
    MessageActivity,
    TimeEstimate,
)
from app.features.time_inference.pipeline.entries.builder import EntryBuilder
from app.features.time_inference.services.engine import build_engine
from app.features.time_inference.sources.ports import StaticActivitySource
from app.services.infrastructure.redis_client import RedisClientError

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
TENANT = "timebeacon.io"


class FakeRedis:
    """In-memory stand-in for RedisClient (strings and hashes)."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.fail_commands: set[str] = set()

    def _check(self, command: str):
        if command in self.fail_commands:
            raise RedisClientError(f"{command} failed: connection reset", command=command)

    async def ping(self) -> bool:
        return "PING" not in self.fail_commands

    async def get(self, key: str) -> str | None:
        self._check("GET")
        return self.store.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._check("SET")
        self.store[key] = value
        return True

    async def hset(self, key: str, field: str, value: str) -> bool:
        self._check("HSET")
        self.hashes.setdefault(key, {})[field] = value
        return True

    async def hget(self, key: str, field: str) -> str | None:
        self._check("HGET")
        return self.hashes.get(key, {}).get(field)

    async def hexists(self, key: str, field: str) -> bool:
        self._check("HEXISTS")
        return field in self.hashes.get(key, {})

    async def hvals(self, key: str) -> list[str]:
        self._check("HVALS")
        return list(self.hashes.get(key, {}).values())


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def sequential_ids(prefix: str = "id"):
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


def make_message(source_id: str = "gmail-1", **overrides) -> MessageActivity:
    values = {
        "source_id": source_id,
        "title": "Quarterly budget",
        "originator": "client@example.org",
        "participants": (f"me@{TENANT}",),
        "timestamp": NOW - timedelta(hours=3),
        "content_length": 300,
    }
    values.update(overrides)
    return MessageActivity(**values)


def make_meeting(source_id: str = "calendar-1", **overrides) -> CalendarActivity:
    start = overrides.pop("timestamp", NOW.replace(hour=9, minute=0))
    values = {
        "source_id": source_id,
        "title": "Roadmap review",
        "originator": f"me@{TENANT}",
        "participants": (f"me@{TENANT}", "bob@external.com"),
        "timestamp": start,
        "end_time": start + timedelta(minutes=30),
    }
    values.update(overrides)
    return CalendarActivity(**values)


def make_document(source_id: str = "drive-1", **overrides) -> DocumentActivity:
    values = {
        "source_id": source_id,
        "title": "Budget forecast",
        "originator": f"me@{TENANT}",
        "timestamp": NOW - timedelta(hours=2),
        "document_type": "doc",
    }
    values.update(overrides)
    return DocumentActivity(**values)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def source():
    return StaticActivitySource()


@pytest.fixture
def engine(source, clock):
    return build_engine(
        make_settings(), source, clock=clock, id_factory=sequential_ids("entry")
    )


@pytest.fixture
def make_candidate():
    builder = EntryBuilder(billable_threshold=0.7)

    def _make(activity=None, minutes=30, confidence=0.8, source=None, category=Category.EXTERNAL):
        activity = activity or make_message()
        estimate = TimeEstimate(
            minutes=minutes,
            confidence=confidence,
            source=source or "heuristic_estimated",
        )
        classification = Classification(
            project="General Work", client="Unassigned Client", category=category
        )
        return builder.build(
            activity, estimate, classification, correction_keys=("domain:example.org",)
        )

    return _make
