"""
Shared fixtures for mediajobs tests.
"""

import os
import random
from typing import Generator

# ============================================================================
# Set test environment BEFORE any mediajobs imports
# ============================================================================
os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["SEED_SAMPLE_JOBS"] = "false"
os.environ["NOTIFIER_BACKEND"] = "log"
os.environ["INFLIGHT_BACKEND"] = "local"
os.environ["SHARE_LINK_BACKEND"] = "token"

# Clear cached settings before any import
import mediajobs.core.config
mediajobs.core.config.get_settings.cache_clear()

import pytest
from faker import Faker

from mediajobs.core.config import Settings
from mediajobs.models import Identity, JobRecord, Role
from mediajobs.services.lifecycle import FileMeta, LifecycleService
from mediajobs.services.notifications import JobEvent
from mediajobs.services.persistence import InMemoryJobAdapter
from mediajobs.services.storage import TokenShareLinkFactory
from mediajobs.services.store import JobStore
from mediajobs.tasks.timers import ManualTimers

fake = Faker()

MB = 1024 * 1024

QUEUE_DELAY = 2.0
PROCESSING_DELAY = 5.0
REPROCESS_DELAY = 3.0


class RecordingNotifier:
    """Collects notifications instead of delivering them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, JobEvent, dict]] = []

    def notify(self, job_id: str, event: JobEvent, details: dict | None = None) -> None:
        self.events.append((job_id, JobEvent(event), details or {}))

    def for_job(self, job_id: str) -> list[JobEvent]:
        return [event for jid, event, _ in self.events if jid == job_id]

    def details(self, job_id: str, event: JobEvent) -> dict:
        matches = [d for jid, e, d in self.events if jid == job_id and e == event]
        assert matches, f"no {event.value} notification for {job_id}"
        return matches[-1]


# ============================================================================
# Settings & Collaborators
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with fixed delays so transitions fire at known times."""
    return Settings(
        persistence_backend="memory",
        seed_sample_jobs=False,
        queue_delay_min_seconds=QUEUE_DELAY,
        queue_delay_max_seconds=QUEUE_DELAY,
        processing_delay_min_seconds=PROCESSING_DELAY,
        processing_delay_max_seconds=PROCESSING_DELAY,
        reprocess_delay_min_seconds=REPROCESS_DELAY,
        reprocess_delay_max_seconds=REPROCESS_DELAY,
    )


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def adapter() -> InMemoryJobAdapter:
    return InMemoryJobAdapter()


@pytest.fixture
def store(adapter: InMemoryJobAdapter) -> JobStore:
    store = JobStore(adapter)
    store.load()
    return store


@pytest.fixture
def lifecycle(
    settings: Settings,
    adapter: InMemoryJobAdapter,
    timers: ManualTimers,
    notifier: RecordingNotifier,
) -> Generator[LifecycleService, None, None]:
    """Started lifecycle service on a manual clock."""
    service = LifecycleService.build(
        settings=settings,
        adapter=adapter,
        timers=timers,
        notifier=notifier,
        link_factory=TokenShareLinkFactory(settings.share_link_base_url),
        rng=random.Random(7),
        clock=lambda: timers.now,
    )
    service.start()
    yield service
    service.shutdown()


# ============================================================================
# Identity Fixtures
# ============================================================================


@pytest.fixture
def owner() -> Identity:
    return Identity(id=fake.uuid4(), role=Role.USER, name=fake.name())


@pytest.fixture
def other_user() -> Identity:
    return Identity(id=fake.uuid4(), role=Role.USER, name=fake.name())


@pytest.fixture
def admin() -> Identity:
    return Identity(id=fake.uuid4(), role=Role.ADMIN, name=fake.name())


# ============================================================================
# Job Fixtures
# ============================================================================


@pytest.fixture
def file_meta() -> FileMeta:
    """A 100 MB mp4 upload."""
    return FileMeta(
        file_name="product_demo.mp4",
        size_bytes=100 * MB,
        content_type="video/mp4",
        duration_label="2:45",
    )


@pytest.fixture
def make_record():
    """Factory for records that bypass the lifecycle service."""

    def _make(owner_id: str | None = None, **overrides) -> JobRecord:
        data = {
            "owner_id": owner_id or fake.uuid4(),
            "original_file_name": f"{fake.word()}_{fake.word()}.mp4",
            "format": "mp4",
            "resolution": "720p",
            "size_bytes": 10 * MB,
        }
        data.update(overrides)
        return JobRecord(**data)

    return _make
