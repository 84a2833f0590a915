"""
Integration test fixtures for the HTTP API.

The app runs its real lifespan against an in-memory adapter and a manual
clock, so tests decide when scheduled transitions fire.
"""

import random
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from mediajobs.api.main import create_app
from mediajobs.services.lifecycle import LifecycleService
from mediajobs.services.persistence import InMemoryJobAdapter
from mediajobs.services.storage import TokenShareLinkFactory
from mediajobs.tasks.timers import ManualTimers


@pytest.fixture(scope="function")
def api_timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture(scope="function")
def client(settings, api_timers, notifier) -> Generator[TestClient, None, None]:
    """Test client with the lifecycle service running on a manual clock."""

    def service_factory() -> LifecycleService:
        return LifecycleService.build(
            settings=settings,
            adapter=InMemoryJobAdapter(),
            timers=api_timers,
            notifier=notifier,
            link_factory=TokenShareLinkFactory(settings.share_link_base_url),
            rng=random.Random(11),
            clock=lambda: api_timers.now,
        )

    app = create_app(service_factory=service_factory)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_headers(owner) -> dict:
    return {"X-User-Id": owner.id, "X-User-Role": "user"}


@pytest.fixture
def other_headers(other_user) -> dict:
    return {"X-User-Id": other_user.id}


@pytest.fixture
def admin_headers(admin) -> dict:
    return {"X-User-Id": admin.id, "X-User-Role": "admin"}


@pytest.fixture
def submit_payload() -> dict:
    return {
        "file_name": "product_demo.mp4",
        "size_bytes": 100 * 1024 * 1024,
        "content_type": "video/mp4",
        "duration_label": "2:45",
        "format": "mp4",
        "resolution": "720p",
        "options": {"compression": True, "thumbnails": True},
    }


@pytest.fixture
def submitted_job(client, user_headers, submit_payload) -> dict:
    response = client.post("/api/v1/jobs", json=submit_payload, headers=user_headers)
    assert response.status_code == 202
    return response.json()
