"""
Shared fixtures: a fresh in-memory repository and a recording calendar client
injected into the FastAPI app through dependency overrides.
"""
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from assignment_api.assistant import UnconfiguredAssistant  # noqa: E402
from assignment_api.dependencies import get_assignment_enricher, get_calendar_client, get_study_assistant  # noqa: E402
from assignment_api.enrichment import NullEnricher  # noqa: E402
from assignment_api.errors import CalendarAPIError  # noqa: E402
from assignment_api.main import app  # noqa: E402
from assignment_api.models import CalendarCredentials  # noqa: E402
from assignment_api.repositories import InMemoryRepository, get_repository  # noqa: E402


class FakeCalendarClient:
    """Records calls instead of talking to Google. Set `fail` to make every call raise."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Optional[str], Dict[str, Any]]] = []
        self.fail = False
        self._next = 0

    def _check(self) -> None:
        if self.fail:
            raise CalendarAPIError("boom")

    async def create_event(self, credentials: CalendarCredentials, event: Dict[str, Any]) -> str:
        self._check()
        self._next += 1
        event_id = f"evt-{self._next}"
        self.calls.append(("create", event_id, event))
        return event_id

    async def update_event(self, credentials: CalendarCredentials, event_id: str, event: Dict[str, Any]) -> None:
        self._check()
        self.calls.append(("update", event_id, event))

    async def delete_event(self, credentials: CalendarCredentials, event_id: str) -> None:
        self._check()
        self.calls.append(("delete", event_id, {}))


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def calendar_client() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def client(repo, calendar_client):
    """Create a test client for the FastAPI app backed by the fixtures above."""
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_calendar_client] = lambda: calendar_client
    app.dependency_overrides[get_assignment_enricher] = lambda: NullEnricher()
    app.dependency_overrides[get_study_assistant] = lambda: UnconfiguredAssistant()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"X-User-Id": "student-1"}


@pytest.fixture
def other_headers() -> Dict[str, str]:
    return {"X-User-Id": "student-2"}
