import os

# Must be set before civictrack.core.settings is imported
os.environ.setdefault("USE_MOCK_DB", "true")
os.environ.setdefault("AI_ENABLED", "false")
os.environ.setdefault("SLA_SWEEP_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from civictrack.dependencies import get_issue_service
from civictrack.main import app
from civictrack.repositories.issue_repository import InMemoryIssueRepository
from civictrack.services.issue_service import IssueService
from civictrack.services.notification_service import InMemoryNotificationSink, NotificationService
from civictrack.services.priority_fusion import PriorityFusionService
from civictrack.services.sla_calculator import calculate_sla
from civictrack.services.writeback_queue import WriteBackQueue

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def issue_document(priority="medium", created=NOW, status="pending", uid="citizen-1", **extra):
    """Stored issue document as written at submission time `created`."""
    doc = {
        "uid": uid,
        "title": "Pothole on MG Road",
        "description": "Large pothole",
        "category": "pothole",
        "priority": priority,
        "status": status,
        "createdAt": created.isoformat(),
    }
    doc.update(calculate_sla(priority, created).as_fields())
    doc.update(extra)
    return doc


def legacy_document(status="pending", **extra):
    """Issue stored before SLA tracking existed."""
    doc = {
        "uid": "citizen-2",
        "title": "Streetlight out",
        "description": "Light not working for a week",
        "category": "streetlight",
        "status": status,
        "createdAt": "2023-06-01T08:00:00.000Z",
    }
    doc.update(extra)
    return doc


def after(days: float = 0, hours: float = 0) -> datetime:
    return NOW + timedelta(days=days, hours=hours)


@pytest.fixture
def repository():
    return InMemoryIssueRepository()


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def notifications(sink):
    return NotificationService(sink)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def writeback(repository, sleeps):
    return WriteBackQueue(repository, max_attempts=3, backoff_seconds=0.5, sleep=sleeps.append)


@pytest.fixture
def service(repository, notifications, writeback):
    return IssueService(
        repository=repository,
        notifications=notifications,
        priority_fusion=PriorityFusionService(signal_registry=None),
        writeback=writeback,
    )


@pytest.fixture
def client(service):
    app.dependency_overrides[get_issue_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
