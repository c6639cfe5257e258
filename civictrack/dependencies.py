"""
Service wiring for the API.

Builds one repository, notification sink and IssueService per process.
Routes depend on get_issue_service so tests can override it with an
in-memory setup via app.dependency_overrides.
"""

from typing import Optional
import logging

from civictrack.core.settings import settings
from civictrack.repositories.issue_repository import (
    FirestoreIssueRepository,
    InMemoryIssueRepository,
    IssueRepository,
)
from civictrack.services.issue_service import IssueService
from civictrack.services.notification_service import (
    FirestoreNotificationSink,
    InMemoryNotificationSink,
    NotificationService,
    NotificationSink,
)
from civictrack.services.priority_fusion import get_priority_fusion_service
from civictrack.services.writeback_queue import WriteBackQueue

logger = logging.getLogger(__name__)

_repository: Optional[IssueRepository] = None
_sink: Optional[NotificationSink] = None
_issue_service: Optional[IssueService] = None


def get_issue_repository() -> IssueRepository:
    global _repository
    if _repository is None:
        if settings.USE_MOCK_DB:
            logger.info("[REPOSITORY] USING IN-MEMORY ISSUE REPOSITORY")
            _repository = InMemoryIssueRepository()
        else:
            from civictrack.config.firebase import get_db
            _repository = FirestoreIssueRepository(get_db(), settings.ISSUES_COLLECTION)
    return _repository


def get_notification_sink() -> NotificationSink:
    global _sink
    if _sink is None:
        if settings.USE_MOCK_DB:
            _sink = InMemoryNotificationSink()
        else:
            from civictrack.config.firebase import get_db
            _sink = FirestoreNotificationSink(get_db(), settings.USERS_COLLECTION)
    return _sink


def get_issue_service() -> IssueService:
    """Get or create the IssueService singleton."""
    global _issue_service
    if _issue_service is None:
        repository = get_issue_repository()
        _issue_service = IssueService(
            repository=repository,
            notifications=NotificationService(get_notification_sink()),
            priority_fusion=get_priority_fusion_service(),
            writeback=WriteBackQueue(repository),
        )
    return _issue_service
