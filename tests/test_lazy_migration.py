import pytest

from civictrack.models.issue import Priority, SLAStatus
from civictrack.repositories.issue_repository import InMemoryIssueRepository
from civictrack.services.lazy_migration import LazyMigrationGate
from civictrack.services.sla_status_engine import SLAStatusEngine
from civictrack.services.writeback_queue import WriteBackQueue

from tests.conftest import NOW, after, issue_document, legacy_document


class FlakyRepository(InMemoryIssueRepository):
    """Fails the first `failures` updates."""

    def __init__(self, documents, failures):
        super().__init__(documents)
        self.failures = failures
        self.attempts = 0

    def update(self, issue_id, fields):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("deadline exceeded")
        super().update(issue_id, fields)


@pytest.fixture
def gate(notifications, writeback):
    return LazyMigrationGate(SLAStatusEngine(notifications), writeback)


def test_legacy_issue_is_upgraded_in_memory(gate, repository, writeback):
    repository.documents["old"] = legacy_document()

    issue = gate.process(repository.get("old"), NOW)

    assert issue.priority == Priority.MEDIUM
    assert issue.sla_days == 4
    assert issue.sla_start_date == "2024-01-15T12:00:00.000Z"
    assert issue.sla_end_date == "2024-01-19T12:00:00.000Z"
    assert issue.days_remaining == 4.0
    assert issue.sla_status == SLAStatus.ON_TRACK
    assert issue.admin_escalated_priority == Priority.LOW
    # Not persisted until the queue is drained
    assert "slaStatus" not in repository.documents["old"]
    assert writeback.pending_count == 1


def test_write_back_persists_synthesized_fields(gate, repository, writeback):
    repository.documents["old"] = legacy_document()
    gate.process(repository.get("old"), NOW)

    result = writeback.drain()

    assert result.written == ["old"]
    stored = repository.documents["old"]
    assert stored["priority"] == "medium"
    assert stored["slaDays"] == 4
    assert stored["slaStatus"] == "ON_TRACK"
    assert stored["adminEscalatedPriority"] == "low"
    assert stored["title"] == "Streetlight out"


def test_existing_priority_is_kept(gate, repository, writeback):
    repository.documents["old"] = legacy_document(priority="HIGH")

    issue = gate.process(repository.get("old"), NOW)
    writeback.drain()

    assert issue.priority == Priority.HIGH
    assert issue.sla_days == 2
    assert repository.documents["old"]["priority"] == "HIGH"


def test_terminal_legacy_issue_passes_through(gate, repository, writeback):
    repository.documents["closed"] = legacy_document(status="resolved")

    issue = gate.process(repository.get("closed"), NOW)

    assert issue.sla_status is None
    assert issue.priority is None
    assert writeback.pending_count == 0


def test_tracked_issue_is_refreshed(gate, repository, writeback):
    repository.documents["open"] = issue_document(priority="medium")

    issue = gate.process(repository.get("open"), after(days=3))
    writeback.drain()

    assert issue.sla_status == SLAStatus.AT_RISK
    assert issue.admin_escalated_priority == Priority.HIGH
    assert repository.documents["open"]["daysRemaining"] == 1.0
    assert repository.documents["open"]["slaStatus"] == "AT_RISK"
    # Creation-time fields are never recomputed
    assert repository.documents["open"]["slaEndDate"] == "2024-01-19T12:00:00.000Z"


def test_unchanged_tracked_issue_queues_nothing(gate, repository, writeback):
    repository.documents["open"] = issue_document()

    gate.process(repository.get("open"), NOW)

    assert writeback.pending_count == 0


def test_write_back_failure_does_not_reach_the_reader(notifications, sleeps):
    repository = FlakyRepository({"old": legacy_document()}, failures=10)
    writeback = WriteBackQueue(repository, max_attempts=3, backoff_seconds=0.5, sleep=sleeps.append)
    gate = LazyMigrationGate(SLAStatusEngine(notifications), writeback)

    issue = gate.process(repository.get("old"), NOW)
    result = writeback.drain()

    assert issue.sla_status == SLAStatus.ON_TRACK
    assert result.failed == ["old"]
    assert len(writeback.failed) == 1
    assert writeback.failed[0].attempts == 3
    assert "deadline exceeded" in writeback.failed[0].last_error
    assert sleeps == [0.5, 1.0]
    assert "slaStatus" not in repository.documents["old"]


def test_write_back_retries_until_success(notifications, sleeps):
    repository = FlakyRepository({"old": legacy_document()}, failures=1)
    writeback = WriteBackQueue(repository, max_attempts=3, backoff_seconds=0.5, sleep=sleeps.append)
    gate = LazyMigrationGate(SLAStatusEngine(notifications), writeback)

    gate.process(repository.get("old"), NOW)
    result = writeback.drain()

    assert result.written == ["old"]
    assert list(writeback.failed) == []
    assert sleeps == [0.5]
    assert repository.documents["old"]["slaStatus"] == "ON_TRACK"


def test_repeated_reads_merge_into_one_job(gate, repository, writeback):
    repository.documents["open"] = issue_document(priority="medium")

    gate.process(repository.get("open"), after(days=1))
    gate.process(repository.get("open"), after(days=2))

    assert writeback.pending_count == 1
    writeback.drain()
    assert repository.documents["open"]["daysRemaining"] == 2.0


def test_failed_jobs_are_bounded(notifications, sleeps):
    documents = {issue_id: legacy_document() for issue_id in ("a", "b", "c")}
    repository = FlakyRepository(documents, failures=100)
    writeback = WriteBackQueue(
        repository, max_attempts=1, backoff_seconds=0.5, sleep=sleeps.append, failed_limit=2
    )
    gate = LazyMigrationGate(SLAStatusEngine(notifications), writeback)

    gate.process_many([repository.get(issue_id) for issue_id in ("a", "b", "c")], NOW)
    result = writeback.drain()

    assert result.failed == ["a", "b", "c"]
    assert [job.issue_id for job in writeback.failed] == ["b", "c"]

    popped = writeback.pop_failed()
    assert [job.issue_id for job in popped] == ["b", "c"]
    assert len(writeback.failed) == 0
