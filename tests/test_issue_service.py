import pytest

from civictrack.core.exceptions import InvalidTransitionError, IssueNotFoundError
from civictrack.models.issue import IssueCreate, IssueStatus, Priority, SLAOutcome, SLAStatus
from civictrack.services.notification_service import NotificationKind
from civictrack.utils.timeutils import parse_timestamp

from tests.conftest import NOW, after, issue_document, legacy_document


def submission(**overrides):
    data = {
        "title": "Pothole near bus stop",
        "description": "urgent safety hazard for two-wheelers",
        "category": "Pothole",
        "coordinates": {"lat": 18.5204, "lng": 73.8567},
        "uid": "citizen-9",
    }
    data.update(overrides)
    return IssueCreate(**data)


class TestSubmission:

    def test_priority_drives_sla(self, service, repository):
        issue, result = service.submit_issue(submission(), now=NOW)

        assert result.priority == Priority.HIGH
        assert result.confidence == 0.7
        assert issue.priority == Priority.HIGH
        assert issue.sla_days == 2
        assert parse_timestamp(issue.sla_end_date) == after(days=2)

        stored = repository.documents[issue.id]
        assert stored["priority"] == "high"
        assert stored["category"] == "pothole"
        assert stored["status"] == "pending"
        assert stored["slaStatus"] == "ON_TRACK"
        assert stored["daysRemaining"] == 2.0
        assert stored["slaEndDate"] == "2024-01-17T12:00:00.000Z"
        assert stored["aiAnalysis"]["confidence"] == 0.7
        assert stored["statusHistory"][0]["to"] == "pending"

    def test_submission_notifies_reporter(self, service, sink):
        issue, _ = service.submit_issue(submission(), now=NOW)

        assert len(sink.sent) == 1
        assert sink.sent[0].kind == NotificationKind.SUBMISSION
        assert sink.sent[0].recipient == "citizen-9"
        assert issue.id in sink.sent[0].body

    def test_confident_external_signal_sets_sla(self, service):
        issue, result = service.submit_issue(
            submission(external_signal={"priority": "LOW", "confidence": 0.95}), now=NOW
        )

        assert result.priority == Priority.LOW
        assert issue.sla_days == 7

    def test_persistence_failure_propagates(self, service, repository):
        def broken_add(fields):
            raise ConnectionError("firestore unavailable")
        repository.add = broken_add

        with pytest.raises(ConnectionError):
            service.submit_issue(submission(), now=NOW)


class TestReads:

    def test_get_missing_issue(self, service):
        with pytest.raises(IssueNotFoundError):
            service.get_issue("nope", NOW)

    def test_list_is_newest_first_and_filtered(self, service, repository):
        repository.documents["older"] = issue_document(created=NOW)
        repository.documents["newer"] = issue_document(created=after(days=1))
        repository.documents["other"] = issue_document(created=after(days=2), uid="citizen-7")

        assert [i.id for i in service.list_issues(now=after(days=2))] == ["other", "newer", "older"]
        assert [i.id for i in service.list_issues(uid="citizen-1", now=after(days=2))] == ["newer", "older"]

    def test_read_refreshes_sla_and_queues_write(self, service, repository, writeback):
        repository.documents["a"] = issue_document(priority="medium")

        issue = service.get_issue("a", after(days=3))

        assert issue.days_remaining == 1.0
        assert issue.sla_status == SLAStatus.AT_RISK
        assert repository.documents["a"]["daysRemaining"] == 4.0

        service.flush_writebacks()
        assert repository.documents["a"]["daysRemaining"] == 1.0

    def test_legacy_issue_is_upgraded_on_read(self, service, repository):
        repository.documents["old"] = legacy_document()

        issue = service.get_issue("old", NOW)
        service.flush_writebacks()

        assert issue.sla_status == SLAStatus.ON_TRACK
        assert repository.documents["old"]["slaDays"] == 4


class TestTransitions:

    def test_plan_moves_to_in_progress(self, service, repository, sink):
        repository.documents["a"] = issue_document()

        issue = service.transition("a", "plan", "officer-1", note="Crew assigned", now=after(hours=2))

        assert issue.status == IssueStatus.IN_PROGRESS
        history = repository.documents["a"]["statusHistory"]
        assert history[-1]["from"] == "pending"
        assert history[-1]["to"] == "in-progress"
        assert history[-1]["changed_by"] == "officer-1"
        assert history[-1]["note"] == "Crew assigned"
        assert sink.sent[-1].kind == NotificationKind.STATUS_CHANGE
        assert "in-progress" in sink.sent[-1].body

    def test_resolve_before_deadline_is_within_sla(self, service, repository, sink):
        repository.documents["a"] = issue_document(priority="medium")

        issue = service.transition("a", "resolve", "officer-1", now=after(days=1))

        assert issue.status == IssueStatus.RESOLVED
        assert issue.sla_outcome == SLAOutcome.WITHIN_SLA
        stored = repository.documents["a"]
        assert stored["slaOutcome"] == "WITHIN_SLA"
        assert stored["resolvedAt"] == "2024-01-16T12:00:00.000Z"
        assert stored["daysRemaining"] == 3.0
        assert sink.sent[-1].kind == NotificationKind.RESOLUTION

    def test_resolve_after_deadline_ignores_stale_status(self, service, repository, sink):
        # Stored slaStatus is still ON_TRACK: no sweep or read ran after the deadline
        repository.documents["a"] = issue_document(priority="critical")

        issue = service.transition("a", "resolve", "officer-1", now=after(days=2))

        assert issue.sla_outcome == SLAOutcome.BREACHED
        assert repository.documents["a"]["daysRemaining"] == -1.0
        assert [n.kind for n in sink.sent] == [NotificationKind.RESOLUTION]

    def test_resolve_exactly_at_deadline_is_breached(self, service, repository):
        repository.documents["a"] = issue_document(priority="critical")

        issue = service.transition("a", "resolve", "officer-1", now=after(days=1))

        assert issue.sla_outcome == SLAOutcome.BREACHED

    def test_reject_records_rejection_time(self, service, repository):
        repository.documents["a"] = issue_document()

        service.transition("a", "reject", "officer-1", note="Duplicate", now=after(hours=1))

        stored = repository.documents["a"]
        assert stored["status"] == "rejected"
        assert stored["rejectedAt"] == "2024-01-15T13:00:00.000Z"
        assert "slaOutcome" not in stored

    def test_terminal_issue_sla_is_frozen(self, service, repository, writeback, sink):
        repository.documents["a"] = issue_document(priority="high")
        service.transition("a", "resolve", "officer-1", now=after(days=1))
        sent = len(sink.sent)

        issue = service.get_issue("a", after(days=30))
        service.run_sla_sweep(now=after(days=30))

        assert issue.days_remaining == 1.0
        assert issue.sla_status == SLAStatus.ON_TRACK
        assert writeback.pending_count == 0
        assert repository.documents["a"]["daysRemaining"] == 1.0
        assert len(sink.sent) == sent

    def test_transition_out_of_terminal_status_is_rejected(self, service, repository):
        repository.documents["a"] = issue_document(status="resolved")

        with pytest.raises(InvalidTransitionError) as exc_info:
            service.transition("a", "plan", "officer-1", now=NOW)

        assert exc_info.value.allowed == []
        assert repository.documents["a"]["status"] == "resolved"

    def test_unknown_action(self, service, repository):
        repository.documents["a"] = issue_document()

        with pytest.raises(ValueError, match="Unknown action"):
            service.transition("a", "archive", "officer-1", now=NOW)

    def test_missing_issue(self, service):
        with pytest.raises(IssueNotFoundError):
            service.transition("nope", "plan", "officer-1", now=NOW)


def test_clusters_only_include_open_issues(service, repository):
    here = {"lat": 18.5204, "lng": 73.8567}
    near = {"lat": 18.5210, "lng": 73.8567}
    repository.documents["a"] = issue_document(coordinates=here)
    repository.documents["b"] = issue_document(coordinates=near, uid="citizen-3")
    repository.documents["c"] = issue_document(coordinates=near, status="resolved")

    clusters = service.get_clusters(radius=500, now=NOW)

    assert len(clusters) == 1
    assert sorted(issue.id for issue in clusters[0].issues) == ["a", "b"]
    assert clusters[0].target_user_ids[0] in ("citizen-1", "citizen-3")
    assert sorted(clusters[0].target_user_ids) == ["citizen-1", "citizen-3"]


def test_clusters_with_nothing_open(service, repository):
    repository.documents["c"] = issue_document(status="rejected", coordinates={"lat": 1, "lng": 1})

    assert service.get_clusters(radius=500, now=NOW) == []


def test_list_survives_legacy_record_with_null_text(service, repository):
    repository.documents["old"] = legacy_document(title=None, description=None, category=None)
    repository.documents["a"] = issue_document()

    issues = service.list_issues(now=NOW)

    assert sorted(issue.id for issue in issues) == ["a", "old"]
    old = next(issue for issue in issues if issue.id == "old")
    assert old.description == ""
    assert old.sla_status == SLAStatus.ON_TRACK


def test_clusters_skip_issue_with_invalid_coordinates(service, repository):
    repository.documents["a"] = issue_document(coordinates={"lat": 18.5204, "lng": 73.8567})
    repository.documents["b"] = issue_document(coordinates={"lat": 18.5210, "lng": 73.8567})
    repository.documents["bad"] = issue_document(coordinates={"lat": 0, "lng": 200})

    clusters = service.get_clusters(radius=500, now=NOW)

    assert len(clusters) == 1
    assert sorted(issue.id for issue in clusters[0].issues) == ["a", "b"]
    # Still visible to every other read
    assert service.get_issue("bad", NOW).coordinates is None
