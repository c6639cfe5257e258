"""
Status Workflow Engine - staff-driven issue status transitions.

Lifecycle:
    pending -> in-progress | escalated | resolved | rejected
    in-progress -> escalated | resolved | rejected
    escalated -> in-progress | resolved | rejected
    resolved, rejected: terminal

Staff actions map onto target statuses (plan, escalate, reject, resolve).
On resolution the SLA outcome is judged from the resolution time against
slaEndDate, never from the possibly stale slaStatus field.
"""

from datetime import datetime
from typing import Dict, List, Optional

from civictrack.core.exceptions import InvalidTransitionError
from civictrack.models.issue import Issue, IssueStatus, SLAOutcome
from civictrack.utils.timeutils import to_iso, utcnow


class StatusWorkflowEngine:

    ALLOWED_TRANSITIONS: Dict[IssueStatus, List[IssueStatus]] = {
        IssueStatus.PENDING: [
            IssueStatus.IN_PROGRESS, IssueStatus.ESCALATED, IssueStatus.RESOLVED, IssueStatus.REJECTED,
        ],
        IssueStatus.IN_PROGRESS: [IssueStatus.ESCALATED, IssueStatus.RESOLVED, IssueStatus.REJECTED],
        IssueStatus.ESCALATED: [IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED, IssueStatus.REJECTED],
        IssueStatus.RESOLVED: [],
        IssueStatus.REJECTED: [],
    }

    ACTIONS: Dict[str, IssueStatus] = {
        "plan": IssueStatus.IN_PROGRESS,
        "escalate": IssueStatus.ESCALATED,
        "reject": IssueStatus.REJECTED,
        "resolve": IssueStatus.RESOLVED,
    }

    @classmethod
    def target_status(cls, action: str) -> IssueStatus:
        try:
            return cls.ACTIONS[action]
        except KeyError:
            raise ValueError(f"Unknown action {action!r}. Allowed actions: {sorted(cls.ACTIONS)}")

    @classmethod
    def is_valid_transition(cls, from_status: IssueStatus, to_status: IssueStatus) -> bool:
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: IssueStatus) -> List[str]:
        return [status.value for status in cls.ALLOWED_TRANSITIONS.get(current_status, [])]

    @classmethod
    def create_status_history_entry(
        cls,
        from_status: str,
        to_status: str,
        changed_by: str,
        timestamp: datetime,
        note: Optional[str] = None,
    ) -> Dict:
        # Plain ISO timestamp: Firestore rejects SERVER_TIMESTAMP inside arrays
        return {
            "from": from_status,
            "to": to_status,
            "changed_by": changed_by,
            "timestamp": to_iso(timestamp),
            "note": note or "",
        }

    @classmethod
    def validate_transition(cls, issue: Issue, to_status: IssueStatus) -> None:
        if not cls.is_valid_transition(issue.status, to_status):
            raise InvalidTransitionError(
                issue.status.value, to_status.value, cls.get_allowed_transitions(issue.status)
            )


def sla_outcome(issue: Issue, resolved_at: Optional[datetime] = None) -> Optional[SLAOutcome]:
    """Within SLA only when resolved strictly before slaEndDate. None without an SLA."""
    end = issue.sla_end
    if end is None:
        return None
    resolved_at = resolved_at or utcnow()
    return SLAOutcome.WITHIN_SLA if resolved_at < end else SLAOutcome.BREACHED
