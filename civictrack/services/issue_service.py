"""
Issue service - submission, reads and staff transitions.

Flows:
- submit: PriorityFusion -> SLA deadline -> persist -> submission notification
- read: every open issue passes the lazy migration gate (SLA refresh or
  legacy upgrade); resulting writes go to the write-back queue
- transition: staff actions; terminal transitions freeze daysRemaining and
  record the SLA outcome on resolution
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from civictrack.core.exceptions import IssueNotFoundError
from civictrack.models.issue import Cluster, Issue, IssueCreate, IssueStatus, PriorityResult
from civictrack.repositories.issue_repository import IssueRepository
from civictrack.services.lazy_migration import LazyMigrationGate
from civictrack.services.notification_service import NotificationService
from civictrack.services.priority_fusion import PriorityFusionService, get_priority_fusion_service
from civictrack.services.sla_calculator import calculate_sla
from civictrack.services.sla_status_engine import SECONDS_PER_DAY, SLAStatusEngine
from civictrack.services.spatial_clustering import find_issue_clusters
from civictrack.services.status_workflow import StatusWorkflowEngine, sla_outcome
from civictrack.services.writeback_queue import WriteBackQueue
from civictrack.utils.timeutils import to_iso, utcnow

logger = logging.getLogger(__name__)


class IssueService:

    def __init__(
        self,
        repository: IssueRepository,
        notifications: NotificationService,
        priority_fusion: Optional[PriorityFusionService] = None,
        writeback: Optional[WriteBackQueue] = None,
    ):
        self.repository = repository
        self.notifications = notifications
        self.priority_fusion = priority_fusion or get_priority_fusion_service()
        self.writeback = writeback or WriteBackQueue(repository)
        self.sla_engine = SLAStatusEngine(notifications)
        self.gate = LazyMigrationGate(self.sla_engine, self.writeback)
        self.workflow = StatusWorkflowEngine()

    def submit_issue(
        self,
        data: IssueCreate,
        images: Optional[List[bytes]] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Issue, PriorityResult]:
        """
        Create a new issue with fused priority and initial SLA fields.

        Persistence failures propagate; external signal failures never do.
        """
        now = now or utcnow()
        result = self.priority_fusion.determine_priority(
            category=data.category,
            description=data.description,
            external_signal=data.external_signal,
            images=images,
        )
        sla = calculate_sla(result.priority, now)

        issue = Issue.model_validate({
            "uid": data.uid,
            "title": data.title,
            "description": data.description,
            "category": data.category.strip().lower(),
            "priority": result.priority,
            "status": IssueStatus.PENDING,
            "coordinates": data.coordinates.model_dump() if data.coordinates else None,
            "mediaUrls": data.media_urls,
            "createdAt": to_iso(now),
            "updatedAt": to_iso(now),
            "aiAnalysis": {
                "confidence": result.confidence,
                "reasoning": result.reasoning,
                "analysis": result.analysis,
            },
            "statusHistory": [
                self.workflow.create_status_history_entry(
                    "", IssueStatus.PENDING.value, data.uid or "system", now, "Issue submitted"
                )
            ],
            **sla.as_fields(),
        })

        try:
            issue.id = self.repository.add(issue.to_document())
        except Exception as e:
            logger.error(f"Failed to save issue: {e}", exc_info=True)
            raise

        logger.info(
            f"✅ Issue created with ID: {issue.id} priority={result.priority.label} "
            f"({round(result.confidence * 100)}% confidence), SLA {sla.sla_days} days"
        )
        self.notifications.notify_submission(issue)
        return issue, result

    def list_issues(self, uid: Optional[str] = None, now: Optional[datetime] = None) -> List[Issue]:
        issues = self.repository.list_by_user(uid) if uid else self.repository.list_all()
        issues.sort(key=lambda issue: issue.created_at or "", reverse=True)
        return self.gate.process_many(issues, now)

    def get_issue(self, issue_id: str, now: Optional[datetime] = None) -> Issue:
        issue = self.repository.get(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return self.gate.process(issue, now)

    def get_clusters(self, radius: Optional[float] = None, now: Optional[datetime] = None) -> List[Cluster]:
        """Hotspots among open issues. Computed fresh on every call."""
        active = self.gate.process_many(self.repository.list_active(), now)
        clusters = find_issue_clusters(active, radius)
        logger.info(f"Found {len(clusters)} clusters among {len(active)} open issues")
        return clusters

    def transition(
        self,
        issue_id: str,
        action: str,
        actor_id: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Issue:
        """
        Apply a staff action (plan, escalate, reject, resolve).

        Raises:
            ValueError: unknown action
            IssueNotFoundError: no such issue
            InvalidTransitionError: transition not allowed from current status
        """
        now = now or utcnow()
        to_status = self.workflow.target_status(action)

        issue = self.repository.get(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        self.workflow.validate_transition(issue, to_status)

        from_status = issue.status
        history = list(issue.status_history)
        history.append(self.workflow.create_status_history_entry(
            from_status.value, to_status.value, actor_id, now, note
        ))
        fields: Dict = {
            "status": to_status.value,
            "updatedAt": to_iso(now),
            "statusHistory": history,
        }

        if to_status.is_terminal:
            # Last SLA evaluation; the engine skips terminal issues from here on
            end = issue.sla_end
            if end is not None:
                fields["daysRemaining"] = round((end - now).total_seconds() / SECONDS_PER_DAY, 2)
            if to_status == IssueStatus.RESOLVED:
                fields["resolvedAt"] = to_iso(now)
                outcome = sla_outcome(issue, now)
                if outcome is not None:
                    fields["slaOutcome"] = outcome.value
            else:
                fields["rejectedAt"] = to_iso(now)

        self.repository.update(issue_id, fields)
        logger.info(f"Issue {issue_id}: {from_status.value} → {to_status.value} by {actor_id}")

        updated = self.repository.get(issue_id)
        if to_status == IssueStatus.RESOLVED:
            self.notifications.notify_resolution(updated)
        else:
            self.notifications.notify_status_change(updated, to_status.value)

        return self.gate.process(updated, now)

    def run_sla_sweep(self, now: Optional[datetime] = None, apply: bool = True) -> Dict:
        return self.sla_engine.sweep(self.repository, now=now, apply=apply)

    def flush_writebacks(self):
        return self.writeback.drain()
