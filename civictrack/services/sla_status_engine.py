"""
SLA Status Engine - recomputes remaining time and SLA classification of open issues.

Runs in two uncoordinated modes:
- lazily, whenever an open issue is read (via the lazy migration gate)
- proactively, from the periodic sweep over all non-terminal issues

Both use the same evaluation. The evaluation is a pure function of the
issue and the current time; an idempotence guard reports "no change" when
nothing moved, so duplicate evaluations neither write nor notify. Entering
BREACHED from any other state notifies the citizen and staff once.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from civictrack.models.issue import Issue, Priority, SLAStatus, SLAUpdate
from civictrack.repositories.issue_repository import IssueRepository
from civictrack.services.notification_service import NotificationService
from civictrack.services.sla_calculator import get_sla_days
from civictrack.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class SLAStatusEngine:

    # Configuration: fraction of the SLA window left at which an issue is AT_RISK
    AT_RISK_FRACTION = 0.5

    # Configuration: admin escalation by fraction of the window left
    ESCALATION_HIGH_FRACTION = 0.25
    ESCALATION_MEDIUM_FRACTION = 0.5

    # Configuration: daysRemaining drift below this is not worth a write
    DAYS_REMAINING_TOLERANCE = 0.01

    def __init__(self, notifications: Optional[NotificationService] = None):
        self.notifications = notifications

    def evaluate(self, issue: Issue, now: Optional[datetime] = None) -> Optional[SLAUpdate]:
        """
        Evaluate an issue's SLA state at `now`.

        Returns:
            SLAUpdate when any SLA field changed, None for "no change"
            (terminal issue, no slaEndDate, or nothing moved).
        """
        if issue.is_terminal:
            return None

        end = issue.sla_end
        if end is None:
            return None

        now = now or utcnow()
        total_seconds = self._total_duration_days(issue) * SECONDS_PER_DAY
        remaining_seconds = (end - now).total_seconds()

        days_remaining = round(remaining_seconds / SECONDS_PER_DAY, 2)
        percentage_left = remaining_seconds / total_seconds

        if days_remaining <= 0:
            sla_status = SLAStatus.BREACHED
        elif remaining_seconds <= total_seconds * self.AT_RISK_FRACTION:
            sla_status = SLAStatus.AT_RISK
        else:
            sla_status = SLAStatus.ON_TRACK

        if days_remaining <= 0 or percentage_left <= 0:
            escalated = Priority.CRITICAL
        elif percentage_left <= self.ESCALATION_HIGH_FRACTION:
            escalated = Priority.HIGH
        elif percentage_left <= self.ESCALATION_MEDIUM_FRACTION:
            escalated = Priority.MEDIUM
        else:
            escalated = Priority.LOW

        if (
            issue.sla_status == sla_status
            and issue.admin_escalated_priority == escalated
            and issue.days_remaining is not None
            and abs(issue.days_remaining - days_remaining) < self.DAYS_REMAINING_TOLERANCE
        ):
            return None

        return SLAUpdate(
            days_remaining=days_remaining,
            sla_status=sla_status,
            admin_escalated_priority=escalated,
            newly_breached=sla_status == SLAStatus.BREACHED and issue.sla_status != SLAStatus.BREACHED,
        )

    def refresh(self, issue: Issue, now: Optional[datetime] = None) -> Optional[SLAUpdate]:
        """
        Evaluate, merge any change into the in-memory issue and send the
        breach notification if this evaluation observed the breach first.
        Persisting the change is the caller's job.
        """
        update = self.evaluate(issue, now)
        if update is None:
            return None

        self.apply(issue, update)
        if update.newly_breached:
            self._notify_breach(issue)
        return update

    @staticmethod
    def apply(issue: Issue, update: SLAUpdate) -> Issue:
        issue.days_remaining = update.days_remaining
        issue.sla_status = update.sla_status
        issue.admin_escalated_priority = update.admin_escalated_priority
        return issue

    def sweep(self, repository: IssueRepository, now: Optional[datetime] = None, apply: bool = True) -> Dict:
        """
        Periodic check over every non-terminal issue.

        Args:
            repository: Issue repository to read and update
            now: Evaluation instant (defaults to current UTC time)
            apply: When False, evaluate only (no writes, no notifications)

        Returns:
            Summary dict with checked / updated / breached counts
        """
        now = now or utcnow()
        logger.info("⏰ Starting SLA status sweep...")

        issues = repository.list_active()
        if not issues:
            logger.info("✅ No active issues to check.")
            return {"checked": 0, "updated": 0, "breached": 0, "breached_ids": []}

        updates: List[Tuple[Issue, SLAUpdate]] = []
        for issue in issues:
            try:
                update = self.evaluate(issue, now)
            except Exception as e:
                logger.error(f"Failed to evaluate SLA for issue {issue.id}: {e}")
                continue
            if update is not None:
                updates.append((issue, update))

        breached = [issue for issue, update in updates if update.newly_breached]
        summary = {
            "checked": len(issues),
            "updated": len(updates),
            "breached": len(breached),
            "breached_ids": [issue.id for issue in breached],
        }

        if not apply or not updates:
            logger.info(f"SLA sweep finished: {summary['checked']} checked, {summary['updated']} to update (apply={apply})")
            return summary

        repository.update_many((issue.id, update.as_fields()) for issue, update in updates)
        logger.info(f"✅ Updated SLA status for {len(updates)} issues.")

        for issue, update in updates:
            self.apply(issue, update)
        if breached:
            logger.warning(f"⚠️ Identified {len(breached)} new SLA breaches.")
            for issue in breached:
                self._notify_breach(issue)

        return summary

    def _total_duration_days(self, issue: Issue) -> float:
        if issue.sla_days and issue.sla_days > 0:
            return float(issue.sla_days)

        start, end = issue.sla_start, issue.sla_end
        if start is not None and end is not None and end > start:
            return (end - start).total_seconds() / SECONDS_PER_DAY

        return float(get_sla_days(issue.priority))

    def _notify_breach(self, issue: Issue) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.notify_breach(issue)
        except Exception as e:
            logger.error(f"Failed to send breach notification for issue {issue.id}: {e}")
