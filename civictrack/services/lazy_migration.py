"""
Lazy Migration Gate - every read of an issue passes through here.

Issues created before SLA tracking have no slaStatus. On first read they get
SLA fields synthesized as if they had been created now (priority defaults
to MEDIUM), the in-memory record is returned upgraded, and the new fields
are queued for write-back. Issues that already carry SLA fields are
refreshed by the SLA status engine instead. Terminal issues pass through.

Reads are never slowed or failed by the write-back.
"""

from datetime import datetime
from typing import List, Optional
import logging

from civictrack.models.issue import Issue, Priority
from civictrack.services.sla_calculator import calculate_sla
from civictrack.services.sla_status_engine import SLAStatusEngine
from civictrack.services.writeback_queue import WriteBackQueue
from civictrack.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LEGACY_PRIORITY = Priority.MEDIUM


class LazyMigrationGate:

    def __init__(self, sla_engine: SLAStatusEngine, writeback: WriteBackQueue):
        self.sla_engine = sla_engine
        self.writeback = writeback

    def process(self, issue: Issue, now: Optional[datetime] = None) -> Issue:
        """Return the issue with current SLA fields. Never raises."""
        if issue.is_terminal:
            return issue

        now = now or utcnow()
        try:
            if issue.sla_status is None:
                self._migrate(issue, now)
            else:
                update = self.sla_engine.refresh(issue, now)
                if update is not None:
                    self.writeback.enqueue(issue.id, update.as_fields(), reason="sla-refresh")
        except Exception as e:
            logger.error(f"SLA processing failed for issue {issue.id}, returning it unchanged: {e}")
        return issue

    def process_many(self, issues: List[Issue], now: Optional[datetime] = None) -> List[Issue]:
        now = now or utcnow()
        return [self.process(issue, now) for issue in issues]

    def _migrate(self, issue: Issue, now: datetime) -> None:
        fields = {}
        if issue.priority is None:
            issue.priority = DEFAULT_LEGACY_PRIORITY
            fields["priority"] = DEFAULT_LEGACY_PRIORITY.value

        record = calculate_sla(issue.priority, now)
        issue.sla_days = record.sla_days
        issue.sla_start_date = record.sla_start_date
        issue.sla_end_date = record.sla_end_date
        issue.days_remaining = record.days_remaining
        issue.sla_status = record.sla_status
        issue.admin_escalated_priority = record.admin_escalated_priority

        fields.update(record.as_fields())
        self.writeback.enqueue(issue.id, fields, reason="legacy-sla-migration")
        logger.info(f"Migrated legacy issue {issue.id} to SLA tracking ({record.sla_days} days)")
