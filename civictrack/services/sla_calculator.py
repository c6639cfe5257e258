"""
SLA deadline calculation.

Maps a priority to a resolution budget in calendar days and produces the
SLA fields written when an issue is created. Pure function of priority and
the current time.
"""

from datetime import datetime, timedelta
from typing import Optional, Union

from civictrack.models.issue import Priority, SLARecord, SLAStatus
from civictrack.utils.timeutils import to_iso, utcnow

SLA_DAYS_BY_PRIORITY = {
    Priority.CRITICAL: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 4,
    Priority.LOW: 7,
}

# Unrecognised priorities get the most generous budget
DEFAULT_SLA_DAYS = 7


def get_sla_days(priority: Union[Priority, str, None]) -> int:
    parsed = Priority.parse(priority)
    if parsed is None:
        return DEFAULT_SLA_DAYS
    return SLA_DAYS_BY_PRIORITY[parsed]


def calculate_sla(priority: Union[Priority, str, None], now: Optional[datetime] = None) -> SLARecord:
    """
    Build the initial SLA record for an issue.

    slaEndDate is exactly slaDays calendar days after slaStartDate.
    """
    now = now or utcnow()
    sla_days = get_sla_days(priority)

    return SLARecord(
        sla_days=sla_days,
        sla_start_date=to_iso(now),
        sla_end_date=to_iso(now + timedelta(days=sla_days)),
        days_remaining=float(sla_days),
        sla_status=SLAStatus.ON_TRACK,
        admin_escalated_priority=Priority.LOW,
    )
