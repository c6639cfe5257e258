"""
Write-back queue for SLA fields computed on the read path.

Reads never wait for these writes. Jobs are drained after the response is
sent (FastAPI BackgroundTasks) with exponential backoff between attempts.
Jobs that exhaust their attempts are logged and the most recent ones are
kept in the bounded `failed` deque for operators and tests (`pop_failed`
clears it). They are never raised to a reader.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional
import logging
import threading
import time

from civictrack.core.settings import settings
from civictrack.repositories.issue_repository import IssueRepository

logger = logging.getLogger(__name__)


@dataclass
class WriteBackJob:
    issue_id: str
    fields: Dict[str, Any]
    reason: str = ""
    attempts: int = 0
    last_error: Optional[str] = None


@dataclass
class DrainResult:
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class WriteBackQueue:

    def __init__(
        self,
        repository: IssueRepository,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        failed_limit: Optional[int] = None,
    ):
        self.repository = repository
        self.max_attempts = max_attempts or settings.WRITEBACK_MAX_ATTEMPTS
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.WRITEBACK_BACKOFF_SECONDS
        self.sleep = sleep
        # Most recent exhausted jobs; older ones are dropped once the limit is reached
        self.failed: Deque[WriteBackJob] = deque(maxlen=failed_limit or settings.WRITEBACK_FAILED_LIMIT)
        self._pending: Dict[str, WriteBackJob] = {}
        self._lock = threading.Lock()

    def enqueue(self, issue_id: str, fields: Dict[str, Any], reason: str = "") -> None:
        """Queue fields for an issue; later fields for the same issue win."""
        if not issue_id or not fields:
            return
        with self._lock:
            job = self._pending.get(issue_id)
            if job is None:
                self._pending[issue_id] = WriteBackJob(issue_id=issue_id, fields=dict(fields), reason=reason)
            else:
                job.fields.update(fields)
                job.reason = reason or job.reason

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pop_failed(self) -> List[WriteBackJob]:
        """Return and clear the recorded exhausted jobs."""
        with self._lock:
            jobs = list(self.failed)
            self.failed.clear()
        return jobs

    def drain(self) -> DrainResult:
        """Write every pending job. Never raises."""
        with self._lock:
            jobs = list(self._pending.values())
            self._pending.clear()

        result = DrainResult()
        for job in jobs:
            if self._write_with_retry(job):
                result.written.append(job.issue_id)
            else:
                result.failed.append(job.issue_id)
                self.failed.append(job)

        if jobs:
            logger.info(f"Write-back drained: {len(result.written)} written, {len(result.failed)} failed")
        return result

    def _write_with_retry(self, job: WriteBackJob) -> bool:
        while job.attempts < self.max_attempts:
            job.attempts += 1
            try:
                self.repository.update(job.issue_id, job.fields)
                logger.debug(f"Write-back for issue {job.issue_id} ({job.reason}) succeeded")
                return True
            except Exception as e:
                job.last_error = str(e)
                logger.warning(
                    f"Write-back for issue {job.issue_id} failed "
                    f"(attempt {job.attempts}/{self.max_attempts}): {e}"
                )
                if job.attempts < self.max_attempts:
                    self.sleep(self.backoff_seconds * (2 ** (job.attempts - 1)))

        logger.error(f"❌ Giving up write-back for issue {job.issue_id} ({job.reason}): {job.last_error}")
        return False
