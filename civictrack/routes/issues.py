"""
Issue endpoints - citizen submission and issue reads.

Every read passes open issues through the lazy migration gate, so the SLA
fields returned are current for this request. Any resulting writes are
drained after the response has been sent.
"""

from functools import partial
from typing import Any, Dict, List, Optional
import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel

from civictrack.core.exceptions import IssueNotFoundError
from civictrack.core.settings import settings
from civictrack.dependencies import get_issue_service
from civictrack.models.issue import Issue, IssueCreate
from civictrack.services.issue_service import IssueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["Issues"])


class IssueSubmitResponse(BaseModel):
    message: str
    issueId: str
    priority: str
    confidence: float
    reasoning: str
    analysis: Dict[str, Any]
    issue: Issue


@router.post("", status_code=status.HTTP_201_CREATED, response_model=IssueSubmitResponse)
async def submit_issue(
    payload: IssueCreate,
    x_user_id: Optional[str] = Header(None),
    service: IssueService = Depends(get_issue_service),
):
    """
    Submit a new civic issue.

    Priority is fused from the category baseline, a text urgency scan and the
    optional external classifier signal; SLA fields are derived from it.
    """
    if payload.uid is None and x_user_id:
        payload.uid = x_user_id

    if payload.external_signal is not None and not settings.TRUST_CLIENT_EXTERNAL_SIGNAL:
        # A confident signal decides priority and therefore the SLA budget
        logger.warning(f"Ignoring client-supplied externalSignal on POST /issues (uid={payload.uid})")
        payload.external_signal = None

    logger.info(f"📝 POST /issues - category={payload.category}, uid={payload.uid}")
    try:
        loop = asyncio.get_event_loop()
        issue, result = await loop.run_in_executor(None, partial(service.submit_issue, payload))
    except Exception as e:
        logger.error(f"❌ POST /issues - Issue submission failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to submit issue: {str(e)}"
        )

    return IssueSubmitResponse(
        message="Issue submitted successfully",
        issueId=issue.id,
        priority=result.priority.label,
        confidence=result.confidence,
        reasoning=result.reasoning,
        analysis=result.analysis,
        issue=issue,
    )


@router.get("", response_model=List[Issue])
async def list_issues(
    background_tasks: BackgroundTasks,
    uid: Optional[str] = Query(None, description="Only issues reported by this user"),
    service: IssueService = Depends(get_issue_service),
):
    try:
        loop = asyncio.get_event_loop()
        issues = await loop.run_in_executor(None, partial(service.list_issues, uid))
    except Exception as e:
        logger.error(f"❌ Error fetching issues: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve issues: {str(e)}")

    background_tasks.add_task(service.flush_writebacks)
    return issues


@router.get("/{issue_id}", response_model=Issue)
async def get_issue(
    issue_id: str,
    background_tasks: BackgroundTasks,
    service: IssueService = Depends(get_issue_service),
):
    try:
        loop = asyncio.get_event_loop()
        issue = await loop.run_in_executor(None, partial(service.get_issue, issue_id))
    except IssueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    background_tasks.add_task(service.flush_writebacks)
    return issue
