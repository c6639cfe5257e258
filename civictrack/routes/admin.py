"""
Admin endpoints - staff actions, hotspot clusters and the SLA sweep.

Status transitions are the only way an issue's status changes. The SLA
fields returned with a transition are refreshed for display; the SLA
engine itself is driven by time, not by these actions.
"""

from functools import partial
from typing import List, Optional
import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from civictrack.core.exceptions import InvalidTransitionError, IssueNotFoundError
from civictrack.dependencies import get_issue_service
from civictrack.models.issue import Cluster, Issue, StatusActionRequest
from civictrack.services.issue_service import IssueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/issues/{issue_id}/{action}", response_model=Issue)
async def apply_status_action(
    issue_id: str,
    action: str,
    request: StatusActionRequest,
    background_tasks: BackgroundTasks,
    service: IssueService = Depends(get_issue_service),
):
    """
    Apply a staff action to an issue.

    **Actions:** plan (→ in-progress), escalate, reject, resolve.
    Resolving records whether the issue was closed within its SLA window.
    """
    try:
        loop = asyncio.get_event_loop()
        issue = await loop.run_in_executor(
            None,
            partial(service.transition, issue_id, action, request.actor_id, request.note),
        )
    except IssueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(service.flush_writebacks)
    return issue


@router.get("/clusters", response_model=List[Cluster])
async def get_clusters(
    background_tasks: BackgroundTasks,
    radius: Optional[float] = Query(None, gt=0, le=50000, description="Cluster radius in meters"),
    service: IssueService = Depends(get_issue_service),
):
    """
    Hotspot clusters among open issues, for targeting citizen surveys.
    Recomputed on every request.
    """
    try:
        loop = asyncio.get_event_loop()
        clusters = await loop.run_in_executor(None, partial(service.get_clusters, radius))
    except Exception as e:
        logger.error(f"Failed to compute clusters: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compute clusters: {str(e)}")

    background_tasks.add_task(service.flush_writebacks)
    return clusters


@router.post("/sla/sweep")
async def run_sla_sweep(
    apply: bool = Query(True, description="Write updates and send breach notifications"),
    service: IssueService = Depends(get_issue_service),
):
    """Run the periodic SLA sweep once, now."""
    try:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(service.run_sla_sweep, None, apply))
    except Exception as e:
        logger.error(f"❌ Error in SLA sweep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"SLA sweep failed: {str(e)}")
