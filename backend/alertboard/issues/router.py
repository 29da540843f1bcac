import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from alertboard.analytics.router import analytics_query
from alertboard.analytics.schemas import AnalyticsQuery
from alertboard.analytics.service import get_issue_list
from alertboard.database import get_db
from alertboard.errors import IssueAlreadyMutedError
from alertboard.issues.schemas import IssueResponse, MuteRequest, MuteResponse, UnmuteResponse
from alertboard.issues.service import get_muted_issue, mute_issue, unmute_issue

logger = structlog.get_logger()
router = APIRouter(tags=["issues"])


@router.get("/dashboard/issues", response_model=list[IssueResponse])
async def list_issues(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    query: AnalyticsQuery = Depends(analytics_query),
    db: AsyncSession = Depends(get_db),
):
    return await get_issue_list(db, query, page=page, page_size=page_size)


@router.post("/issues/{issue_id}/mute", response_model=MuteResponse, status_code=status.HTTP_201_CREATED)
async def mute(
    issue_id: str,
    data: MuteRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    if await get_muted_issue(db, issue_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Issue already muted")
    reason = data.reason if data else MuteRequest().reason
    try:
        muted = await mute_issue(db, issue_id, reason)
    except IssueAlreadyMutedError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Issue already muted")
    logger.info("issue_muted", issue_id=issue_id)
    return muted


@router.delete("/issues/{issue_id}/mute", response_model=UnmuteResponse)
async def unmute(issue_id: str, db: AsyncSession = Depends(get_db)):
    if not await unmute_issue(db, issue_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue is not muted")
    logger.info("issue_unmuted", issue_id=issue_id)
    return UnmuteResponse(status="success", message=f"Issue {issue_id} unmuted")
