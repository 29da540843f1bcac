import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from alertboard.database import get_db
from alertboard.dependencies import get_ingestion_job
from alertboard.errors import IngestionAlreadyRunningError
from alertboard.integrations.schemas import UpdateRequest, UpdateResponse, UpdateStatusResponse
from alertboard.integrations.sync_scheduler import IngestionJob
from alertboard.issues.service import count_issues

logger = structlog.get_logger()
router = APIRouter(prefix="/update", tags=["update"])


@router.post("", response_model=UpdateResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_update(
    data: UpdateRequest | None = None,
    job: IngestionJob = Depends(get_ingestion_job),
):
    """Start an ingestion cycle in the background."""
    if not job.available:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Jira is not configured")
    kind = data.type if data else UpdateRequest().type
    try:
        job.start(kind)
    except IngestionAlreadyRunningError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Update already in progress")
    logger.info("update_triggered", kind=kind)
    return UpdateResponse(status="started", message=f"{kind.capitalize()} update started")


@router.get("/status", response_model=UpdateStatusResponse)
async def update_status(
    job: IngestionJob = Depends(get_ingestion_job),
    db: AsyncSession = Depends(get_db),
):
    return UpdateStatusResponse(
        status="updating" if job.is_running else "idle",
        last_update=job.last_update,
        is_updating=job.is_running,
        jira_connected=job.available,
        issue_count=await count_issues(db),
        last_count=job.last_count,
        last_error=job.last_error,
    )
