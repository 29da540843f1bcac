from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from alertboard.errors import IssueAlreadyMutedError
from alertboard.integrations.extraction import IssueData, parse_stamp
from alertboard.issues.models import Issue, MutedIssue


async def upsert_issue(db: AsyncSession, data: IssueData) -> Issue:
    """Insert or overwrite the row for ``data.id``; last write wins on every field."""
    issue = await db.merge(data.to_model())
    await db.commit()
    return issue


async def count_issues(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(Issue))
    return result.scalar_one()


async def get_latest_created(db: AsyncSession) -> datetime | None:
    """Newest normalized creation stamp in the store, ignoring passed-through raw stamps."""
    result = await db.execute(
        select(func.max(Issue.created)).where(Issue.created.like("____-__-__ __:__:__ UTC"))
    )
    latest = result.scalar_one_or_none()
    return parse_stamp(latest) if latest else None


async def get_muted_issue(db: AsyncSession, issue_id: str) -> MutedIssue | None:
    return await db.get(MutedIssue, issue_id)


async def mute_issue(db: AsyncSession, issue_id: str, reason: str) -> MutedIssue:
    muted = MutedIssue(issue_id=issue_id, reason=reason)
    db.add(muted)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise IssueAlreadyMutedError(issue_id) from exc
    await db.refresh(muted)
    return muted


async def unmute_issue(db: AsyncSession, issue_id: str) -> bool:
    muted = await get_muted_issue(db, issue_id)
    if not muted:
        return False
    await db.delete(muted)
    await db.commit()
    return True
