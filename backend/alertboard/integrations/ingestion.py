"""Full and incremental ingestion of Jira alert tickets into the issues table."""

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertboard.config import settings
from alertboard.errors import JiraSearchError
from alertboard.integrations.extraction import normalize_issue
from alertboard.integrations.jira_client import JiraClient, build_scope_jql
from alertboard.issues.service import get_latest_created, upsert_issue
from alertboard.names.resolver import NameResolver

logger = structlog.get_logger()

PROGRESS_EVERY = 50
INCREMENTAL_DEFAULT_DAYS = 30


class IngestionService:
    def __init__(
        self,
        client: JiraClient,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: NameResolver | None = None,
        projects: list[str] | None = None,
        page_size: int | None = None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.resolver = resolver
        self.projects = projects if projects is not None else settings.jira_project_keys
        self.page_size = page_size or settings.JIRA_PAGE_SIZE

    async def fetch_initial(self, days_back: int) -> int:
        """Import everything created in the last *days_back* days."""
        logger.info("ingestion_initial_started", days_back=days_back)
        await self.client.test_connection()

        end = datetime.now(timezone.utc)
        start = end - timedelta(days=days_back)
        count = await self._ingest_window(start, end)

        logger.info("ingestion_initial_complete", stored=count)
        return count

    async def fetch_incremental(self) -> int:
        """Import tickets created after the newest stored one (or the last 30 days)."""
        logger.info("ingestion_incremental_started")
        await self.client.test_connection()

        async with self.session_factory() as db:
            latest = await get_latest_created(db)

        end = datetime.now(timezone.utc)
        if latest is not None:
            start = latest + timedelta(seconds=1)
        else:
            start = end - timedelta(days=INCREMENTAL_DEFAULT_DAYS)
        count = await self._ingest_window(start, end)

        logger.info("ingestion_incremental_complete", stored=count)
        return count

    async def fetch_all_alerts(self, start: datetime, end: datetime) -> list[dict]:
        """Query every configured project in turn.

        A failing project is logged and skipped; tickets from the other
        projects are still returned.
        """
        logger.info(
            "ingestion_window",
            start=start.strftime("%Y-%m-%d %H:%M:%S"),
            end=end.strftime("%Y-%m-%d %H:%M:%S"),
        )
        all_issues: list[dict] = []
        for project in self.projects:
            jql = build_scope_jql(project, start, end)
            try:
                issues = await self.client.search_all_issues(jql, self.page_size, label=project)
            except JiraSearchError as exc:
                logger.warning("ingestion_scope_failed", project=project, error=str(exc))
                continue
            all_issues.extend(issues)
            logger.info("ingestion_scope_fetched", project=project, count=len(issues), cumulative=len(all_issues))
        return all_issues

    async def _ingest_window(self, start: datetime, end: datetime) -> int:
        raw_issues = await self.fetch_all_alerts(start, end)
        total = len(raw_issues)
        logger.info("ingestion_fetched", total=total)

        stored = 0
        async with self.session_factory() as db:
            for i, raw in enumerate(raw_issues, start=1):
                if await self._process_issue(db, raw):
                    stored += 1
                if i % PROGRESS_EVERY == 0 or i == total:
                    logger.info(
                        "ingestion_progress",
                        processed=i,
                        total=total,
                        percent=round(i / total * 100, 1),
                        stored=stored,
                    )
        return stored

    async def _process_issue(self, db: AsyncSession, raw: dict) -> bool:
        data = await normalize_issue(raw, self.resolver, self.client.raw_alert_field)
        if not data.id:
            logger.warning("ingestion_issue_without_key")
            return False
        try:
            await upsert_issue(db, data)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("ingestion_store_failed", issue_key=data.id, error=str(exc))
            return False
        return True
