import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from alertboard.analytics.router import router as analytics_router
from alertboard.categories.classifier import CategoryMap
from alertboard.config import settings
from alertboard.database import async_session_factory, create_tables
from alertboard.errors import ConfigurationError
from alertboard.integrations.ingestion import IngestionService
from alertboard.integrations.jira_client import JiraClient
from alertboard.integrations.router import router as update_router
from alertboard.integrations.sync_scheduler import KIND_FULL, IngestionJob, ingestion_sync_loop
from alertboard.issues.router import router as issues_router
from alertboard.issues.service import count_issues
from alertboard.middleware.error_handler import ErrorHandlerMiddleware
from alertboard.middleware.logging import RequestLoggingMiddleware
from alertboard.names.resolver import NameResolver

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.PrintLoggerFactory(),
)

logger = structlog.get_logger()


def build_ingestion_job(resolver: NameResolver) -> IngestionJob:
    """Ingestion stays disabled (``job.available`` is False) without Jira credentials."""
    try:
        client = JiraClient.from_settings()
    except ConfigurationError as exc:
        logger.warning("jira_not_configured", error=str(exc))
        return IngestionJob(None)
    service = IngestionService(client, async_session_factory, resolver=resolver)
    return IngestionJob(service)


async def _start_background_sync(job: IngestionJob) -> asyncio.Task | None:
    if not job.available:
        return None
    async with async_session_factory() as db:
        empty = await count_issues(db) == 0
    if empty:
        logger.info("initial_import_scheduled", days=job.initial_days)
        job.start(KIND_FULL)
    return asyncio.create_task(ingestion_sync_loop(job))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await create_tables()

    sync_task = await _start_background_sync(app.state.ingestion_job)
    yield
    if sync_task is not None:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass


def create_app() -> FastAPI:
    app = FastAPI(
        title="Alert Analytics Dashboard",
        version="0.1.0",
        docs_url="/docs",
        lifespan=lifespan,
    )

    resolver = NameResolver.from_settings()
    app.state.name_resolver = resolver
    app.state.category_map = CategoryMap(
        settings.CATEGORY_CONFIG_PATH,
        reload_interval=settings.CATEGORY_RELOAD_SECONDS,
    )
    app.state.ingestion_job = build_ingestion_job(resolver)

    cors_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    app.include_router(analytics_router, prefix="/api")
    app.include_router(issues_router, prefix="/api")
    app.include_router(update_router, prefix="/api")

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
