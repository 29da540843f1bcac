"""Single-slot ingestion job and the periodic incremental sync loop."""

import asyncio
from datetime import datetime, timezone

import structlog

from alertboard.config import settings
from alertboard.errors import IngestionAlreadyRunningError
from alertboard.integrations.ingestion import IngestionService

logger = structlog.get_logger()

KIND_FULL = "full"
KIND_INCREMENTAL = "incremental"


def _retrieve_exception(task: asyncio.Task) -> None:
    # already logged by IngestionJob._run
    if not task.cancelled():
        task.exception()


class IngestionJob:
    """At most one ingestion cycle at a time.

    ``_running`` is checked and set within one event-loop step, so two
    triggers can never both pass the check. It is cleared in ``finally``
    so a failed cycle does not block later ones.
    """

    def __init__(self, service: IngestionService | None, initial_days: int | None = None):
        self.service = service
        self.initial_days = initial_days or settings.INITIAL_FETCH_DAYS
        self.last_update: datetime | None = None
        self.last_count: int | None = None
        self.last_error: str | None = None
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def available(self) -> bool:
        return self.service is not None

    @property
    def is_running(self) -> bool:
        return self._running

    def _acquire(self) -> None:
        if self._running:
            raise IngestionAlreadyRunningError("Update already in progress")
        self._running = True

    def start(self, kind: str = KIND_INCREMENTAL) -> asyncio.Task:
        """Launch a cycle in the background; raises if one is already running."""
        self._acquire()
        self._task = asyncio.create_task(self._run(kind))
        self._task.add_done_callback(_retrieve_exception)
        return self._task

    async def run(self, kind: str = KIND_INCREMENTAL) -> int:
        """Run a cycle inline; raises if one is already running."""
        self._acquire()
        return await self._run(kind)

    async def _run(self, kind: str) -> int:
        try:
            if kind == KIND_FULL:
                count = await self.service.fetch_initial(self.initial_days)
            else:
                count = await self.service.fetch_incremental()
        except Exception as exc:
            self.last_error = str(exc)
            logger.exception("ingestion_cycle_failed", kind=kind)
            raise
        finally:
            self._running = False

        self.last_update = datetime.now(timezone.utc)
        self.last_count = count
        self.last_error = None
        logger.info("ingestion_cycle_complete", kind=kind, stored=count)
        return count


async def ingestion_sync_loop(job: IngestionJob, interval: float | None = None) -> None:
    """Run an incremental cycle every *interval* seconds, skipping ticks while one is in flight."""
    interval = interval or settings.SYNC_INTERVAL_SECONDS
    logger.info("ingestion_sync_loop_started", interval=interval)
    while True:
        await asyncio.sleep(interval)
        if job.is_running:
            logger.info("ingestion_sync_tick_skipped")
            continue
        try:
            await job.run(KIND_INCREMENTAL)
        except IngestionAlreadyRunningError:
            logger.info("ingestion_sync_tick_skipped")
        except Exception:
            logger.exception("ingestion_sync_loop_error")
