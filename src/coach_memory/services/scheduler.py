"""Nightly compaction trigger, run by the application next to the engine."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from coach_memory.core.base import ErrorLevel
from coach_memory.core.config import SchedulerConfig
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.logging import get_logger
from coach_memory.services.memory_engine import MemoryEngine

logger = get_logger(__name__)

COMPACTION_JOB_ID = "nightly_compaction"


class CompactionScheduler:
    """Runs ``MemoryEngine.compact_all`` on a daily cron."""

    def __init__(self, engine: MemoryEngine, config: SchedulerConfig, scheduler: AsyncIOScheduler | None = None):
        self.engine = engine
        self.config = config
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._setup_jobs()

    def _setup_jobs(self) -> None:
        self.scheduler.add_job(
            self.run_compaction,
            "cron",
            hour=self.config.hour,
            minute=self.config.minute,
            id=COMPACTION_JOB_ID,
            max_instances=1,
            coalesce=True,
        )

    def start(self) -> None:
        self.scheduler.start()
        logger.info(
            "Compaction scheduler started",
            hour=self.config.hour,
            minute=self.config.minute,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Compaction scheduler shutdown complete")

    def job_status(self) -> dict:
        job = self.scheduler.get_job(COMPACTION_JOB_ID)
        next_run = getattr(job, "next_run_time", None) if job else None
        return {
            "scheduler_running": self.scheduler.running,
            "job_id": COMPACTION_JOB_ID,
            "next_run": next_run.isoformat() if next_run else None,
        }

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=False)
    async def run_compaction(self) -> None:
        report = await self.engine.compact_all()
        logger.info(
            "Nightly compaction complete",
            users_processed=report.users_processed,
            total_deleted=report.total_deleted,
            total_compressed=report.total_compressed,
            errors=len(report.errors),
        )
