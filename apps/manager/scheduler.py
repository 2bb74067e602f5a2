"""
Job Scheduler - Cron and On-Demand Execution

Manages scheduled and manual cleanup/backup job execution using APScheduler.

Features:
- One cron trigger per configured job
- Single-flight per job identity (overlapping firings are skipped)
- RUN_ONCE mode: fire every job once and exit
- Graceful shutdown: cancel the shared token and wait for in-flight runs

Usage:
    # Scheduled mode (default)
    python -m apps.manager

    # Run every job once and exit
    RUN_ONCE=true python -m apps.manager
"""

import asyncio
import logging
import signal
import sys
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.backup.backup_job import BackupService
from apps.cleanup.cleanup_job import CleanupService
from apps.manager.single_flight import SingleFlightGuard
from utils.cancellation import CancellationToken
from utils.config import AppConfig, BackupJob, CleanupJob, load_config, settings
from utils.errors import ConfigError, RunCancelled
from utils.logging import setup_logging
from utils.retry import RetryPolicy
from utils.search import SearchIndex
from utils.search import create_client as create_search_client
from utils.storage import ObjectStore
from utils.storage import create_client as create_storage_client

logger = logging.getLogger(__name__)

MASK = "******"


class JobScheduler:
    """
    Scheduler for periodic or on-demand cleanup and backup jobs.

    Handles:
    - APScheduler setup and management
    - Per-job single-flight locking
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        config: AppConfig,
        backup_service: BackupService,
        cleanup_service: CleanupService,
        token: CancellationToken,
        run_once: bool = False,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            config: Loaded job configuration
            backup_service: Runs backup jobs
            cleanup_service: Runs cleanup jobs
            token: Shared cancellation token, cancelled on shutdown
            run_once: If True, run every job once and exit
        """
        self.config = config
        self.backup_service = backup_service
        self.cleanup_service = cleanup_service
        self.token = token
        self.run_once = run_once
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self._inflight: set[asyncio.Task[Any]] = set()

        identities = [job.identity for job in config.cleanup_jobs]
        identities += [job.identity for job in config.backup_jobs]
        self.guard = SingleFlightGuard(identities)

        logger.info(
            "JobScheduler initialized",
            extra={
                "run_once": run_once,
                "cleanup_jobs": len(config.cleanup_jobs),
                "backup_jobs": len(config.backup_jobs),
            },
        )

    async def run_cleanup(self, job: CleanupJob) -> bool:
        """Fire a cleanup job. Returns False if the firing was skipped."""
        return await self._fire(
            job.identity, "cleanup", job.index_name,
            lambda: self.cleanup_service.run(job, self.token),
        )

    async def run_backup(self, job: BackupJob) -> bool:
        """Fire a backup job. Returns False if the firing was skipped."""
        return await self._fire(
            job.identity, "backup", job.index_name,
            lambda: self.backup_service.run(job, self.token),
        )

    async def _fire(
        self,
        identity: str,
        kind: str,
        index_name: str,
        fn: Callable[[], Awaitable[Any]],
    ) -> bool:
        if self.token.cancelled:
            logger.info("Shutdown in progress, not starting %s job for %s", kind, index_name)
            return False

        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)
        try:
            return await self.guard.run(identity, lambda: self._execute(kind, index_name, fn))
        finally:
            if task is not None:
                self._inflight.discard(task)

    async def _execute(
        self, kind: str, index_name: str, fn: Callable[[], Awaitable[Any]]
    ) -> None:
        """Run one job body; failures are logged and never reach the scheduler."""
        logger.info("Running %s job for index: %s", kind, index_name)

        try:
            await fn()
        except RunCancelled:
            logger.info("%s job for %s cancelled by shutdown", kind.capitalize(), index_name)
        except Exception as e:
            logger.error(
                "%s failed for %s: %s",
                kind.capitalize(), index_name, e,
                extra={"index": index_name, "error": str(e)},
                exc_info=True,
            )

    async def run_all_once(self) -> None:
        """Fire every configured job once, concurrently, and wait for them."""
        firings = [self.run_cleanup(job) for job in self.config.cleanup_jobs]
        firings += [self.run_backup(job) for job in self.config.backup_jobs]
        await asyncio.gather(*firings)

    def register_jobs(self) -> AsyncIOScheduler:
        """
        Create the APScheduler instance and add one cron job per definition.

        Raises:
            ConfigError: If a schedule is not a valid cron expression
        """
        scheduler = AsyncIOScheduler()

        jobs: list[tuple[str, Callable[..., Awaitable[bool]], CleanupJob | BackupJob]] = []
        jobs += [("cleanup", self.run_cleanup, job) for job in self.config.cleanup_jobs]
        jobs += [("backup", self.run_backup, job) for job in self.config.backup_jobs]

        for position, (kind, handler, job) in enumerate(jobs, 1):
            try:
                trigger = CronTrigger.from_crontab(job.schedule)
            except ValueError as e:
                raise ConfigError(
                    f"invalid schedule {job.schedule!r} for {kind} job {job.index_name}: {e}"
                ) from e

            # Overlaps are rejected by the single-flight guard, not by APScheduler
            scheduler.add_job(
                handler,
                trigger=trigger,
                args=[job],
                id=f"{job.identity}#{position}",
                name=f"{kind} {job.index_name}",
                max_instances=2,
                coalesce=True,
                misfire_grace_time=60,
                replace_existing=True,
            )
            logger.info(
                "Registered %s job for %s (schedule: %s)",
                kind, job.index_name, job.schedule,
                extra={"job": job.identity, "schedule": job.schedule},
            )

        self.scheduler = scheduler
        return scheduler

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            loop.call_soon_threadsafe(self.request_shutdown)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def request_shutdown(self) -> None:
        self.shutdown_event.set()
        # No scheduler loop to drain in RUN_ONCE mode; stop the jobs directly
        if self.run_once:
            self.token.cancel()

    async def shutdown(self) -> None:
        """Stop new firings, cancel the shared token and wait for running jobs."""
        logger.info("Shutting down scheduler")

        if self.scheduler and self.scheduler.running:
            self.scheduler.pause()

        self.token.cancel()

        pending = [t for t in self._inflight if t is not asyncio.current_task()]
        if pending:
            logger.info("Waiting for %d running jobs to finish", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        logger.info("Scheduler shutdown complete")

    async def start(self) -> None:
        """
        Start scheduler or execute once.

        In scheduled mode, runs continuously until shutdown signal.
        In RUN_ONCE mode, executes every job immediately and returns.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.run_all_once()
            return

        logger.info("Running in scheduled mode")

        scheduler = self.scheduler or self.register_jobs()
        scheduler.start()
        logger.info("Scheduler started")

        for job in scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            logger.info(
                "Scheduled %s",
                job.name,
                extra={"job_id": job.id, "next_run": str(next_run) if next_run else None},
            )

        logger.info("Waiting for jobs...")
        await self.shutdown_event.wait()
        await self.shutdown()


def log_config(config: AppConfig) -> None:
    """Log the effective configuration with secrets masked."""
    logger.info("=== Configuration ===")

    os_cfg = config.opensearch
    logger.info(
        "OpenSearch configuration",
        extra={
            "addresses": list(os_cfg.addresses),
            "username": os_cfg.username,
            "password": MASK if os_cfg.password else "",
            "cert_path": os_cfg.cert_path,
            "timestamp_field": os_cfg.timestamp_field,
        },
    )

    s3_cfg = config.s3
    logger.info(
        "S3/MinIO configuration",
        extra={
            "endpoint": s3_cfg.endpoint,
            "access_key_id": s3_cfg.access_key_id,
            "secret_access_key": MASK if s3_cfg.secret_access_key else "",
            "bucket": s3_cfg.bucket,
            "region": s3_cfg.region,
            "use_ssl": s3_cfg.use_ssl,
        },
    )

    logger.info("Cleanup jobs configured: %d", len(config.cleanup_jobs))
    for i, job in enumerate(config.cleanup_jobs, 1):
        logger.info(
            "Cleanup job #%d",
            i,
            extra={
                "index": job.index_name,
                "retention_days": job.retention_days,
                "schedule": job.schedule,
            },
        )

    logger.info("Backup jobs configured: %d", len(config.backup_jobs))
    for i, job in enumerate(config.backup_jobs, 1):
        logger.info(
            "Backup job #%d",
            i,
            extra={
                "index": job.index_name,
                "schedule": job.schedule,
                "interval_hours": job.interval_hours,
                "s3_path": job.s3_path,
                "request_interval": job.request_interval_seconds,
            },
        )


async def main() -> None:
    """Main entry point for the backup manager."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info(
        "Starting %s v%s", settings.APP_NAME, settings.APP_VERSION,
        extra={"app": settings.APP_NAME, "version": settings.APP_VERSION},
    )

    search: SearchIndex | None = None
    try:
        config = load_config(settings)
        log_config(config)

        search = SearchIndex(
            create_search_client(config.opensearch, settings.REQUEST_TIMEOUT),
            config.opensearch.timestamp_field,
        )
        store = ObjectStore(
            create_storage_client(config.s3, settings.REQUEST_TIMEOUT),
            config.s3.bucket,
        )
        store.check_bucket()

        policy = RetryPolicy(
            max_attempts=settings.UPLOAD_MAX_ATTEMPTS,
            base_delay=settings.UPLOAD_BASE_DELAY,
        )
        scheduler = JobScheduler(
            config,
            BackupService(search, store, settings.WORK_DIR, policy),
            CleanupService(search),
            CancellationToken(),
            run_once=settings.RUN_ONCE,
        )
        if not settings.RUN_ONCE:
            scheduler.register_jobs()
    except Exception as e:
        logger.error("Startup failed", extra={"error": str(e)}, exc_info=True)
        if search is not None:
            await search.close()
        sys.exit(1)

    try:
        await scheduler.start()
    finally:
        await search.close()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
