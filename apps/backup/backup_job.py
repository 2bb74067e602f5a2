"""
Backup Job - Daily Extraction, Merge, Compression and Upload

Executes one backup run for one configured job:

1. Plan the windows of the target day (yesterday, UTC, by default)
2. For each window, in order: probe the count, download the documents,
   then pause for request_interval_seconds before the next window
3. Merge the window files into one day file
4. Gzip the day file
5. Upload the archive to S3
6. Remove every temporary file, whatever the outcome

Each run works in its own scratch directory under work_dir, so concurrent
runs never see each other's artifacts.

A window whose probe or download fails is logged and skipped. Merge,
compression and upload failures abort the run.
"""

import asyncio
import logging
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from apps.backup.artifacts import compress_artifact, merge_artifacts, reclaim
from apps.backup.extractor import download_window
from apps.backup.windows import plan_windows
from utils.cancellation import CancellationToken
from utils.config import BackupJob
from utils.errors import ExtractionError
from utils.retry import RetryPolicy
from utils.schemas import BackupResult
from utils.search import SearchIndex
from utils.storage import ObjectStore, object_key, upload_artifact

logger = logging.getLogger(__name__)


def default_target_day(now: datetime | None = None) -> date:
    """The previous UTC calendar day."""
    now = now or datetime.now(timezone.utc)
    return (now.astimezone(timezone.utc) - timedelta(days=1)).date()


@dataclass
class RunContext:
    """State owned by one backup run."""

    job: BackupJob
    day: date
    token: CancellationToken
    scratch_dir: Path
    window_artifacts: list[Path] = field(default_factory=list)
    temp_files: list[Path] = field(default_factory=list)
    windows_failed: int = 0

    def track(self, path: Path) -> Path:
        self.temp_files.append(path)
        return path


class BackupService:
    """Runs backup jobs against one cluster and one bucket."""

    def __init__(
        self,
        search: SearchIndex,
        store: ObjectStore,
        work_dir: str | Path,
        upload_policy: RetryPolicy | None = None,
    ) -> None:
        self.search = search
        self.store = store
        self.work_dir = Path(work_dir)
        self.upload_policy = upload_policy or RetryPolicy()
        self.work_dir.mkdir(parents=True, exist_ok=True)

    async def run(
        self,
        job: BackupJob,
        token: CancellationToken,
        target_day: date | None = None,
    ) -> BackupResult:
        """
        Back up one day of job.index_name.

        Args:
            job: Backup job definition
            token: Shared cancellation token
            target_day: Day to export (defaults to yesterday, UTC)

        Returns:
            Run summary; object_key is None when no window held data

        Raises:
            MergeError, CompressionError, UploadError: Fatal to the run
            RunCancelled: If shutdown was requested
        """
        day = target_day or default_target_day()
        scratch = Path(
            tempfile.mkdtemp(prefix=f"{job.index_name}-{day:%Y%m%d}-", dir=self.work_dir)
        )
        ctx = RunContext(job=job, day=day, token=token, scratch_dir=scratch)

        logger.info(
            "Starting backup for index %s, date: %s",
            job.index_name, day.isoformat(),
            extra={"index": job.index_name, "date": day.isoformat()},
        )

        try:
            return await self._run(ctx)
        finally:
            removed = reclaim(ctx.window_artifacts + ctx.temp_files)
            if removed:
                logger.info("Cleaned up %d temporary files", removed)
            try:
                scratch.rmdir()
            except OSError as e:
                logger.warning("Failed to remove scratch directory %s: %s", scratch, e)

    async def _run(self, ctx: RunContext) -> BackupResult:
        job = ctx.job
        windows = plan_windows(ctx.day, job.interval_hours)

        for i, window in enumerate(windows):
            ctx.token.raise_if_cancelled()

            try:
                path = await download_window(
                    self.search, job.index_name, window, ctx.scratch_dir, ctx.day, ctx.token
                )
            except ExtractionError as e:
                ctx.windows_failed += 1
                logger.error(
                    "Failed to download period %d: %s",
                    window.sequence, e,
                    extra={"index": job.index_name, "window": window.sequence},
                )
            else:
                if path is not None:
                    ctx.window_artifacts.append(path)

            if i < len(windows) - 1 and job.request_interval_seconds > 0:
                logger.info(
                    "Waiting %s seconds before next request...", job.request_interval_seconds
                )
                await ctx.token.sleep(job.request_interval_seconds)

        result = BackupResult(
            index_name=job.index_name,
            day=ctx.day,
            windows_planned=len(windows),
            windows_with_data=len(ctx.window_artifacts),
            windows_failed=ctx.windows_failed,
        )

        if not ctx.window_artifacts:
            logger.warning("No data downloaded for %s", job.index_name)
            return result

        merged, total = await asyncio.to_thread(
            merge_artifacts, ctx.window_artifacts, ctx.scratch_dir, job.index_name, ctx.day
        )
        ctx.track(merged)

        compressed = ctx.track(await asyncio.to_thread(compress_artifact, merged))
        reclaim([merged])

        key = object_key(job.s3_path, compressed.name)
        try:
            await upload_artifact(
                self.store, compressed, key, total, self.upload_policy, ctx.token
            )
        finally:
            reclaim([compressed])

        logger.info(
            "Backup completed for %s: %s",
            job.index_name, key,
            extra={"index": job.index_name, "documents": total, "key": key},
        )
        return result.model_copy(update={"documents": total, "object_key": key})
